import sys
from typing import Optional

from loguru import logger

from ranked.core.config import settings

_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logger(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """
    把 loguru 的输出切到 stderr（可选再写一份文件），级别默认取配置里的 LOG_LEVEL。

    库本身只调用 logger.debug/info/warning，不主动配置；由宿主进程启动时调用一次。
    """
    level = level or settings.LOG_LEVEL
    log_file = log_file or settings.LOG_FILE

    logger.remove()
    logger.add(sys.stderr, format=_FORMAT, level=level)
    if log_file:
        logger.add(log_file, format=_FORMAT, level=level, rotation="100 MB", retention="10 days")
    logger.debug(f"ranked 日志已配置: level={level}, file={log_file}")
