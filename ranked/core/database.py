# 数据库引擎与会话工厂
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ranked.core.config import settings


# 所有带排序字段的 Model 都可以继承这个 Base（也可以用宿主项目自己的 Base）
Base = declarative_base()


def build_engine(url: Optional[str] = None, **kwargs) -> Engine:
    """
    创建数据库引擎 (Engine)

    url 为空时读取配置中的连接串。
    pool_recycle=3600: MySQL 默认会断开空闲 8 小时的连接，这里设置每 1 小时回收重连
    pool_pre_ping=True: 每次从池子里拿连接前，先 ping 一下数据库，确保连接是活的
    """
    url = url or settings.database_url
    if url.startswith("sqlite"):
        return create_engine(url, future=True, **kwargs)
    options = {"pool_recycle": 3600, "pool_pre_ping": True}
    options.update(kwargs)
    return create_engine(url, future=True, **options)


def build_session_factory(engine: Engine) -> sessionmaker:
    # 每次调用产生一个新的数据库会话
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
