# 读取 .env 配置
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Rank 取值范围（进程级共享）
    RANK_MIN: int = 0
    RANK_MAX: int = 2**30 - 1

    # Database
    DATABASE_URL: Optional[str] = None
    DB_SERVER: str = "localhost"
    DB_PORT: int = 3306
    DB_USER: str = "rag_user"
    DB_PASSWORD: str = "rag_password"
    DB_NAME: str = "rag_data"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore" # 忽略多余的环境变量
    )

    @model_validator(mode="after")
    def _check_rank_range(self) -> "Settings":
        if self.RANK_MIN >= self.RANK_MAX:
            raise ValueError(f"RANK_MIN({self.RANK_MIN}) 必须小于 RANK_MAX({self.RANK_MAX})")
        return self

    @property
    def database_url(self) -> str:
        """优先使用 DATABASE_URL，否则按 DB_* 拼装 MySQL 连接串"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        # 格式: mysql+pymysql://用户名:密码@地址:端口/数据库名
        return f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_SERVER}:{self.DB_PORT}/{self.DB_NAME}"


settings = Settings()
