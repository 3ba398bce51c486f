"""全局配置管理

所有用户可配置项均通过 .env 文件或环境变量设置，运行时自动加载到此处。

使用方式：
    1. 手动创建 .env 文件，例如 ``DATABASE_URL=sqlite:///data/service_app.db``
    2. 或直接设置环境变量 ``DATABASE_URL`` / ``LOG_LEVEL`` 等
"""
import sys

from loguru import logger
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用配置 - 所有字段均可通过 .env 或环境变量覆盖"""

    # ========== 存储 ==========
    database_url: str = "sqlite:///data/service_app.db"

    # ========== 日志 ==========
    log_level: str = "INFO"
    log_file: str = ""

    # ========== 编号规则 ==========
    contract_number_prefix: str = "CON"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


# 全局配置实例
settings = Settings()


def setup_logging(level: str = None, log_file: str = None) -> None:
    """配置 loguru 日志输出。

    移除默认 sink，添加标准错误输出；配置了 log_file 时额外写入文件。

    Args:
        level: 日志级别，默认使用 settings.log_level。
        log_file: 日志文件路径，默认使用 settings.log_file，空字符串表示不写文件。
    """
    level = (level or settings.log_level).upper()
    log_file = settings.log_file if log_file is None else log_file

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>"
    )
    if log_file:
        logger.add(log_file, level=level, rotation="10 MB", encoding="utf-8")
