"""SQLAlchemy ORM 模型定义。

本地持久化只需要一张键值表：每个存储键对应一个完整集合的
JSON 文本（例如 ``customers`` → 顾客数组）。实体本身不建表，
由仓库层的编解码器负责 JSON 与实体之间的转换。
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import declarative_base

# SQLAlchemy declarative base，所有模型都继承自此类
# 设置 __allow_unmapped__ = True 以兼容 SQLAlchemy 2.0 的类型注解要求
Base = declarative_base()

Base.__allow_unmapped__ = True


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueEntry(Base):
    """键值存储表模型。

    Attributes:
        key: 主键，存储键名，最大长度100字符。
        value: 序列化后的 JSON 文本。
        updated_at: 最近一次写入时间（UTC）。
    """
    __tablename__ = "kv_entries"

    key: str = Column(String(100), primary_key=True)
    value: str = Column(Text, nullable=False)
    updated_at: datetime = Column(DateTime(timezone=True), default=_utc_now,
                                  onupdate=_utc_now)
