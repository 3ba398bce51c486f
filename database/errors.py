"""存储层异常定义。

异常分类：
- StorageError: 所有存储层异常的基类。
- StorageIOError: 持久化适配器读写失败，向调用方传播，不自动重试。
- DecodeError: 集合中的 JSON 无法解析，仅在仓库内部使用，
  读取路径会捕获它并返回空集合。

"未找到"不是异常：get_by_id 等查询直接返回 None。
表单级校验由调用方负责，存储层不做校验。
"""
from typing import Optional


class StorageError(Exception):
    """存储层异常基类。"""


class StorageIOError(StorageError):
    """持久化适配器的底层读写失败。

    Attributes:
        key: 出错的存储键。
        operation: 出错的操作（get / set / remove / keys）。
    """

    def __init__(self, key: Optional[str], operation: str,
                 message: Optional[str] = None) -> None:
        self.key = key
        self.operation = operation
        super().__init__(
            message or f"Storage {operation} failed for key '{key}'"
        )


class DecodeError(StorageError):
    """集合或单条记录无法解码。

    Attributes:
        key: 所属存储键。
    """

    def __init__(self, key: Optional[str], message: str) -> None:
        self.key = key
        super().__init__(f"[{key}] {message}")
