"""持久化适配器 —— 字符串键到 JSON 文本的异步键值存储。

所有仓库都只通过 KeyValueStore 的 get / set / remove 访问存储，
不感知底层介质。提供两种实现：

- MemoryKeyValueStore: 进程内字典，适合测试和临时会话。
- SqlKeyValueStore: 基于 SQLAlchemy 的 kv_entries 表，
  SQLite 走同步引擎（在工作线程中执行），PostgreSQL 走异步引擎。

适配器负责串行化自身的物理 I/O；同一集合上的读-改-写
并不在这里加锁，由调用方按顺序 await。
"""
import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .connection import DatabaseConnection
from .errors import StorageIOError
from .models import KeyValueEntry


class KeyValueStore(ABC):
    """键值存储抽象基类。

    约定：
    - get 对不存在的键返回 None，不抛异常；
    - 只有真正的 I/O 失败才抛出 StorageIOError。
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """读取键对应的文本，不存在时返回 None。"""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """写入（覆盖）键对应的文本。"""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """删除键，不存在时为空操作。"""

    @abstractmethod
    async def keys(self) -> List[str]:
        """列出当前所有键。"""

    async def close(self) -> None:
        """释放底层资源，默认无需处理。"""


class MemoryKeyValueStore(KeyValueStore):
    """进程内字典实现。

    Args:
        initial: 初始内容（可选），会被复制一份。
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self) -> List[str]:
        return list(self._data.keys())


class SqlKeyValueStore(KeyValueStore):
    """基于 SQLAlchemy 的键值存储。

    每个键对应 kv_entries 表中的一行。同步引擎的调用通过
    ``asyncio.to_thread`` 放到工作线程，避免阻塞事件循环；
    所有物理 I/O 由一把 asyncio.Lock 串行化。

    Attributes:
        conn: 数据库连接管理器。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn
        self._lock = asyncio.Lock()

    async def create_tables(self) -> None:
        """创建 kv_entries 表（幂等操作），与其他 I/O 一样持锁执行。"""
        async with self._lock:
            try:
                await self.conn.create_tables_async()
            except SQLAlchemyError as e:
                raise StorageIOError(None, "create_tables") from e

    # ================================================================
    # 公共接口
    # ================================================================

    async def get(self, key: str) -> Optional[str]:
        return await self._run(key, "get", self._get_sync, self._get_async)

    async def set(self, key: str, value: str) -> None:
        await self._run(key, "set", self._set_sync, self._set_async, value)

    async def remove(self, key: str) -> None:
        await self._run(key, "remove", self._remove_sync, self._remove_async)

    async def keys(self) -> List[str]:
        return await self._run(None, "keys", self._keys_sync, self._keys_async)

    async def close(self) -> None:
        await self.conn.close_async()

    # ================================================================
    # 内部实现
    # ================================================================

    async def _run(self, key, operation, sync_fn, async_fn, *args):
        async with self._lock:
            try:
                if self.conn.is_async:
                    return await async_fn(key, *args)
                return await asyncio.to_thread(sync_fn, key, *args)
            except SQLAlchemyError as e:
                logger.error(f"Storage {operation} failed for key '{key}': {e}")
                raise StorageIOError(key, operation) from e

    def _get_sync(self, key: str) -> Optional[str]:
        with self.conn.get_session() as session:
            entry = session.get(KeyValueEntry, key)
            return entry.value if entry else None

    def _set_sync(self, key: str, value: str) -> None:
        with self.conn.get_session() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            session.commit()

    def _remove_sync(self, key: str) -> None:
        with self.conn.get_session() as session:
            entry = session.get(KeyValueEntry, key)
            if entry is not None:
                session.delete(entry)
                session.commit()

    def _keys_sync(self, _key=None) -> List[str]:
        with self.conn.get_session() as session:
            return list(session.execute(select(KeyValueEntry.key)).scalars())

    async def _get_async(self, key: str) -> Optional[str]:
        async with self.conn.get_session() as session:
            entry = await session.get(KeyValueEntry, key)
            return entry.value if entry else None

    async def _set_async(self, key: str, value: str) -> None:
        async with self.conn.get_session() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()

    async def _remove_async(self, key: str) -> None:
        async with self.conn.get_session() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is not None:
                await session.delete(entry)
                await session.commit()

    async def _keys_async(self, _key=None) -> List[str]:
        async with self.conn.get_session() as session:
            result = await session.execute(select(KeyValueEntry.key))
            return list(result.scalars())
