"""通用 JSON 集合仓库。

每个仓库独占一个存储键，键下保存整个集合的 JSON 数组。
所有写操作都是"读取整个集合 → 修改 → 整体写回"：

- get_all: 解码整个集合，解码失败返回空列表，I/O 失败抛出 StorageIOError；
- get_by_id: 在 get_all 结果上线性查找；
- save: 按 id 插入或替换（保持原位置），并写入时间戳；
- delete: 按 id 删除，不存在时为空操作。

无法解码的记录（RawRecord）不出现在读结果中，但整体写回时原样保留；
save 一个与它 id 相同的实体时视为插入，并占据它原来的位置。

写入失败时抛出 StorageIOError，存储中的旧数据保持不变；
save 不会修改调用方传入的实体对象，而是返回新的实体。
"""
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Generic, List, Optional, TypeVar, Union

from loguru import logger

from .codecs import EntityCodec, RawRecord, decode_records, encode_collection, truncate_datetime
from .errors import StorageIOError
from .kv_store import KeyValueStore
from .numbering import generate_id

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """当前 UTC 时间（带时区，毫秒精度）。"""
    return truncate_datetime(datetime.now(timezone.utc))


class BaseCRUD(Generic[T]):
    """基础仓库，提供通用的增删改查。

    子类需要设置 storage_key 与 codec，并可通过
    stamp_created / stamp_updated 控制时间戳行为。

    Attributes:
        storage_key: 存储键。
        codec: 实体编解码器。
        stamp_created: 插入时是否写入 created_at，更新时是否保留原值。
        stamp_updated: 插入和更新时是否写入 updated_at。
    """

    storage_key: str = ""
    codec: EntityCodec = None
    stamp_created: bool = True
    stamp_updated: bool = True

    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None) -> None:
        """初始化仓库。

        Args:
            store: 持久化适配器。
            clock: 返回当前时间的函数，默认 utc_now，测试中可注入固定时钟。
        """
        self._store = store
        self._clock = clock or utc_now

    def now(self) -> datetime:
        """仓库使用的当前时间。"""
        return self._clock()

    # ================================================================
    # 读操作
    # ================================================================

    async def get_all(self) -> List[T]:
        """获取整个集合，保持存储顺序。

        Returns:
            实体列表；键不存在或 JSON 损坏时返回空列表。

        Raises:
            StorageIOError: 适配器读取失败。
        """
        return [r for r in await self._load() if not isinstance(r, RawRecord)]

    async def get_by_id(self, entity_id: str) -> Optional[T]:
        """按 id 查询实体。

        Returns:
            实体对象，不存在时返回 None。
        """
        for item in await self.get_all():
            if item.id == entity_id:
                return item
        return None

    # ================================================================
    # 写操作
    # ================================================================

    async def save(self, entity: T) -> T:
        """插入或更新实体。

        已存在相同 id 时原位替换，保留原 created_at 并刷新 updated_at；
        否则追加到集合末尾，写入 created_at 与 updated_at。
        调用方未提供 id 时自动生成。

        Args:
            entity: 要保存的实体。

        Returns:
            实际写入存储的实体。

        Raises:
            ValueError: 实体缺少必填日期或日期类型错误，写入后将无法读回。
            StorageIOError: 适配器读写失败。
        """
        records = await self._load()
        now = self.now()
        index = self._index_of(records, entity.id) if entity.id else None

        if index is not None and not isinstance(records[index], RawRecord):
            stored = self._prepare_update(entity, records[index], now)
        else:
            stored = self._prepare_insert(entity, records, now)
        stored = self.codec.normalize(stored)

        if index is None:
            records.append(stored)
        else:
            records[index] = stored
        await self._write(records)
        logger.debug(f"[{self.storage_key}] saved {stored.id}")
        return stored

    async def delete(self, entity_id: str) -> bool:
        """按 id 物理删除实体。

        Returns:
            是否删除了记录；id 不存在时不写存储并返回 False。
        """
        records = await self._load()
        remaining = [r for r in records if r.id != entity_id]
        if len(remaining) == len(records):
            return False
        await self._write(remaining)
        logger.debug(f"[{self.storage_key}] deleted {entity_id}")
        return True

    async def update(self, entity_id: str, **changes) -> Optional[T]:
        """按 id 局部更新字段，id 本身不可修改。

        Args:
            entity_id: 实体ID。
            **changes: 要修改的字段。

        Returns:
            更新后的实体，不存在时返回 None。
        """
        changes.pop("id", None)
        return await self._update_fields(entity_id, **changes)

    # ================================================================
    # 子类扩展点
    # ================================================================

    def _prepare_insert(self, entity: T, records: List[Union[T, RawRecord]],
                        now: datetime) -> T:
        changes = {}
        if not entity.id:
            changes["id"] = generate_id()
        if self.stamp_created:
            changes["created_at"] = now
        if self.stamp_updated:
            changes["updated_at"] = now
        return replace(entity, **changes)

    def _prepare_update(self, entity: T, existing: T, now: datetime) -> T:
        changes = {}
        if self.stamp_created:
            changes["created_at"] = existing.created_at or entity.created_at
        if self.stamp_updated:
            changes["updated_at"] = now
        return replace(entity, **changes)

    # ================================================================
    # 内部工具
    # ================================================================

    @staticmethod
    def _index_of(records: List[Union[T, RawRecord]], entity_id: str) -> Optional[int]:
        for index, record in enumerate(records):
            if record.id == entity_id:
                return index
        return None

    async def _update_fields(self, entity_id: str, **changes) -> Optional[T]:
        records = await self._load()
        index = self._index_of(records, entity_id)
        if index is None or isinstance(records[index], RawRecord):
            return None
        if self.stamp_updated:
            changes["updated_at"] = self.now()
        updated = self.codec.normalize(replace(records[index], **changes))
        records[index] = updated
        await self._write(records)
        return updated

    async def _load(self) -> List[Union[T, RawRecord]]:
        raw = await self._read_raw()
        return decode_records(raw, self.codec, self.storage_key)

    async def _read_raw(self) -> Optional[str]:
        try:
            return await self._store.get(self.storage_key)
        except StorageIOError:
            raise
        except Exception as e:
            logger.error(f"[{self.storage_key}] read failed: {e}")
            raise StorageIOError(self.storage_key, "get") from e

    async def _write(self, records: List[Union[T, RawRecord]]) -> None:
        payload = encode_collection(records, self.codec)
        try:
            await self._store.set(self.storage_key, payload)
        except StorageIOError:
            logger.error(f"[{self.storage_key}] write failed")
            raise
        except Exception as e:
            logger.error(f"[{self.storage_key}] write failed: {e}")
            raise StorageIOError(self.storage_key, "set") from e
