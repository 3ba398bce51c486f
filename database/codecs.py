"""实体编解码器 —— 磁盘 JSON 与内存实体之间的纯转换。

磁盘格式：每个存储键保存一个 JSON 数组，字段名为 camelCase，
日期为 ISO-8601 字符串（UTC，毫秒精度，``Z`` 结尾）。
内存格式：dataclass 实体，字段名为 snake_case，日期为带时区的 datetime。

解码规则：
- ``None``（键不存在）视为空集合；
- JSON 格式错误视为空集合，记录警告日志，不向上抛出；
- 缺少必填的文本字段时解码为 None，未知的枚举值保留原始字符串，
  两种情况都记录警告，记录照常返回；
- 记录不是对象、缺少 id 或必填日期、日期无法解析时，该条无法成为实体，
  以 RawRecord 形式保留原始内容，整体写回集合时原样写出。

编码规则：值为 None 的可选字段不写入（与缺省等价），
其余字段原样写入，不做任何补全或修正。日期只保留到毫秒，
保存前用 ``EntityCodec.normalize`` 截断，保证写入与读回的实体一致。
"""
import json
from dataclasses import dataclass, fields as dataclass_fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar, Union

from loguru import logger

from .entities import (
    Customer, ProductCategory, Product, ServiceCase, ServiceLogEntry,
    ServiceReminder, ServiceContract, ContractService, ContractSchedule,
    ProductType, EquipmentType, CaseStatus, CasePriority, ReminderPriority,
    LogEntryType, ContractType, ContractStatus, ServiceFrequency,
)
from .errors import DecodeError

T = TypeVar("T")


# ================================================================
# 日期转换
# ================================================================

def parse_datetime(value: Any) -> datetime:
    """把 ISO-8601 字符串解析为带时区的 datetime。

    不带时区的字符串按 UTC 处理。

    Raises:
        ValueError: 值不是字符串或不是合法的 ISO-8601 日期。
    """
    if not isinstance(value, str):
        raise ValueError(f"expected ISO date string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_datetime(value: datetime) -> str:
    """把 datetime 格式化为 ``YYYY-MM-DDTHH:MM:SS.mmmZ``。"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    utc = value.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate_datetime(value: datetime) -> datetime:
    """截断到毫秒（存储精度），不带时区的按 UTC 处理。"""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


# ================================================================
# 字段描述与通用编解码器
# ================================================================

@dataclass(frozen=True)
class FieldSpec:
    """单个字段的编解码描述。

    Attributes:
        attr: 实体属性名（snake_case）。
        wire: JSON 字段名（camelCase）。
        kind: value / date / enum / nested。
        required: 解码时是否必须存在。
        enum: kind 为 enum 时的枚举类型。
        nested: kind 为 nested 时，列表元素的编解码器。
    """
    attr: str
    wire: str
    kind: str = "value"
    required: bool = False
    enum: Optional[Type[Enum]] = None
    nested: Optional["EntityCodec"] = None


def _value(attr: str, required: bool = False) -> FieldSpec:
    return FieldSpec(attr, _camel(attr), "value", required)


def _date(attr: str, required: bool = False) -> FieldSpec:
    return FieldSpec(attr, _camel(attr), "date", required)


def _enum(attr: str, enum_cls: Type[Enum], required: bool = False) -> FieldSpec:
    return FieldSpec(attr, _camel(attr), "enum", required, enum=enum_cls)


def _nested(attr: str, codec: "EntityCodec", required: bool = False) -> FieldSpec:
    return FieldSpec(attr, _camel(attr), "nested", required, nested=codec)


class EntityCodec(Generic[T]):
    """基于字段描述的实体编解码器。

    Args:
        entity_cls: 实体 dataclass 类型。
        specs: 字段描述列表，必须覆盖实体的全部字段。
        upgrade: 解码前对原始 dict 做的旧格式升级（可选）。
    """

    def __init__(self, entity_cls: Type[T], specs: List[FieldSpec],
                 upgrade: Optional[Callable[[Dict[str, Any]], Dict[str, Any]]] = None) -> None:
        declared = {f.name for f in dataclass_fields(entity_cls)}
        covered = {s.attr for s in specs}
        if declared != covered:
            raise ValueError(
                f"{entity_cls.__name__} codec mismatch: "
                f"missing={sorted(declared - covered)} extra={sorted(covered - declared)}"
            )
        self.entity_cls = entity_cls
        self.specs = specs
        self._upgrade = upgrade

    def decode(self, raw: Any) -> T:
        """把一个 JSON 对象解码为实体。

        缺少的必填文本字段解码为 None，未知枚举值保留原始字符串，
        两者都只记录警告。

        Raises:
            DecodeError: 不是对象、缺少 id 或必填日期、日期或内嵌列表非法。
        """
        name = self.entity_cls.__name__
        if not isinstance(raw, dict):
            raise DecodeError(None, f"{name}: record is not an object")
        if self._upgrade:
            raw = self._upgrade(raw)
        if raw.get("id") is None:
            raise DecodeError(None, f"{name}: missing required field 'id'")
        label = f"{name} {raw['id']}"

        kwargs: Dict[str, Any] = {}
        for spec in self.specs:
            if spec.wire not in raw or raw[spec.wire] is None:
                if not spec.required:
                    continue
                if spec.kind == "date":
                    raise DecodeError(None, f"{label}: missing required date '{spec.wire}'")
                logger.warning(f"{label}: missing required field '{spec.wire}', decoded as None")
                kwargs[spec.attr] = None
                continue
            try:
                kwargs[spec.attr] = self._decode_field(spec, raw[spec.wire], label)
            except DecodeError:
                raise
            except (ValueError, TypeError) as e:
                raise DecodeError(None, f"{label}.{spec.wire}: {e}") from e
        return self.entity_cls(**kwargs)

    def encode(self, entity: T) -> Dict[str, Any]:
        """把实体编码为 JSON 对象，None 字段不写入。"""
        data: Dict[str, Any] = {}
        for spec in self.specs:
            current = getattr(entity, spec.attr)
            if current is None:
                continue
            data[spec.wire] = self._encode_field(spec, current)
        return data

    def normalize(self, entity: T) -> T:
        """整理即将写入存储的实体。

        日期截断到毫秒（含内嵌列表），使 save 的返回值与重新读取的
        实体相等；写入后无法再读回的实体直接拒绝。

        Returns:
            整理后的新实体，原实体不被修改。

        Raises:
            ValueError: 缺少 id 或必填日期，或日期字段不是 datetime。
        """
        name = self.entity_cls.__name__
        changes: Dict[str, Any] = {}
        for spec in self.specs:
            current = getattr(entity, spec.attr)
            if current is None:
                if spec.required and (spec.kind == "date" or spec.attr == "id"):
                    raise ValueError(f"{name}: '{spec.attr}' is required")
                continue
            if spec.kind == "date":
                if not isinstance(current, datetime):
                    raise ValueError(f"{name}.{spec.attr}: expected datetime, "
                                     f"got {type(current).__name__}")
                changes[spec.attr] = truncate_datetime(current)
            elif spec.kind == "nested":
                changes[spec.attr] = [spec.nested.normalize(item) for item in current]
        return replace(entity, **changes)

    def _decode_field(self, spec: FieldSpec, raw_value: Any, label: str) -> Any:
        if spec.kind == "date":
            return parse_datetime(raw_value)
        if spec.kind == "enum":
            try:
                return spec.enum(raw_value)
            except ValueError:
                logger.warning(f"{label}: unknown {spec.wire} {raw_value!r}, kept as-is")
                return raw_value
        if spec.kind == "nested":
            if not isinstance(raw_value, list):
                raise ValueError("expected a list")
            return [spec.nested.decode(item) for item in raw_value]
        if isinstance(raw_value, list):
            return list(raw_value)
        return raw_value

    @staticmethod
    def _encode_field(spec: FieldSpec, current: Any) -> Any:
        if spec.kind == "date":
            return format_datetime(current)
        if spec.kind == "enum":
            return current.value if isinstance(current, Enum) else current
        if spec.kind == "nested":
            return [spec.nested.encode(item) for item in current]
        if isinstance(current, list):
            return list(current)
        return current


# ================================================================
# 集合级编解码
# ================================================================

@dataclass(frozen=True)
class RawRecord:
    """无法解码为实体的原始记录。

    不出现在仓库的读结果里，但仓库整体写回集合时原样写出，
    普通的保存或删除不会把它从存储中抹掉。

    Attributes:
        raw: 存储中的原始 JSON 值。
    """
    raw: Any

    @property
    def id(self) -> Optional[str]:
        return self.raw.get("id") if isinstance(self.raw, dict) else None


def decode_records(raw_text: Optional[str], codec: EntityCodec[T],
                   key: str) -> List[Union[T, RawRecord]]:
    """把存储中的 JSON 文本解码为记录列表，保持存储顺序。

    永远不抛出 DecodeError：整体无法解析时返回空列表，
    单条记录无法解码时以 RawRecord 保留，两种情况都记录警告。

    Args:
        raw_text: 适配器返回的文本，None 表示键不存在。
        codec: 实体编解码器。
        key: 存储键，仅用于日志。

    Returns:
        实体与 RawRecord 混合的列表。
    """
    if raw_text is None:
        return []
    try:
        payload = json.loads(raw_text)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning(f"[{key}] malformed JSON, treating collection as empty: {e}")
        return []
    if payload is None:
        return []
    if not isinstance(payload, list):
        logger.warning(f"[{key}] expected a JSON array, got {type(payload).__name__}; treating as empty")
        return []

    records: List[Union[T, RawRecord]] = []
    for index, raw in enumerate(payload):
        try:
            records.append(codec.decode(raw))
        except DecodeError as e:
            logger.warning(f"[{key}] record #{index} kept undecoded: {e}")
            records.append(RawRecord(raw))
    return records


def decode_collection(raw_text: Optional[str], codec: EntityCodec[T],
                      key: str) -> List[T]:
    """把存储中的 JSON 文本解码为实体列表，无法解码的记录不返回。"""
    return [r for r in decode_records(raw_text, codec, key)
            if not isinstance(r, RawRecord)]


def encode_collection(items: List[Union[T, RawRecord]], codec: EntityCodec[T]) -> str:
    """把实体列表编码为 JSON 文本，RawRecord 原样写出。"""
    return json.dumps(
        [item.raw if isinstance(item, RawRecord) else codec.encode(item) for item in items],
        ensure_ascii=False,
    )


# ================================================================
# 旧格式升级
# ================================================================

def _upgrade_customer(raw: Dict[str, Any]) -> Dict[str, Any]:
    # 早期版本用 isArchived 标记归档
    if "isActive" not in raw and "isArchived" in raw:
        upgraded = {k: v for k, v in raw.items() if k != "isArchived"}
        upgraded["isActive"] = not bool(raw["isArchived"])
        return upgraded
    return raw


def _upgrade_log_entry(raw: Dict[str, Any]) -> Dict[str, Any]:
    if "timestamp" not in raw and "date" in raw:
        upgraded = {k: v for k, v in raw.items() if k != "date"}
        upgraded["timestamp"] = raw["date"]
        return upgraded
    return raw


# ================================================================
# 各实体编解码器
# ================================================================

CUSTOMER_CODEC: EntityCodec[Customer] = EntityCodec(Customer, [
    _value("id", required=True),
    _value("name", required=True),
    _value("phone", required=True),
    _value("address", required=True),
    _value("email"),
    _value("contact_person"),
    _value("notes"),
    _value("is_active"),
    _date("archived_at"),
    _date("created_at"),
    _date("updated_at"),
], upgrade=_upgrade_customer)

PRODUCT_CATEGORY_CODEC: EntityCodec[ProductCategory] = EntityCodec(ProductCategory, [
    _value("id", required=True),
    _value("name", required=True),
    _value("description"),
    _value("icon"),
    _value("color"),
    _date("created_at"),
    _date("updated_at"),
])

PRODUCT_CODEC: EntityCodec[Product] = EntityCodec(Product, [
    _value("id", required=True),
    _value("name", required=True),
    _value("serial_number", required=True),
    _value("category_id", required=True),
    _enum("type", ProductType),
    _value("model"),
    _value("customer_id"),
    _value("location"),
    _date("purchase_date"),
    _date("warranty_expiry_date"),
    _value("notes"),
    _value("is_active"),
    _value("is_standalone"),
    _date("created_at"),
    _date("updated_at"),
])

SERVICE_CASE_CODEC: EntityCodec[ServiceCase] = EntityCodec(ServiceCase, [
    _value("id", required=True),
    _value("customer_id", required=True),
    _value("title", required=True),
    _value("description", required=True),
    _enum("status", CaseStatus),
    _enum("priority", CasePriority),
    _enum("equipment_type", EquipmentType),
    _value("product_id"),
    _value("equipment_serial_number"),
    _date("scheduled_date"),
    _date("completed_date"),
    _value("technician_id"),
    _value("technician_name"),
    _value("location"),
    _value("notes"),
    _value("images"),
    _value("signature"),
    _value("checklist_items"),
    _date("created_at"),
    _date("updated_at"),
])

SERVICE_LOG_CODEC: EntityCodec[ServiceLogEntry] = EntityCodec(ServiceLogEntry, [
    _value("id", required=True),
    _value("title", required=True),
    _value("content", required=True),
    _enum("type", LogEntryType),
    _value("service_case_id"),
    _value("customer_id"),
    _value("customer"),
    _date("timestamp"),
    _value("technician_id"),
    _value("technician_name"),
    _value("location"),
    _value("tags"),
    _value("is_important"),
    _value("images"),
], upgrade=_upgrade_log_entry)

REMINDER_CODEC: EntityCodec[ServiceReminder] = EntityCodec(ServiceReminder, [
    _value("id", required=True),
    _value("customer_id", required=True),
    _value("title", required=True),
    _date("due_date", required=True),
    _enum("priority", ReminderPriority),
    _value("is_completed"),
    _value("service_case_id"),
    _value("description"),
    _date("completed_at"),
    _enum("equipment_type", EquipmentType),
    _value("equipment_serial_number"),
    _date("created_at"),
])

CONTRACT_SERVICE_CODEC: EntityCodec[ContractService] = EntityCodec(ContractService, [
    _value("id", required=True),
    _value("name", required=True),
    _value("description"),
    _enum("frequency", ServiceFrequency),
    _value("included"),
    _value("price"),
    _value("notes"),
])

CONTRACT_CODEC: EntityCodec[ServiceContract] = EntityCodec(ServiceContract, [
    _value("id", required=True),
    _value("customer_id", required=True),
    _value("contract_number", required=True),
    _value("title", required=True),
    _value("description", required=True),
    _enum("contract_type", ContractType, required=True),
    _enum("status", ContractStatus, required=True),
    _date("start_date", required=True),
    _date("end_date", required=True),
    _value("auto_renewal"),
    _value("total_value"),
    _nested("services", CONTRACT_SERVICE_CODEC),
    _value("terms"),
    _value("notes"),
    _value("renewal_period"),
    _value("monthly_value"),
    _date("created_at"),
    _date("updated_at"),
])

CONTRACT_SCHEDULE_CODEC: EntityCodec[ContractSchedule] = EntityCodec(ContractSchedule, [
    _value("id", required=True),
    _value("contract_id", required=True),
    _date("scheduled_date", required=True),
    _date("completed_date"),
    _value("service_id"),
    _value("notes"),
])
