"""跨实体解析 —— 为间接引用顾客的记录解析顾客名称。

服务日志经历过一次数据迁移：早期记录直接保存顾客名称的纯文本
（``customer`` 字段），后来改为保存 customer_id，现在优先通过
service_case_id 关联工单。三种形式都可能出现在同一个集合里，
因此把它们建模为显式的引用类型，按固定优先级依次尝试：

1. ViaServiceCase：工单存在且工单的顾客存在；
2. ById：直接的 customer_id 能找到顾客；
3. ByName：早期的纯文本顾客名称，原样使用；
4. 都不满足时返回 UNKNOWN_CUSTOMER。

引用悬空（工单或顾客已被删除）时降级到下一级，不抛异常。
归档顾客仍参与解析。

本模块还包含提醒的派生状态（逾期 / 今日 / 即将到期），这些状态
只由 due_date 与当前时间计算，从不存储。
"""
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from database.entities import Customer, ServiceCase, ServiceLogEntry, ServiceReminder

UNKNOWN_CUSTOMER = "Unknown customer"


# ================================================================
# 顾客引用
# ================================================================

@dataclass(frozen=True)
class ViaServiceCase:
    """通过工单间接引用顾客。"""
    service_case_id: str


@dataclass(frozen=True)
class ById:
    """直接通过 customer_id 引用顾客。"""
    customer_id: str


@dataclass(frozen=True)
class ByName:
    """早期数据中的纯文本顾客名称。"""
    name: str


CustomerRef = Union[ViaServiceCase, ById, ByName]


def customer_refs(entry: ServiceLogEntry) -> List[CustomerRef]:
    """按解析优先级列出日志条目携带的顾客引用。

    Returns:
        引用列表，可能为空（对应“未知顾客”）。
    """
    refs: List[CustomerRef] = []
    if entry.service_case_id:
        refs.append(ViaServiceCase(entry.service_case_id))
    if entry.customer_id:
        refs.append(ById(entry.customer_id))
    if entry.customer:
        refs.append(ByName(entry.customer))
    return refs


class CustomerDirectory:
    """顾客与工单的内存索引，用于解析顾客名称。

    由调用方一次性加载顾客与工单集合后构建，解析过程不再访问存储。

    Args:
        customers: 全部顾客（包括已归档的）。
        service_cases: 全部工单。
        unknown: 无法解析时返回的名称。
    """

    def __init__(self, customers: Iterable[Customer],
                 service_cases: Iterable[ServiceCase],
                 unknown: str = UNKNOWN_CUSTOMER) -> None:
        self._customers: Dict[str, Customer] = {c.id: c for c in customers}
        self._cases: Dict[str, ServiceCase] = {c.id: c for c in service_cases}
        self.unknown = unknown

    def get_customer(self, customer_id: Optional[str]) -> Optional[Customer]:
        if not customer_id:
            return None
        return self._customers.get(customer_id)

    def customer_name(self, customer_id: Optional[str]) -> str:
        """按 customer_id 取顾客名称，找不到时返回未知顾客。"""
        customer = self.get_customer(customer_id)
        return customer.name if customer else self.unknown

    def resolve_ref(self, ref: CustomerRef) -> Optional[Customer]:
        """把单个 id 引用解析为顾客，ByName 或悬空引用返回 None。"""
        if isinstance(ref, ViaServiceCase):
            case = self._cases.get(ref.service_case_id)
            return self.get_customer(case.customer_id) if case else None
        if isinstance(ref, ById):
            return self.get_customer(ref.customer_id)
        return None

    def resolve_log_customer(self, entry: ServiceLogEntry) -> Tuple[Optional[str], str]:
        """解析日志条目的顾客。

        Returns:
            (customer_id, 顾客名称)。纯文本名称或未知顾客时 customer_id 为 None。
        """
        for ref in customer_refs(entry):
            if isinstance(ref, ByName):
                return None, ref.name
            customer = self.resolve_ref(ref)
            if customer:
                return customer.id, customer.name
        return None, self.unknown

    def log_customer_name(self, entry: ServiceLogEntry) -> str:
        """解析日志条目的顾客名称。"""
        return self.resolve_log_customer(entry)[1]


# ================================================================
# 提醒派生状态
# ================================================================

class ReminderState(str, Enum):
    """提醒的派生状态"""
    COMPLETED = "completed"
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    UPCOMING = "upcoming"


def is_overdue(reminder: ServiceReminder, now: datetime) -> bool:
    """截止时间已过且未完成。"""
    return reminder.due_date < now and not reminder.is_completed


def is_due_today(reminder: ServiceReminder, now: datetime) -> bool:
    """截止日期与当前时间在本地时区是同一天（不看完成状态）。"""
    return reminder.due_date.astimezone().date() == now.astimezone().date()


def reminder_state(reminder: ServiceReminder, now: datetime) -> ReminderState:
    if reminder.is_completed:
        return ReminderState.COMPLETED
    if is_overdue(reminder, now):
        return ReminderState.OVERDUE
    if is_due_today(reminder, now):
        return ReminderState.DUE_TODAY
    return ReminderState.UPCOMING


def reminder_sort_key(reminder: ServiceReminder, now: datetime) -> tuple:
    """提醒的相关性排序键：逾期在前，其次今日到期，其余按截止时间升序。

    已完成的提醒不会被特殊对待，只按截止时间参与排序。
    """
    return (
        not is_overdue(reminder, now),
        not is_due_today(reminder, now),
        reminder.due_date,
    )
