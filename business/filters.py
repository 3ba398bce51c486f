"""列表筛选与排序。

列表页面的筛选都是若干独立条件的合取（AND）：
自由文本搜索（不区分大小写的子串匹配）、类别/类型相等、
以及相对于查询时刻的日期窗口。每个条件为空时视为不限制，
因此 ``filter(L, p1 ∧ p2)`` 总是等于分别筛选结果的交集。

排序规则：
- 服务日志：只按 timestamp 升序或降序，没有次级排序键；
- 提醒：逾期 → 今日到期 → 按截止时间升序；
- 工单：按优先级降序，再按创建时间从新到旧。
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

from config.business_config import business_config
from database.entities import (
    Customer, Product, ServiceCase, ServiceContract,
    ServiceLogEntry, ServiceReminder,
)
from .resolution import CustomerDirectory, reminder_sort_key

T = TypeVar("T")

_MIN_TIME = datetime.min.replace(tzinfo=timezone.utc)


class DateWindow(str, Enum):
    """相对日期窗口"""
    ALL = "all"
    TODAY = "today"
    WEEK = "week"      # 最近 7 天
    MONTH = "month"    # 最近 30 天


class LogSort(str, Enum):
    """服务日志排序方向"""
    LATEST = "latest"
    OLDEST = "oldest"


# ================================================================
# 通用条件
# ================================================================

def matches_search(query: Optional[str], *values: Optional[str]) -> bool:
    """任一字段包含查询词（不区分大小写）即匹配，空查询总是匹配。"""
    needle = (query or "").strip().lower()
    if not needle:
        return True
    return any(needle in str(value).lower() for value in values if value)


def in_date_window(value: Optional[datetime], window: DateWindow,
                   now: datetime) -> bool:
    """判断时间是否落在相对窗口内。

    Args:
        value: 待判断的时间，None 只匹配 ALL。
        window: 日期窗口。
        now: 查询时刻。
    """
    window = DateWindow(window)
    if window == DateWindow.ALL:
        return True
    if value is None:
        return False
    if window == DateWindow.TODAY:
        return value.astimezone().date() == now.astimezone().date()
    days = 7 if window == DateWindow.WEEK else 30
    return value >= now - timedelta(days=days)


def _equals(expected: Optional[str], actual: Optional[str]) -> bool:
    if not expected:
        return True
    return (actual or "").lower() == expected.lower()


def _apply(items: Iterable[T], predicate: Callable[[T], bool]) -> List[T]:
    return [item for item in items if predicate(item)]


# ================================================================
# 服务日志
# ================================================================

@dataclass
class ServiceLogView:
    """带解析结果的服务日志，供列表页面展示与筛选。

    Attributes:
        entry: 原始日志条目。
        customer_id: 解析得到的顾客ID（纯文本名称或未知时为 None）。
        customer_name: 解析得到的顾客名称。
        type_label: 日志类型的显示名称。
    """
    entry: ServiceLogEntry
    customer_id: Optional[str]
    customer_name: str
    type_label: str

    @property
    def id(self) -> str:
        return self.entry.id

    @property
    def timestamp(self) -> Optional[datetime]:
        return self.entry.timestamp


def build_log_views(entries: Iterable[ServiceLogEntry],
                    directory: CustomerDirectory) -> List[ServiceLogView]:
    """为日志条目解析顾客名称与类型显示名称。"""
    labels = business_config.get_log_type_labels()
    views = []
    for entry in entries:
        customer_id, name = directory.resolve_log_customer(entry)
        type_value = entry.type.value if isinstance(entry.type, Enum) else str(entry.type)
        views.append(ServiceLogView(
            entry=entry,
            customer_id=customer_id,
            customer_name=name,
            type_label=labels.get(type_value, type_value),
        ))
    return views


def filter_service_logs(views: Iterable[ServiceLogView], now: datetime,
                        search: Optional[str] = None,
                        customer: Optional[str] = None,
                        log_type: Optional[str] = None,
                        window: DateWindow = DateWindow.ALL) -> List[ServiceLogView]:
    """筛选服务日志。

    Args:
        views: 已解析的日志视图。
        now: 查询时刻，日期窗口相对于它计算。
        search: 搜索标题、顾客名称、类型与技术人员。
        customer: 顾客名称或顾客ID，相等匹配（名称不区分大小写）。
        log_type: 日志类型值，相等匹配。
        window: 日期窗口。

    Returns:
        满足全部条件的日志，保持输入顺序。
    """
    def predicate(view: ServiceLogView) -> bool:
        entry = view.entry
        customer_match = (
            not customer
            or view.customer_id == customer
            or _equals(customer, view.customer_name)
        )
        type_value = entry.type.value if isinstance(entry.type, Enum) else entry.type
        return (
            customer_match
            and _equals(log_type, type_value)
            and in_date_window(entry.timestamp, window, now)
            and matches_search(search, entry.title, view.customer_name,
                               type_value, view.type_label, entry.technician_name)
        )

    return _apply(views, predicate)


def sort_service_logs(views: Iterable[T], order: LogSort = LogSort.LATEST) -> List[T]:
    """只按 timestamp 排序；没有时间的条目视为最早。"""
    return sorted(
        views,
        key=lambda v: v.timestamp or _MIN_TIME,
        reverse=LogSort(order) == LogSort.LATEST,
    )


# ================================================================
# 提醒
# ================================================================

@dataclass
class ReminderView:
    """带顾客名称的提醒。"""
    reminder: ServiceReminder
    customer_name: str

    @property
    def id(self) -> str:
        return self.reminder.id


def filter_reminders(views: Iterable[ReminderView],
                     search: Optional[str] = None) -> List[ReminderView]:
    """按标题或顾客名称搜索提醒。"""
    return _apply(views, lambda v: matches_search(
        search, v.reminder.title, v.customer_name))


def sort_reminders(reminders: Iterable[ServiceReminder], now: datetime) -> List[ServiceReminder]:
    """提醒相关性排序：逾期 → 今日到期 → 截止时间升序。"""
    return sorted(reminders, key=lambda r: reminder_sort_key(r, now))


def sort_reminder_views(views: Iterable[ReminderView], now: datetime) -> List[ReminderView]:
    return sorted(views, key=lambda v: reminder_sort_key(v.reminder, now))


# ================================================================
# 工单 / 顾客 / 产品 / 合同
# ================================================================

def filter_service_cases(cases: Iterable[ServiceCase], directory: CustomerDirectory,
                         status_group: str = "all",
                         search: Optional[str] = None) -> List[ServiceCase]:
    """按状态分组与搜索词筛选工单。

    Args:
        cases: 工单集合。
        directory: 用于按顾客名称搜索。
        status_group: all / active / in_progress / completed / cancelled。
        search: 搜索标题、描述与顾客名称。

    Raises:
        ValueError: 未知的状态分组。
    """
    groups = business_config.get_case_status_groups()
    if status_group not in groups:
        raise ValueError(f"Unknown status group: {status_group}")
    statuses = groups[status_group]

    def predicate(case: ServiceCase) -> bool:
        status = case.status.value if isinstance(case.status, Enum) else case.status
        return (
            (not statuses or status in statuses)
            and matches_search(search, case.title, case.description,
                               directory.customer_name(case.customer_id))
        )

    return _apply(cases, predicate)


def sort_service_cases(cases: Iterable[ServiceCase]) -> List[ServiceCase]:
    """按优先级降序，同优先级按创建时间从新到旧。"""
    order = business_config.get_priority_order()

    def key(case: ServiceCase):
        priority = case.priority.value if isinstance(case.priority, Enum) else case.priority
        created = case.created_at or _MIN_TIME
        return (-order.get(priority, 0), -created.timestamp())

    return sorted(cases, key=key)


def filter_customers(customers: Iterable[Customer],
                     search: Optional[str] = None) -> List[Customer]:
    """按名称、邮箱或电话搜索顾客。"""
    return _apply(customers, lambda c: matches_search(search, c.name, c.email, c.phone))


def filter_products(products: Iterable[Product], category_id: Optional[str] = None,
                    search: Optional[str] = None) -> List[Product]:
    """按类别与搜索词（名称/序列号/型号/位置）筛选产品。"""
    return _apply(products, lambda p: (
        (not category_id or p.category_id == category_id)
        and matches_search(search, p.name, p.serial_number, p.model, p.location)
    ))


def filter_contracts(contracts: Sequence[ServiceContract], directory: CustomerDirectory,
                     search: Optional[str] = None) -> List[ServiceContract]:
    """按标题、合同编号或顾客名称搜索合同。"""
    return _apply(contracts, lambda c: matches_search(
        search, c.title, c.contract_number, directory.customer_name(c.customer_id)))
