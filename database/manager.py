"""数据库管理器 —— 统一门面（Facade）。

DatabaseManager 是 database 模块的统一入口，组合了所有子仓库，
提供两套 API：

1. **子仓库访问**（细粒度）：
   通过 ``db.customers``、``db.contracts`` 等属性直接访问子仓库，
   返回实体对象，适合表单页面的增删改查。

2. **便捷方法**（粗粒度）：
   提供跨实体的方法（如 ``get_service_log_views()``、``get_statistics()``），
   负责联表解析顾客名称、筛选与排序，适合列表页面与统计面板。

所有仓库共享同一个持久化适配器，各自独占自己的存储键。
"""
import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger

from business.filters import (
    DateWindow, LogSort, ReminderView, ServiceLogView,
    build_log_views, filter_reminders, filter_service_logs,
    sort_reminder_views, sort_service_logs,
)
from business.resolution import CustomerDirectory, is_overdue
from .base_crud import Clock, utc_now
from .business_repos import (
    ServiceCaseRepository, ServiceLogRepository, ReminderRepository,
    ContractRepository,
    SERVICE_CASES_KEY, SERVICE_LOG_ENTRIES_KEY, SERVICE_REMINDERS_KEY,
    SERVICE_CONTRACTS_KEY, CONTRACT_SCHEDULES_KEY,
)
from .codecs import format_datetime
from .connection import DatabaseConnection
from .entities import (
    Customer, Product, ServiceCase, ServiceLogEntry, ServiceReminder,
    ServiceContract, ContractService, ContractSchedule,
    CaseStatus, CasePriority, EquipmentType, LogEntryType, ProductType,
    ReminderPriority, ContractType, ContractStatus, ServiceFrequency,
)
from .entity_repos import (
    CustomerRepository, ProductCategoryRepository, ProductRepository,
    CUSTOMERS_KEY, PRODUCT_CATEGORIES_KEY, PRODUCTS_KEY,
)
from .kv_store import KeyValueStore, SqlKeyValueStore

# 核心数据的全部存储键（不含偏好设置）
CORE_KEYS = (
    CUSTOMERS_KEY,
    PRODUCT_CATEGORIES_KEY,
    PRODUCTS_KEY,
    SERVICE_CASES_KEY,
    SERVICE_LOG_ENTRIES_KEY,
    SERVICE_REMINDERS_KEY,
    SERVICE_CONTRACTS_KEY,
    CONTRACT_SCHEDULES_KEY,
)

SNAPSHOT_VERSION = "1.0.0"

DEMO_ID_PREFIX = "demo-"


class DatabaseManager:
    """数据库管理器 —— 统一门面。

    Attributes:
        conn: 数据库连接管理器（注入自定义适配器时为 None）。
        store: 持久化适配器。
        customers: 顾客仓库。
        product_categories: 产品类别仓库。
        products: 产品仓库。
        service_cases: 服务工单仓库。
        service_logs: 服务日志仓库。
        reminders: 服务提醒仓库。
        contracts: 服务合同仓库（含 ``contracts.schedules``）。

    Example::

        db = DatabaseManager("sqlite:///data/service_app.db")
        await db.initialize()

        # 通过子仓库访问（返回实体对象）
        customer = await db.customers.get_by_id("c1")

        # 通过便捷方法访问
        logs = await db.get_service_log_views(window="week")
    """

    def __init__(self, database_url: Optional[str] = None,
                 store: Optional[KeyValueStore] = None,
                 clock: Optional[Clock] = None) -> None:
        """初始化数据库管理器。

        Args:
            database_url: 数据库连接URL。如果为None则使用settings配置。
                        仅在未传入 store 时使用。
            store: 自定义持久化适配器（可选），例如 MemoryKeyValueStore。
            clock: 返回当前时间的函数（可选），测试中可注入固定时钟。
        """
        # 基础设施层
        if store is None:
            self.conn: Optional[DatabaseConnection] = DatabaseConnection(database_url)
            store = SqlKeyValueStore(self.conn)
        else:
            self.conn = None
        self.store = store
        self._clock = clock or utc_now

        # 实体仓库
        self.customers = CustomerRepository(store, clock)
        self.product_categories = ProductCategoryRepository(store, clock)
        self.products = ProductRepository(store, clock)

        # 业务记录仓库
        self.service_cases = ServiceCaseRepository(store, clock)
        self.service_logs = ServiceLogRepository(store, clock)
        self.reminders = ReminderRepository(store, clock)
        self.contracts = ContractRepository(store, clock)

    # ================================================================
    # 基础设施方法
    # ================================================================

    def now(self) -> datetime:
        return self._clock()

    async def initialize(self) -> None:
        """准备底层存储（创建 kv_entries 表，幂等操作）。"""
        if isinstance(self.store, SqlKeyValueStore):
            await self.store.create_tables()
        logger.debug("Storage initialized")

    async def close(self) -> None:
        """关闭持久化适配器，释放所有资源。"""
        await self.store.close()

    async def clear_all_data(self) -> None:
        """删除全部核心数据（偏好设置保留）。"""
        for key in CORE_KEYS:
            await self.store.remove(key)
        logger.warning("All core data cleared")

    # ================================================================
    # 备份与恢复
    # ================================================================

    async def export_snapshot(self) -> Dict[str, Any]:
        """导出全部核心集合的原始 JSON。

        导出的是磁盘上的记录原样（不经过实体解码），
        因此无法识别的字段也会被保留。损坏的集合导出为空列表。

        Returns:
            ``{"version", "timestamp", "data": {存储键: 记录列表}}``。
        """
        data: Dict[str, List[Any]] = {}
        for key in CORE_KEYS:
            raw = await self.store.get(key)
            data[key] = self._load_raw_list(key, raw)
        snapshot = {
            "version": SNAPSHOT_VERSION,
            "timestamp": format_datetime(self.now()),
            "data": data,
        }
        logger.info(f"Exported snapshot with {sum(len(v) for v in data.values())} records")
        return snapshot

    async def restore_snapshot(self, snapshot: Dict[str, Any]) -> None:
        """从快照恢复全部核心集合。

        快照中缺少的集合会被清空，使恢复结果与快照完全一致。
        先读取全部核心集合的当前内容；任一写入失败时把已写入的
        集合恢复原状，再抛出原异常。

        Args:
            snapshot: export_snapshot 的返回值。

        Raises:
            ValueError: 快照格式无效。
            StorageIOError: 写入失败。
        """
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("data"), dict):
            raise ValueError("Invalid snapshot: missing 'data' object")
        data = snapshot["data"]
        for key in CORE_KEYS:
            records = data.get(key)
            if records is not None and not isinstance(records, list):
                raise ValueError(f"Invalid snapshot: '{key}' is not a list")

        previous = {key: await self.store.get(key) for key in CORE_KEYS}
        written: List[str] = []
        try:
            for key in CORE_KEYS:
                await self._put_raw(key, data.get(key))
                written.append(key)
        except Exception:
            logger.error(f"Snapshot restore failed, rolling back {len(written)} collections")
            for key in written:
                await self._put_raw(key, previous[key])
            raise
        logger.info(f"Restored snapshot from {snapshot.get('timestamp', 'unknown time')}")

    async def _put_raw(self, key: str, value) -> None:
        if value is None:
            await self.store.remove(key)
        elif isinstance(value, str):
            await self.store.set(key, value)
        else:
            await self.store.set(key, json.dumps(value, ensure_ascii=False))

    @staticmethod
    def _load_raw_list(key: str, raw: Optional[str]) -> List[Any]:
        if raw is None:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"[{key}] malformed JSON skipped in snapshot: {e}")
            return []
        return payload if isinstance(payload, list) else []

    # ================================================================
    # 联表视图
    # ================================================================

    async def get_customer_directory(self) -> CustomerDirectory:
        """加载全部顾客（含已归档）与工单，构建顾客名称解析索引。"""
        customers = await self.customers.get_all()
        cases = await self.service_cases.get_all()
        return CustomerDirectory(customers, cases)

    async def get_service_log_customer_name(self, entry: ServiceLogEntry) -> str:
        """解析单条服务日志的顾客名称。"""
        directory = await self.get_customer_directory()
        return directory.log_customer_name(entry)

    async def get_service_log_views(self, search: Optional[str] = None,
                                    customer: Optional[str] = None,
                                    log_type: Optional[str] = None,
                                    window: DateWindow = DateWindow.ALL,
                                    order: LogSort = LogSort.LATEST
                                    ) -> List[ServiceLogView]:
        """获取服务日志列表：解析顾客名称后筛选并按时间排序。

        Args:
            search: 搜索词。
            customer: 顾客名称或顾客ID。
            log_type: 日志类型值。
            window: 日期窗口，相对于当前时间。
            order: latest（最新在前）或 oldest。

        Returns:
            ServiceLogView 列表。
        """
        directory = await self.get_customer_directory()
        views = build_log_views(await self.service_logs.get_all(), directory)
        filtered = filter_service_logs(
            views, self.now(), search=search, customer=customer,
            log_type=log_type, window=window,
        )
        return sort_service_logs(filtered, order)

    async def get_reminder_views(self, search: Optional[str] = None) -> List[ReminderView]:
        """获取带顾客名称的提醒列表，按相关性排序（逾期 → 今日 → 截止时间）。"""
        directory = await self.get_customer_directory()
        views = [
            ReminderView(reminder=r, customer_name=directory.customer_name(r.customer_id))
            for r in await self.reminders.get_all()
        ]
        return sort_reminder_views(filter_reminders(views, search), self.now())

    # ================================================================
    # 统计
    # ================================================================

    async def get_statistics(self) -> Dict[str, int]:
        """汇总各类数据的数量。

        Returns:
            统计字典，键包括 customers / active_customers / archived_customers /
            products / active_products / service_cases / open_service_cases /
            service_log_entries / reminders / pending_reminders /
            overdue_reminders / contracts / active_contracts / contract_schedules。
        """
        now = self.now()
        customers = await self.customers.get_all()
        products = await self.products.get_all()
        cases = await self.service_cases.get_all()
        logs = await self.service_logs.get_all()
        reminders = await self.reminders.get_all()
        contracts = await self.contracts.get_all()
        schedules = await self.contracts.get_all_schedules()

        open_statuses = (CaseStatus.PENDING, CaseStatus.IN_PROGRESS)
        return {
            "customers": len(customers),
            "active_customers": sum(1 for c in customers if c.is_active),
            "archived_customers": sum(1 for c in customers if not c.is_active),
            "products": len(products),
            "active_products": sum(1 for p in products if p.is_active),
            "service_cases": len(cases),
            "open_service_cases": sum(1 for c in cases if c.status in open_statuses),
            "service_log_entries": len(logs),
            "reminders": len(reminders),
            "pending_reminders": sum(1 for r in reminders if not r.is_completed),
            "overdue_reminders": sum(1 for r in reminders if is_overdue(r, now)),
            "contracts": len(contracts),
            "active_contracts": sum(1 for c in contracts if c.status == ContractStatus.ACTIVE),
            "contract_schedules": len(schedules),
        }

    # ================================================================
    # 演示数据
    # ================================================================

    async def add_demo_data(self) -> Dict[str, int]:
        """写入一组演示数据（id 以 ``demo-`` 开头），可重复执行。

        Returns:
            各集合写入的记录数量。
        """
        now = self.now()
        category = await self.product_categories.get_or_create("Bårar")

        customers = [
            Customer(id="demo-customer-1", name="Ambulanssjukvården Nord",
                     phone="010-123 45 67", address="Storgatan 1, Umeå",
                     email="nord@example.se", contact_person="Anna Berg"),
            Customer(id="demo-customer-2", name="Region Syd Ambulans",
                     phone="040-765 43 21", address="Hamngatan 12, Malmö"),
        ]
        products = [
            Product(id="demo-product-1", name="Ferno VIPER", serial_number="VIP-1001",
                    category_id=category.id, type=ProductType.VIPER,
                    customer_id="demo-customer-1", is_standalone=False,
                    location="Station Umeå"),
        ]
        cases = [
            ServiceCase(id="demo-case-1", customer_id="demo-customer-1",
                        title="Årlig service VIPER", description="Kontroll av hydraulik",
                        status=CaseStatus.IN_PROGRESS, priority=CasePriority.HIGH,
                        equipment_type=EquipmentType.VIPER, product_id="demo-product-1",
                        equipment_serial_number="VIP-1001", scheduled_date=now),
            ServiceCase(id="demo-case-2", customer_id="demo-customer-2",
                        title="Felsökning PowerTraxx", description="Stolen laddar inte",
                        priority=CasePriority.URGENT,
                        equipment_type=EquipmentType.POWERTRAXX),
        ]
        logs = [
            ServiceLogEntry(id="demo-log-1", title="Hydraulik kontrollerad",
                            content="Inga läckage hittades", type=LogEntryType.ACTION,
                            service_case_id="demo-case-1", timestamp=now - timedelta(hours=2),
                            technician_name="Erik Lund", tags=["hydraulik"]),
            ServiceLogEntry(id="demo-log-2", title="Batteri bytt",
                            content="Nytt batteri monterat", type=LogEntryType.PART_REPLACED,
                            customer_id="demo-customer-2", timestamp=now - timedelta(days=3),
                            is_important=True),
        ]
        reminders = [
            ServiceReminder(id="demo-reminder-1", customer_id="demo-customer-1",
                            title="Uppföljning VIPER", due_date=now + timedelta(days=7),
                            service_case_id="demo-case-1", priority=ReminderPriority.HIGH),
            ServiceReminder(id="demo-reminder-2", customer_id="demo-customer-2",
                            title="Ring kunden", due_date=now - timedelta(days=1)),
        ]
        contracts = [
            ServiceContract(
                id="demo-contract-1", customer_id="demo-customer-1", contract_number="",
                title="Serviceavtal VIPER", description="Löpande underhåll",
                contract_type=ContractType.PREMIUM, status=ContractStatus.ACTIVE,
                start_date=now, end_date=now + timedelta(days=365),
                total_value=12000.0, monthly_value=1000.0,
                services=[ContractService(id="demo-service-1", name="Årlig kontroll",
                                          frequency=ServiceFrequency.ANNUAL, price=4000.0)],
            ),
        ]
        schedules = [
            ContractSchedule(id="demo-schedule-1", contract_id="demo-contract-1",
                             scheduled_date=now + timedelta(days=30),
                             service_id="demo-service-1"),
        ]

        for customer in customers:
            await self.customers.save(customer)
        for product in products:
            await self.products.save(product)
        for case in cases:
            await self.service_cases.save(case)
        for entry in logs:
            await self.service_logs.save(entry)
        for reminder in reminders:
            await self.reminders.save(reminder)
        for contract in contracts:
            # 重复执行时保留已分配的合同编号
            await self.contracts.save(contract)
        for schedule in schedules:
            await self.contracts.save_schedule(schedule)

        counts = {
            CUSTOMERS_KEY: len(customers),
            PRODUCTS_KEY: len(products),
            SERVICE_CASES_KEY: len(cases),
            SERVICE_LOG_ENTRIES_KEY: len(logs),
            SERVICE_REMINDERS_KEY: len(reminders),
            SERVICE_CONTRACTS_KEY: len(contracts),
            CONTRACT_SCHEDULES_KEY: len(schedules),
        }
        logger.info(f"Demo data added: {counts}")
        return counts

    async def remove_demo_data(self) -> int:
        """删除全部演示数据（id 以 ``demo-`` 开头的记录）。

        Returns:
            删除的记录总数。
        """
        removed = 0
        repos = [
            self.products, self.service_cases, self.service_logs,
            self.reminders, self.contracts, self.contracts.schedules,
        ]
        for repo in repos:
            for item in await repo.get_all():
                if item.id.startswith(DEMO_ID_PREFIX) and await repo.delete(item.id):
                    removed += 1
        for customer in await self.customers.get_all():
            if customer.id.startswith(DEMO_ID_PREFIX):
                if await self.customers.delete_permanently(customer.id):
                    removed += 1
        logger.info(f"Demo data removed: {removed} records")
        return removed

