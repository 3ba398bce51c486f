"""业务记录仓库 —— 现场服务业务数据的数据访问层。

管理系统中的业务记录（服务工单、服务日志、服务提醒、服务合同及其排期），
这些记录是技术人员日常工作产生的数据。

各仓库只负责自己的存储键，不做级联删除：
删除或归档父记录时，子记录保持原样，以保留历史。
"""
from dataclasses import replace
from datetime import datetime
from typing import Iterable, List, Optional, Union

from loguru import logger

from config.settings import settings
from .base_crud import BaseCRUD, Clock
from .codecs import (
    RawRecord, SERVICE_CASE_CODEC, SERVICE_LOG_CODEC, REMINDER_CODEC,
    CONTRACT_CODEC, CONTRACT_SCHEDULE_CODEC,
)
from .entities import (
    ServiceCase, ServiceLogEntry, ServiceReminder,
    ServiceContract, ContractSchedule, CaseStatus, ContractStatus,
)
from .errors import StorageIOError
from .kv_store import KeyValueStore
from .numbering import format_contract_number, next_contract_number


SERVICE_CASES_KEY = "service_cases"
SERVICE_LOG_ENTRIES_KEY = "service_log_entries"
SERVICE_REMINDERS_KEY = "service_reminders"
SERVICE_CONTRACTS_KEY = "service_contracts"
CONTRACT_SCHEDULES_KEY = "contract_schedules"


def _contract_numbers(records: Iterable[Union[ServiceContract, RawRecord]]
                      ) -> List[str]:
    # 无法解码的合同仍然占用它的编号
    numbers = []
    for record in records:
        if isinstance(record, RawRecord):
            number = record.raw.get("contractNumber") if isinstance(record.raw, dict) else None
        else:
            number = record.contract_number
        if isinstance(number, str):
            numbers.append(number)
    return numbers


def _newest_first(value: Optional[datetime]) -> float:
    return -value.timestamp() if value else float("inf")


class ServiceCaseRepository(BaseCRUD[ServiceCase]):
    """服务工单 仓库。

    工单状态流转：pending → in_progress → completed / cancelled。
    顾客被归档后，其工单仍然可见。
    """

    storage_key = SERVICE_CASES_KEY
    codec = SERVICE_CASE_CODEC

    async def get_by_customer_id(self, customer_id: str) -> List[ServiceCase]:
        """获取顾客的全部工单。"""
        return [c for c in await self.get_all() if c.customer_id == customer_id]

    async def get_by_product_id(self, product_id: str) -> List[ServiceCase]:
        """获取某产品相关的工单。"""
        return [c for c in await self.get_all() if c.product_id == product_id]

    async def get_active(self) -> List[ServiceCase]:
        """获取进行中的工单（pending 或 in_progress）。"""
        active = (CaseStatus.PENDING, CaseStatus.IN_PROGRESS)
        return [c for c in await self.get_all() if c.status in active]

    async def get_by_status(self, status: CaseStatus) -> List[ServiceCase]:
        """按状态获取工单。"""
        return [c for c in await self.get_all() if c.status == status]


class ServiceLogRepository(BaseCRUD[ServiceLogEntry]):
    """服务日志 仓库。

    日志没有 created_at / updated_at，只有 timestamp：
    新建时保留调用方给出的时间（未给出则取当前时间），
    每次编辑保存都刷新为当前时间。
    """

    storage_key = SERVICE_LOG_ENTRIES_KEY
    codec = SERVICE_LOG_CODEC
    stamp_created = False
    stamp_updated = False

    def _prepare_insert(self, entity, records, now):
        entity = super()._prepare_insert(entity, records, now)
        if entity.timestamp is None:
            entity = replace(entity, timestamp=now)
        return entity

    def _prepare_update(self, entity, existing, now):
        return replace(entity, timestamp=now)

    async def get_by_service_case_id(self, service_case_id: str) -> List[ServiceLogEntry]:
        """获取工单下的日志，最新的在前。"""
        entries = [e for e in await self.get_all()
                   if e.service_case_id == service_case_id]
        return sorted(entries, key=lambda e: _newest_first(e.timestamp))

    async def get_by_customer_id(self, customer_id: str) -> List[ServiceLogEntry]:
        """获取直接关联顾客的日志（早期数据的关联方式）。"""
        return [e for e in await self.get_all() if e.customer_id == customer_id]


class ReminderRepository(BaseCRUD[ServiceReminder]):
    """服务提醒 仓库。

    逾期 / 今日 / 即将到期 不做存储，由 business.resolution 根据
    due_date 与当前时间派生。
    """

    storage_key = SERVICE_REMINDERS_KEY
    codec = REMINDER_CODEC
    stamp_updated = False

    async def get_by_customer_id(self, customer_id: str) -> List[ServiceReminder]:
        """获取顾客的全部提醒。"""
        return [r for r in await self.get_all() if r.customer_id == customer_id]

    async def get_by_service_case_id(self, service_case_id: str) -> List[ServiceReminder]:
        """获取关联某工单的提醒。"""
        return [r for r in await self.get_all()
                if r.service_case_id == service_case_id]

    async def get_pending(self) -> List[ServiceReminder]:
        """获取未完成的提醒。"""
        return [r for r in await self.get_all() if not r.is_completed]

    async def complete(self, reminder_id: str) -> Optional[ServiceReminder]:
        """标记提醒为已完成，并记录完成时间。"""
        return await self._update_fields(
            reminder_id, is_completed=True, completed_at=self.now()
        )

    async def reopen(self, reminder_id: str) -> Optional[ServiceReminder]:
        """重新打开已完成的提醒，清除完成时间。"""
        return await self._update_fields(
            reminder_id, is_completed=False, completed_at=None
        )

    async def toggle_completed(self, reminder_id: str) -> Optional[ServiceReminder]:
        """切换提醒的完成状态。

        Returns:
            更新后的提醒，不存在时返回 None。
        """
        reminder = await self.get_by_id(reminder_id)
        if reminder is None:
            return None
        if reminder.is_completed:
            return await self.reopen(reminder_id)
        return await self.complete(reminder_id)


class ContractScheduleRepository(BaseCRUD[ContractSchedule]):
    """合同排期 仓库，独立存储键，通过 contract_id 关联合同。"""

    storage_key = CONTRACT_SCHEDULES_KEY
    codec = CONTRACT_SCHEDULE_CODEC
    stamp_created = False
    stamp_updated = False

    async def get_by_contract_id(self, contract_id: str) -> List[ContractSchedule]:
        """获取某合同的排期，按计划日期升序。"""
        schedules = [s for s in await self.get_all() if s.contract_id == contract_id]
        return sorted(schedules, key=lambda s: s.scheduled_date)


class ContractRepository(BaseCRUD[ServiceContract]):
    """服务合同 仓库。

    拥有两个存储键：合同本身与合同排期（通过 ``schedules`` 访问）。

    合同编号在首次保存时分配（调用方未提供时自动生成），
    之后的编辑始终保留已存储的编号和 created_at。
    """

    storage_key = SERVICE_CONTRACTS_KEY
    codec = CONTRACT_CODEC

    def __init__(self, store: KeyValueStore, clock: Optional[Clock] = None,
                 number_prefix: Optional[str] = None) -> None:
        super().__init__(store, clock)
        self.number_prefix = number_prefix or settings.contract_number_prefix
        self.schedules = ContractScheduleRepository(store, clock)

    # ================================================================
    # 合同
    # ================================================================

    async def get_by_customer_id(self, customer_id: str) -> List[ServiceContract]:
        """获取顾客的全部合同。"""
        return [c for c in await self.get_all() if c.customer_id == customer_id]

    async def get_active(self) -> List[ServiceContract]:
        """获取状态为 active 的合同。"""
        return [c for c in await self.get_all() if c.status == ContractStatus.ACTIVE]

    async def generate_contract_number(self) -> str:
        """生成下一个合同编号，格式 ``CON-<年>-<4位序号>``。

        序号由扫描现有合同得出，不保存计数器：
        两次调用之间没有保存合同时会得到相同编号。
        读取失败时退化为当年的第一个编号。

        Returns:
            合同编号字符串。
        """
        year = self.now().year
        try:
            records = await self._load()
        except StorageIOError as e:
            logger.warning(f"Contract number generation fell back to first number: {e}")
            return format_contract_number(year, 1, self.number_prefix)
        number = next_contract_number(
            _contract_numbers(records), year, self.number_prefix
        )
        logger.debug(f"Generated contract number {number}")
        return number

    def _prepare_insert(self, entity, records, now):
        entity = super()._prepare_insert(entity, records, now)
        if not entity.contract_number:
            number = next_contract_number(
                _contract_numbers(records), now.year, self.number_prefix
            )
            entity = replace(entity, contract_number=number)
            logger.info(f"Assigned contract number {number} to {entity.id}")
        return entity

    def _prepare_update(self, entity, existing, now):
        entity = super()._prepare_update(entity, existing, now)
        number = existing.contract_number or entity.contract_number
        return replace(entity, contract_number=number)

    # ================================================================
    # 合同排期
    # ================================================================

    async def get_all_schedules(self) -> List[ContractSchedule]:
        """获取全部合同排期。"""
        return await self.schedules.get_all()

    async def get_schedules_by_contract_id(self, contract_id: str) -> List[ContractSchedule]:
        """获取某合同的排期，按计划日期升序。"""
        return await self.schedules.get_by_contract_id(contract_id)

    async def save_schedule(self, schedule: ContractSchedule) -> ContractSchedule:
        """插入或更新合同排期。"""
        return await self.schedules.save(schedule)

    async def delete_schedule(self, schedule_id: str) -> bool:
        """删除合同排期。"""
        return await self.schedules.delete(schedule_id)

    async def complete_schedule(self, schedule_id: str,
                                completed_date: Optional[datetime] = None
                                ) -> Optional[ContractSchedule]:
        """标记排期为已完成。

        Args:
            schedule_id: 排期ID。
            completed_date: 完成时间，默认当前时间。

        Returns:
            更新后的排期，不存在时返回 None。
        """
        return await self.schedules.update(
            schedule_id, completed_date=completed_date or self.now()
        )
