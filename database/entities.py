"""领域实体定义。

本模块定义现场服务系统中的全部实体：
- 顾客、产品类别、产品等基础实体
- 服务工单、服务日志、服务提醒等业务记录
- 服务合同及其内嵌服务项、合同排期

实体只是内存中的数据结构，日期字段均为带时区的 datetime；
与磁盘 JSON 之间的转换由 codecs 模块负责。
所有实体的 id 都是调用方分配的不透明字符串。
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ProductType(str, Enum):
    """产品/设备型号"""
    VIPER = "viper"
    POWERTRAXX = "powertraxx"
    TRANSCEND = "transcend"
    FIXED = "fixed"
    OTHER = "other"


class EquipmentType(str, Enum):
    """服务工单涉及的设备类型"""
    VIPER = "viper"
    POWERTRAXX = "powertraxx"
    OTHER = "other"


class CaseStatus(str, Enum):
    """服务工单状态"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CasePriority(str, Enum):
    """服务工单优先级"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ReminderPriority(str, Enum):
    """提醒优先级"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LogEntryType(str, Enum):
    """服务日志条目类型"""
    NOTE = "note"
    STATUS_UPDATE = "status_update"
    ACTION = "action"
    PHOTO = "photo"
    MEASUREMENT = "measurement"
    PART_REPLACED = "part_replaced"
    TEST_RESULT = "test_result"


class ContractType(str, Enum):
    """合同类型"""
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"
    CUSTOM = "custom"


class ContractStatus(str, Enum):
    """合同状态"""
    ACTIVE = "active"
    PENDING = "pending"
    PAUSED = "paused"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ServiceFrequency(str, Enum):
    """合同服务项的执行频率"""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    BIANNUAL = "biannual"
    ANNUAL = "annual"
    ON_DEMAND = "on-demand"


@dataclass
class Customer:
    """顾客。

    顾客只归档不删除：归档后 is_active 为 False，
    但仍可按 id 查询，历史工单、日志、合同依然能解析出顾客名称。

    Attributes:
        id: 顾客ID。
        name: 顾客名称。
        phone: 联系电话。
        address: 地址。
        email: 邮箱（可选）。
        contact_person: 联系人（可选）。
        notes: 备注（可选）。
        is_active: 是否为活跃顾客，归档后为 False。
        archived_at: 归档时间（可选）。
        created_at: 创建时间，由仓库在首次保存时写入。
        updated_at: 更新时间，由仓库在每次保存时写入。
    """
    id: str
    name: str
    phone: str
    address: str
    email: Optional[str] = None
    contact_person: Optional[str] = None
    notes: Optional[str] = None
    is_active: bool = True
    archived_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ProductCategory:
    """产品类别，名称不区分大小写唯一（在列出时去重）。"""
    id: str
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Product:
    """产品/设备。

    删除为物理删除，无法恢复；停用（is_active=False）可以重新启用。

    Attributes:
        id: 产品ID。
        name: 产品名称。
        serial_number: 序列号。
        category_id: 所属产品类别ID。
        type: 设备型号。
        model: 型号描述（可选）。
        customer_id: 所属顾客ID（可选，独立产品为空）。
        location: 存放位置（可选）。
        purchase_date: 购买日期（可选）。
        warranty_expiry_date: 保修到期日（可选）。
        notes: 备注（可选）。
        is_active: 是否启用。
        is_standalone: 是否为不绑定顾客的独立产品。
    """
    id: str
    name: str
    serial_number: str
    category_id: str
    type: ProductType = ProductType.OTHER
    model: Optional[str] = None
    customer_id: Optional[str] = None
    location: Optional[str] = None
    purchase_date: Optional[datetime] = None
    warranty_expiry_date: Optional[datetime] = None
    notes: Optional[str] = None
    is_active: bool = True
    is_standalone: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ServiceCase:
    """服务工单。

    images、checklist_items 为内嵌数据，存储层原样保存。
    """
    id: str
    customer_id: str
    title: str
    description: str
    status: CaseStatus = CaseStatus.PENDING
    priority: CasePriority = CasePriority.MEDIUM
    equipment_type: EquipmentType = EquipmentType.OTHER
    product_id: Optional[str] = None
    equipment_serial_number: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    technician_id: Optional[str] = None
    technician_name: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    images: List[Dict[str, Any]] = field(default_factory=list)
    signature: Optional[str] = None
    checklist_items: List[Dict[str, Any]] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ServiceLogEntry:
    """服务日志条目。

    优先通过 service_case_id 关联工单；早期数据可能只有
    customer_id，或者只有纯文本的 customer 字段。
    timestamp 在每次编辑保存时刷新。
    """
    id: str
    title: str
    content: str
    type: LogEntryType = LogEntryType.NOTE
    service_case_id: Optional[str] = None
    customer_id: Optional[str] = None
    customer: Optional[str] = None
    timestamp: Optional[datetime] = None
    technician_id: Optional[str] = None
    technician_name: Optional[str] = None
    location: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    is_important: bool = False
    images: List[str] = field(default_factory=list)


@dataclass
class ServiceReminder:
    """服务提醒。

    逾期、今日、即将到期等状态都由 due_date 派生，不做存储。
    """
    id: str
    customer_id: str
    title: str
    due_date: datetime
    priority: ReminderPriority = ReminderPriority.MEDIUM
    is_completed: bool = False
    service_case_id: Optional[str] = None
    description: Optional[str] = None
    completed_at: Optional[datetime] = None
    equipment_type: Optional[EquipmentType] = None
    equipment_serial_number: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass
class ContractService:
    """合同内嵌服务项，没有独立的存储键。"""
    id: str
    name: str
    description: str = ""
    frequency: ServiceFrequency = ServiceFrequency.MONTHLY
    included: bool = True
    price: float = 0.0
    notes: Optional[str] = None


@dataclass
class ServiceContract:
    """服务合同。

    contract_number 在创建时分配一次，之后的编辑保持不变；
    created_at 始终保留原记录的值。

    Attributes:
        id: 合同ID。
        customer_id: 所属顾客ID。
        contract_number: 合同编号，格式 CON-<年>-<4位序号>。
        title: 合同标题。
        description: 合同描述。
        contract_type: 合同类型。
        status: 合同状态。
        start_date: 开始日期。
        end_date: 结束日期。
        auto_renewal: 是否自动续约。
        total_value: 合同总金额。
        services: 内嵌的服务项列表。
        terms: 合同条款。
        notes: 备注。
        renewal_period: 续约周期（月，可选）。
        monthly_value: 月度金额（可选）。
    """
    id: str
    customer_id: str
    contract_number: str
    title: str
    description: str
    contract_type: ContractType
    status: ContractStatus
    start_date: datetime
    end_date: datetime
    auto_renewal: bool = False
    total_value: float = 0.0
    services: List[ContractService] = field(default_factory=list)
    terms: str = ""
    notes: str = ""
    renewal_period: Optional[int] = None
    monthly_value: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class ContractSchedule:
    """合同排期，存放于独立集合，通过 contract_id 关联合同。"""
    id: str
    contract_id: str
    scheduled_date: datetime
    completed_date: Optional[datetime] = None
    service_id: Optional[str] = None
    notes: Optional[str] = None
