"""应用偏好设置

主题、通知、备份三组设置各自保存在独立的存储键中，
与核心数据分开，仓库层从不读取它们：

- ``theme``: 纯字符串 ``light`` / ``dark``（不是 JSON）
- ``notificationSettings``: JSON 对象
- ``backupSettings``: JSON 对象

读取时与默认值合并，缺失的字段取默认值，未知字段忽略；
内容损坏时退回默认值并记录警告。
"""
import json
from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from loguru import logger

from database.kv_store import KeyValueStore

THEME_KEY = "theme"
NOTIFICATION_SETTINGS_KEY = "notificationSettings"
BACKUP_SETTINGS_KEY = "backupSettings"

T = TypeVar("T")


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class BackupFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class ThemeSettings:
    theme: Theme = Theme.LIGHT

    def toggled(self) -> "ThemeSettings":
        """返回切换后的主题设置。"""
        return ThemeSettings(Theme.DARK if self.theme == Theme.LIGHT else Theme.LIGHT)


@dataclass
class NotificationSettings:
    """通知设置，JSON 字段名与旧版应用保持一致（camelCase）。"""
    pushNotifications: bool = True
    emailNotifications: bool = False
    reminderNotifications: bool = True
    serviceUpdates: bool = True
    soundEnabled: bool = True
    vibrationEnabled: bool = True


@dataclass
class BackupSettings:
    """备份设置。

    Attributes:
        autoBackupEnabled: 是否自动备份。
        backupFrequency: 自动备份频率。
        backupTime: 备份时间，``HH:mm``。
        cloudBackupEnabled: 是否备份到云端。
        localBackupEnabled: 是否本地备份。
        lastBackupDate: 最近一次备份时间（ISO 字符串，可选）。
    """
    autoBackupEnabled: bool = True
    backupFrequency: BackupFrequency = BackupFrequency.WEEKLY
    backupTime: str = "02:00"
    cloudBackupEnabled: bool = False
    localBackupEnabled: bool = True
    lastBackupDate: Optional[str] = None


def merge_with_defaults(cls: Type[T], raw: Any) -> T:
    """把存储中的字典合并到默认设置上，只接受已知字段。

    Raises:
        ValueError: 枚举字段的值非法。
    """
    if not isinstance(raw, dict):
        return cls()
    known = {f.name for f in fields(cls)}
    values = {k: v for k, v in raw.items() if k in known}
    settings_obj = cls(**values)
    if isinstance(settings_obj, BackupSettings):
        settings_obj.backupFrequency = BackupFrequency(settings_obj.backupFrequency)
    return settings_obj


def to_json(settings_obj: Any) -> str:
    data: Dict[str, Any] = {}
    for key, value in asdict(settings_obj).items():
        if value is None:
            continue
        data[key] = value.value if isinstance(value, Enum) else value
    return json.dumps(data, ensure_ascii=False)


async def load_theme(store: KeyValueStore) -> ThemeSettings:
    """读取主题，非法值退回浅色主题。"""
    raw = await store.get(THEME_KEY)
    if raw is None:
        return ThemeSettings()
    try:
        return ThemeSettings(Theme(raw))
    except ValueError:
        logger.warning(f"[{THEME_KEY}] unknown theme '{raw}', using default")
        return ThemeSettings()


async def save_theme(store: KeyValueStore, theme_settings: ThemeSettings) -> None:
    await store.set(THEME_KEY, Theme(theme_settings.theme).value)


async def load_settings(store: KeyValueStore, key: str, cls: Type[T]) -> T:
    """读取 JSON 格式的设置并与默认值合并。

    Args:
        store: 持久化适配器。
        key: 存储键。
        cls: 设置 dataclass 类型。

    Returns:
        设置对象；键不存在或内容损坏时为默认值。
    """
    raw = await store.get(key)
    if raw is None:
        return cls()
    try:
        return merge_with_defaults(cls, json.loads(raw))
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(f"[{key}] invalid settings, using defaults: {e}")
        return cls()


async def save_settings(store: KeyValueStore, key: str, settings_obj: Any) -> None:
    await store.set(key, to_json(settings_obj))
