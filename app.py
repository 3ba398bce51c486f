#!/usr/bin/env python3
"""现场服务应用 - 会话入口

AppSession 是进程内唯一持有全局状态的对象：
它拥有 DatabaseManager 和已加载的偏好设置（主题、通知、备份），
界面层从这里取得配置，核心仓库从不依赖它。

生命周期：
    session = AppSession()
    await session.open()        # 初始化存储并加载偏好设置
    ...
    await session.close()

命令行用法：
    python app.py                       # 打印数据统计
    python app.py --db sqlite:///data/service_app.db
    python app.py --backup backup.json  # 导出备份
    python app.py --restore backup.json # 从备份恢复
"""
import argparse
import asyncio
import json
from dataclasses import replace
from typing import Any, Dict, Optional

from loguru import logger

from config.preferences import (
    BACKUP_SETTINGS_KEY, NOTIFICATION_SETTINGS_KEY,
    BackupSettings, NotificationSettings, ThemeSettings,
    load_settings, load_theme, save_settings, save_theme,
)
from config.settings import settings, setup_logging
from database.base_crud import Clock
from database.codecs import format_datetime
from database.kv_store import KeyValueStore
from database.manager import DatabaseManager


class AppSession:
    """应用会话，持有存储与偏好设置。

    Attributes:
        db: 数据库管理器。
        theme: 主题设置。
        notifications: 通知设置。
        backup: 备份设置。
    """

    def __init__(self, database_url: Optional[str] = None,
                 store: Optional[KeyValueStore] = None,
                 clock: Optional[Clock] = None) -> None:
        self.db = DatabaseManager(database_url, store=store, clock=clock)
        self.theme = ThemeSettings()
        self.notifications = NotificationSettings()
        self.backup = BackupSettings()
        self._opened = False

    @property
    def store(self) -> KeyValueStore:
        return self.db.store

    async def open(self) -> "AppSession":
        """初始化存储并加载偏好设置。"""
        await self.db.initialize()
        self.theme = await load_theme(self.store)
        self.notifications = await load_settings(
            self.store, NOTIFICATION_SETTINGS_KEY, NotificationSettings
        )
        self.backup = await load_settings(self.store, BACKUP_SETTINGS_KEY, BackupSettings)
        self._opened = True
        logger.info(f"Session opened (theme={self.theme.theme.value})")
        return self

    async def close(self) -> None:
        """关闭存储连接。"""
        if self._opened:
            await self.db.close()
            self._opened = False

    async def __aenter__(self) -> "AppSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ================================================================
    # 偏好设置
    # ================================================================

    async def update_theme(self, theme_settings: ThemeSettings) -> ThemeSettings:
        await save_theme(self.store, theme_settings)
        self.theme = theme_settings
        return theme_settings

    async def toggle_theme(self) -> ThemeSettings:
        return await self.update_theme(self.theme.toggled())

    async def update_notifications(self, **changes) -> NotificationSettings:
        """修改通知设置并持久化。

        Raises:
            TypeError: 包含未知的设置项。
        """
        updated = replace(self.notifications, **changes)
        await save_settings(self.store, NOTIFICATION_SETTINGS_KEY, updated)
        self.notifications = updated
        return updated

    async def update_backup_settings(self, **changes) -> BackupSettings:
        """修改备份设置并持久化。

        Raises:
            TypeError: 包含未知的设置项。
        """
        updated = replace(self.backup, **changes)
        await save_settings(self.store, BACKUP_SETTINGS_KEY, updated)
        self.backup = updated
        return updated

    async def reset_preferences(self) -> None:
        """把三组偏好设置恢复为默认值。"""
        await self.update_theme(ThemeSettings())
        self.notifications = NotificationSettings()
        await save_settings(self.store, NOTIFICATION_SETTINGS_KEY, self.notifications)
        self.backup = BackupSettings()
        await save_settings(self.store, BACKUP_SETTINGS_KEY, self.backup)

    # ================================================================
    # 备份
    # ================================================================

    async def create_backup(self) -> Dict[str, Any]:
        """导出核心数据快照，并记录最近备份时间。"""
        snapshot = await self.db.export_snapshot()
        await self.update_backup_settings(lastBackupDate=format_datetime(self.db.now()))
        return snapshot

    async def restore_backup(self, snapshot: Dict[str, Any]) -> None:
        """从快照恢复核心数据，偏好设置不受影响。"""
        await self.db.restore_snapshot(snapshot)


async def main():
    parser = argparse.ArgumentParser(description="现场服务数据工具")
    parser.add_argument("--db", default=None,
                        help=f"数据库连接 URL (默认: {settings.database_url})")
    parser.add_argument("--backup", metavar="FILE", help="导出备份到文件")
    parser.add_argument("--restore", metavar="FILE", help="从备份文件恢复")
    args = parser.parse_args()

    setup_logging()

    async with AppSession(args.db) as session:
        if args.restore:
            with open(args.restore, encoding="utf-8") as f:
                await session.restore_backup(json.load(f))
            logger.info(f"Restored backup from {args.restore}")

        if args.backup:
            snapshot = await session.create_backup()
            with open(args.backup, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, ensure_ascii=False, indent=2)
            logger.info(f"Backup written to {args.backup}")

        for name, count in (await session.db.get_statistics()).items():
            logger.info(f"{name}: {count}")


if __name__ == "__main__":
    asyncio.run(main())
