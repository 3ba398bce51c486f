"""Shared fixtures for the data layer tests.

Provides a fresh DatabaseManager for each test, either backed by a
temp-file SQLite database (``temp_db``) or by an in-memory store
(``mem_db``). Both share a controllable clock fixed in 2024 so that
timestamps and contract numbers are deterministic.
"""
import os
import shutil
import tempfile
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Set

import pytest

from database.errors import StorageIOError
from database.kv_store import MemoryKeyValueStore
from database.manager import DatabaseManager

FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class FailingStore(MemoryKeyValueStore):
    """Memory store whose reads or writes can be switched to fail."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        super().__init__(initial)
        self.fail_get = False
        self.fail_set = False
        self.fail_set_keys: Set[str] = set()
        self.set_calls = 0

    async def get(self, key):
        if self.fail_get:
            raise OSError(f"cannot read {key}")
        return await super().get(key)

    async def set(self, key, value):
        self.set_calls += 1
        if self.fail_set or key in self.fail_set_keys:
            raise StorageIOError(key, "set")
        await super().set(key, value)


@pytest.fixture
def fixed_now():
    """Stable 'now' shared by every clock in a test."""
    return FIXED_NOW


@pytest.fixture
def clock():
    """Controllable clock starting at FIXED_NOW."""
    return FakeClock(FIXED_NOW)


@pytest.fixture
def failing_store():
    """Memory store with switchable read/write failures."""
    return FailingStore()


@pytest.fixture
async def mem_db(clock):
    """Yield a DatabaseManager over a fresh in-memory store."""
    manager = DatabaseManager(store=MemoryKeyValueStore(), clock=clock)
    await manager.initialize()
    try:
        yield manager
    finally:
        await manager.close()


@pytest.fixture
def temp_db_url():
    """Yield a SQLite URL pointing at a fresh temp directory."""
    temp_dir = tempfile.mkdtemp(prefix="db-tests-")
    try:
        yield f"sqlite:///{os.path.join(temp_dir, 'test.db')}"
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
async def temp_db(temp_db_url, clock):
    """Yield a DatabaseManager bound to a temp SQLite database."""
    manager = DatabaseManager(database_url=temp_db_url, clock=clock)
    await manager.initialize()
    try:
        yield manager
    finally:
        await manager.close()
