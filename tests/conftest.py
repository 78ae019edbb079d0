"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walletsync.activity.log import ActivityLog
from walletsync.activity.sink import ActivitySink, InMemoryActivitySink
from walletsync.database import create_engine, create_session_factory, create_tables
from walletsync.errors import StorageUnavailableError, TransientBackendError
from walletsync.profiles.backend import RowProfileBackend, XPBackend
from walletsync.profiles.memory import InMemoryProfileBackend
from walletsync.profiles.schemas import UserProfile
from walletsync.storage.base import DEFAULT_BUFFER_CAPACITY, KeyValueFallbackStore
from walletsync.storage.memory import InMemoryFallbackStore
from walletsync.xp.ledger import XPLedger
from walletsync.xp.schemas import XPRecord

NOW = datetime(2026, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock pinned to a moment; tests move it with ``advance``."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class DownProfileBackend(RowProfileBackend, XPBackend):
    """Every call fails the way an unreachable database does."""

    def __init__(self, name: str = "down") -> None:
        self.name = name
        self.calls: list[str] = []

    def _fail(self, op: str) -> TransientBackendError:
        self.calls.append(op)
        return TransientBackendError(f"{self.name} unreachable")

    async def read(self, wallet_address: str) -> UserProfile | None:
        raise self._fail("read")

    async def update(
        self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False
    ) -> UserProfile | None:
        raise self._fail("update")

    async def insert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        raise self._fail("insert")

    async def upsert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        raise self._fail("upsert")

    async def list_profiles(self, limit: int = 1000) -> list[UserProfile]:
        raise self._fail("list_profiles")

    async def read_xp(self, wallet_address: str) -> XPRecord | None:
        raise self._fail("read_xp")

    async def ensure_xp(self, wallet_address: str) -> XPRecord:
        raise self._fail("ensure_xp")

    async def increment_xp(self, wallet_address: str, amount: int, bucket: str | None) -> XPRecord:
        raise self._fail("increment_xp")


class DownActivitySink(ActivitySink):
    async def append(self, event):
        raise TransientBackendError("activity sink unreachable")

    async def list_for_wallet(self, wallet_address, limit=20):
        raise TransientBackendError("activity sink unreachable")


class DownFallbackStore(KeyValueFallbackStore):
    async def get(self, key):
        raise StorageUnavailableError("store unavailable")

    async def set(self, key, value):
        raise StorageUnavailableError("store unavailable")

    async def append_bounded(self, list_key, value, capacity=DEFAULT_BUFFER_CAPACITY):
        raise StorageUnavailableError("store unavailable")

    async def get_list(self, list_key):
        raise StorageUnavailableError("store unavailable")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def store() -> InMemoryFallbackStore:
    return InMemoryFallbackStore()


@pytest.fixture
def backend(clock) -> InMemoryProfileBackend:
    return InMemoryProfileBackend(clock=clock)


@pytest.fixture
def down_backend() -> DownProfileBackend:
    return DownProfileBackend()


@pytest.fixture
def sink() -> InMemoryActivitySink:
    return InMemoryActivitySink()


@pytest.fixture
def activity(sink, store, clock) -> ActivityLog:
    return ActivityLog(sink, store, session_id="session_test", clock=clock)


@pytest.fixture
def offline_activity(store, clock) -> ActivityLog:
    """Activity log whose remote sink is down, so events land in the buffer."""
    return ActivityLog(DownActivitySink(), store, session_id="session_test", clock=clock)


@pytest.fixture
def ledger(backend, store, activity, clock) -> XPLedger:
    return XPLedger(backend, store, activity, clock=clock)


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh SQLite database with all tables, one per test."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'walletsync.db'}")
    await create_tables(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def down_sink() -> DownActivitySink:
    return DownActivitySink()


@pytest.fixture
def down_store() -> DownFallbackStore:
    return DownFallbackStore()
