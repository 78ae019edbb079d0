"""Remote event sinks for activity events."""

from __future__ import annotations

from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walletsync.activity.schemas import ActivityEvent
from walletsync.clock import ensure_utc
from walletsync.db.models import UserActivity
from walletsync.errors import TransientBackendError


class ActivitySink(ABC):
    """Append-only store of activity events, queryable per wallet."""

    @abstractmethod
    async def append(self, event: ActivityEvent) -> None: ...

    @abstractmethod
    async def list_for_wallet(self, wallet_address: str, limit: int = 20) -> list[ActivityEvent]:
        """Most recent events first."""


class SqlActivitySink(ActivitySink):
    """Writes to the ``user_activity`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, event: ActivityEvent) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    UserActivity(
                        wallet_address=event.wallet_address,
                        activity_type=event.activity_type,
                        activity_metadata=event.metadata,
                        created_at=event.created_at,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise TransientBackendError(str(exc)) from exc

    async def list_for_wallet(self, wallet_address: str, limit: int = 20) -> list[ActivityEvent]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(UserActivity)
                    .where(UserActivity.wallet_address == wallet_address)
                    .order_by(UserActivity.created_at.desc(), UserActivity.id.desc())
                    .limit(limit)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise TransientBackendError(str(exc)) from exc
        return [
            ActivityEvent(
                wallet_address=row.wallet_address,
                activity_type=row.activity_type,
                metadata=row.activity_metadata or {},
                created_at=ensure_utc(row.created_at),
            )
            for row in rows
        ]


class InMemoryActivitySink(ActivitySink):
    def __init__(self) -> None:
        self.events: list[ActivityEvent] = []

    async def append(self, event: ActivityEvent) -> None:
        self.events.append(event)

    async def list_for_wallet(self, wallet_address: str, limit: int = 20) -> list[ActivityEvent]:
        matching = [event for event in self.events if event.wallet_address == wallet_address]
        return sorted(reversed(matching), key=lambda event: event.created_at, reverse=True)[:limit]
