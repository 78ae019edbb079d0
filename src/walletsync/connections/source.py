"""Append-only stores of wallet connection events."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walletsync.clock import ensure_utc
from walletsync.connections.schemas import ConnectionEvent
from walletsync.db.models import WalletConnection
from walletsync.errors import TransientBackendError


class ConnectionEventSource(ABC):
    @abstractmethod
    async def append(self, event: ConnectionEvent) -> None: ...

    @abstractmethod
    async def list_since(self, since: datetime) -> list[ConnectionEvent]:
        """Events with ``connection_timestamp >= since``, oldest first."""

    @abstractmethod
    async def list_recent(
        self, wallet_address: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[ConnectionEvent]:
        """Newest first, optionally for one wallet."""


def _to_event(row: WalletConnection) -> ConnectionEvent:
    event = ConnectionEvent.model_validate(row)
    return event.model_copy(update={"connection_timestamp": ensure_utc(event.connection_timestamp)})


class SqlConnectionEventSource(ConnectionEventSource):
    """Reads and writes the ``wallet_connections`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, event: ConnectionEvent) -> None:
        try:
            async with self._session_factory() as session:
                session.add(WalletConnection(**event.model_dump()))
                await session.commit()
        except SQLAlchemyError as exc:
            raise TransientBackendError(str(exc)) from exc

    async def list_since(self, since: datetime) -> list[ConnectionEvent]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(WalletConnection)
                    .where(WalletConnection.connection_timestamp >= since)
                    .order_by(WalletConnection.connection_timestamp.asc(), WalletConnection.id.asc())
                )
                return [_to_event(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise TransientBackendError(str(exc)) from exc

    async def list_recent(
        self, wallet_address: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[ConnectionEvent]:
        query = select(WalletConnection)
        if wallet_address:
            query = query.where(WalletConnection.wallet_address == wallet_address)
        query = (
            query.order_by(WalletConnection.connection_timestamp.desc(), WalletConnection.id.desc())
            .offset(offset)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return [_to_event(row) for row in result.scalars().all()]
        except SQLAlchemyError as exc:
            raise TransientBackendError(str(exc)) from exc


class InMemoryConnectionEventSource(ConnectionEventSource):
    def __init__(self, events: list[ConnectionEvent] | None = None) -> None:
        self.events: list[ConnectionEvent] = list(events or [])

    async def append(self, event: ConnectionEvent) -> None:
        self.events.append(event)

    async def list_since(self, since: datetime) -> list[ConnectionEvent]:
        matching = [event for event in self.events if event.connection_timestamp >= since]
        return sorted(matching, key=lambda event: event.connection_timestamp)

    async def list_recent(
        self, wallet_address: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[ConnectionEvent]:
        matching = [e for e in self.events if wallet_address is None or e.wallet_address == wallet_address]
        ordered = sorted(reversed(matching), key=lambda event: event.connection_timestamp, reverse=True)
        return ordered[offset : offset + limit]
