"""Records wallet connection events (the producer side of connection analytics)."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from walletsync.activity.log import ActivityLog
from walletsync.activity.schemas import ClientContext
from walletsync.clock import Clock, utc_now
from walletsync.connections.schemas import CONNECTION_TYPES, ConnectionEvent
from walletsync.connections.source import ConnectionEventSource
from walletsync.errors import ValidationError, require_wallet

logger = structlog.get_logger()


class ConnectionTracker:
    def __init__(
        self,
        source: ConnectionEventSource,
        activity: ActivityLog,
        *,
        context: ClientContext | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._source = source
        self._activity = activity
        self._context = context or ClientContext()
        self._clock = clock

    async def track_connection(
        self,
        wallet_address: str,
        connection_type: str,
        provider: str = "unknown",
        verification_result: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Store a connection event and the matching wallet activity.

        Both writes are attempted concurrently and neither failure stops the
        other. Returns True when the connection event itself was stored.

        Raises:
            ValidationError: If the wallet is blank or ``connection_type`` is unknown.
        """
        require_wallet(wallet_address)
        if connection_type not in CONNECTION_TYPES:
            msg = f"unknown connection type {connection_type!r}"
            raise ValidationError(msg)

        now = self._clock()
        session_data: dict[str, Any] = {
            "session_id": self._activity.session_id,
            "connection_method": "wallet_extension",
            "timestamp": now.isoformat(),
        }
        if self._context.page_url is not None:
            session_data["page_url"] = self._context.page_url
        if self._context.user_agent is not None:
            session_data["user_agent"] = self._context.user_agent
        session_data.update(metadata or {})

        event = ConnectionEvent(
            wallet_address=wallet_address,
            connection_type=connection_type,
            provider=provider or "unknown",
            session_data=session_data,
            verification_result=verification_result,
            notes=f"Wallet {connection_type} via {provider}",
            connection_timestamp=now,
        )

        stored, _ = await asyncio.gather(
            self._source.append(event),
            self._activity.log_wallet_connection(
                wallet_address,
                connection_type,
                {"provider": provider, "verification_result": verification_result},
            ),
            return_exceptions=True,
        )
        if isinstance(stored, BaseException):
            logger.warning(
                "connection_event_store_failed",
                wallet=wallet_address,
                connection_type=connection_type,
                exc_info=stored,
            )
            return False

        logger.info("wallet_connection_tracked", wallet=wallet_address, connection_type=connection_type)
        return True

    async def track_disconnection(self, wallet_address: str, provider: str = "unknown") -> bool:
        return await self.track_connection(wallet_address, "disconnect", provider)

    async def track_verification(
        self,
        wallet_address: str,
        success: bool,
        verification_result: dict[str, Any] | None = None,
        provider: str = "unknown",
    ) -> bool:
        connection_type = "verification_success" if success else "verification_failed"
        return await self.track_connection(wallet_address, connection_type, provider, verification_result)

    async def get_wallet_connections(
        self, wallet_address: str | None = None, limit: int = 100, offset: int = 0
    ) -> list[ConnectionEvent]:
        """Newest first; [] when the source cannot be read."""
        try:
            return await self._source.list_recent(wallet_address, limit, offset)
        except Exception:
            logger.warning("wallet_connections_read_failed", wallet=wallet_address, exc_info=True)
            return []
