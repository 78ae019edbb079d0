"""Composition root.

``SyncService`` wires stores, backends and the services that use them. It is
built either from ``Settings`` (``open_service``) or from ready-made parts
(``SyncService.build``), which is what tests use with the in-memory backends.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog

from walletsync.activity.log import ActivityLog
from walletsync.activity.schemas import ClientContext
from walletsync.activity.sink import ActivitySink, SqlActivitySink
from walletsync.admin.resolver import AdminStatusResolver
from walletsync.clock import Clock, utc_now
from walletsync.config import Settings, get_settings
from walletsync.connections.analytics import ConnectionAnalytics
from walletsync.connections.source import ConnectionEventSource, SqlConnectionEventSource
from walletsync.connections.tracker import ConnectionTracker
from walletsync.database import create_engine, create_session_factory
from walletsync.logging_config import setup_logging
from walletsync.profiles.api_backend import HttpProfileBackend
from walletsync.profiles.backend import ProfileBackend, RowProfileBackend, XPBackend
from walletsync.profiles.schemas import ProfileHints
from walletsync.profiles.sql_backend import SqlProfileBackend
from walletsync.redis_client import close_redis, create_redis
from walletsync.storage.base import FallbackKeys, KeyValueFallbackStore
from walletsync.storage.redis_store import RedisFallbackStore
from walletsync.sync.directory import UserDirectory
from walletsync.sync.mirror import LocalProfileMirror
from walletsync.sync.orchestrator import SyncOrchestrator
from walletsync.sync.schemas import SyncResult
from walletsync.sync.strategies import (
    ConflictResolvingTier,
    DirectWriteTier,
    LocalFallbackTier,
    RemoteApiTier,
    SyncTier,
)
from walletsync.xp.ledger import XPLedger
from walletsync.xp.schemas import XPGrant

logger = structlog.get_logger()


class SyncService:
    """Facade over the sync, XP, activity, connection and admin services."""

    def __init__(
        self,
        *,
        orchestrator: SyncOrchestrator,
        xp: XPLedger,
        activity: ActivityLog,
        directory: UserDirectory,
        tracker: ConnectionTracker,
        analytics: ConnectionAnalytics,
        admin: AdminStatusResolver,
        closers: Sequence[Callable[[], Awaitable[Any]]] = (),
    ) -> None:
        self.orchestrator = orchestrator
        self.xp = xp
        self.activity = activity
        self.directory = directory
        self.tracker = tracker
        self.analytics = analytics
        self.admin = admin
        self._closers = list(closers)

    @classmethod
    def build(
        cls,
        *,
        store: KeyValueFallbackStore,
        row_backend: RowProfileBackend,
        xp_backend: XPBackend,
        activity_sink: ActivitySink,
        connection_source: ConnectionEventSource,
        api_backend: ProfileBackend | None = None,
        privileged_backend: ProfileBackend | None = None,
        admin_wallets: Sequence[str] = (),
        admin_cache_ttl_seconds: int = 300,
        keys: FallbackKeys | None = None,
        activity_capacity: int = 100,
        xp_per_level: int = 1000,
        context: ClientContext | None = None,
        clock: Clock = utc_now,
        closers: Sequence[Callable[[], Awaitable[Any]]] = (),
    ) -> SyncService:
        """Wire the services. Tier order: remote API, direct write, conflict-resolving, local.

        Admin lookups read the API (or the row backend) first, then the row
        backend (or the privileged backend).
        """
        keys = keys or FallbackKeys()
        privileged = privileged_backend or row_backend

        tiers: list[SyncTier] = []
        if api_backend is not None:
            tiers.append(RemoteApiTier(api_backend))
        tiers.append(DirectWriteTier(privileged))
        tiers.append(ConflictResolvingTier(row_backend))

        mirror = LocalProfileMirror(store, keys)
        activity = ActivityLog(
            activity_sink,
            store,
            keys=keys,
            capacity=activity_capacity,
            context=context,
            clock=clock,
        )
        xp = XPLedger(xp_backend, store, activity, keys=keys, xp_per_level=xp_per_level, clock=clock)

        return cls(
            orchestrator=SyncOrchestrator(tiers, LocalFallbackTier(mirror), xp, activity, clock=clock),
            xp=xp,
            activity=activity,
            directory=UserDirectory(row_backend, mirror, activity, clock=clock),
            tracker=ConnectionTracker(connection_source, activity, context=context, clock=clock),
            analytics=ConnectionAnalytics(connection_source, clock=clock),
            admin=AdminStatusResolver(
                api_backend or row_backend,
                row_backend if api_backend is not None else privileged,
                allow_list=admin_wallets,
                writer=privileged,
                cache_ttl_seconds=admin_cache_ttl_seconds,
                clock=clock,
            ),
            closers=closers,
        )

    async def sync_user_on_wallet_connect(
        self, wallet_address: str, hints: ProfileHints | dict[str, Any] | None = None
    ) -> SyncResult:
        return await self.orchestrator.sync_user_on_wallet_connect(wallet_address, hints)

    async def add_xp(self, wallet_address: str, amount: int, source: str = "general") -> XPGrant:
        return await self.xp.add_xp(wallet_address, amount, source)

    async def is_admin(self, wallet_address: str) -> bool:
        return await self.admin.is_admin(wallet_address)

    async def aclose(self) -> None:
        """Release pools and clients in reverse order of creation."""
        for close in reversed(self._closers):
            try:
                await close()
            except Exception:
                logger.warning("service_close_failed", exc_info=True)
        self._closers.clear()


@asynccontextmanager
async def open_service(
    settings: Settings | None = None,
    *,
    context: ClientContext | None = None,
) -> AsyncGenerator[SyncService, None]:
    """Build a ``SyncService`` from settings and close its resources on exit."""
    settings = settings or get_settings()
    setup_logging(settings)

    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)
    closers: list[Callable[[], Awaitable[Any]]] = [engine.dispose]

    row_backend = SqlProfileBackend(session_factory, xp_per_level=settings.xp_per_level)
    privileged_backend = row_backend
    if settings.privileged_database_url:
        privileged_engine = create_engine(settings.privileged_database_url)
        closers.append(privileged_engine.dispose)
        privileged_backend = SqlProfileBackend(
            create_session_factory(privileged_engine),
            name="sql_privileged",
            xp_per_level=settings.xp_per_level,
        )

    redis = create_redis(settings.redis_url)
    closers.append(lambda: close_redis(redis))

    api_backend = None
    if settings.profile_api_base_url:
        http_client = httpx.AsyncClient()
        closers.append(http_client.aclose)
        api_backend = HttpProfileBackend(
            settings.profile_api_base_url,
            timeout=settings.profile_api_timeout_seconds,
            client=http_client,
        )

    service = SyncService.build(
        store=RedisFallbackStore(redis),
        row_backend=row_backend,
        xp_backend=row_backend,
        activity_sink=SqlActivitySink(session_factory),
        connection_source=SqlConnectionEventSource(session_factory),
        api_backend=api_backend,
        privileged_backend=privileged_backend,
        admin_wallets=settings.admin_wallets,
        admin_cache_ttl_seconds=settings.admin_cache_ttl_seconds,
        keys=FallbackKeys(settings.fallback_key_prefix),
        activity_capacity=settings.activity_buffer_capacity,
        xp_per_level=settings.xp_per_level,
        context=context,
        closers=closers,
    )
    logger.info(
        "walletsync_started",
        environment=settings.environment,
        tiers=service.orchestrator.tier_names,
    )
    try:
        yield service
    finally:
        await service.aclose()
        logger.info("walletsync_stopped")
