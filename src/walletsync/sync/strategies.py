"""Sync tiers.

Each tier turns ``(wallet, fields)`` into a stored profile or raises. The
orchestrator walks them in order; the order is configuration, not code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

import structlog

from walletsync.errors import ConflictError
from walletsync.profiles.backend import ProfileBackend, RowProfileBackend
from walletsync.profiles.schemas import UserProfile, merge_profile, new_profile, writable_fields
from walletsync.sync.mirror import LocalProfileMirror
from walletsync.sync.schemas import LOCAL_FALLBACK_TIER

logger = structlog.get_logger()


class SyncTier(ABC):
    name: str = "tier"

    @abstractmethod
    async def sync(self, wallet_address: str, fields: dict[str, Any], now: datetime) -> UserProfile:
        """Persist ``fields`` for the wallet and return the stored profile."""


class RemoteApiTier(SyncTier):
    """Create/ensure through the web app's own profile endpoint."""

    name = "remote_api"

    def __init__(self, backend: ProfileBackend) -> None:
        self._backend = backend

    async def sync(self, wallet_address: str, fields: dict[str, Any], now: datetime) -> UserProfile:
        return await self._backend.upsert(wallet_address, fields)


class DirectWriteTier(SyncTier):
    """Upsert straight into the database over the privileged connection."""

    name = "direct_write"

    def __init__(self, backend: ProfileBackend) -> None:
        self._backend = backend

    async def sync(self, wallet_address: str, fields: dict[str, Any], now: datetime) -> UserProfile:
        return await self._backend.upsert(wallet_address, fields, privileged=True)


class ConflictResolvingTier(SyncTier):
    """UPDATE by wallet; INSERT if no row matched; UPDATE again on a duplicate-key insert."""

    name = "conflict_resolving"

    def __init__(self, backend: RowProfileBackend) -> None:
        self._backend = backend

    async def sync(self, wallet_address: str, fields: dict[str, Any], now: datetime) -> UserProfile:
        profile = await self._backend.update(wallet_address, fields)
        if profile is not None:
            return profile
        try:
            return await self._backend.insert(wallet_address, fields)
        except ConflictError:
            logger.info("sync_insert_conflict_resolved_by_update", wallet=wallet_address)
            profile = await self._backend.update(wallet_address, fields)
            if profile is None:
                raise
            return profile


class LocalFallbackTier(SyncTier):
    """Backstop: merge into the local mirror and return. Never raises."""

    name = LOCAL_FALLBACK_TIER

    def __init__(self, mirror: LocalProfileMirror) -> None:
        self._mirror = mirror

    async def sync(self, wallet_address: str, fields: dict[str, Any], now: datetime) -> UserProfile:
        values = writable_fields(fields, privileged=False)
        existing: UserProfile | None = None
        try:
            existing = await self._mirror.get(wallet_address)
        except Exception:
            logger.warning("local_mirror_read_failed", wallet=wallet_address, exc_info=True)

        if existing is not None:
            profile = merge_profile(existing, values, now)
        else:
            profile = new_profile(wallet_address, values, now)

        try:
            await self._mirror.put(profile)
        except Exception:
            logger.warning("local_mirror_write_failed", wallet=wallet_address, exc_info=True)
        return profile
