"""In-process profile and XP backend for tests and local tooling."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from walletsync.clock import Clock, utc_now
from walletsync.errors import ConflictError
from walletsync.profiles.backend import RowProfileBackend, XPBackend
from walletsync.profiles.schemas import UserProfile, merge_profile, new_profile, writable_fields
from walletsync.xp.levels import XP_PER_LEVEL, level_for
from walletsync.xp.schemas import XPRecord

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class InMemoryProfileBackend(RowProfileBackend, XPBackend):
    """Dict-backed backend with the same merge and conflict rules as the SQL one."""

    def __init__(self, *, name: str = "memory", xp_per_level: int = XP_PER_LEVEL, clock: Clock = utc_now) -> None:
        self.name = name
        self._xp_per_level = xp_per_level
        self._clock = clock
        self.profiles: dict[str, UserProfile] = {}
        self.xp: dict[str, XPRecord] = {}

    async def read(self, wallet_address: str) -> UserProfile | None:
        return self.profiles.get(wallet_address)

    async def update(
        self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False
    ) -> UserProfile | None:
        existing = self.profiles.get(wallet_address)
        if existing is None:
            return None
        merged = merge_profile(existing, writable_fields(fields, privileged=privileged), self._clock())
        self.profiles[wallet_address] = merged
        return merged

    async def insert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        if wallet_address in self.profiles:
            msg = f"profile for {wallet_address} already exists"
            raise ConflictError(msg)
        profile = new_profile(wallet_address, writable_fields(fields, privileged=privileged), self._clock())
        self.profiles[wallet_address] = profile
        return profile

    async def list_profiles(self, limit: int = 1000) -> list[UserProfile]:
        ordered = sorted(self.profiles.values(), key=lambda p: p.last_active or _EPOCH, reverse=True)
        return ordered[:limit]

    async def read_xp(self, wallet_address: str) -> XPRecord | None:
        return self.xp.get(wallet_address)

    async def ensure_xp(self, wallet_address: str) -> XPRecord:
        if wallet_address not in self.xp:
            self.xp[wallet_address] = XPRecord(wallet_address=wallet_address, updated_at=self._clock())
        return self.xp[wallet_address]

    async def increment_xp(self, wallet_address: str, amount: int, bucket: str | None) -> XPRecord:
        current = await self.ensure_xp(wallet_address)
        total = current.total_xp + amount
        update: dict[str, Any] = {
            "total_xp": total,
            "level": level_for(total, self._xp_per_level),
            "updated_at": self._clock(),
        }
        if bucket is not None:
            update[bucket] = getattr(current, bucket) + amount
        record = current.model_copy(update=update)
        self.xp[wallet_address] = record
        return record
