"""Remote persistence interfaces for profiles and XP."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from walletsync.errors import ConflictError
from walletsync.profiles.schemas import UserProfile
from walletsync.xp.schemas import XPRecord


class ProfileBackend(ABC):
    """Create/read/update of a profile record keyed by wallet address."""

    name: str = "profile_backend"

    @abstractmethod
    async def read(self, wallet_address: str) -> UserProfile | None:
        """Return the profile, or None when the wallet has none."""

    @abstractmethod
    async def upsert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        """Create or merge-update the profile. Unset fields are left untouched."""

    @abstractmethod
    async def list_profiles(self, limit: int = 1000) -> list[UserProfile]:
        """All profiles, most recently active first."""


class RowProfileBackend(ProfileBackend):
    """A backend with row-level update and insert.

    ``upsert`` is composed from the two: update first, insert when no row
    matched, and on a unique-key conflict (another writer inserted in
    between) fall back to update again.
    """

    @abstractmethod
    async def update(
        self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False
    ) -> UserProfile | None:
        """Merge ``fields`` into an existing row. Returns None when no row matched."""

    @abstractmethod
    async def insert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        """Insert a new row. Raises ConflictError when the wallet already exists."""

    async def upsert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        profile = await self.update(wallet_address, fields, privileged=privileged)
        if profile is not None:
            return profile
        try:
            return await self.insert(wallet_address, fields, privileged=privileged)
        except ConflictError:
            profile = await self.update(wallet_address, fields, privileged=privileged)
            if profile is None:
                raise
            return profile


class XPBackend(ABC):
    """Storage of per-wallet XP totals."""

    @abstractmethod
    async def read_xp(self, wallet_address: str) -> XPRecord | None:
        """Return the XP record, or None when absent."""

    @abstractmethod
    async def ensure_xp(self, wallet_address: str) -> XPRecord:
        """Return the XP record, creating a zeroed one (level 1) if absent."""

    @abstractmethod
    async def increment_xp(self, wallet_address: str, amount: int, bucket: str | None) -> XPRecord:
        """Atomically add ``amount`` to total_xp (and ``bucket``), recompute level, return the new record."""
