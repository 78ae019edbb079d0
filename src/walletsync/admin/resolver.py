"""Admin status resolution.

Allow-listed wallets are admins without any I/O. Everyone else is looked up
through the primary read path, then the secondary one. Remote answers are
cached per resolver for ``cache_ttl_seconds``. Any unresolved failure means
"not an admin".
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta

import structlog

from walletsync.clock import Clock, utc_now
from walletsync.profiles.backend import ProfileBackend
from walletsync.profiles.schemas import UserProfile

logger = structlog.get_logger()

DEFAULT_CACHE_TTL_SECONDS = 300


class AdminStatusResolver:
    def __init__(
        self,
        primary: ProfileBackend,
        secondary: ProfileBackend | None = None,
        *,
        allow_list: Iterable[str] = (),
        writer: ProfileBackend | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._primary = primary
        self._secondary = secondary
        self._allow_list = frozenset(allow_list)
        self._writer = writer or primary
        self._ttl = timedelta(seconds=cache_ttl_seconds)
        self._clock = clock
        self._cache: dict[str, tuple[bool, datetime]] = {}

    async def is_admin(self, wallet_address: str) -> bool:
        """Never raises. Fails closed."""
        if not wallet_address:
            return False
        if wallet_address in self._allow_list:
            return True

        cached = self._cache.get(wallet_address)
        if cached is not None and self._clock() - cached[1] < self._ttl:
            return cached[0]

        try:
            profile = await self._lookup(wallet_address)
        except Exception:
            logger.warning("admin_lookup_failed", wallet=wallet_address, exc_info=True)
            return cached[0] if cached is not None else False

        is_admin = bool(profile is not None and profile.is_admin)
        self._cache[wallet_address] = (is_admin, self._clock())
        return is_admin

    async def _lookup(self, wallet_address: str) -> UserProfile | None:
        try:
            return await self._primary.read(wallet_address)
        except Exception:
            if self._secondary is None:
                raise
            logger.warning("admin_primary_lookup_failed", wallet=wallet_address, exc_info=True)
        return await self._secondary.read(wallet_address)

    async def set_admin_status(self, target_wallet: str, is_admin: bool, acting_wallet: str) -> bool:
        """Grant or revoke admin. Only an admin may do this. Never raises."""
        if not target_wallet:
            return False
        if not await self.is_admin(acting_wallet):
            logger.warning("admin_status_change_denied", target=target_wallet, acting=acting_wallet)
            return False
        try:
            await self._writer.upsert(target_wallet, {"is_admin": is_admin}, privileged=True)
        except Exception:
            logger.warning("admin_status_change_failed", target=target_wallet, exc_info=True)
            return False
        self.clear_cache(target_wallet)
        logger.info("admin_status_changed", target=target_wallet, is_admin=is_admin, acting=acting_wallet)
        return True

    def clear_cache(self, wallet_address: str | None = None) -> None:
        if wallet_address is None:
            self._cache.clear()
        else:
            self._cache.pop(wallet_address, None)

    def is_cache_valid(self, wallet_address: str) -> bool:
        cached = self._cache.get(wallet_address)
        return cached is not None and self._clock() - cached[1] < self._ttl
