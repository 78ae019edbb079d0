"""Profile reads and explicit profile writes, with the local mirror as fallback."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import structlog

from walletsync.activity.log import ActivityLog
from walletsync.activity.schemas import PROFILE_UPDATED
from walletsync.clock import Clock, ensure_utc, utc_now
from walletsync.errors import ProfileNotFoundError, ValidationError, require_wallet
from walletsync.profiles.backend import RowProfileBackend
from walletsync.profiles.schemas import UserProfile, merge_profile, writable_fields
from walletsync.sync.mirror import LocalProfileMirror
from walletsync.sync.schemas import UserStats

logger = structlog.get_logger()

ACTIVE_WINDOW = timedelta(hours=24)


class UserDirectory:
    def __init__(
        self,
        backend: RowProfileBackend,
        mirror: LocalProfileMirror,
        activity: ActivityLog,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._backend = backend
        self._mirror = mirror
        self._activity = activity
        self._clock = clock

    async def get_profile(self, wallet_address: str) -> UserProfile | None:
        """Remote profile, else the mirrored one, else None."""
        require_wallet(wallet_address)
        try:
            return await self._backend.read(wallet_address)
        except Exception:
            logger.warning("profile_read_failed", wallet=wallet_address, exc_info=True)
        try:
            return await self._mirror.get(wallet_address)
        except Exception:
            logger.warning("local_mirror_read_failed", wallet=wallet_address, exc_info=True)
            return None

    async def update_last_active(self, wallet_address: str) -> bool:
        """Stamp last_active/last_seen. Returns True if the remote row was updated."""
        require_wallet(wallet_address)
        now = self._clock()
        stamps = {"last_active": now, "last_seen": now, "updated_at": now}
        try:
            if await self._backend.update(wallet_address, stamps) is not None:
                return True
            logger.info("last_active_no_profile", wallet=wallet_address)
            return False
        except Exception:
            logger.warning("last_active_remote_failed", wallet=wallet_address, exc_info=True)

        try:
            existing = await self._mirror.get(wallet_address)
            if existing is not None:
                await self._mirror.put(merge_profile(existing, stamps, now))
        except Exception:
            logger.warning("last_active_local_failed", wallet=wallet_address, exc_info=True)
        return False

    async def update_user_profile(self, wallet_address: str, updates: dict[str, Any]) -> UserProfile:
        """Merge ``updates`` into an existing profile and record a profile_updated activity.

        This is an explicit user action, so backend failures propagate.

        Raises:
            ValidationError: If the wallet is blank or no writable field is given.
            ProfileNotFoundError: If the wallet has no profile.
            BackendError: If the backend write fails.
        """
        require_wallet(wallet_address)
        fields = writable_fields(updates, privileged=False)
        if not fields:
            msg = "no writable profile fields in update"
            raise ValidationError(msg)

        now = self._clock()
        profile = await self._backend.update(wallet_address, {**fields, "updated_at": now})
        if profile is None:
            msg = f"no profile for wallet {wallet_address}"
            raise ProfileNotFoundError(msg)

        await self._activity.record(
            wallet_address,
            PROFILE_UPDATED,
            {"updates": fields, "updated_at": now.isoformat()},
        )
        return profile

    async def get_all_users(self) -> list[UserProfile]:
        """All profiles, most recently active first. Mirror on failure, [] when both fail."""
        try:
            return await self._backend.list_profiles()
        except Exception:
            logger.warning("list_profiles_remote_failed", exc_info=True)
        try:
            return await self._mirror.all()
        except Exception:
            logger.warning("list_profiles_local_failed", exc_info=True)
            return []

    async def get_user_stats(self) -> UserStats:
        source = "remote"
        try:
            users = await self._backend.list_profiles()
        except Exception:
            logger.warning("user_stats_remote_failed", exc_info=True)
            source = "local"
            try:
                users = await self._mirror.all()
            except Exception:
                logger.warning("user_stats_local_failed", exc_info=True)
                return UserStats(source="none", available=False)

        cutoff = self._clock() - ACTIVE_WINDOW
        return UserStats(
            total_users=len(users),
            active_users=sum(1 for u in users if u.last_active and ensure_utc(u.last_active) > cutoff),
            customized_profiles=sum(1 for u in users if u.has_custom_display_name),
            source=source,
        )
