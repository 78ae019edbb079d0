"""SQLAlchemy-backed profile and XP persistence.

One instance wraps one session factory. The orchestrator builds two: one on
the standard connection and one on the privileged (service-role) connection
used by the direct-write tier.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from walletsync.clock import Clock, ensure_utc, utc_now
from walletsync.db.models import User, UserXP
from walletsync.errors import ConflictError, TransientBackendError
from walletsync.profiles.backend import RowProfileBackend, XPBackend
from walletsync.profiles.schemas import UserProfile, merge_profile, new_profile, writable_fields
from walletsync.xp.levels import XP_PER_LEVEL
from walletsync.xp.schemas import XPRecord

logger = structlog.get_logger()

_PROFILE_TIMESTAMPS = ("created_at", "last_active", "last_seen", "updated_at")


def _to_profile(user: User) -> UserProfile:
    profile = UserProfile.model_validate(user)
    # SQLite hands back naive datetimes
    stamps = {name: ensure_utc(value) for name in _PROFILE_TIMESTAMPS if (value := getattr(profile, name))}
    return profile.model_copy(update=stamps)


def _to_xp(row: UserXP) -> XPRecord:
    record = XPRecord.model_validate(row)
    if record.updated_at is not None:
        record = record.model_copy(update={"updated_at": ensure_utc(record.updated_at)})
    return record


class SqlProfileBackend(RowProfileBackend, XPBackend):
    """Profiles and XP in the ``users`` / ``user_xp`` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        name: str = "sql",
        xp_per_level: int = XP_PER_LEVEL,
        clock: Clock = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self.name = name
        self._xp_per_level = xp_per_level
        self._clock = clock

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session, translating driver errors into the walletsync taxonomy."""
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError as exc:
            raise ConflictError(str(exc.orig)) from exc
        except (SQLAlchemyError, OSError) as exc:
            raise TransientBackendError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def read(self, wallet_address: str) -> UserProfile | None:
        async with self._session() as session:
            user = await session.get(User, wallet_address)
            return _to_profile(user) if user is not None else None

    async def update(
        self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False
    ) -> UserProfile | None:
        values = writable_fields(fields, privileged=privileged)
        async with self._session() as session:
            user = await session.get(User, wallet_address)
            if user is None:
                return None
            merged = merge_profile(_to_profile(user), values, self._clock())
            for key in (*values, "updated_at"):
                setattr(user, key, getattr(merged, key))
            await session.commit()
            return _to_profile(user)

    async def insert(self, wallet_address: str, fields: dict[str, Any], *, privileged: bool = False) -> UserProfile:
        profile = new_profile(wallet_address, writable_fields(fields, privileged=privileged), self._clock())
        async with self._session() as session:
            session.add(User(**profile.model_dump()))
            await session.commit()
        logger.info("profile_inserted", wallet=wallet_address, backend=self.name)
        return profile

    async def list_profiles(self, limit: int = 1000) -> list[UserProfile]:
        async with self._session() as session:
            result = await session.execute(
                select(User).order_by(User.last_active.desc().nulls_last()).limit(limit)
            )
            return [_to_profile(user) for user in result.scalars().all()]

    # ------------------------------------------------------------------
    # XP
    # ------------------------------------------------------------------

    async def read_xp(self, wallet_address: str) -> XPRecord | None:
        async with self._session() as session:
            row = await session.get(UserXP, wallet_address)
            return _to_xp(row) if row is not None else None

    async def ensure_xp(self, wallet_address: str) -> XPRecord:
        existing = await self.read_xp(wallet_address)
        if existing is not None:
            return existing
        try:
            async with self._session() as session:
                row = UserXP(
                    wallet_address=wallet_address,
                    total_xp=0,
                    bounty_xp=0,
                    course_xp=0,
                    streak_xp=0,
                    level=1,
                    updated_at=self._clock(),
                )
                session.add(row)
                await session.commit()
                return _to_xp(row)
        except ConflictError:
            # Created concurrently
            record = await self.read_xp(wallet_address)
            if record is None:
                raise
            return record

    async def increment_xp(self, wallet_address: str, amount: int, bucket: str | None) -> XPRecord:
        await self.ensure_xp(wallet_address)
        values: dict[str, Any] = {
            "total_xp": UserXP.total_xp + amount,
            "level": (UserXP.total_xp + amount) // self._xp_per_level + 1,
            "updated_at": self._clock(),
        }
        if bucket is not None:
            values[bucket] = getattr(UserXP, bucket) + amount
        async with self._session() as session:
            await session.execute(
                update(UserXP).where(UserXP.wallet_address == wallet_address).values(**values)
            )
            await session.commit()
            row = await session.get(UserXP, wallet_address, populate_existing=True)
            if row is None:
                msg = f"user_xp row for {wallet_address} vanished during increment"
                raise TransientBackendError(msg)
            return _to_xp(row)
