"""Additive XP accounting with level derivation.

XP is only ever added, never set: every grant goes through ``add_xp``, which
records an ``xp_gained`` activity so the history of gains can be rebuilt from
the activity log.

The remote write is a single atomic increment
(``UPDATE ... SET total_xp = total_xp + :amount``) rather than a
read-modify-write, so concurrent grants for one wallet cannot lose updates.
When the remote tier is down the grant is applied to the local mirror
instead and reported as degraded.
"""

from __future__ import annotations

from datetime import datetime

import structlog

from walletsync.activity.log import ActivityLog
from walletsync.activity.schemas import XP_GAINED
from walletsync.clock import Clock, utc_now
from walletsync.errors import ValidationError, require_wallet
from walletsync.profiles.backend import XPBackend
from walletsync.storage.base import FallbackKeys, KeyValueFallbackStore
from walletsync.xp.levels import XP_PER_LEVEL, compute_level, level_for
from walletsync.xp.schemas import XP_BUCKETS, XPGrant, XPRecord

logger = structlog.get_logger()


def validate_grant(amount: object, source: object) -> None:
    """Reject non-integer, zero or negative amounts and unknown sources."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        msg = f"XP amount must be a positive integer, got {amount!r}"
        raise ValidationError(msg)
    if source not in XP_BUCKETS:
        msg = f"unknown XP source {source!r}; expected one of {sorted(XP_BUCKETS)}"
        raise ValidationError(msg)


class XPLedger:
    """Grants XP against the remote backend, mirroring locally when it is down."""

    def __init__(
        self,
        backend: XPBackend,
        store: KeyValueFallbackStore,
        activity: ActivityLog,
        *,
        keys: FallbackKeys | None = None,
        xp_per_level: int = XP_PER_LEVEL,
        clock: Clock = utc_now,
    ) -> None:
        self._backend = backend
        self._store = store
        self._activity = activity
        self._keys = keys or FallbackKeys()
        self._xp_per_level = xp_per_level
        self._clock = clock

    def level_progress(self, total_xp: int) -> dict:
        return compute_level(total_xp, self._xp_per_level)

    async def add_xp(self, wallet_address: str, amount: int, source: str = "general") -> XPGrant:
        """Add ``amount`` XP from ``source`` and return the new total and level.

        Raises:
            ValidationError: If the wallet is blank, the amount is not a
                positive integer, or the source is unknown. Nothing is written.
        """
        require_wallet(wallet_address)
        validate_grant(amount, source)
        bucket = XP_BUCKETS[source]

        degraded = False
        try:
            record = await self._backend.increment_xp(wallet_address, amount, bucket)
        except Exception:
            logger.warning("xp_remote_grant_failed", wallet=wallet_address, amount=amount, source=source, exc_info=True)
            record = await self._apply_locally(wallet_address, amount, bucket)
            degraded = True

        leveled_up = record.level > level_for(record.total_xp - amount, self._xp_per_level)
        now = self._clock()
        await self._activity.record(
            wallet_address,
            XP_GAINED,
            {
                "amount": amount,
                "source": source,
                "new_total": record.total_xp,
                "new_level": record.level,
                "gained_at": now.isoformat(),
            },
        )
        logger.info(
            "xp_granted",
            wallet=wallet_address,
            amount=amount,
            source=source,
            total_xp=record.total_xp,
            level=record.level,
            degraded=degraded,
        )
        return XPGrant(
            wallet_address=wallet_address,
            amount=amount,
            source=source,
            total_xp=record.total_xp,
            level=record.level,
            leveled_up=leveled_up,
            degraded=degraded,
        )

    async def get_xp(self, wallet_address: str) -> XPRecord:
        """Current XP from the backend, else the local mirror, else a zeroed record."""
        require_wallet(wallet_address)
        try:
            record = await self._backend.read_xp(wallet_address)
        except Exception:
            logger.warning("xp_read_failed", wallet=wallet_address, exc_info=True)
            return await self._read_local(wallet_address) or self._zeroed(wallet_address)
        return record or self._zeroed(wallet_address)

    async def ensure_xp(self, wallet_address: str) -> tuple[XPRecord, bool]:
        """Make sure an XP record exists. Returns ``(record, degraded)``; never raises."""
        try:
            return await self._backend.ensure_xp(wallet_address), False
        except Exception:
            logger.warning("xp_ensure_failed", wallet=wallet_address, exc_info=True)
        record = await self._read_local(wallet_address)
        if record is None:
            record = self._zeroed(wallet_address)
            await self._write_local(record)
        return record, True

    # ------------------------------------------------------------------
    # Local mirror
    # ------------------------------------------------------------------

    def _zeroed(self, wallet_address: str, now: datetime | None = None) -> XPRecord:
        return XPRecord(wallet_address=wallet_address, updated_at=now or self._clock())

    async def _read_local(self, wallet_address: str) -> XPRecord | None:
        try:
            raw = await self._store.get(self._keys.xp(wallet_address))
        except Exception:
            logger.warning("xp_local_read_failed", wallet=wallet_address, exc_info=True)
            return None
        return XPRecord.model_validate(raw) if raw else None

    async def _write_local(self, record: XPRecord) -> None:
        try:
            await self._store.set(self._keys.xp(record.wallet_address), record.model_dump(mode="json"))
        except Exception:
            logger.warning("xp_local_write_failed", wallet=record.wallet_address, exc_info=True)

    async def _apply_locally(self, wallet_address: str, amount: int, bucket: str | None) -> XPRecord:
        current = await self._read_local(wallet_address) or self._zeroed(wallet_address)
        total = current.total_xp + amount
        update: dict[str, object] = {
            "total_xp": total,
            "level": level_for(total, self._xp_per_level),
            "updated_at": self._clock(),
        }
        if bucket is not None:
            update[bucket] = getattr(current, bucket) + amount
        record = current.model_copy(update=update)
        await self._write_local(record)
        return record
