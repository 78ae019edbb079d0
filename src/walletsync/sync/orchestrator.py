"""Wallet-connect sync with ordered fallback tiers.

Tiers are attempted sequentially, each at most once, and the first success
wins. No tier retries and there is no backoff between tiers. When every
remote tier fails, the local fallback tier (always last) merges the profile
into the local mirror and returns it, so the caller always gets a profile.

Only bad input (a blank wallet address or malformed hints) raises.
Everything else degrades and is reported through ``SyncResult``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError as PydanticValidationError

from walletsync.activity.log import ActivityLog
from walletsync.activity.schemas import WALLET_CONNECTED
from walletsync.clock import Clock, utc_now
from walletsync.errors import ValidationError, require_wallet
from walletsync.profiles.schemas import ProfileHints, UserProfile, new_profile, writable_fields
from walletsync.sync.schemas import IN_MEMORY_TIER, SyncResult, TierFailure
from walletsync.sync.strategies import LocalFallbackTier, SyncTier
from walletsync.xp.ledger import XPLedger
from walletsync.xp.schemas import XPRecord

logger = structlog.get_logger()


def _failure_reason(exc: BaseException) -> str:
    cause = exc.__cause__
    if cause is not None:
        return f"{exc} (caused by {type(cause).__name__})"
    return str(exc) or type(exc).__name__


def _normalize_hints(hints: ProfileHints | dict[str, Any] | None) -> ProfileHints:
    if hints is None:
        return ProfileHints()
    if isinstance(hints, ProfileHints):
        return hints
    try:
        return ProfileHints.model_validate(hints)
    except PydanticValidationError as exc:
        msg = f"invalid profile hints: {exc.error_count()} error(s)"
        raise ValidationError(msg) from exc


class SyncOrchestrator:
    """Drives the tier chain for ``sync_user_on_wallet_connect``."""

    def __init__(
        self,
        tiers: Sequence[SyncTier],
        fallback: LocalFallbackTier,
        xp: XPLedger,
        activity: ActivityLog,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._tiers = list(tiers)
        self._fallback = fallback
        self._xp = xp
        self._activity = activity
        self._clock = clock

    @property
    def tier_names(self) -> list[str]:
        return [tier.name for tier in (*self._tiers, self._fallback)]

    async def sync_user_on_wallet_connect(
        self,
        wallet_address: str,
        hints: ProfileHints | dict[str, Any] | None = None,
    ) -> SyncResult:
        """Ensure a profile and XP record exist for the wallet and log the connection.

        Raises:
            ValidationError: If ``wallet_address`` is blank or ``hints`` is malformed.
        """
        require_wallet(wallet_address)
        profile_hints = _normalize_hints(hints)
        now = self._clock()
        failures: list[TierFailure] = []

        try:
            return await self._sync(wallet_address, profile_hints, now, failures)
        except Exception as exc:
            logger.error("sync_failed_unexpectedly", wallet=wallet_address, exc_info=True)
            failures.append(TierFailure(tier=IN_MEMORY_TIER, error=type(exc).__name__, reason=_failure_reason(exc)))
            profile = self._synthesize(wallet_address, profile_hints, now)
            return SyncResult(
                profile=profile,
                xp=XPRecord(wallet_address=wallet_address, updated_at=now),
                tier=IN_MEMORY_TIER,
                degraded=True,
                xp_degraded=True,
                failures=failures,
            )

    async def _sync(
        self, wallet_address: str, hints: ProfileHints, now: datetime, failures: list[TierFailure]
    ) -> SyncResult:
        fields = {
            **hints.fields(),
            "last_active": now,
            "last_seen": now,
            "updated_at": now,
        }
        profile: UserProfile | None = None
        tier_name = self._fallback.name

        for tier in self._tiers:
            try:
                profile = await tier.sync(wallet_address, fields, now)
            except Exception as exc:
                logger.warning(
                    "sync_tier_failed",
                    tier=tier.name,
                    wallet=wallet_address,
                    error=type(exc).__name__,
                    exc_info=True,
                )
                failures.append(TierFailure(tier=tier.name, error=type(exc).__name__, reason=_failure_reason(exc)))
                continue
            tier_name = tier.name
            logger.info("sync_tier_succeeded", tier=tier.name, wallet=wallet_address, failed_tiers=len(failures))
            break

        if profile is None:
            profile = await self._fallback.sync(wallet_address, fields, now)
            logger.warning("sync_degraded_to_local", wallet=wallet_address, failed_tiers=len(failures))

        xp_record, xp_degraded = await self._xp.ensure_xp(wallet_address)

        outcome = await self._activity.record(
            wallet_address,
            WALLET_CONNECTED,
            {
                "wallet_address": wallet_address,
                "connected_at": now.isoformat(),
                "profile_exists": True,
                "sync_tier": tier_name,
            },
        )

        return SyncResult(
            profile=profile,
            xp=xp_record,
            tier=tier_name,
            degraded=tier_name == self._fallback.name,
            xp_degraded=xp_degraded,
            failures=failures,
            activity=outcome,
        )

    @staticmethod
    def _synthesize(wallet_address: str, hints: ProfileHints, now: datetime) -> UserProfile:
        return new_profile(wallet_address, writable_fields(hints.fields(), privileged=False), now)
