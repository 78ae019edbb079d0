"""Pydantic models returned by the sync layer."""

from __future__ import annotations

from pydantic import BaseModel

from walletsync.activity.schemas import ActivityOutcome
from walletsync.profiles.schemas import UserProfile
from walletsync.xp.schemas import XPRecord

LOCAL_FALLBACK_TIER = "local_fallback"
IN_MEMORY_TIER = "in_memory"


class TierFailure(BaseModel):
    tier: str
    error: str
    reason: str


class SyncResult(BaseModel):
    """Outcome of a wallet-connect sync.

    ``tier`` names the strategy that produced ``profile``. ``degraded`` is
    True when no remote tier succeeded and the profile comes from the local
    mirror (or was synthesized in memory); it may be stale.
    """

    profile: UserProfile
    xp: XPRecord
    tier: str
    degraded: bool
    xp_degraded: bool = False
    failures: list[TierFailure] = []
    activity: ActivityOutcome = "dropped"

    @property
    def total_xp(self) -> int:
        return self.xp.total_xp

    @property
    def level(self) -> int:
        return self.xp.level


class UserStats(BaseModel):
    total_users: int = 0
    active_users: int = 0
    customized_profiles: int = 0
    source: str = "remote"
    available: bool = True
