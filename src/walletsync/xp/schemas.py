"""Pydantic models for XP records."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict

XPSource = Literal["bounty", "course", "streak", "general"]
XP_SOURCES: tuple[str, ...] = ("bounty", "course", "streak", "general")

# Source -> bucket column. "general" only counts toward total_xp.
XP_BUCKETS: dict[str, str | None] = {
    "bounty": "bounty_xp",
    "course": "course_xp",
    "streak": "streak_xp",
    "general": None,
}


class XPRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    wallet_address: str
    total_xp: int = 0
    bounty_xp: int = 0
    course_xp: int = 0
    streak_xp: int = 0
    level: int = 1
    updated_at: datetime | None = None


class XPGrant(BaseModel):
    """Result of an XP grant. ``degraded`` means only the local mirror was updated."""

    wallet_address: str
    amount: int
    source: str
    total_xp: int
    level: int
    leveled_up: bool = False
    degraded: bool = False
