"""Pydantic models for activity events."""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ActivityOutcome = Literal["remote", "buffered", "dropped"]

# Activity types emitted by this package. The column is free-form text, so
# callers may record others.
PROFILE_UPDATE = "profile_update"
PROFILE_UPDATED = "profile_updated"
SQUAD_ASSIGNMENT = "squad_assignment"
COURSE_START = "course_start"
COURSE_COMPLETE = "course_complete"
COURSE_APPROVAL = "course_approval"
XP_GAINED = "xp_gained"
WALLET_CONNECTED = "wallet_connected"
BADGE_EARNED = "badge_earned"
LOGIN = "login"

COURSE_ACTIVITY_TYPES = frozenset({COURSE_START, COURSE_COMPLETE, COURSE_APPROVAL})


class ActivityEvent(BaseModel):
    """Immutable, append-only record of something a wallet did."""

    model_config = ConfigDict(frozen=True)

    wallet_address: str
    activity_type: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ClientContext(BaseModel):
    """Where the events of a session come from. Attached to event metadata."""

    page_url: str | None = None
    user_agent: str | None = None


def new_session_id() -> str:
    """One id per client session, used to tag every event the session emits."""
    return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
