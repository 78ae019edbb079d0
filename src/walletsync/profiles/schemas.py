"""Pydantic models for user profiles and profile merge rules."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

# Fields a caller may write. Timestamps are stamped by the writer.
WRITABLE_FIELDS = frozenset({
    "display_name",
    "squad",
    "profile_completed",
    "squad_test_completed",
    "placement_test_completed",
    "is_admin",
    "bio",
    "profile_picture",
    "username",
})
TIMESTAMP_FIELDS = frozenset({"last_active", "last_seen", "updated_at"})
PRIVILEGED_FIELDS = frozenset({"is_admin"})


def synthesize_display_name(wallet_address: str) -> str:
    """Placeholder display name derived from the wallet key."""
    return f"User {wallet_address[:6]}..."


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    wallet_address: str
    display_name: str | None = None
    squad: str | None = None
    profile_completed: bool = False
    squad_test_completed: bool = False
    placement_test_completed: bool = False
    is_admin: bool = False
    bio: str | None = None
    profile_picture: str | None = None
    username: str | None = None
    created_at: datetime | None = None
    last_active: datetime | None = None
    last_seen: datetime | None = None
    updated_at: datetime | None = None

    @property
    def has_custom_display_name(self) -> bool:
        return bool(self.display_name) and self.display_name != synthesize_display_name(self.wallet_address)


class ProfileHints(BaseModel):
    """Optional values supplied by the caller on sync. Only set fields are written.

    There is no ``is_admin`` here: admin changes go through ``AdminStatusResolver``.
    """

    display_name: str | None = None
    squad: str | None = None
    profile_completed: bool | None = None
    squad_test_completed: bool | None = None
    placement_test_completed: bool | None = None
    bio: str | None = None
    profile_picture: str | None = None
    username: str | None = None

    def fields(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def writable_fields(fields: dict[str, Any], *, privileged: bool) -> dict[str, Any]:
    """Filter ``fields`` down to what this caller may write.

    Non-privileged callers can never change ``is_admin``, so an existing admin
    flag is never downgraded by an ordinary sync.
    """
    allowed = WRITABLE_FIELDS | TIMESTAMP_FIELDS
    if not privileged:
        allowed = allowed - PRIVILEGED_FIELDS
    return {key: value for key, value in fields.items() if key in allowed}


def new_profile(wallet_address: str, fields: dict[str, Any], now: datetime) -> UserProfile:
    """Build a first-time profile: defaults, then ``fields`` on top."""
    values: dict[str, Any] = {
        "wallet_address": wallet_address,
        "display_name": synthesize_display_name(wallet_address),
        "created_at": now,
        "last_active": now,
        "last_seen": now,
        "updated_at": now,
    }
    values.update({key: value for key, value in fields.items() if value is not None})
    return UserProfile(**values)


def merge_profile(existing: UserProfile, fields: dict[str, Any], now: datetime) -> UserProfile:
    """Apply ``fields`` over an existing profile. Untouched fields keep their values."""
    update = {key: value for key, value in fields.items() if value is not None}
    update.setdefault("updated_at", now)
    return existing.model_copy(update=update)


def profile_completion(profile: UserProfile | None) -> int:
    """Percentage of optional profile details the user has filled in."""
    if profile is None:
        return 0
    checks = [
        profile.has_custom_display_name,
        bool(profile.squad),
        bool(profile.bio),
        bool(profile.profile_picture),
    ]
    return round(sum(checks) / len(checks) * 100)


def squad_status(profile: UserProfile | None) -> str:
    if profile is None:
        return "Not placed"
    if profile.placement_test_completed and profile.squad:
        return f"Placed in {profile.squad}"
    if profile.squad_test_completed:
        return "Test completed, awaiting placement"
    return "Not tested"
