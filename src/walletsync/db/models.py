"""ORM models for the user-state tables.

Column names are the persisted contract shared with the web client and must
not be renamed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from walletsync.db.base import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table. One row per wallet."""

    __tablename__ = "users"

    wallet_address: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    squad: Mapped[str | None] = mapped_column(String(64), nullable=True)
    profile_completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    squad_test_completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    placement_test_completed: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false")
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    profile_picture: Mapped[str | None] = mapped_column(Text, nullable=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_active: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_seen: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# XP
# ---------------------------------------------------------------------------


class UserXP(Base):
    """Maps to the 'user_xp' table. Denormalized XP totals per wallet."""

    __tablename__ = "user_xp"

    wallet_address: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    bounty_xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    course_xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    streak_xp: Mapped[int] = mapped_column(Integer, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


class UserActivity(Base):
    """Append-only activity events."""

    __tablename__ = "user_activity"
    __table_args__ = (Index("idx_user_activity_wallet_created", "wallet_address", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False)
    activity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Wallet connections
# ---------------------------------------------------------------------------


class WalletConnection(Base):
    """Append-only wallet connection events feeding connection analytics."""

    __tablename__ = "wallet_connections"
    __table_args__ = (
        Index("idx_wallet_connections_ts", "connection_timestamp"),
        Index("idx_wallet_connections_wallet", "wallet_address", "connection_timestamp"),
    )

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(128), nullable=False)
    connection_type: Mapped[str] = mapped_column(String(32), nullable=False)
    provider: Mapped[str] = mapped_column(String(32), nullable=False, default="unknown")
    session_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    verification_result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    connection_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
