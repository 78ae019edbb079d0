"""Pydantic models for wallet connection events and analytics."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ConnectionType = Literal["connect", "disconnect", "verification_success", "verification_failed", "reconnect", "error"]
CONNECTION_TYPES: frozenset[str] = frozenset(
    {"connect", "disconnect", "verification_success", "verification_failed", "reconnect", "error"}
)
SUCCESSFUL_CONNECTION_TYPES: frozenset[str] = frozenset({"connect", "verification_success", "reconnect"})
VERIFICATION_TYPES: frozenset[str] = frozenset({"verification_success", "verification_failed"})

# Named analytics windows -> days
TIME_RANGES: dict[str, int] = {"24h": 1, "7d": 7, "30d": 30, "90d": 90}


class ConnectionEvent(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    wallet_address: str
    connection_type: ConnectionType
    provider: str = "unknown"
    session_data: dict[str, Any] = Field(default_factory=dict)
    verification_result: dict[str, Any] | None = None
    notes: str | None = None
    connection_timestamp: datetime


# --- Analytics ---


class ProviderShare(BaseModel):
    count: int
    percentage: float


class VerificationStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    success_rate: float = 0.0


class TrendPoint(BaseModel):
    label: str
    start: date
    end: date
    connections: int


class ConnectionTrends(BaseModel):
    daily: list[TrendPoint] = []
    weekly: list[TrendPoint] = []
    monthly: list[TrendPoint] = []


class AnalyticsSummary(BaseModel):
    """Connection analytics over a trailing window.

    ``available`` is False when the event source could not be read; the
    zeroed counters then mean "unknown", not "no activity".
    """

    window_days: int
    available: bool = True
    total_connections: int = 0
    unique_wallets: int = 0
    connection_success_rate: float = 0.0
    most_used_provider: str = "unknown"
    provider_breakdown: dict[str, ProviderShare] = {}
    verification_stats: VerificationStats = VerificationStats()
    connection_trends: ConnectionTrends = ConnectionTrends()
    recent_connections: list[ConnectionEvent] = []
