"""Connection analytics over a trailing window of connection events.

Read-only. Any failure to read the event source degrades to a zeroed
summary with ``available=False`` instead of raising.

Provider ties: when two providers have the same count, the one whose first
event in the window came earliest wins.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta

import structlog

from walletsync.clock import Clock, utc_now
from walletsync.connections.schemas import (
    SUCCESSFUL_CONNECTION_TYPES,
    TIME_RANGES,
    VERIFICATION_TYPES,
    AnalyticsSummary,
    ConnectionEvent,
    ProviderShare,
    VerificationStats,
)
from walletsync.connections.source import ConnectionEventSource
from walletsync.connections.trends import connection_trends
from walletsync.errors import ValidationError

logger = structlog.get_logger()

RECENT_CONNECTIONS = 10


def _percent(part: int, whole: int) -> float:
    return part * 100 / whole if whole else 0.0


def summarize(events: list[ConnectionEvent], window_days: int, now: datetime | None = None) -> AnalyticsSummary:
    """Pure aggregation of ``events`` (any order) into a summary."""
    now = now or utc_now()
    chronological = sorted(events, key=lambda event: event.connection_timestamp)
    total = len(chronological)

    # Counter keeps first-seen order, so max() breaks ties by earliest provider
    provider_counts: Counter[str] = Counter(event.provider or "unknown" for event in chronological)
    most_used = max(provider_counts, key=provider_counts.__getitem__) if provider_counts else "unknown"
    ranked = sorted(provider_counts.items(), key=lambda item: -item[1])

    verifications = [event for event in chronological if event.connection_type in VERIFICATION_TYPES]
    verified = sum(1 for event in verifications if event.connection_type == "verification_success")
    successful = sum(1 for event in chronological if event.connection_type in SUCCESSFUL_CONNECTION_TYPES)

    return AnalyticsSummary(
        window_days=window_days,
        total_connections=total,
        unique_wallets=len({event.wallet_address for event in chronological}),
        connection_success_rate=_percent(successful, total),
        most_used_provider=most_used,
        provider_breakdown={
            provider: ProviderShare(count=count, percentage=_percent(count, total)) for provider, count in ranked
        },
        verification_stats=VerificationStats(
            total=len(verifications),
            successful=verified,
            failed=len(verifications) - verified,
            success_rate=_percent(verified, len(verifications)),
        ),
        connection_trends=connection_trends(
            (event.connection_timestamp for event in chronological), now.date(), window_days
        ),
        recent_connections=list(reversed(chronological))[:RECENT_CONNECTIONS],
    )


class ConnectionAnalytics:
    def __init__(self, source: ConnectionEventSource, *, clock: Clock = utc_now) -> None:
        self._source = source
        self._clock = clock

    async def compute_analytics(self, window_days: int) -> AnalyticsSummary:
        """Analytics over events with ``connection_timestamp >= now - window_days``.

        Raises:
            ValidationError: If ``window_days`` is not a positive integer.
        """
        if isinstance(window_days, bool) or not isinstance(window_days, int) or window_days <= 0:
            msg = f"window_days must be a positive integer, got {window_days!r}"
            raise ValidationError(msg)

        now = self._clock()
        try:
            events = await self._source.list_since(now - timedelta(days=window_days))
        except Exception:
            logger.warning("connection_analytics_unavailable", window_days=window_days, exc_info=True)
            return AnalyticsSummary(window_days=window_days, available=False)
        return summarize(events, window_days, now)

    async def compute_analytics_for_range(self, time_range: str = "30d") -> AnalyticsSummary:
        """``compute_analytics`` for a named range: 24h, 7d, 30d or 90d."""
        if time_range not in TIME_RANGES:
            msg = f"unknown time range {time_range!r}; expected one of {list(TIME_RANGES)}"
            raise ValidationError(msg)
        return await self.compute_analytics(TIME_RANGES[time_range])
