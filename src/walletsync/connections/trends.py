"""Dense time-bucketed connection counts.

Every bucket in the window is present, including empty ones. All bucketing
is done on UTC calendar dates.
"""

from __future__ import annotations

import calendar
import math
from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from walletsync.clock import ensure_utc
from walletsync.connections.schemas import ConnectionTrends, TrendPoint


def _count_by_date(timestamps: Iterable[datetime]) -> Counter[date]:
    return Counter(ensure_utc(ts).date() for ts in timestamps)


def _count_between(by_date: Counter[date], start: date, end: date) -> int:
    return sum(count for day, count in by_date.items() if start <= day <= end)


def daily_trend(by_date: Counter[date], today: date, days: int) -> list[TrendPoint]:
    """One bucket per day, oldest first, ending today."""
    points = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        points.append(TrendPoint(label=day.isoformat(), start=day, end=day, connections=by_date.get(day, 0)))
    return points


def weekly_trend(by_date: Counter[date], today: date, days: int) -> list[TrendPoint]:
    """Seven-day buckets ending today, oldest first."""
    points = []
    for offset in range(math.ceil(days / 7) - 1, -1, -1):
        end = today - timedelta(days=7 * offset)
        start = end - timedelta(days=6)
        points.append(
            TrendPoint(
                label=f"{start.isoformat()} to {end.isoformat()}",
                start=start,
                end=end,
                connections=_count_between(by_date, start, end),
            )
        )
    return points


def _shift_month(year: int, month: int, back: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) - back
    return index // 12, index % 12 + 1


def monthly_trend(by_date: Counter[date], today: date, days: int) -> list[TrendPoint]:
    """Calendar-month buckets anchored to the current month, oldest first."""
    points = []
    for offset in range(math.ceil(days / 30) - 1, -1, -1):
        year, month = _shift_month(today.year, today.month, offset)
        start = date(year, month, 1)
        end = date(year, month, calendar.monthrange(year, month)[1])
        points.append(
            TrendPoint(
                label=f"{year:04d}-{month:02d}",
                start=start,
                end=end,
                connections=_count_between(by_date, start, end),
            )
        )
    return points


def connection_trends(timestamps: Iterable[datetime], today: date, days: int) -> ConnectionTrends:
    by_date = _count_by_date(timestamps)
    return ConnectionTrends(
        daily=daily_trend(by_date, today, days),
        weekly=weekly_trend(by_date, today, days),
        monthly=monthly_trend(by_date, today, days),
    )
