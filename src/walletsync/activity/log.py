"""Activity recording with bounded local buffering.

``record`` is fire-and-forget: it tries the remote sink, buffers the event
in the fallback store's drop-oldest ring when the sink fails, and reports
where the event ended up. It never raises.
"""

from __future__ import annotations

from typing import Any

import structlog

from walletsync.activity.schemas import (
    BADGE_EARNED,
    COURSE_ACTIVITY_TYPES,
    LOGIN,
    PROFILE_UPDATE,
    SQUAD_ASSIGNMENT,
    ActivityEvent,
    ActivityOutcome,
    ClientContext,
    new_session_id,
)
from walletsync.activity.sink import ActivitySink
from walletsync.clock import Clock, utc_now
from walletsync.errors import ValidationError
from walletsync.storage.base import DEFAULT_BUFFER_CAPACITY, FallbackKeys, KeyValueFallbackStore

logger = structlog.get_logger()

# Connection type -> wallet activity type
WALLET_ACTIVITY_TYPES: dict[str, str] = {
    "connect": "wallet_connect",
    "reconnect": "wallet_connect",
    "disconnect": "wallet_disconnect",
    "verification_success": "nft_verification",
    "verification_failed": "nft_verification",
    "error": "wallet_error",
}


class ActivityLog:
    """Append-only activity recorder for one client session."""

    def __init__(
        self,
        sink: ActivitySink,
        store: KeyValueFallbackStore,
        *,
        keys: FallbackKeys | None = None,
        capacity: int = DEFAULT_BUFFER_CAPACITY,
        session_id: str | None = None,
        context: ClientContext | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._sink = sink
        self._store = store
        self._keys = keys or FallbackKeys()
        self._capacity = capacity
        self.session_id = session_id or new_session_id()
        self._context = context or ClientContext()
        self._clock = clock

    def _build_event(self, wallet_address: str, activity_type: str, metadata: dict[str, Any] | None) -> ActivityEvent:
        now = self._clock()
        enriched = dict(metadata or {})
        enriched.setdefault("timestamp", now.isoformat())
        enriched.setdefault("session_id", self.session_id)
        if self._context.page_url is not None:
            enriched.setdefault("page_url", self._context.page_url)
        if self._context.user_agent is not None:
            enriched.setdefault("user_agent", self._context.user_agent)
        return ActivityEvent(
            wallet_address=wallet_address,
            activity_type=activity_type,
            metadata=enriched,
            created_at=now,
        )

    async def record(
        self,
        wallet_address: str,
        activity_type: str,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityOutcome:
        """Record an event. Returns where it ended up; never raises."""
        if not wallet_address or not activity_type:
            logger.warning("activity_dropped_invalid", wallet=wallet_address, activity_type=activity_type)
            return "dropped"

        event = self._build_event(wallet_address, activity_type, metadata)

        try:
            await self._sink.append(event)
            logger.debug("activity_recorded", wallet=wallet_address, activity_type=activity_type)
            return "remote"
        except Exception:
            logger.warning("activity_sink_failed", wallet=wallet_address, activity_type=activity_type, exc_info=True)

        try:
            await self._store.append_bounded(
                self._keys.activities,
                event.model_dump(mode="json"),
                self._capacity,
            )
        except Exception:
            logger.warning("activity_buffer_failed", wallet=wallet_address, activity_type=activity_type, exc_info=True)
            return "dropped"
        logger.info("activity_buffered", wallet=wallet_address, activity_type=activity_type)
        return "buffered"

    async def buffered(self) -> list[ActivityEvent]:
        """Events held in the local buffer, oldest first."""
        try:
            raw_events = await self._store.get_list(self._keys.activities)
        except Exception:
            logger.warning("activity_buffer_read_failed", exc_info=True)
            return []
        return [ActivityEvent.model_validate(raw) for raw in raw_events]

    async def recent(self, wallet_address: str, limit: int = 20) -> list[ActivityEvent]:
        """Latest events for a wallet, newest first, from the sink or else the local buffer."""
        try:
            return await self._sink.list_for_wallet(wallet_address, limit)
        except Exception:
            logger.warning("activity_read_failed", wallet=wallet_address, exc_info=True)
        local = [event for event in await self.buffered() if event.wallet_address == wallet_address]
        return list(reversed(local))[:limit]

    # ------------------------------------------------------------------
    # Convenience recorders
    # ------------------------------------------------------------------

    async def log_profile_update(self, wallet_address: str, profile_data: dict[str, Any]) -> ActivityOutcome:
        return await self.record(
            wallet_address,
            PROFILE_UPDATE,
            {"profile_data": profile_data, "notes": "Profile information updated"},
        )

    async def log_squad_assignment(
        self, wallet_address: str, squad: str, previous_squad: str | None = None
    ) -> ActivityOutcome:
        notes = f"Squad assigned: {squad}"
        if previous_squad:
            notes += f" (was: {previous_squad})"
        return await self.record(
            wallet_address,
            SQUAD_ASSIGNMENT,
            {"profile_data": {"squad": squad}, "previous_squad": previous_squad, "notes": notes},
        )

    async def log_course_activity(
        self, wallet_address: str, activity_type: str, course_data: dict[str, Any]
    ) -> ActivityOutcome:
        """Record course_start, course_complete or course_approval.

        Raises:
            ValidationError: If ``activity_type`` is not a course activity.
        """
        if activity_type not in COURSE_ACTIVITY_TYPES:
            msg = f"unknown course activity type: {activity_type}"
            raise ValidationError(msg)
        label = course_data.get("course_name") or course_data.get("course_id")
        notes = f"Course {activity_type.removeprefix('course_')}: {label}"
        if course_data.get("completion_status"):
            notes += f" ({course_data['completion_status']})"
        return await self.record(wallet_address, activity_type, {"course_data": course_data, "notes": notes})

    async def log_badge_earned(
        self, wallet_address: str, badge_id: str, badge_name: str, badge_type: str
    ) -> ActivityOutcome:
        return await self.record(
            wallet_address,
            BADGE_EARNED,
            {
                "achievement_data": {"badge_id": badge_id, "badge_name": badge_name, "badge_type": badge_type},
                "notes": f"Badge earned: {badge_name}",
            },
        )

    async def log_login(self, wallet_address: str, login_method: str = "wallet") -> ActivityOutcome:
        return await self.record(
            wallet_address,
            LOGIN,
            {"login_method": login_method, "notes": f"User logged in via {login_method}"},
        )

    async def log_wallet_connection(
        self, wallet_address: str, connection_type: str, wallet_data: dict[str, Any] | None = None
    ) -> ActivityOutcome:
        activity_type = WALLET_ACTIVITY_TYPES.get(connection_type, "wallet_error")
        return await self.record(
            wallet_address,
            activity_type,
            {"wallet_data": wallet_data or {}, "reason": connection_type},
        )
