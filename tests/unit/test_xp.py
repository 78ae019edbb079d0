"""Unit tests for level computation and the XP ledger."""

from __future__ import annotations

import pytest

from walletsync.errors import ValidationError
from walletsync.xp.ledger import XPLedger, validate_grant
from walletsync.xp.levels import compute_level, level_for


class TestLevels:
    """Test the flat level curve."""

    @pytest.mark.parametrize(
        ("total", "level"),
        [(0, 1), (1, 1), (999, 1), (1000, 2), (1999, 2), (2000, 3), (10_500, 11)],
    )
    def test_level_for(self, total, level):
        """Level is total // 1000 + 1."""
        assert level_for(total) == level

    def test_custom_step(self):
        """The XP step per level is configurable."""
        assert level_for(500, xp_per_level=250) == 3

    def test_compute_level_progress(self):
        """Progress reports XP into and to the next level."""
        info = compute_level(2500)
        assert info == {
            "level": 3,
            "xp_into_level": 500,
            "xp_for_level": 1000,
            "xp_to_next": 500,
            "next_level": 4,
        }


class TestValidateGrant:
    """Test grant validation happens before any write."""

    @pytest.mark.parametrize("amount", [0, -5, 1.5, "10", True, None])
    def test_rejects_bad_amounts(self, amount):
        """Zero, negative and non-integer amounts are rejected."""
        with pytest.raises(ValidationError):
            validate_grant(amount, "general")

    def test_rejects_unknown_source(self):
        """Sources outside the known set are rejected."""
        with pytest.raises(ValidationError):
            validate_grant(10, "lottery")

    @pytest.mark.parametrize("source", ["bounty", "course", "streak", "general"])
    def test_accepts_known_sources(self, source):
        """bounty, course, streak and general are accepted."""
        validate_grant(10, source)


class TestAddXP:
    """Test additive grants."""

    @pytest.mark.asyncio
    async def test_first_grant_creates_record(self, ledger):
        """The first grant creates the XP record."""
        grant = await ledger.add_xp("W1", 250, "course")
        assert grant.total_xp == 250
        assert grant.level == 1
        assert grant.degraded is False
        assert grant.leveled_up is False

    @pytest.mark.asyncio
    async def test_grants_are_additive(self, ledger, backend):
        """Grants add to total and to the matching bucket."""
        await ledger.add_xp("W1", 600, "bounty")
        grant = await ledger.add_xp("W1", 500, "course")
        assert grant.total_xp == 1100
        assert grant.level == 2
        assert grant.leveled_up is True
        record = backend.xp["W1"]
        assert record.bounty_xp == 600
        assert record.course_xp == 500
        assert record.streak_xp == 0

    @pytest.mark.asyncio
    async def test_general_source_only_touches_total(self, ledger, backend):
        """general XP updates no bucket."""
        await ledger.add_xp("W1", 40)
        record = backend.xp["W1"]
        assert record.total_xp == 40
        assert (record.bounty_xp, record.course_xp, record.streak_xp) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_grant_records_xp_gained_activity(self, ledger, sink):
        """A grant records an xp_gained activity."""
        await ledger.add_xp("W1", 100, "streak")
        event = sink.events[-1]
        assert event.activity_type == "xp_gained"
        assert event.metadata["amount"] == 100
        assert event.metadata["source"] == "streak"
        assert event.metadata["new_total"] == 100
        assert event.metadata["new_level"] == 1

    @pytest.mark.asyncio
    async def test_invalid_grant_writes_nothing(self, ledger, backend, sink):
        """A rejected grant leaves no XP row and no activity."""
        with pytest.raises(ValidationError):
            await ledger.add_xp("W1", -10)
        assert backend.xp == {}
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_blank_wallet_rejected(self, ledger):
        """A blank wallet raises ValidationError."""
        with pytest.raises(ValidationError):
            await ledger.add_xp("", 10)

    @pytest.mark.asyncio
    async def test_remote_down_applies_locally(self, down_backend, store, offline_activity, clock):
        """A down backend applies the grant to the local record."""
        ledger = XPLedger(down_backend, store, offline_activity, clock=clock)
        await ledger.add_xp("W1", 700)
        grant = await ledger.add_xp("W1", 400)
        assert grant.degraded is True
        assert grant.total_xp == 1100
        assert grant.level == 2
        local = await store.get("walletsync:xp:W1")
        assert local["total_xp"] == 1100
        buffered = await offline_activity.buffered()
        assert [e.activity_type for e in buffered] == ["xp_gained", "xp_gained"]


class TestReadXP:
    """Test XP reads and ensure semantics."""

    @pytest.mark.asyncio
    async def test_get_xp_unknown_wallet_is_zeroed(self, ledger):
        """Unknown wallets read as zero XP at level 1."""
        record = await ledger.get_xp("W1")
        assert record.total_xp == 0
        assert record.level == 1

    @pytest.mark.asyncio
    async def test_get_xp_falls_back_to_local(self, down_backend, store, offline_activity, clock):
        """A down backend reads the local XP record."""
        ledger = XPLedger(down_backend, store, offline_activity, clock=clock)
        await ledger.add_xp("W1", 1500)
        record = await ledger.get_xp("W1")
        assert record.total_xp == 1500
        assert record.level == 2

    @pytest.mark.asyncio
    async def test_ensure_xp_is_idempotent(self, ledger, backend):
        """ensure_xp never resets an existing record."""
        first, degraded = await ledger.ensure_xp("W1")
        await ledger.add_xp("W1", 10)
        second, _ = await ledger.ensure_xp("W1")
        assert degraded is False
        assert first.total_xp == 0
        assert second.total_xp == 10
        assert len(backend.xp) == 1

    @pytest.mark.asyncio
    async def test_ensure_xp_never_raises(self, down_backend, down_store, offline_activity, clock):
        """Everything down: ensure_xp returns a zeroed record."""
        ledger = XPLedger(down_backend, down_store, offline_activity, clock=clock)
        record, degraded = await ledger.ensure_xp("W1")
        assert degraded is True
        assert record.total_xp == 0
        assert record.level == 1

    def test_level_progress_uses_configured_step(self, backend, store, activity):
        """level_progress honours the ledger's step."""
        ledger = XPLedger(backend, store, activity, xp_per_level=500)
        assert ledger.level_progress(1200)["level"] == 3
