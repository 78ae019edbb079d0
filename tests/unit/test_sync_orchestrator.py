"""Unit tests for the wallet-connect sync tier chain."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from walletsync.errors import ConflictError, ValidationError
from walletsync.profiles.memory import InMemoryProfileBackend
from walletsync.profiles.schemas import UserProfile, new_profile
from walletsync.storage.base import FallbackKeys
from walletsync.sync.mirror import LocalProfileMirror
from walletsync.sync.orchestrator import SyncOrchestrator
from walletsync.sync.strategies import (
    ConflictResolvingTier,
    DirectWriteTier,
    LocalFallbackTier,
    RemoteApiTier,
    SyncTier,
)
from walletsync.xp.ledger import XPLedger


class ExplodingTier(SyncTier):
    name = "exploding"

    async def sync(self, wallet_address: str, fields: dict[str, Any], now: datetime) -> UserProfile:
        raise RuntimeError("boom")


class RacingBackend(InMemoryProfileBackend):
    """Another writer inserts the row between our UPDATE and INSERT."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.inserts = 0

    async def insert(self, wallet_address, fields, *, privileged=False):
        self.inserts += 1
        self.profiles[wallet_address] = new_profile(wallet_address, {"squad": "Raiders"}, self._clock())
        raise ConflictError("duplicate key value violates unique constraint")


@pytest.fixture
def mirror(store) -> LocalProfileMirror:
    return LocalProfileMirror(store, FallbackKeys())


@pytest.fixture
def make_orchestrator(mirror, ledger, activity, clock):
    def _make(*tiers: SyncTier) -> SyncOrchestrator:
        return SyncOrchestrator(tiers, LocalFallbackTier(mirror), ledger, activity, clock=clock)

    return _make


@pytest.mark.asyncio
class TestTierOrdering:
    """Test that tiers run in order and the first success wins."""

    async def test_first_tier_success_short_circuits(self, make_orchestrator, backend, down_backend):
        """Later tiers are not touched after a success."""
        orchestrator = make_orchestrator(DirectWriteTier(backend), ConflictResolvingTier(down_backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1")
        assert result.tier == "direct_write"
        assert result.degraded is False
        assert result.failures == []
        assert down_backend.calls == []

    async def test_falls_through_to_next_tier(self, make_orchestrator, backend, down_backend):
        """Tier 1 fails, tier 2 succeeds: tier 2's stored profile is returned exactly."""
        orchestrator = make_orchestrator(RemoteApiTier(down_backend), DirectWriteTier(backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1", {"display_name": "Alice"})
        assert result.tier == "direct_write"
        assert result.profile == backend.profiles["W1"]
        assert result.profile.display_name == "Alice"
        assert [f.tier for f in result.failures] == ["remote_api"]
        assert result.failures[0].error == "TransientBackendError"
        assert down_backend.calls == ["upsert"]

    async def test_each_tier_attempted_once(self, make_orchestrator, down_backend):
        """Every failing tier is tried exactly once."""
        orchestrator = make_orchestrator(
            RemoteApiTier(down_backend), DirectWriteTier(down_backend), ConflictResolvingTier(down_backend)
        )
        result = await orchestrator.sync_user_on_wallet_connect("W1")
        assert [f.tier for f in result.failures] == ["remote_api", "direct_write", "conflict_resolving"]
        assert down_backend.calls == ["upsert", "upsert", "update"]
        assert result.tier == "local_fallback"
        assert result.degraded is True

    async def test_unexpected_tier_error_is_contained(self, make_orchestrator, backend):
        """A crashing tier is recorded and skipped."""
        orchestrator = make_orchestrator(ExplodingTier(), DirectWriteTier(backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1")
        assert result.tier == "direct_write"
        assert result.failures[0].error == "RuntimeError"


@pytest.mark.asyncio
class TestMergeSemantics:
    """Test that re-sync merges instead of overwriting."""

    async def test_existing_squad_preserved(self, make_orchestrator, backend, clock):
        """Stored fields survive a re-sync with new hints."""
        backend.profiles["W1"] = new_profile("W1", {"squad": "Raiders"}, clock.now)
        orchestrator = make_orchestrator(DirectWriteTier(backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1", {"display_name": "Alice"})
        assert result.profile.squad == "Raiders"
        assert result.profile.display_name == "Alice"

    async def test_resync_is_idempotent(self, make_orchestrator, backend, clock):
        """Two syncs converge on one row with the same created_at."""
        orchestrator = make_orchestrator(DirectWriteTier(backend))
        first = await orchestrator.sync_user_on_wallet_connect("W1")
        clock.advance(hours=1)
        second = await orchestrator.sync_user_on_wallet_connect("W1")
        assert len(backend.profiles) == 1
        assert second.profile.created_at == first.profile.created_at
        assert second.profile.last_active == clock.now
        assert second.xp.total_xp == first.xp.total_xp == 0

    async def test_admin_flag_never_downgraded(self, make_orchestrator, backend, clock):
        """Hints cannot clear is_admin."""
        backend.profiles["W1"] = new_profile("W1", {"is_admin": True}, clock.now)
        orchestrator = make_orchestrator(DirectWriteTier(backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1", {"display_name": "Alice", "is_admin": False})
        assert result.profile.is_admin is True

    async def test_conflict_on_insert_resolved_by_update(self, make_orchestrator, clock):
        """A racing insert is resolved by updating the winner's row."""
        racing = RacingBackend(clock=clock)
        orchestrator = make_orchestrator(ConflictResolvingTier(racing))
        result = await orchestrator.sync_user_on_wallet_connect("W1", {"display_name": "Alice"})
        assert result.tier == "conflict_resolving"
        assert racing.inserts == 1
        assert result.profile.squad == "Raiders"
        assert result.profile.display_name == "Alice"


@pytest.mark.asyncio
class TestDegradedSync:
    """Test the local fallback path."""

    async def test_local_fallback_synthesizes_profile(self, make_orchestrator, down_backend, mirror):
        """All remote tiers down: a default profile is mirrored locally."""
        orchestrator = make_orchestrator(DirectWriteTier(down_backend))
        result = await orchestrator.sync_user_on_wallet_connect("ABC123")
        assert result.tier == "local_fallback"
        assert result.degraded is True
        assert result.profile.display_name == "User ABC123..."
        assert result.profile.is_admin is False
        assert await mirror.get("ABC123") == result.profile

    async def test_local_fallback_merges_mirrored_profile(self, make_orchestrator, down_backend, mirror, clock):
        """The local tier merges hints into the mirrored profile."""
        await mirror.put(new_profile("W1", {"squad": "Raiders"}, clock.now))
        orchestrator = make_orchestrator(DirectWriteTier(down_backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1", {"bio": "gm"})
        assert result.profile.squad == "Raiders"
        assert result.profile.bio == "gm"

    async def test_store_down_still_returns_profile(self, down_backend, down_store, offline_activity, clock):
        """Store down too: a profile still comes back."""
        mirror = LocalProfileMirror(down_store)
        ledger = XPLedger(down_backend, down_store, offline_activity, clock=clock)
        orchestrator = SyncOrchestrator(
            [DirectWriteTier(down_backend)], LocalFallbackTier(mirror), ledger, offline_activity, clock=clock
        )
        result = await orchestrator.sync_user_on_wallet_connect("W1")
        assert result.tier == "local_fallback"
        assert result.profile.wallet_address == "W1"
        assert result.xp_degraded is True
        assert result.level == 1

    async def test_blank_wallet_rejected(self, make_orchestrator, backend):
        """A blank wallet raises ValidationError."""
        orchestrator = make_orchestrator(DirectWriteTier(backend))
        with pytest.raises(ValidationError):
            await orchestrator.sync_user_on_wallet_connect("   ")

    async def test_malformed_hints_rejected_before_io(self, make_orchestrator, backend):
        """Badly typed hints raise the walletsync ValidationError and touch no tier."""
        orchestrator = make_orchestrator(DirectWriteTier(backend))
        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.sync_user_on_wallet_connect("W1", {"display_name": 123})
        assert isinstance(exc_info.value.__cause__, PydanticValidationError)
        assert backend.profiles == {}

    async def test_crash_after_tiers_keeps_failures(self, make_orchestrator, down_backend, ledger, monkeypatch):
        """An unexpected error returns an in-memory profile listing every failure so far."""
        monkeypatch.setattr(ledger, "ensure_xp", AsyncMock(side_effect=RuntimeError("boom")))
        orchestrator = make_orchestrator(RemoteApiTier(down_backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1", {"display_name": "Alice"})
        assert result.tier == "in_memory"
        assert result.degraded is True
        assert result.profile.display_name == "Alice"
        assert [(f.tier, f.error) for f in result.failures] == [
            ("remote_api", "TransientBackendError"),
            ("in_memory", "RuntimeError"),
        ]


@pytest.mark.asyncio
class TestSideEffects:
    """Test XP ensure and activity recording on connect."""

    async def test_xp_record_ensured(self, make_orchestrator, backend):
        """Connecting creates a zeroed XP record."""
        orchestrator = make_orchestrator(DirectWriteTier(backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1")
        assert backend.xp["W1"].total_xp == 0
        assert result.total_xp == 0
        assert result.level == 1
        assert result.xp_degraded is False

    async def test_wallet_connected_event(self, make_orchestrator, backend, sink, clock):
        """Connecting records a wallet_connected activity."""
        orchestrator = make_orchestrator(DirectWriteTier(backend))
        result = await orchestrator.sync_user_on_wallet_connect("W1")
        assert result.activity == "remote"
        event = sink.events[-1]
        assert event.activity_type == "wallet_connected"
        assert event.metadata["wallet_address"] == "W1"
        assert event.metadata["connected_at"] == clock.now.isoformat()
        assert event.metadata["sync_tier"] == "direct_write"


def test_tier_names(make_orchestrator, backend):
    """Tier names list the local fallback last."""
    orchestrator = make_orchestrator(RemoteApiTier(backend), ConflictResolvingTier(backend))
    assert orchestrator.tier_names == ["remote_api", "conflict_resolving", "local_fallback"]
