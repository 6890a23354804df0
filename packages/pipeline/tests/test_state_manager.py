"""Tests for StateManager run claims and cursor updates."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from libris_common import RunAlreadyInProgressError, SourcePausedError
from libris_contracts import IngestionResult, IngestionState, RunStatus
from libris_pipeline.state_manager import StateManager

pytestmark = pytest.mark.unit


def _state(**overrides) -> IngestionState:
    data = {"source": "internet_archive", "last_page": 4}
    data.update(overrides)
    return IngestionState(**data)


def _store(claimed=None, current=None) -> MagicMock:
    store = MagicMock()
    store.claim_run = AsyncMock(return_value=claimed)
    store.get_or_create = AsyncMock(return_value=current or _state())
    store.complete_run = AsyncMock(return_value=_state(last_page=5))
    store.reset = AsyncMock(return_value=_state(last_page=1))
    store.set_paused = AsyncMock(side_effect=lambda source, paused, by=None: _state(is_paused=paused, paused_by=by))
    return store


class TestClaimRun:
    """Tests for claiming a source."""

    async def test_claim_succeeds(self):
        claimed = _state(last_run_status=RunStatus.RUNNING, last_run_at=datetime.now(timezone.utc))
        store = _store(claimed=claimed)

        state = await StateManager(store, stale_after_seconds=120).claim_run("internet_archive")

        assert state is claimed
        store.claim_run.assert_awaited_once_with("internet_archive", 120)

    async def test_paused_source(self):
        store = _store(claimed=None, current=_state(is_paused=True))
        with pytest.raises(SourcePausedError, match="paused"):
            await StateManager(store).claim_run("internet_archive")

    async def test_overlapping_run(self):
        store = _store(claimed=None, current=_state(last_run_status=RunStatus.RUNNING))
        with pytest.raises(RunAlreadyInProgressError):
            await StateManager(store).claim_run("internet_archive")


class TestCompleteRun:
    """Tests for releasing a claim with the run outcome."""

    async def test_passes_claim_token_and_counts(self):
        claimed_at = datetime.now(timezone.utc)
        claim = _state(last_run_at=claimed_at)
        result = IngestionResult(
            status=RunStatus.PARTIAL, added=7, skipped=3, failed=2, next_page=5, last_cursor=None
        )
        store = _store()

        await StateManager(store).complete_run(claim, result)

        store.complete_run.assert_awaited_once_with(
            "internet_archive", claimed_at, RunStatus.PARTIAL, 5, None, 7, 3, 2
        )


class TestPauseResume:
    """Tests for operator controls."""

    async def test_pause_and_resume(self):
        store = _store()
        manager = StateManager(store)

        paused = await manager.pause("internet_archive", "admin")
        resumed = await manager.resume("internet_archive")

        assert paused.is_paused is True
        assert paused.paused_by == "admin"
        assert resumed.is_paused is False

    async def test_is_paused(self):
        store = _store(current=_state(is_paused=True))
        assert await StateManager(store).is_paused("internet_archive") is True

    async def test_reset(self):
        store = _store()
        state = await StateManager(store).reset_state("internet_archive")
        assert state.last_page == 1
        store.reset.assert_awaited_once_with("internet_archive")
