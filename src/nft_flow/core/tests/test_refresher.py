"""
Tests for RefreshOrchestrator.

The orchestrator runs fetch -> merge -> detect -> aggregate -> commit cycles:
- once immediately and then on an interval
- never more than one at a time
- leaving the cache untouched when a cycle fails
"""
import asyncio
import logging
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from nft_flow.core.refresher import RefreshOrchestrator, RefreshState
from nft_flow.ingestion.client import MalformedUpstreamData, UpstreamUnavailable
from nft_flow.ingestion.models import EventKind, FlagCategory


class Clock:
    """Manually advanced clock."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock(now):
    return Clock(now)


@pytest.fixture
def orchestrator(mock_client, cache, clock):
    return RefreshOrchestrator(client=mock_client, cache=cache, interval_seconds=0.05, clock=clock)


# =============================================================================
# Single Cycle Tests
# =============================================================================


class TestRunCycle:
    """Tests for a single refresh cycle."""

    @pytest.mark.asyncio
    async def test_first_cycle_commits_without_events(self, orchestrator, cache, now):
        assert await orchestrator.run_cycle() is True

        snapshot = cache.require_ready()
        assert snapshot.last_updated == now
        assert list(snapshot.entities) == ["1", "2", "3"]
        assert snapshot.activity.to_dict() == {
            "bbl": {"sold": [], "listed": []},
            "boost": {"sold": [], "listed": []},
        }
        assert snapshot.metrics.daodao_staked == 2
        assert snapshot.metrics.enterprise_staked == 1
        assert snapshot.metrics.daodao_change_24h == 0

    @pytest.mark.asyncio
    async def test_second_cycle_detects_against_previous(
        self, orchestrator, mock_client, cache, clock, metadata, status
    ):
        await orchestrator.run_cycle()

        # NFT 2 sold off bbl, NFT 1 listed on boost
        changed = [dict(s) for s in status]
        changed[0].update(bbl=False, owner="terra1buyer")
        changed[1].update(boost=True)
        mock_client.fetch_all.return_value = (metadata, changed)
        clock.advance(hours=1)

        assert await orchestrator.run_cycle() is True

        activity = cache.require_ready().activity
        sold = activity.events(FlagCategory.BBL, EventKind.SOLD)
        listed = activity.events(FlagCategory.BOOST, EventKind.LISTED)
        assert [(e.nft_id, e.seller, e.buyer) for e in sold] == [("2", "terra1b", "terra1buyer")]
        assert [(e.nft_id, e.lister) for e in listed] == [("1", "terra1a")]
        assert sold[0].date == clock.now

    @pytest.mark.asyncio
    async def test_unchanged_data_is_idempotent(self, orchestrator, cache, clock):
        await orchestrator.run_cycle()
        clock.advance(hours=1)
        await orchestrator.run_cycle()

        snapshot = cache.require_ready()
        assert snapshot.activity.to_dict()["bbl"] == {"sold": [], "listed": []}
        assert snapshot.activity.to_dict()["boost"] == {"sold": [], "listed": []}
        assert snapshot.metrics.daodao_change_24h == 0
        assert snapshot.metrics.enterprise_change_24h == 0
        assert len(snapshot.history) == 2

    @pytest.mark.asyncio
    async def test_history_stays_within_window(self, orchestrator, cache, clock):
        for _ in range(30):
            await orchestrator.run_cycle()
            clock.advance(hours=1)

        snapshot = cache.require_ready()
        cutoff = snapshot.last_updated - timedelta(hours=24)
        assert all(s.timestamp > cutoff for s in snapshot.history)
        assert len(snapshot.history) == 24

    @pytest.mark.asyncio
    async def test_event_lists_stay_bounded(self, orchestrator, mock_client, cache, clock, metadata):
        for cycle in range(6):
            flag = cycle % 2 == 1
            status = [
                {"id": str(m["id"]), "owner": f"owner{cycle}", "bbl": flag, "boost": not flag}
                for m in metadata
            ]
            mock_client.fetch_all.return_value = (metadata, status)
            await orchestrator.run_cycle()
            clock.advance(hours=1)

            activity = cache.require_ready().activity
            for category in FlagCategory:
                for kind in EventKind:
                    assert len(activity.events(category, kind)) <= 2

        assert len(cache.require_ready().activity.bbl_listed) == 2


# =============================================================================
# Failure Handling Tests
# =============================================================================


class TestCycleFailures:
    """A failed cycle never touches the cache."""

    @pytest.mark.asyncio
    async def test_upstream_failure_before_first_commit(self, orchestrator, mock_client, cache):
        mock_client.fetch_all.side_effect = UpstreamUnavailable("status source down", status_code=503)

        assert await orchestrator.run_cycle() is False

        assert not cache.is_ready
        status = orchestrator.status
        assert status.last_error == "status source down"
        assert status.consecutive_failures == 1
        assert status.cycles_failed == 1

    @pytest.mark.asyncio
    async def test_failure_keeps_stale_data(self, orchestrator, mock_client, cache, clock):
        await orchestrator.run_cycle()
        committed = cache.read_snapshot()

        mock_client.fetch_all.side_effect = UpstreamUnavailable("timeout")
        clock.advance(hours=1)
        assert await orchestrator.run_cycle() is False

        assert cache.read_snapshot() is committed

    @pytest.mark.asyncio
    async def test_malformed_payload_aborts_cycle(self, orchestrator, mock_client, cache, status):
        mock_client.fetch_all.return_value = ({"not": "an array"}, status)

        assert await orchestrator.run_cycle() is False
        assert not cache.is_ready

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged(self, orchestrator, mock_client, cache, caplog):
        mock_client.fetch_all.side_effect = RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            assert await orchestrator.run_cycle() is False

        assert "boom" in caplog.text
        assert orchestrator.status.last_error == "RuntimeError: boom"

    @pytest.mark.asyncio
    async def test_success_resets_failure_streak(self, orchestrator, mock_client, metadata, status):
        mock_client.fetch_all.side_effect = MalformedUpstreamData("bad")
        await orchestrator.run_cycle()
        await orchestrator.run_cycle()
        assert orchestrator.status.consecutive_failures == 2

        mock_client.fetch_all.side_effect = None
        mock_client.fetch_all.return_value = (metadata, status)
        await orchestrator.run_cycle()

        result = orchestrator.status
        assert result.consecutive_failures == 0
        assert result.last_error is None
        assert result.cycles_succeeded == 1
        assert result.cycles_failed == 2


# =============================================================================
# Concurrency Tests
# =============================================================================


class TestSingleFlight:
    """Only one cycle may be in flight."""

    @pytest.mark.asyncio
    async def test_overlapping_cycle_is_skipped(self, cache, clock, metadata, status):
        release = asyncio.Event()

        async def slow_fetch():
            await release.wait()
            return metadata, status

        client = MagicMock()
        client.fetch_all = AsyncMock(side_effect=slow_fetch)
        orchestrator = RefreshOrchestrator(client=client, cache=cache, clock=clock)

        first = asyncio.create_task(orchestrator.run_cycle())
        await asyncio.sleep(0)
        assert orchestrator.status.state == RefreshState.REFRESHING

        assert await orchestrator.run_cycle() is False
        assert orchestrator.status.cycles_skipped == 1

        release.set()
        assert await first is True
        assert client.fetch_all.await_count == 1

    @pytest.mark.asyncio
    async def test_readers_see_previous_snapshot_during_refresh(self, cache, clock, metadata, status):
        release = asyncio.Event()
        client = MagicMock()
        client.fetch_all = AsyncMock(return_value=(metadata, status))
        orchestrator = RefreshOrchestrator(client=client, cache=cache, clock=clock)
        await orchestrator.run_cycle()
        before = cache.read_snapshot()

        async def slow_fetch():
            await release.wait()
            return metadata, status

        client.fetch_all.side_effect = slow_fetch
        clock.advance(hours=1)
        task = asyncio.create_task(orchestrator.run_cycle())
        await asyncio.sleep(0)

        assert cache.read_snapshot() is before

        release.set()
        await task
        assert cache.read_snapshot().last_updated == clock.now


# =============================================================================
# Background Loop Tests
# =============================================================================


class TestBackgroundLoop:
    """Tests for start/stop and scheduling."""

    @pytest.mark.asyncio
    async def test_start_runs_immediately_and_repeats(self, orchestrator, mock_client, cache):
        await orchestrator.start()
        assert orchestrator.is_running

        await asyncio.sleep(0.2)
        await orchestrator.stop()

        assert cache.is_ready
        assert mock_client.fetch_all.await_count >= 2
        assert not orchestrator.is_running
        assert orchestrator.status.state == RefreshState.STOPPED

    @pytest.mark.asyncio
    async def test_failures_do_not_stop_schedule(self, orchestrator, mock_client):
        mock_client.fetch_all.side_effect = UpstreamUnavailable("down")

        await orchestrator.start()
        await asyncio.sleep(0.2)
        await orchestrator.stop()

        assert mock_client.fetch_all.await_count >= 2
        assert orchestrator.status.cycles_failed >= 2

    @pytest.mark.asyncio
    async def test_start_twice_warns_and_returns(self, orchestrator, caplog):
        await orchestrator.start()
        with caplog.at_level(logging.WARNING):
            await orchestrator.start()
        await orchestrator.stop()

        assert "already running" in caplog.text

    @pytest.mark.asyncio
    async def test_stop_when_not_running_is_noop(self, orchestrator):
        await orchestrator.stop()
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_stop_interrupts_long_interval(self, mock_client, cache, clock):
        orchestrator = RefreshOrchestrator(client=mock_client, cache=cache, interval_seconds=3600, clock=clock)

        await orchestrator.start()
        await asyncio.sleep(0.05)
        await asyncio.wait_for(orchestrator.stop(), timeout=1.0)

        assert mock_client.fetch_all.await_count == 1

    @pytest.mark.asyncio
    async def test_interval_measured_from_cycle_start(self, cache, clock, metadata, status):
        async def slow_fetch():
            await asyncio.sleep(0.1)
            return metadata, status

        client = MagicMock()
        client.fetch_all = AsyncMock(side_effect=slow_fetch)
        orchestrator = RefreshOrchestrator(client=client, cache=cache, interval_seconds=0.1, clock=clock)

        await orchestrator.start()
        await asyncio.sleep(0.35)
        await orchestrator.stop()

        # Cycles start at 0.0, 0.1, 0.2, 0.3; waiting after completion
        # would only reach 0.0 and 0.2
        assert client.fetch_all.await_count >= 3
