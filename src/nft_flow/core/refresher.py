"""
RefreshOrchestrator - Keeps the cache in sync with the upstream sources.

Each cycle:
    1. Fetch metadata and status concurrently
    2. Merge them into one entity set
    3. Detect listings/sales against the previously committed entities
    4. Aggregate staking metrics over the trailing 24h history
    5. Commit everything to the cache in one swap

A cycle runs once at startup and then on a fixed interval. Failed cycles
leave the cache untouched and never stop the schedule.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from nft_flow.core.cache import CacheStore
from nft_flow.core.merger import merge_entities
from nft_flow.core.metrics import aggregate_metrics
from nft_flow.core.transitions import detect_transitions
from nft_flow.ingestion.client import UpstreamClient, UpstreamError
from nft_flow.ingestion.models import format_timestamp, utcnow

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3600  # 1 hour


class RefreshState(str, Enum):
    """Orchestrator lifecycle state."""
    IDLE = "idle"
    REFRESHING = "refreshing"
    STOPPED = "stopped"


@dataclass
class RefreshStatus:
    """Outcome of recent refresh cycles, for the status endpoint."""
    state: RefreshState = RefreshState.STOPPED
    interval_seconds: float = DEFAULT_INTERVAL_SECONDS
    last_started_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    cycles_succeeded: int = 0
    cycles_failed: int = 0
    cycles_skipped: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "state": self.state.value,
            "interval_seconds": self.interval_seconds,
            "last_started_at": format_timestamp(self.last_started_at) if self.last_started_at else None,
            "last_success_at": format_timestamp(self.last_success_at) if self.last_success_at else None,
            "last_error": self.last_error,
            "consecutive_failures": self.consecutive_failures,
            "cycles_succeeded": self.cycles_succeeded,
            "cycles_failed": self.cycles_failed,
            "cycles_skipped": self.cycles_skipped,
        }


class RefreshOrchestrator:
    """
    Runs refresh cycles against the cache, one at a time.

    Usage:
        orchestrator = RefreshOrchestrator(
            client=upstream_client,
            cache=cache,
            interval_seconds=3600,
        )
        await orchestrator.start()
        # ... server runs ...
        await orchestrator.stop()
    """

    def __init__(
        self,
        client: UpstreamClient,
        cache: CacheStore,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            client: Upstream client used to fetch both sources
            cache: Cache store to read previous state from and commit to
            interval_seconds: Time between the starts of consecutive cycles
            clock: Optional time source (defaults to UTC now)
        """
        self._client = client
        self._cache = cache
        self._interval = interval_seconds
        self._clock = clock or utcnow

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._cycle_lock = asyncio.Lock()
        self._status = RefreshStatus(interval_seconds=interval_seconds)

    @property
    def is_running(self) -> bool:
        """Whether the background loop is running."""
        return self._running

    @property
    def status(self) -> RefreshStatus:
        """Copy of the current refresh status."""
        return replace(self._status)

    async def start(self) -> None:
        """Start the background refresh loop (first cycle runs immediately)."""
        if self._running:
            logger.warning("RefreshOrchestrator already running")
            return

        self._running = True
        self._stop_event.clear()
        self._status.state = RefreshState.IDLE
        self._task = asyncio.create_task(self._refresh_loop(), name="nft_refresh")
        logger.info(f"Started refresh task (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop the background loop gracefully."""
        if not self._running:
            return

        logger.info("Stopping refresh task...")
        self._running = False
        self._stop_event.set()

        if self._task and not self._task.done():
            self._task.cancel()
        if self._task:
            await asyncio.gather(self._task, return_exceptions=True)
        self._task = None

        self._status.state = RefreshState.STOPPED
        logger.info("Refresh task stopped")

    async def _refresh_loop(self) -> None:
        """
        Run cycles at a fixed rate until a stop request.

        The wait is measured from the start of each cycle, so slow cycles do
        not push the schedule back. A cycle that overruns the interval is
        followed immediately by the next one.
        """
        loop = asyncio.get_running_loop()
        while self._running:
            started = loop.time()
            try:
                await self.run_cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in refresh loop: {e}", exc_info=True)

            delay = max(0.0, self._interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                break  # Stop requested
            except asyncio.TimeoutError:
                pass  # Next cycle

    async def run_cycle(self) -> bool:
        """
        Run one refresh cycle unless another is already in flight.

        Returns:
            True if new data was committed, False if the cycle was skipped
            or failed (the cache keeps its previous contents)
        """
        if self._cycle_lock.locked():
            self._status.cycles_skipped += 1
            logger.info("Refresh skipped - another cycle is running")
            return False

        async with self._cycle_lock:
            now = self._clock()
            self._status.state = RefreshState.REFRESHING
            self._status.last_started_at = now
            logger.info("Starting cache refresh...")

            try:
                await self._refresh(now)
            except UpstreamError as e:
                logger.error(f"Cache refresh failed: {e}")
                self._record_failure(str(e))
                return False
            except Exception as e:
                logger.error(f"Unexpected error during cache refresh: {e}", exc_info=True)
                self._record_failure(f"{type(e).__name__}: {e}")
                return False
            finally:
                self._status.state = RefreshState.IDLE if self._running else RefreshState.STOPPED

            self._status.last_success_at = now
            self._status.last_error = None
            self._status.consecutive_failures = 0
            self._status.cycles_succeeded += 1
            return True

    def _record_failure(self, message: str) -> None:
        self._status.last_error = message
        self._status.consecutive_failures += 1
        self._status.cycles_failed += 1

    async def _refresh(self, now: datetime) -> None:
        """Fetch, merge, detect, aggregate and commit."""
        metadata, status = await self._client.fetch_all()
        entities = merge_entities(metadata, status)

        # Read previous state only after the fetch; this is the single writer
        previous = self._cache.read_snapshot()
        events = detect_transitions(previous.entities or None, entities, now)
        activity = previous.activity.with_events(events)
        metrics, history = aggregate_metrics(entities, previous.history, now)

        self._cache.commit(entities, activity, metrics, history, updated_at=now)

        logger.info(
            f"Cache updated successfully at {format_timestamp(now)}: "
            f"{len(entities)} NFTs, {len(events)} new market events, "
            f"daodao={metrics.daodao_staked} ({metrics.daodao_change_24h:+d}/24h), "
            f"enterprise={metrics.enterprise_staked} ({metrics.enterprise_change_24h:+d}/24h)"
        )
