"""
In-memory cache of the latest refresh.

The store holds a single immutable CacheSnapshot. A refresh builds a complete
new snapshot and swaps it in under a lock, so readers always see every field
from the same refresh cycle and never wait on a refresh in progress.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from nft_flow.ingestion.models import (
    Entity,
    HistorySnapshot,
    KeyMetrics,
    MarketActivity,
    format_timestamp,
)

logger = logging.getLogger(__name__)


class NotReadyYet(Exception):
    """Raised when data is requested before the first successful refresh."""

    def __init__(self, message: str = "Data is not available yet. Please try again in a moment."):
        super().__init__(message)


@dataclass(frozen=True)
class CacheSnapshot:
    """
    Everything one refresh cycle produced.

    Attributes:
        entities: Merged entities keyed by id, in metadata order
        activity: Bounded market activity lists
        metrics: Key staking metrics
        history: Staking snapshots within the trailing 24 hours, oldest first
        last_updated: When the refresh committed; None before the first one
    """
    entities: dict[str, Entity] = field(default_factory=dict)
    activity: MarketActivity = field(default_factory=MarketActivity)
    metrics: KeyMetrics = field(default_factory=KeyMetrics)
    history: tuple[HistorySnapshot, ...] = ()
    last_updated: Optional[datetime] = None

    @property
    def is_ready(self) -> bool:
        """Whether a refresh has ever committed."""
        return self.last_updated is not None

    @property
    def last_updated_iso(self) -> Optional[str]:
        """Commit time as an ISO-8601 UTC string (None before the first refresh)."""
        return format_timestamp(self.last_updated) if self.last_updated else None

    def to_collection(self) -> dict:
        """Collection view: commit time plus every merged entity."""
        return {
            "lastUpdated": self.last_updated_iso,
            "nfts": list(self.entities.values()),
        }


class CacheStore:
    """
    Holds the latest committed snapshot.

    Usage:
        cache = CacheStore()

        # Refresh side (single writer)
        previous = cache.read_snapshot().entities
        cache.commit(entities, activity, metrics, history, updated_at=now)

        # Read side (any number of request handlers)
        snapshot = cache.require_ready()
    """

    def __init__(self) -> None:
        self._snapshot = CacheSnapshot()
        self._lock = threading.Lock()

    def read_snapshot(self) -> CacheSnapshot:
        """Get the currently committed snapshot (empty before the first refresh)."""
        with self._lock:
            return self._snapshot

    def require_ready(self) -> CacheSnapshot:
        """
        Get the committed snapshot, insisting that a refresh has happened.

        Raises:
            NotReadyYet: If no refresh has committed yet
        """
        snapshot = self.read_snapshot()
        if not snapshot.is_ready:
            raise NotReadyYet()
        return snapshot

    @property
    def is_ready(self) -> bool:
        """Whether a refresh has ever committed."""
        return self.read_snapshot().is_ready

    def commit(
        self,
        entities: dict[str, Entity],
        activity: MarketActivity,
        metrics: KeyMetrics,
        history: tuple[HistorySnapshot, ...],
        updated_at: datetime,
    ) -> CacheSnapshot:
        """
        Atomically replace every cached field with one refresh's results.

        Returns:
            The newly committed snapshot
        """
        snapshot = CacheSnapshot(
            entities=entities,
            activity=activity,
            metrics=metrics,
            history=tuple(history),
            last_updated=updated_at,
        )
        with self._lock:
            self._snapshot = snapshot
        logger.debug(f"Committed snapshot with {len(entities)} entities at {snapshot.last_updated_iso}")
        return snapshot
