"""
Staking metrics aggregation.

Each refresh appends one history snapshot of the staking counts and prunes
the history to a trailing window (24 hours). The 24h change is measured
against the oldest snapshot still inside the window.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Mapping

from nft_flow.ingestion.models import Entity, HistorySnapshot, KeyMetrics

HISTORY_WINDOW = timedelta(hours=24)


def count_flagged(entities: Iterable[Entity], flag: str) -> int:
    """Count entities whose flag is set."""
    return sum(1 for entity in entities if entity.get(flag))


def prune_history(
    history: Iterable[HistorySnapshot],
    now: datetime,
    window: timedelta = HISTORY_WINDOW,
) -> tuple[HistorySnapshot, ...]:
    """Keep only snapshots strictly newer than ``now - window``."""
    cutoff = now - window
    return tuple(snap for snap in history if snap.timestamp > cutoff)


def aggregate_metrics(
    entities: Mapping[str, Entity],
    history: Iterable[HistorySnapshot],
    now: datetime,
    window: timedelta = HISTORY_WINDOW,
) -> tuple[KeyMetrics, tuple[HistorySnapshot, ...]]:
    """
    Compute key metrics for this refresh.

    Args:
        entities: Merged entities from this refresh
        history: Snapshots retained from earlier refreshes (not modified)
        now: Cycle time
        window: Trailing window for the change metrics

    Returns:
        (key metrics, new history including this refresh's snapshot)
    """
    current = HistorySnapshot(
        timestamp=now,
        daodao_staked=count_flagged(entities.values(), "daodao"),
        enterprise_staked=count_flagged(entities.values(), "enterprise"),
    )

    retained = prune_history([*history, current], now, window)

    # The snapshot just appended is always retained, so the baseline is
    # the current snapshot itself when nothing older is left (zero change).
    baseline = retained[0] if retained else current

    metrics = KeyMetrics(
        daodao_staked=current.daodao_staked,
        enterprise_staked=current.enterprise_staked,
        daodao_change_24h=current.daodao_staked - baseline.daodao_staked,
        enterprise_change_24h=current.enterprise_staked - baseline.enterprise_staked,
    )
    return metrics, retained
