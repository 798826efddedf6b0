"""
Core - the merge-and-diff cache refresh engine.

    - merger: overlays status records onto metadata records by id
    - transitions: detects listings and sales between refreshes
    - metrics: staking counts and their trailing 24h change
    - cache: atomically swapped snapshot of the latest refresh
    - refresher: scheduled, single-flight refresh cycles
"""

from .cache import CacheSnapshot, CacheStore, NotReadyYet
from .merger import merge_entities
from .metrics import HISTORY_WINDOW, aggregate_metrics, prune_history
from .refresher import RefreshOrchestrator, RefreshState, RefreshStatus
from .transitions import detect_transitions

__all__ = [
    "CacheSnapshot",
    "CacheStore",
    "NotReadyYet",
    "merge_entities",
    "HISTORY_WINDOW",
    "aggregate_metrics",
    "prune_history",
    "RefreshOrchestrator",
    "RefreshState",
    "RefreshStatus",
    "detect_transitions",
]
