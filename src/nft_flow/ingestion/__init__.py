"""
Ingestion Layer - Upstream data sources and shared data models.

Usage:
    from nft_flow.ingestion import UpstreamClient

    async with UpstreamClient(metadata_url, status_url) as client:
        metadata, status = await client.fetch_all()
"""

# Models
from .models import (
    MAX_EVENTS_PER_LIST,
    Entity,
    EventKind,
    FlagCategory,
    HistorySnapshot,
    KeyMetrics,
    MarketActivity,
    MarketEvent,
    format_timestamp,
    utcnow,
)

# Client
from .client import (
    MalformedUpstreamData,
    UpstreamClient,
    UpstreamError,
    UpstreamUnavailable,
    validate_records,
)

__all__ = [
    # Models
    "MAX_EVENTS_PER_LIST",
    "Entity",
    "EventKind",
    "FlagCategory",
    "HistorySnapshot",
    "KeyMetrics",
    "MarketActivity",
    "MarketEvent",
    "format_timestamp",
    "utcnow",
    # Client
    "MalformedUpstreamData",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamUnavailable",
    "validate_records",
]
