"""Test fixtures for the refresh engine."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from nft_flow.core.cache import CacheStore


@pytest.fixture
def now():
    """Fixed cycle time in UTC."""
    return datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def cache():
    """Empty cache store."""
    return CacheStore()


@pytest.fixture
def metadata():
    """Metadata records in upstream order."""
    return [
        {"id": 1, "name": "Alliance DAO #1", "broken": False},
        {"id": 2, "name": "Alliance DAO #2", "broken": True},
        {"id": 3, "name": "Alliance DAO #3", "broken": False},
    ]


@pytest.fixture
def status():
    """Status records (ids as strings, unordered)."""
    return [
        {"id": "2", "owner": "terra1b", "bbl": True, "boost": False, "daodao": False, "enterprise": True},
        {"id": "1", "owner": "terra1a", "bbl": False, "boost": False, "daodao": True, "enterprise": False},
        {"id": "3", "owner": "terra1c", "bbl": False, "boost": True, "daodao": True, "enterprise": False},
    ]


@pytest.fixture
def mock_client(metadata, status):
    """Mock UpstreamClient serving the metadata and status fixtures."""
    client = MagicMock()
    client.fetch_all = AsyncMock(return_value=(metadata, status))
    return client
