"""
Test fixtures for the ingestion layer.

IMPORTANT: All upstream HTTP calls must be mocked.
Never hit the real metadata or status sources in tests.
"""

from datetime import datetime, timezone

import httpx
import pytest

from nft_flow.ingestion.client import UpstreamClient

METADATA_URL = "https://metadata.test/all_nfts_metadata.json"
STATUS_URL = "https://status.test/alliance_daos.json"


@pytest.fixture
def now():
    """Fixed cycle time in UTC."""
    return datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def metadata_payload():
    """Metadata source response: a JSON array."""
    return [
        {"id": 1, "name": "Alliance DAO #1", "image": "ipfs://1.png", "broken": False},
        {"id": 2, "name": "Alliance DAO #2", "image": "ipfs://2.png", "broken": True},
    ]


@pytest.fixture
def status_payload():
    """Status source response: an object wrapping the nfts array."""
    return {
        "nfts": [
            {"id": "1", "owner": "terra1owner1", "bbl": False, "boost": True, "daodao": True},
            {"id": "2", "owner": "terra1owner2", "bbl": True, "boost": False, "enterprise": True},
        ]
    }


@pytest.fixture
def make_client():
    """Factory for an UpstreamClient whose requests are answered by a handler."""
    def _make(handler) -> UpstreamClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return UpstreamClient(METADATA_URL, STATUS_URL, client=http_client)
    return _make


@pytest.fixture
def routes():
    """Factory for a handler serving fixed JSON bodies for the two upstream URLs."""
    return serve_json


def serve_json(metadata=None, status=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if str(request.url) == METADATA_URL:
            return httpx.Response(200, json=metadata)
        if str(request.url) == STATUS_URL:
            return httpx.Response(200, json=status)
        return httpx.Response(404)
    return handler
