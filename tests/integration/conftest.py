"""
Shared fixtures for end-to-end refresh tests.

Upstream sources are served by an in-process httpx.MockTransport whose
payloads each test can change between cycles.
"""

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from nft_flow.ingestion.client import UpstreamClient

METADATA_URL = "https://metadata.test/all_nfts_metadata.json"
STATUS_URL = "https://status.test/alliance_daos.json"


class FakeUpstream:
    """Mutable upstream payloads plus a failure switch."""

    def __init__(self):
        self.metadata = []
        self.status = {"nfts": []}
        self.failing = False
        self.requests = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if self.failing:
            return httpx.Response(503, text="maintenance")
        if str(request.url) == METADATA_URL:
            return httpx.Response(200, json=self.metadata)
        if str(request.url) == STATUS_URL:
            return httpx.Response(200, json=self.status)
        return httpx.Response(404)


class Clock:
    """Manually advanced clock."""

    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def clock():
    return Clock(datetime(2026, 10, 19, 0, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def upstream_client(upstream):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    return UpstreamClient(METADATA_URL, STATUS_URL, client=http_client)
