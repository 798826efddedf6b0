"""
HTTP client for the upstream NFT data sources.

Two sources feed every refresh:
    - Metadata: a JSON array of static NFT records (name, image, traits)
    - Status: a JSON object whose ``nfts`` array carries the mutable
      on-chain state (owner, marketplace and staking flags)

Both payloads are shape-checked before they reach the merge step so a
malformed response aborts the refresh instead of corrupting the cache.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

# Field of the status payload holding the per-NFT status records
STATUS_LIST_FIELD = "nfts"


class UpstreamError(Exception):
    """Base exception for upstream data source errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailable(UpstreamError):
    """Network or HTTP failure fetching an upstream source."""
    pass


class MalformedUpstreamData(UpstreamError):
    """Upstream response does not have the expected shape."""
    pass


def validate_records(records: Any, source: str) -> list[dict]:
    """
    Check that a payload is a list of objects that all carry an ``id``.

    Args:
        records: Decoded payload (or the unwrapped status list)
        source: Source name used in error messages

    Returns:
        The records, unchanged

    Raises:
        MalformedUpstreamData: If the payload is not a list of id-bearing objects
    """
    if not isinstance(records, list):
        raise MalformedUpstreamData(
            f"Invalid {source} payload: expected an array, got {type(records).__name__}"
        )
    for index, record in enumerate(records):
        if not isinstance(record, dict) or "id" not in record:
            raise MalformedUpstreamData(
                f"Invalid {source} payload: item {index} is not an object with an id"
            )
    return records


class UpstreamClient:
    """
    Async client for the metadata and status sources.

    Usage:
        async with UpstreamClient(metadata_url, status_url) as client:
            metadata, status = await client.fetch_all()
    """

    def __init__(
        self,
        metadata_url: str,
        status_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the upstream client.

        Args:
            metadata_url: URL of the metadata JSON array
            status_url: URL of the status JSON object
            timeout: Request timeout in seconds
            client: Optional httpx client (created if not provided)
        """
        self.metadata_url = metadata_url
        self.status_url = status_url
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "UpstreamClient":
        """Async context manager entry."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client if we created it."""
        if self._owns_client and self._client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str) -> Any:
        """
        GET a URL and decode its JSON body.

        Raises:
            UpstreamUnavailable: On network errors, timeouts, non-2xx
                responses or bodies that are not JSON
        """
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
            self._owns_client = True

        try:
            response = await self._client.get(url)
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(f"Request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise UpstreamUnavailable(
                f"Upstream error: {response.status_code} from {url}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamUnavailable(
                f"Response from {url} is not valid JSON: {e}",
                status_code=response.status_code,
            ) from e

    async def fetch_metadata(self) -> list[dict]:
        """Fetch the static metadata records."""
        payload = await self._get_json(self.metadata_url)
        return validate_records(payload, "metadata")

    async def fetch_status(self) -> list[dict]:
        """Fetch the on-chain status records (unwrapped from ``nfts``)."""
        payload = await self._get_json(self.status_url)
        if not isinstance(payload, dict):
            raise MalformedUpstreamData(
                f"Invalid status payload: expected an object, got {type(payload).__name__}"
            )
        return validate_records(payload.get(STATUS_LIST_FIELD), "status")

    async def fetch_status_raw(self) -> Any:
        """Fetch the status payload exactly as served, without shape checks."""
        return await self._get_json(self.status_url)

    async def fetch_all(self) -> tuple[list[dict], list[dict]]:
        """
        Fetch metadata and status concurrently.

        Returns:
            (metadata records, status records)

        Raises:
            UpstreamError: If either fetch fails; the other is cancelled
        """
        metadata_task = asyncio.ensure_future(self.fetch_metadata())
        status_task = asyncio.ensure_future(self.fetch_status())
        try:
            metadata, status = await asyncio.gather(metadata_task, status_task)
        except BaseException:
            for task in (metadata_task, status_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(metadata_task, status_task, return_exceptions=True)
            raise

        logger.debug(f"Fetched {len(metadata)} metadata and {len(status)} status records")
        return metadata, status
