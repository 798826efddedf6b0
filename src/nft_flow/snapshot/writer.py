"""
Daily raw snapshots of the status source.

Fetches the status payload and writes it, unmodified, to
``<directory>/snapshot-YYYY-MM-DD.json`` so ownership and staking state can
be audited later. Runs on demand: from the API trigger endpoint or as a
one-shot command (``python -m nft_flow.snapshot``).
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

from nft_flow.ingestion.client import UpstreamClient
from nft_flow.ingestion.models import utcnow

logger = logging.getLogger(__name__)


class SnapshotWriter:
    """
    Writes the status payload to a dated JSON file.

    Usage:
        writer = SnapshotWriter(client, "/var/data")
        path = await writer.take_snapshot()
    """

    def __init__(
        self,
        client: UpstreamClient,
        directory: Union[str, Path],
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._client = client
        self.directory = Path(directory)
        self._clock = clock or utcnow

    def snapshot_path(self, now: datetime) -> Path:
        """Path of the snapshot file for the day of ``now``."""
        return self.directory / f"snapshot-{now:%Y-%m-%d}.json"

    async def take_snapshot(self) -> Path:
        """
        Fetch the status source and save it.

        A second snapshot on the same day overwrites the first.

        Returns:
            Path of the written file

        Raises:
            UpstreamError: If the status source cannot be fetched
            OSError: If the file cannot be written
        """
        logger.info(f"Fetching status data from {self._client.status_url}...")
        data = await self._client.fetch_status_raw()

        path = self.snapshot_path(self._clock())
        await asyncio.to_thread(self._write, path, data)

        logger.info(f"Snapshot saved to {path}")
        return path

    def _write(self, path: Path, data: Any) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
