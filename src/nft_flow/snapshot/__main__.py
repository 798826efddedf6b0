"""
Take one snapshot of the status source and exit.

Usage:
    python -m nft_flow.snapshot [--directory DIR]

Environment variables:
    NFT_FLOW_STATUS_URL    Status source URL
    NFT_FLOW_SNAPSHOT_DIR  Directory for snapshot files (default: /var/data)
    NFT_FLOW_LOG_LEVEL     Logging level (default: INFO)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from nft_flow.config import Settings, settings
from nft_flow.ingestion.client import UpstreamClient, UpstreamError
from nft_flow.snapshot.writer import SnapshotWriter

logger = logging.getLogger("nft_flow.snapshot")


async def run_snapshot(config: Settings, directory: Optional[str] = None) -> int:
    """Take a snapshot and return a process exit code."""
    async with UpstreamClient(
        config.metadata_url,
        config.status_url,
        timeout=config.request_timeout_seconds,
    ) as client:
        writer = SnapshotWriter(client, directory or config.snapshot_dir)
        try:
            await writer.take_snapshot()
        except (UpstreamError, OSError) as e:
            logger.error(f"Error taking snapshot: {e}")
            return 1
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Save a dated snapshot of the NFT status source")
    parser.add_argument("--directory", help="Directory to write the snapshot into")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return asyncio.run(run_snapshot(settings, args.directory))


if __name__ == "__main__":
    sys.exit(main())
