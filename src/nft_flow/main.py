"""
NFT Flow API - Main Entry Point

Builds the cache, upstream client, refresh orchestrator and snapshot writer,
then serves the API with uvicorn. The first refresh runs as soon as the app
starts; the collection endpoints answer 503 until it commits.

Usage:
    python -m nft_flow.main [--host HOST] [--port PORT] [--log-level LEVEL]

Environment Variables:
    PORT                               Listen port (overrides NFT_FLOW_API_PORT)
    NFT_FLOW_API_HOST                  Listen host (default: 0.0.0.0)
    NFT_FLOW_API_PORT                  Listen port (default: 3001)
    NFT_FLOW_METADATA_URL              Metadata source URL
    NFT_FLOW_STATUS_URL                Status source URL
    NFT_FLOW_REFRESH_INTERVAL_SECONDS  Refresh interval (default: 3600)
    NFT_FLOW_REQUEST_TIMEOUT_SECONDS   Upstream request timeout (default: 30)
    NFT_FLOW_CORS_ORIGINS              JSON list of allowed origins (default: ["*"])
    NFT_FLOW_SNAPSHOT_DIR              Snapshot directory (default: /var/data)
    NFT_FLOW_SNAPSHOT_SECRET           Secret for /api/snapshot (unset disables it)
    NFT_FLOW_LOG_LEVEL                 Logging level (DEBUG/INFO/WARNING/ERROR)
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI

from nft_flow.api.main import create_app
from nft_flow.config import Settings, settings
from nft_flow.core.cache import CacheStore
from nft_flow.core.refresher import RefreshOrchestrator
from nft_flow.ingestion.client import UpstreamClient
from nft_flow.snapshot.writer import SnapshotWriter

logger = logging.getLogger(__name__)


def build_app(config: Settings) -> FastAPI:
    """Wire every component together and return the ASGI app."""
    cache = CacheStore()
    client = UpstreamClient(
        config.metadata_url,
        config.status_url,
        timeout=config.request_timeout_seconds,
    )
    orchestrator = RefreshOrchestrator(
        client=client,
        cache=cache,
        interval_seconds=config.refresh_interval_seconds,
    )
    snapshot_writer = SnapshotWriter(client, config.snapshot_dir)

    return create_app(
        cache=cache,
        orchestrator=orchestrator,
        snapshot_writer=snapshot_writer,
        settings=config,
        upstream_client=client,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Alliance DAO NFT Flow API")
    parser.add_argument("--host", default=None, help="Listen host")
    parser.add_argument("--port", type=int, default=None, help="Listen port")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    log_level = (args.log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    host = args.host or settings.api_host
    port = args.port or int(os.environ.get("PORT", settings.api_port))

    app = build_app(settings)
    logger.info(f"Server is running on {host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
