"""
FastAPI application for the NFT Flow API.

Serves the cached collection view, market activity and key metrics, plus the
refresh status and the snapshot trigger.
"""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from nft_flow import __version__
from nft_flow.config import Settings
from nft_flow.core.cache import CacheStore, NotReadyYet
from nft_flow.core.refresher import RefreshOrchestrator
from nft_flow.ingestion.client import UpstreamClient, UpstreamError
from nft_flow.snapshot.writer import SnapshotWriter

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Response Schemas
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class RefreshStatusResponse(BaseModel):
    """Refresh orchestrator status response."""

    state: str
    interval_seconds: Optional[float] = None
    last_started_at: Optional[str] = None
    last_success_at: Optional[str] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    cycles_succeeded: int = 0
    cycles_failed: int = 0
    cycles_skipped: int = 0
    last_updated: Optional[str] = None


# =============================================================================
# FastAPI App
# =============================================================================


def create_app(
    cache: CacheStore,
    orchestrator: Optional[RefreshOrchestrator] = None,
    snapshot_writer: Optional[SnapshotWriter] = None,
    settings: Optional[Settings] = None,
    upstream_client: Optional[UpstreamClient] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        cache: Cache store the read endpoints serve from
        orchestrator: Refresh orchestrator started/stopped with the app
            (omit to serve a cache populated elsewhere, e.g. in tests)
        snapshot_writer: Writer used by the snapshot trigger endpoint
        settings: Application settings (CORS origins, snapshot secret)
        upstream_client: Upstream client to close on shutdown

    Returns:
        FastAPI application instance
    """
    config = settings or Settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: start and stop the refresh loop."""
        if orchestrator:
            await orchestrator.start()
        yield
        if orchestrator:
            await orchestrator.stop()
        if upstream_client:
            await upstream_client.close()

    app = FastAPI(
        title="Alliance DAO NFT Flow API",
        description="Merged NFT collection, market activity and staking metrics",
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotReadyYet)
    async def not_ready_handler(request: Request, exc: NotReadyYet) -> JSONResponse:
        return JSONResponse(status_code=503, content={"error": str(exc)})

    # =========================================================================
    # Endpoints
    # =========================================================================

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        """Liveness text with the last refresh time."""
        last_updated = cache.read_snapshot().last_updated_iso
        return f"Alliance DAO NFT Flow API is running. Last updated: {last_updated or 'Never'}"

    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @app.get("/api/market-activity")
    async def get_market_activity() -> dict:
        """Most recent listings and sales per marketplace."""
        return cache.require_ready().activity.to_dict()

    @app.get("/api/key-metrics")
    async def get_key_metrics() -> dict:
        """Staking counts and their 24h change."""
        return cache.require_ready().metrics.to_dict()

    @app.get("/api/collection")
    async def get_collection() -> dict:
        """Every merged NFT with the last refresh time."""
        return cache.require_ready().to_collection()

    @app.get("/api/status", response_model=RefreshStatusResponse)
    async def get_refresh_status() -> RefreshStatusResponse:
        """Refresh loop status.

        State is "disabled" when the app was created without an orchestrator.
        """
        last_updated = cache.read_snapshot().last_updated_iso
        if orchestrator is None:
            return RefreshStatusResponse(state="disabled", last_updated=last_updated)
        return RefreshStatusResponse(**orchestrator.status.to_dict(), last_updated=last_updated)

    @app.get("/api/snapshot", response_class=PlainTextResponse)
    async def trigger_snapshot(
        secret: Annotated[Optional[str], Query(description="Shared trigger secret")] = None,
    ) -> PlainTextResponse:
        """Save a dated snapshot of the status source."""
        expected = config.snapshot_secret
        if not expected or not secret or not hmac.compare_digest(secret.encode(), expected.encode()):
            logger.warning("Rejected snapshot trigger with invalid secret")
            return PlainTextResponse("Unauthorized", status_code=401)

        if snapshot_writer is None:
            return PlainTextResponse("Snapshot writer is not configured", status_code=500)

        try:
            path = await snapshot_writer.take_snapshot()
        except (UpstreamError, OSError) as e:
            logger.error(f"Error taking snapshot: {e}")
            return PlainTextResponse(f"Snapshot failed: {e}", status_code=500)

        return PlainTextResponse(f"Snapshot saved successfully to {path}")

    return app
