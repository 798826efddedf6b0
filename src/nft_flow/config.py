"""
Configuration for the NFT Flow API.

Loads settings from environment variables.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Upstream sources
    metadata_url: str = "https://cdn.jsdelivr.net/gh/defipatriot/nft-metadata/all_nfts_metadata.json"
    status_url: str = "https://deving.zone/en/nfts/alliance_daos.json"
    request_timeout_seconds: float = 30.0

    # Refresh
    refresh_interval_seconds: float = 3600  # 1 hour

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 3001

    # CORS
    cors_origins: list[str] = ["*"]

    # Snapshots
    snapshot_dir: str = "/var/data"
    snapshot_secret: Optional[str] = None  # Trigger endpoint refuses everything when unset

    # Logging
    log_level: str = "INFO"

    class Config:
        env_prefix = "NFT_FLOW_"
        env_file = ".env"


settings = Settings()
