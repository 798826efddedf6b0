"""HTTP read API over the refresh cache."""

from .main import create_app

__all__ = ["create_app"]
