"""Raw status-source snapshots for auditing."""

from .writer import SnapshotWriter

__all__ = ["SnapshotWriter"]
