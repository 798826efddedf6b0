"""
Entity merger.

Combines the static metadata records with the on-chain status records into
one mapping keyed by NFT id. Status fields override metadata fields of the
same name; metadata order is preserved.
"""

from __future__ import annotations

from typing import Any

from nft_flow.ingestion.client import validate_records
from nft_flow.ingestion.models import Entity


def entity_key(record: dict) -> str:
    """Key used to match records across sources (ids may be ints or strings)."""
    return str(record["id"])


def merge_entities(metadata: Any, status: Any) -> dict[str, Entity]:
    """
    Overlay status records onto metadata records by id.

    Args:
        metadata: Metadata records, in upstream order
        status: Status records (already unwrapped from the status payload)

    Returns:
        Dict of id -> merged entity, in metadata order. Metadata entries
        without a status record are carried over unchanged.

    Raises:
        MalformedUpstreamData: If either input is not a list of id-bearing objects
    """
    validate_records(metadata, "metadata")
    validate_records(status, "status")

    status_by_id = {entity_key(record): record for record in status}

    merged: dict[str, Entity] = {}
    for record in metadata:
        key = entity_key(record)
        overlay = status_by_id.get(key)
        merged[key] = {**record, **overlay} if overlay is not None else dict(record)

    return merged
