"""
Transition detector.

Compares the previous and current merged entity sets and emits market
activity events for marketplace flag transitions:

    - Listed: flag went false -> true (lister = current owner)
    - Sold:   flag went true -> false AND the owner changed
              (seller = previous owner, buyer = current owner)

A flag that drops without an owner change is a delisting and produces no
event. Entities missing from the previous set are never considered.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Mapping, Optional

from nft_flow.ingestion.models import Entity, FlagCategory, MarketEvent

logger = logging.getLogger(__name__)


def detect_entity_transitions(
    previous: Entity,
    current: Entity,
    now: datetime,
) -> list[MarketEvent]:
    """Evaluate every flag category for one entity seen in both refreshes."""
    events = []
    for category in FlagCategory:
        was_set = bool(previous.get(category.value))
        is_set = bool(current.get(category.value))

        if was_set and not is_set and previous.get("owner") != current.get("owner"):
            events.append(
                MarketEvent.sold(
                    category,
                    current,
                    now,
                    seller=previous.get("owner"),
                    buyer=current.get("owner"),
                )
            )
        elif not was_set and is_set:
            events.append(MarketEvent.listed(category, current, now))

    return events


def detect_transitions(
    previous: Optional[Mapping[str, Entity]],
    current: Mapping[str, Entity],
    now: datetime,
) -> list[MarketEvent]:
    """
    Detect listings and sales between two refreshes.

    Args:
        previous: Entities from the last committed refresh, or None on the
            very first refresh
        current: Entities from this refresh
        now: Cycle time, stamped on every event

    Returns:
        Events in the current mapping's iteration order (bbl before boost
        for the same entity)
    """
    if not previous:
        return []

    events: list[MarketEvent] = []
    for key, entity in current.items():
        old = previous.get(key)
        if old is None:
            continue
        events.extend(detect_entity_transitions(old, entity, now))

    if events:
        logger.debug(f"Detected {len(events)} market events across {len(current)} entities")
    return events
