"""
Data models for the NFT flow pipeline.

These models represent data structures for:
- Merged NFT entities (metadata overlaid with on-chain status)
- Market activity events (listings and sales) and their bounded lists
- Staking history snapshots and the key metrics derived from them

Entities are plain dicts carrying whatever attributes the upstream sources
report; status fields override metadata fields of the same name.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

# One merged NFT record. Never mutated after a merge produces it.
Entity = dict[str, Any]

# Each activity list keeps only the most recent events.
MAX_EVENTS_PER_LIST = 2


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """
    Render a timestamp the way API clients expect it.

    UTC, millisecond precision, trailing ``Z`` (e.g. ``2026-10-19T12:00:00.000Z``).
    """
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class FlagCategory(str, Enum):
    """Status flags whose transitions are reported as market activity."""
    BBL = "bbl"
    BOOST = "boost"


class EventKind(str, Enum):
    """Kind of market activity event."""
    SOLD = "sold"
    LISTED = "listed"


@dataclass(frozen=True)
class MarketEvent:
    """
    A listing or sale detected between two refreshes.

    Attributes:
        kind: SOLD or LISTED
        category: Which marketplace flag transitioned (bbl or boost)
        nft_id: The entity id exactly as the upstream source reports it
        broken: The entity's broken flag at detection time
        date: When the transition was detected (cycle time)
        lister: Owner that listed the NFT (LISTED only)
        seller: Owner before the sale (SOLD only)
        buyer: Owner after the sale (SOLD only)
    """
    kind: EventKind
    category: FlagCategory
    nft_id: Any
    broken: Any
    date: datetime
    lister: Optional[str] = None
    seller: Optional[str] = None
    buyer: Optional[str] = None

    @classmethod
    def sold(
        cls,
        category: FlagCategory,
        entity: Entity,
        date: datetime,
        seller: Optional[str],
        buyer: Optional[str],
    ) -> "MarketEvent":
        """Build a sale event for the current state of an entity."""
        return cls(
            kind=EventKind.SOLD,
            category=category,
            nft_id=entity.get("id"),
            broken=entity.get("broken"),
            date=date,
            seller=seller,
            buyer=buyer,
        )

    @classmethod
    def listed(
        cls,
        category: FlagCategory,
        entity: Entity,
        date: datetime,
    ) -> "MarketEvent":
        """Build a listing event for the current state of an entity."""
        return cls(
            kind=EventKind.LISTED,
            category=category,
            nft_id=entity.get("id"),
            broken=entity.get("broken"),
            date=date,
            lister=entity.get("owner"),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "id": self.nft_id,
            "broken": self.broken,
            "date": format_timestamp(self.date),
        }
        if self.kind == EventKind.SOLD:
            data["seller"] = self.seller
            data["buyer"] = self.buyer
        else:
            data["lister"] = self.lister
        return data


@dataclass(frozen=True)
class MarketActivity:
    """
    Bounded, newest-first event lists per flag category and event kind.

    Immutable: folding in new events returns a new instance so a committed
    cache snapshot can never change under a reader.
    """
    bbl_sold: tuple[MarketEvent, ...] = ()
    bbl_listed: tuple[MarketEvent, ...] = ()
    boost_sold: tuple[MarketEvent, ...] = ()
    boost_listed: tuple[MarketEvent, ...] = ()

    def events(self, category: FlagCategory, kind: EventKind) -> tuple[MarketEvent, ...]:
        """Get the retained events for one category and kind."""
        return getattr(self, f"{category.value}_{kind.value}")

    def with_events(
        self,
        new_events: Iterable[MarketEvent],
        limit: int = MAX_EVENTS_PER_LIST,
    ) -> "MarketActivity":
        """
        Fold newly detected events into the bounded lists.

        New events are prepended in detection order ahead of the events
        already retained, then each list is truncated to ``limit``.
        """
        fresh: dict[str, list[MarketEvent]] = {}
        for event in new_events:
            fresh.setdefault(f"{event.category.value}_{event.kind.value}", []).append(event)

        updated = {}
        for category in FlagCategory:
            for kind in EventKind:
                name = f"{category.value}_{kind.value}"
                combined = fresh.get(name, []) + list(self.events(category, kind))
                updated[name] = tuple(combined[:limit])

        return MarketActivity(**updated)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            category.value: {
                kind.value: [e.to_dict() for e in self.events(category, kind)]
                for kind in (EventKind.SOLD, EventKind.LISTED)
            }
            for category in FlagCategory
        }


@dataclass(frozen=True)
class HistorySnapshot:
    """Staking counts observed by one refresh cycle."""
    timestamp: datetime
    daodao_staked: int
    enterprise_staked: int

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "timestamp": format_timestamp(self.timestamp),
            "daodaoStaked": self.daodao_staked,
            "enterpriseStaked": self.enterprise_staked,
        }


@dataclass(frozen=True)
class KeyMetrics:
    """Current staking counts and their change over the trailing 24 hours."""
    daodao_staked: int = 0
    enterprise_staked: int = 0
    daodao_change_24h: int = 0
    enterprise_change_24h: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "daodaoStaked": self.daodao_staked,
            "enterpriseStaked": self.enterprise_staked,
            "daodaoChange24h": self.daodao_change_24h,
            "enterpriseChange24h": self.enterprise_change_24h,
        }
