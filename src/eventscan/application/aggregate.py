from __future__ import annotations
from typing import Iterable
from ..domain.models import DomainEvent

def sort_key(ev: DomainEvent) -> tuple[int, int]:
    return (ev.block_number, ev.log_index)

def aggregate(events: Iterable[DomainEvent], limit: int | None = None) -> list[DomainEvent]:
    """Most recent first (block, then log index, both descending); truncate after the full sort."""
    ordered = sorted(events, key=sort_key, reverse=True)
    if limit is not None and len(ordered) > limit:
        return ordered[:limit]
    return ordered
