"""Collapse a merge cluster into one resolved event."""

from __future__ import annotations

from typing import Optional, Sequence

from quake_reconcile.models import CanonicalEvent, ResolvedEvent
from quake_reconcile.normalizers.base import clean_location
from quake_reconcile.sources import DEFAULT_PRIORITY, SourcePriority


def rank_members(
    members: Sequence[CanonicalEvent],
    priority: SourcePriority = DEFAULT_PRIORITY,
) -> list[CanonicalEvent]:
    """Order cluster members from most to least trusted.

    The jurisdiction is decided by the member that ranks first under the
    default order, so a regional authority is only promoted for events
    that lie inside its region.
    """
    by_default = sorted(members, key=lambda m: (priority.rank(m.source), m.source, m.id))
    anchor = by_default[0]
    order = priority.order_for(anchor.latitude, anchor.longitude)
    return sorted(members, key=lambda m: (priority.rank(m.source, order), m.source, m.id))


def most_specific(values: Sequence[Optional[str]]) -> Optional[str]:
    """Longest non-placeholder string; ``values`` are in priority order, so ties keep the first."""
    best: Optional[str] = None
    for value in values:
        value = clean_location(value)
        if value and (best is None or len(value) > len(best)):
            best = value
    return best


def resolve_cluster(
    members: Sequence[CanonicalEvent],
    priority: SourcePriority = DEFAULT_PRIORITY,
) -> ResolvedEvent:
    """Merge a cluster of 1..k events (distinct sources) into one record."""
    if not members:
        raise ValueError("cannot resolve an empty cluster")

    ranked = rank_members(members, priority)
    primary = ranked[0]

    return ResolvedEvent(
        id=primary.id,
        primary_source=primary.source,
        sources=tuple(m.source for m in ranked),
        member_ids=tuple(m.id for m in ranked),
        occurred_at=primary.occurred_at,
        occurred_at_local=primary.occurred_at_local,
        latitude=primary.latitude,
        longitude=primary.longitude,
        depth_km=primary.depth_km,
        magnitude=primary.magnitude,
        magnitude_type=primary.magnitude_type,
        location=most_specific([m.location for m in ranked]),
        region=most_specific([m.region for m in ranked]),
        source_url=primary.source_url,
        ingested_at=min(m.ingested_at for m in ranked),
    )


def resolve_all(
    clusters: Sequence[Sequence[CanonicalEvent]],
    priority: SourcePriority = DEFAULT_PRIORITY,
) -> list[ResolvedEvent]:
    """Resolve every cluster; newest events first."""
    resolved = [resolve_cluster(c, priority) for c in clusters]
    resolved.sort(key=lambda e: (e.occurred_at, e.id), reverse=True)
    return resolved
