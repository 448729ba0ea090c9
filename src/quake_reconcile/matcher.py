"""Spatiotemporal matching of canonical events across sources.

Two events from different sources are a candidate match when their origin
times, epicentres and magnitudes all fall inside the configured envelope.
Candidate pairs are clustered with an arena-indexed union-find: events are
addressed by their position in the run's event list, and a cluster is a
list of those positions. Chains of pairwise matches can over-merge close
but distinct events; that is the accepted price of a transitive closure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from quake_reconcile.geo import haversine_km
from quake_reconcile.models import CanonicalEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchConfig:
    """Matching envelope. All bounds are inclusive."""

    time_window_seconds: float = 120.0
    base_radius_km: float = 100.0
    radius_per_magnitude_km: float = 20.0
    radius_magnitude_pivot: float = 5.0
    magnitude_tolerance: float = 0.5

    def radius_km(self, magnitude: float) -> float:
        """Search radius, widened for larger events whose locations are less certain."""
        excess = max(0.0, magnitude - self.radius_magnitude_pivot)
        return self.base_radius_km + self.radius_per_magnitude_km * excess


DEFAULT_MATCH_CONFIG = MatchConfig()


@dataclass(frozen=True)
class MatchCandidate:
    """A pair of arena indices that satisfies the envelope."""

    left: int
    right: int
    dt_seconds: float
    distance_km: float
    dmag: float


def compare(a: CanonicalEvent, b: CanonicalEvent, config: MatchConfig = DEFAULT_MATCH_CONFIG):
    """Return (dt_seconds, distance_km, dmag) if ``a`` and ``b`` match, else None."""
    if a.source == b.source:
        return None

    dt = abs((a.occurred_at - b.occurred_at).total_seconds())
    if dt > config.time_window_seconds:
        return None

    dmag = abs(a.magnitude - b.magnitude)
    if dmag > config.magnitude_tolerance:
        return None

    dist = haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)
    if dist > config.radius_km(max(a.magnitude, b.magnitude)):
        return None

    return dt, dist, dmag


def is_match(a: CanonicalEvent, b: CanonicalEvent, config: MatchConfig = DEFAULT_MATCH_CONFIG) -> bool:
    return compare(a, b, config) is not None


class UnionFind:
    """Disjoint sets over arena indices ``0..n-1``.

    Each root tracks the set of sources in its component so that a union
    which would put two reports from one provider together is refused.
    """

    def __init__(self, sources: Sequence[str]):
        self.parent = list(range(len(sources)))
        self.members: list[set[str]] = [{s} for s in sources]

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, i: int, j: int) -> bool:
        ri, rj = self.find(i), self.find(j)
        if ri == rj:
            return False
        if self.members[ri] & self.members[rj]:
            return False
        # Lower index stays root so the outcome does not depend on pair order
        if rj < ri:
            ri, rj = rj, ri
        self.parent[rj] = ri
        self.members[ri] |= self.members[rj]
        self.members[rj] = set()
        return True

    def groups(self) -> list[list[int]]:
        by_root: dict[int, list[int]] = {}
        for i in range(len(self.parent)):
            by_root.setdefault(self.find(i), []).append(i)
        return [by_root[root] for root in sorted(by_root)]


def arena_order(events: Sequence[CanonicalEvent]) -> list[CanonicalEvent]:
    """Deterministic arena layout: by origin time, then source, then id."""
    return sorted(events, key=lambda e: (e.occurred_at, e.source, e.id))


def find_candidates(
    events: Sequence[CanonicalEvent],
    config: MatchConfig = DEFAULT_MATCH_CONFIG,
) -> list[MatchCandidate]:
    """All cross-source matching pairs. ``events`` must be time-sorted."""
    candidates: list[MatchCandidate] = []
    for i, a in enumerate(events):
        for j in range(i + 1, len(events)):
            b = events[j]
            if (b.occurred_at - a.occurred_at).total_seconds() > config.time_window_seconds:
                break
            result = compare(a, b, config)
            if result is not None:
                dt, dist, dmag = result
                candidates.append(MatchCandidate(i, j, dt, dist, dmag))
    # Closest pairs first
    candidates.sort(key=lambda c: (c.dt_seconds, c.distance_km, c.dmag, c.left, c.right))
    return candidates


def cluster_events(
    events: Sequence[CanonicalEvent],
    config: MatchConfig = DEFAULT_MATCH_CONFIG,
) -> list[list[CanonicalEvent]]:
    """Group events that describe the same physical earthquake.

    Every event lands in exactly one cluster, and no cluster holds two
    events from the same source.
    """
    arena = arena_order(events)
    uf = UnionFind([e.source for e in arena])

    merged = 0
    for candidate in find_candidates(arena, config):
        if uf.union(candidate.left, candidate.right):
            merged += 1

    clusters = [[arena[i] for i in group] for group in uf.groups()]
    logger.debug(
        "Clustered %d events into %d clusters (%d unions)",
        len(arena), len(clusters), merged,
    )
    return clusters
