"""Data models for multi-source earthquake reconciliation."""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict, field, replace
from datetime import datetime, timezone
from typing import Optional

MULTI_SOURCE = "multi"


def utc_now() -> datetime:
    return truncate_ms(datetime.now(timezone.utc))


def truncate_ms(value: datetime) -> datetime:
    """Drop sub-millisecond precision from an aware datetime."""
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def _dump(obj, time_keys: tuple[str, ...]) -> dict:
    d = asdict(obj)
    for key in time_keys:
        if d.get(key) is not None:
            d[key] = d[key].isoformat()
    return d


def _load(d: dict, time_keys: tuple[str, ...]) -> dict:
    for key in time_keys:
        if d.get(key) is not None:
            d[key] = datetime.fromisoformat(d[key])
    return d


@dataclass(frozen=True)
class CanonicalEvent:
    """One provider's report of an earthquake, fully normalized."""

    id: str                     # "{source}:{source_event_id}"
    source: str
    source_event_id: str

    occurred_at: datetime       # Aware UTC, millisecond precision
    occurred_at_local: str      # Rendered in the provider's timezone
    latitude: float
    longitude: float
    depth_km: float

    magnitude: float
    magnitude_type: str         # Lowercase, never converted between scales

    location: Optional[str] = None
    region: Optional[str] = None
    source_url: Optional[str] = None
    ingested_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class ResolvedEvent:
    """Single best-estimate event produced by collapsing a merge cluster."""

    id: str                     # Canonical id of the highest-priority member
    primary_source: str
    sources: tuple[str, ...]    # Every contributing source, priority order
    member_ids: tuple[str, ...]

    occurred_at: datetime
    occurred_at_local: str
    latitude: float
    longitude: float
    depth_km: float

    magnitude: float
    magnitude_type: str

    location: Optional[str] = None
    region: Optional[str] = None
    source_url: Optional[str] = None
    ingested_at: datetime = field(default_factory=utc_now)

    @property
    def num_sources(self) -> int:
        return len(self.sources)


# Fields whose change makes a persisted record "updated"
MATERIAL_FIELDS = (
    "occurred_at",
    "occurred_at_local",
    "latitude",
    "longitude",
    "depth_km",
    "magnitude",
    "magnitude_type",
    "location",
    "region",
    "source_url",
    "primary_source",
    "sources",
)


@dataclass(frozen=True)
class PersistedEvent:
    """Durable form of a resolved event."""

    id: str
    primary_source: str
    sources: tuple[str, ...]
    aliases: tuple[str, ...]    # Every member id ever attributed to this record

    occurred_at: datetime
    occurred_at_local: str
    latitude: float
    longitude: float
    depth_km: float

    magnitude: float
    magnitude_type: str

    location: Optional[str]
    region: Optional[str]
    source_url: Optional[str]

    ingested_at: datetime
    last_seen_at: datetime
    revision: int = 1

    _TIME_KEYS = ("occurred_at", "ingested_at", "last_seen_at")

    @classmethod
    def from_resolved(
        cls,
        event: ResolvedEvent,
        seen_at: datetime,
        *,
        record_id: str | None = None,
        aliases: tuple[str, ...] = (),
        ingested_at: datetime | None = None,
        revision: int = 1,
    ) -> PersistedEvent:
        merged_aliases = tuple(sorted(set(aliases) | set(event.member_ids)))
        return cls(
            id=record_id or event.id,
            primary_source=event.primary_source,
            sources=tuple(event.sources),
            aliases=merged_aliases,
            occurred_at=event.occurred_at,
            occurred_at_local=event.occurred_at_local,
            latitude=event.latitude,
            longitude=event.longitude,
            depth_km=event.depth_km,
            magnitude=event.magnitude,
            magnitude_type=event.magnitude_type,
            location=event.location,
            region=event.region,
            source_url=event.source_url,
            ingested_at=ingested_at or event.ingested_at,
            last_seen_at=seen_at,
            revision=revision,
        )

    def touch(self, seen_at: datetime, aliases: tuple[str, ...] = ()) -> PersistedEvent:
        return replace(
            self,
            last_seen_at=seen_at,
            aliases=tuple(sorted(set(self.aliases) | set(aliases))),
        )

    def to_dict(self) -> dict:
        d = _dump(self, self._TIME_KEYS)
        d["sources"] = list(self.sources)
        d["aliases"] = list(self.aliases)
        return d


@dataclass
class SourceSummary:
    """What one source contributed to a run."""

    source: str
    ok: bool = True
    records: int = 0            # Raw records returned by the fetcher
    normalized: int = 0
    rejected: int = 0
    filtered: int = 0           # Outside the window or below the magnitude floor
    duplicates: int = 0         # Superseded reports of an event already in the batch
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass(frozen=True)
class RunLedgerEntry:
    """One audit entry per ingestion run. Open while ``completed_at`` is None."""

    run_id: str
    source: str                 # Source name or "multi"
    started_at: datetime
    completed_at: Optional[datetime] = None
    success: Optional[bool] = None
    events_found: int = 0
    events_new: int = 0
    events_updated: int = 0
    events_unchanged: int = 0
    events_rejected: int = 0
    failed_sources: tuple[str, ...] = ()
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None

    _TIME_KEYS = ("started_at", "completed_at")

    @property
    def is_open(self) -> bool:
        return self.completed_at is None

    def to_json(self) -> str:
        d = _dump(self, self._TIME_KEYS)
        d["failed_sources"] = list(self.failed_sources)
        return json.dumps(d)

    @classmethod
    def from_json(cls, raw: str) -> RunLedgerEntry:
        d = _load(json.loads(raw), cls._TIME_KEYS)
        d["failed_sources"] = tuple(d.get("failed_sources") or ())
        return cls(**d)


@dataclass
class RunResult:
    """Caller-visible outcome of one reconciliation run."""

    run_id: str
    success: bool
    events_found: int = 0
    events_new: int = 0
    events_updated: int = 0
    events_unchanged: int = 0
    events_rejected: int = 0
    duration_ms: int = 0
    error: Optional[str] = None
    sources: list[SourceSummary] = field(default_factory=list)

    @property
    def failed_sources(self) -> list[str]:
        return [s.source for s in self.sources if not s.ok]

    def to_dict(self) -> dict:
        d = asdict(self)
        d["failed_sources"] = self.failed_sources
        return d


@dataclass
class FetchResult:
    """Value returned by a source fetcher. Failures are data, not exceptions."""

    records: list[dict] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CatalogStats:
    total: int = 0
    counts_by_magnitude_band: dict[str, int] = field(default_factory=dict)
    counts_by_region: dict[str, int] = field(default_factory=dict)
    avg_magnitude: Optional[float] = None
    min_magnitude: Optional[float] = None
    max_magnitude: Optional[float] = None
    avg_depth_km: Optional[float] = None


# Non-cumulative magnitude bands: (label, lower inclusive, upper exclusive)
MAGNITUDE_BANDS: tuple[tuple[str, float | None, float | None], ...] = (
    ("<2", None, 2.0),
    ("2-3", 2.0, 3.0),
    ("3-4", 3.0, 4.0),
    ("4-5", 4.0, 5.0),
    ("5-6", 5.0, 6.0),
    ("6-7", 6.0, 7.0),
    ("7+", 7.0, None),
)


def magnitude_band(magnitude: float) -> str:
    for label, low, high in MAGNITUDE_BANDS:
        if (low is None or magnitude >= low) and (high is None or magnitude < high):
            return label
    return MAGNITUDE_BANDS[-1][0]
