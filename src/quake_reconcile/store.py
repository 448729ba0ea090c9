"""Persisted store interface and the in-process implementation.

The store is the only shared mutable resource of the system. It is handed
to the change tracker, the run ledger and the read operations as an
explicit handle; nothing in the package keeps a module-level store.
"""

from __future__ import annotations

import abc
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Collection, Iterable, Iterator, Optional, Sequence

from quake_reconcile.errors import LedgerError
from quake_reconcile.models import (
    MAGNITUDE_BANDS,
    CatalogStats,
    PersistedEvent,
    RunLedgerEntry,
    magnitude_band,
)


class EventWriter(abc.ABC):
    """Write access granted for the duration of one ``EventStore.writer()`` block."""

    @abc.abstractmethod
    def find(
        self,
        record_id: str,
        member_ids: Sequence[str],
        exclude: Collection[str] = (),
    ) -> Optional[PersistedEvent]:
        """Record stored under ``record_id``, else one aliased by any of ``member_ids``.

        Records whose id is in ``exclude`` are never returned through an alias.
        """

    @abc.abstractmethod
    def insert(self, record: PersistedEvent) -> None:
        ...

    @abc.abstractmethod
    def replace(self, record: PersistedEvent) -> None:
        """Overwrite the record with the same id."""


class EventStore(abc.ABC):
    """Durable catalog of persisted events plus the run ledger."""

    @abc.abstractmethod
    def writer(self):
        """Context manager yielding an EventWriter.

        Only one writer per store is active at a time, across threads and
        across concurrent runs.
        """

    @abc.abstractmethod
    def query_events(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        min_magnitude: Optional[float] = None,
        max_magnitude: Optional[float] = None,
        region: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[PersistedEvent], int]:
        """Events ordered by occurred_at descending, plus the unpaged total."""

    @abc.abstractmethod
    def event_stats(
        self,
        start: Optional[datetime],
        end: Optional[datetime],
        min_magnitude: Optional[float] = None,
        max_magnitude: Optional[float] = None,
        region: Optional[str] = None,
    ) -> CatalogStats:
        ...

    @abc.abstractmethod
    def append_run(self, entry: RunLedgerEntry) -> None:
        ...

    @abc.abstractmethod
    def finalize_run(self, entry: RunLedgerEntry) -> None:
        """Replace the open entry with its finalized form. Raises LedgerError if not open."""

    @abc.abstractmethod
    def last_run(self, source: Optional[str] = None) -> Optional[RunLedgerEntry]:
        ...


def matches_filter(
    event: PersistedEvent,
    start: Optional[datetime],
    end: Optional[datetime],
    min_magnitude: Optional[float],
    max_magnitude: Optional[float],
    region: Optional[str],
) -> bool:
    if start is not None and event.occurred_at < start:
        return False
    if end is not None and event.occurred_at > end:
        return False
    if min_magnitude is not None and event.magnitude < min_magnitude:
        return False
    if max_magnitude is not None and event.magnitude > max_magnitude:
        return False
    if region is not None and (event.region or "").lower() != region.lower():
        return False
    return True


def summarize(events: Iterable[PersistedEvent]) -> CatalogStats:
    events = list(events)
    stats = CatalogStats(
        total=len(events),
        counts_by_magnitude_band={label: 0 for label, _, _ in MAGNITUDE_BANDS},
    )
    if not events:
        return stats

    for event in events:
        stats.counts_by_magnitude_band[magnitude_band(event.magnitude)] += 1
        key = event.region or "Unknown"
        stats.counts_by_region[key] = stats.counts_by_region.get(key, 0) + 1

    magnitudes = [e.magnitude for e in events]
    stats.avg_magnitude = sum(magnitudes) / len(magnitudes)
    stats.min_magnitude = min(magnitudes)
    stats.max_magnitude = max(magnitudes)
    stats.avg_depth_km = sum(e.depth_km for e in events) / len(events)
    stats.counts_by_region = dict(
        sorted(stats.counts_by_region.items(), key=lambda kv: (-kv[1], kv[0]))
    )
    return stats


class _MemoryWriter(EventWriter):
    def __init__(self, store: MemoryEventStore):
        self._store = store

    def find(self, record_id, member_ids, exclude=()):
        events = self._store._events
        if record_id in events:
            return events[record_id]
        for member_id in member_ids:
            for owner in self._store._aliases.get(member_id, ()):
                if owner not in exclude:
                    return events[owner]
        return None

    def insert(self, record):
        if record.id in self._store._events:
            raise KeyError(f"event {record.id} already exists")
        self._store._put(record)

    def replace(self, record):
        if record.id not in self._store._events:
            raise KeyError(f"event {record.id} does not exist")
        self._store._put(record)


class MemoryEventStore(EventStore):
    """Thread-safe in-process store. Each instance is fully independent."""

    def __init__(self):
        self._events: dict[str, PersistedEvent] = {}
        self._aliases: dict[str, list[str]] = {}
        self._runs: list[RunLedgerEntry] = []
        self._write_lock = threading.Lock()
        self._ledger_lock = threading.Lock()

    def _put(self, record: PersistedEvent) -> None:
        # Single assignment: readers never see a half-written record
        self._events[record.id] = record
        for alias in record.aliases:
            owners = self._aliases.setdefault(alias, [])
            if record.id not in owners:
                owners.append(record.id)

    @contextmanager
    def writer(self) -> Iterator[EventWriter]:
        with self._write_lock:
            yield _MemoryWriter(self)

    def get(self, record_id: str) -> Optional[PersistedEvent]:
        return self._events.get(record_id)

    def all_events(self) -> list[PersistedEvent]:
        return sorted(self._events.values(), key=lambda e: (e.occurred_at, e.id), reverse=True)

    def query_events(self, start, end, min_magnitude=None, max_magnitude=None,
                     region=None, limit=100, offset=0):
        selected = [
            e for e in self.all_events()
            if matches_filter(e, start, end, min_magnitude, max_magnitude, region)
        ]
        return selected[offset:offset + limit], len(selected)

    def event_stats(self, start, end, min_magnitude=None, max_magnitude=None, region=None):
        return summarize(
            e for e in self._events.values()
            if matches_filter(e, start, end, min_magnitude, max_magnitude, region)
        )

    def append_run(self, entry: RunLedgerEntry) -> None:
        with self._ledger_lock:
            if any(r.run_id == entry.run_id for r in self._runs):
                raise LedgerError(f"run {entry.run_id} already recorded")
            self._runs.append(entry)

    def finalize_run(self, entry: RunLedgerEntry) -> None:
        with self._ledger_lock:
            for i, existing in enumerate(self._runs):
                if existing.run_id != entry.run_id:
                    continue
                if not existing.is_open:
                    raise LedgerError(f"run {entry.run_id} is already finalized")
                self._runs[i] = replace(entry)
                return
            raise LedgerError(f"run {entry.run_id} was never opened")

    def last_run(self, source: Optional[str] = None) -> Optional[RunLedgerEntry]:
        with self._ledger_lock:
            candidates = [r for r in self._runs if source is None or r.source == source]
        if not candidates:
            return None
        return max(enumerate(candidates), key=lambda ir: (ir[1].started_at, ir[0]))[1]

    def runs(self) -> list[RunLedgerEntry]:
        with self._ledger_lock:
            return list(self._runs)
