"""Reconciliation pipeline: fetch → normalize → match → merge.

All sources are fetched concurrently, each under its own timeout, and the
whole fan-out is joined under one run deadline. A source that errors or
runs out of time contributes nothing but never stops the run. The catalog
is built only after every source task has finished or been abandoned.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Sequence

from quake_reconcile.clients import Fetcher
from quake_reconcile.errors import MalformedRecord, SourceFetchFailure
from quake_reconcile.matcher import DEFAULT_MATCH_CONFIG, MatchConfig, cluster_events
from quake_reconcile.models import CanonicalEvent, ResolvedEvent, SourceSummary, utc_now
from quake_reconcile.normalizers import NORMALIZER_MAP, RecordNormalizer
from quake_reconcile.resolver import resolve_all
from quake_reconcile.sources import DEFAULT_PRIORITY, SOURCES, SourcePriority

logger = logging.getLogger(__name__)

RUN_TIMEOUT_SECONDS = float(os.getenv("QUAKE_RUN_TIMEOUT", "45"))
DEFAULT_SOURCE_TIMEOUT_SECONDS = 20.0


@dataclass
class ReconciliationOutcome:
    catalog: list[ResolvedEvent]
    sources: list[SourceSummary]
    events: list[CanonicalEvent] = field(default_factory=list)

    @property
    def rejected(self) -> int:
        return sum(s.rejected for s in self.sources)

    @property
    def failed_sources(self) -> list[str]:
        return [s.source for s in self.sources if not s.ok]


class ReconciliationPipeline:
    """Produces one deduplicated catalog per run. Holds no state between runs."""

    def __init__(
        self,
        fetchers: Mapping[str, Fetcher],
        *,
        normalizers: Optional[Mapping[str, RecordNormalizer]] = None,
        match_config: MatchConfig = DEFAULT_MATCH_CONFIG,
        priority: SourcePriority = DEFAULT_PRIORITY,
        run_timeout: float = RUN_TIMEOUT_SECONDS,
        source_timeouts: Optional[Mapping[str, float]] = None,
    ):
        self.fetchers = dict(fetchers)
        self.normalizers = dict(normalizers or NORMALIZER_MAP)
        self.match_config = match_config
        self.priority = priority
        self.run_timeout = run_timeout
        self.source_timeouts = dict(source_timeouts or {})

    def timeout_for(self, source: str) -> float:
        if source in self.source_timeouts:
            return self.source_timeouts[source]
        config = SOURCES.get(source)
        return config.timeout_seconds if config else DEFAULT_SOURCE_TIMEOUT_SECONDS

    async def _fetch(self, source: str, since: datetime, min_magnitude: float) -> list[dict]:
        fetcher = self.fetchers.get(source)
        if fetcher is None:
            raise SourceFetchFailure(source, "no fetcher configured")

        timeout = self.timeout_for(source)
        try:
            result = await asyncio.wait_for(fetcher(since, min_magnitude), timeout)
        except asyncio.TimeoutError as exc:
            raise SourceFetchFailure(source, f"timed out after {timeout:g}s") from exc
        except Exception as exc:
            # Fetchers report failures as values; a raise is still only this source's failure
            raise SourceFetchFailure(source, f"fetcher raised {type(exc).__name__}: {exc}") from exc

        if result.error:
            raise SourceFetchFailure(source, result.error)
        return result.records

    async def _run_source(
        self,
        source: str,
        since: datetime,
        min_magnitude: float,
        ingested_at: datetime,
    ) -> tuple[list[CanonicalEvent], SourceSummary]:
        summary = SourceSummary(source=source)
        t0 = time.monotonic()
        events: list[CanonicalEvent] = []

        try:
            records = await self._fetch(source, since, min_magnitude)
        except SourceFetchFailure as failure:
            logger.warning("%s", failure)
            summary.ok = False
            summary.error = failure.reason
            summary.duration_ms = int((time.monotonic() - t0) * 1000)
            return events, summary

        summary.records = len(records)
        normalizer = self.normalizers.get(source)
        if normalizer is None:
            summary.ok = False
            summary.error = "no normalizer registered"
            logger.error("[%s] no normalizer registered", source)
            return events, summary

        # One event per canonical id: feeds can carry several reports of one event
        latest: dict[str, tuple[tuple, CanonicalEvent]] = {}
        for position, raw in enumerate(records):
            try:
                event = normalizer.normalize(raw, ingested_at)
            except MalformedRecord as exc:
                summary.rejected += 1
                logger.debug("%s", exc)
                continue
            key = (normalizer.report_key(raw), position)
            if event.id in latest:
                summary.duplicates += 1
                if key < latest[event.id][0]:
                    continue
            latest[event.id] = (key, event)

        for _, event in latest.values():
            # Feeds without server-side filtering return more than was asked for
            if event.occurred_at < since or event.magnitude < min_magnitude:
                summary.filtered += 1
                continue
            events.append(event)

        summary.normalized = len(events)
        summary.duration_ms = int((time.monotonic() - t0) * 1000)
        logger.info(
            "[%s] %d records → %d events (%d rejected, %d duplicate, %d filtered) in %d ms",
            source, summary.records, summary.normalized, summary.rejected,
            summary.duplicates, summary.filtered, summary.duration_ms,
        )
        return events, summary

    async def collect(
        self,
        sources: Sequence[str],
        since: datetime,
        min_magnitude: float,
        ingested_at: Optional[datetime] = None,
    ) -> tuple[list[CanonicalEvent], list[SourceSummary]]:
        """Fan out one task per source and fan in under the run deadline."""
        ingested_at = ingested_at or utc_now()
        tasks = {
            name: asyncio.create_task(
                self._run_source(name, since, min_magnitude, ingested_at),
                name=f"fetch-{name}",
            )
            for name in sources
        }

        try:
            if tasks:
                await asyncio.wait(tasks.values(), timeout=self.run_timeout)
        finally:
            pending = [t for t in tasks.values() if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        events: list[CanonicalEvent] = []
        summaries: list[SourceSummary] = []
        for name, task in tasks.items():
            if task.cancelled():
                logger.warning("[%s] abandoned at the run deadline (%gs)", name, self.run_timeout)
                summaries.append(SourceSummary(
                    source=name, ok=False,
                    error=f"run deadline of {self.run_timeout:g}s exceeded",
                ))
                continue
            exc = task.exception()
            if exc is not None:
                logger.error("[%s] source task failed: %s", name, exc, exc_info=exc)
                summaries.append(SourceSummary(
                    source=name, ok=False, error=f"{type(exc).__name__}: {exc}",
                ))
                continue
            source_events, summary = task.result()
            events.extend(source_events)
            summaries.append(summary)
        return events, summaries

    def reconcile(self, events: Sequence[CanonicalEvent]) -> list[ResolvedEvent]:
        """Cluster and merge one run's events into a deduplicated catalog."""
        clusters = cluster_events(events, self.match_config)
        catalog = resolve_all(clusters, self.priority)
        corroborated = sum(1 for e in catalog if e.num_sources > 1)
        logger.info(
            "Reconciled %d events → %d resolved (%d corroborated)",
            len(events), len(catalog), corroborated,
        )
        return catalog

    async def run(
        self,
        sources: Sequence[str],
        since: datetime,
        min_magnitude: float,
        ingested_at: Optional[datetime] = None,
    ) -> ReconciliationOutcome:
        events, summaries = await self.collect(sources, since, min_magnitude, ingested_at)
        failed = [s.source for s in summaries if not s.ok]
        if failed and len(failed) == len(summaries):
            logger.warning("All sources failed this run: %s", ", ".join(failed))
        return ReconciliationOutcome(
            catalog=self.reconcile(events),
            sources=summaries,
            events=events,
        )
