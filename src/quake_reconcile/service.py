"""Operations exposed to the read, presentation and trigger layers."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Mapping, Optional, Sequence, Union

import httpx

from quake_reconcile.clients import Fetcher, build_fetchers
from quake_reconcile.errors import RunFatalError, StoreError
from quake_reconcile.ledger import RunLedger, ledger_source
from quake_reconcile.matcher import DEFAULT_MATCH_CONFIG, MatchConfig
from quake_reconcile.models import (
    CatalogStats,
    PersistedEvent,
    ResolvedEvent,
    RunLedgerEntry,
    RunResult,
    utc_now,
)
from quake_reconcile.pipeline import RUN_TIMEOUT_SECONDS, ReconciliationOutcome, ReconciliationPipeline
from quake_reconcile.sources import DEFAULT_PRIORITY, SourcePriority, enabled_sources
from quake_reconcile.store import EventStore
from quake_reconcile.tracker import ChangeSummary, ChangeTracker

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = timedelta(hours=24)
DEFAULT_MIN_MAGNITUDE = 1.0


class QuakeCatalog:
    """Reconciled earthquake catalog bound to one store handle.

    ``fetchers`` maps source names to fetch callables. Sources without an
    entry are fetched over HTTP when they have an endpoint.
    """

    def __init__(
        self,
        store: EventStore,
        fetchers: Optional[Mapping[str, Fetcher]] = None,
        *,
        match_config: MatchConfig = DEFAULT_MATCH_CONFIG,
        priority: SourcePriority = DEFAULT_PRIORITY,
        run_timeout: float = RUN_TIMEOUT_SECONDS,
        source_timeouts: Optional[Mapping[str, float]] = None,
    ):
        self.store = store
        self.fetchers = dict(fetchers or {})
        self.match_config = match_config
        self.priority = priority
        self.run_timeout = run_timeout
        self.source_timeouts = dict(source_timeouts or {})
        self.tracker = ChangeTracker(store)
        self.ledger = RunLedger(store)

    # ── trigger ──────────────────────────────────────────────────────────

    async def run_reconciliation(
        self,
        sources: Optional[Sequence[str]] = None,
        since: Union[timedelta, datetime] = DEFAULT_LOOKBACK,
        min_magnitude: float = DEFAULT_MIN_MAGNITUDE,
    ) -> RunResult:
        """Run one ingestion over ``since`` and persist the result.

        Always returns a RunResult unless cancelled. Source failures leave
        ``success`` true; a run-fatal store failure or an unexpected error
        yields ``success=False`` with the ledger entry closed.
        """
        names = list(sources) if sources else enabled_sources()
        started_at = utc_now()
        since_at = started_at - since if isinstance(since, timedelta) else since

        try:
            entry = self.ledger.open(ledger_source(names), started_at)
        except StoreError as exc:
            fatal = RunFatalError(f"run ledger unavailable: {exc}")
            logger.error("%s", fatal)
            return RunResult(run_id="", success=False, error=str(fatal))

        try:
            outcome, changes = await self._execute(names, since_at, min_magnitude, started_at)
        except RunFatalError as fatal:
            logger.error("[%s] Run failed: %s", entry.run_id, fatal)
            final = self._finalize(entry, success=False, error_message=str(fatal))
            return RunResult(
                run_id=entry.run_id,
                success=False,
                duration_ms=final.duration_ms if final else 0,
                error=str(fatal),
            )
        except asyncio.CancelledError:
            self._finalize(entry, success=False, error_message="run cancelled")
            raise
        except Exception as exc:
            logger.error("[%s] Run failed unexpectedly: %s", entry.run_id, exc, exc_info=True)
            error = f"{type(exc).__name__}: {exc}"
            final = self._finalize(entry, success=False, error_message=error)
            return RunResult(
                run_id=entry.run_id,
                success=False,
                duration_ms=final.duration_ms if final else 0,
                error=error,
            )

        final = self._finalize(
            entry,
            success=True,
            events_found=len(outcome.catalog),
            events_new=len(changes.new),
            events_updated=len(changes.updated),
            events_unchanged=len(changes.unchanged),
            events_rejected=outcome.rejected,
            failed_sources=outcome.failed_sources,
        )
        result = RunResult(
            run_id=entry.run_id,
            success=True,
            events_found=len(outcome.catalog),
            events_new=len(changes.new),
            events_updated=len(changes.updated),
            events_unchanged=len(changes.unchanged),
            events_rejected=outcome.rejected,
            duration_ms=final.duration_ms if final else 0,
            sources=outcome.sources,
        )
        if result.failed_sources:
            logger.warning("[%s] Sources failed: %s", entry.run_id, ", ".join(result.failed_sources))
        return result

    async def _execute(
        self,
        names: Sequence[str],
        since: datetime,
        min_magnitude: float,
        started_at: datetime,
    ) -> tuple[ReconciliationOutcome, ChangeSummary]:
        async with httpx.AsyncClient() as client:
            fetchers = build_fetchers([n for n in names if n not in self.fetchers], client)
            fetchers.update(self.fetchers)
            pipeline = ReconciliationPipeline(
                fetchers,
                match_config=self.match_config,
                priority=self.priority,
                run_timeout=self.run_timeout,
                source_timeouts=self.source_timeouts,
            )
            outcome = await pipeline.run(names, since, min_magnitude, started_at)

        changes = await self._persist(outcome.catalog)
        return outcome, changes

    async def _persist(self, catalog: list[ResolvedEvent]) -> ChangeSummary:
        """Upsert in a worker thread. Once started it runs to completion."""
        upsert = asyncio.ensure_future(asyncio.to_thread(self.tracker.apply, catalog, utc_now()))
        try:
            return await asyncio.shield(upsert)
        except asyncio.CancelledError:
            if not upsert.done():
                await asyncio.wait([upsert])
            raise
        except StoreError as exc:
            raise RunFatalError(f"persisted store unavailable: {exc}") from exc

    def _finalize(self, entry: RunLedgerEntry, **kwargs) -> Optional[RunLedgerEntry]:
        try:
            return self.ledger.finalize(entry, **kwargs)
        except StoreError as exc:
            logger.error("[%s] Could not finalize run ledger entry: %s", entry.run_id, exc)
            return None

    # ── read surface ─────────────────────────────────────────────────────

    def list_events(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        min_magnitude: Optional[float] = None,
        max_magnitude: Optional[float] = None,
        region: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> tuple[list[PersistedEvent], int]:
        """Events in the window, newest first, with the total before paging."""
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")
        return self.store.query_events(start, end, min_magnitude, max_magnitude, region, limit, offset)

    def compute_stats(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        min_magnitude: Optional[float] = None,
        max_magnitude: Optional[float] = None,
        region: Optional[str] = None,
    ) -> CatalogStats:
        return self.store.event_stats(start, end, min_magnitude, max_magnitude, region)

    def last_run(self, source: Optional[str] = None) -> Optional[RunLedgerEntry]:
        return self.ledger.last_run(source)
