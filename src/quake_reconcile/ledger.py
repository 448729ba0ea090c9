"""Append-only audit log of ingestion runs."""

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Optional, Sequence

from quake_reconcile.errors import LedgerError
from quake_reconcile.models import MULTI_SOURCE, RunLedgerEntry, utc_now
from quake_reconcile.store import EventStore

logger = logging.getLogger(__name__)


def ledger_source(sources: Sequence[str]) -> str:
    """Ledger key for a run over ``sources``: the source name, or "multi"."""
    return sources[0] if len(sources) == 1 else MULTI_SOURCE


class RunLedger:
    def __init__(self, store: EventStore):
        self.store = store

    def open(self, source: str, started_at: Optional[datetime] = None) -> RunLedgerEntry:
        entry = RunLedgerEntry(
            run_id=uuid.uuid4().hex[:12],
            source=source,
            started_at=started_at or utc_now(),
        )
        self.store.append_run(entry)
        logger.info("[%s] Run opened for %s", entry.run_id, source)
        return entry

    def finalize(
        self,
        entry: RunLedgerEntry,
        *,
        success: bool,
        events_found: int = 0,
        events_new: int = 0,
        events_updated: int = 0,
        events_unchanged: int = 0,
        events_rejected: int = 0,
        failed_sources: Sequence[str] = (),
        error_message: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> RunLedgerEntry:
        if not entry.is_open:
            raise LedgerError(f"run {entry.run_id} is already finalized")

        completed_at = completed_at or utc_now()
        duration_ms = max(0, int((completed_at - entry.started_at).total_seconds() * 1000))
        final = replace(
            entry,
            completed_at=completed_at,
            success=success,
            events_found=events_found,
            events_new=events_new,
            events_updated=events_updated,
            events_unchanged=events_unchanged,
            events_rejected=events_rejected,
            failed_sources=tuple(failed_sources),
            duration_ms=duration_ms,
            error_message=error_message,
        )
        self.store.finalize_run(final)
        logger.info(
            "[%s] Run finalized: success=%s found=%d new=%d updated=%d (%d ms)",
            final.run_id, success, events_found, events_new, events_updated, duration_ms,
        )
        return final

    def last_run(self, source: Optional[str] = None) -> Optional[RunLedgerEntry]:
        return self.store.last_run(source)
