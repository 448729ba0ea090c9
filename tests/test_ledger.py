"""Tests for the run ledger."""

from __future__ import annotations

from datetime import timedelta

import pytest

from quake_reconcile.errors import LedgerError
from quake_reconcile.ledger import RunLedger, ledger_source
from quake_reconcile.models import RunLedgerEntry

from quake_factories import BASE_TIME


class TestLedgerSource:
    def test_single_source(self):
        assert ledger_source(["usgs"]) == "usgs"

    def test_multi_source(self):
        assert ledger_source(["usgs", "emsc"]) == "multi"


class TestRunLedger:
    def test_open_entry(self, store):
        entry = RunLedger(store).open("usgs", BASE_TIME)
        assert entry.is_open
        assert entry.success is None
        assert store.last_run("usgs") == entry

    def test_finalize(self, store):
        ledger = RunLedger(store)
        entry = ledger.open("multi", BASE_TIME)
        final = ledger.finalize(
            entry,
            success=True,
            events_found=4,
            events_new=3,
            events_unchanged=1,
            events_rejected=2,
            failed_sources=["geonet"],
            completed_at=BASE_TIME + timedelta(seconds=3),
        )
        assert not final.is_open
        assert final.duration_ms == 3000
        stored = ledger.last_run("multi")
        assert stored == final
        assert stored.failed_sources == ("geonet",)
        assert stored.events_rejected == 2

    def test_finalized_entry_cannot_be_finalized(self, store):
        ledger = RunLedger(store)
        final = ledger.finalize(ledger.open("usgs"), success=True)
        with pytest.raises(LedgerError):
            ledger.finalize(final, success=False)

    def test_stale_open_entry_cannot_refinalize(self, store):
        ledger = RunLedger(store)
        entry = ledger.open("usgs")
        ledger.finalize(entry, success=True)
        with pytest.raises(LedgerError):
            ledger.finalize(entry, success=False, error_message="late")
        assert ledger.last_run("usgs").success is True

    def test_unknown_run_cannot_finalize(self, store):
        ghost = RunLedgerEntry(run_id="ghost", source="usgs", started_at=BASE_TIME)
        with pytest.raises(LedgerError):
            RunLedger(store).finalize(ghost, success=True)

    def test_duplicate_run_id_rejected(self, store):
        entry = RunLedgerEntry(run_id="r1", source="usgs", started_at=BASE_TIME)
        store.append_run(entry)
        with pytest.raises(LedgerError):
            store.append_run(entry)

    def test_last_run_per_source(self, store):
        ledger = RunLedger(store)
        usgs = ledger.open("usgs", BASE_TIME)
        multi = ledger.open("multi", BASE_TIME + timedelta(minutes=1))
        assert ledger.last_run("usgs").run_id == usgs.run_id
        assert ledger.last_run("multi").run_id == multi.run_id
        assert ledger.last_run().run_id == multi.run_id
        assert ledger.last_run("jma") is None

    def test_entries_are_append_only(self, store):
        ledger = RunLedger(store)
        for _ in range(3):
            ledger.finalize(ledger.open("usgs"), success=True)
        assert len(store.runs()) == 3
        assert len({r.run_id for r in store.runs()}) == 3

    def test_json_roundtrip(self, store):
        ledger = RunLedger(store)
        final = ledger.finalize(ledger.open("usgs", BASE_TIME), success=True, failed_sources=["jma"])
        assert RunLedgerEntry.from_json(final.to_json()) == final
