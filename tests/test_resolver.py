"""Tests for merge resolution of clusters."""

from __future__ import annotations

from datetime import timedelta

import pytest

from quake_reconcile.resolver import most_specific, rank_members, resolve_all, resolve_cluster
from quake_reconcile.sources import DEFAULT_PRIORITY, SourcePriority

from quake_factories import BASE_TIME, make_event

JAPAN = {"lat": 37.5, "lon": 137.2}
NEW_ZEALAND = {"lat": -41.3, "lon": 174.8}


class TestSourcePriority:
    def test_default_order(self):
        assert DEFAULT_PRIORITY.order_for(35.8, -120.5)[0] == "usgs"

    def test_regional_order(self):
        assert DEFAULT_PRIORITY.order_for(**JAPAN)[0] == "jma"
        assert DEFAULT_PRIORITY.order_for(**NEW_ZEALAND)[0] == "geonet"
        assert DEFAULT_PRIORITY.order_for(14.6, 121.0)[0] == "phivolcs"

    def test_unknown_source_ranks_last(self):
        assert DEFAULT_PRIORITY.rank("isc") == len(DEFAULT_PRIORITY.default)

    def test_sort(self):
        assert DEFAULT_PRIORITY.sort(["jma", "usgs", "emsc", "usgs"]) == ["usgs", "emsc", "jma"]


class TestResolveCluster:
    def test_empty_cluster_rejected(self):
        with pytest.raises(ValueError):
            resolve_cluster([])

    def test_single_member_is_identity(self):
        event = make_event("emsc", "x", mag=4.4, depth=7.0, location="CRETE, GREECE")
        resolved = resolve_cluster([event])
        assert resolved.id == "emsc:x"
        assert resolved.primary_source == "emsc"
        assert resolved.sources == ("emsc",)
        assert resolved.member_ids == ("emsc:x",)
        assert resolved.num_sources == 1
        assert resolved.magnitude == 4.4
        assert resolved.depth_km == 7.0
        assert resolved.occurred_at == event.occurred_at
        assert resolved.location == "CRETE, GREECE"

    def test_default_priority_picks_usgs(self):
        usgs = make_event("usgs", "a", mag=5.2, depth=12.0)
        emsc = make_event("emsc", "b", time=BASE_TIME + timedelta(seconds=10), mag=5.1, depth=15.0)
        resolved = resolve_cluster([emsc, usgs])
        assert resolved.id == "usgs:a"
        assert resolved.primary_source == "usgs"
        assert resolved.sources == ("usgs", "emsc")
        assert resolved.member_ids == ("usgs:a", "emsc:b")
        assert resolved.magnitude == 5.2
        assert resolved.depth_km == 12.0
        assert resolved.occurred_at == BASE_TIME

    def test_regional_authority_inside_japan(self):
        usgs = make_event("usgs", "a", mag=7.5, **JAPAN)
        jma = make_event("jma", "b", mag=7.6, **JAPAN)
        resolved = resolve_cluster([usgs, jma])
        assert resolved.primary_source == "jma"
        assert resolved.id == "jma:b"
        assert resolved.magnitude == 7.6
        assert resolved.sources == ("jma", "usgs")

    def test_regional_authority_not_applied_elsewhere(self):
        usgs = make_event("usgs", "a")
        jma = make_event("jma", "b")
        assert resolve_cluster([jma, usgs]).primary_source == "usgs"

    def test_most_specific_location(self):
        usgs = make_event("usgs", "a", location="CA")
        emsc = make_event("emsc", "b", location="CENTRAL CALIFORNIA")
        assert resolve_cluster([usgs, emsc]).location == "CENTRAL CALIFORNIA"

    def test_placeholder_location_ignored(self):
        usgs = make_event("usgs", "a", location="Unknown")
        emsc = make_event("emsc", "b", location="Baja")
        assert resolve_cluster([usgs, emsc]).location == "Baja"

    def test_earliest_ingestion_kept(self):
        first = make_event("usgs", "a", ingested_at=BASE_TIME + timedelta(minutes=5))
        second = make_event("emsc", "b", ingested_at=BASE_TIME + timedelta(minutes=1))
        assert resolve_cluster([first, second]).ingested_at == BASE_TIME + timedelta(minutes=1)

    def test_custom_priority(self):
        priority = SourcePriority(default=["emsc", "usgs"])
        resolved = resolve_cluster([make_event("usgs", "a"), make_event("emsc", "b")], priority)
        assert resolved.primary_source == "emsc"


class TestRankMembers:
    def test_order_is_deterministic(self):
        members = [make_event("geonet", "d"), make_event("jma", "c"), make_event("usgs", "a")]
        ranked = rank_members(members)
        assert [m.source for m in ranked] == ["usgs", "jma", "geonet"]
        assert rank_members(list(reversed(members))) == ranked


class TestMostSpecific:
    def test_tie_keeps_first(self):
        assert most_specific(["abc", "xyz"]) == "abc"

    def test_all_empty(self):
        assert most_specific([None, "", "n/a"]) is None


class TestResolveAll:
    def test_newest_first(self):
        old = [make_event("usgs", "old", time=BASE_TIME - timedelta(hours=2))]
        new = [make_event("usgs", "new")]
        resolved = resolve_all([old, new])
        assert [r.id for r in resolved] == ["usgs:new", "usgs:old"]
