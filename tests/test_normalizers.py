"""Tests for per-provider normalization and validation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from quake_reconcile.errors import MalformedRecord
from quake_reconcile.normalizers import (
    EMSCNormalizer,
    GeoNetNormalizer,
    JMANormalizer,
    PHIVOLCSNormalizer,
    RecordNormalizer,
    USGSNormalizer,
)
from quake_reconcile.normalizers.base import clean_location
from quake_reconcile.normalizers.jma import parse_cod

from quake_factories import (
    BASE_TIME,
    JST,
    emsc_feature,
    geonet_feature,
    jma_item,
    make_event,
    phivolcs_row,
    usgs_feature,
)


# ── USGS ─────────────────────────────────────────────────────────────────


class TestUSGSNormalizer:
    def test_basic_feature(self):
        event = USGSNormalizer().normalize(usgs_feature())
        assert event.id == "usgs:us7000test"
        assert event.source == "usgs"
        assert event.source_event_id == "us7000test"
        assert event.occurred_at == BASE_TIME
        assert event.occurred_at.tzinfo is not None
        assert event.latitude == 35.8
        assert event.longitude == -120.5
        assert event.depth_km == 12.3
        assert event.magnitude == 5.2
        assert event.magnitude_type == "mw"
        assert event.location == "10 km NW of Testville, CA"
        assert event.region == "California"
        assert event.occurred_at_local.endswith("UTC")

    def test_missing_depth_maps_to_zero(self):
        raw = usgs_feature()
        raw["geometry"]["coordinates"] = [-120.5, 35.8]
        assert USGSNormalizer().normalize(raw).depth_km == 0.0

    def test_missing_coordinates_rejected(self):
        raw = usgs_feature()
        raw["geometry"]["coordinates"] = []
        with pytest.raises(MalformedRecord) as exc_info:
            USGSNormalizer().normalize(raw)
        assert exc_info.value.source == "usgs"

    def test_non_numeric_magnitude_rejected(self):
        with pytest.raises(MalformedRecord, match="magnitude"):
            USGSNormalizer().normalize(usgs_feature(mag="strong"))

    def test_null_magnitude_rejected(self):
        with pytest.raises(MalformedRecord, match="magnitude is missing"):
            USGSNormalizer().normalize(usgs_feature(mag=None))

    def test_depth_beyond_700_rejected(self):
        with pytest.raises(MalformedRecord, match="depth_km"):
            USGSNormalizer().normalize(usgs_feature(depth=900))

    def test_negative_depth_rejected(self):
        with pytest.raises(MalformedRecord, match="depth_km"):
            USGSNormalizer().normalize(usgs_feature(depth=-3.0))

    def test_future_time_rejected(self):
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        with pytest.raises(MalformedRecord, match="future"):
            USGSNormalizer().normalize(usgs_feature(time=future))

    def test_longitude_wrapped(self):
        event = USGSNormalizer().normalize(usgs_feature(lon=190.0))
        assert event.longitude == -170.0

    def test_latitude_out_of_range_rejected(self):
        with pytest.raises(MalformedRecord, match="latitude"):
            USGSNormalizer().normalize(usgs_feature(lat=95.0))

    def test_placeholder_location_dropped(self):
        event = USGSNormalizer().normalize(usgs_feature(place="Unknown"))
        assert event.location is None

    def test_missing_properties_rejected(self):
        with pytest.raises(MalformedRecord):
            USGSNormalizer().normalize({"id": "x", "geometry": {"coordinates": [0, 0, 0]}})

    def test_sub_millisecond_precision_dropped(self):
        raw = usgs_feature()
        raw["properties"]["time"] = int(BASE_TIME.timestamp() * 1000) + 0.7
        event = USGSNormalizer().normalize(raw)
        assert event.occurred_at.microsecond % 1000 == 0

    def test_ingested_at_is_stamped(self, now):
        event = USGSNormalizer().normalize(usgs_feature(), now)
        assert event.ingested_at == now

    def test_out_of_range_epoch_rejected(self):
        raw = usgs_feature()
        raw["properties"]["time"] = 10 ** 22
        with pytest.raises(MalformedRecord):
            USGSNormalizer().normalize(raw)


# ── EMSC ─────────────────────────────────────────────────────────────────


class TestEMSCNormalizer:
    def test_basic_feature(self):
        event = EMSCNormalizer().normalize(emsc_feature())
        assert event.id == "emsc:20240115_0001"
        assert event.occurred_at == BASE_TIME
        assert event.depth_km == 12.3
        assert event.magnitude == 5.1
        assert event.magnitude_type == "mw"
        assert event.location == "CENTRAL CALIFORNIA"
        assert event.region == "California"
        assert event.source_url.endswith("20240115_0001")

    def test_depth_from_negated_geometry(self):
        raw = emsc_feature()
        del raw["properties"]["depth"]
        assert EMSCNormalizer().normalize(raw).depth_km == 12.3

    def test_coordinates_from_geometry(self):
        raw = emsc_feature(lat=40.1, lon=15.2)
        del raw["properties"]["lat"]
        del raw["properties"]["lon"]
        event = EMSCNormalizer().normalize(raw)
        assert event.latitude == 40.1
        assert event.longitude == 15.2
        assert event.region == "Italy"

    def test_naive_time_rejected(self):
        raw = emsc_feature()
        raw["properties"]["time"] = "2024-01-15T12:00:00.0"
        with pytest.raises(MalformedRecord, match="no stated offset"):
            EMSCNormalizer().normalize(raw)

    def test_unparsable_time_rejected(self):
        raw = emsc_feature()
        raw["properties"]["time"] = "yesterday"
        with pytest.raises(MalformedRecord, match="unparsable"):
            EMSCNormalizer().normalize(raw)

    def test_missing_id_rejected(self):
        raw = emsc_feature()
        del raw["properties"]["unid"]
        del raw["id"]
        with pytest.raises(MalformedRecord, match="source_event_id"):
            EMSCNormalizer().normalize(raw)


# ── JMA ──────────────────────────────────────────────────────────────────


class TestParseCod:
    def test_full(self):
        assert parse_cod("+35.8+140.3-40000/") == (35.8, 140.3, 40.0)

    def test_missing_depth(self):
        assert parse_cod("+37.5+137.2/") == (37.5, 137.2, 0.0)

    def test_southern_western(self):
        lat, lon, depth = parse_cod("-12.5-75.1-10000/")
        assert (lat, lon, depth) == (-12.5, -75.1, 10.0)

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_cod("somewhere")


class TestJMANormalizer:
    def test_basic_item(self):
        event = JMANormalizer().normalize(jma_item())
        assert event.id == "jma:20240101161010"
        assert event.occurred_at == BASE_TIME
        assert event.occurred_at.utcoffset() == timedelta(0)
        assert event.latitude == 37.5
        assert event.longitude == 137.2
        assert event.depth_km == 10.0
        assert event.magnitude == 7.6
        assert event.magnitude_type == "mj"
        assert event.region == "Japan"
        assert event.source_url.endswith("20240101161010_VXSE53.json")

    def test_local_time_rendered_in_jst(self):
        event = JMANormalizer().normalize(jma_item())
        expected = BASE_TIME.astimezone(JST).strftime("%Y-%m-%d %H:%M:%S")
        assert event.occurred_at_local == f"{expected} JST"

    def test_naive_time_takes_jst_offset(self):
        raw = jma_item()
        raw["at"] = "2024-01-01T16:10:00"
        event = JMANormalizer().normalize(raw)
        assert event.occurred_at == datetime(2024, 1, 1, 7, 10, tzinfo=timezone.utc)

    def test_bad_cod_rejected(self):
        raw = jma_item()
        raw["cod"] = ""
        with pytest.raises(MalformedRecord, match="coordinates"):
            JMANormalizer().normalize(raw)

    def test_unknown_magnitude_rejected(self):
        with pytest.raises(MalformedRecord, match="magnitude"):
            JMANormalizer().normalize(jma_item(mag="Ｍ不明"))

    def test_time_before_year_one_in_utc_rejected(self):
        raw = jma_item()
        raw["at"] = "0001-01-01T05:00:00+09:00"
        with pytest.raises(MalformedRecord, match="OverflowError"):
            JMANormalizer().normalize(raw)

    def test_report_key_is_issue_time(self):
        raw = jma_item(rdt=BASE_TIME + timedelta(minutes=3))
        assert JMANormalizer().report_key(raw) == raw["rdt"]
        assert USGSNormalizer().report_key(usgs_feature()) == ""


# ── GeoNet ───────────────────────────────────────────────────────────────


class TestGeoNetNormalizer:
    def test_basic_feature(self):
        event = GeoNetNormalizer().normalize(geonet_feature())
        assert event.id == "geonet:2024p000001"
        assert event.occurred_at == BASE_TIME
        assert event.latitude == -41.3
        assert event.depth_km == 22.0
        assert event.magnitude_type == "ml"
        assert event.location == "10 km north of Wellington"
        assert event.region == "New Zealand"

    def test_missing_coordinates_rejected(self):
        raw = geonet_feature()
        raw["geometry"]["coordinates"] = [174.8]
        with pytest.raises(MalformedRecord, match="coordinates"):
            GeoNetNormalizer().normalize(raw)

    def test_naive_time_rejected(self):
        raw = geonet_feature()
        raw["properties"]["time"] = "2024-01-01T07:10:00.000"
        with pytest.raises(MalformedRecord, match="no stated offset"):
            GeoNetNormalizer().normalize(raw)

    def test_explicit_offset_accepted(self):
        raw = geonet_feature()
        raw["properties"]["time"] = "2024-01-01T20:10:00+13:00"
        event = GeoNetNormalizer().normalize(raw)
        assert event.occurred_at == datetime(2024, 1, 1, 7, 10, tzinfo=timezone.utc)
        assert event.occurred_at_local == "2024-01-01 07:10:00 UTC"


# ── PHIVOLCS ─────────────────────────────────────────────────────────────


class TestPHIVOLCSNormalizer:
    def test_parse_pm_time(self):
        moment = PHIVOLCSNormalizer().parse_datetime("30 January 2024 - 04:47 PM")
        assert moment.astimezone(timezone.utc) == datetime(2024, 1, 30, 8, 47, tzinfo=timezone.utc)

    def test_parse_midnight(self):
        moment = PHIVOLCSNormalizer().parse_datetime("01 March 2024 - 12:05 AM")
        assert (moment.hour, moment.minute) == (0, 5)

    def test_parse_noon(self):
        moment = PHIVOLCSNormalizer().parse_datetime("01 March 2024 - 12:05 PM")
        assert moment.hour == 12

    def test_unknown_month_rejected(self):
        with pytest.raises(MalformedRecord, match="month"):
            PHIVOLCSNormalizer().parse_datetime("01 Smarch 2024 - 10:00 AM")

    def test_basic_row(self):
        event = PHIVOLCSNormalizer().normalize(phivolcs_row())
        expected_time = BASE_TIME.replace(second=0)
        assert event.occurred_at == expected_time
        assert event.latitude == 12.34
        assert event.longitude == 123.45
        assert event.depth_km == 10.0
        assert event.magnitude == 2.1
        assert event.magnitude_type == "ms"
        assert event.region == "Luzon"
        assert event.occurred_at_local.endswith("PHT")
        ts_ms = int(expected_time.timestamp() * 1000)
        assert event.source_event_id == f"{ts_ms}_2.1_12.34_123.45"

    def test_generated_id_is_stable(self):
        a = PHIVOLCSNormalizer().normalize(phivolcs_row())
        b = PHIVOLCSNormalizer().normalize(phivolcs_row())
        assert a.id == b.id

    def test_empty_depth_maps_to_zero(self):
        event = PHIVOLCSNormalizer().normalize(phivolcs_row(depth=""))
        assert event.depth_km == 0.0

    def test_non_numeric_latitude_rejected(self):
        with pytest.raises(MalformedRecord, match="latitude"):
            PHIVOLCSNormalizer().normalize(phivolcs_row(lat="N/A"))


# ── Shared validation ────────────────────────────────────────────────────


class TestValidation:
    def test_valid_event(self):
        assert RecordNormalizer.validate(make_event()) == []

    def test_zero_depth_is_valid(self):
        assert RecordNormalizer.validate(make_event(depth=0.0)) == []

    def test_magnitude_out_of_range(self):
        errors = RecordNormalizer.validate(make_event(mag=11.0))
        assert any("magnitude" in e for e in errors)

    def test_multiple_errors(self):
        errors = RecordNormalizer.validate(make_event(lat=95.0, depth=900.0))
        assert len(errors) == 2


class TestCleanLocation:
    def test_collapses_whitespace(self):
        assert clean_location("  10 km   N of  X ") == "10 km N of X"

    def test_placeholders(self):
        assert clean_location("n/a") is None
        assert clean_location("") is None
        assert clean_location(None) is None
