"""Normalizer for EMSC (SeismicPortal) GeoJSON features."""

from __future__ import annotations

from datetime import datetime, timezone

from quake_reconcile.errors import MalformedRecord
from quake_reconcile.models import CanonicalEvent
from quake_reconcile.normalizers.base import RecordNormalizer


class EMSCNormalizer(RecordNormalizer):
    """EMSC feature → CanonicalEvent."""

    source = "emsc"

    def _convert(self, raw: dict, ingested_at: datetime) -> CanonicalEvent:
        props = raw["properties"]
        coords = (raw.get("geometry") or {}).get("coordinates") or []

        source_event_id = props.get("unid") or props.get("source_id") or raw.get("id")

        lat = props.get("lat", coords[1] if len(coords) > 1 else None)
        lon = props.get("lon", coords[0] if len(coords) > 0 else None)
        if lat is None or lon is None:
            raise MalformedRecord(self.source, "missing coordinates", source_event_id)

        # SeismicPortal puts depth in properties; the geometry z is negated
        if props.get("depth") is not None:
            depth_km = self._number(props["depth"], "depth")
        elif len(coords) > 2 and coords[2] is not None:
            depth_km = abs(self._number(coords[2], "depth"))
        else:
            depth_km = 0.0

        time_raw = props.get("time")
        if isinstance(time_raw, (int, float)) and not isinstance(time_raw, bool):
            occurred_at = datetime.fromtimestamp(time_raw / 1000, tz=timezone.utc)
        else:
            occurred_at = self._parse_iso(time_raw)

        unid = props.get("unid")
        url = (
            f"https://www.emsc-csem.org/Earthquake/earthquake.php?id={unid}"
            if unid else props.get("url")
        )

        return self._event(
            source_event_id=source_event_id,
            occurred_at=occurred_at,
            latitude=self._number(lat, "latitude"),
            longitude=self._number(lon, "longitude"),
            depth_km=depth_km,
            magnitude=self._number(props.get("mag"), "magnitude"),
            magnitude_type=props.get("magtype") or props.get("magType"),
            location=props.get("place") or props.get("flynn_region"),
            source_url=url,
            ingested_at=ingested_at,
        )
