"""Normalizer for GeoNet (New Zealand) quake GeoJSON features."""

from __future__ import annotations

from datetime import datetime

from quake_reconcile.errors import MalformedRecord
from quake_reconcile.models import CanonicalEvent
from quake_reconcile.normalizers.base import RecordNormalizer


class GeoNetNormalizer(RecordNormalizer):
    source = "geonet"

    def _convert(self, raw: dict, ingested_at: datetime) -> CanonicalEvent:
        props = raw["properties"]
        coords = (raw.get("geometry") or {}).get("coordinates") or []
        source_event_id = props.get("publicID")
        if len(coords) < 2:
            raise MalformedRecord(self.source, "missing coordinates", source_event_id)

        depth = props.get("depth")
        if depth is None and len(coords) > 2:
            depth = coords[2]

        return self._event(
            source_event_id=source_event_id,
            occurred_at=self._parse_iso(props.get("time")),
            latitude=self._number(coords[1], "latitude"),
            longitude=self._number(coords[0], "longitude"),
            depth_km=self._number(depth, "depth") if depth is not None else 0.0,
            magnitude=self._number(props.get("magnitude"), "magnitude"),
            magnitude_type=props.get("magnitudeType"),
            location=props.get("locality"),
            source_url=f"https://www.geonet.org.nz/earthquake/{source_event_id}",
            ingested_at=ingested_at,
        )
