"""Normalizer for USGS FDSN GeoJSON features."""

from __future__ import annotations

from datetime import datetime, timezone

from quake_reconcile.errors import MalformedRecord
from quake_reconcile.models import CanonicalEvent
from quake_reconcile.normalizers.base import RecordNormalizer


class USGSNormalizer(RecordNormalizer):
    """USGS feature → CanonicalEvent. Times are epoch milliseconds (UTC)."""

    source = "usgs"

    def _convert(self, raw: dict, ingested_at: datetime) -> CanonicalEvent:
        props = raw["properties"]
        coords = (raw.get("geometry") or {}).get("coordinates") or []
        if len(coords) < 2:
            raise MalformedRecord(self.source, "missing coordinates", raw.get("id"))

        time_ms = self._number(props.get("time"), "time")
        occurred_at = datetime.fromtimestamp(time_ms / 1000, tz=timezone.utc)
        source_event_id = raw.get("id") or props.get("code")

        return self._event(
            source_event_id=source_event_id,
            occurred_at=occurred_at,
            latitude=self._number(coords[1], "latitude"),
            longitude=self._number(coords[0], "longitude"),
            depth_km=self._number(coords[2], "depth") if len(coords) > 2 and coords[2] is not None else 0.0,
            magnitude=self._number(props.get("mag"), "magnitude"),
            magnitude_type=props.get("magType"),
            location=props.get("place"),
            source_url=props.get("url")
            or f"https://earthquake.usgs.gov/earthquakes/eventpage/{source_event_id}",
            ingested_at=ingested_at,
        )
