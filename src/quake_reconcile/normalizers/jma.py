"""Normalizer for the Japan Meteorological Agency quake list (list.json)."""

from __future__ import annotations

import re
from datetime import datetime

from quake_reconcile.errors import MalformedRecord
from quake_reconcile.models import CanonicalEvent
from quake_reconcile.normalizers.base import RecordNormalizer

# "+35.8+140.3-40000/": latitude, longitude, then depth in metres (negative down)
_COD_RE = re.compile(r"^([+-]\d+(?:\.\d+)?)([+-]\d+(?:\.\d+)?)([+-]\d+)?/?$")


def parse_cod(cod: str) -> tuple[float, float, float]:
    """Split a JMA ``cod`` string into (lat, lon, depth_km).

    A missing depth group means JMA did not determine one; it maps to 0.
    """
    match = _COD_RE.match((cod or "").strip())
    if match is None:
        raise ValueError(f"unrecognised coordinate string {cod!r}")
    lat = float(match.group(1))
    lon = float(match.group(2))
    depth_km = abs(int(match.group(3))) / 1000 if match.group(3) else 0.0
    return lat, lon, depth_km


class JMANormalizer(RecordNormalizer):
    """JMA list item → CanonicalEvent. ``at`` carries a +09:00 offset."""

    source = "jma"

    def report_key(self, raw: dict) -> str:
        # rdt: report issue time; corrections of one eid carry later values
        return str(raw.get("rdt") or "")

    def _convert(self, raw: dict, ingested_at: datetime) -> CanonicalEvent:
        source_event_id = raw.get("eid")
        try:
            lat, lon, depth_km = parse_cod(raw.get("cod", ""))
        except ValueError as exc:
            raise MalformedRecord(self.source, f"missing coordinates: {exc}", source_event_id) from exc

        json_name = raw.get("json")
        return self._event(
            source_event_id=source_event_id,
            occurred_at=self._parse_iso(raw.get("at")),
            latitude=lat,
            longitude=lon,
            depth_km=depth_km,
            magnitude=self._number(raw.get("mag"), "magnitude"),
            magnitude_type="mj",
            location=raw.get("en_anm") or raw.get("anm"),
            source_url=f"https://www.jma.go.jp/bosai/quake/data/{json_name}" if json_name else None,
            ingested_at=ingested_at,
        )
