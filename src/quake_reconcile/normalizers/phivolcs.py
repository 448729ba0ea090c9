"""Normalizer for PHIVOLCS bulletin rows handed over by the external scraper.

Rows are the six text cells of the PHIVOLCS table: date-time, latitude,
longitude, depth, magnitude, location. Times are Philippine Standard Time.
"""

from __future__ import annotations

import re
from datetime import datetime

from quake_reconcile.errors import MalformedRecord
from quake_reconcile.models import CanonicalEvent
from quake_reconcile.normalizers.base import RecordNormalizer

# "30 January 2026 - 04:47 PM"
_DATETIME_RE = re.compile(
    r"(\d{1,2})\s+([A-Za-z]+)\s+(\d{4})\s*-\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)?",
    re.IGNORECASE,
)

_MONTHS = {
    name: index
    for index, name in enumerate(
        ["january", "february", "march", "april", "may", "june", "july",
         "august", "september", "october", "november", "december"],
        start=1,
    )
}

BULLETIN_URL = "https://earthquake.phivolcs.dost.gov.ph/"


class PHIVOLCSNormalizer(RecordNormalizer):
    source = "phivolcs"

    def parse_datetime(self, text: str) -> datetime:
        match = _DATETIME_RE.search(text or "")
        if match is None:
            raise MalformedRecord(self.source, f"time {text!r} is unparsable")

        day, month_name, year, hour, minute, second, ampm = match.groups()
        month = _MONTHS.get(month_name.lower())
        if month is None:
            raise MalformedRecord(self.source, f"unknown month {month_name!r}")

        hour_24 = int(hour)
        ampm = (ampm or "").upper()
        if ampm == "PM" and hour_24 != 12:
            hour_24 += 12
        elif ampm == "AM" and hour_24 == 12:
            hour_24 = 0

        try:
            naive = datetime(int(year), month, int(day), hour_24, int(minute), int(second or 0))
        except ValueError as exc:
            raise MalformedRecord(self.source, f"time {text!r} is not a valid date") from exc
        return self._aware(naive)

    def _convert(self, raw: dict, ingested_at: datetime) -> CanonicalEvent:
        occurred_at = self.parse_datetime(raw.get("dateTime", ""))
        latitude = self._number(raw.get("latitude"), "latitude")
        longitude = self._number(raw.get("longitude"), "longitude")
        magnitude = self._number(raw.get("magnitude"), "magnitude")
        depth_raw = raw.get("depth")
        depth_km = self._number(depth_raw, "depth") if str(depth_raw or "").strip() else 0.0

        # PHIVOLCS publishes no identifiers; derive one from the bulletin values
        timestamp_ms = int(occurred_at.timestamp() * 1000)
        source_event_id = f"{timestamp_ms}_{magnitude:.1f}_{latitude:.2f}_{longitude:.2f}"

        return self._event(
            source_event_id=source_event_id,
            occurred_at=occurred_at,
            latitude=latitude,
            longitude=longitude,
            depth_km=depth_km,
            magnitude=magnitude,
            magnitude_type=raw.get("magnitudeType") or "ms",
            location=raw.get("location"),
            source_url=BULLETIN_URL,
            ingested_at=ingested_at,
        )
