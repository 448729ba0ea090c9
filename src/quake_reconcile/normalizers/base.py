"""Abstract base normalizer with validation logic."""

from __future__ import annotations

import abc
import math
from datetime import datetime, timezone, tzinfo
from typing import Optional

from quake_reconcile.errors import MalformedRecord
from quake_reconcile.geo import wrap_longitude
from quake_reconcile.models import CanonicalEvent, truncate_ms, utc_now
from quake_reconcile.regions import classify_region
from quake_reconcile.sources import SOURCES, SourceConfig

MIN_MAGNITUDE = -1.0
MAX_MAGNITUDE = 10.0
MAX_DEPTH_KM = 700.0

PLACEHOLDER_LOCATIONS = frozenset({"", "unknown", "n/a", "-", "none"})


class RecordNormalizer(abc.ABC):
    """Converts one raw provider record into a CanonicalEvent.

    Normalization is a pure function of the record and the ingestion time:
    no I/O and no cross-record state.
    """

    source: str = ""

    def __init__(self, config: Optional[SourceConfig] = None):
        self.config = config or SOURCES[self.source]

    def normalize(self, raw: dict, ingested_at: Optional[datetime] = None) -> CanonicalEvent:
        """Normalize and validate ``raw``. Raises MalformedRecord on any defect."""
        ingested_at = ingested_at or utc_now()
        try:
            event = self._convert(raw, ingested_at)
        except MalformedRecord:
            raise
        except (
            KeyError, IndexError, TypeError, ValueError, AttributeError, OverflowError, OSError,
        ) as exc:
            raise MalformedRecord(self.source, f"{type(exc).__name__}: {exc}") from exc

        errors = self.validate(event)
        if errors:
            raise MalformedRecord(self.source, "; ".join(errors), event.source_event_id)
        return event

    def report_key(self, raw: dict) -> str:
        """Orders reports of the same event; the greatest key is the latest."""
        return ""

    @abc.abstractmethod
    def _convert(self, raw: dict, ingested_at: datetime) -> CanonicalEvent:
        """Map provider fields onto the canonical model."""

    @staticmethod
    def validate(event: CanonicalEvent) -> list[str]:
        """Validate a CanonicalEvent. Returns list of error messages (empty = valid)."""
        errors: list[str] = []

        if not -90 <= event.latitude <= 90:
            errors.append(f"latitude {event.latitude} out of range [-90, 90]")
        if not -180 <= event.longitude <= 180:
            errors.append(f"longitude {event.longitude} out of range [-180, 180]")

        # 0 means "surface/unknown" and is kept
        if not 0 <= event.depth_km <= MAX_DEPTH_KM:
            errors.append(f"depth_km {event.depth_km} out of range [0, {MAX_DEPTH_KM:g}]")

        if not MIN_MAGNITUDE <= event.magnitude <= MAX_MAGNITUDE:
            errors.append(
                f"magnitude {event.magnitude} out of range [{MIN_MAGNITUDE:g}, {MAX_MAGNITUDE:g}]"
            )

        if event.occurred_at.tzinfo is None:
            errors.append("occurred_at is not timezone-aware")
        elif event.occurred_at > event.ingested_at:
            errors.append(f"occurred_at {event.occurred_at.isoformat()} is in the future")

        if not event.source_event_id:
            errors.append("source_event_id is empty")

        return errors

    # ── helpers shared by provider normalizers ──────────────────────────

    def _number(self, value, name: str) -> float:
        if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
            raise MalformedRecord(self.source, f"{name} is missing")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise MalformedRecord(self.source, f"{name} {value!r} is not numeric") from exc
        if not math.isfinite(number):
            raise MalformedRecord(self.source, f"{name} {value!r} is not finite")
        return number

    def _aware(self, value: datetime) -> datetime:
        """Attach the provider's stated offset to a naive timestamp."""
        if value.tzinfo is None:
            if self.config.utc_offset_hours is None:
                raise MalformedRecord(self.source, "naive timestamp and no stated offset")
            return value.replace(tzinfo=self.config.tz)
        return value

    def _parse_iso(self, text: str) -> datetime:
        if not isinstance(text, str) or not text.strip():
            raise MalformedRecord(self.source, f"time {text!r} is not a timestamp string")
        try:
            return self._aware(datetime.fromisoformat(_normalize_fraction(text.strip())))
        except ValueError as exc:
            raise MalformedRecord(self.source, f"time {text!r} is unparsable") from exc

    def _event(
        self,
        *,
        source_event_id,
        occurred_at: datetime,
        latitude: float,
        longitude: float,
        depth_km: float,
        magnitude: float,
        magnitude_type: Optional[str],
        location: Optional[str],
        source_url: Optional[str],
        ingested_at: datetime,
    ) -> CanonicalEvent:
        source_event_id = str(source_event_id or "").strip()
        occurred_at = truncate_ms(occurred_at)
        longitude = wrap_longitude(longitude)
        return CanonicalEvent(
            id=f"{self.source}:{source_event_id}",
            source=self.source,
            source_event_id=source_event_id,
            occurred_at=occurred_at.astimezone(timezone.utc),
            occurred_at_local=render_local(occurred_at, self.config.tz),
            latitude=latitude,
            longitude=longitude,
            depth_km=depth_km,
            magnitude=magnitude,
            magnitude_type=(magnitude_type or "ml").strip().lower(),
            location=clean_location(location),
            region=classify_region(latitude, longitude),
            source_url=source_url or None,
            ingested_at=ingested_at,
        )


def render_local(moment: datetime, tz: tzinfo) -> str:
    return moment.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S %Z")


def clean_location(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = " ".join(str(text).split())
    return None if text.lower() in PLACEHOLDER_LOCATIONS else text


def _normalize_fraction(time_str: str) -> str:
    """Pad or trim fractional seconds to 6 digits so fromisoformat accepts them."""
    time_str = time_str.replace("Z", "+00:00")
    if "." not in time_str:
        return time_str
    base, rest = time_str.split(".", 1)
    digits = ""
    for ch in rest:
        if not ch.isdigit():
            break
        digits += ch
    suffix = rest[len(digits):]
    return f"{base}.{digits.ljust(6, '0')[:6]}{suffix}"

