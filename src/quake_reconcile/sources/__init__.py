"""Source registry and merge priority table for earthquake data providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta, timezone, tzinfo
from typing import Iterable, Optional

from quake_reconcile.regions import find_region


@dataclass
class SourceConfig:
    """Configuration for a single earthquake data source."""

    name: str
    base_url: Optional[str]     # None for sources fed by an external scraper
    format: str                 # "fdsn_geojson", "jma_list", "geonet_geojson", "phivolcs_rows"
    utc_offset_hours: Optional[float]   # Provider's stated timezone; None if it states none
    timezone_label: str
    timeout_seconds: float
    max_retries: int
    retry_backoff_base: float
    rate_limit_rpm: int
    limit: int
    enabled: bool

    @property
    def tz(self) -> tzinfo:
        if self.utc_offset_hours is None:
            return timezone.utc
        return timezone(timedelta(hours=self.utc_offset_hours), self.timezone_label)


SOURCES: dict[str, SourceConfig] = {
    "usgs": SourceConfig(
        name="usgs",
        base_url="https://earthquake.usgs.gov/fdsnws/event/1/query",
        format="fdsn_geojson",
        utc_offset_hours=0,
        timezone_label="UTC",
        timeout_seconds=15,
        max_retries=2,
        retry_backoff_base=2.0,
        rate_limit_rpm=30,
        limit=5000,
        enabled=True,
    ),
    "emsc": SourceConfig(
        name="emsc",
        base_url="https://www.seismicportal.eu/fdsnws/event/1/query",
        format="fdsn_geojson",
        utc_offset_hours=None,     # Feed times always carry their zone
        timezone_label="UTC",
        timeout_seconds=20,
        max_retries=2,
        retry_backoff_base=2.0,
        rate_limit_rpm=20,
        limit=2000,
        enabled=True,
    ),
    "jma": SourceConfig(
        name="jma",
        base_url="https://www.jma.go.jp/bosai/quake/data/list.json",
        format="jma_list",
        utc_offset_hours=9,
        timezone_label="JST",
        timeout_seconds=20,
        max_retries=2,
        retry_backoff_base=2.0,
        rate_limit_rpm=10,
        limit=500,
        enabled=True,
    ),
    "geonet": SourceConfig(
        name="geonet",
        base_url="https://api.geonet.org.nz/quake",
        format="geonet_geojson",
        utc_offset_hours=None,     # Feed times always carry their zone
        timezone_label="UTC",
        timeout_seconds=20,
        max_retries=2,
        retry_backoff_base=2.0,
        rate_limit_rpm=10,
        limit=500,
        enabled=True,
    ),
    "phivolcs": SourceConfig(
        name="phivolcs",
        base_url=None,
        format="phivolcs_rows",
        utc_offset_hours=8,
        timezone_label="PHT",
        timeout_seconds=30,
        max_retries=0,
        retry_backoff_base=2.0,
        rate_limit_rpm=2,
        limit=500,
        enabled=False,
    ),
}


@dataclass
class SourcePriority:
    """Total order over sources used by the merge resolver.

    ``default`` applies everywhere; ``regional`` maps a region key (see
    ``quake_reconcile.regions``) to the order used inside that jurisdiction.
    Sources missing from an order rank after every listed source.
    """

    default: list[str]
    regional: dict[str, list[str]] = field(default_factory=dict)

    def order_for(self, lat: float, lon: float) -> list[str]:
        region = find_region(lat, lon)
        if region is not None and region.key in self.regional:
            return self.regional[region.key]
        return self.default

    def rank(self, source: str, order: Optional[list[str]] = None) -> int:
        order = self.default if order is None else order
        try:
            return order.index(source)
        except ValueError:
            return len(order)

    def sort(self, sources: Iterable[str], order: Optional[list[str]] = None) -> list[str]:
        return sorted(set(sources), key=lambda s: (self.rank(s, order), s))


DEFAULT_PRIORITY = SourcePriority(
    default=["usgs", "emsc", "jma", "geonet", "phivolcs"],
    regional={
        "japan": ["jma", "usgs", "emsc", "geonet", "phivolcs"],
        "new-zealand": ["geonet", "usgs", "emsc", "jma", "phivolcs"],
        "philippines": ["phivolcs", "usgs", "emsc", "jma", "geonet"],
        "italy": ["emsc", "usgs", "jma", "geonet", "phivolcs"],
        "greece": ["emsc", "usgs", "jma", "geonet", "phivolcs"],
        "turkey": ["emsc", "usgs", "jma", "geonet", "phivolcs"],
        "iceland": ["emsc", "usgs", "jma", "geonet", "phivolcs"],
    },
)


def enabled_sources() -> list[str]:
    return [name for name, config in SOURCES.items() if config.enabled]
