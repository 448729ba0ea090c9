"""Coarse geographic region classifier.

Maps a coordinate to a country/archipelago bucket using bounding boxes,
falling back to a continental bucket. Regions also carry the provider that
acts as the regional authority, which the merge resolver uses to reorder
source priority inside that jurisdiction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Region:
    key: str
    name: str
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def contains(self, lat: float, lon: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lon <= lon <= self.max_lon


# Checked in order: nested or overlapping boxes list the smaller one first.
REGIONS: tuple[Region, ...] = (
    Region("taiwan", "Taiwan", 21.5, 25.5, 119.0, 122.5),
    Region("philippines", "Philippines", 4.5, 21.5, 116.0, 127.0),
    Region("japan", "Japan", 24.0, 46.0, 122.0, 154.0),
    Region("indonesia", "Indonesia", -11.0, 6.0, 95.0, 141.0),
    Region("new-zealand", "New Zealand", -48.0, -34.0, 165.0, 179.0),
    Region("california", "California", 32.0, 42.0, -125.0, -114.0),
    Region("alaska", "Alaska", 51.0, 71.5, -180.0, -129.0),
    Region("united-states", "United States", 24.0, 50.0, -125.0, -66.0),
    Region("mexico", "Mexico", 14.0, 33.0, -118.0, -86.0),
    Region("peru", "Peru", -18.5, 0.0, -81.5, -68.5),
    Region("chile", "Chile", -56.0, -17.5, -76.0, -66.0),
    Region("iceland", "Iceland", 63.0, 67.0, -25.0, -13.0),
    Region("italy", "Italy", 35.5, 47.5, 6.5, 19.0),
    Region("greece", "Greece", 34.5, 42.0, 19.0, 30.0),
    Region("turkey", "Turkey", 35.5, 42.5, 25.5, 45.0),
    Region("nepal", "Nepal", 26.0, 30.5, 80.0, 88.5),
    Region("pakistan", "Pakistan", 23.5, 37.5, 60.5, 77.5),
    Region("iran", "Iran", 25.0, 40.0, 44.0, 63.5),
    Region("india", "India", 6.0, 36.0, 68.0, 98.0),
)


def find_region(lat: float, lon: float) -> Optional[Region]:
    for region in REGIONS:
        if region.contains(lat, lon):
            return region
    return None


def _philippine_subregion(lat: float, lon: float) -> str:
    if lat >= 12.0 and lon >= 119.0:
        return "Luzon"
    if 9.0 <= lat < 12.5 and lon >= 122.0:
        return "Visayas"
    if lat < 10.0 and lon >= 118.0:
        return "Mindanao"
    if lon < 121.0 and 8.0 <= lat < 12.5:
        return "Palawan"
    return "Philippines"


def _continental_bucket(lat: float, lon: float) -> str:
    if -170 <= lon <= -30:
        return "Americas"
    if -30 < lon <= 45 and lat >= 30:
        return "Europe"
    if -20 <= lon <= 55 and lat < 30:
        return "Africa"
    if lon > 45 or lon < -170:
        return "Asia-Pacific"
    return "Global"


def classify_region(lat: float, lon: float) -> str:
    """Return the coarse region label for a coordinate."""
    region = find_region(lat, lon)
    if region is None:
        return _continental_bucket(lat, lon)
    if region.key == "philippines":
        return _philippine_subregion(lat, lon)
    return region.name
