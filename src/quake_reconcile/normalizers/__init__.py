"""Per-provider normalizers converting raw records to CanonicalEvent."""

from quake_reconcile.normalizers.base import RecordNormalizer
from quake_reconcile.normalizers.emsc import EMSCNormalizer
from quake_reconcile.normalizers.geonet import GeoNetNormalizer
from quake_reconcile.normalizers.jma import JMANormalizer
from quake_reconcile.normalizers.phivolcs import PHIVOLCSNormalizer
from quake_reconcile.normalizers.usgs import USGSNormalizer

NORMALIZER_MAP: dict[str, RecordNormalizer] = {
    "usgs": USGSNormalizer(),
    "emsc": EMSCNormalizer(),
    "jma": JMANormalizer(),
    "geonet": GeoNetNormalizer(),
    "phivolcs": PHIVOLCSNormalizer(),
}

__all__ = [
    "NORMALIZER_MAP",
    "RecordNormalizer",
    "USGSNormalizer",
    "EMSCNormalizer",
    "JMANormalizer",
    "GeoNetNormalizer",
    "PHIVOLCSNormalizer",
]
