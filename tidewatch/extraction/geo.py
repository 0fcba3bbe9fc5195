"""Tidewatch — Geofencing & Coordinate Helpers."""

import logging
import math
from dataclasses import dataclass, field

logger = logging.getLogger("tidewatch.extractor")

EARTH_RADIUS_NM = 3440.065


@dataclass(frozen=True)
class Geofence:
    """Bounding-box plausibility check for candidate coordinates."""
    name: str
    lat_min: float
    lat_max: float
    lon_min: float
    lon_max: float

    @classmethod
    def from_settings(cls, s) -> "Geofence":
        lat_min, lat_max, lon_min, lon_max = s.bounding_box()
        return cls(s.geofence_name, lat_min, lat_max, lon_min, lon_max)

    def contains(self, lat: float, lon: float) -> bool:
        return self.lat_min <= lat <= self.lat_max and self.lon_min <= lon <= self.lon_max


@dataclass
class Candidate:
    """A coordinate pair proposed by one fallback strategy."""
    latitude: float
    longitude: float
    strategy: str


@dataclass
class GeofenceVerdict:
    accepted: list[Candidate] = field(default_factory=list)
    rejected: list[Candidate] = field(default_factory=list)


def screen_candidates(fence: Geofence, candidates: list[Candidate]) -> GeofenceVerdict:
    """Split candidates into those inside the fence and those outside it."""
    verdict = GeofenceVerdict()
    for c in candidates:
        if not is_valid_coordinate(c.latitude, c.longitude):
            verdict.rejected.append(c)
        elif fence.contains(c.latitude, c.longitude):
            verdict.accepted.append(c)
        else:
            verdict.rejected.append(c)
    if verdict.rejected:
        logger.debug(
            "[geofence] Rejected %d candidate(s) outside %s: %s",
            len(verdict.rejected),
            fence.name,
            [(c.latitude, c.longitude, c.strategy) for c in verdict.rejected],
        )
    return verdict


def is_valid_coordinate(lat: float, lon: float) -> bool:
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def format_coordinates(lat: float, lon: float) -> str:
    """Human-readable form, e.g. ``1.296600°N, 103.776400°E``."""
    lat_dir = "N" if lat >= 0 else "S"
    lon_dir = "E" if lon >= 0 else "W"
    return f"{abs(lat):.6f}°{lat_dir}, {abs(lon):.6f}°{lon_dir}"


def haversine_nm(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in nautical miles."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_NM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
