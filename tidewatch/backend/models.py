"""Tidewatch — Vessel Record Schema & Data Models."""

from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum
from datetime import datetime, timezone


class PositionSource(str, Enum):
    """How a position was obtained. Doubles as a confidence flag."""
    STRUCTURED = "structured"     # embedded data blob on the detail page
    FALLBACK = "fallback"         # geofenced fallback strategy
    LAST_RESORT = "last_resort"   # sentinel/rounded blob value kept when no fallback validated
    PLACEHOLDER = "placeholder"   # regional placeholder, nothing recovered
    SYNTHETIC = "synthetic"       # curated or hash-derived record


class CacheOrigin(str, Enum):
    """Classification of a cache write; selects the default TTL."""
    SUCCESS = "success"
    PLAIN = "plain"
    ERROR = "error"


class Outcome(str, Enum):
    """Result of one detail resolution."""
    SCRAPED = "scraped"
    CURATED = "curated"
    SYNTHETIC = "synthetic"


class VesselPosition(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    speed: Optional[float] = None
    course: Optional[float] = Field(default=None, ge=0, lt=360)
    status: Optional[str] = None
    port: Optional[str] = None
    destination: Optional[str] = None
    last_update: Optional[datetime] = None
    source: PositionSource = PositionSource.STRUCTURED


class VesselImage(BaseModel):
    url: str
    source: str = "VesselFinder"
    caption: Optional[str] = None


class VesselRecord(BaseModel):
    """Resolved structured data for one vessel at a point in time.

    Every field is optional: source coverage varies per page, and the
    extractor leaves anything it could not recover unset.
    """
    name: Optional[str] = None
    type: Optional[str] = None
    flag: Optional[str] = None
    imo: Optional[str] = None
    mmsi: Optional[str] = None

    length: Optional[float] = None
    width: Optional[float] = None
    deadweight: Optional[float] = None
    gross_tonnage: Optional[float] = None
    year_built: Optional[int] = None

    position: Optional[VesselPosition] = None
    image: Optional[VesselImage] = None

    def has_identity(self) -> bool:
        return any((self.name, self.type, self.flag, self.imo, self.mmsi))


class CacheEntry(BaseModel):
    """A full-replacement cache slot. ``data`` is None for a negative result."""
    data: Optional[VesselRecord] = None
    created_at: float
    expires_at: float
    origin: CacheOrigin = CacheOrigin.PLAIN

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class Resolution(BaseModel):
    """What the detail resolution service hands back for one reference."""
    reference: str
    record: VesselRecord
    outcome: Outcome
    resolved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Ship(BaseModel):
    """Registry view of a ship, as supplied by the ship registry."""
    id: str
    ship_email: str
    vesselfinder_url: Optional[str] = None
    is_active: bool = True
