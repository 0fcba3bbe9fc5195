"""Tidewatch — Field Extractor.

Turns the rendered HTML of one vessel detail page into a VesselRecord.
Fields that cannot be recovered are left unset; nothing raises.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from backend.models import PositionSource, VesselImage, VesselPosition, VesselRecord
from extraction import strategies as st
from extraction.geo import Candidate, Geofence, is_valid_coordinate, screen_candidates

logger = logging.getLogger("tidewatch.extractor")


@dataclass
class Voyage:
    """Position-adjacent fields read from the page whether or not coordinates were found."""
    course: Optional[float] = None
    speed: Optional[float] = None
    status: Optional[str] = None
    port: Optional[str] = None
    destination: Optional[str] = None
    last_update: Optional[datetime] = None


@dataclass
class ExtractionResult:
    record: VesselRecord
    position_strategy: Optional[str] = None
    rejected: list[Candidate] = field(default_factory=list)
    voyage: Voyage = field(default_factory=Voyage)

    @property
    def is_empty(self) -> bool:
        return not self.record.has_identity() and self.record.position is None


class FieldExtractor:
    """Applies the ordered strategy lists to a page."""

    def __init__(self, geofence: Geofence, image_host: str = "https://static.vesselfinder.net"):
        self.geofence = geofence
        self.image_host = image_host

    def extract(self, html: Optional[str]) -> ExtractionResult:
        if not html or not html.strip():
            return ExtractionResult(record=VesselRecord())
        try:
            soup = BeautifulSoup(html, "html.parser")
        except Exception as e:
            logger.warning("[extractor] Could not parse page: %s", e)
            return ExtractionResult(record=VesselRecord())

        record = VesselRecord(
            name=self._first(soup, st.NAME_STRATEGIES, "name"),
            type=self._first(soup, st.TYPE_STRATEGIES, "type"),
            imo=self._first(soup, st.IMO_STRATEGIES, "imo"),
            mmsi=self._first(soup, st.MMSI_STRATEGIES, "mmsi"),
            flag=self._first(soup, st.FLAG_STRATEGIES, "flag"),
        )

        specs = self._safe(st.specifications, soup, "specifications") or {}
        for name, value in specs.items():
            setattr(record, name, value)

        blob = self._safe(st.structured_blob, soup, "structured_blob")
        if record.mmsi is None and blob is not None and blob.mmsi:
            record.mmsi = blob.mmsi

        result = ExtractionResult(record=record)
        try:
            result.voyage = self._voyage(soup, blob)
        except Exception as e:
            logger.warning("[extractor] Voyage extraction failed: %s", e)
        try:
            record.position = self._position(soup, blob, result)
        except Exception as e:
            logger.warning("[extractor] Position extraction failed: %s", e)
            result.position_strategy = None
        try:
            record.image = self._image(soup)
        except Exception as e:
            logger.debug("[extractor] Image extraction failed: %s", e)
        return result

    # ─── Position ──────────────────────────────────

    def _position(self, soup: BeautifulSoup, blob: Optional[st.BlobPosition], result: ExtractionResult) -> Optional[VesselPosition]:
        voyage = result.voyage
        if blob is not None and blob.has_coordinates and not blob.is_sentinel:
            if is_valid_coordinate(blob.latitude, blob.longitude):
                result.position_strategy = "structured_blob"
                return self._build_position(voyage, blob.latitude, blob.longitude, PositionSource.STRUCTURED)
            logger.debug("[extractor] Blob coordinates out of range: %s, %s", blob.latitude, blob.longitude)

        for name, strategy in st.POSITION_FALLBACKS:
            candidates = self._safe(strategy, soup, name) or []
            verdict = screen_candidates(self.geofence, candidates)
            result.rejected.extend(verdict.rejected)
            if verdict.accepted:
                chosen = verdict.accepted[0]
                result.position_strategy = name
                return self._build_position(voyage, chosen.latitude, chosen.longitude, PositionSource.FALLBACK)

        if blob is not None and blob.has_coordinates and is_valid_coordinate(blob.latitude, blob.longitude):
            logger.info(
                "[extractor] No fallback validated, keeping blob value %s, %s as last resort",
                blob.latitude, blob.longitude,
            )
            result.position_strategy = "structured_blob_last_resort"
            return self._build_position(voyage, blob.latitude, blob.longitude, PositionSource.LAST_RESORT)
        return None

    def _voyage(self, soup: BeautifulSoup, blob: Optional[st.BlobPosition]) -> Voyage:
        """Course, speed, status, timestamp, port and destination; blob first, then the page."""
        course = blob.course if blob else None
        speed = blob.speed if blob else None
        if course is None or speed is None:
            pair = self._safe(st.course_speed_from_table, soup, "course_speed")
            if pair:
                course = course if course is not None else pair[0]
                speed = speed if speed is not None else pair[1]

        return Voyage(
            course=course % 360 if course is not None else None,
            speed=max(speed, 0.0) if speed is not None else None,
            status=(blob.status if blob else None) or self._safe(st.status_from_table, soup, "status"),
            port=self._first(soup, st.PORT_STRATEGIES, "port"),
            destination=self._first(soup, st.DESTINATION_STRATEGIES, "destination"),
            last_update=(blob.timestamp if blob else None) or self._safe(st.timestamp_from_table, soup, "timestamp"),
        )

    @staticmethod
    def _build_position(voyage: Voyage, lat: float, lon: float, source: PositionSource) -> VesselPosition:
        return VesselPosition(
            latitude=lat,
            longitude=lon,
            speed=voyage.speed,
            course=voyage.course,
            status=voyage.status,
            port=voyage.port,
            destination=voyage.destination,
            last_update=voyage.last_update,
            source=source,
        )

    # ─── Image ─────────────────────────────────────

    def _image(self, soup: BeautifulSoup) -> Optional[VesselImage]:
        src = self._first(soup, st.PHOTO_STRATEGIES, "photo")
        if not src:
            return None
        if not urlparse(src).scheme:
            src = urljoin(self.image_host.rstrip("/") + "/", src)
        return VesselImage(url=src, source="VesselFinder")

    # ─── Strategy plumbing ─────────────────────────

    def _first(self, soup: BeautifulSoup, strategies: list[st.FieldStrategy], field_name: str) -> Any:
        for name, strategy in strategies:
            value = self._safe(strategy, soup, f"{field_name}:{name}")
            if value not in (None, ""):
                return value
        return None

    @staticmethod
    def _safe(fn, soup: BeautifulSoup, label: str) -> Any:
        try:
            return fn(soup)
        except Exception as e:
            logger.debug("[extractor] Strategy %s failed: %s", label, e)
            return None
