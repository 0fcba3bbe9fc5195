"""Tidewatch — Vessel Detail Collector.

Fetch, then extract, for a single vessel detail page. Callers always get a
Resolution back: when the page cannot be fetched or yields nothing usable,
a curated record (known references) or a deterministic synthetic record is
substituted. Holds no cache; every call is independent.
"""

import logging

from backend.models import Outcome, Resolution, VesselPosition
from collectors.base_collector import BasePageFetcher
from collectors.synthetic import curated_record, placeholder_position, synthetic_detail_record
from extraction.field_extractor import FieldExtractor, Voyage

logger = logging.getLogger("tidewatch.collector")


class VesselDetailCollector:
    """Resolves one VesselReference into a VesselRecord."""

    def __init__(
        self,
        fetcher: BasePageFetcher,
        extractor: FieldExtractor,
        placeholder_lat: float,
        placeholder_lon: float,
        placeholder_port: str | None = None,
    ):
        self.fetcher = fetcher
        self.extractor = extractor
        self.placeholder_lat = placeholder_lat
        self.placeholder_lon = placeholder_lon
        self.placeholder_port = placeholder_port

    async def resolve(self, reference: str) -> Resolution:
        try:
            html = await self.fetcher.fetch(reference)
            result = self.extractor.extract(html)
        except Exception as e:
            logger.error("[detail] Pipeline failed for %s: %s", reference, e)
            return self._fallback(reference)

        if result.is_empty:
            logger.warning("[detail] Nothing extracted from %s", reference)
            return self._fallback(reference)

        record = result.record
        if record.position is None:
            record.position = self._placeholder(result.voyage)
        if result.rejected:
            logger.debug("[detail] %s: %d out-of-region candidate(s) discarded", reference, len(result.rejected))

        logger.info(
            "[detail] Resolved %s (%s) via %s",
            reference,
            record.name or "unnamed",
            result.position_strategy or "placeholder",
        )
        return Resolution(reference=reference, record=record, outcome=Outcome.SCRAPED)

    def _fallback(self, reference: str) -> Resolution:
        curated = curated_record(reference)
        if curated is not None:
            logger.info("[detail] Using curated record for %s", reference)
            return Resolution(reference=reference, record=curated, outcome=Outcome.CURATED)

        record = synthetic_detail_record(
            reference, self.placeholder_lat, self.placeholder_lon, self.placeholder_port
        )
        return Resolution(reference=reference, record=record, outcome=Outcome.SYNTHETIC)

    def _placeholder(self, voyage: Voyage) -> VesselPosition:
        """Regional placeholder coordinates; recovered voyage fields are kept over the defaults."""
        pos = placeholder_position(self.placeholder_lat, self.placeholder_lon, self.placeholder_port)
        for name in ("course", "speed", "status", "port", "destination", "last_update"):
            value = getattr(voyage, name)
            if value is not None:
                setattr(pos, name, value)
        return pos
