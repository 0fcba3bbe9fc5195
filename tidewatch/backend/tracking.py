"""Tidewatch — Tracking Orchestrator.

The only surface list/detail views use. Cache first, then the detail
collector; results are written through with a TTL chosen from the outcome.
Nothing raised below this layer reaches the caller.
"""

import asyncio
import logging
from typing import Optional

from backend.cache_manager import TieredCache
from backend.models import CacheOrigin, Outcome, Ship, VesselRecord
from collectors.synthetic import ship_name_from_email, tracking_link
from collectors.vessel_detail_collector import VesselDetailCollector

logger = logging.getLogger("tidewatch.tracking")


class TrackingOrchestrator:
    def __init__(
        self,
        cache: TieredCache,
        collector: VesselDetailCollector,
        batch_size: int = 3,
        batch_pause: float = 0.2,
        row_stagger: float = 0.1,
    ):
        self.cache = cache
        self.collector = collector
        self.batch_size = batch_size
        self.batch_pause = batch_pause
        self.row_stagger = row_stagger

    async def get_cached(self, ship_id: str) -> Optional[VesselRecord]:
        return await self.cache.get(ship_id)

    async def get_tracking_data(self, ship: Ship) -> VesselRecord:
        entry = await self.cache.get_entry(ship.id)
        if entry is not None:
            return entry.data if entry.data is not None else self._identity_only(ship)

        if not ship.vesselfinder_url:
            record = self._identity_only(ship)
            await self._write(ship, record, CacheOrigin.PLAIN)
            return record

        try:
            resolution = await self.collector.resolve(ship.vesselfinder_url)
            record = resolution.record
            if not record.name:
                record.name = ship_name_from_email(ship.ship_email)
            origin = CacheOrigin.SUCCESS if resolution.outcome == Outcome.SCRAPED else CacheOrigin.ERROR
        except Exception as e:
            logger.error("Error loading tracking data for ship %s: %s", ship.ship_email, e)
            record = self._identity_only(ship)
            origin = CacheOrigin.ERROR

        await self._write(ship, record, origin)
        return record

    async def load_row(self, ship: Ship, index: int) -> VesselRecord:
        """Row-level load for list views, staggered by position in the list."""
        if index > 0:
            await asyncio.sleep(index * self.row_stagger)
        return await self.get_tracking_data(ship)

    async def preload(self, ships: list[Ship], batch_size: Optional[int] = None) -> int:
        """Resolve uncached ships in fixed-size batches. Returns how many were loaded."""
        size = max(1, batch_size or self.batch_size)
        pending = []
        for ship in ships:
            if not await self.cache.has(ship.id):
                pending.append(ship)
        if not pending:
            return 0

        for start in range(0, len(pending), size):
            batch = pending[start:start + size]
            results = await asyncio.gather(
                *(self.get_tracking_data(ship) for ship in batch),
                return_exceptions=True,
            )
            for ship, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning("Background preload failed for %s: %s", ship.id, result)
            if start + size < len(pending):
                await asyncio.sleep(self.batch_pause)

        logger.info("Preloaded tracking data for %d ship(s)", len(pending))
        return len(pending)

    async def cache_stats(self) -> dict:
        return await self.cache.stats()

    async def clear_one(self, ship_id: str) -> None:
        await self.cache.delete(ship_id)

    async def clear_all(self) -> None:
        await self.cache.clear()

    @staticmethod
    def tracking_link(ship: Ship, record: Optional[VesselRecord] = None) -> Optional[str]:
        return tracking_link(ship.vesselfinder_url, record.imo if record else None)

    @staticmethod
    def _identity_only(ship: Ship) -> VesselRecord:
        return VesselRecord(name=ship_name_from_email(ship.ship_email))

    async def _write(self, ship: Ship, record: VesselRecord, origin: CacheOrigin) -> None:
        try:
            await self.cache.set(ship.id, record, origin=origin)
        except Exception as e:
            logger.error("Error caching tracking data for %s: %s", ship.id, e)
