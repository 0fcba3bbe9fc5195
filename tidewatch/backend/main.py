"""
Tidewatch — Main FastAPI Application
Vessel tracking acquisition & caching backend for the fleet dashboard
"""

import logging
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.cache_manager import TieredCache, build_durable_store
from backend.config import settings
from backend.registry import InMemoryShipRegistry
from backend.tracking import TrackingOrchestrator
from collectors.page_fetcher import build_fetcher
from collectors.synthetic import search_records
from collectors.vessel_detail_collector import VesselDetailCollector
from extraction.field_extractor import FieldExtractor
from extraction.geo import Geofence

# ─── Logging ───────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s │ %(name)-20s │ %(levelname)-7s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("tidewatch.main")


class DetailRequest(BaseModel):
    url: Optional[str] = None


class PreloadRequest(BaseModel):
    ship_ids: Optional[list[str]] = None
    batch_size: Optional[int] = None


def build_collector(s) -> VesselDetailCollector:
    return VesselDetailCollector(
        fetcher=build_fetcher(s),
        extractor=FieldExtractor(Geofence.from_settings(s), image_host=s.image_host),
        placeholder_lat=s.placeholder_lat,
        placeholder_lon=s.placeholder_lon,
        placeholder_port=s.placeholder_port,
    )


def is_upstream_url(url: str, domain: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the cache, collector and orchestrator once per process."""
    logger.info("═══════════════════════════════════════════════")
    logger.info("  TIDEWATCH — Vessel Tracking Backend          ")
    logger.info("  Version %s", settings.app_version)
    logger.info("═══════════════════════════════════════════════")

    durable = await build_durable_store(settings)
    cache = TieredCache.from_settings(settings, durable=durable)
    collector = build_collector(settings)

    app.state.registry = InMemoryShipRegistry.from_file(settings.registry_file)
    app.state.collector = collector
    app.state.tracking = TrackingOrchestrator(
        cache,
        collector,
        batch_size=settings.preload_batch_size,
        batch_pause=settings.preload_batch_pause,
        row_stagger=settings.row_stagger,
    )

    yield

    logger.info("Shutting down Tidewatch...")
    await collector.fetcher.close()
    await cache.close()


# ─── FastAPI App ───────────────────────────────────
app = FastAPI(
    title="Tidewatch",
    description="Vessel tracking data acquisition and caching",
    version=settings.app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ─── REST Endpoints ───────────────────────────────
@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "status": "operational",
    }


@app.get("/health/live")
async def liveness():
    """Liveness: process is running. No dependencies checked."""
    return {"status": "ok"}


@app.post("/api/scrape-vessel-detail")
async def scrape_vessel_detail(body: DetailRequest, request: Request):
    """Resolve one vessel detail page into a VesselRecord."""
    if not body.url:
        return JSONResponse(status_code=400, content={"error": "VesselFinder URL is required"})
    if not is_upstream_url(body.url, settings.upstream_domain):
        return JSONResponse(status_code=400, content={"error": "Only VesselFinder URLs are supported"})

    try:
        resolution = await request.app.state.collector.resolve(body.url)
    except Exception as e:
        logger.error("Scraping error for %s: %s", body.url, e)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to scrape vessel data", "message": str(e)},
        )

    return {
        "success": True,
        "data": resolution.record.model_dump(mode="json"),
        "source": "VesselFinder.com",
        "outcome": resolution.outcome.value,
        "scrapedAt": resolution.resolved_at.isoformat(),
    }


@app.get("/api/scrape-vessel")
async def scrape_vessel(query: Optional[str] = None, mmsi: Optional[str] = None):
    """Name or MMSI search."""
    if not query and not mmsi:
        return JSONResponse(
            status_code=400,
            content={"error": "Either query or mmsi parameter is required"},
        )
    try:
        records = search_records(query=query, mmsi=mmsi)
    except Exception as e:
        logger.error("Search error: %s", e)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to scrape vessel data", "message": str(e)},
        )
    return {
        "success": True,
        "data": [r.model_dump(mode="json") for r in records],
        "source": "VesselFinder.com",
    }


@app.get("/api/ships/{ship_id}/tracking")
async def ship_tracking(ship_id: str, request: Request):
    """Tracking data for one registry ship (cache first)."""
    ship = request.app.state.registry.get(ship_id)
    if ship is None:
        raise HTTPException(status_code=404, detail="Ship not found")
    tracking: TrackingOrchestrator = request.app.state.tracking
    record = await tracking.get_tracking_data(ship)
    return {
        "ship_id": ship.id,
        "data": record.model_dump(mode="json"),
        "tracking_url": tracking.tracking_link(ship, record),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.post("/api/tracking/preload")
async def preload_tracking(body: PreloadRequest, request: Request):
    """Warm the cache for the given ships (all active ships by default)."""
    registry = request.app.state.registry
    if body.ship_ids:
        ships = [s for s in (registry.get(i) for i in body.ship_ids) if s is not None]
    else:
        ships = registry.list(active_only=True)
    loaded = await request.app.state.tracking.preload(ships, batch_size=body.batch_size)
    return {"requested": len(ships), "loaded": loaded}


@app.get("/api/cache/stats")
async def cache_stats(request: Request):
    return await request.app.state.tracking.cache_stats()


@app.delete("/api/cache/{ship_id}")
async def clear_ship_cache(ship_id: str, request: Request):
    await request.app.state.tracking.clear_one(ship_id)
    return {"cleared": ship_id}


@app.delete("/api/cache")
async def clear_cache(request: Request):
    await request.app.state.tracking.clear_all()
    return {"cleared": "all"}


# ─── Run ───────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
