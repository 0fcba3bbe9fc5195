"""Tidewatch — Application Configuration."""

import logging
from typing import Optional

from pydantic_settings import BaseSettings

_cfg_logger = logging.getLogger("tidewatch.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    app_name: str = "Tidewatch"
    app_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    log_level: str = "INFO"

    # Durable cache layer
    redis_url: str = "redis://localhost:6379"
    redis_cache_key: str = "tidewatch:tracking_cache"
    use_redis: bool = False  # Set True when Redis is available
    cache_file: str = ".tidewatch_cache.json"

    # Cache TTLs (seconds)
    success_ttl: int = 10 * 60
    default_ttl: int = 5 * 60
    error_ttl: int = 2 * 60
    cleanup_threshold: int = 100

    # Preload / staggering
    preload_batch_size: int = 3
    preload_batch_pause: float = 0.2
    row_stagger: float = 0.1

    # Page fetcher
    fetcher_backend: str = "playwright"  # "playwright" or "httpx"
    navigation_timeout: float = 30.0
    fetch_attempts: int = 3
    fetch_backoff: float = 2.0
    ready_timeout: float = 10.0
    settle_delay: float = 3.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Geofence for fallback coordinates (default: Southeast Asian waters)
    geofence_name: str = "Southeast Asia"
    geofence_lat_min: float = -12.0
    geofence_lat_max: float = 25.0
    geofence_lon_min: float = 90.0
    geofence_lon_max: float = 135.0

    # Regional placeholder used when no position can be recovered (Singapore Strait)
    placeholder_lat: float = 1.2644
    placeholder_lon: float = 103.8200
    placeholder_port: str = "Port of Singapore"

    # Upstream source
    upstream_domain: str = "vesselfinder.com"
    image_host: str = "https://static.vesselfinder.net"

    # Ship registry seed (JSON list of ships)
    registry_file: Optional[str] = None

    model_config = {"env_file": ".env", "env_prefix": "TIDEWATCH_", "extra": "ignore"}

    def bounding_box(self) -> tuple[float, float, float, float]:
        """(lat_min, lat_max, lon_min, lon_max), normalized so min < max."""
        return (
            min(self.geofence_lat_min, self.geofence_lat_max),
            max(self.geofence_lat_min, self.geofence_lat_max),
            min(self.geofence_lon_min, self.geofence_lon_max),
            max(self.geofence_lon_min, self.geofence_lon_max),
        )


def _load_settings() -> Settings:
    s = Settings()
    if s.fetcher_backend not in ("playwright", "httpx"):
        _cfg_logger.warning("Unknown fetcher backend %r, using playwright", s.fetcher_backend)
        s.fetcher_backend = "playwright"
    return s


settings = _load_settings()
