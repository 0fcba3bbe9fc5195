"""Tidewatch — Ship Registry access.

Ship records are owned elsewhere; Tidewatch only reads them. The
in-memory registry is seeded from a JSON list when a file is configured.
"""

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

from backend.models import Ship

logger = logging.getLogger("tidewatch.registry")


class ShipRegistry(Protocol):
    def get(self, ship_id: str) -> Optional[Ship]: ...
    def list(self, active_only: bool = False) -> list[Ship]: ...


class InMemoryShipRegistry:
    def __init__(self, ships: Optional[list[Ship]] = None):
        self._ships: dict[str, Ship] = {s.id: s for s in ships or []}

    @classmethod
    def from_file(cls, path: Optional[str]) -> "InMemoryShipRegistry":
        if not path:
            return cls()
        p = Path(path)
        if not p.exists():
            logger.warning("Registry file %s not found, starting empty", p)
            return cls()
        try:
            raw = json.loads(p.read_text(encoding="utf-8"))
            ships = [Ship.model_validate(item) for item in raw]
        except Exception as e:
            logger.error("Failed to load registry file %s: %s", p, e)
            return cls()
        logger.info("Loaded %d ships from %s", len(ships), p.name)
        return cls(ships)

    def get(self, ship_id: str) -> Optional[Ship]:
        return self._ships.get(ship_id)

    def list(self, active_only: bool = False) -> list[Ship]:
        ships = list(self._ships.values())
        return [s for s in ships if s.is_active] if active_only else ships

    def upsert(self, ship: Ship) -> None:
        self._ships[ship.id] = ship
