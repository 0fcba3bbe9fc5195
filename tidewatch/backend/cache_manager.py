"""Tidewatch — Tiered Tracking Cache (in-process + Redis / JSON file).

Reads hit the in-process layer first and fall back to the durable layer,
promoting fresh hits. Writes replace the whole entry in both layers. Any
durable-layer failure is logged and the cache carries on in-process only.
"""

import asyncio
import json
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

from backend.models import CacheEntry, CacheOrigin, VesselRecord

logger = logging.getLogger("tidewatch.cache")


class CacheBackendError(Exception):
    """A durable store could not read or write an entry."""


class KeyValueStore(Protocol):
    name: str

    async def get(self, key: str) -> Optional[CacheEntry]: ...
    async def set(self, key: str, entry: CacheEntry) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def clear(self) -> None: ...
    async def items(self) -> dict[str, CacheEntry]: ...
    async def delete_many(self, keys: list[str]) -> None: ...
    async def close(self) -> None: ...


class InMemoryStore:
    """Fast in-process layer."""

    name = "memory"

    def __init__(self):
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def clear(self) -> None:
        self._entries.clear()

    async def items(self) -> dict[str, CacheEntry]:
        return dict(self._entries)

    async def delete_many(self, keys: list[str]) -> None:
        for key in keys:
            self._entries.pop(key, None)

    async def close(self) -> None:
        pass

    def __len__(self) -> int:
        return len(self._entries)

    def approximate_size(self) -> int:
        payload = {k: e.model_dump(mode="json") for k, e in self._entries.items()}
        return len(json.dumps(payload))


class JsonFileStore:
    """Durable layer kept as one serialized JSON object on disk.

    Every write is a read-modify-write of the whole blob, done in a worker
    thread under one lock so concurrent writers never interleave.
    """

    name = "file"

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as e:
            raise CacheBackendError(f"cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise CacheBackendError(f"{self.path} does not hold a JSON object")
        return data

    def _dump(self, data: dict) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise CacheBackendError(f"cannot write {self.path}: {e}") from e

    @staticmethod
    def _decode(key: str, raw) -> CacheEntry:
        try:
            return CacheEntry.model_validate(raw)
        except Exception as e:
            raise CacheBackendError(f"corrupt entry for {key}: {e}") from e

    def _read(self) -> dict:
        with self._lock:
            return self._load()

    def _update(self, apply: Callable[[dict], bool]) -> None:
        with self._lock:
            data = self._load()
            if apply(data):
                self._dump(data)

    def _unlink(self) -> None:
        with self._lock:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                raise CacheBackendError(f"cannot remove {self.path}: {e}") from e

    async def get(self, key: str) -> Optional[CacheEntry]:
        raw = (await asyncio.to_thread(self._read)).get(key)
        return None if raw is None else self._decode(key, raw)

    async def set(self, key: str, entry: CacheEntry) -> None:
        payload = entry.model_dump(mode="json")

        def apply(data: dict) -> bool:
            data[key] = payload
            return True

        await asyncio.to_thread(self._update, apply)

    async def delete(self, key: str) -> None:
        await self.delete_many([key])

    async def delete_many(self, keys: list[str]) -> None:
        def apply(data: dict) -> bool:
            removed = [data.pop(k) for k in keys if k in data]
            return bool(removed)

        await asyncio.to_thread(self._update, apply)

    async def clear(self) -> None:
        await asyncio.to_thread(self._unlink)

    async def items(self) -> dict[str, CacheEntry]:
        data = await asyncio.to_thread(self._read)
        return {k: self._decode(k, v) for k, v in data.items()}

    async def close(self) -> None:
        pass


class RedisStore:
    """Durable layer in a Redis hash (one field per ship id)."""

    name = "redis"

    def __init__(self, redis_url: str = "redis://localhost:6379", hash_key: str = "tidewatch:tracking_cache"):
        self._redis_url = redis_url
        self._hash_key = hash_key
        self._redis = None

    async def connect(self):
        import redis.asyncio as aioredis
        self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
        await self._redis.ping()
        logger.info("Connected to Redis at %s", self._redis_url)

    async def get(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self._redis.hget(self._hash_key, key)
        except Exception as e:
            raise CacheBackendError(f"redis read failed: {e}") from e
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate_json(raw)
        except Exception as e:
            raise CacheBackendError(f"corrupt entry for {key}: {e}") from e

    async def set(self, key: str, entry: CacheEntry) -> None:
        try:
            await self._redis.hset(self._hash_key, key, entry.model_dump_json())
        except Exception as e:
            raise CacheBackendError(f"redis write failed: {e}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.hdel(self._hash_key, key)
        except Exception as e:
            raise CacheBackendError(f"redis delete failed: {e}") from e

    async def clear(self) -> None:
        try:
            await self._redis.delete(self._hash_key)
        except Exception as e:
            raise CacheBackendError(f"redis clear failed: {e}") from e

    async def items(self) -> dict[str, CacheEntry]:
        try:
            raw = await self._redis.hgetall(self._hash_key)
        except Exception as e:
            raise CacheBackendError(f"redis scan failed: {e}") from e
        out = {}
        for key, value in raw.items():
            try:
                out[key] = CacheEntry.model_validate_json(value)
            except Exception:
                logger.warning("Dropping corrupt Redis cache entry %s", key)
        return out

    async def delete_many(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self._redis.hdel(self._hash_key, *keys)
        except Exception as e:
            raise CacheBackendError(f"redis delete failed: {e}") from e

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()


async def build_durable_store(s) -> KeyValueStore:
    """Redis when enabled and reachable, otherwise the JSON file store."""
    if s.use_redis:
        store = RedisStore(redis_url=s.redis_url, hash_key=s.redis_cache_key)
        try:
            await store.connect()
            return store
        except Exception as e:
            logger.warning("Redis unavailable (%s), falling back to file cache at %s", e, s.cache_file)
    else:
        logger.info("Using file-backed durable cache at %s (Redis disabled)", s.cache_file)
    return JsonFileStore(s.cache_file)


class TieredCache:
    """Two-layer cache keyed by the registry's stable ship id."""

    def __init__(
        self,
        durable: Optional[KeyValueStore] = None,
        success_ttl: float = 600,
        default_ttl: float = 300,
        error_ttl: float = 120,
        cleanup_threshold: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self._memory = InMemoryStore()
        self._durable = durable
        self._ttls = {
            CacheOrigin.SUCCESS: success_ttl,
            CacheOrigin.PLAIN: default_ttl,
            CacheOrigin.ERROR: error_ttl,
        }
        self.cleanup_threshold = cleanup_threshold
        self._clock = clock

    @classmethod
    def from_settings(cls, s, durable: Optional[KeyValueStore] = None, clock: Callable[[], float] = time.time) -> "TieredCache":
        return cls(
            durable=durable,
            success_ttl=s.success_ttl,
            default_ttl=s.default_ttl,
            error_ttl=s.error_ttl,
            cleanup_threshold=s.cleanup_threshold,
            clock=clock,
        )

    def ttl_for(self, origin: CacheOrigin) -> float:
        return self._ttls[origin]

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        now = self._clock()
        entry = await self._memory.get(key)
        if entry is not None and entry.is_fresh(now):
            return entry

        if self._durable is None:
            return None
        try:
            stored = await self._durable.get(key)
        except CacheBackendError as e:
            logger.error("Error reading durable cache for %s: %s", key, e)
            return None
        if stored is not None and stored.is_fresh(now):
            await self._memory.set(key, stored)
            return stored
        return None

    async def get(self, key: str) -> Optional[VesselRecord]:
        entry = await self.get_entry(key)
        return entry.data if entry is not None else None

    async def set(
        self,
        key: str,
        value: Optional[VesselRecord],
        ttl: Optional[float] = None,
        origin: CacheOrigin = CacheOrigin.PLAIN,
    ) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            data=value,
            created_at=now,
            expires_at=now + (ttl if ttl is not None else self.ttl_for(origin)),
            origin=origin,
        )
        await self._memory.set(key, entry)
        if self._durable is not None:
            try:
                await self._durable.set(key, entry)
            except CacheBackendError as e:
                logger.error("Error writing durable cache for %s: %s", key, e)

        if len(self._memory) > self.cleanup_threshold:
            await self.cleanup()
        return entry

    async def has(self, key: str) -> bool:
        return await self.get_entry(key) is not None

    async def delete(self, key: str) -> None:
        await self._memory.delete(key)
        if self._durable is not None:
            try:
                await self._durable.delete(key)
            except CacheBackendError as e:
                logger.error("Error deleting %s from durable cache: %s", key, e)

    async def clear(self) -> None:
        await self._memory.clear()
        if self._durable is not None:
            try:
                await self._durable.clear()
            except CacheBackendError as e:
                logger.error("Error clearing durable cache: %s", e)

    async def cleanup(self) -> int:
        """Drop expired entries from both layers; returns how many went."""
        now = self._clock()
        removed = 0
        for key, entry in (await self._memory.items()).items():
            if not entry.is_fresh(now):
                await self._memory.delete(key)
                removed += 1

        if self._durable is not None:
            try:
                stored = await self._durable.items()
                # expired keys only; entries written after the snapshot stay
                expired = [k for k, e in stored.items() if not e.is_fresh(now)]
                if expired:
                    await self._durable.delete_many(expired)
                    removed += len(expired)
            except CacheBackendError as e:
                logger.error("Error cleaning durable cache: %s", e)

        if removed:
            logger.debug("Cache cleanup removed %d expired entries", removed)
        return removed

    async def stats(self) -> dict:
        durable_entries = 0
        if self._durable is not None:
            try:
                durable_entries = len(await self._durable.items())
            except CacheBackendError as e:
                logger.error("Error reading durable cache stats: %s", e)
        return {
            "memory_entries": len(self._memory),
            "durable_entries": durable_entries,
            "memory_size": self._memory.approximate_size(),
            "durable_backend": self._durable.name if self._durable is not None else None,
        }

    async def close(self) -> None:
        if self._durable is not None:
            await self._durable.close()
