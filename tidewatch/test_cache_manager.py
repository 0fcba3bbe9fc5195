import asyncio

import pytest

from backend.cache_manager import InMemoryStore, JsonFileStore, RedisStore, TieredCache, build_durable_store
from backend.config import Settings
from backend.models import CacheEntry, CacheOrigin, VesselPosition, VesselRecord


def _record(name: str = "HY EMERALD") -> VesselRecord:
    return VesselRecord(
        name=name,
        imo="9676307",
        position=VesselPosition(latitude=1.2966, longitude=103.7764, speed=14.2, course=85),
    )


@pytest.fixture
def store(tmp_path):
    return JsonFileStore(tmp_path / "cache.json")


@pytest.fixture
def cache(store, clock):
    return TieredCache(durable=store, clock=clock)


@pytest.mark.asyncio
async def test_set_then_get_returns_same_record(cache):
    await cache.set("ship-1", _record())
    assert await cache.get("ship-1") == _record()


@pytest.mark.asyncio
async def test_entries_expire_after_their_ttl(cache, clock):
    await cache.set("ship-1", _record(), origin=CacheOrigin.SUCCESS)
    clock.advance(599)
    assert await cache.has("ship-1")
    clock.advance(2)
    assert await cache.get("ship-1") is None
    assert not await cache.has("ship-1")


@pytest.mark.asyncio
async def test_default_ttls_per_origin(cache):
    assert cache.ttl_for(CacheOrigin.SUCCESS) == 600
    assert cache.ttl_for(CacheOrigin.PLAIN) == 300
    assert cache.ttl_for(CacheOrigin.ERROR) == 120


@pytest.mark.asyncio
async def test_second_write_replaces_entry_and_ttl(cache, clock):
    await cache.set("ship-1", _record("FIRST"), origin=CacheOrigin.SUCCESS)
    entry = await cache.set("ship-1", _record("SECOND"), origin=CacheOrigin.ERROR)
    assert entry.expires_at == clock.now + 120

    clock.advance(100)
    assert (await cache.get("ship-1")).name == "SECOND"
    clock.advance(21)
    assert await cache.get("ship-1") is None


@pytest.mark.asyncio
async def test_explicit_ttl_overrides_origin(cache, clock):
    await cache.set("ship-1", _record(), ttl=5, origin=CacheOrigin.SUCCESS)
    clock.advance(6)
    assert await cache.get("ship-1") is None


@pytest.mark.asyncio
async def test_negative_entry_is_cached(cache):
    await cache.set("ship-1", None, origin=CacheOrigin.ERROR)
    assert await cache.has("ship-1")
    assert await cache.get("ship-1") is None


@pytest.mark.asyncio
async def test_durable_hit_is_promoted(store, clock):
    await TieredCache(durable=store, clock=clock).set("ship-1", _record())

    fresh = TieredCache(durable=store, clock=clock)
    assert (await fresh.stats())["memory_entries"] == 0
    assert (await fresh.get("ship-1")).name == "HY EMERALD"
    assert (await fresh.stats())["memory_entries"] == 1


@pytest.mark.asyncio
async def test_expired_durable_entry_is_not_promoted(store, clock):
    await TieredCache(durable=store, clock=clock).set("ship-1", _record(), ttl=10)
    clock.advance(11)
    fresh = TieredCache(durable=store, clock=clock)
    assert await fresh.get("ship-1") is None
    assert (await fresh.stats())["memory_entries"] == 0


@pytest.mark.asyncio
async def test_delete_removes_from_both_layers(cache, store, clock):
    await cache.set("ship-1", _record())
    await cache.delete("ship-1")
    assert await cache.get("ship-1") is None
    assert await TieredCache(durable=store, clock=clock).get("ship-1") is None


@pytest.mark.asyncio
async def test_clear_empties_both_layers(cache, store):
    await cache.set("ship-1", _record())
    await cache.set("ship-2", _record())
    await cache.clear()
    stats = await cache.stats()
    assert stats["memory_entries"] == 0
    assert stats["durable_entries"] == 0
    assert not store.path.exists()


@pytest.mark.asyncio
async def test_corrupt_durable_blob_degrades_to_memory(tmp_path, clock):
    path = tmp_path / "cache.json"
    path.write_text("{not json", encoding="utf-8")
    cache = TieredCache(durable=JsonFileStore(path), clock=clock)

    assert await cache.get("ship-1") is None
    await cache.set("ship-1", _record())
    assert (await cache.get("ship-1")).name == "HY EMERALD"
    assert (await cache.stats())["durable_entries"] == 0


@pytest.mark.asyncio
async def test_cleanup_runs_past_threshold(store, clock):
    cache = TieredCache(durable=store, cleanup_threshold=2, clock=clock)
    await cache.set("a", _record(), ttl=10)
    await cache.set("b", _record(), ttl=10)
    clock.advance(11)
    await cache.set("c", _record(), ttl=10)

    stats = await cache.stats()
    assert stats["memory_entries"] == 1
    assert stats["durable_entries"] == 1
    assert set(await store.items()) == {"c"}


@pytest.mark.asyncio
async def test_cleanup_reports_removed_count(cache, clock):
    await cache.set("a", _record(), ttl=10)
    await cache.set("b", _record(), ttl=100)
    clock.advance(11)
    # one from memory, one from the file
    assert await cache.cleanup() == 2
    assert await cache.has("b")


@pytest.mark.asyncio
async def test_stats_shape(cache):
    await cache.set("ship-1", _record())
    stats = await cache.stats()
    assert stats["durable_backend"] == "file"
    assert stats["memory_size"] > 0


@pytest.mark.asyncio
async def test_memory_only_cache(clock):
    cache = TieredCache(clock=clock)
    await cache.set("ship-1", _record())
    assert await cache.has("ship-1")
    assert (await cache.stats())["durable_backend"] is None


@pytest.mark.asyncio
async def test_build_durable_store_without_redis(tmp_path):
    s = Settings(use_redis=False, cache_file=str(tmp_path / "c.json"))
    store = await build_durable_store(s)
    assert isinstance(store, JsonFileStore)


@pytest.mark.asyncio
async def test_build_durable_store_falls_back_when_redis_unreachable(tmp_path):
    s = Settings(use_redis=True, redis_url="redis://127.0.0.1:1", cache_file=str(tmp_path / "c.json"))
    store = await build_durable_store(s)
    assert isinstance(store, JsonFileStore)


class InterleavingStore(InMemoryStore):
    """Runs ``during_scan`` after taking the snapshot, like a concurrent writer."""

    def __init__(self):
        super().__init__()
        self.during_scan = None

    async def items(self):
        snapshot = await super().items()
        if self.during_scan is not None:
            hook, self.during_scan = self.during_scan, None
            await hook()
        return snapshot


@pytest.mark.asyncio
async def test_cleanup_keeps_entries_written_during_scan(clock):
    durable = InterleavingStore()
    cache = TieredCache(durable=durable, clock=clock)
    await cache.set("old", _record(), ttl=10)
    clock.advance(11)

    writer = TieredCache(durable=durable, clock=clock)
    durable.during_scan = lambda: writer.set("s9", _record("LATE"))
    await cache.cleanup()

    stored = await durable.items()
    assert set(stored) == {"s9"}
    assert stored["s9"].data.name == "LATE"


class FakeRedis:
    def __init__(self):
        self.hdel_calls = []

    async def hdel(self, key, *fields):
        self.hdel_calls.append((key, fields))


@pytest.mark.asyncio
async def test_redis_delete_many_removes_only_given_fields():
    store = RedisStore(hash_key="tidewatch:test")
    store._redis = FakeRedis()

    await store.delete_many(["a", "b"])
    await store.delete_many([])

    assert store._redis.hdel_calls == [("tidewatch:test", ("a", "b"))]


@pytest.mark.asyncio
async def test_file_store_concurrent_writes_all_land(store):
    entry = CacheEntry(data=_record(), created_at=0, expires_at=10)
    await asyncio.gather(*(store.set(f"s{n}", entry) for n in range(20)))
    assert set(await store.items()) == {f"s{n}" for n in range(20)}
