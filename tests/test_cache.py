import asyncio
import logging

import pytest

from amedas_latest import cache as cache_mod
from amedas_latest.cache import (
    CacheState, MemorySnapshotCache, NEGATIVE_MARKER, PendingWrites,
    RedisSnapshotCache, cache_key,
)

from .conftest import SNAPSHOT_1340

KEY = cache_key("https://amedas.test/bosai/amedas/data/map/20251130134000.json")


@pytest.mark.asyncio
async def test_memory_positive_roundtrip_returns_copy(memory_cache):
    await memory_cache.store_positive(KEY, SNAPSHOT_1340, 60)

    first = await memory_cache.lookup(KEY)
    assert first.state is CacheState.POSITIVE
    assert first.snapshot == SNAPSHOT_1340

    first.snapshot["46106"]["temp"][0] = -99
    second = await memory_cache.lookup(KEY)
    assert second.snapshot == SNAPSHOT_1340


@pytest.mark.asyncio
async def test_memory_negative_expires_before_positive(memory_cache, clock):
    other = cache_key("https://amedas.test/other.json")
    await memory_cache.store_positive(KEY, SNAPSHOT_1340, 60)
    await memory_cache.store_negative(other, 10)

    clock.advance(9)
    assert (await memory_cache.lookup(other)).state is CacheState.NEGATIVE

    clock.advance(1)
    assert (await memory_cache.lookup(other)).state is CacheState.ABSENT
    assert (await memory_cache.lookup(KEY)).state is CacheState.POSITIVE

    clock.advance(50)
    assert (await memory_cache.lookup(KEY)).state is CacheState.ABSENT
    assert len(memory_cache) == 0


@pytest.mark.asyncio
async def test_fresh_write_replaces_entry(memory_cache):
    await memory_cache.store_negative(KEY, 10)
    await memory_cache.store_positive(KEY, SNAPSHOT_1340, 60)
    hit = await memory_cache.lookup(KEY)
    assert hit.state is CacheState.POSITIVE
    assert len(memory_cache) == 1


@pytest.mark.asyncio
async def test_redis_stores_with_ttl(fake_redis):
    cache = RedisSnapshotCache(client=fake_redis)
    await cache.store_positive(KEY, SNAPSHOT_1340, 60)
    await cache.store_negative("amedas:neg", 10)

    assert 0 < await fake_redis.ttl(KEY) <= 60
    assert 0 < await fake_redis.ttl("amedas:neg") <= 10
    assert await fake_redis.get("amedas:neg") == NEGATIVE_MARKER

    hit = await cache.lookup(KEY)
    assert hit.state is CacheState.POSITIVE
    assert hit.snapshot == SNAPSHOT_1340
    assert (await cache.lookup("amedas:neg")).state is CacheState.NEGATIVE
    assert (await cache.lookup("amedas:none")).state is CacheState.ABSENT
    assert len(cache.fallback) == 0


class BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("redis down")


@pytest.mark.asyncio
async def test_redis_errors_fall_back_to_memory(caplog):
    cache = RedisSnapshotCache(client=BrokenRedis())
    with caplog.at_level(logging.WARNING, logger="amedas.cache"):
        await cache.store_positive(KEY, SNAPSHOT_1340, 60)
        hit = await cache.lookup(KEY)
    assert hit.state is CacheState.POSITIVE
    assert hit.snapshot == SNAPSHOT_1340
    assert "falling back" in caplog.text


class UnreachableRedis(BrokenRedis):
    closed = False

    async def ping(self):
        raise ConnectionError("connection refused")

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_unreachable_redis_uses_memory(monkeypatch):
    attempts = []

    def from_url(url, **kwargs):
        attempts.append(url)
        return UnreachableRedis()

    monkeypatch.setattr(cache_mod.aioredis, "from_url", from_url)
    cache = RedisSnapshotCache(url="redis://redis.test:6379")
    assert not await cache.connected()
    await cache.store_negative(KEY, 10)
    assert (await cache.lookup(KEY)).state is CacheState.NEGATIVE
    assert attempts == ["redis://redis.test:6379"] * 3


class SlowPingRedis:
    async def ping(self):
        await asyncio.sleep(0.01)
        return True


@pytest.mark.asyncio
async def test_concurrent_reconnect_builds_one_client(monkeypatch):
    created = []

    def from_url(url, **kwargs):
        client = SlowPingRedis()
        created.append(client)
        return client

    monkeypatch.setattr(cache_mod.aioredis, "from_url", from_url)
    cache = RedisSnapshotCache(url="redis://redis.test:6379")

    clients = await asyncio.gather(*[cache.get_redis() for _ in range(5)])

    assert len(created) == 1
    assert all(c is created[0] for c in clients)


@pytest.mark.asyncio
async def test_pending_writes_drain_and_swallow_failures(caplog):
    writes = PendingWrites()
    done = []

    async def ok():
        await asyncio.sleep(0)
        done.append("ok")

    async def boom():
        raise RuntimeError("disk full")

    writes.schedule(ok())
    writes.schedule(boom(), label="store_positive x")
    assert writes.pending == 2

    with caplog.at_level(logging.WARNING, logger="amedas.cache"):
        await writes.drain()

    assert done == ["ok"]
    assert writes.pending == 0
    assert "store_positive x failed: disk full" in caplog.text
