from datetime import datetime, timezone
from typing import Dict, List

import httpx
import pytest
import pytest_asyncio

from amedas_latest.cache import MemorySnapshotCache
from amedas_latest.fetcher import SnapshotFetcher

BASE_URL = "https://amedas.test/bosai/amedas/data/map"

# 2025-11-30 13:47:12 JST
REFERENCE = datetime(2025, 11, 30, 4, 47, 12, tzinfo=timezone.utc)

SNAPSHOT_1340 = {
    "46106": {"temp": [14.2, 0], "humidity": [61, 0], "precipitation1h": [0.0, 0]},
    "44132": {"temp": [16.1, 0], "wind": [3.4, 0]},
}
SNAPSHOT_1320 = {
    "46106": {"temp": [13.9, 0], "precipitation1h": [0.5, 0]},
}


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class Upstream:
    """Scripted JMA: timestamp -> status code / JSON payload. Unknown -> 404."""

    def __init__(self, responses: Dict[str, object] = None):
        self.responses = dict(responses or {})
        self.calls: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        ts = request.url.path.rsplit("/", 1)[-1].removesuffix(".json")
        self.calls.append(ts)
        outcome = self.responses.get(ts, 404)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome, json={"msg": "error"}, request=request)
        if isinstance(outcome, str):
            return httpx.Response(200, text=outcome, request=request)
        return httpx.Response(200, json=outcome, request=request)

    def fetcher(self) -> SnapshotFetcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        return SnapshotFetcher(BASE_URL, client=client)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_cache(clock):
    return MemorySnapshotCache(clock=clock)


@pytest_asyncio.fixture
async def fake_redis():
    fakeredis_aioredis = pytest.importorskip(
        "fakeredis.aioredis",
        reason="fakeredis is required for Redis-backed cache tests",
    )
    redis = fakeredis_aioredis.FakeRedis(decode_responses=True)
    await redis.flushall()
    try:
        yield redis
    finally:
        await redis.flushall()
        await redis.aclose()
