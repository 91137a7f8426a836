"""
AMeDAS Latest - Snapshot Cache
───────────────────────────────
Caches the outcome of fetching one publication, keyed by its upstream URL:

  POSITIVE  the snapshot exists        (ttl_positive, ~60s)
  NEGATIVE  JMA has not published it   (ttl_negative, ~10s)
  ABSENT    nothing known, go fetch

Expiry is the backend's job (Redis SET EX, or an expiry stamp in memory).
Values are stored as JSON text, so every lookup hands back a fresh copy.

Writes are fire-and-forget: PendingWrites runs them as tasks so the
response never waits on the cache.
"""

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

import redis.asyncio as aioredis

log = logging.getLogger("amedas.cache")

KEY_PREFIX      = "amedas:"
NEGATIVE_MARKER = "__not_published__"   # never valid snapshot JSON

Snapshot = Dict[str, Dict[str, Any]]


def cache_key(url: str) -> str:
    return f"{KEY_PREFIX}{url}"


class CacheState(Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    ABSENT   = "absent"


@dataclass(frozen=True)
class CacheLookup:
    state:    CacheState
    snapshot: Optional[Snapshot] = None

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "CacheLookup":
        if raw is None:
            return ABSENT
        if raw == NEGATIVE_MARKER:
            return NEGATIVE
        return cls(CacheState.POSITIVE, json.loads(raw))


ABSENT   = CacheLookup(CacheState.ABSENT)
NEGATIVE = CacheLookup(CacheState.NEGATIVE)


def _encode(snapshot: Snapshot) -> str:
    return json.dumps(snapshot, ensure_ascii=False, separators=(",", ":"))


# ══════════════════════════════════════════════════════════════
# CACHE INTERFACE
# ══════════════════════════════════════════════════════════════
class SnapshotCache(ABC):
    """
    The capability the resolver depends on.
    Implementations must tolerate concurrent lookup/store; last write wins.
    """

    name = "cache"

    @abstractmethod
    async def lookup(self, key: str) -> CacheLookup: ...

    @abstractmethod
    async def store_positive(self, key: str, snapshot: Snapshot, ttl: int): ...

    @abstractmethod
    async def store_negative(self, key: str, ttl: int): ...

    async def aclose(self):
        return None


# ══════════════════════════════════════════════════════════════
# IN-MEMORY BACKEND
# ══════════════════════════════════════════════════════════════
class MemorySnapshotCache(SnapshotCache):

    name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock   = clock
        self._entries: Dict[str, Tuple[str, float]] = {}   # key -> (raw, expires_at)

    def __len__(self) -> int:
        return len(self._entries)

    def _get_raw(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return raw

    def _set_raw(self, key: str, raw: str, ttl: int):
        self._entries[key] = (raw, self._clock() + ttl)

    async def lookup(self, key: str) -> CacheLookup:
        return CacheLookup.from_raw(self._get_raw(key))

    async def store_positive(self, key: str, snapshot: Snapshot, ttl: int):
        self._set_raw(key, _encode(snapshot), ttl)

    async def store_negative(self, key: str, ttl: int):
        self._set_raw(key, NEGATIVE_MARKER, ttl)


# ══════════════════════════════════════════════════════════════
# REDIS BACKEND (falls back to memory when Redis is down)
# ══════════════════════════════════════════════════════════════
class RedisSnapshotCache(SnapshotCache):

    name = "redis"

    def __init__(self, url: str = "redis://localhost:6379",
                 client: Optional[aioredis.Redis] = None,
                 fallback: Optional[MemorySnapshotCache] = None,
                 socket_timeout: float = 2):
        self.url            = url
        self.fallback       = fallback if fallback is not None else MemorySnapshotCache()
        self._client        = client
        self._owns_client   = client is None
        self._socket_timeout = socket_timeout
        self._connect_lock  = asyncio.Lock()

    async def get_redis(self) -> Optional[aioredis.Redis]:
        if self._client is not None:
            return self._client
        async with self._connect_lock:
            if self._client is not None:
                return self._client
            return await self._connect()

    async def _connect(self) -> Optional[aioredis.Redis]:
        client = None
        try:
            client = aioredis.from_url(self.url, decode_responses=True,
                                       socket_timeout=self._socket_timeout)
            await client.ping()
            log.info("Redis connected")
            self._client = client
            return client
        except Exception as e:
            log.warning(f"Redis unavailable ({e}) - using in-memory cache")
            if client is not None:
                await client.aclose()
            return None

    async def connected(self) -> bool:
        return await self.get_redis() is not None

    def _drop(self, e: Exception):
        log.warning(f"Redis error ({e}) - falling back to in-memory cache")
        if self._owns_client:
            self._client = None

    async def lookup(self, key: str) -> CacheLookup:
        r = await self.get_redis()
        if r is not None:
            try:
                return CacheLookup.from_raw(await r.get(key))
            except Exception as e:
                self._drop(e)
        return await self.fallback.lookup(key)

    async def _set_with_ttl(self, key: str, ttl: int, raw: str) -> bool:
        r = await self.get_redis()
        if r is not None:
            try:
                await r.set(key, raw, ex=ttl)
                return True
            except Exception as e:
                self._drop(e)
        return False

    async def store_positive(self, key: str, snapshot: Snapshot, ttl: int):
        if not await self._set_with_ttl(key, ttl, _encode(snapshot)):
            await self.fallback.store_positive(key, snapshot, ttl)

    async def store_negative(self, key: str, ttl: int):
        if not await self._set_with_ttl(key, ttl, NEGATIVE_MARKER):
            await self.fallback.store_negative(key, ttl)

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


# ══════════════════════════════════════════════════════════════
# WRITE-BEHIND
# ══════════════════════════════════════════════════════════════
class PendingWrites:
    """
    Owns the cache write-back tasks issued while resolving.
    Each write is attempted once; a failure is logged, never raised.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def schedule(self, write: Awaitable, label: str = "cache write") -> asyncio.Task:
        async def _do():
            try:
                await write
            except Exception as e:
                log.warning(f"{label} failed: {e}")

        task = asyncio.create_task(_do())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self):
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
