"""
AMeDAS Latest - Snapshot Resolver
──────────────────────────────────
Finds the newest publication that actually exists upstream.

For offset 0, 1, ... max_offset-1 (newest first):
  1. cache POSITIVE  → done, no fetch
  2. cache NEGATIVE  → skip, no fetch
  3. cache ABSENT    → fetch once
       OK         → write POSITIVE, done
       NOT_FOUND  → write NEGATIVE, next offset
       FAILED     → nothing cached, next offset
Nothing found → SnapshotNotAvailable.

Cache writes go through PendingWrites and never delay the return.
Concurrent requests may fetch the same timestamp; the cache absorbs
the rest within a TTL.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from .cache import CacheState, PendingWrites, Snapshot, SnapshotCache, cache_key
from .errors import SnapshotNotAvailable
from .fetcher import FetchStatus, SnapshotFetcher
from .timestamps import candidate_timestamps

log = logging.getLogger("amedas.resolver")


@dataclass(frozen=True)
class ResolverPolicy:
    max_offset:       int  = 5
    ttl_positive:     int  = 60
    ttl_negative:     int  = 10
    cadence_minutes:  int  = 10
    utc_offset_hours: int  = 9
    recheck_latest:   bool = False   # fetch offset 0 even if cached as NEGATIVE

    def __post_init__(self):
        if self.max_offset < 1:
            raise ValueError(f"max_offset must be >= 1, got {self.max_offset}")
        if self.ttl_positive <= 0 or self.ttl_negative <= 0:
            raise ValueError("cache TTLs must be positive")


@dataclass(frozen=True)
class Resolution:
    snapshot:  Snapshot
    timestamp: str
    offset:    int
    source:    str          # "cache" | "upstream"


class SnapshotResolver:

    def __init__(self, cache: SnapshotCache, fetcher: SnapshotFetcher,
                 policy: Optional[ResolverPolicy] = None,
                 writes: Optional[PendingWrites] = None):
        self.cache   = cache
        self.fetcher = fetcher
        self.policy  = policy or ResolverPolicy()
        self.writes  = writes or PendingWrites()

    async def resolve_latest(self, reference: datetime) -> Resolution:
        p = self.policy
        attempted: List[str] = []

        for offset, ts in candidate_timestamps(reference, p.max_offset,
                                               p.cadence_minutes, p.utc_offset_hours):
            attempted.append(ts)
            resolution = await self._attempt(offset, ts)
            if resolution is not None:
                if offset:
                    log.info(f"Fell back {offset} period(s) to {ts} ({resolution.source})")
                return resolution

        log.warning(f"No snapshot after {len(attempted)} attempt(s): {attempted[0]}..{attempted[-1]}")
        raise SnapshotNotAvailable(attempted)

    async def _attempt(self, offset: int, ts: str) -> Optional[Resolution]:
        key = cache_key(self.fetcher.url_for(ts))
        hit = await self.cache.lookup(key)

        if hit.state is CacheState.POSITIVE:
            log.debug(f"{ts}: cache hit")
            return Resolution(hit.snapshot, ts, offset, "cache")

        if hit.state is CacheState.NEGATIVE:
            if not (offset == 0 and self.policy.recheck_latest):
                log.debug(f"{ts}: cached as not published - skipping")
                return None
            log.debug(f"{ts}: cached as not published - rechecking latest")

        result = await self.fetcher.fetch(ts)

        if result.status is FetchStatus.OK:
            self.writes.schedule(
                self.cache.store_positive(key, result.snapshot, self.policy.ttl_positive),
                label=f"store_positive {ts}",
            )
            return Resolution(result.snapshot, ts, offset, "upstream")

        if result.status is FetchStatus.NOT_FOUND:
            self.writes.schedule(
                self.cache.store_negative(key, self.policy.ttl_negative),
                label=f"store_negative {ts}",
            )
        else:
            log.debug(f"{ts}: transient failure ({result.error}) - not cached")
        return None
