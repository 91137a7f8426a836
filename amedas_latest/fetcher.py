"""
AMeDAS Latest - Snapshot Fetcher
─────────────────────────────────
One GET per publication timestamp, no retries. The resolver does the
retrying by stepping back to an earlier publication instead.

  200 + JSON object  → OK
  404                → NOT_FOUND (JMA has not published it yet)
  anything else      → FAILED    (transient, not cached)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx

from .cache import Snapshot

log = logging.getLogger("amedas.fetcher")

REQUEST_TIMEOUT = 8

HEADERS = {
    "User-Agent": "amedas-latest/1.0 (+https://www.jma.go.jp/bosai/amedas/)",
    "Accept": "application/json",
}


class FetchStatus(Enum):
    OK        = "ok"
    NOT_FOUND = "not_found"
    FAILED    = "failed"


@dataclass(frozen=True)
class FetchResult:
    status:   FetchStatus
    snapshot: Optional[Snapshot] = None
    error:    Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK


class SnapshotFetcher:

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = REQUEST_TIMEOUT, headers: Optional[dict] = None):
        self.base_url     = base_url.rstrip("/")
        self.timeout      = timeout
        self.headers      = headers or HEADERS
        self._client      = client
        self._owns_client = client is None

    def url_for(self, timestamp: str) -> str:
        return f"{self.base_url}/{timestamp}.json"

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                timeout=self.timeout,
            )
            self._owns_client = True
        return self._client

    async def fetch(self, timestamp: str) -> FetchResult:
        url = self.url_for(timestamp)
        client = await self.get_client()
        try:
            r = await client.get(url, headers=self.headers, timeout=self.timeout)
        except httpx.TimeoutException:
            log.warning(f"Timeout fetching {timestamp}")
            return FetchResult(FetchStatus.FAILED, error="timeout")
        except httpx.HTTPError as e:
            log.warning(f"Error fetching {timestamp}: {e}")
            return FetchResult(FetchStatus.FAILED, error=str(e))

        if r.status_code == 404:
            log.debug(f"{timestamp}: not published yet")
            return FetchResult(FetchStatus.NOT_FOUND)
        if r.status_code != 200:
            log.warning(f"HTTP {r.status_code} for {timestamp}")
            return FetchResult(FetchStatus.FAILED, error=f"HTTP {r.status_code}")

        try:
            data = r.json()
        except ValueError as e:
            log.warning(f"{timestamp}: invalid JSON ({e})")
            return FetchResult(FetchStatus.FAILED, error="invalid JSON")
        if not isinstance(data, dict):
            log.warning(f"{timestamp}: expected a JSON object, got {type(data).__name__}")
            return FetchResult(FetchStatus.FAILED, error="unexpected payload")

        return FetchResult(FetchStatus.OK, snapshot=data)

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
