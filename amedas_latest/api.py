"""
AMeDAS Latest - HTTP API
─────────────────────────
GET /api/amedas?station=46106&metric=temp
GET /api/amedas/summary?station=46106

Every request resolves the newest available publication (falling back
up to MAX_FALLBACK periods), then narrows it to one station / metric.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache import RedisSnapshotCache, SnapshotCache
from .config import Settings, configure_logging
from .errors import AmedasError
from .fetcher import SnapshotFetcher
from .projector import project, summarize
from .resolver import Resolution, SnapshotResolver

log = logging.getLogger("amedas.api")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _headers(resolution: Resolution) -> dict:
    return {
        "X-Amedas-Timestamp": resolution.timestamp,
        "X-Amedas-Source":    resolution.source,
    }


def create_app(settings: Optional[Settings] = None,
               cache: Optional[SnapshotCache] = None,
               fetcher: Optional[SnapshotFetcher] = None,
               clock: Callable[[], datetime] = _utcnow) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    if cache is None:
        cache = RedisSnapshotCache(settings.redis_url)
    if fetcher is None:
        fetcher = SnapshotFetcher(settings.base_url, timeout=settings.request_timeout)
    resolver = SnapshotResolver(cache, fetcher, settings.policy())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if isinstance(cache, RedisSnapshotCache):
            await cache.get_redis()
        yield
        await resolver.writes.drain()
        await fetcher.aclose()
        await cache.aclose()

    app = FastAPI(
        title="AMeDAS Latest",
        description="Latest JMA AMeDAS observations with fallback to earlier publications.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.resolver = resolver

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.exception_handler(AmedasError)
    async def amedas_error(request: Request, exc: AmedasError):
        log.info(f"{request.url.path}: {exc.status_code} {exc.message}")
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "docs": "/docs",
            "api": f"/api/amedas?station={settings.default_station}",
        }

    @app.get("/health")
    async def health():
        if isinstance(cache, RedisSnapshotCache):
            backend = "redis" if await cache.connected() else "memory"
        else:
            backend = cache.name
        return {
            "status": "healthy",
            "cache": backend,
            "pending_writes": resolver.writes.pending,
            "timestamp": int(time.time()),
        }

    @app.get("/api/amedas", tags=["AMeDAS"])
    async def latest(
        station: str = Query(settings.default_station, description="AMeDAS station ID"),
        metric: Optional[str] = Query(None, description="Single metric e.g. temp, humidity"),
    ):
        resolution = await resolver.resolve_latest(clock())
        body = project(resolution.snapshot, station, metric)
        return JSONResponse(body, headers=_headers(resolution))

    @app.get("/api/amedas/summary", tags=["AMeDAS"])
    async def latest_summary(
        station: str = Query(settings.default_station, description="AMeDAS station ID"),
    ):
        resolution = await resolver.resolve_latest(clock())
        record = project(resolution.snapshot, station)
        body = {"station": station, "timestamp": resolution.timestamp, **summarize(record)}
        return JSONResponse(body, headers=_headers(resolution))

    return app
