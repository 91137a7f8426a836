"""
AMeDAS Latest - Configuration
──────────────────────────────
All tunables come from environment variables (or a local .env file).
Nothing in the resolver hardcodes policy; it is handed a ResolverPolicy.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .resolver import ResolverPolicy

DEFAULT_BASE_URL = "https://www.jma.go.jp/bosai/amedas/data/map"
DEFAULT_STATION  = "46106"
LOG_FORMAT       = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    base_url:          str   = DEFAULT_BASE_URL
    default_station:   str   = DEFAULT_STATION
    ttl_positive:      int   = 60     # seconds a fetched snapshot is reused
    ttl_negative:      int   = 10     # seconds a "not published yet" answer is trusted
    cadence_minutes:   int   = 10
    utc_offset_hours:  int   = 9      # JST
    max_fallback:      int   = 5
    recheck_latest:    bool  = False
    redis_url:         str   = "redis://localhost:6379"
    request_timeout:   float = 8.0
    log_level:         str   = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            base_url=os.environ.get("AMEDAS_BASE_URL", DEFAULT_BASE_URL),
            default_station=os.environ.get("AMEDAS_DEFAULT_STATION", DEFAULT_STATION),
            ttl_positive=int(os.environ.get("CACHE_TTL_POSITIVE", "60")),
            ttl_negative=int(os.environ.get("CACHE_TTL_NEGATIVE", "10")),
            cadence_minutes=int(os.environ.get("CADENCE_MINUTES", "10")),
            utc_offset_hours=int(os.environ.get("SOURCE_UTC_OFFSET_HOURS", "9")),
            max_fallback=int(os.environ.get("MAX_FALLBACK", "5")),
            recheck_latest=_env_bool("RECHECK_LATEST", "false"),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379"),
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", "8")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )

    def policy(self) -> ResolverPolicy:
        return ResolverPolicy(
            max_offset=self.max_fallback,
            ttl_positive=self.ttl_positive,
            ttl_negative=self.ttl_negative,
            cadence_minutes=self.cadence_minutes,
            utc_offset_hours=self.utc_offset_hours,
            recheck_latest=self.recheck_latest,
        )


def configure_logging(level: str = "INFO"):
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)
