"""
AMeDAS Latest
──────────────
Serves the freshest available JMA AMeDAS snapshot with fallback to
earlier publications and a positive/negative snapshot cache.

    from amedas_latest import create_app
    app = create_app()
"""

from .api import create_app
from .cache import MemorySnapshotCache, RedisSnapshotCache, SnapshotCache
from .config import Settings
from .errors import AmedasError, FieldNotFound, RecordNotFound, SnapshotNotAvailable
from .fetcher import SnapshotFetcher
from .resolver import Resolution, ResolverPolicy, SnapshotResolver

__all__ = [
    "create_app", "Settings",
    "SnapshotCache", "MemorySnapshotCache", "RedisSnapshotCache",
    "SnapshotFetcher", "SnapshotResolver", "ResolverPolicy", "Resolution",
    "AmedasError", "SnapshotNotAvailable", "RecordNotFound", "FieldNotFound",
]
