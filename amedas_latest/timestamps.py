"""
AMeDAS Latest - Publication Timestamps
───────────────────────────────────────
JMA publishes the AMeDAS map every 10 minutes, named by the JST
boundary it covers: 20251130134000.json.

timestamp_for() turns "now" + a fallback offset into that name.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterator, Tuple

TIMESTAMP_FORMAT = "%Y%m%d%H%M00"


def timestamp_for(reference: datetime, offset: int = 0,
                  cadence_minutes: int = 10, utc_offset_hours: int = 9) -> str:
    """
    offset 0 = latest boundary at or before `reference`,
    offset k = k cadence periods earlier.
    Naive datetimes are taken as UTC.
    """
    if offset < 0:
        raise ValueError(f"offset must be >= 0, got {offset}")
    if cadence_minutes <= 0:
        raise ValueError(f"cadence_minutes must be > 0, got {cadence_minutes}")

    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=timezone.utc)
    local = reference.astimezone(timezone(timedelta(hours=utc_offset_hours)))

    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    minutes  = local.hour * 60 + local.minute
    floored  = midnight + timedelta(minutes=minutes - minutes % cadence_minutes)

    return (floored - timedelta(minutes=offset * cadence_minutes)).strftime(TIMESTAMP_FORMAT)


def candidate_timestamps(reference: datetime, max_offset: int,
                         cadence_minutes: int = 10,
                         utc_offset_hours: int = 9) -> Iterator[Tuple[int, str]]:
    """Lazily yield (offset, timestamp), newest first."""
    for offset in range(max_offset):
        yield offset, timestamp_for(reference, offset, cadence_minutes, utc_offset_hours)
