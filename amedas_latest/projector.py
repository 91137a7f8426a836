"""
AMeDAS Latest - Record Projection
──────────────────────────────────
Structural lookups only: station → record → metric. Values are passed
through untouched (AMeDAS metrics are usually [value, quality_flag]).
"""

from collections.abc import Mapping
from typing import Any, Dict, Optional

from .errors import FieldNotFound, RecordNotFound

Record = Dict[str, Any]


def project(snapshot: Dict[str, Record], station: str, metric: Optional[str] = None) -> Any:
    if station not in snapshot:
        raise RecordNotFound(station)
    record = snapshot[station]
    if metric is None:
        return record
    if not isinstance(record, Mapping) or metric not in record:
        raise FieldNotFound(station, metric)
    return record[metric]


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def summarize(record: Record) -> Dict[str, Any]:
    """Temperature and 1h precipitation, quality flags dropped."""
    if not isinstance(record, Mapping):
        return {"temperature": None, "precipitation": None}
    return {
        "temperature":   _first(record.get("temp")),
        "precipitation": _first(record.get("precipitation1h")),
    }
