"""
AMeDAS Latest - Errors
───────────────────────
Only these reach the caller. Fetch-level problems (timeouts, 5xx,
"not published yet") are absorbed by the resolver and never raised.
"""

from typing import List


class AmedasError(Exception):
    status_code = 500
    message     = "Internal error"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message}


class SnapshotNotAvailable(AmedasError):
    """Every fallback offset was tried and none produced a snapshot."""
    status_code = 503
    message     = "No data available after fallback"

    def __init__(self, attempted: List[str] = None):
        self.attempted = list(attempted or [])
        super().__init__()


class RecordNotFound(AmedasError):
    status_code = 404
    message     = "Station ID not found"

    def __init__(self, station: str):
        self.station = station
        super().__init__()


class FieldNotFound(AmedasError):
    status_code = 404

    def __init__(self, station: str, metric: str):
        self.station = station
        self.metric  = metric
        super().__init__(f"Metric '{metric}' not found for station '{station}'")
