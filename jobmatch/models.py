"""
Record types shared across the location-resolution pipeline.

Jobs themselves stay plain dicts: the pipeline only reads their location
fields and writes back `location`, `location_string` and `distance_km`.
"""

import threading
from typing import Dict, NamedTuple, Optional


class LocationCandidate(NamedTuple):
    """One `<city> <ST>` entry parsed out of a job's location text."""

    city: str
    state: str
    raw: str


class Coordinate(NamedTuple):
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


# Reasons a city pick ended where it did
EXACT_MATCH = "exact_match"
NO_GEO = "no_geo"
THRESHOLD = "threshold"
BEST_AFTER_ALL = "best_after_all"
NO_GEOCODE_SUCCESS = "no_geocode_success"


class PickResult(NamedTuple):
    chosen: LocationCandidate
    distance_km: Optional[float]
    early: str


STAT_FIELDS = (
    "cache_hits",
    "cache_misses",
    "http_ok",
    "http_fail",
    "parsed_ok",
    "parsed_fail",
    "calls_made",
    "csv_hits",
    "store_hits",
)


class GeocodeStats:
    """
    Process-wide geocoding counters.

    Shared by the remote geocoder and the city lookup; only ever incremented,
    read through `snapshot()` for the debug trace.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._counts = {name: 0 for name in STAT_FIELDS}

    def incr(self, name: str, amount: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown geocode stat: {name}")
        with self._lock:
            self._counts[name] += amount

    def get(self, name: str) -> int:
        return self._counts[name]

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)
