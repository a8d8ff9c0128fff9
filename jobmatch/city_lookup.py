"""
City -> coordinate lookup with three cache tiers.

1. In-process map, seeded once from the reference city dataset.
2. Persistent key-value store (optional), shared across processes.
3. Remote geocoding, done by the caller, which registers results
   back through `add_city`.

A hit in the store is copied into the in-process map so repeated
lookups within a process stay in memory.
"""

import csv
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .geo import to_num
from .logger import get_logger
from .models import Coordinate, GeocodeStats
from .normalize import cache_key
from .storage import GEOCODED_CITIES, KeyValueStore

logger = get_logger()

DATASET_FILENAME = "uscities.csv"

# Header names recognised in the city dataset
HEADER_ALIASES = {
    "city": ("city", "city_name"),
    "city_ascii": ("city_ascii",),
    "state": ("state_id", "state_code", "state_abbr"),
    "lat": ("lat", "latitude"),
    "lng": ("lng", "lon", "long", "longitude"),
}

# Positional layouts of past dataset revisions, for files whose header
# is missing or unrecognised. Keyed by the minimum column count.
LEGACY_LAYOUTS = (
    (11, {"city": 0, "city_ascii": 1, "state": 3, "lat": 9, "lng": 10}),
    (8, {"city": 0, "city_ascii": 1, "state": 2, "lat": 6, "lng": 7}),
)


def default_dataset_paths() -> List[Path]:
    return [
        Path.cwd() / "data" / DATASET_FILENAME,
        Path(__file__).resolve().parent.parent / "data" / DATASET_FILENAME,
        Path.cwd() / DATASET_FILENAME,
    ]


def detect_columns(header: Sequence[str]) -> Optional[Dict[str, int]]:
    """Map logical columns to positions from a header row, or None."""
    names = [h.strip().strip('"').lower() for h in header]
    columns: Dict[str, int] = {}
    for logical, aliases in HEADER_ALIASES.items():
        for alias in aliases:
            if alias in names:
                columns[logical] = names.index(alias)
                break
    if "city_ascii" not in columns and "city" in columns:
        columns["city_ascii"] = columns["city"]
    if {"city_ascii", "state", "lat", "lng"} <= columns.keys():
        return columns
    return None


def legacy_columns(width: int) -> Optional[Dict[str, int]]:
    for min_width, layout in LEGACY_LAYOUTS:
        if width >= min_width:
            return layout
    return None


def parse_dataset_rows(rows: Iterable[Sequence[str]]) -> Dict[str, Coordinate]:
    """
    Build the CacheKey -> Coordinate index from dataset rows.

    The first row is the header. Each row is keyed by its ASCII city
    name and, when it differs, by its original spelling too (the ASCII
    entry wins on collisions).
    """
    index: Dict[str, Coordinate] = {}
    iterator = iter(rows)
    header = next(iterator, None)
    if header is None:
        return index

    columns = detect_columns(header)
    for row in iterator:
        layout = columns or legacy_columns(len(row))
        if layout is None or len(row) <= max(layout.values()):
            continue

        city_ascii = row[layout["city_ascii"]].strip()
        state = row[layout["state"]].strip()
        lat = to_num(row[layout["lat"]])
        lng = to_num(row[layout["lng"]])
        if not city_ascii or not state or lat is None or lng is None:
            continue

        coord = Coordinate(lat, lng)
        index[cache_key(city_ascii, state)] = coord

        city_name = row[layout["city"]].strip() if "city" in layout else ""
        if city_name and city_name != city_ascii:
            index.setdefault(cache_key(city_name, state), coord)
    return index


class CityLookup:
    """Coordinate resolver owned by the service composition root."""

    def __init__(
        self,
        dataset_path: Optional[Path] = None,
        store: Optional[KeyValueStore] = None,
        stats: Optional[GeocodeStats] = None,
        collection: str = GEOCODED_CITIES,
    ):
        self.dataset_path = Path(dataset_path) if dataset_path else None
        self.store = store
        self.stats = stats or GeocodeStats()
        self.collection = collection

        self._lookup: Dict[str, Coordinate] = {}
        self._lock = threading.Lock()
        self._load_lock = threading.Lock()
        self._loaded = False
        self._pending: List[threading.Thread] = []

    @property
    def store_enabled(self) -> bool:
        return self.store is not None

    def _resolve_dataset_path(self) -> Optional[Path]:
        if self.dataset_path is not None:
            return self.dataset_path if self.dataset_path.exists() else None
        for candidate in default_dataset_paths():
            if candidate.exists():
                return candidate
        return None

    def ensure_loaded(self) -> None:
        """Seed the in-process map from the dataset, at most once."""
        if self._loaded:
            return
        with self._load_lock:
            if self._loaded:
                return
            try:
                self._load_dataset()
            finally:
                self._loaded = True

    def _load_dataset(self) -> None:
        path = self._resolve_dataset_path()
        if path is None:
            logger.warning(
                "City dataset not found, geocoding will rely on store and API",
                path=str(self.dataset_path) if self.dataset_path else None,
            )
            return
        try:
            with path.open("r", encoding="utf-8", newline="") as f:
                index = parse_dataset_rows(csv.reader(f))
        except (OSError, UnicodeDecodeError, csv.Error) as e:
            logger.error("Error loading city dataset", path=str(path), error=str(e))
            logger.record_error("dataset_load")
            return

        with self._lock:
            for key, coord in index.items():
                self._lookup.setdefault(key, coord)
        logger.info(f"City lookup loaded: {len(index)} cities indexed", path=str(path))

    def lookup_city(self, city: str, state: str) -> Optional[Coordinate]:
        """Tier 1: in-process map only."""
        self.ensure_loaded()
        coord = self._lookup.get(cache_key(city, state))
        if coord is not None:
            self.stats.incr("csv_hits")
            logger.record_lookup_hit("memory")
        return coord

    def lookup_store(self, city: str, state: str) -> Optional[Coordinate]:
        """Tier 2: persistent store; a hit is copied into tier 1."""
        if self.store is None:
            return None
        key = cache_key(city, state)
        coord = as_coordinate(self.store.hget(self.collection, key))
        if coord is None:
            return None
        with self._lock:
            coord = self._lookup.setdefault(key, coord)
        self.stats.incr("store_hits")
        logger.record_lookup_hit("store")
        return coord

    def resolve(self, city: str, state: str) -> Optional[Coordinate]:
        """Tiers 1 and 2; None means the caller should geocode remotely."""
        return self.lookup_city(city, state) or self.lookup_store(city, state)

    def add_city(self, city: str, state: str, lat: float, lng: float) -> Coordinate:
        """
        Register a freshly geocoded city.

        The in-process map is updated before returning; the store write
        runs on a background thread and its failure is only logged.
        """
        key = cache_key(city, state)
        with self._lock:
            coord = self._lookup.setdefault(key, Coordinate(float(lat), float(lng)))
        if self.store is not None:
            self._write_behind(key, coord)
        return coord

    def _write_behind(self, key: str, coord: Coordinate) -> None:
        def _write():
            try:
                if not self.store.hset(self.collection, key, coord.to_dict()):
                    logger.record_store_write_failure()
            finally:
                with self._lock:
                    if thread in self._pending:
                        self._pending.remove(thread)

        thread = threading.Thread(target=_write, name=f"store-write:{key}", daemon=True)
        with self._lock:
            self._pending.append(thread)
        thread.start()

    def flush(self, timeout: Optional[float] = None) -> None:
        """Wait for background store writes started so far."""
        with self._lock:
            pending = list(self._pending)
        for thread in pending:
            thread.join(timeout)

    def preload_store(self) -> int:
        """Copy every store entry into the in-process map; returns entries added."""
        if self.store is None:
            return 0
        self.ensure_loaded()
        added = 0
        for key, value in self.store.hgetall(self.collection).items():
            coord = as_coordinate(value)
            if coord is None:
                continue
            with self._lock:
                if key not in self._lookup:
                    self._lookup[key] = coord
                    added += 1
        return added

    def get_stats(self) -> dict:
        return {
            "total_cities": len(self._lookup),
            "loaded": self._loaded,
            "store_enabled": self.store_enabled,
        }


def as_coordinate(value) -> Optional[Coordinate]:
    """Decode a stored `{lat, lng}` value; anything else is a miss."""
    if not isinstance(value, dict):
        return None
    lat = to_num(value.get("lat"))
    lng = to_num(value.get("lng"))
    if lat is None or lng is None:
        return None
    return Coordinate(lat, lng)
