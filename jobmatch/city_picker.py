"""
Choose one city for a job among its in-state candidates.

Exit points, in order: exact subscriber-city match, no subscriber
coordinates, first batch whose best distance is within the early-exit
threshold, best distance after all batches, and finally a deterministic
alphabetical pick when nothing could be geocoded.
"""

import math
import unicodedata
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from .city_lookup import CityLookup
from .geo import haversine_km, is_finite_pair, round_km
from .geocoding import GeocodingService
from .logger import get_logger
from .models import (
    BEST_AFTER_ALL,
    EXACT_MATCH,
    NO_GEO,
    NO_GEOCODE_SUCCESS,
    THRESHOLD,
    Coordinate,
    LocationCandidate,
    PickResult,
)

logger = get_logger()


def _base_letters(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def _city_sort_key(candidate: LocationCandidate):
    # Accent- and case-insensitive first; original spelling breaks ties
    return (_base_letters(candidate.city), candidate.city.casefold(), candidate.city)


def alphabetical_first(candidates: Sequence[LocationCandidate]) -> LocationCandidate:
    return sorted(candidates, key=_city_sort_key)[0]


class CityPicker:
    """
    Picks the best city per job.

    Coordinates come from the city lookup (dataset, then store) before
    falling back to the remote geocoder; remote results are registered
    back into the lookup.
    """

    def __init__(
        self,
        geocoder: GeocodingService,
        city_batch_size: int = 6,
        early_exit_km: float = 100.0,
        city_lookup: Optional[CityLookup] = None,
    ):
        self.geocoder = geocoder
        self.city_batch_size = max(1, int(city_batch_size))
        self.early_exit_km = float(early_exit_km)
        self.city_lookup = city_lookup

    def locate(self, candidate: LocationCandidate) -> Optional[Coordinate]:
        """Resolve one candidate through every cache tier; None if unresolved."""
        try:
            if self.city_lookup is not None:
                coord = self.city_lookup.resolve(candidate.city, candidate.state)
                if coord is not None:
                    return coord

            coord = self.geocoder.geocode_city_state(candidate.city, candidate.state)
            if coord is None:
                logger.record_lookup_miss()
                return None

            logger.record_lookup_hit("remote")
            if self.city_lookup is not None:
                coord = self.city_lookup.add_city(candidate.city, candidate.state, coord.lat, coord.lng)
            return coord
        except Exception as e:
            logger.warning("Could not locate candidate", city=candidate.city, state=candidate.state, error=str(e))
            logger.record_error(type(e).__name__)
            return None

    def _locate_batch(self, batch: Sequence[LocationCandidate]) -> List[Optional[Coordinate]]:
        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            return list(pool.map(self.locate, batch))

    def pick(
        self,
        candidates: Sequence[LocationCandidate],
        sub_lat: Optional[float],
        sub_lng: Optional[float],
        sub_city: Optional[str],
    ) -> PickResult:
        if not candidates:
            raise ValueError("pick() needs at least one candidate")

        wanted = str(sub_city or "").strip().lower()
        if wanted:
            for c in candidates:
                if c.city.strip().lower() == wanted:
                    return PickResult(c, 0.0, EXACT_MATCH)

        if not is_finite_pair(sub_lat, sub_lng):
            return PickResult(alphabetical_first(candidates), None, NO_GEO)

        best_idx = -1
        best_dist = math.inf
        for start in range(0, len(candidates), self.city_batch_size):
            batch = candidates[start:start + self.city_batch_size]
            coords = self._locate_batch(batch)

            for offset, coord in enumerate(coords):
                if coord is None:
                    continue
                d = haversine_km(sub_lat, sub_lng, coord.lat, coord.lng)
                if d < best_dist:
                    best_idx, best_dist = start + offset, d

            if best_idx != -1 and best_dist <= self.early_exit_km:
                return PickResult(candidates[best_idx], round_km(best_dist), THRESHOLD)

        if best_idx != -1:
            return PickResult(candidates[best_idx], round_km(best_dist), BEST_AFTER_ALL)

        return PickResult(alphabetical_first(candidates), None, NO_GEOCODE_SUCCESS)
