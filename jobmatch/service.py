"""
Composition root: wires the city lookup, key-value store and geocoder
once per process and serves pipeline requests against them.
"""

from typing import Any, Dict, Optional, Tuple

from .city_lookup import CityLookup
from .city_picker import CityPicker
from .env import (
    DEFAULT_CITY_BATCH_SIZE,
    DEFAULT_EARLY_EXIT_KM,
    DEFAULT_JOB_CONCURRENCY,
    read_settings,
)
from .fuzzy import MatcherFactory, build_job_index
from .geo import to_num
from .geocoding import GeocodingService, make_provider
from .logger import get_logger
from .models import Coordinate, GeocodeStats, LocationCandidate
from .normalize import norm_state
from .processor import JobProcessor
from .schema import validate_request
from .storage import KeyValueStore, open_store

logger = get_logger()


def _tuning(value: Any, default: float) -> float:
    """Request override for a tuning knob; missing, zero or junk means default."""
    n = to_num(value)
    if n is None or n <= 0:
        return default
    return n


class MatchService:
    """Long-lived services shared by every request in this process."""

    def __init__(
        self,
        settings: Optional[Dict[str, Any]] = None,
        store: Optional[KeyValueStore] = None,
        city_lookup: Optional[CityLookup] = None,
        geocoder: Optional[GeocodingService] = None,
        matcher_factory: MatcherFactory = build_job_index,
    ):
        self.settings = settings if settings is not None else read_settings()
        self.stats = geocoder.stats if geocoder is not None else GeocodeStats()
        self.store = store if store is not None else open_store(self.settings.get("store_url"))
        self.city_lookup = city_lookup or CityLookup(
            dataset_path=self.settings.get("city_dataset"),
            store=self.store,
            stats=self.stats,
        )
        self.geocoder = geocoder or GeocodingService(
            make_provider(
                rapidapi_key=self.settings.get("rapidapi_key"),
                google_maps_api_key=self.settings.get("google_maps_api_key"),
            ),
            stats=self.stats,
        )
        self.matcher_factory = matcher_factory
        logger.debug(
            "Match service ready",
            provider=self.geocoder.provider_name,
            store_enabled=self.store is not None,
        )

    def _geocoder_for(self, payload: Dict[str, Any]) -> GeocodingService:
        """Request-supplied credentials get their own provider, sharing stats."""
        rapidapi_key = payload.get("rapidapi_key")
        google_key = payload.get("google_maps_api_key")
        if not rapidapi_key and not google_key:
            return self.geocoder
        return GeocodingService(
            make_provider(rapidapi_key=rapidapi_key, google_maps_api_key=google_key),
            stats=self.stats,
        )

    def build_processor(self, payload: Dict[str, Any]) -> JobProcessor:
        job_concurrency = int(_tuning(
            payload.get("job_concurrency"),
            self.settings.get("job_concurrency", DEFAULT_JOB_CONCURRENCY),
        ))
        city_batch_size = int(_tuning(
            payload.get("city_batch_size"),
            self.settings.get("city_batch_size", DEFAULT_CITY_BATCH_SIZE),
        ))
        early_exit_km = _tuning(
            payload.get("early_exit_km"),
            self.settings.get("early_exit_km", DEFAULT_EARLY_EXIT_KM),
        )
        geocoder = self._geocoder_for(payload)
        picker = CityPicker(
            geocoder,
            city_batch_size=city_batch_size,
            early_exit_km=early_exit_km,
            city_lookup=self.city_lookup,
        )
        return JobProcessor(
            geocoder,
            picker,
            job_concurrency=job_concurrency,
            debug=bool(payload.get("debug")),
            matcher_factory=self.matcher_factory,
        )

    def handle_request(self, payload: Any) -> Tuple[int, Dict[str, Any]]:
        """Run one match request; returns `(status, body)` and never raises."""
        errors = validate_request(payload)
        if errors:
            logger.warning("Rejected match request", errors=errors)
            return 400, {"error": errors[0], "errors": errors}

        try:
            output = self.build_processor(payload).process_jobs(payload)
        except Exception as e:
            logger.error("Error processing jobs", error=str(e), error_type=type(e).__name__)
            return 500, {
                "error": "Internal server error",
                "message": str(e),
                "result": [],
                "__debug": {"stage": "error", "errors": [{"where": "handler", "message": str(e)}]},
            }
        return 200, output

    def locate(self, city: str, state: str, remote: bool = False) -> Tuple[Optional[Coordinate], str]:
        """Resolve one city, reporting which tier answered."""
        state = norm_state(state)
        coord = self.city_lookup.lookup_city(city, state)
        if coord is not None:
            return coord, "memory"
        coord = self.city_lookup.lookup_store(city, state)
        if coord is not None:
            return coord, "store"
        if not remote:
            return None, "none"
        picker = CityPicker(self.geocoder, city_lookup=self.city_lookup)
        coord = picker.locate(LocationCandidate(city, state, f"{city} {state} US"))
        return coord, "remote" if coord is not None else "none"

    def close(self) -> None:
        self.city_lookup.flush(timeout=5)
