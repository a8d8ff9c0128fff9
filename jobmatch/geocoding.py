"""
Remote geocoding of `(city, state)` pairs.

Two interchangeable providers sit behind `GeocodeProvider`: a keyed
RapidAPI proxy (preferred when configured) and the Google Geocoding API.
`GeocodingService` adds an exact-string memo and the `GeocodeStats`
bookkeeping on top of whichever provider was selected.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

import requests

from .geo import to_num
from .logger import get_logger
from .models import Coordinate, GeocodeStats, LocationCandidate
from .retry import (
    RetryError,
    RetryableStatusError,
    exponential_backoff,
    is_transient_error,
    should_retry_http_status,
)

logger = get_logger()

RAPIDAPI_HOST = "google-maps-geocoding3.p.rapidapi.com"
RAPIDAPI_URL = f"https://{RAPIDAPI_HOST}/geocode"
GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

# Google statuses that mean "request fine, nothing found"
GOOGLE_EMPTY_STATUSES = {"ZERO_RESULTS"}

# Keys hash onto a fixed set of locks, so a key has one call in flight
KEY_LOCK_STRIPES = 64


class ProviderError(Exception):
    """The provider call itself failed (transport, status, or bad JSON)."""
    pass


def parse_geocode_payload(data: Any) -> Optional[Coordinate]:
    """
    Pull a coordinate out of a provider response body.

    Accepted shapes:
        {"latitude": .., "longitude": ..}
        {"results": [{"geometry": {"location": {"lat": .., "lng": ..}}}]}
        {"geometry": {"location": {"lat": .., "lng": ..}}}
    """
    if not isinstance(data, dict):
        return None

    lat = lng = None
    if "latitude" in data and "longitude" in data:
        lat, lng = data.get("latitude"), data.get("longitude")
    elif isinstance(data.get("results"), list) and data["results"]:
        location = _geometry_location(data["results"][0])
        if location is not None:
            lat, lng = location.get("lat"), location.get("lng")
    else:
        location = _geometry_location(data)
        if location is not None:
            lat, lng = location.get("lat"), location.get("lng")

    lat, lng = to_num(lat), to_num(lng)
    if lat is None or lng is None:
        return None
    return Coordinate(lat, lng)


def _geometry_location(obj: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(obj, dict):
        return None
    geometry = obj.get("geometry")
    if not isinstance(geometry, dict):
        return None
    location = geometry.get("location")
    return location if isinstance(location, dict) else None


class GeocodeProvider:
    """One HTTP geocoding backend. `fetch` returns the decoded JSON body."""

    name = "base"

    def __init__(self, timeout: float = 10.0, max_retries: int = 2, base_delay: float = 0.5):
        self.timeout = timeout
        self._get = exponential_backoff(
            max_retries=max_retries,
            base_delay=base_delay,
            max_delay=5.0,
            exceptions=(
                requests.exceptions.Timeout,
                requests.exceptions.ConnectionError,
                RetryableStatusError,
            ),
            on_retry=self._on_retry,
        )(self._request)

    def _on_retry(self, attempt: int, error: Exception, delay: float):
        logger.debug(f"{self.name} retry", attempt=attempt, error=str(error), delay=delay)

    def _request(self, url: str, params: Dict[str, str], headers: Optional[Dict[str, str]] = None):
        resp = requests.get(url, params=params, headers=headers, timeout=self.timeout)
        if should_retry_http_status(resp.status_code):
            raise RetryableStatusError(resp.status_code)
        return resp

    def request_json(self, url: str, params: Dict[str, str], headers: Optional[Dict[str, str]] = None) -> Any:
        try:
            resp = self._get(url, params, headers)
        except RetryError as e:
            raise ProviderError(str(e)) from e
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"{self.name} request error: {e}") from e

        if not resp.ok:
            raise ProviderError(f"{self.name} request failed ({resp.status_code})")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned invalid JSON") from e

    def fetch(self, city: str, state: str) -> Any:
        raise NotImplementedError


class RapidApiProvider(GeocodeProvider):
    """Google geocoding through the RapidAPI proxy."""

    name = "rapidapi"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def fetch(self, city: str, state: str) -> Any:
        return self.request_json(
            RAPIDAPI_URL,
            params={"address": f"{city}, {state}"},
            headers={"x-rapidapi-host": RAPIDAPI_HOST, "x-rapidapi-key": self.api_key},
        )


class GoogleMapsProvider(GeocodeProvider):
    """Direct Google Geocoding API."""

    name = "google"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key

    def fetch(self, city: str, state: str) -> Any:
        data = self.request_json(
            GOOGLE_GEOCODE_URL,
            params={"address": f"{city}, {state}", "key": self.api_key},
        )
        status = data.get("status") if isinstance(data, dict) else None
        if status == "OK" or status in GOOGLE_EMPTY_STATUSES:
            return data
        raise ProviderError(f"google geocode status {status}")


def make_provider(
    rapidapi_key: Optional[str] = None,
    google_maps_api_key: Optional[str] = None,
    **kwargs,
) -> Optional[GeocodeProvider]:
    """Pick the provider from whichever credential is present (RapidAPI first)."""
    if rapidapi_key:
        return RapidApiProvider(rapidapi_key, **kwargs)
    if google_maps_api_key:
        return GoogleMapsProvider(google_maps_api_key, **kwargs)
    return None


class GeocodingService:
    """
    Memoizing front for a geocoding provider.

    The memo is keyed by the exact `"<city>, <state>"` string. Each call
    counts one cache hit or miss; each miss also counts one of
    http_ok/http_fail and one of parsed_ok/parsed_fail. Transport
    failures are not memoized so a later call may succeed.
    """

    def __init__(self, provider: Optional[GeocodeProvider] = None, stats: Optional[GeocodeStats] = None):
        self.provider = provider
        self.stats = stats or GeocodeStats()
        self._cache: Dict[str, Optional[Coordinate]] = {}
        self._key_locks = [threading.Lock() for _ in range(KEY_LOCK_STRIPES)]

    @property
    def provider_name(self) -> Optional[str]:
        return self.provider.name if self.provider else None

    def get_stats(self) -> Dict[str, int]:
        return self.stats.snapshot()

    def _key_lock(self, key: str) -> threading.Lock:
        return self._key_locks[hash(key) % KEY_LOCK_STRIPES]

    def geocode_city_state(self, city: str, state: str) -> Optional[Coordinate]:
        key = f"{city}, {state}"

        # One in-flight lookup per key; concurrent callers wait for the memo
        with self._key_lock(key):
            if key in self._cache:
                self.stats.incr("cache_hits")
                return self._cache[key]

            self.stats.incr("cache_misses")
            if self.provider is None:
                self.stats.incr("http_fail")
                self.stats.incr("parsed_fail")
                self._cache[key] = None
                return None

            self.stats.incr("calls_made")
            try:
                payload = self.provider.fetch(city, state)
            except ProviderError as e:
                self.stats.incr("http_fail")
                self.stats.incr("parsed_fail")
                logger.record_provider_call(self.provider.name, ok=False)
                logger.record_error("transient" if is_transient_error(e) else "provider")
                logger.warning("Geocoding call failed", provider=self.provider.name, city=city, state=state, error=str(e))
                return None

            self.stats.incr("http_ok")
            logger.record_provider_call(self.provider.name, ok=True)
            coord = parse_geocode_payload(payload)
            self.stats.incr("parsed_ok" if coord is not None else "parsed_fail")
            if coord is None:
                logger.debug("Geocoding response had no usable coordinate", city=city, state=state)
            self._cache[key] = coord
            return coord

    def geocode_batch(
        self,
        candidates: Sequence[LocationCandidate],
        batch_size: int,
    ) -> List[Optional[Coordinate]]:
        """Geocode in fixed-size concurrent batches, keeping input order."""
        batch_size = max(1, int(batch_size))
        results: List[Optional[Coordinate]] = []
        for start in range(0, len(candidates), batch_size):
            batch = candidates[start:start + batch_size]
            with ThreadPoolExecutor(max_workers=len(batch)) as pool:
                futures = [pool.submit(self.geocode_city_state, c.city, c.state) for c in batch]
                results.extend(f.result() for f in futures)
        return results
