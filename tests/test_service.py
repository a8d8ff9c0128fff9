"""Tests for the request-handling service."""

import pytest

from jobmatch.city_lookup import CityLookup
from jobmatch.env import DEFAULT_CITY_BATCH_SIZE, DEFAULT_EARLY_EXIT_KM
from jobmatch.models import Coordinate
from jobmatch.service import MatchService, _tuning
from jobmatch.storage import GEOCODED_CITIES, KeyValueStore

SETTINGS = {
    "rapidapi_key": None,
    "google_maps_api_key": None,
    "store_url": None,
    "city_dataset": None,
    "job_concurrency": 6,
    "city_batch_size": DEFAULT_CITY_BATCH_SIZE,
    "early_exit_km": DEFAULT_EARLY_EXIT_KM,
}


@pytest.fixture
def service(geocoder, empty_lookup):
    return MatchService(dict(SETTINGS), city_lookup=empty_lookup, geocoder=geocoder)


def request(**extra):
    body = {
        "nursing_form_jobs": {
            "response_jobs": [{"job_eid": "1", "location": "San Jose CA"}],
            "latitude": 37.0,
            "longitude": -122.0,
            "subscriber_state": "CA",
        }
    }
    body.update(extra)
    return body


class TestHandleRequest:
    """Test status codes and response bodies."""

    def test_ok(self, service):
        status, body = service.handle_request(request(debug=True))
        assert status == 200
        assert body["result"][0]["job_eid"] == "1"
        assert body["__debug"]["stage"] == "completed"

    def test_missing_jobs_is_400(self, service):
        status, body = service.handle_request({"nursing_form_jobs": {}})
        assert status == 400
        assert body["error"] == "Missing required field: nursing_form_jobs.response_jobs"

    def test_non_object_is_400(self, service):
        status, body = service.handle_request(["not", "an", "object"])
        assert status == 400
        assert body["errors"]

    def test_unexpected_failure_is_500(self, service, monkeypatch):
        def explode(payload):
            raise RuntimeError("wiring broke")

        monkeypatch.setattr(service, "build_processor", explode)
        status, body = service.handle_request(request())
        assert status == 500
        assert body["result"] == []
        assert body["message"] == "wiring broke"
        assert body["__debug"]["stage"] == "error"

    def test_empty_jobs_is_200(self, service):
        status, body = service.handle_request(
            {"nursing_form_jobs": {"response_jobs": [], "subscriber_state": "CA"}}
        )
        assert status == 200
        assert body["result"] == []


class TestTuning:
    """Per-request overrides fall back to configured defaults."""

    @pytest.mark.parametrize("value", [None, 0, "0", -3, "abc", ""])
    def test_defaults(self, value):
        assert _tuning(value, 6) == 6

    def test_override(self):
        assert _tuning("4", 6) == 4.0

    def test_build_processor_applies_overrides(self, service):
        processor = service.build_processor(
            {"job_concurrency": 2, "city_batch_size": "3", "early_exit_km": 25, "debug": True}
        )
        assert processor.job_concurrency == 2
        assert processor.city_picker.city_batch_size == 3
        assert processor.city_picker.early_exit_km == 25.0
        assert processor.debug is True

    def test_build_processor_defaults(self, service):
        processor = service.build_processor({"job_concurrency": 0})
        assert processor.job_concurrency == 6
        assert processor.city_picker.city_batch_size == DEFAULT_CITY_BATCH_SIZE
        assert processor.city_picker.early_exit_km == DEFAULT_EARLY_EXIT_KM
        assert processor.debug is False


class TestCredentials:
    """Request-supplied API keys select their own provider."""

    def test_configured_provider_by_default(self, service, geocoder):
        assert service.build_processor({}).geocoder is geocoder

    def test_request_rapidapi_key(self, service):
        processor = service.build_processor({"rapidapi_key": "req-key"})
        assert processor.geocoder.provider_name == "rapidapi"
        assert processor.geocoder.provider.api_key == "req-key"
        assert processor.geocoder.stats is service.stats

    def test_request_google_key(self, service):
        processor = service.build_processor({"google_maps_api_key": "g-key"})
        assert processor.geocoder.provider_name == "google"

    def test_settings_select_provider(self, empty_lookup):
        service = MatchService(dict(SETTINGS, google_maps_api_key="env-key"), city_lookup=empty_lookup)
        assert service.geocoder.provider_name == "google"

    def test_no_credentials(self, empty_lookup):
        service = MatchService(dict(SETTINGS), city_lookup=empty_lookup)
        assert service.geocoder.provider is None


class TestLocate:
    """Test tier reporting for single-city lookups."""

    def test_memory_tier(self, sample_dataset, geocoder):
        service = MatchService(dict(SETTINGS), city_lookup=CityLookup(sample_dataset), geocoder=geocoder)
        coord, tier = service.locate("fresno", "ca")
        assert tier == "memory"
        assert coord == Coordinate(36.7831, -119.7941)

    def test_store_tier(self, store_path, empty_lookup, geocoder):
        store = KeyValueStore(store_path)
        store.hset(GEOCODED_CITIES, "TUSTIN,CA", {"lat": 33.74, "lng": -117.82})
        lookup = CityLookup(empty_lookup.dataset_path, store=store)
        service = MatchService(dict(SETTINGS), store=store, city_lookup=lookup, geocoder=geocoder)

        assert service.locate("Tustin", "CA") == (Coordinate(33.74, -117.82), "store")
        assert service.locate("Tustin", "CA")[1] == "memory"

    def test_remote_only_when_asked(self, service, stub_provider):
        assert service.locate("Oakland", "CA") == (None, "none")
        assert stub_provider.calls == []

        coord, tier = service.locate("Oakland", "CA", remote=True)
        assert tier == "remote"
        assert coord == Coordinate(37.8044, -122.2712)
        service.close()

    def test_unknown_remote(self, service):
        assert service.locate("Atlantis", "CA", remote=True) == (None, "none")
