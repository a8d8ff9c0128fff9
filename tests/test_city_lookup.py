"""Tests for the three-tier city lookup."""

import pytest

from jobmatch.city_lookup import (
    CityLookup,
    as_coordinate,
    detect_columns,
    legacy_columns,
    parse_dataset_rows,
)
from jobmatch.models import Coordinate, GeocodeStats
from jobmatch.storage import GEOCODED_CITIES, KeyValueStore


class TestDatasetParsing:
    """Test schema-tolerant dataset loading."""

    def test_detects_columns_from_header(self):
        header = ["city", "city_ascii", "state_id", "state_name", "lat", "lng"]
        assert detect_columns(header) == {
            "city": 0, "city_ascii": 1, "state": 2, "lat": 4, "lng": 5,
        }

    def test_unrecognised_header(self):
        assert detect_columns(["a", "b", "c"]) is None

    def test_legacy_layout_by_width(self):
        assert legacy_columns(8)["lat"] == 6
        assert legacy_columns(12)["lat"] == 9
        assert legacy_columns(5) is None

    def test_newer_layout_without_header_names(self):
        """An unknown header with 11+ columns should use the 3/9/10 layout."""
        rows = [
            ["c0", "c1", "c2", "c3", "c4", "c5", "c6", "c7", "c8", "c9", "c10"],
            ["Boise", "Boise", "Idaho", "ID", "x", "x", "x", "x", "x", "43.6", "-116.2"],
        ]
        assert parse_dataset_rows(rows) == {"BOISE,ID": Coordinate(43.6, -116.2)}

    def test_skips_bad_rows(self):
        rows = [
            ["city", "city_ascii", "state_id", "lat", "lng"],
            ["Ok", "Ok", "CA", "1.5", "2.5"],
            ["Nan", "Nan", "CA", "nan", "2.5"],
            ["", "", "CA", "1", "2"],
            ["Short", "Short"],
        ]
        assert parse_dataset_rows(rows) == {"OK,CA": Coordinate(1.5, 2.5)}

    def test_empty_file(self):
        assert parse_dataset_rows([]) == {}


class TestCityLookupDataset:
    """Test tier 1 seeded from the dataset."""

    def test_lookup_known_city(self, sample_dataset):
        lookup = CityLookup(dataset_path=sample_dataset)
        coord = lookup.lookup_city("san francisco", "ca")
        assert coord == Coordinate(37.7558, -122.4449)

    def test_original_spelling_alias(self, sample_dataset):
        """Cities with diacritics should resolve by both spellings."""
        lookup = CityLookup(dataset_path=sample_dataset)
        assert lookup.lookup_city("Canon City", "CO") == Coordinate(38.443, -105.22)
        assert lookup.lookup_city("Cañon City", "CO") == Coordinate(38.443, -105.22)

    def test_bad_rows_not_indexed(self, sample_dataset):
        lookup = CityLookup(dataset_path=sample_dataset)
        assert lookup.lookup_city("Bad Row", "CA") is None
        assert lookup.get_stats()["total_cities"] == 4

    def test_missing_dataset_is_not_fatal(self, empty_lookup):
        assert empty_lookup.lookup_city("Fresno", "CA") is None
        assert empty_lookup.get_stats() == {
            "total_cities": 0, "loaded": True, "store_enabled": False,
        }

    def test_loads_once(self, sample_dataset):
        """Deleting the file after first use should not matter."""
        lookup = CityLookup(dataset_path=sample_dataset)
        lookup.ensure_loaded()
        sample_dataset.unlink()
        lookup.ensure_loaded()
        assert lookup.lookup_city("Fresno", "CA") is not None

    def test_hits_counted(self, sample_dataset):
        stats = GeocodeStats()
        lookup = CityLookup(dataset_path=sample_dataset, stats=stats)
        lookup.lookup_city("Fresno", "CA")
        lookup.lookup_city("Nowhere", "CA")
        assert stats.get("csv_hits") == 1


class TestCityLookupStore:
    """Test tier 2 and write-through."""

    @pytest.fixture
    def store(self, store_path):
        return KeyValueStore(store_path)

    def test_store_disabled(self, empty_lookup):
        assert empty_lookup.lookup_store("Fresno", "CA") is None

    def test_store_hit_populates_memory(self, tmp_path, store):
        store.hset(GEOCODED_CITIES, "MODESTO,CA", {"lat": 37.64, "lng": -120.99})
        stats = GeocodeStats()
        lookup = CityLookup(dataset_path=tmp_path / "missing.csv", store=store, stats=stats)

        assert lookup.lookup_city("Modesto", "CA") is None
        assert lookup.lookup_store("modesto", "ca") == Coordinate(37.64, -120.99)
        assert stats.get("store_hits") == 1

        store.hdel(GEOCODED_CITIES, "MODESTO,CA")
        assert lookup.lookup_city("Modesto", "CA") == Coordinate(37.64, -120.99)

    def test_malformed_store_value_is_a_miss(self, tmp_path, store):
        store.hset(GEOCODED_CITIES, "BROKEN,CA", {"lat": "north"})
        lookup = CityLookup(dataset_path=tmp_path / "missing.csv", store=store)
        assert lookup.resolve("Broken", "CA") is None

    def test_add_city_writes_through(self, tmp_path, store):
        lookup = CityLookup(dataset_path=tmp_path / "missing.csv", store=store)
        coord = lookup.add_city("Visalia", "CA", 36.33, -119.29)
        assert lookup.lookup_city("VISALIA", "ca") == coord

        lookup.flush(timeout=5)
        assert store.hget(GEOCODED_CITIES, "VISALIA,CA") == {"lat": 36.33, "lng": -119.29}

    def test_add_city_keeps_first_value(self, empty_lookup):
        empty_lookup.add_city("Chico", "CA", 39.73, -121.84)
        empty_lookup.add_city("Chico", "CA", 0.0, 0.0)
        assert empty_lookup.lookup_city("Chico", "CA") == Coordinate(39.73, -121.84)

    def test_preload_store(self, tmp_path, store):
        store.hset(GEOCODED_CITIES, "A,CA", {"lat": 1, "lng": 2})
        store.hset(GEOCODED_CITIES, "B,CA", {"lat": 3, "lng": 4})
        store.hset(GEOCODED_CITIES, "C,CA", "junk")
        lookup = CityLookup(dataset_path=tmp_path / "missing.csv", store=store)
        assert lookup.preload_store() == 2
        assert lookup.lookup_city("B", "CA") == Coordinate(3.0, 4.0)


class TestAsCoordinate:
    def test_decodes_valid_pair(self):
        assert as_coordinate({"lat": "1.5", "lng": 2}) == Coordinate(1.5, 2.0)

    @pytest.mark.parametrize("value", [None, "x", [], {"lat": 1}, {"lat": float("nan"), "lng": 1}])
    def test_rejects_invalid(self, value):
        assert as_coordinate(value) is None
