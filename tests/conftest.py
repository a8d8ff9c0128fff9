"""
Pytest configuration and shared fixtures.
"""

import threading
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from jobmatch.city_lookup import CityLookup
from jobmatch.geocoding import GeocodeProvider, GeocodingService, ProviderError
from jobmatch.models import GeocodeStats


class StubProvider(GeocodeProvider):
    """Answers from a fixed table and records every call in order."""

    name = "stub"

    def __init__(self, table: Dict[Tuple[str, str], Tuple[float, float]], failing=()):
        super().__init__(max_retries=0, base_delay=0)
        self.table = table
        self.failing = set(failing)
        self.calls: List[Tuple[str, str]] = []
        self._lock = threading.Lock()

    def fetch(self, city: str, state: str):
        with self._lock:
            self.calls.append((city, state))
        if (city, state) in self.failing:
            raise ProviderError("stub provider down")
        coord = self.table.get((city, state))
        if coord is None:
            return {"results": []}
        return {"latitude": coord[0], "longitude": coord[1]}


CA_COORDS = {
    ("San Jose", "CA"): (37.12, -121.95),
    ("Fresno", "CA"): (36.7378, -119.7871),
    ("Sacramento", "CA"): (38.2, -121.6),
    ("Oakland", "CA"): (37.8044, -122.2712),
    ("San Diego", "CA"): (32.7157, -117.1611),
    ("Los Angeles", "CA"): (34.0522, -118.2437),
}


@pytest.fixture
def stub_provider() -> StubProvider:
    return StubProvider(dict(CA_COORDS))


@pytest.fixture
def geocoder(stub_provider) -> GeocodingService:
    return GeocodingService(stub_provider, stats=GeocodeStats())


@pytest.fixture
def sample_dataset(tmp_path) -> Path:
    """City dataset in the older 2/6/7 column layout."""
    path = tmp_path / "uscities.csv"
    path.write_text(
        "city,city_ascii,state_id,state_name,county_fips,county_name,lat,lng,population\n"
        "San Francisco,San Francisco,CA,California,06075,San Francisco,37.7558,-122.4449,3290197\n"
        '"Cañon City",Canon City,CO,Colorado,08043,Fremont,38.4430,-105.2200,16400\n'
        "Bad Row,Bad Row,CA,California,06001,Alameda,not-a-number,-122.0,10\n"
        "Missing State,Missing State,,California,06001,Alameda,37.0,-122.0,10\n"
        "Fresno,Fresno,CA,California,06019,Fresno,36.7831,-119.7941,717589\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def empty_lookup(tmp_path) -> CityLookup:
    """City lookup whose dataset does not exist."""
    return CityLookup(dataset_path=tmp_path / "missing.csv")


@pytest.fixture
def store_path(tmp_path) -> Path:
    return tmp_path / "kv" / "store.db"
