#!/usr/bin/env python3
"""
Verify the coordinate store works end to end.

Writes a test entry, reads it back with hget and hgetall, then deletes it.

Usage:
    python scripts/verify_store.py --store data/kv.db
"""

import argparse
import os
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jobmatch.city_lookup import CityLookup
from jobmatch.env import load_env
from jobmatch.storage import GEOCODED_CITIES, open_store

TEST_KEY = "__VERIFY_CITY__,ZZ"
TEST_VALUE = {"lat": 12.345, "lng": -67.89}


def verify(store) -> bool:
    """
    Round-trip a test entry through the store.

    Returns True if every operation behaved, False otherwise.
    """
    print(f"Writing {TEST_KEY}...")
    if not store.hset(GEOCODED_CITIES, TEST_KEY, TEST_VALUE):
        print("❌ hset failed")
        return False

    value = store.hget(GEOCODED_CITIES, TEST_KEY)
    if value != TEST_VALUE:
        print(f"❌ hget returned {value!r}, expected {TEST_VALUE!r}")
        return False
    print("✅ hget round-trip OK")

    entries = store.hgetall(GEOCODED_CITIES)
    if TEST_KEY not in entries:
        print("❌ hgetall did not include the test entry")
        return False
    print(f"✅ hgetall OK ({len(entries)} entries in '{GEOCODED_CITIES}')")

    if not store.hdel(GEOCODED_CITIES, TEST_KEY):
        print("❌ hdel failed")
        return False
    if store.hget(GEOCODED_CITIES, TEST_KEY) is not None:
        print("❌ test entry still present after hdel")
        return False
    print("✅ Cleanup OK")

    lookup = CityLookup(store=store)
    added = lookup.preload_store()
    print(f"✅ Preload OK ({added} coordinates usable by the city lookup)")
    return True


def main():
    load_env()
    parser = argparse.ArgumentParser(description="Verify the coordinate store")
    parser.add_argument("--store", default=os.getenv("JOBMATCH_STORE_URL"),
                       help="Store URL or SQLite path (default: JOBMATCH_STORE_URL)")
    args = parser.parse_args()

    store = open_store(args.store)
    if store is None:
        print("❌ Store not configured. Missing JOBMATCH_STORE_URL or --store.")
        sys.exit(1)

    print(f"Checking store at {store.target}...\n")
    sys.exit(0 if verify(store) else 1)


if __name__ == "__main__":
    main()
