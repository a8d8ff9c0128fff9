#!/usr/bin/env python3
"""
Seed the coordinate store with well-known US cities.

Usage:
    python scripts/populate_store_sample.py --store data/kv.db
    python scripts/populate_store_sample.py --store data/kv.db --dry-run
"""

import argparse
import os
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from jobmatch.app import seed_records
from jobmatch.env import load_env
from jobmatch.normalize import cache_key
from jobmatch.storage import GEOCODED_CITIES, open_store

SAMPLE_CITIES = [
    {"city": "New York", "state": "NY", "lat": 40.7128, "lng": -74.0060},
    {"city": "Los Angeles", "state": "CA", "lat": 34.0522, "lng": -118.2437},
    {"city": "Chicago", "state": "IL", "lat": 41.8781, "lng": -87.6298},
    {"city": "Houston", "state": "TX", "lat": 29.7604, "lng": -95.3698},
    {"city": "Phoenix", "state": "AZ", "lat": 33.4484, "lng": -112.0740},
    {"city": "Philadelphia", "state": "PA", "lat": 39.9526, "lng": -75.1652},
    {"city": "San Antonio", "state": "TX", "lat": 29.4241, "lng": -98.4936},
    {"city": "San Diego", "state": "CA", "lat": 32.7157, "lng": -117.1611},
    {"city": "Dallas", "state": "TX", "lat": 32.7767, "lng": -96.7970},
    {"city": "San Jose", "state": "CA", "lat": 37.3382, "lng": -121.8863},
    {"city": "Austin", "state": "TX", "lat": 30.2672, "lng": -97.7431},
    {"city": "Jacksonville", "state": "FL", "lat": 30.3322, "lng": -81.6557},
    {"city": "Columbus", "state": "OH", "lat": 39.9612, "lng": -82.9988},
    {"city": "Charlotte", "state": "NC", "lat": 35.2271, "lng": -80.8431},
    {"city": "San Francisco", "state": "CA", "lat": 37.7749, "lng": -122.4194},
    {"city": "Indianapolis", "state": "IN", "lat": 39.7684, "lng": -86.1581},
    {"city": "Seattle", "state": "WA", "lat": 47.6062, "lng": -122.3321},
    {"city": "Denver", "state": "CO", "lat": 39.7392, "lng": -104.9903},
    {"city": "Washington", "state": "DC", "lat": 38.9072, "lng": -77.0369},
    {"city": "Boston", "state": "MA", "lat": 42.3601, "lng": -71.0589},
    {"city": "Nashville", "state": "TN", "lat": 36.1627, "lng": -86.7816},
    {"city": "Portland", "state": "OR", "lat": 45.5152, "lng": -122.6784},
    {"city": "Las Vegas", "state": "NV", "lat": 36.1699, "lng": -115.1398},
    {"city": "Fresno", "state": "CA", "lat": 36.7378, "lng": -119.7871},
    {"city": "Sacramento", "state": "CA", "lat": 38.5816, "lng": -121.4944},
    {"city": "Atlanta", "state": "GA", "lat": 33.7490, "lng": -84.3880},
    {"city": "Miami", "state": "FL", "lat": 25.7617, "lng": -80.1918},
    {"city": "Oakland", "state": "CA", "lat": 37.8044, "lng": -122.2712},
    {"city": "Minneapolis", "state": "MN", "lat": 44.9778, "lng": -93.2650},
    {"city": "New Orleans", "state": "LA", "lat": 29.9511, "lng": -90.0715},
    {"city": "Honolulu", "state": "HI", "lat": 21.3099, "lng": -157.8581},
]


def main():
    load_env()
    parser = argparse.ArgumentParser(description="Seed the coordinate store with sample cities")
    parser.add_argument("--store", default=os.getenv("JOBMATCH_STORE_URL"),
                       help="Store URL or SQLite path (default: JOBMATCH_STORE_URL)")
    parser.add_argument("--dry-run", action="store_true",
                       help="Show what would be written without writing")

    args = parser.parse_args()

    if args.dry_run:
        print(f"[DRY RUN] Would write {len(SAMPLE_CITIES)} cities to '{GEOCODED_CITIES}':")
        for rec in SAMPLE_CITIES[:5]:
            print(f"  {cache_key(rec['city'], rec['state'])}: lat={rec['lat']}, lng={rec['lng']}")
        if len(SAMPLE_CITIES) > 5:
            print(f"  ... and {len(SAMPLE_CITIES) - 5} more")
        return

    store = open_store(args.store)
    if store is None:
        print("❌ Store not configured. Set JOBMATCH_STORE_URL or pass --store.")
        sys.exit(1)

    counts = seed_records(store, SAMPLE_CITIES)
    print(f"✅ Wrote {counts['written']} cities to {store.target}")
    if counts["skipped"]:
        print(f"⚠️  Skipped {counts['skipped']} records")
        sys.exit(1)

    stored = store.hgetall(GEOCODED_CITIES)
    print(f"   '{GEOCODED_CITIES}' now holds {len(stored)} entries")


if __name__ == "__main__":
    main()
