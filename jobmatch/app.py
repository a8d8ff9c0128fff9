import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List

from . import __version__
from .cleanup import prune_store
from .env import load_env, read_settings
from .geo import to_num
from .logger import get_logger
from .normalize import cache_key, norm_state
from .service import MatchService
from .storage import GEOCODED_CITIES, open_store


def _read_json(path: Path) -> Any:
    if not path.exists():
        raise SystemExit(f"Input file not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError as e:
            raise SystemExit(f"Invalid JSON in {path}: {e}")


def _require_store(settings: Dict[str, Any]):
    store = open_store(settings.get("store_url"))
    if store is None:
        raise SystemExit("Key-value store not configured. Set JOBMATCH_STORE_URL or pass --store.")
    return store


def seed_records(store, records: List[Dict[str, Any]]) -> Dict[str, int]:
    """Write `[{city, state, lat, lng}]` records into the coordinate hash."""
    written = skipped = 0
    for rec in records:
        if not isinstance(rec, dict):
            skipped += 1
            continue
        city = str(rec.get("city") or "").strip()
        state = norm_state(rec.get("state"))
        lat, lng = to_num(rec.get("lat")), to_num(rec.get("lng"))
        if not city or not state or lat is None or lng is None:
            skipped += 1
            continue
        if store.hset(GEOCODED_CITIES, cache_key(city, state), {"lat": lat, "lng": lng}):
            written += 1
        else:
            skipped += 1
    return {"written": written, "skipped": skipped}


def cmd_match(args: argparse.Namespace) -> None:
    payload = _read_json(Path(args.input))
    service = MatchService(args.settings)
    try:
        status, body = service.handle_request(payload)
    finally:
        service.close()

    text = json.dumps(body, indent=2, ensure_ascii=False)
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text + "\n", encoding="utf-8")
        print(f"Wrote {len(body.get('result', []))} jobs to {out} (status {status})")
    else:
        print(text)
    if args.metrics:
        get_logger().log_metrics_summary()
    if status != 200:
        raise SystemExit(2)


def cmd_lookup(args: argparse.Namespace) -> None:
    service = MatchService(args.settings)
    try:
        coord, tier = service.locate(args.city, args.state, remote=args.remote)
    finally:
        service.close()
    if coord is None:
        print(f"Not found: {args.city}, {norm_state(args.state)}")
        raise SystemExit(1)
    print(f"{args.city}, {norm_state(args.state)} -> lat={coord.lat}, lng={coord.lng} ({tier})")


def cmd_seed_store(args: argparse.Namespace) -> None:
    records = _read_json(Path(args.input))
    if not isinstance(records, list):
        raise SystemExit("Seed file must contain a JSON list of {city, state, lat, lng}")
    store = _require_store(args.settings)
    counts = seed_records(store, records)
    print(f"Seeded {counts['written']} cities into '{GEOCODED_CITIES}' (skipped {counts['skipped']})")


def cmd_store_info(args: argparse.Namespace) -> None:
    store = _require_store(args.settings)
    entries = store.hgetall(GEOCODED_CITIES)
    print(f"Store: {store.target}")
    print(f"Circuit breaker: {'open' if store.circuit_open else 'closed'}")
    print(f"Collection '{GEOCODED_CITIES}': {store.hlen(GEOCODED_CITIES)} entries")
    for key in sorted(entries)[: args.sample]:
        print(f"  {key}: {entries[key]}")


def cmd_prune_store(args: argparse.Namespace) -> None:
    store = _require_store(args.settings)
    before, after = prune_store(store)
    print(f"Pruned {before - after} malformed entries ({after} remaining)")


def main(argv=None):
    # Load .env if present (RAPIDAPI_KEY, JOBMATCH_STORE_URL, etc.)
    load_env()
    parser = argparse.ArgumentParser(prog="jobmatch", description="Nearest relevant jobs for a subscriber")
    parser.add_argument("--version", action="store_true", help="Show version")
    parser.add_argument("--store", help="Key-value store URL or SQLite path (overrides JOBMATCH_STORE_URL)")
    parser.add_argument("--dataset", help="City dataset CSV (overrides JOBMATCH_CITY_DATASET)")

    subparsers = parser.add_subparsers(dest="command")
    mat = subparsers.add_parser("match", help="Run the matching pipeline on a request JSON")
    mat.add_argument("--input", required=True, help="Path to request JSON")
    mat.add_argument("--output", help="Write the response JSON here instead of stdout")
    mat.add_argument("--metrics", action="store_true", help="Log lookup metrics after the run")
    mat.set_defaults(func=cmd_match)

    lkp = subparsers.add_parser("lookup", help="Resolve one city through the cache tiers")
    lkp.add_argument("--city", required=True, help="City name")
    lkp.add_argument("--state", required=True, help="Two-letter state code")
    lkp.add_argument("--remote", action="store_true", help="Fall back to the geocoding provider")
    lkp.set_defaults(func=cmd_lookup)

    sed = subparsers.add_parser("seed-store", help="Write [{city, state, lat, lng}] records into the store")
    sed.add_argument("--input", required=True, help="Path to JSON list of cities")
    sed.set_defaults(func=cmd_seed_store)

    inf = subparsers.add_parser("store-info", help="Show store entry count and a sample")
    inf.add_argument("--sample", type=int, default=10, help="Number of entries to print (default 10)")
    inf.set_defaults(func=cmd_store_info)

    prn = subparsers.add_parser("prune-store", help="Remove malformed coordinate entries from the store")
    prn.set_defaults(func=cmd_prune_store)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    settings = read_settings()
    if args.store:
        settings["store_url"] = args.store
    if args.dataset:
        settings["city_dataset"] = args.dataset
    args.settings = settings

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help(sys.stderr)


if __name__ == "__main__":
    main()
