"""
Job selection pipeline.

Per invocation: parse each job's in-state cities, pick the closest city
per job (bounded concurrency), sort by distance, apply the interest and
license relevance gate, then take the first three (optionally
backfilling). A structured debug trace is returned with every result,
and no exception escapes `process_jobs`.
"""

import math
import threading
from typing import Any, Dict, List, Optional, Set

from .city_picker import CityPicker
from .concurrency import map_with_concurrency
from .fuzzy import DEFAULT_THRESHOLD, MatcherFactory, build_job_index
from .geo import to_num
from .geocoding import GeocodingService
from .logger import get_logger
from .normalize import display_location, norm_state, parse_cities_for_state, split_phrases

logger = get_logger()

MAX_RESULTS = 3
DEBUG_MAX_SAMPLES = 100
UNKNOWN_ID = "(unknown)"


def job_id(job: Dict[str, Any]) -> str:
    return job.get("job_eid") or job.get("id") or job.get("url") or UNKNOWN_ID


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class JobProcessor:
    def __init__(
        self,
        geocoder: GeocodingService,
        city_picker: CityPicker,
        job_concurrency: int = 6,
        debug: bool = False,
        matcher_factory: MatcherFactory = build_job_index,
        fuzzy_threshold: float = DEFAULT_THRESHOLD,
        provider_key_present: Optional[bool] = None,
    ):
        self.geocoder = geocoder
        self.city_picker = city_picker
        self.job_concurrency = max(1, int(job_concurrency))
        self.debug = bool(debug)
        self.matcher_factory = matcher_factory
        self.fuzzy_threshold = fuzzy_threshold
        if provider_key_present is None:
            provider_key_present = geocoder.provider is not None
        self.provider_key_present = provider_key_present
        self._trace_lock = threading.Lock()

    def _sample(self, bucket: List[Any], entry: Dict[str, Any]) -> None:
        """Append a debug sample; quiet runs record none."""
        if not self.debug:
            return
        with self._trace_lock:
            if len(bucket) < DEBUG_MAX_SAMPLES:
                bucket.append(entry)

    def _new_trace(self, inputs: Dict[str, Any], passion: List[str], licenses: List[str]) -> Dict[str, Any]:
        return {
            "stage": "init",
            "inputs": inputs,
            "steps": {
                "prefilter": {"dropped_no_state_city": 0, "kept": 0, "samples": []},
                "fuse": {
                    "threshold": self.fuzzy_threshold,
                    "passionPhrases": passion,
                    "licensePhrases": licenses,
                    "matchedPassionIds_count": 0,
                    "matchedLicenseIds_count": 0,
                },
                "selection": {"reasons": []},
                "mode": "",
            },
            "geocode_stats": self.geocoder.get_stats(),
            "errors": [],
            "notes": [],
        }

    def process_jobs(self, request: Dict[str, Any]) -> Dict[str, Any]:
        nfj = request.get("nursing_form_jobs") or {}
        if not isinstance(nfj, dict):
            nfj = {}
        jobs = nfj.get("response_jobs")
        jobs = jobs if isinstance(jobs, list) else []
        sub_lat = to_num(_first_present(nfj, "latitude", "city_latitude"))
        sub_lng = to_num(_first_present(nfj, "longitude", "city_longitude"))
        sub_city = str(nfj.get("subscriber_city") or "")
        sub_state = norm_state(nfj.get("subscriber_state") or "")
        passion_raw = str(request.get("job_passion") or "")
        licenses_raw = str(request.get("licenses") or "")
        backfill = bool(request.get("backfill_when_less_than_3"))

        trace = self._new_trace(
            {
                "jobs_len": len(jobs),
                "lat_parsed": sub_lat,
                "lng_parsed": sub_lng,
                "subscriber_city": sub_city,
                "subscriber_state_norm": sub_state,
                "job_passion_raw": passion_raw,
                "licenses_raw": licenses_raw,
                "provider": self.geocoder.provider_name,
                "provider_key_present": self.provider_key_present,
                "job_concurrency": self.job_concurrency,
                "city_batch_size": self.city_picker.city_batch_size,
                "early_exit_km": self.city_picker.early_exit_km,
                "backfill_when_less_than_3": backfill,
                "debug_on": self.debug,
            },
            split_phrases(passion_raw),
            split_phrases(licenses_raw),
        )

        try:
            if not jobs:
                trace["notes"].append("No jobs array or length == 0.")
                return self._finish([], trace)
            if not sub_state:
                trace["notes"].append("Missing subscriber_state.")
                return self._finish([], trace)

            have_geo = sub_lat is not None and sub_lng is not None
            trace["steps"]["mode"] = "distance" if have_geo else "no-geo-fallback"

            survived = self._prefilter(jobs, sub_state, sub_lat, sub_lng, sub_city, trace)
            trace["steps"]["prefilter"]["kept"] = len(survived)
            if not survived:
                trace["notes"].append("All jobs filtered out before fuzzy matching.")
                return self._finish([], trace)

            if have_geo:
                # Stable sort; jobs without a distance go last
                survived.sort(key=lambda j: j["distance_km"] if j.get("distance_km") is not None else math.inf)

            passes = self._relevance_gate(survived, trace)
            picked = self._select(survived, passes, backfill, trace)

            trace["stage"] = "completed"
            return self._finish(picked, trace)
        except Exception as e:
            trace["stage"] = "caught_exception"
            trace["errors"].append({"where": "main_catch", "message": str(e) or type(e).__name__})
            logger.error("Job processing failed", error=str(e), error_type=type(e).__name__)
            logger.record_error(type(e).__name__)
            return self._finish([], trace)

    def _finish(self, result: List[Dict[str, Any]], trace: Dict[str, Any]) -> Dict[str, Any]:
        trace["geocode_stats"] = self.geocoder.get_stats()
        return {"result": result[:MAX_RESULTS], "__debug": trace}

    def _prefilter(self, jobs, sub_state, sub_lat, sub_lng, sub_city, trace) -> List[Dict[str, Any]]:
        prefilter = trace["steps"]["prefilter"]
        reasons = trace["steps"]["selection"]["reasons"]

        def _process(job: Any, index: int) -> Optional[Dict[str, Any]]:
            if not isinstance(job, dict):
                with self._trace_lock:
                    prefilter["dropped_no_state_city"] += 1
                self._sample(reasons, {"id": f"#{index}", "title": None, "reason": "Job is not an object"})
                return None

            jid = job_id(job)
            candidates = parse_cities_for_state(job.get("location") or job.get("location_string") or "", sub_state)
            if not candidates:
                with self._trace_lock:
                    prefilter["dropped_no_state_city"] += 1
                self._sample(reasons, {"id": jid, "title": job.get("title"), "reason": "No city in subscriber state"})
                return None

            picked = self.city_picker.pick(candidates, sub_lat, sub_lng, sub_city)
            display = display_location(picked.chosen)
            self._sample(prefilter["samples"], {
                "id": jid,
                "title": job.get("title"),
                "early_reason": picked.early,
                "picked_city": display,
                "distance_km": picked.distance_km,
            })
            logger.debug("City picked", id=jid, city=display, early=picked.early, distance_km=picked.distance_km)
            return {**job, "location": display, "location_string": display, "distance_km": picked.distance_km}

        processed = map_with_concurrency(jobs, _process, self.job_concurrency)
        return [j for j in processed if j is not None]

    def _relevance_gate(self, survived: List[Dict[str, Any]], trace: Dict[str, Any]) -> List[bool]:
        """Per-job pass/fail from interest and license phrase matches."""
        fuse = trace["steps"]["fuse"]
        reasons = trace["steps"]["selection"]["reasons"]
        passion, licenses = fuse["passionPhrases"], fuse["licensePhrases"]
        if not passion and not licenses:
            return [True] * len(survived)

        index = self.matcher_factory(survived, self.fuzzy_threshold)

        def _collect(phrases: List[str]) -> Set[str]:
            matched: Set[str] = set()
            for phrase in phrases:
                hits = index.search(phrase)
                self._sample(reasons, {"id": f"FUSE_QUERY:{phrase}", "title": f"hits:{len(hits)}", "reason": "fuse_query"})
                for record, _score in hits:
                    jid = job_id(record)
                    if jid != UNKNOWN_ID:
                        matched.add(jid)
            return matched

        passion_ids = _collect(passion) if passion else None
        license_ids = _collect(licenses) if licenses else None
        fuse["matchedPassionIds_count"] = len(passion_ids) if passion_ids is not None else 0
        fuse["matchedLicenseIds_count"] = len(license_ids) if license_ids is not None else 0

        passes = []
        for job in survived:
            jid = job_id(job)
            in_passion = passion_ids is not None and jid in passion_ids
            in_license = license_ids is not None and jid in license_ids
            if passion_ids is not None and license_ids is not None:
                ok = in_passion and in_license
                reason = f"no BOTH match (passion:{in_passion}, license:{in_license})"
            elif passion_ids is not None:
                ok, reason = in_passion, "no passion match"
            else:
                ok, reason = in_license, "no license match"
            passes.append(ok)
            if not ok:
                self._sample(reasons, {"id": jid, "title": job.get("title"), "reason": reason})
        return passes

    def _select(self, survived, passes, backfill, trace) -> List[Dict[str, Any]]:
        chosen: List[int] = []
        for i, ok in enumerate(passes):
            if ok:
                chosen.append(i)
                if len(chosen) >= MAX_RESULTS:
                    break

        if len(chosen) < MAX_RESULTS and backfill:
            trace["notes"].append(f"Backfilling {MAX_RESULTS - len(chosen)}")
            taken = set(chosen)
            for i in range(len(survived)):
                if i not in taken:
                    chosen.append(i)
                    if len(chosen) >= MAX_RESULTS:
                        break

        return [survived[i] for i in chosen]
