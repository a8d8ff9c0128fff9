from typing import Any, List

NUMERIC_FIELDS = ["job_concurrency", "city_batch_size", "early_exit_km"]
OPTIONAL_STR_FIELDS = [
    "job_passion",
    "licenses",
    "rapidapi_key",
    "google_maps_api_key",
]
SUBSCRIBER_STR_FIELDS = ["subscriber_city", "subscriber_state"]


def _is_number_like(v: Any) -> bool:
    if isinstance(v, bool):
        return False
    if isinstance(v, (int, float)):
        return True
    if isinstance(v, str):
        try:
            float(v)
            return True
        except ValueError:
            return v.strip() == ""
    return False


def validate_request(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Shape checks only: the pipeline tolerates odd values inside jobs.
    """
    if not isinstance(data, dict):
        return ["Request body must be a JSON object"]

    errors: List[str] = []

    nfj = data.get("nursing_form_jobs")
    if nfj is None:
        errors.append("Missing required field: nursing_form_jobs.response_jobs")
        return errors
    if not isinstance(nfj, dict):
        errors.append("Field 'nursing_form_jobs' must be an object")
        return errors
    if "response_jobs" not in nfj or nfj["response_jobs"] is None:
        errors.append("Missing required field: nursing_form_jobs.response_jobs")
    elif not isinstance(nfj["response_jobs"], list):
        errors.append("Field 'nursing_form_jobs.response_jobs' must be a list")

    for f in SUBSCRIBER_STR_FIELDS:
        if nfj.get(f) is not None and not isinstance(nfj[f], str):
            errors.append(f"Field 'nursing_form_jobs.{f}' must be a string if provided")

    for f in ("latitude", "longitude", "city_latitude", "city_longitude"):
        if nfj.get(f) is not None and not _is_number_like(nfj[f]):
            errors.append(f"Field 'nursing_form_jobs.{f}' must be numeric if provided")

    for f in OPTIONAL_STR_FIELDS:
        if data.get(f) is not None and not isinstance(data[f], str):
            errors.append(f"Field '{f}' must be a string if provided")

    for f in NUMERIC_FIELDS:
        if data.get(f) is not None and not _is_number_like(data[f]):
            errors.append(f"Field '{f}' must be numeric if provided")

    for f in ("backfill_when_less_than_3", "debug"):
        if data.get(f) is not None and not isinstance(data[f], bool):
            errors.append(f"Field '{f}' must be a boolean if provided")

    return errors
