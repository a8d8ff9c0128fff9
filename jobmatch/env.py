import os
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

DEFAULT_JOB_CONCURRENCY = 6
DEFAULT_CITY_BATCH_SIZE = 6
DEFAULT_EARLY_EXIT_KM = 100.0


def load_env(env_path: Optional[Path] = None) -> None:
    """Load .env from the working directory if present.

    Variables already set in the process environment win.
    """
    env_path = env_path or Path.cwd() / ".env"
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def _env_number(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_settings() -> Dict[str, Any]:
    """Snapshot of the environment-driven service configuration."""
    return {
        "rapidapi_key": os.getenv("RAPIDAPI_KEY") or None,
        "google_maps_api_key": os.getenv("GOOGLE_MAPS_API_KEY") or None,
        "store_url": os.getenv("JOBMATCH_STORE_URL") or None,
        "city_dataset": os.getenv("JOBMATCH_CITY_DATASET") or None,
        "job_concurrency": int(_env_number("JOBMATCH_JOB_CONCURRENCY", DEFAULT_JOB_CONCURRENCY)),
        "city_batch_size": int(_env_number("JOBMATCH_CITY_BATCH_SIZE", DEFAULT_CITY_BATCH_SIZE)),
        "early_exit_km": _env_number("JOBMATCH_EARLY_EXIT_KM", DEFAULT_EARLY_EXIT_KM),
    }
