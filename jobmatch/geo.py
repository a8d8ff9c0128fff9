"""Distance helpers: numeric coercion and great-circle distance."""

import math
from typing import Any, Optional

EARTH_RADIUS_KM = 6371.0


def to_num(value: Any) -> Optional[float]:
    """Coerce a request value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def is_finite_pair(lat: Any, lng: Any) -> bool:
    return (
        isinstance(lat, (int, float))
        and isinstance(lng, (int, float))
        and not isinstance(lat, bool)
        and not isinstance(lng, bool)
        and math.isfinite(lat)
        and math.isfinite(lng)
    )


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two points."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push `a` a hair above 1 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, a)))


def round_km(distance: Optional[float]) -> Optional[float]:
    if distance is None or not math.isfinite(distance):
        return None
    return round(distance, 3)
