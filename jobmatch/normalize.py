import re
from typing import List, Optional

from .models import LocationCandidate

_NON_LETTERS = re.compile(r"[^A-Za-z]")
_PHRASE_SPLIT = re.compile(r"[|,;/]+")
_CHUNK_SPLIT = re.compile(r"\s*,\s*")
# Non-greedy city, then a two-letter state, optionally followed by "US"
_CITY_STATE = re.compile(r"^(.*?)\s+([A-Za-z]{2})(?:\s+US)?$", re.IGNORECASE)


def normalize_text(s: str) -> str:
    return " ".join(s.strip().lower().split())


def norm_state(abbrev: Optional[str]) -> str:
    """Strip everything but letters and uppercase: ' ca.' -> 'CA'."""
    return _NON_LETTERS.sub("", str(abbrev or "")).upper()


def split_phrases(s: Optional[str]) -> List[str]:
    """Split a keyword phrase list on any of `| , ; /`, dropping empties."""
    if not s:
        return []
    return [p.strip() for p in _PHRASE_SPLIT.split(str(s)) if p.strip()]


def cache_key(city: str, state: str) -> str:
    """Canonical `CITY,ST` identity shared by every coordinate cache tier."""
    return f"{city.strip().upper()},{state.strip().upper()}"


def display_location(candidate: LocationCandidate) -> str:
    return f"{candidate.city} {candidate.state} US"


def parse_cities_for_state(location: Optional[str], state: str) -> List[LocationCandidate]:
    """
    Extract `<City> ST` candidates from free-text job location.

    Chunks are comma separated; anything not shaped like `<city> <ST>`
    (optionally followed by `US`) is dropped. Only candidates in `state`
    are returned, in input order, duplicates kept.
    """
    if not location:
        return []
    target = norm_state(state)
    candidates: List[LocationCandidate] = []
    for chunk in _CHUNK_SPLIT.split(str(location)):
        chunk = chunk.strip()
        if not chunk:
            continue
        m = _CITY_STATE.match(chunk)
        if not m:
            continue
        city = m.group(1).strip()
        st = norm_state(m.group(2))
        if not city or st != target:
            continue
        candidates.append(LocationCandidate(city=city, state=st, raw=f"{city} {st} US"))
    return candidates
