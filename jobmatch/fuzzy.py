"""
Weighted fuzzy search over job records.

A query matches a field when the partial similarity between the two is
at least `1 - threshold`; a record matches when any of its weighted
fields does. Scores follow the "0 is a perfect match" convention.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from rapidfuzz import fuzz

from .normalize import normalize_text

JOB_SEARCH_KEYS: Tuple[Tuple[str, float], ...] = (
    ("title", 0.5),
    ("searchable_text", 0.3),
    ("description", 0.15),
    ("industry", 0.05),
)

DEFAULT_THRESHOLD = 0.1


def _field_text(record: Dict[str, Any], field: str) -> str:
    value = record.get(field)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        value = " ".join(str(v) for v in value if v is not None)
    return normalize_text(str(value))


class FuzzyIndex:
    """Search index over a fixed list of records."""

    def __init__(
        self,
        records: Sequence[Dict[str, Any]],
        keys: Sequence[Tuple[str, float]] = JOB_SEARCH_KEYS,
        threshold: float = DEFAULT_THRESHOLD,
    ):
        self.records = list(records)
        self.keys = list(keys)
        self.threshold = threshold
        self._total_weight = sum(w for _, w in self.keys) or 1.0
        self._texts = [
            [(_field_text(r, name), weight) for name, weight in self.keys]
            for r in self.records
        ]

    def _score(self, query: str, fields: List[Tuple[str, float]]) -> Optional[float]:
        cutoff = (1.0 - self.threshold) * 100
        matched = False
        weighted = 0.0
        for text, weight in fields:
            if not text:
                continue
            # Partial alignment only when the field can contain the whole query
            if len(text) >= len(query):
                similarity = fuzz.partial_ratio(query, text)
            else:
                similarity = fuzz.ratio(query, text)
            if similarity >= cutoff:
                matched = True
            weighted += weight * similarity / 100
        if not matched:
            return None
        return round(1.0 - weighted / self._total_weight, 6)

    def search(self, query: str) -> List[Tuple[Dict[str, Any], float]]:
        """Matching records with scores, best (lowest) first."""
        q = normalize_text(query or "")
        if not q:
            return []
        hits = []
        for i, fields in enumerate(self._texts):
            score = self._score(q, fields)
            if score is not None:
                hits.append((i, score))
        hits.sort(key=lambda h: (h[1], h[0]))
        return [(self.records[i], score) for i, score in hits]


# Factory signature the job processor depends on
MatcherFactory = Callable[[Sequence[Dict[str, Any]], float], FuzzyIndex]


def build_job_index(records: Sequence[Dict[str, Any]], threshold: float = DEFAULT_THRESHOLD) -> FuzzyIndex:
    return FuzzyIndex(records, JOB_SEARCH_KEYS, threshold)
