"""
Maintenance for the persistent coordinate store.

Entries that do not decode to a finite `{lat, lng}` pair are ignored by
lookups anyway; pruning removes them so `hgetall` preloads stay clean.
"""

import json
from typing import Tuple

from .city_lookup import as_coordinate
from .logger import get_logger
from .storage import GEOCODED_CITIES, KeyValueStore

logger = get_logger()


def prune_store(store: KeyValueStore, collection: str = GEOCODED_CITIES) -> Tuple[int, int]:
    """
    Remove malformed coordinate entries from the store.

    Args:
        store: Open key-value store
        collection: Hash holding the coordinates

    Returns:
        Tuple of (entries_before, entries_after)
    """
    raw = store.raw_items(collection)
    before = len(raw)
    removed = 0

    for field, text in raw.items():
        try:
            value = json.loads(text)
        except (TypeError, ValueError):
            value = None
        if as_coordinate(value) is not None:
            continue
        if store.hdel(collection, field):
            removed += 1
            logger.debug("Removed malformed store entry", field=field, value=text)

    after = before - removed
    logger.info(
        f"Store prune complete: {removed} removed, {after} remaining",
        collection=collection,
        entries_before=before,
        entries_removed=removed,
    )
    return (before, after)
