"""
Persistent key-value store: named hashes of JSON values.

Only the hash operations the coordinate cache needs are exposed.
Every failure is converted to a miss/no-op at this boundary and
logged; nothing here raises to the caller.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .database import KVEntry, init_database, get_session_factory
from .logger import get_logger
from .retry import CircuitBreaker, CircuitOpenError

logger = get_logger()

GEOCODED_CITIES = "geocoded-cities"


class KeyValueStore:
    """Hash-style store (`hget`/`hset`/`hgetall`/`hdel`) over one SQL table."""

    def __init__(self, target: Union[str, Path], breaker: Optional[CircuitBreaker] = None):
        self.target = str(target)
        self._engine = init_database(target)
        self._sessions = get_session_factory(self._engine)
        self._breaker = breaker or CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30,
            expected_exception=SQLAlchemyError,
        )

    @property
    def circuit_open(self) -> bool:
        """True while recent failures keep the store switched off."""
        return self._breaker.is_open

    def _guarded(self, op: str, func, default):
        try:
            return self._breaker.call(func)
        except CircuitOpenError:
            logger.debug("Store circuit open, skipping", op=op)
            return default
        except SQLAlchemyError as e:
            logger.warning("Store operation failed", op=op, error=str(e))
            logger.record_error(f"store_{op}")
            return default

    def hget(self, name: str, field: str) -> Optional[Any]:
        """Return the decoded value of one field, or None."""
        def _read():
            with self._sessions() as session:
                entry = session.get(KVEntry, (name, field))
                return entry.value if entry is not None else None

        raw = self._guarded("hget", _read, None)
        return _decode(raw, name, field)

    def hgetall(self, name: str) -> Dict[str, Any]:
        """Return every decodable field of a hash."""
        def _read():
            with self._sessions() as session:
                rows = session.execute(
                    select(KVEntry.field, KVEntry.value).where(KVEntry.collection == name)
                ).all()
                return [(row[0], row[1]) for row in rows]

        result: Dict[str, Any] = {}
        for field, raw in self._guarded("hgetall", _read, []):
            value = _decode(raw, name, field)
            if value is not None:
                result[field] = value
        return result

    def hset(self, name: str, field: str, value: Any) -> bool:
        """Set one field; returns False when the write did not happen."""
        payload = json.dumps(value)

        def _write():
            with self._sessions() as session:
                entry = session.get(KVEntry, (name, field))
                if entry is None:
                    session.add(KVEntry(collection=name, field=field, value=payload))
                else:
                    entry.value = payload
                session.commit()
            return True

        return self._guarded("hset", _write, False)

    def hdel(self, name: str, field: str) -> bool:
        def _delete():
            with self._sessions() as session:
                entry = session.get(KVEntry, (name, field))
                if entry is None:
                    return False
                session.delete(entry)
                session.commit()
                return True

        return self._guarded("hdel", _delete, False)

    def hlen(self, name: str) -> int:
        return len(self.raw_items(name))

    def raw_items(self, name: str) -> Dict[str, str]:
        """Undecoded field -> JSON text, for maintenance tooling."""
        def _read():
            with self._sessions() as session:
                rows = session.execute(
                    select(KVEntry.field, KVEntry.value).where(KVEntry.collection == name)
                ).all()
                return {row[0]: row[1] for row in rows}

        return self._guarded("raw_items", _read, {})


def _decode(raw: Optional[str], name: str, field: str) -> Optional[Any]:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Malformed store value", collection=name, field=field)
        return None


def open_store(url: Optional[str]) -> Optional[KeyValueStore]:
    """Build the store from configuration; None means the tier is disabled."""
    if not url:
        return None
    try:
        return KeyValueStore(url)
    except (SQLAlchemyError, OSError) as e:
        logger.error("Could not open key-value store, continuing without it", error=str(e))
        return None
