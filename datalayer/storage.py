"""
Persistent Response Cache

Durable key-value storage for the last good record set per cache key.

PRINCIPLES:
===========
1. Written only after a successful remote read
2. Read never mutates an entry
3. Malformed payloads are reported, never repaired
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Tuple
from datetime import datetime, timezone
from pathlib import Path
import json
import sqlite3
from contextlib import contextmanager

from .contracts import CacheEntry


class CacheSerializationError(Exception):
    """A cache payload could not be encoded or decoded."""


def _encode(payload: Iterable[Any]) -> str:
    try:
        return json.dumps(list(payload))
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Cannot serialize payload: {e}")


def _decode(key: str, raw_payload: str, raw_stored_at: str) -> CacheEntry:
    try:
        payload = json.loads(raw_payload)
        stored_at = datetime.fromisoformat(raw_stored_at)
    except (TypeError, ValueError) as e:
        raise CacheSerializationError(f"Malformed cache entry for {key}: {e}")

    if not isinstance(payload, list):
        raise CacheSerializationError(f"Malformed cache entry for {key}: payload is not a list")

    if stored_at.tzinfo is None:
        stored_at = stored_at.replace(tzinfo=timezone.utc)
    return CacheEntry(payload=tuple(payload), stored_at=stored_at)


# =============================================================================
# INTERFACE
# =============================================================================

class PersistentCache:
    """Abstract durable key-value surface used by the fetch service."""

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the entry for key, None on miss. Raises CacheSerializationError."""
        raise NotImplementedError

    def set(self, key: str, payload: Iterable[Any], stored_at: datetime):
        raise NotImplementedError

    def delete(self, key: str):
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


# =============================================================================
# IMPLEMENTATIONS
# =============================================================================

class InMemoryResponseCache(PersistentCache):
    """
    Process-local cache with the same encoding as the durable one.

    Payloads are stored as JSON text so that serialization failures
    behave identically in both implementations.
    """

    def __init__(self):
        self._entries: Dict[str, Tuple[str, str]] = {}

    def get(self, key: str) -> Optional[CacheEntry]:
        raw = self._entries.get(key)
        if raw is None:
            return None
        return _decode(key, raw[0], raw[1])

    def set(self, key: str, payload: Iterable[Any], stored_at: datetime):
        self._entries[key] = (_encode(payload), stored_at.isoformat())

    def delete(self, key: str):
        self._entries.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._entries)


class SQLiteResponseCache(PersistentCache):
    """
    SQLite-backed cache that survives process restarts.

    One row per cache key; last writer wins.
    """

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_conn() as conn:
            conn.executescript('''
                CREATE TABLE IF NOT EXISTS response_cache (
                    cache_key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    stored_at TEXT NOT NULL
                );
            ''')

    @contextmanager
    def _get_conn(self):
        """Get database connection."""
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[CacheEntry]:
        with self._get_conn() as conn:
            row = conn.execute(
                'SELECT payload, stored_at FROM response_cache WHERE cache_key = ?',
                (key,)
            ).fetchone()

        if row is None:
            return None
        return _decode(key, row['payload'], row['stored_at'])

    def set(self, key: str, payload: Iterable[Any], stored_at: datetime):
        encoded = _encode(payload)
        with self._get_conn() as conn:
            conn.execute(
                '''
                INSERT INTO response_cache (cache_key, payload, stored_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cache_key) DO UPDATE SET
                    payload = excluded.payload,
                    stored_at = excluded.stored_at
                ''',
                (key, encoded, stored_at.isoformat())
            )

    def delete(self, key: str):
        with self._get_conn() as conn:
            conn.execute('DELETE FROM response_cache WHERE cache_key = ?', (key,))

    def keys(self) -> List[str]:
        with self._get_conn() as conn:
            rows = conn.execute(
                'SELECT cache_key FROM response_cache ORDER BY cache_key'
            ).fetchall()
        return [row['cache_key'] for row in rows]
