"""
Keyed Persistent Store

Namespaced key/value storage over a pluggable backend.

PRINCIPLES:
===========
1. Values are stored serialized (JSON)
2. Reads never raise - corrupt or missing records yield the default
3. Write failures are non-fatal - logged and reported as False
4. Every key carries the namespace prefix so a namespace can be cleared alone
"""

from __future__ import annotations
from typing import Any, Dict, Iterator, List, Optional
from pathlib import Path
from contextlib import contextmanager
import json
import logging
import sqlite3

from .errors import StorageError

logger = logging.getLogger(__name__)


# =============================================================================
# BACKENDS
# =============================================================================

class StorageBackend:
    """
    Raw string key/value backend.

    Implementations raise StorageError on any failure.
    """

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryBackend(StorageBackend):
    """
    In-process backend. Lives as long as the object does, which makes it the
    session-scoped store. `quota_bytes` models a full storage area.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._items: Dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
            if used + len(key) + len(value) > self._quota_bytes:
                raise StorageError(f"Quota exceeded writing {key!r}")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items.keys())


class SqliteBackend(StorageBackend):
    """
    Durable backend: one row per key in a single sqlite table.
    """

    def __init__(self, db_path: Path):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database schema."""
        with self._get_conn() as conn:
            conn.execute('''
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            ''')

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection, translating sqlite failures."""
        try:
            conn = sqlite3.connect(self._db_path)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self._db_path}: {e}") from e
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        with self._get_conn() as conn:
            row = conn.execute('SELECT value FROM kv_store WHERE key = ?', (key,)).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._get_conn() as conn:
            conn.execute(
                'INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)',
                (key, value)
            )

    def remove_item(self, key: str) -> None:
        with self._get_conn() as conn:
            conn.execute('DELETE FROM kv_store WHERE key = ?', (key,))

    def keys(self) -> List[str]:
        with self._get_conn() as conn:
            rows = conn.execute('SELECT key FROM kv_store').fetchall()
        return [row[0] for row in rows]


# =============================================================================
# STORE
# =============================================================================

class KeyedPersistentStore:
    """
    Namespaced, failure-tolerant view over a backend.

    GUARANTEES:
    ===========
    1. get() never raises
    2. set() never raises; returns False when the write was lost
    3. clear_namespace() touches only keys with this store's prefix
    """

    def __init__(self, backend: StorageBackend, namespace: str = 'uplink:'):
        self._backend = backend
        self._prefix = namespace

    @property
    def namespace(self) -> str:
        return self._prefix

    def _full_key(self, key: str) -> str:
        return self._prefix + key

    def get(self, key: str, default: Any = None) -> Any:
        """Stored value for `key`, or `default` if missing or unreadable."""
        try:
            raw = self._backend.get_item(self._full_key(key))
        except StorageError as e:
            logger.warning("Failed to get item %r: %s", key, e)
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding corrupt item %r: %s", key, e)
            return default

    def set(self, key: str, value: Any) -> bool:
        """Store `value`. Returns success status."""
        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.warning("Failed to serialize item %r: %s", key, e)
            return False
        try:
            self._backend.set_item(self._full_key(key), serialized)
        except StorageError as e:
            logger.warning("Failed to set item %r: %s", key, e)
            return False
        return True

    def remove(self, key: str) -> None:
        try:
            self._backend.remove_item(self._full_key(key))
        except StorageError as e:
            logger.warning("Failed to remove item %r: %s", key, e)

    def has(self, key: str) -> bool:
        try:
            return self._backend.get_item(self._full_key(key)) is not None
        except StorageError as e:
            logger.warning("Failed to probe item %r: %s", key, e)
            return False

    def keys(self) -> List[str]:
        """Keys in this namespace, without the prefix."""
        try:
            all_keys = self._backend.keys()
        except StorageError as e:
            logger.warning("Failed to list keys: %s", e)
            return []
        return [k[len(self._prefix):] for k in all_keys if k.startswith(self._prefix)]

    def clear_namespace(self) -> None:
        """Remove every key carrying this store's prefix."""
        for key in self.keys():
            self.remove(key)
