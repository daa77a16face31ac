"""
Key-value storage backends for the section cache.

The cache only needs get/set of text values. Backends:
- InMemoryStore: process-local dict, lives as long as the process
- SqliteStore: single-table SQLite file, shared between processes
- PrefixedStore: namespaces keys so several caches can share one backend
"""
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Protocol

logger = logging.getLogger("sections.storage")


class KeyValueStore(Protocol):
    """Minimal text key-value store used by the cache."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


class InMemoryStore:
    """Thread-safe in-process store."""

    def __init__(self):
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def clear(self) -> int:
        """Remove every item. Returns the number removed."""
        with self._lock:
            count = len(self._items)
            self._items.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_items (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class SqliteStore:
    """
    SQLite-backed store.

    Opens a short-lived connection per operation so instances can be shared
    across threads.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize database with schema."""
        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.commit()
        logger.debug(f"Initialized section store at {self.db_path}")

    @contextmanager
    def _get_connection(self):
        """Get a database connection with proper cleanup."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
        finally:
            conn.close()

    def get_item(self, key: str) -> Optional[str]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM kv_items WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO kv_items (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = excluded.updated_at
                """,
                (key, value, datetime.utcnow().isoformat()),
            )
            conn.commit()

    def clear(self) -> int:
        """Remove every item. Returns the number removed."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM kv_items")
            conn.commit()
            return cursor.rowcount


class PrefixedStore:
    """
    Namespaces every key of an underlying store with a prefix.

    Empty stored values read back as absent.
    """

    def __init__(self, store: KeyValueStore, prefix: str = ""):
        self.store = store
        self.prefix = prefix

    def get_item(self, key: str) -> Optional[str]:
        value = self.store.get_item(self.prefix + key)
        return value if value else None

    def set_item(self, key: str, value: str) -> None:
        self.store.set_item(self.prefix + key, value)
