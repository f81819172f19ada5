"""
Shared key-value storage for check state.

Cache entries, the run lease and the last check result must be visible to
every process that can start a check, so they live behind this small
interface instead of in module globals. Values are JSON-serializable and are
always replaced whole, never patched field by field.
"""

import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import closing
from typing import Any, Callable, Optional

from utils.paths import ensure_dir

logger = logging.getLogger(__name__)

Updater = Callable[[Optional[Any]], Optional[Any]]


class KeyValueStore(ABC):
    """
    Interface for the shared state store.

    Backends guarantee atomic read-modify-write per key (``update``) but no
    transactions spanning several keys.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value, or None when absent or unreadable."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Replace the value stored under *key*."""

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete *key*; missing keys are ignored."""

    @abstractmethod
    def update(self, key: str, fn: Updater) -> Optional[Any]:
        """
        Atomically replace the value under *key* with ``fn(current)``.

        Returning None from *fn* deletes the key. Returns the new value.
        """


class MemoryStore(KeyValueStore):
    """Thread-safe in-process store. Values are copied on the way in and out."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._data[key] = raw

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def update(self, key: str, fn: Updater) -> Optional[Any]:
        with self._lock:
            raw = self._data.get(key)
            new = fn(None if raw is None else json.loads(raw))
            if new is None:
                self._data.pop(key, None)
            else:
                self._data[key] = json.dumps(new)
            return new


class SqliteStore(KeyValueStore):
    """
    Store backed by a single SQLite file shared by all processes.

    A connection is opened per call so the store is safe to use from any
    thread. ``update`` holds a RESERVED lock (BEGIN IMMEDIATE) between the read
    and the write, which serializes concurrent updaters across processes.
    """

    def __init__(self, path: str, busy_timeout: float = 10.0):
        self.path = path
        self.busy_timeout = busy_timeout
        ensure_dir(os.path.dirname(os.path.abspath(path)))
        with closing(self._connect()) as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
            )

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path, timeout=self.busy_timeout, isolation_level=None)

    @staticmethod
    def _decode(key: str, raw: Optional[str]) -> Optional[Any]:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable state entry %s", key)
            return None

    def get(self, key: str) -> Optional[Any]:
        with closing(self._connect()) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return self._decode(key, row[0] if row else None)

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with closing(self._connect()) as conn:
            conn.execute("INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)", (key, raw))

    def remove(self, key: str) -> None:
        with closing(self._connect()) as conn:
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))

    def update(self, key: str, fn: Updater) -> Optional[Any]:
        with closing(self._connect()) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
                new = fn(self._decode(key, row[0] if row else None))
                if new is None:
                    conn.execute("DELETE FROM kv WHERE key = ?", (key,))
                else:
                    conn.execute(
                        "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                        (key, json.dumps(new)),
                    )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return new
