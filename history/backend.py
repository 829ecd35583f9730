"""
Persistence contract for series state and two implementations.

The series store only talks to a backend through RrdBackend: opaque bytes
per series name.
"""

import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, List

from loguru import logger

from rrd.errors import NotFound

DEFAULT_MAX_SERIES = 500


class RrdBackend(ABC):
    """Abstract store of named series blobs."""

    @abstractmethod
    def load(self, name: str) -> bytes:
        """Return the stored bytes for name, raising NotFound if absent."""
        raise NotImplementedError

    @abstractmethod
    def save(self, name: str, data: bytes) -> None:
        """Store bytes for name, replacing any previous value."""
        raise NotImplementedError

    @abstractmethod
    def list(self, limit: int = DEFAULT_MAX_SERIES) -> List[str]:
        """Return up to limit stored names in ascending order."""
        raise NotImplementedError

    @abstractmethod
    def exists(self, name: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove name; removing an absent name is not an error."""
        raise NotImplementedError

    @abstractmethod
    def delete_all(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release backend resources."""


class InMemoryBackend(RrdBackend):
    """Process-local backend, mainly for tests and embedding."""

    def __init__(self):
        self._data: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def load(self, name: str) -> bytes:
        with self._lock:
            try:
                return self._data[name]
            except KeyError:
                raise NotFound(name) from None

    def save(self, name: str, data: bytes) -> None:
        with self._lock:
            self._data[name] = bytes(data)

    def list(self, limit: int = DEFAULT_MAX_SERIES) -> List[str]:
        with self._lock:
            return sorted(self._data)[:limit]

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._data

    def delete(self, name: str) -> None:
        with self._lock:
            self._data.pop(name, None)

    def delete_all(self) -> None:
        with self._lock:
            self._data.clear()


class SqliteBackend(RrdBackend):
    """Durable backend keeping one row per series in a SQLite file."""

    def __init__(self, db_path: str = "data/metrics_history.db", timeout: float = 10.0):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._initialize_database()
        logger.info("SqliteBackend initialized with database: {}", self.db_path)

    def _initialize_database(self) -> None:
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS series_state (
                    name TEXT PRIMARY KEY,
                    data BLOB NOT NULL,
                    updated REAL NOT NULL
                )
            """)
            conn.commit()

    @contextmanager
    def _get_connection(self):
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            yield conn
        finally:
            conn.close()

    def load(self, name: str) -> bytes:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT data FROM series_state WHERE name = ?", (name,)
            ).fetchone()
        if row is None:
            raise NotFound(name)
        return bytes(row[0])

    def save(self, name: str, data: bytes) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO series_state (name, data, updated) VALUES (?, ?, ?)",
                (name, sqlite3.Binary(data), time.time())
            )
            conn.commit()

    def list(self, limit: int = DEFAULT_MAX_SERIES) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT name FROM series_state ORDER BY name LIMIT ?", (limit,)
            ).fetchall()
        return [row[0] for row in rows]

    def exists(self, name: str) -> bool:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM series_state WHERE name = ?", (name,)
            ).fetchone()
        return row is not None

    def delete(self, name: str) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM series_state WHERE name = ?", (name,))
            conn.commit()

    def delete_all(self) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM series_state")
            conn.commit()
