"""
Key/value storage backends.

The wallet core only needs an opaque ``key -> bytes`` store with
last-write-wins semantics on each key.
"""

import logging
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..errors import StorageError

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract key/value store."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Value stored under ``key`` or None."""
        pass

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``. Missing keys are ignored."""
        pass

    @abstractmethod
    def keys(self) -> List[str]:
        pass

    def contains(self, key: str) -> bool:
        return self.get(key) is not None

    def close(self) -> None:
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store, mainly for tests."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        if not isinstance(value, (bytes, bytearray)):
            raise StorageError("Values must be bytes", key=key)
        with self._lock:
            self._data[key] = bytes(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._data)


class FileKeyValueStore(KeyValueStore):
    """One file per key in a directory; writes are atomic replaces."""

    SUFFIX = ".bin"

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageError(f"Invalid storage key: {key!r}", key=key)
        return self.directory / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        with self._lock:
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None
            except OSError as e:
                raise StorageError(f"Failed to read {key}: {e}", key=key, cause=e)

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        with self._lock:
            fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(value)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, path)
            except OSError as e:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise StorageError(f"Failed to write {key}: {e}", key=key, cause=e)

    def delete(self, key: str) -> None:
        path = self._path(key)
        with self._lock:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                raise StorageError(f"Failed to delete {key}: {e}", key=key, cause=e)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(
                p.name[: -len(self.SUFFIX)]
                for p in self.directory.iterdir()
                if p.name.endswith(self.SUFFIX) and not p.name.startswith(".")
            )


class SQLiteKeyValueStore(KeyValueStore):
    """Single-table SQLite store."""

    def __init__(self, database_path: Union[str, Path], timeout: float = 5.0):
        self.database_path = str(database_path)
        if self.database_path != ":memory:":
            Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        try:
            self._connection = sqlite3.connect(
                self.database_path,
                timeout=timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            self._connection.execute(
                "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value BLOB NOT NULL)"
            )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to open database: {e}", cause=e)
        logger.debug(f"Opened key/value database: {self.database_path}")

    def _execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        if self._connection is None:
            raise StorageError("Database is closed")
        try:
            return self._connection.execute(query, params)
        except sqlite3.Error as e:
            raise StorageError(f"Database error: {e}", cause=e)

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            row = self._execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
            return bytes(row[0]) if row else None

    def set(self, key: str, value: bytes) -> None:
        with self._lock:
            self._execute(
                "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
                (key, sqlite3.Binary(value)),
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._execute("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        with self._lock:
            return [row[0] for row in self._execute("SELECT key FROM kv ORDER BY key")]

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
