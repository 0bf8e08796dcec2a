"""Storage backends for persisted wallet state."""

from .backends import (
    FileKeyValueStore,
    InMemoryKeyValueStore,
    KeyValueStore,
    SQLiteKeyValueStore,
)

__all__ = [
    "KeyValueStore",
    "InMemoryKeyValueStore",
    "FileKeyValueStore",
    "SQLiteKeyValueStore",
]
