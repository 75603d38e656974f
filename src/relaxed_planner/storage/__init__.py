"""Storage backends for relaxed-planner.

- kv: key-value stores (JSON file, in-memory)
- sqlite: structured SQLite store with a serialized operation queue
"""

from relaxed_planner.storage.kv import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
)

__all__ = [
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
]
