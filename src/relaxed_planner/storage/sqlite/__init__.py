"""Structured (SQLite) store.

This package provides SQLite-based storage for presets, their activities,
completed tasks and the points singleton.

The package is organized into:
- core: SQLiteStore class with connection management
- queue: OperationQueue serializing every call onto one thread
- schema: Database schema definition
- migrations: Versioned, idempotent schema migrations
- presets: Preset and activity operations
- completions: Completed-task operations
- points: Points singleton operations
"""

from relaxed_planner.storage.sqlite.core import SQLiteStore
from relaxed_planner.storage.sqlite.queue import OperationQueue
from relaxed_planner.storage.sqlite.schema import SCHEMA_VERSION

__all__ = [
    "OperationQueue",
    "SCHEMA_VERSION",
    "SQLiteStore",
]
