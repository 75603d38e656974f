"""Pytest configuration and fixtures for relaxed-planner tests."""

import itertools
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

import pytest

from relaxed_planner.models import Activity, Category, Preset
from relaxed_planner.services.persistence_service import PersistenceService
from relaxed_planner.storage.kv import MemoryKeyValueStore
from relaxed_planner.storage.sqlite import SQLiteStore

TEST_DAY = "Sat Oct 17 2026"
OTHER_DAY = "Sun Oct 18 2026"

_ids = itertools.count(1)


@pytest.fixture
def anyio_backend():
    """Restrict anyio tests to asyncio backend."""
    return "asyncio"


@pytest.fixture
def make_activity() -> Callable[..., Activity]:
    """Factory for activities with sensible defaults."""

    def factory(**overrides: Any) -> Activity:
        n = next(_ids)
        values: dict[str, Any] = {
            "id": f"act-{n}",
            "title": f"Activity {n}",
            "start_time": "09:00",
            "end_time": "10:00",
            "category": Category.LEISURE,
            "color": "bg-green",
            "points": 10,
        }
        values.update(overrides)
        return Activity(**values)

    return factory


@pytest.fixture
def make_preset(make_activity: Callable[..., Activity]) -> Callable[..., Preset]:
    """Factory for presets; ``activity_count`` activities are generated unless given."""

    def factory(activity_count: int = 2, **overrides: Any) -> Preset:
        n = next(_ids)
        values: dict[str, Any] = {
            "id": f"preset-{n}",
            "name": f"Preset {n}",
            "activities": [make_activity() for _ in range(activity_count)],
            "mood": "calm",
            "created_at": f"2026-10-{n % 28 + 1:02d}T08:00:00.000Z",
        }
        values.update(overrides)
        return Preset(**values)

    return factory


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "planner.db"


@pytest.fixture
async def sqlite_store(db_path: Path) -> AsyncIterator[SQLiteStore]:
    """Initialized structured store on a temp file."""
    store = SQLiteStore(db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
async def service(kv: MemoryKeyValueStore, db_path: Path) -> AsyncIterator[PersistenceService]:
    """Initialized facade over a real SQLite file and an in-memory key-value store."""
    persistence = PersistenceService(kv, SQLiteStore(db_path))
    await persistence.initialize()
    yield persistence
    await persistence.close()


@pytest.fixture
async def kv_only_service(kv: MemoryKeyValueStore) -> AsyncIterator[PersistenceService]:
    """Initialized facade without a structured store."""
    persistence = PersistenceService(kv)
    await persistence.initialize()
    yield persistence
    await persistence.close()
