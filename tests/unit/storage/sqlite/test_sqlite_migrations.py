"""Tests for upgrading databases written before schema versioning."""

import sqlite3
from pathlib import Path

import pytest

from relaxed_planner.constants import POINTS_ROW_ID
from relaxed_planner.storage.sqlite import SCHEMA_VERSION, SQLiteStore
from relaxed_planner.storage.sqlite.migrations import apply_migrations

V1_SCHEMA = """
CREATE TABLE presets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE preset_activities (
    id TEXT PRIMARY KEY,
    preset_id TEXT NOT NULL,
    title TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    category TEXT NOT NULL,
    points INTEGER,
    description TEXT
);
CREATE TABLE completed_tasks (
    id TEXT PRIMARY KEY,
    activity_id TEXT NOT NULL,
    date TEXT NOT NULL,
    points INTEGER NOT NULL
);
CREATE TABLE points_tracking (
    id TEXT PRIMARY KEY,
    total_points INTEGER NOT NULL DEFAULT 0,
    daily_points INTEGER NOT NULL DEFAULT 0
);
"""


def _write_v1_database(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.executescript(V1_SCHEMA)
        conn.execute(
            "INSERT INTO presets VALUES ('p1', 'Weekday', '2026-09-01T08:00:00.000Z')"
        )
        # Inserted out of start-time order; insertion order is the saved order
        conn.executemany(
            "INSERT INTO preset_activities VALUES (?, 'p1', ?, ?, ?, ?, ?, NULL)",
            [
                ("a2", "Lunch walk", "12:00", "12:30", "Leisure", 5),
                ("a1", "Standup", "09:00", "09:15", "Work", 10),
                ("a3", "Gym", "18:00", "19:00", "Fitness", None),
            ],
        )
        conn.execute(
            "INSERT INTO preset_activities VALUES "
            "('orphan', 'gone', 'Lost', '07:00', '08:00', 'Work', 1, NULL)"
        )
        conn.execute(
            "INSERT INTO completed_tasks VALUES ('t1', 'a1', 'Fri Oct 16 2026', 10)"
        )
        conn.execute("INSERT INTO points_tracking VALUES (?, 40, 10)", (POINTS_ROW_ID,))
        conn.commit()
    finally:
        conn.close()


class TestV1Upgrade:
    """A v1 database is brought to the current schema without losing rows."""

    @pytest.mark.anyio
    async def test_rows_survive_upgrade(self, db_path: Path) -> None:
        _write_v1_database(db_path)
        store = SQLiteStore(db_path)
        await store.initialize()
        try:
            assert await store.get_schema_version() == SCHEMA_VERSION

            preset = await store.get_preset_by_id("p1")
            assert preset is not None
            assert preset.mood is None
            assert [a.id for a in preset.activities] == ["a2", "a1", "a3"]
            assert preset.activities[2].points == 0
            assert all(a.color == "" for a in preset.activities)

            tasks = await store.load_completed_tasks()
            assert [t.id for t in tasks] == ["t1"]

            points = await store.load_points()
            assert (points.total_points, points.daily_points) == (40, 10)
            assert points.last_activity_date is None
            assert points.updated_at
        finally:
            await store.close()

    @pytest.mark.anyio
    async def test_orphaned_activities_are_dropped(self, db_path: Path) -> None:
        _write_v1_database(db_path)
        store = SQLiteStore(db_path)
        await store.initialize()
        try:
            assert await store.get_preset_stats() == {"total_presets": 1, "total_activities": 3}
        finally:
            await store.close()

    @pytest.mark.anyio
    async def test_upgraded_database_accepts_new_writes(self, db_path: Path) -> None:
        _write_v1_database(db_path)
        store = SQLiteStore(db_path)
        await store.initialize()
        try:
            preset = await store.get_preset_by_id("p1")
            assert preset is not None
            preset.mood = "steady"
            await store.save_preset(preset)

            reloaded = await store.get_preset_by_id("p1")
            assert reloaded == preset
        finally:
            await store.close()

    @pytest.mark.anyio
    async def test_reopening_does_not_migrate_again(self, db_path: Path) -> None:
        _write_v1_database(db_path)
        for _ in range(2):
            store = SQLiteStore(db_path)
            await store.initialize()
            await store.close()

        with sqlite3.connect(db_path) as conn:
            versions = conn.execute("SELECT version FROM schema_version").fetchall()
            activity_count = conn.execute("SELECT COUNT(*) FROM preset_activities").fetchone()[0]
        assert versions == [(SCHEMA_VERSION,)]
        assert activity_count == 3

    def test_migration_step_is_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "v1.db"
        _write_v1_database(path)
        conn = sqlite3.connect(path)
        try:
            apply_migrations(conn, 1)
            first = conn.execute(
                "SELECT id, sort_order FROM preset_activities ORDER BY sort_order"
            ).fetchall()
            apply_migrations(conn, 1)
            second = conn.execute(
                "SELECT id, sort_order FROM preset_activities ORDER BY sort_order"
            ).fetchall()
        finally:
            conn.close()

        assert first == second == [("a2", 0), ("a1", 1), ("a3", 2)]


class TestUnmatchableActivities:
    """Activity rows without identity columns cannot be carried over."""

    @pytest.mark.anyio
    async def test_tables_are_recreated(self, db_path: Path) -> None:
        db_path.parent.mkdir(parents=True)
        conn = sqlite3.connect(db_path)
        conn.executescript(
            """
            CREATE TABLE presets (id TEXT PRIMARY KEY, name TEXT NOT NULL, created_at TEXT);
            CREATE TABLE preset_activities (id TEXT PRIMARY KEY, title TEXT);
            INSERT INTO presets VALUES ('p1', 'Old', '2026-01-01');
            INSERT INTO preset_activities VALUES ('a1', 'Mystery');
            """
        )
        conn.close()

        store = SQLiteStore(db_path)
        await store.initialize()
        try:
            assert await store.load_presets() == []
            assert await store.get_schema_version() == SCHEMA_VERSION
        finally:
            await store.close()
