"""Tests for SQLiteStore against a real database file."""

import sqlite3
from collections.abc import Callable
from pathlib import Path

import pytest

from relaxed_planner.exceptions import ConstraintViolation, InitializationError
from relaxed_planner.models import Activity, Category, CompletedTask, Preset
from relaxed_planner.storage.sqlite import SCHEMA_VERSION, SQLiteStore

TEST_DAY = "Sat Oct 17 2026"


def _task(
    activity_id: str, day: str = TEST_DAY, points: int = 10, task_id: str = ""
) -> CompletedTask:
    return CompletedTask(
        id=task_id or f"task-{activity_id}-{day}", activity_id=activity_id, date=day, points=points
    )


class TestInitialize:
    """Schema creation and initialization failures."""

    @pytest.mark.anyio
    async def test_fresh_database_gets_current_schema(self, sqlite_store: SQLiteStore) -> None:
        assert sqlite_store.is_initialized
        assert await sqlite_store.get_schema_version() == SCHEMA_VERSION

        points = await sqlite_store.load_points()
        assert points.total_points == 0
        assert points.daily_points == 0
        assert points.last_activity_date is None

    @pytest.mark.anyio
    async def test_initialize_is_idempotent(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.initialize()
        assert await sqlite_store.get_schema_version() == SCHEMA_VERSION

    @pytest.mark.anyio
    async def test_unopenable_path_raises_initialization_error(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = SQLiteStore(blocker / "planner.db")

        with pytest.raises(InitializationError):
            await store.initialize()
        assert not store.is_initialized
        await store.close()

    @pytest.mark.anyio
    async def test_foreign_keys_enabled(self, sqlite_store: SQLiteStore) -> None:
        enabled = await sqlite_store.queue.submit(
            lambda: sqlite_store._get_connection().execute("PRAGMA foreign_keys").fetchone()[0]
        )
        assert enabled == 1


class TestPresets:
    """Preset CRUD."""

    @pytest.mark.anyio
    async def test_round_trip_preserves_activity_order(
        self, sqlite_store: SQLiteStore, make_activity: Callable[..., Activity]
    ) -> None:
        activities = [
            make_activity(id="c", title="Stretch", start_time="18:00", end_time="18:30"),
            make_activity(id="a", title="Run", category=Category.FITNESS, points=25),
            make_activity(id="b", title="Deep work", category=Category.WORK, description="focus"),
        ]
        preset = Preset(id="p1", name="Monday", activities=activities, mood="energized")
        await sqlite_store.save_preset(preset)

        loaded = await sqlite_store.get_preset_by_id("p1")

        assert loaded == preset
        assert [a.id for a in loaded.activities] == ["c", "a", "b"]

    @pytest.mark.anyio
    async def test_resave_replaces_activities(
        self, sqlite_store: SQLiteStore, make_preset: Callable[..., Preset]
    ) -> None:
        preset = make_preset(activity_count=3)
        await sqlite_store.save_preset(preset)

        preset.activities = list(reversed(preset.activities[:2]))
        await sqlite_store.save_preset(preset)

        loaded = await sqlite_store.get_preset_by_id(preset.id)
        assert loaded is not None
        assert [a.id for a in loaded.activities] == [a.id for a in preset.activities]
        assert (await sqlite_store.get_preset_stats())["total_activities"] == 2

    @pytest.mark.anyio
    async def test_load_presets_newest_first(
        self, sqlite_store: SQLiteStore, make_preset: Callable[..., Preset]
    ) -> None:
        old = make_preset(created_at="2026-01-01T00:00:00.000Z")
        new = make_preset(created_at="2026-06-01T00:00:00.000Z")
        await sqlite_store.save_presets([old, new])

        assert [p.id for p in await sqlite_store.load_presets()] == [new.id, old.id]

    @pytest.mark.anyio
    async def test_delete_removes_preset_and_activities(
        self, sqlite_store: SQLiteStore, make_preset: Callable[..., Preset]
    ) -> None:
        keep = make_preset()
        doomed = make_preset(activity_count=3)
        await sqlite_store.save_presets([keep, doomed])

        assert await sqlite_store.delete_preset(doomed.id) is True
        assert await sqlite_store.get_preset_by_id(doomed.id) is None
        assert await sqlite_store.delete_preset(doomed.id) is False
        assert await sqlite_store.get_preset_stats() == {"total_presets": 1, "total_activities": 2}

    @pytest.mark.anyio
    async def test_foreign_key_cascade(
        self, sqlite_store: SQLiteStore, make_preset: Callable[..., Preset]
    ) -> None:
        preset = make_preset(activity_count=2)
        await sqlite_store.save_preset(preset)

        def delete_parent_only() -> int:
            with sqlite_store._transaction() as conn:
                conn.execute("DELETE FROM presets WHERE id = ?", (preset.id,))
                return conn.execute("SELECT COUNT(*) FROM preset_activities").fetchone()[0]

        assert await sqlite_store.queue.submit(delete_parent_only) == 0

    @pytest.mark.anyio
    async def test_duplicate_activity_ids_raise_constraint_violation(
        self, sqlite_store: SQLiteStore, make_activity: Callable[..., Activity]
    ) -> None:
        preset = Preset(
            id="dup", name="Dup", activities=[make_activity(id="x"), make_activity(id="x")]
        )

        with pytest.raises(ConstraintViolation):
            await sqlite_store.save_preset(preset)
        assert await sqlite_store.get_preset_by_id("dup") is None

    @pytest.mark.anyio
    async def test_replace_presets_drops_missing(
        self, sqlite_store: SQLiteStore, make_preset: Callable[..., Preset]
    ) -> None:
        first, second = make_preset(), make_preset()
        await sqlite_store.save_presets([first, second])

        await sqlite_store.replace_presets([second])

        assert [p.id for p in await sqlite_store.load_presets()] == [second.id]

    @pytest.mark.anyio
    async def test_corrupt_activity_row_is_skipped(
        self, sqlite_store: SQLiteStore, make_preset: Callable[..., Preset]
    ) -> None:
        preset = make_preset(activity_count=3)
        await sqlite_store.save_preset(preset)
        bad_id = preset.activities[1].id

        def corrupt() -> None:
            with sqlite_store._transaction() as conn:
                conn.execute(
                    "UPDATE preset_activities SET category = 'Napping' WHERE id = ?", (bad_id,)
                )

        await sqlite_store.queue.submit(corrupt)
        loaded = await sqlite_store.get_preset_by_id(preset.id)

        assert loaded is not None
        assert [a.id for a in loaded.activities] == [
            preset.activities[0].id,
            preset.activities[2].id,
        ]

    @pytest.mark.anyio
    async def test_search_matches_name_mood_and_titles(
        self, sqlite_store: SQLiteStore, make_activity: Callable[..., Activity]
    ) -> None:
        by_name = Preset(id="n", name="Lazy SUNDAY", created_at="2026-01-03T00:00:00Z")
        by_mood = Preset(
            id="m", name="Other", mood="Sunday vibes", created_at="2026-01-02T00:00:00Z"
        )
        by_title = Preset(
            id="t",
            name="Plain",
            activities=[make_activity(title="sunday brunch")],
            created_at="2026-01-01T00:00:00Z",
        )
        unrelated = Preset(id="u", name="Monday")
        await sqlite_store.save_presets([by_name, by_mood, by_title, unrelated])

        found = await sqlite_store.search_presets("sunday")

        assert [p.id for p in found] == ["n", "m", "t"]

    @pytest.mark.anyio
    async def test_search_treats_wildcards_literally(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.save_presets(
            [Preset(id="pct", name="100% focus"), Preset(id="plain", name="1000 focus")]
        )

        assert [p.id for p in await sqlite_store.search_presets("0%")] == ["pct"]
        assert await sqlite_store.search_presets("_") == []


class TestCompletedTasks:
    """Completion storage and uniqueness."""

    @pytest.mark.anyio
    async def test_add_is_unique_per_activity_and_day(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.add_completed_task(_task("a", task_id="first"))
        await sqlite_store.add_completed_task(_task("a", task_id="second", points=20))
        await sqlite_store.add_completed_task(_task("a", day="Sun Oct 18 2026"))

        tasks = await sqlite_store.load_completed_tasks()

        assert len(tasks) == 2
        same_day = await sqlite_store.get_completed_task("a", TEST_DAY)
        assert same_day is not None
        assert same_day.id == "second"
        assert same_day.points == 20

    @pytest.mark.anyio
    async def test_save_replaces_all_and_collapses_duplicates(
        self, sqlite_store: SQLiteStore
    ) -> None:
        await sqlite_store.add_completed_task(_task("old"))
        await sqlite_store.save_completed_tasks(
            [_task("a", task_id="1"), _task("b"), _task("a", task_id="2")]
        )

        tasks = {t.activity_id: t for t in await sqlite_store.load_completed_tasks()}
        assert set(tasks) == {"a", "b"}
        assert tasks["a"].id == "2"

    @pytest.mark.anyio
    async def test_remove(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.add_completed_task(_task("a"))

        assert await sqlite_store.remove_completed_task("a", TEST_DAY) is True
        assert await sqlite_store.remove_completed_task("a", TEST_DAY) is False
        assert await sqlite_store.load_completed_tasks() == []

    @pytest.mark.anyio
    async def test_record_and_revoke_completion_adjust_points(
        self, sqlite_store: SQLiteStore
    ) -> None:
        assert await sqlite_store.record_completion(_task("a", points=10)) is True
        assert await sqlite_store.record_completion(_task("b", points=5)) is True
        assert await sqlite_store.record_completion(_task("a", points=10)) is False

        revoked = await sqlite_store.revoke_completion("a", TEST_DAY)
        assert revoked is not None
        assert revoked.points == 10
        assert await sqlite_store.revoke_completion("a", TEST_DAY) is None

        points = await sqlite_store.load_points()
        assert points.total_points == 5
        assert points.daily_points == 5
        assert points.last_activity_date == TEST_DAY


class TestPoints:
    """Points singleton."""

    @pytest.mark.anyio
    async def test_field_updates(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.update_total_points(120)
        await sqlite_store.update_daily_points(30)
        await sqlite_store.update_last_activity_date(TEST_DAY)

        points = await sqlite_store.load_points()
        assert (points.total_points, points.daily_points) == (120, 30)
        assert points.last_activity_date == TEST_DAY
        assert points.updated_at

    @pytest.mark.anyio
    async def test_save_points_writes_all_fields(self, sqlite_store: SQLiteStore) -> None:
        await sqlite_store.save_points(7, 3, None)

        points = await sqlite_store.load_points()
        assert (points.total_points, points.daily_points, points.last_activity_date) == (7, 3, None)

    @pytest.mark.anyio
    async def test_clear_all_resets_everything(
        self, sqlite_store: SQLiteStore, make_preset: Callable[..., Preset]
    ) -> None:
        await sqlite_store.save_preset(make_preset())
        await sqlite_store.record_completion(_task("a"))

        await sqlite_store.clear_all()

        assert await sqlite_store.load_presets() == []
        assert await sqlite_store.load_completed_tasks() == []
        assert (await sqlite_store.load_points()).total_points == 0


class TestPersistence:
    """Data survives reopening the file."""

    @pytest.mark.anyio
    async def test_reopen(self, db_path: Path, make_preset: Callable[..., Preset]) -> None:
        preset = make_preset()
        store = SQLiteStore(db_path)
        await store.initialize()
        await store.save_preset(preset)
        await store.update_total_points(9)
        await store.close()

        reopened = SQLiteStore(db_path)
        await reopened.initialize()
        try:
            assert await reopened.get_preset_by_id(preset.id) == preset
            assert (await reopened.load_points()).total_points == 9
        finally:
            await reopened.close()

        with sqlite3.connect(db_path) as conn:
            assert conn.execute("SELECT version FROM schema_version").fetchall() == [
                (SCHEMA_VERSION,)
            ]
