"""Preset operations for the structured store.

Functions here run on the operation queue thread; callers reach them
through SQLiteStore's async methods.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from relaxed_planner.exceptions import ConstraintViolation, ValidationError
from relaxed_planner.models.schedule import Activity, Preset

if TYPE_CHECKING:
    from relaxed_planner.storage.sqlite.core import SQLiteStore

logger = logging.getLogger(__name__)

_UPSERT_PRESET_SQL = """
    INSERT INTO presets (id, name, mood, created_at)
    VALUES (:id, :name, :mood, :created_at)
    ON CONFLICT(id) DO UPDATE SET
        name = excluded.name,
        mood = excluded.mood,
        created_at = excluded.created_at
"""

_INSERT_ACTIVITY_SQL = """
    INSERT INTO preset_activities
        (id, preset_id, title, start_time, end_time, category,
         points, description, color, sort_order)
    VALUES
        (:id, :preset_id, :title, :start_time, :end_time, :category,
         :points, :description, :color, :sort_order)
"""


def _write_preset(conn: sqlite3.Connection, preset: Preset) -> None:
    conn.execute(_UPSERT_PRESET_SQL, preset.to_row())
    conn.execute("DELETE FROM preset_activities WHERE preset_id = ?", (preset.id,))
    conn.executemany(
        _INSERT_ACTIVITY_SQL,
        [activity.to_row(preset.id, index) for index, activity in enumerate(preset.activities)],
    )


def save_preset(store: SQLiteStore, preset: Preset) -> None:
    """Upsert a preset and replace its activities in list order.

    Args:
        store: The SQLiteStore instance.
        preset: Preset to save.

    Raises:
        ConstraintViolation: If the preset repeats an activity id.
    """
    try:
        with store._transaction() as conn:
            _write_preset(conn, preset)
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(
            f"Preset {preset.id} could not be saved: {e}",
            store="sqlite",
            operation="save_preset",
            cause=e,
        ) from e
    logger.debug(f"Saved preset {preset.id} with {len(preset.activities)} activities")


def save_presets(store: SQLiteStore, presets: list[Preset]) -> None:
    """Upsert several presets in one transaction.

    Presets not in the list are left untouched.
    """
    try:
        with store._transaction() as conn:
            for preset in presets:
                _write_preset(conn, preset)
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(
            f"Presets could not be saved: {e}",
            store="sqlite",
            operation="save_presets",
            cause=e,
        ) from e
    logger.debug(f"Saved {len(presets)} presets")


def replace_presets(store: SQLiteStore, presets: list[Preset]) -> None:
    """Make ``presets`` the complete set of stored presets."""
    try:
        with store._transaction() as conn:
            conn.execute("DELETE FROM preset_activities")
            conn.execute("DELETE FROM presets")
            for preset in presets:
                _write_preset(conn, preset)
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(
            f"Presets could not be replaced: {e}",
            store="sqlite",
            operation="replace_presets",
            cause=e,
        ) from e
    logger.debug(f"Replaced stored presets with {len(presets)} presets")


def _load_activities(conn: sqlite3.Connection, preset_id: str) -> list[Activity]:
    rows = conn.execute(
        "SELECT * FROM preset_activities WHERE preset_id = ? ORDER BY sort_order ASC, rowid ASC",
        (preset_id,),
    ).fetchall()
    activities = []
    for row in rows:
        try:
            activities.append(Activity.from_row(row))
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning(f"Skipping corrupt activity {row['id']} in preset {preset_id}: {e}")
    return activities


def _presets_from_rows(conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[Preset]:
    return [Preset.from_row(row, _load_activities(conn, row["id"])) for row in rows]


def load_presets(store: SQLiteStore) -> list[Preset]:
    """Load all presets, newest first, with activities in saved order.

    Args:
        store: The SQLiteStore instance.

    Returns:
        List of presets. Corrupt activity rows are skipped with a warning.
    """
    conn = store._get_connection()
    rows = conn.execute("SELECT * FROM presets ORDER BY created_at DESC, rowid DESC").fetchall()
    presets = _presets_from_rows(conn, rows)
    logger.debug(f"Loaded {len(presets)} presets")
    return presets


def get_preset_by_id(store: SQLiteStore, preset_id: str) -> Preset | None:
    """Get a preset by id.

    Args:
        store: The SQLiteStore instance.
        preset_id: Preset identifier.

    Returns:
        The preset, or None if not found.
    """
    conn = store._get_connection()
    row = conn.execute("SELECT * FROM presets WHERE id = ?", (preset_id,)).fetchone()
    if row is None:
        return None
    return Preset.from_row(row, _load_activities(conn, preset_id))


def _like_pattern(term: str) -> str:
    escaped = term.casefold().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search_presets(store: SQLiteStore, term: str) -> list[Preset]:
    """Find presets whose name, mood or any activity title contains ``term``.

    Matching is case-insensitive (Unicode casefold) and treats ``%`` and
    ``_`` in the term literally.

    Args:
        store: The SQLiteStore instance.
        term: Substring to look for.

    Returns:
        Matching presets, newest first.
    """
    conn = store._get_connection()
    params: dict[str, Any] = {"pattern": _like_pattern(term)}
    rows = conn.execute(
        r"""
        SELECT DISTINCT p.* FROM presets p
        LEFT JOIN preset_activities pa ON pa.preset_id = p.id
        WHERE casefold(p.name) LIKE :pattern ESCAPE '\'
           OR casefold(p.mood) LIKE :pattern ESCAPE '\'
           OR casefold(pa.title) LIKE :pattern ESCAPE '\'
        ORDER BY p.created_at DESC, p.rowid DESC
        """,
        params,
    ).fetchall()
    return _presets_from_rows(conn, rows)


def delete_preset(store: SQLiteStore, preset_id: str) -> bool:
    """Delete a preset and its activities.

    Returns:
        True if a preset row was deleted.
    """
    with store._transaction() as conn:
        conn.execute("DELETE FROM preset_activities WHERE preset_id = ?", (preset_id,))
        cursor = conn.execute("DELETE FROM presets WHERE id = ?", (preset_id,))
        deleted = cursor.rowcount > 0
    logger.debug(f"Deleted preset {preset_id} (found={deleted})")
    return deleted


def count_presets(store: SQLiteStore) -> int:
    return store._get_connection().execute("SELECT COUNT(*) FROM presets").fetchone()[0]


def get_preset_stats(store: SQLiteStore) -> dict[str, int]:
    """Count presets and their activities."""
    conn = store._get_connection()
    total_presets = conn.execute("SELECT COUNT(*) FROM presets").fetchone()[0]
    total_activities = conn.execute("SELECT COUNT(*) FROM preset_activities").fetchone()[0]
    return {"total_presets": total_presets, "total_activities": total_activities}
