"""Completed-task operations for the structured store.

Uniqueness of (activity_id, date) is enforced by the table; writes use
INSERT OR REPLACE so a repeated completion overwrites instead of failing.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from relaxed_planner.exceptions import ValidationError
from relaxed_planner.models.schedule import CompletedTask, dedupe_completed_tasks
from relaxed_planner.storage.sqlite.points import adjust_points

if TYPE_CHECKING:
    from relaxed_planner.storage.sqlite.core import SQLiteStore

logger = logging.getLogger(__name__)

_UPSERT_TASK_SQL = """
    INSERT OR REPLACE INTO completed_tasks (id, activity_id, date, points, created_at)
    VALUES (:id, :activity_id, :date, :points, datetime('now'))
"""


def save_completed_tasks(store: SQLiteStore, tasks: list[CompletedTask]) -> None:
    """Replace all completed tasks with ``tasks``.

    Duplicate (activity_id, date) entries collapse to the last one.
    """
    unique = dedupe_completed_tasks(tasks)
    with store._transaction() as conn:
        conn.execute("DELETE FROM completed_tasks")
        conn.executemany(_UPSERT_TASK_SQL, [task.to_row() for task in unique])
    logger.debug(f"Saved {len(unique)} completed tasks")


def add_completed_task(store: SQLiteStore, task: CompletedTask) -> None:
    """Insert or replace the completion for (activity_id, date)."""
    with store._transaction() as conn:
        conn.execute(_UPSERT_TASK_SQL, task.to_row())


def remove_completed_task(store: SQLiteStore, activity_id: str, date: str) -> bool:
    """Remove the completion for (activity_id, date).

    Returns:
        True if a row was removed.
    """
    with store._transaction() as conn:
        cursor = conn.execute(
            "DELETE FROM completed_tasks WHERE activity_id = ? AND date = ?",
            (activity_id, date),
        )
        return cursor.rowcount > 0


def _tasks_from_rows(rows: list[sqlite3.Row]) -> list[CompletedTask]:
    tasks = []
    for row in rows:
        try:
            tasks.append(CompletedTask.from_row(row))
        except (ValidationError, KeyError, TypeError) as e:
            logger.warning(f"Skipping corrupt completed task {row['id']}: {e}")
    return tasks


def load_completed_tasks(store: SQLiteStore) -> list[CompletedTask]:
    """Load all completed tasks, most recent first."""
    rows = (
        store._get_connection()
        .execute("SELECT * FROM completed_tasks ORDER BY created_at DESC, rowid DESC")
        .fetchall()
    )
    return _tasks_from_rows(rows)


def get_completed_task(store: SQLiteStore, activity_id: str, date: str) -> CompletedTask | None:
    row = (
        store._get_connection()
        .execute(
            "SELECT * FROM completed_tasks WHERE activity_id = ? AND date = ?",
            (activity_id, date),
        )
        .fetchone()
    )
    if row is None:
        return None
    tasks = _tasks_from_rows([row])
    return tasks[0] if tasks else None


def record_completion(store: SQLiteStore, task: CompletedTask) -> bool:
    """Record a completion and award its points in one transaction.

    Args:
        store: The SQLiteStore instance.
        task: Completion to record.

    Returns:
        False if (activity_id, date) was already completed; nothing changes then.
    """
    with store._transaction() as conn:
        existing = conn.execute(
            "SELECT 1 FROM completed_tasks WHERE activity_id = ? AND date = ?",
            (task.activity_id, task.date),
        ).fetchone()
        if existing is not None:
            return False
        conn.execute(_UPSERT_TASK_SQL, task.to_row())
        adjust_points(conn, task.points, task.date)
    logger.debug(f"Recorded completion of {task.activity_id} on {task.date} (+{task.points})")
    return True


def revoke_completion(store: SQLiteStore, activity_id: str, date: str) -> CompletedTask | None:
    """Remove a completion and take back the points it awarded.

    Returns:
        The removed task, or None if there was nothing to remove.
    """
    with store._transaction() as conn:
        row = conn.execute(
            "SELECT * FROM completed_tasks WHERE activity_id = ? AND date = ?",
            (activity_id, date),
        ).fetchone()
        if row is None:
            return None
        task = CompletedTask.from_row(row)
        conn.execute(
            "DELETE FROM completed_tasks WHERE activity_id = ? AND date = ?",
            (activity_id, date),
        )
        adjust_points(conn, -task.points, date)
    logger.debug(f"Revoked completion of {activity_id} on {date} (-{task.points})")
    return task
