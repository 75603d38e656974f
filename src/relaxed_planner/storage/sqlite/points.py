"""Points singleton operations for the structured store."""

from __future__ import annotations

import logging
import sqlite3
from typing import TYPE_CHECKING

from relaxed_planner.constants import POINTS_ROW_ID
from relaxed_planner.models.schedule import PointsTracking

if TYPE_CHECKING:
    from relaxed_planner.storage.sqlite.core import SQLiteStore

logger = logging.getLogger(__name__)


def ensure_points_row(conn: sqlite3.Connection) -> None:
    """Insert the zeroed singleton row if it is missing."""
    conn.execute(
        """
        INSERT OR IGNORE INTO points_tracking (id, total_points, daily_points, updated_at)
        VALUES (?, 0, 0, datetime('now'))
        """,
        (POINTS_ROW_ID,),
    )


def reset_points(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        UPDATE points_tracking
        SET total_points = 0, daily_points = 0, last_activity_date = NULL,
            updated_at = datetime('now')
        WHERE id = ?
        """,
        (POINTS_ROW_ID,),
    )


def adjust_points(conn: sqlite3.Connection, delta: int, activity_date: str) -> None:
    """Add ``delta`` to total and daily points and stamp the activity date."""
    ensure_points_row(conn)
    conn.execute(
        """
        UPDATE points_tracking
        SET total_points = total_points + ?, daily_points = daily_points + ?,
            last_activity_date = ?, updated_at = datetime('now')
        WHERE id = ?
        """,
        (delta, delta, activity_date, POINTS_ROW_ID),
    )


def _update_column(store: SQLiteStore, column: str, value: int | str | None) -> None:
    with store._transaction() as conn:
        ensure_points_row(conn)
        conn.execute(
            f"UPDATE points_tracking SET {column} = ?, updated_at = datetime('now') WHERE id = ?",
            (value, POINTS_ROW_ID),
        )


def update_total_points(store: SQLiteStore, points: int) -> None:
    _update_column(store, "total_points", points)


def update_daily_points(store: SQLiteStore, points: int) -> None:
    _update_column(store, "daily_points", points)


def update_last_activity_date(store: SQLiteStore, date: str | None) -> None:
    _update_column(store, "last_activity_date", date)


def save_points(
    store: SQLiteStore, total_points: int, daily_points: int, last_activity_date: str | None
) -> None:
    """Write every points field at once."""
    with store._transaction() as conn:
        ensure_points_row(conn)
        conn.execute(
            """
            UPDATE points_tracking
            SET total_points = ?, daily_points = ?, last_activity_date = ?,
                updated_at = datetime('now')
            WHERE id = ?
            """,
            (total_points, daily_points, last_activity_date, POINTS_ROW_ID),
        )


def load_points(store: SQLiteStore) -> PointsTracking:
    """Load the points singleton (zeros if the row is somehow missing)."""
    row = (
        store._get_connection()
        .execute("SELECT * FROM points_tracking WHERE id = ?", (POINTS_ROW_ID,))
        .fetchone()
    )
    if row is None:
        logger.warning("Points row missing; reporting zero points")
        return PointsTracking()
    return PointsTracking.from_row(row)
