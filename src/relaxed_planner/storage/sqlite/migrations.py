"""Database migration functions for the structured store.

Contains all migration logic for upgrading database schema versions.
Every step is idempotent: it inspects the live table layout before
altering anything, so re-running a migration leaves the data unchanged.
"""

import logging
import sqlite3

from relaxed_planner.storage.sqlite.schema import (
    PRESET_ACTIVITIES_TABLE_SQL,
    PRESET_ACTIVITY_REQUIRED_COLUMNS,
)

logger = logging.getLogger(__name__)


def apply_migrations(conn: sqlite3.Connection, from_version: int) -> None:
    """Apply schema migrations from current version to latest.

    Args:
        conn: Database connection (within transaction).
        from_version: Current schema version.
    """
    if from_version < 2:
        _migrate_v1_to_v2(conn)


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
        (table,),
    ).fetchone()
    return row is not None


def _table_columns(conn: sqlite3.Connection, table: str) -> dict[str, int]:
    """Return {column name: primary key position} for ``table``."""
    return {row[1]: row[5] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _add_missing_columns(
    conn: sqlite3.Connection, table: str, columns: dict[str, str]
) -> list[str]:
    existing = _table_columns(conn, table)
    added = []
    for column_name, column_def in columns.items():
        if column_name not in existing:
            conn.execute(f"ALTER TABLE {table} ADD COLUMN {column_name} {column_def}")
            added.append(column_name)
    if added:
        logger.debug(f"Added columns to {table}: {', '.join(added)}")
    return added


def _migrate_v1_to_v2(conn: sqlite3.Connection) -> None:
    """Migrate schema from v1 to v2.

    v1 databases come from the mobile app: no schema_version table, and in
    early builds a preset_activities table without color or sort_order.

    - presets / points_tracking / completed_tasks gain any missing columns.
    - preset_activities is rebuilt with the (preset_id, id) key, keeping
      every row whose preset still exists. When sort_order was missing it
      is derived from insertion order.
    - Only a preset_activities table that lacks identity columns (so rows
      cannot be matched to presets) is dropped together with presets.
    """
    logger.info("Migrating structured store schema v1 -> v2")

    if table_exists(conn, "presets"):
        _add_missing_columns(
            conn, "presets", {"mood": "TEXT", "created_at": "TEXT NOT NULL DEFAULT ''"}
        )

    if table_exists(conn, "completed_tasks"):
        added = _add_missing_columns(
            conn, "completed_tasks", {"created_at": "TEXT NOT NULL DEFAULT ''"}
        )
        if added:
            conn.execute(
                "UPDATE completed_tasks SET created_at = datetime('now') WHERE created_at = ''"
            )

    if table_exists(conn, "points_tracking"):
        added = _add_missing_columns(
            conn,
            "points_tracking",
            {"last_activity_date": "TEXT", "updated_at": "TEXT NOT NULL DEFAULT ''"},
        )
        if "updated_at" in added:
            conn.execute("UPDATE points_tracking SET updated_at = datetime('now')")

    if table_exists(conn, "preset_activities"):
        _rebuild_preset_activities(conn)


def _rebuild_preset_activities(conn: sqlite3.Connection) -> None:
    columns = _table_columns(conn, "preset_activities")

    if not table_exists(conn, "presets"):
        logger.warning("preset_activities exists without presets; dropping orphaned rows")
        conn.execute("DROP TABLE preset_activities")
        return

    missing = PRESET_ACTIVITY_REQUIRED_COLUMNS - columns.keys()
    if missing:
        logger.warning(
            f"preset_activities is missing {sorted(missing)}; its rows cannot be matched "
            "to presets. Dropping and recreating preset tables."
        )
        conn.execute("DROP TABLE IF EXISTS preset_activities")
        conn.execute("DROP TABLE IF EXISTS presets")
        return

    key_columns = {name for name, pk in columns.items() if pk}
    if key_columns == {"preset_id", "id"} and {"color", "sort_order"} <= columns.keys():
        logger.debug("preset_activities already has the v2 layout")
        return

    if "sort_order" in columns:
        sort_expr = "old.sort_order"
    else:
        sort_expr = (
            "(SELECT COUNT(*) FROM preset_activities_v1 AS prior "
            "WHERE prior.preset_id = old.preset_id AND prior.rowid < old.rowid)"
        )
    points_expr = "COALESCE(old.points, 0)" if "points" in columns else "0"
    description_expr = "old.description" if "description" in columns else "NULL"
    color_expr = "COALESCE(old.color, '')" if "color" in columns else "''"

    before = conn.execute("SELECT COUNT(*) FROM preset_activities").fetchone()[0]
    conn.execute("ALTER TABLE preset_activities RENAME TO preset_activities_v1")
    conn.execute(PRESET_ACTIVITIES_TABLE_SQL)
    conn.execute(
        f"""
        INSERT OR IGNORE INTO preset_activities
            (id, preset_id, title, start_time, end_time, category,
             points, description, color, sort_order)
        SELECT old.id, old.preset_id, old.title, old.start_time, old.end_time, old.category,
               {points_expr}, {description_expr}, {color_expr}, {sort_expr}
        FROM preset_activities_v1 AS old
        WHERE old.preset_id IN (SELECT id FROM presets)
        """
    )
    conn.execute("DROP TABLE preset_activities_v1")
    after = conn.execute("SELECT COUNT(*) FROM preset_activities").fetchone()[0]
    if after != before:
        logger.warning(f"Dropped {before - after} orphaned or invalid preset activity rows")
    logger.info(f"Rebuilt preset_activities ({after} rows kept)")
