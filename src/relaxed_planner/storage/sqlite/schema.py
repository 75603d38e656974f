"""Database schema for the structured store.

Contains schema version and SQL for creating the database schema.
"""

# Schema version for migrations
# v1: Original mobile-app layout (no schema_version table; preset_activities
#     keyed by activity id alone, early builds without color/sort_order)
# v2: schema_version table, preset_activities keyed by (preset_id, id) with
#     color and sort_order, created_at on completed_tasks
SCHEMA_VERSION = 2

# Columns a preset_activities table must have for its rows to be carried over
PRESET_ACTIVITY_REQUIRED_COLUMNS = frozenset(
    {"id", "preset_id", "title", "start_time", "end_time", "category"}
)

PRESET_ACTIVITIES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS preset_activities (
    id TEXT NOT NULL,
    preset_id TEXT NOT NULL,
    title TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    category TEXT NOT NULL,
    points INTEGER NOT NULL DEFAULT 0,
    description TEXT,
    color TEXT NOT NULL DEFAULT '',
    sort_order INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (preset_id, id),
    FOREIGN KEY (preset_id) REFERENCES presets (id) ON DELETE CASCADE
);
"""

SCHEMA_SQL = (
    """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Saved schedules
CREATE TABLE IF NOT EXISTS presets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    mood TEXT,
    created_at TEXT NOT NULL
);
"""
    + PRESET_ACTIVITIES_TABLE_SQL
    + """
-- One row per activity completed on a given day
CREATE TABLE IF NOT EXISTS completed_tasks (
    id TEXT PRIMARY KEY,
    activity_id TEXT NOT NULL,
    date TEXT NOT NULL,
    points INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (activity_id, date)
);

-- Points singleton (id = 'main')
CREATE TABLE IF NOT EXISTS points_tracking (
    id TEXT PRIMARY KEY,
    total_points INTEGER NOT NULL DEFAULT 0,
    daily_points INTEGER NOT NULL DEFAULT 0,
    last_activity_date TEXT,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_preset_activities_preset_id ON preset_activities(preset_id);
CREATE INDEX IF NOT EXISTS idx_preset_activities_sort_order
    ON preset_activities(preset_id, sort_order);
CREATE INDEX IF NOT EXISTS idx_presets_created_at ON presets(created_at);
CREATE INDEX IF NOT EXISTS idx_completed_tasks_date ON completed_tasks(date);
CREATE INDEX IF NOT EXISTS idx_completed_tasks_activity_id ON completed_tasks(activity_id);
"""
)
