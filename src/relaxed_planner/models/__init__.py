"""Data models for relaxed-planner."""

from relaxed_planner.models.schedule import (
    Activity,
    Category,
    CompletedTask,
    PointsTracking,
    Preset,
    day_string,
    dedupe_completed_tasks,
    new_id,
    parse_hhmm,
    utc_now_iso,
)
from relaxed_planner.models.snapshot import AppData
from relaxed_planner.models.sync import SyncStatus

__all__ = [
    "Activity",
    "AppData",
    "Category",
    "CompletedTask",
    "PointsTracking",
    "Preset",
    "SyncStatus",
    "day_string",
    "dedupe_completed_tasks",
    "new_id",
    "parse_hhmm",
    "utc_now_iso",
]
