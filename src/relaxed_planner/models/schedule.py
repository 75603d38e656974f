"""Schedule entities: activities, presets, completed tasks and points.

Each entity serializes two ways:
- ``to_dict``/``from_dict`` use the camelCase field names stored in the
  key-value store and in backup files.
- ``to_row``/``from_row`` map to the snake_case SQLite columns.

Malformed input raises ``ValidationError`` so callers can skip a single
corrupt record without failing a whole load.
"""

import re
import secrets
import sqlite3
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from relaxed_planner.constants import (
    CATEGORY_FITNESS,
    CATEGORY_LEISURE,
    CATEGORY_RECOVERY,
    CATEGORY_WORK,
    DAY_FORMAT,
)
from relaxed_planner.exceptions import ValidationError

_HHMM_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


class Category(str, Enum):
    """Activity category."""

    FITNESS = CATEGORY_FITNESS
    WORK = CATEGORY_WORK
    LEISURE = CATEGORY_LEISURE
    RECOVERY = CATEGORY_RECOVERY


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC string with a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_id() -> str:
    """Timestamp-plus-random identifier, the same shape the mobile app generates."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def day_string(moment: datetime | None = None) -> str:
    """Day key for completions, e.g. "Sat Oct 17 2026" (local time by default)."""
    return (moment or datetime.now()).strftime(DAY_FORMAT)


def parse_hhmm(value: str, field_name: str = "time") -> tuple[int, int]:
    """Parse an ``HH:MM`` string into (hour, minute).

    Raises:
        ValidationError: If the value is not a valid 24-hour time.
    """
    match = _HHMM_PATTERN.match(value or "")
    if not match:
        raise ValidationError(
            f"Invalid time: {value!r}",
            field=field_name,
            value=value,
            expected="HH:MM (24-hour)",
        )
    return int(match.group(1)), int(match.group(2))


def _coerce_category(value: Any) -> Category:
    try:
        return Category(value)
    except ValueError as e:
        raise ValidationError(
            f"Unknown category: {value!r}",
            field="category",
            value=value,
            expected=", ".join(c.value for c in Category),
        ) from e


def _coerce_points(value: Any) -> int:
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"Points must be an integer, got {value!r}",
            field="points",
            value=value,
            expected="integer",
        )
    return value


def _require(data: dict[str, Any], key: str, entity: str) -> Any:
    if not isinstance(data, dict):
        raise ValidationError(f"{entity} must be an object", field=entity, value=data)
    if key not in data or data[key] is None:
        raise ValidationError(f"{entity} is missing '{key}'", field=key, expected="present")
    return data[key]


@dataclass
class Activity:
    """One block in a schedule.

    Attributes:
        id: Caller-generated identifier (timestamp + random suffix).
        title: Display title.
        start_time: Start as "HH:MM".
        end_time: End as "HH:MM".
        category: Activity category.
        color: Display color token.
        points: Points awarded on completion.
        description: Optional free text.
    """

    id: str
    title: str
    start_time: str
    end_time: str
    category: Category
    color: str = ""
    points: int = 0
    description: str | None = None

    def __post_init__(self) -> None:
        self.category = _coerce_category(self.category)
        self.points = _coerce_points(self.points)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "category": self.category.value,
            "color": self.color,
            "points": self.points,
        }
        if self.description is not None:
            data["description"] = self.description
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Activity":
        return cls(
            id=str(_require(data, "id", "activity")),
            title=str(_require(data, "title", "activity")),
            start_time=str(_require(data, "startTime", "activity")),
            end_time=str(_require(data, "endTime", "activity")),
            category=_require(data, "category", "activity"),
            color=str(data.get("color") or ""),
            points=_require(data, "points", "activity"),
            description=data.get("description"),
        )

    def to_row(self, preset_id: str, sort_order: int) -> dict[str, Any]:
        """Convert to a preset_activities row."""
        return {
            "id": self.id,
            "preset_id": preset_id,
            "title": self.title,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "category": self.category.value,
            "points": self.points,
            "description": self.description,
            "color": self.color,
            "sort_order": sort_order,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Activity":
        """Create from a preset_activities row."""
        return cls(
            id=row["id"],
            title=row["title"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            category=row["category"],
            color=row["color"] or "",
            points=row["points"],
            description=row["description"],
        )


@dataclass
class Preset:
    """A named, ordered snapshot of a schedule."""

    id: str
    name: str
    activities: list[Activity] = field(default_factory=list)
    mood: str | None = None
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "activities": [a.to_dict() for a in self.activities],
            "createdAt": self.created_at,
        }
        if self.mood is not None:
            data["mood"] = self.mood
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Preset":
        raw_activities = data.get("activities") if isinstance(data, dict) else None
        if raw_activities is not None and not isinstance(raw_activities, list):
            raise ValidationError(
                "Preset activities must be a list",
                field="activities",
                value=raw_activities,
            )
        return cls(
            id=str(_require(data, "id", "preset")),
            name=str(_require(data, "name", "preset")),
            activities=[Activity.from_dict(a) for a in raw_activities or []],
            mood=data.get("mood"),
            created_at=str(data.get("createdAt") or utc_now_iso()),
        )

    def to_row(self) -> dict[str, Any]:
        """Convert to a presets row (activities are stored separately)."""
        return {
            "id": self.id,
            "name": self.name,
            "mood": self.mood,
            "created_at": self.created_at,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row, activities: list[Activity]) -> "Preset":
        """Create from a presets row plus its already-loaded activities."""
        return cls(
            id=row["id"],
            name=row["name"],
            activities=activities,
            mood=row["mood"],
            created_at=row["created_at"],
        )


@dataclass
class CompletedTask:
    """One activity marked done on one day.

    At most one exists per (activity_id, date).
    """

    id: str
    activity_id: str
    date: str
    points: int = 0

    def __post_init__(self) -> None:
        self.points = _coerce_points(self.points)

    @property
    def key(self) -> tuple[str, str]:
        return (self.activity_id, self.date)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "activityId": self.activity_id,
            "date": self.date,
            "points": self.points,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompletedTask":
        return cls(
            id=str(_require(data, "id", "completed task")),
            activity_id=str(_require(data, "activityId", "completed task")),
            date=str(_require(data, "date", "completed task")),
            points=_require(data, "points", "completed task"),
        )

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "activity_id": self.activity_id,
            "date": self.date,
            "points": self.points,
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CompletedTask":
        return cls(
            id=row["id"],
            activity_id=row["activity_id"],
            date=row["date"],
            points=row["points"],
        )


@dataclass
class PointsTracking:
    """The points singleton."""

    total_points: int = 0
    daily_points: int = 0
    last_activity_date: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PointsTracking":
        return cls(
            total_points=row["total_points"] or 0,
            daily_points=row["daily_points"] or 0,
            last_activity_date=row["last_activity_date"],
            updated_at=row["updated_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalPoints": self.total_points,
            "dailyPoints": self.daily_points,
            "lastActivityDate": self.last_activity_date,
            "updatedAt": self.updated_at,
        }


def dedupe_completed_tasks(tasks: list[CompletedTask]) -> list[CompletedTask]:
    """Keep the last task for each (activity_id, date), in order of last occurrence."""
    latest: dict[tuple[str, str], CompletedTask] = {}
    for task in tasks:
        latest.pop(task.key, None)
        latest[task.key] = task
    return list(latest.values())
