"""Backup snapshot of all planner data."""

from dataclasses import dataclass, field
from typing import Any

from relaxed_planner.exceptions import ValidationError
from relaxed_planner.models.schedule import Activity, CompletedTask, Preset
from relaxed_planner.models.sync import SyncStatus


@dataclass
class AppData:
    """Every entity kind, aggregated for export and import.

    The dict form uses the same camelCase keys as the mobile app's
    backups, so files exported there can be imported here.
    """

    activities: list[Activity] = field(default_factory=list)
    presets: list[Preset] = field(default_factory=list)
    total_points: int = 0
    daily_points: int = 0
    completed_tasks: list[CompletedTask] = field(default_factory=list)
    last_sync_date: str | None = None
    synced_activities: list[str] = field(default_factory=list)
    loaded_preset_id: str | None = None
    last_activity_date: str | None = None

    @property
    def sync_status(self) -> SyncStatus:
        return SyncStatus(
            last_sync_date=self.last_sync_date,
            synced_activity_ids=self.synced_activities,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "activities": [a.to_dict() for a in self.activities],
            "presets": [p.to_dict() for p in self.presets],
            "totalPoints": self.total_points,
            "dailyPoints": self.daily_points,
            "completedTasks": [t.to_dict() for t in self.completed_tasks],
            "lastSyncDate": self.last_sync_date,
            "syncedActivities": list(self.synced_activities),
            "loadedPresetId": self.loaded_preset_id,
            "lastActivityDate": self.last_activity_date,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppData":
        """Create a snapshot from a backup dict.

        Missing keys take their empty defaults; older backups lack
        ``dailyPoints``, ``loadedPresetId`` and ``lastActivityDate``.

        Raises:
            ValidationError: If the backup or any record in it is malformed.
        """
        if not isinstance(data, dict):
            raise ValidationError("Backup must be a JSON object", field="backup", value=data)
        for list_key in ("activities", "presets", "completedTasks", "syncedActivities"):
            value = data.get(list_key)
            if value is not None and not isinstance(value, list):
                raise ValidationError(f"{list_key} must be a list", field=list_key, value=value)
        for int_key in ("totalPoints", "dailyPoints"):
            value = data.get(int_key, 0)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(
                    f"{int_key} must be an integer", field=int_key, value=value, expected="integer"
                )
        return cls(
            activities=[Activity.from_dict(a) for a in data.get("activities") or []],
            presets=[Preset.from_dict(p) for p in data.get("presets") or []],
            total_points=data.get("totalPoints", 0),
            daily_points=data.get("dailyPoints", 0),
            completed_tasks=[CompletedTask.from_dict(t) for t in data.get("completedTasks") or []],
            last_sync_date=data.get("lastSyncDate") or None,
            synced_activities=[str(s) for s in data.get("syncedActivities") or []],
            loaded_preset_id=data.get("loadedPresetId") or None,
            last_activity_date=data.get("lastActivityDate") or None,
        )
