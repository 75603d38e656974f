"""Calendar sync status model."""

from dataclasses import dataclass, field
from typing import Any

from relaxed_planner.exceptions import ValidationError


@dataclass
class SyncStatus:
    """Result of the last calendar sync.

    Stored as JSON in the key-value store under both the coordinator's
    status key and the app's ``calendarSyncData`` key.

    Attributes:
        last_sync_date: ISO timestamp of the last sync attempt.
        synced_activity_ids: Ids passed to the last sync, without duplicates.
    """

    last_sync_date: str | None = None
    synced_activity_ids: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.synced_activity_ids = list(dict.fromkeys(self.synced_activity_ids))

    def to_dict(self) -> dict[str, Any]:
        return {
            "lastSyncDate": self.last_sync_date,
            "syncedActivities": list(self.synced_activity_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncStatus":
        if not isinstance(data, dict):
            raise ValidationError("Sync status must be an object", field="sync_status", value=data)
        synced = data.get("syncedActivities") or []
        if not isinstance(synced, list):
            raise ValidationError(
                "syncedActivities must be a list", field="syncedActivities", value=synced
            )
        return cls(
            last_sync_date=data.get("lastSyncDate") or None,
            synced_activity_ids=[str(s) for s in synced],
        )
