"""Source-of-truth bookkeeping for the two backing stores.

Every entity kind has one store that holds its latest value. For kinds the
structured store supports, a write that could only reach the key-value
store marks the kind *diverged*: the key-value copy is newer, reads use
it, and the next structured write first pushes it back.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from relaxed_planner.constants import (
    KV_KEY_ACTIVITIES,
    KV_KEY_CALENDAR_SYNC_DATA,
    KV_KEY_COMPLETED_TASKS,
    KV_KEY_DAILY_POINTS,
    KV_KEY_LAST_ACTIVITY_DATE,
    KV_KEY_LOADED_PRESET_ID,
    KV_KEY_PRESETS,
    KV_KEY_TOTAL_POINTS,
)


class ServiceState(str, Enum):
    """Lifecycle of the persistence service. Never moves backwards."""

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class StorageSource(str, Enum):
    STRUCTURED = "structured"
    KEY_VALUE = "key_value"


class EntityKind(str, Enum):
    """Entity kinds and their key-value store keys."""

    ACTIVITIES = KV_KEY_ACTIVITIES
    PRESETS = KV_KEY_PRESETS
    TOTAL_POINTS = KV_KEY_TOTAL_POINTS
    DAILY_POINTS = KV_KEY_DAILY_POINTS
    COMPLETED_TASKS = KV_KEY_COMPLETED_TASKS
    LAST_ACTIVITY_DATE = KV_KEY_LAST_ACTIVITY_DATE
    LOADED_PRESET_ID = KV_KEY_LOADED_PRESET_ID
    CALENDAR_SYNC_DATA = KV_KEY_CALENDAR_SYNC_DATA

    @property
    def structured(self) -> bool:
        """Whether the structured store can hold this kind."""
        return self in STRUCTURED_KINDS


STRUCTURED_KINDS = frozenset(
    {
        EntityKind.PRESETS,
        EntityKind.TOTAL_POINTS,
        EntityKind.DAILY_POINTS,
        EntityKind.COMPLETED_TASKS,
        EntityKind.LAST_ACTIVITY_DATE,
    }
)

# Kinds touched by completing or un-completing an activity
COMPLETION_KINDS = (
    EntityKind.COMPLETED_TASKS,
    EntityKind.TOTAL_POINTS,
    EntityKind.DAILY_POINTS,
    EntityKind.LAST_ACTIVITY_DATE,
)


@dataclass
class EntityState:
    """Where the latest value of one entity kind lives."""

    source: StorageSource
    diverged: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"source": self.source.value, "diverged": self.diverged}


@dataclass
class StorageStatus:
    """Snapshot of the persistence service's storage state."""

    state: ServiceState
    structured_enabled: bool
    structured_ok: bool
    entities: dict[EntityKind, EntityState] = field(default_factory=dict)

    @property
    def diverged_kinds(self) -> list[EntityKind]:
        return [kind for kind, entity in self.entities.items() if entity.diverged]

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "structured_enabled": self.structured_enabled,
            "structured_ok": self.structured_ok,
            "entities": {kind.value: entity.to_dict() for kind, entity in self.entities.items()},
        }


@dataclass
class MergeJournal:
    """Key-value writes made while the structured store could not be read.

    A key-value copy written in such a session never saw the structured
    rows, so it cannot replace them. Instead the touched presets and
    completions are copied over one by one and point changes are added as
    deltas. Diverged kinds without an entry here replace the structured
    data wholesale.
    """

    preset_ids: set[str] = field(default_factory=set)
    task_keys: set[tuple[str, str]] = field(default_factory=set)
    point_deltas: dict[EntityKind, int] = field(default_factory=dict)
    merging: set[EntityKind] = field(default_factory=set)

    def merges(self, kind: EntityKind) -> bool:
        return kind in self.merging

    def touch_preset(self, preset_id: str) -> None:
        self.merging.add(EntityKind.PRESETS)
        self.preset_ids.add(preset_id)

    def touch_task(self, activity_id: str, date: str) -> None:
        self.merging.add(EntityKind.COMPLETED_TASKS)
        self.task_keys.add((activity_id, date))

    def add_points(self, kind: EntityKind, delta: int) -> None:
        self.merging.add(kind)
        self.point_deltas[kind] = self.point_deltas.get(kind, 0) + delta

    def discard(self, kind: EntityKind) -> None:
        """Forget ``kind``; it was reconciled or rewritten in full."""
        self.merging.discard(kind)
        if kind is EntityKind.PRESETS:
            self.preset_ids.clear()
        elif kind is EntityKind.COMPLETED_TASKS:
            self.task_keys.clear()
        self.point_deltas.pop(kind, None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.merges(EntityKind.PRESETS):
            data[EntityKind.PRESETS.value] = sorted(self.preset_ids)
        if self.merges(EntityKind.COMPLETED_TASKS):
            data[EntityKind.COMPLETED_TASKS.value] = [list(key) for key in sorted(self.task_keys)]
        for kind, delta in self.point_deltas.items():
            data[kind.value] = delta
        return data

    @classmethod
    def from_dict(cls, data: Any, diverged: set[EntityKind]) -> "MergeJournal":
        """Parse a stored journal, keeping only entries for diverged kinds."""
        journal = cls()
        if not isinstance(data, dict):
            return journal
        presets = data.get(EntityKind.PRESETS.value)
        if EntityKind.PRESETS in diverged and isinstance(presets, list):
            for preset_id in presets:
                journal.touch_preset(str(preset_id))
        tasks = data.get(EntityKind.COMPLETED_TASKS.value)
        if EntityKind.COMPLETED_TASKS in diverged and isinstance(tasks, list):
            for key in tasks:
                if isinstance(key, list) and len(key) == 2:
                    journal.touch_task(str(key[0]), str(key[1]))
        for kind in (EntityKind.TOTAL_POINTS, EntityKind.DAILY_POINTS):
            delta = data.get(kind.value)
            if kind in diverged and isinstance(delta, int) and not isinstance(delta, bool):
                journal.add_points(kind, delta)
        return journal
