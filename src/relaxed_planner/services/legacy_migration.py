"""One-time migration of first-generation planner data.

The first storage generation kept everything under four flat
``relaxed-scheduler-*`` keys. Each key that is still present is parsed,
written through the persistence facade, and removed only after the write
succeeded, so running the migration again is always safe.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from relaxed_planner.constants import (
    LEGACY_KEY_ACTIVITIES,
    LEGACY_KEY_COMPLETED,
    LEGACY_KEY_POINTS,
    LEGACY_KEY_PRESETS,
)
from relaxed_planner.exceptions import PlannerError
from relaxed_planner.models.schedule import Activity, CompletedTask, Preset

if TYPE_CHECKING:
    from relaxed_planner.services.persistence_service import PersistenceService

logger = logging.getLogger(__name__)

LegacyMigration = Callable[["PersistenceService", str], Awaitable[None]]


@dataclass
class LegacyMigrationReport:
    """What one migration run did.

    Attributes:
        migrated: Legacy keys whose data was written and removed.
        failed: Legacy keys left in place, mapped to the reason.
        backfilled_presets: Presets copied from the key-value store into an
            empty structured store.
    """

    migrated: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    backfilled_presets: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.migrated or self.backfilled_presets)


def _json_list(raw: str, key: str) -> list[Any]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError(f"{key} does not hold a JSON list")
    return data


async def _migrate_activities(service: PersistenceService, raw: str) -> None:
    activities = [Activity.from_dict(a) for a in _json_list(raw, LEGACY_KEY_ACTIVITIES)]
    await service.save_activities(activities)


async def _migrate_presets(service: PersistenceService, raw: str) -> None:
    presets = [Preset.from_dict(p) for p in _json_list(raw, LEGACY_KEY_PRESETS)]
    await service.save_presets(presets)


async def _migrate_points(service: PersistenceService, raw: str) -> None:
    await service.save_total_points(int(raw.strip()))


async def _migrate_completed(service: PersistenceService, raw: str) -> None:
    tasks = [CompletedTask.from_dict(t) for t in _json_list(raw, LEGACY_KEY_COMPLETED)]
    await service.save_completed_tasks(tasks)


def get_legacy_migrations() -> list[tuple[str, str, LegacyMigration]]:
    """Get all legacy key migrations.

    Returns:
        List of tuples: (legacy_key, description, migration_function)
        Migrations are executed in order.
    """
    return [
        (LEGACY_KEY_ACTIVITIES, "Move working schedule", _migrate_activities),
        (LEGACY_KEY_PRESETS, "Move saved presets", _migrate_presets),
        (LEGACY_KEY_POINTS, "Move total points", _migrate_points),
        (LEGACY_KEY_COMPLETED, "Move completed tasks", _migrate_completed),
    ]


async def _backfill_presets(service: PersistenceService) -> int:
    """Copy key-value presets into the structured store when it holds none."""
    if not service.structured_ok or service.structured is None:
        return 0
    if await service.structured.count_presets() > 0:
        return 0
    presets = await service._kv_read_presets()
    if not presets:
        return 0
    await service.structured.save_presets(presets)
    logger.info(f"Backfilled {len(presets)} presets into structured store")
    return len(presets)


async def migrate_from_legacy_store(service: PersistenceService) -> LegacyMigrationReport:
    """Run every pending legacy migration.

    A key whose value cannot be parsed or written is logged and left in
    place for the next run. Failures never propagate.

    Args:
        service: Persistence facade to write migrated data through.

    Returns:
        Report of migrated keys, failures and backfilled presets.
    """
    report = LegacyMigrationReport()

    for key, description, migrate in get_legacy_migrations():
        try:
            raw = await service.legacy_store.get(key)
        except (PlannerError, OSError) as e:
            logger.warning(f"Could not read legacy key {key}: {e}")
            report.failed[key] = str(e)
            continue
        if raw is None:
            continue

        try:
            await migrate(service, raw)
        except (PlannerError, OSError, ValueError, TypeError) as e:
            logger.warning(f"Legacy migration '{description}' failed, keeping {key}: {e}")
            report.failed[key] = str(e)
            continue

        try:
            await service.legacy_store.remove(key)
        except (PlannerError, OSError) as e:
            logger.error(f"Migrated {key} but could not remove it: {e}")
        report.migrated.append(key)
        logger.info(f"Legacy migration complete: {description} ({key})")

    try:
        report.backfilled_presets = await _backfill_presets(service)
    except (PlannerError, OSError, ValueError) as e:
        logger.warning(f"Preset backfill skipped: {e}")

    return report
