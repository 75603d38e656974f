"""Persistence facade over the structured and key-value stores.

PersistenceService is the single storage API for the rest of the app.

Write path: structured store first (for kinds it supports), key-value
store when that fails or for key-value-only kinds. A write raises only
when every available store failed, and then with the first error.

Read path: the store that holds the latest value (see storage_state),
then the other one. Reads never raise; total failure returns the empty
default ([] / 0 / None).
"""

import asyncio
import json
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from relaxed_planner.constants import KV_APP_DATA_KEYS, KV_KEY_STORAGE_STATE
from relaxed_planner.exceptions import InitializationError, PlannerError, StorageError
from relaxed_planner.models.schedule import (
    Activity,
    CompletedTask,
    Preset,
    day_string,
    dedupe_completed_tasks,
    new_id,
)
from relaxed_planner.models.snapshot import AppData
from relaxed_planner.models.sync import SyncStatus
from relaxed_planner.services.legacy_migration import (
    LegacyMigrationReport,
    migrate_from_legacy_store,
)
from relaxed_planner.services.storage_state import (
    COMPLETION_KINDS,
    STRUCTURED_KINDS,
    EntityKind,
    EntityState,
    MergeJournal,
    ServiceState,
    StorageSource,
    StorageStatus,
)
from relaxed_planner.storage.kv import KeyValueStore
from relaxed_planner.storage.sqlite.core import SQLiteStore

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Failures of a backing store
_STORE_ERRORS = (PlannerError, sqlite3.Error, OSError)
# Failures while reading and decoding a stored value
_READ_ERRORS = (PlannerError, sqlite3.Error, OSError, ValueError, TypeError, KeyError)


def _sort_newest_first(presets: list[Preset]) -> list[Preset]:
    return sorted(presets, key=lambda p: p.created_at, reverse=True)


def _parse_list(raw: str, parse: Callable[[Any], T], label: str) -> list[T]:
    data = json.loads(raw)
    if not isinstance(data, list):
        raise ValueError(f"{label} is not a JSON list")
    items = []
    for item in data:
        try:
            items.append(parse(item))
        except (PlannerError, TypeError) as e:
            logger.warning(f"Skipping corrupt {label} entry: {e}")
    return items


def _merge_presets(base: list[Preset], updates: list[Preset]) -> list[Preset]:
    merged = {p.id: p for p in base}
    for preset in updates:
        merged[preset.id] = preset
    return list(merged.values())


class PersistenceService:
    """Fallback-aware storage for every planner entity kind.

    Services are constructed explicitly by the application root; there is
    no module-level instance.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        structured: SQLiteStore | None = None,
        legacy_store: KeyValueStore | None = None,
    ):
        """Initialize the service.

        Args:
            kv: Key-value store (always available fallback).
            structured: Structured store, or None for key-value-only mode.
            legacy_store: Where first-generation keys live. Defaults to ``kv``.
        """
        self.kv = kv
        self.structured = structured
        self.legacy_store = legacy_store or kv
        self.last_migration: LegacyMigrationReport | None = None
        self._state = ServiceState.UNINITIALIZED
        self._structured_ok = False
        self._init_lock = asyncio.Lock()
        self._init_owner: asyncio.Task[Any] | None = None
        self._entities: dict[EntityKind, EntityState] = {}
        self._journal = MergeJournal()
        self._reset_entities()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def structured_ok(self) -> bool:
        return self._structured_ok

    @property
    def _sqlite(self) -> SQLiteStore:
        if self.structured is None:
            raise StorageError("Structured store is disabled", store="sqlite")
        return self.structured

    def _reset_entities(self) -> None:
        for kind in EntityKind:
            source = (
                StorageSource.STRUCTURED
                if kind.structured and self._structured_ok
                else StorageSource.KEY_VALUE
            )
            self._entities[kind] = EntityState(source=source)

    async def initialize(self) -> None:
        """Initialize the structured store, reconcile, then migrate legacy data.

        Safe to call repeatedly and from concurrent tasks: the work runs once.
        A structured store failure is logged and the session continues on
        the key-value store.
        """
        if self._state is ServiceState.READY:
            return
        async with self._init_lock:
            if self._state is ServiceState.READY:
                return
            self._state = ServiceState.INITIALIZING
            self._init_owner = asyncio.current_task()
            try:
                await self._initialize_structured()
                self._reset_entities()
                await self._load_storage_state()
                self.last_migration = await migrate_from_legacy_store(self)
            finally:
                self._init_owner = None
                self._state = ServiceState.READY
            logger.info(
                "Persistence ready "
                f"({'structured + key-value' if self._structured_ok else 'key-value only'})"
            )

    async def _initialize_structured(self) -> None:
        if self.structured is None:
            logger.info("Structured store disabled; using key-value store only")
            return
        try:
            await self.structured.initialize()
            self._structured_ok = True
        except InitializationError as e:
            logger.error(f"Failed to initialize structured store, using key-value store only: {e}")

    async def _ensure_initialized(self) -> None:
        if self._state is ServiceState.READY:
            return
        # Writes issued by legacy migration run inside initialize()
        if self._init_owner is not None and asyncio.current_task() is self._init_owner:
            return
        await self.initialize()

    async def close(self) -> None:
        """Close the structured store."""
        if self.structured is not None:
            await self.structured.close()

    def get_storage_status(self) -> StorageStatus:
        """Report lifecycle state and where each entity kind currently lives."""
        return StorageStatus(
            state=self._state,
            structured_enabled=self.structured is not None,
            structured_ok=self._structured_ok,
            entities={
                kind: EntityState(e.source, e.diverged) for kind, e in self._entities.items()
            },
        )

    # ------------------------------------------------------------------
    # Source-of-truth tracking
    # ------------------------------------------------------------------

    async def _load_storage_state(self) -> None:
        try:
            raw = await self.kv.get(KV_KEY_STORAGE_STATE)
            data = json.loads(raw) if raw else {}
            diverged = data.get("diverged", [])
        except (*_READ_ERRORS, AttributeError) as e:
            logger.warning(f"Could not read storage state, assuming stores agree: {e}")
            return
        kinds: set[EntityKind] = set()
        for value in diverged:
            try:
                kind = EntityKind(value)
            except ValueError:
                continue
            if kind.structured:
                kinds.add(kind)
                self._entities[kind] = EntityState(StorageSource.KEY_VALUE, diverged=True)
        self._journal = MergeJournal.from_dict(data.get("merge"), kinds)
        if self._structured_ok and kinds:
            await self.reconcile()

    async def _save_storage_state(self) -> None:
        state: dict[str, Any] = {
            "diverged": [kind.value for kind, e in self._entities.items() if e.diverged]
        }
        merge = self._journal.to_dict()
        if merge:
            state["merge"] = merge
        try:
            await self.kv.set(KV_KEY_STORAGE_STATE, json.dumps(state))
        except _STORE_ERRORS as e:
            logger.warning(f"Could not persist storage state: {e}")

    async def _mark_written(
        self, kind: EntityKind, source: StorageSource, force_save: bool = False
    ) -> None:
        previous = self._entities[kind]
        diverged = (
            source is StorageSource.KEY_VALUE and kind.structured and self.structured is not None
        )
        self._entities[kind] = EntityState(source=source, diverged=diverged)
        if previous.diverged != diverged:
            if diverged:
                logger.warning(f"{kind.value} now lives only in the key-value store")
            await self._save_storage_state()
        elif force_save:
            await self._save_storage_state()

    def _journaling(self, kind: EntityKind) -> bool:
        """Whether a key-value write of ``kind`` must be merged, not replayed in full.

        True while the structured store has not been readable for this kind:
        it failed to open this session, or a merge from an earlier such
        session is still pending. A kind that already diverged from a
        readable structured store stays a full copy.
        """
        if not kind.structured or self.structured is None:
            return False
        if self._journal.merges(kind):
            return True
        return not self._structured_ok and not self._entities[kind].diverged

    async def _record_fallback(
        self, kind: EntityKind, change: Callable[[MergeJournal], None] | None = None
    ) -> None:
        """Record a key-value write of ``kind``.

        Args:
            kind: The kind just written to the key-value store.
            change: Journals what the write touched. Writes without one
                rewrote the kind in full, so it replaces on reconcile.
        """
        journaling = self._journaling(kind)
        if journaling:
            if change is None:
                self._journal.discard(kind)
            else:
                change(self._journal)
        await self._mark_written(kind, StorageSource.KEY_VALUE, force_save=journaling)

    async def _merge_fallback_copy(self, kind: EntityKind) -> None:
        structured = self._sqlite
        if kind is EntityKind.PRESETS:
            current = {p.id: p for p in await self._kv_read_presets()}
            touched = self._journal.preset_ids
            await structured.save_presets([current[i] for i in touched if i in current])
            for preset_id in sorted(touched - set(current)):
                await structured.delete_preset(preset_id)
        elif kind is EntityKind.COMPLETED_TASKS:
            tasks = {t.key: t for t in await self._kv_read_completed_tasks()}
            for key in sorted(self._journal.task_keys):
                if key in tasks:
                    await structured.add_completed_task(tasks[key])
                else:
                    await structured.remove_completed_task(*key)
        else:
            points = await structured.load_points()
            delta = self._journal.point_deltas.get(kind, 0)
            if kind is EntityKind.TOTAL_POINTS:
                await structured.update_total_points(points.total_points + delta)
            else:
                await structured.update_daily_points(points.daily_points + delta)

    async def _push_fallback_copy(self, kind: EntityKind) -> None:
        if self._journal.merges(kind):
            await self._merge_fallback_copy(kind)
            return
        structured = self._sqlite
        if kind is EntityKind.PRESETS:
            await structured.replace_presets(await self._kv_read_presets())
        elif kind is EntityKind.COMPLETED_TASKS:
            await structured.save_completed_tasks(await self._kv_read_completed_tasks())
        elif kind is EntityKind.TOTAL_POINTS:
            await structured.update_total_points(await self._kv_read_int(kind))
        elif kind is EntityKind.DAILY_POINTS:
            await structured.update_daily_points(await self._kv_read_int(kind))
        elif kind is EntityKind.LAST_ACTIVITY_DATE:
            await structured.update_last_activity_date(await self.kv.get(kind.value) or None)

    async def _reconcile_kind(self, kind: EntityKind) -> bool:
        if not self._entities[kind].diverged:
            return True
        if not self._structured_ok:
            return False
        try:
            await self._push_fallback_copy(kind)
        except _READ_ERRORS as e:
            logger.warning(f"Could not copy {kind.value} back to the structured store: {e}")
            return False
        merged = self._journal.merges(kind)
        self._journal.discard(kind)
        logger.info(
            f"Reconciled {kind.value} from key-value store into structured store "
            f"({'merged' if merged else 'replaced'})"
        )
        await self._mark_written(kind, StorageSource.STRUCTURED, force_save=merged)
        return True

    async def _require_reconciled(self, *kinds: EntityKind) -> None:
        for kind in kinds:
            if not await self._reconcile_kind(kind):
                raise StorageError(
                    f"{kind.value} differs between stores and could not be reconciled",
                    store="sqlite",
                    operation="reconcile",
                )

    async def reconcile(self) -> list[EntityKind]:
        """Copy every diverged kind back into the structured store.

        Kinds written while the structured store could not be opened are
        merged into it; other diverged kinds replace it.

        Returns:
            Kinds that are still diverged afterwards.
        """
        await self._ensure_initialized()
        return [kind for kind in STRUCTURED_KINDS if not await self._reconcile_kind(kind)]

    # ------------------------------------------------------------------
    # Generic read/write paths
    # ------------------------------------------------------------------

    async def _write(
        self,
        kind: EntityKind,
        structured_write: Callable[[], Awaitable[Any]] | None,
        kv_write: Callable[[], Awaitable[Any]],
        journal: Callable[[MergeJournal], None] | None = None,
    ) -> None:
        await self._ensure_initialized()
        if structured_write is not None and self._structured_ok:
            try:
                await self._require_reconciled(kind)
                await structured_write()
            except _STORE_ERRORS as e:
                logger.error(
                    f"Failed to save {kind.value} to structured store, "
                    f"falling back to key-value store: {e}"
                )
                try:
                    await kv_write()
                except _STORE_ERRORS as fallback_error:
                    logger.error(
                        f"Failed to save {kind.value} to key-value store: {fallback_error}"
                    )
                    raise e
                await self._record_fallback(kind, journal)
                return
            await self._mark_written(kind, StorageSource.STRUCTURED)
            return

        await kv_write()
        await self._record_fallback(kind, journal)

    async def _read(
        self,
        kind: EntityKind,
        structured_read: Callable[[], Awaitable[T]] | None,
        kv_read: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        await self._ensure_initialized()
        if not self._structured_ok:
            structured_read = None
        if structured_read is not None and not self._entities[kind].diverged:
            try:
                return await structured_read()
            except _READ_ERRORS as e:
                logger.error(
                    f"Failed to load {kind.value} from structured store, "
                    f"trying key-value store: {e}"
                )
                structured_read = None
        try:
            return await kv_read()
        except _READ_ERRORS as e:
            logger.error(f"Failed to load {kind.value} from key-value store: {e}")
        if structured_read is not None:
            # Diverged, but the key-value copy is unreadable
            try:
                return await structured_read()
            except _READ_ERRORS as e:
                logger.error(f"Failed to load {kind.value} from structured store: {e}")
        return default

    # ------------------------------------------------------------------
    # Key-value encodings
    # ------------------------------------------------------------------

    async def _kv_read_presets(self) -> list[Preset]:
        raw = await self.kv.get(EntityKind.PRESETS.value)
        if not raw:
            return []
        return _sort_newest_first(_parse_list(raw, Preset.from_dict, "preset"))

    async def _kv_write_presets(self, presets: list[Preset]) -> None:
        await self.kv.set(
            EntityKind.PRESETS.value,
            json.dumps([p.to_dict() for p in _sort_newest_first(presets)]),
        )

    async def _kv_read_completed_tasks(self) -> list[CompletedTask]:
        raw = await self.kv.get(EntityKind.COMPLETED_TASKS.value)
        if not raw:
            return []
        return _parse_list(raw, CompletedTask.from_dict, "completed task")

    async def _kv_write_completed_tasks(self, tasks: list[CompletedTask]) -> None:
        await self.kv.set(
            EntityKind.COMPLETED_TASKS.value,
            json.dumps([t.to_dict() for t in dedupe_completed_tasks(tasks)]),
        )

    async def _kv_read_int(self, kind: EntityKind) -> int:
        raw = await self.kv.get(kind.value)
        return int(raw.strip()) if raw else 0

    # ------------------------------------------------------------------
    # Activities (key-value only)
    # ------------------------------------------------------------------

    async def save_activities(self, activities: list[Activity]) -> None:
        """Save the current working schedule."""

        async def kv_write() -> None:
            await self.kv.set(
                EntityKind.ACTIVITIES.value, json.dumps([a.to_dict() for a in activities])
            )

        await self._write(EntityKind.ACTIVITIES, None, kv_write)

    async def load_activities(self) -> list[Activity]:
        """Load the current working schedule."""

        async def kv_read() -> list[Activity]:
            raw = await self.kv.get(EntityKind.ACTIVITIES.value)
            return _parse_list(raw, Activity.from_dict, "activity") if raw else []

        return await self._read(EntityKind.ACTIVITIES, None, kv_read, [])

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    async def save_presets(self, presets: list[Preset]) -> None:
        """Upsert presets. Presets not in the list are kept."""

        async def structured_write() -> None:
            await self._sqlite.save_presets(presets)

        async def kv_write() -> None:
            await self._kv_write_presets(_merge_presets(await self.load_presets(), presets))

        def journal(changes: MergeJournal) -> None:
            for preset in presets:
                changes.touch_preset(preset.id)

        await self._write(EntityKind.PRESETS, structured_write, kv_write, journal)

    async def save_preset(self, preset: Preset) -> None:
        """Upsert one preset with its activities."""
        await self.save_presets([preset])

    async def load_presets(self) -> list[Preset]:
        """Load all presets, newest first."""

        async def structured_read() -> list[Preset]:
            return await self._sqlite.load_presets()

        return await self._read(EntityKind.PRESETS, structured_read, self._kv_read_presets, [])

    async def get_preset_by_id(self, preset_id: str) -> Preset | None:
        """Get a preset by id, or None."""

        async def structured_read() -> Preset | None:
            return await self._sqlite.get_preset_by_id(preset_id)

        async def kv_read() -> Preset | None:
            return next((p for p in await self._kv_read_presets() if p.id == preset_id), None)

        return await self._read(EntityKind.PRESETS, structured_read, kv_read, None)

    async def search_presets(self, term: str) -> list[Preset]:
        """Case-insensitive search over preset names, moods and activity titles."""

        async def structured_read() -> list[Preset]:
            return await self._sqlite.search_presets(term)

        async def kv_read() -> list[Preset]:
            needle = term.casefold()
            return [
                p
                for p in await self._kv_read_presets()
                if needle in p.name.casefold()
                or needle in (p.mood or "").casefold()
                or any(needle in a.title.casefold() for a in p.activities)
            ]

        return await self._read(EntityKind.PRESETS, structured_read, kv_read, [])

    async def _kv_remove_preset(self, preset_id: str, base: list[Preset] | None = None) -> bool:
        if base is None:
            if await self.kv.get(EntityKind.PRESETS.value) is None:
                return False
            base = await self._kv_read_presets()
        remaining = [p for p in base if p.id != preset_id]
        await self._kv_write_presets(remaining)
        return len(remaining) != len(base)

    async def delete_preset(self, preset_id: str) -> None:
        """Delete a preset from every store that holds it.

        The structured delete is authoritative; the key-value copy is cleaned
        up best-effort. If the structured delete fails, the preset is removed
        from the key-value copy instead, and the original error is raised
        only if that fails too.
        """
        await self._ensure_initialized()
        kind = EntityKind.PRESETS

        def tombstone(changes: MergeJournal) -> None:
            changes.touch_preset(preset_id)

        if self._structured_ok:
            try:
                await self._require_reconciled(kind)
                await self._sqlite.delete_preset(preset_id)
            except _STORE_ERRORS as e:
                logger.error(f"Failed to delete preset {preset_id} from structured store: {e}")
                try:
                    await self._kv_remove_preset(preset_id, base=await self.load_presets())
                except _READ_ERRORS as fallback_error:
                    logger.error(
                        f"Failed to delete preset {preset_id} from both stores: {fallback_error}"
                    )
                    raise e
                await self._record_fallback(kind, tombstone)
                return
            await self._mark_written(kind, StorageSource.STRUCTURED)
            try:
                if await self._kv_remove_preset(preset_id):
                    logger.debug(f"Also removed preset {preset_id} from key-value copy")
            except _READ_ERRORS as cleanup_error:
                logger.warning(f"Could not clean up key-value preset copy: {cleanup_error}")
            return

        await self._kv_remove_preset(preset_id, base=await self._kv_read_presets())
        await self._record_fallback(kind, tombstone)

    async def get_preset_stats(self) -> dict[str, int]:
        """Count presets and their activities."""
        await self._ensure_initialized()
        if self._structured_ok and not self._entities[EntityKind.PRESETS].diverged:
            try:
                return await self._sqlite.get_preset_stats()
            except _READ_ERRORS as e:
                logger.error(f"Failed to read preset stats from structured store: {e}")
        presets = await self.load_presets()
        return {
            "total_presets": len(presets),
            "total_activities": sum(len(p.activities) for p in presets),
        }

    # ------------------------------------------------------------------
    # Points
    # ------------------------------------------------------------------

    async def _save_points(self, kind: EntityKind, points: int, delta: int | None = None) -> None:
        """Save a points counter.

        ``delta`` marks the write as an increment, so a key-value copy
        written without the structured store can be added to it later.
        Without one the value is absolute and replaces on reconcile.
        """

        async def structured_write() -> None:
            if kind is EntityKind.TOTAL_POINTS:
                await self._sqlite.update_total_points(points)
            else:
                await self._sqlite.update_daily_points(points)

        async def kv_write() -> None:
            await self.kv.set(kind.value, str(points))

        def journal(changes: MergeJournal) -> None:
            if delta is not None:
                changes.add_points(kind, delta)

        await self._write(kind, structured_write, kv_write, None if delta is None else journal)

    async def _add_points(self, kind: EntityKind, delta: int) -> None:
        if kind is EntityKind.TOTAL_POINTS:
            current = await self.load_total_points()
        else:
            current = await self.load_daily_points()
        await self._save_points(kind, current + delta, delta=delta)

    async def save_total_points(self, points: int) -> None:
        """Save the all-time points total."""
        await self._save_points(EntityKind.TOTAL_POINTS, points)

    async def load_total_points(self) -> int:
        """Load the all-time points total."""

        async def structured_read() -> int:
            return (await self._sqlite.load_points()).total_points

        async def kv_read() -> int:
            return await self._kv_read_int(EntityKind.TOTAL_POINTS)

        return await self._read(EntityKind.TOTAL_POINTS, structured_read, kv_read, 0)

    async def save_daily_points(self, points: int) -> None:
        """Save today's points."""
        await self._save_points(EntityKind.DAILY_POINTS, points)

    async def load_daily_points(self) -> int:
        """Load today's points."""

        async def structured_read() -> int:
            return (await self._sqlite.load_points()).daily_points

        async def kv_read() -> int:
            return await self._kv_read_int(EntityKind.DAILY_POINTS)

        return await self._read(EntityKind.DAILY_POINTS, structured_read, kv_read, 0)

    async def save_last_activity_date(self, date: str | None) -> None:
        async def structured_write() -> None:
            await self._sqlite.update_last_activity_date(date)

        async def kv_write() -> None:
            if date is None:
                await self.kv.remove(EntityKind.LAST_ACTIVITY_DATE.value)
            else:
                await self.kv.set(EntityKind.LAST_ACTIVITY_DATE.value, date)

        await self._write(EntityKind.LAST_ACTIVITY_DATE, structured_write, kv_write)

    async def load_last_activity_date(self) -> str | None:
        async def structured_read() -> str | None:
            return (await self._sqlite.load_points()).last_activity_date

        async def kv_read() -> str | None:
            return await self.kv.get(EntityKind.LAST_ACTIVITY_DATE.value) or None

        return await self._read(EntityKind.LAST_ACTIVITY_DATE, structured_read, kv_read, None)

    # ------------------------------------------------------------------
    # Loaded preset id (key-value only)
    # ------------------------------------------------------------------

    async def save_loaded_preset_id(self, preset_id: str | None) -> None:
        async def kv_write() -> None:
            await self.kv.set(EntityKind.LOADED_PRESET_ID.value, preset_id or "")

        await self._write(EntityKind.LOADED_PRESET_ID, None, kv_write)

    async def load_loaded_preset_id(self) -> str | None:
        async def kv_read() -> str | None:
            return await self.kv.get(EntityKind.LOADED_PRESET_ID.value) or None

        return await self._read(EntityKind.LOADED_PRESET_ID, None, kv_read, None)

    # ------------------------------------------------------------------
    # Completed tasks
    # ------------------------------------------------------------------

    async def save_completed_tasks(self, tasks: list[CompletedTask]) -> None:
        """Replace all completed tasks."""

        async def structured_write() -> None:
            await self._sqlite.save_completed_tasks(tasks)

        async def kv_write() -> None:
            await self._kv_write_completed_tasks(tasks)

        await self._write(EntityKind.COMPLETED_TASKS, structured_write, kv_write)

    async def load_completed_tasks(self) -> list[CompletedTask]:
        """Load all completed tasks."""

        async def structured_read() -> list[CompletedTask]:
            return await self._sqlite.load_completed_tasks()

        return await self._read(
            EntityKind.COMPLETED_TASKS, structured_read, self._kv_read_completed_tasks, []
        )

    async def add_completed_task(self, task: CompletedTask) -> None:
        """Insert or replace the completion for (activity_id, date)."""

        async def structured_write() -> None:
            await self._sqlite.add_completed_task(task)

        async def kv_write() -> None:
            existing = await self.load_completed_tasks()
            await self._kv_write_completed_tasks(
                [t for t in existing if t.key != task.key] + [task]
            )

        def journal(changes: MergeJournal) -> None:
            changes.touch_task(task.activity_id, task.date)

        await self._write(EntityKind.COMPLETED_TASKS, structured_write, kv_write, journal)

    async def remove_completed_task(self, activity_id: str, date: str) -> None:
        """Remove the completion for (activity_id, date) if present."""

        async def structured_write() -> None:
            await self._sqlite.remove_completed_task(activity_id, date)

        async def kv_write() -> None:
            existing = await self.load_completed_tasks()
            await self._kv_write_completed_tasks(
                [t for t in existing if t.key != (activity_id, date)]
            )

        def journal(changes: MergeJournal) -> None:
            changes.touch_task(activity_id, date)

        await self._write(EntityKind.COMPLETED_TASKS, structured_write, kv_write, journal)

    # ------------------------------------------------------------------
    # Completing activities
    # ------------------------------------------------------------------

    async def complete_activity(self, activity: Activity, day: str | None = None) -> bool:
        """Mark an activity done for a day and award its points.

        Args:
            activity: The activity being completed.
            day: Day string; defaults to today.

        Returns:
            False if the activity was already completed that day.
        """
        await self._ensure_initialized()
        day = day or day_string()
        task = CompletedTask(id=new_id(), activity_id=activity.id, date=day, points=activity.points)

        if self._structured_ok:
            try:
                await self._require_reconciled(*COMPLETION_KINDS)
                recorded = await self._sqlite.record_completion(task)
            except _STORE_ERRORS as e:
                logger.error(f"Failed to record completion in structured store: {e}")
            else:
                for kind in COMPLETION_KINDS:
                    await self._mark_written(kind, StorageSource.STRUCTURED)
                return recorded

        existing = await self.load_completed_tasks()
        if any(t.key == task.key for t in existing):
            return False
        await self.add_completed_task(task)
        await self._add_points(EntityKind.TOTAL_POINTS, task.points)
        await self._add_points(EntityKind.DAILY_POINTS, task.points)
        await self.save_last_activity_date(day)
        return True

    async def uncomplete_activity(self, activity_id: str, day: str | None = None) -> bool:
        """Undo a completion and take back the points it awarded.

        Returns:
            False if the activity was not completed that day.
        """
        await self._ensure_initialized()
        day = day or day_string()

        if self._structured_ok:
            try:
                await self._require_reconciled(*COMPLETION_KINDS)
                removed = await self._sqlite.revoke_completion(activity_id, day)
            except _STORE_ERRORS as e:
                logger.error(f"Failed to revoke completion in structured store: {e}")
            else:
                for kind in COMPLETION_KINDS:
                    await self._mark_written(kind, StorageSource.STRUCTURED)
                return removed is not None

        existing = await self.load_completed_tasks()
        match = next((t for t in existing if t.key == (activity_id, day)), None)
        if match is None:
            return False
        await self.remove_completed_task(activity_id, day)
        await self._add_points(EntityKind.TOTAL_POINTS, -match.points)
        await self._add_points(EntityKind.DAILY_POINTS, -match.points)
        await self.save_last_activity_date(day)
        return True

    async def recalculate_daily_points(self, day: str | None = None) -> int:
        """Recompute daily points from the day's completions.

        The stored value is only rewritten when it differs.

        Returns:
            Points earned on ``day``.
        """
        day = day or day_string()
        tasks = await self.load_completed_tasks()
        earned = sum(t.points for t in tasks if t.date == day)
        stored = await self.load_daily_points()
        if earned != stored:
            logger.info(f"Daily points corrected from {stored} to {earned} for {day}")
            await self.save_daily_points(earned)
        return earned

    # ------------------------------------------------------------------
    # Calendar sync data (key-value only)
    # ------------------------------------------------------------------

    async def save_calendar_sync_data(self, status: SyncStatus) -> None:
        async def kv_write() -> None:
            await self.kv.set(EntityKind.CALENDAR_SYNC_DATA.value, json.dumps(status.to_dict()))

        await self._write(EntityKind.CALENDAR_SYNC_DATA, None, kv_write)

    async def load_calendar_sync_data(self) -> SyncStatus:
        async def kv_read() -> SyncStatus:
            raw = await self.kv.get(EntityKind.CALENDAR_SYNC_DATA.value)
            return SyncStatus.from_dict(json.loads(raw)) if raw else SyncStatus()

        return await self._read(EntityKind.CALENDAR_SYNC_DATA, None, kv_read, SyncStatus())

    # ------------------------------------------------------------------
    # Backup / restore / wipe
    # ------------------------------------------------------------------

    async def export_all_data(self) -> AppData:
        """Aggregate every entity kind into one snapshot."""
        await self._ensure_initialized()
        (
            activities,
            presets,
            total_points,
            daily_points,
            completed_tasks,
            sync_data,
            loaded_preset_id,
            last_activity_date,
        ) = await asyncio.gather(
            self.load_activities(),
            self.load_presets(),
            self.load_total_points(),
            self.load_daily_points(),
            self.load_completed_tasks(),
            self.load_calendar_sync_data(),
            self.load_loaded_preset_id(),
            self.load_last_activity_date(),
        )
        return AppData(
            activities=activities,
            presets=presets,
            total_points=total_points,
            daily_points=daily_points,
            completed_tasks=completed_tasks,
            last_sync_date=sync_data.last_sync_date,
            synced_activities=sync_data.synced_activity_ids,
            loaded_preset_id=loaded_preset_id,
            last_activity_date=last_activity_date,
        )

    async def import_all_data(self, data: AppData) -> None:
        """Restore a snapshot.

        All writes run concurrently with no cross-entity transaction; if
        some fail the others still land, and the first failure is raised.
        """
        await self._ensure_initialized()
        results = await asyncio.gather(
            self.save_activities(data.activities),
            self.save_presets(data.presets),
            self.save_total_points(data.total_points),
            self.save_daily_points(data.daily_points),
            self.save_completed_tasks(data.completed_tasks),
            self.save_calendar_sync_data(data.sync_status),
            self.save_loaded_preset_id(data.loaded_preset_id),
            self.save_last_activity_date(data.last_activity_date),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        for failure in failures:
            logger.error(f"Import step failed: {failure}")
        if failures:
            raise failures[0]
        logger.info(
            f"Imported {len(data.presets)} presets, {len(data.completed_tasks)} completed tasks"
        )

    async def clear_all_data(self) -> None:
        """Wipe every planner entity from both stores.

        Key-value keys are removed first, then the structured tables are
        emptied. The two wipes are not one transaction: if the structured
        wipe fails, the emptied key-value copy is marked as the source of
        truth so reads still come back empty. The same happens when the
        structured store could not be opened this session, so it is wiped
        on the next start. Calendar credentials are left alone (see
        CalendarSyncService.disconnect).

        Raises:
            StorageError: If the key-value store could not be cleared.
        """
        await self._ensure_initialized()
        results = await asyncio.gather(
            *(self.kv.remove(key) for key in KV_APP_DATA_KEYS), return_exceptions=True
        )
        kv_failures = [r for r in results if isinstance(r, BaseException)]
        for failure in kv_failures:
            logger.error(f"Failed to remove key-value data: {failure}")

        self._reset_entities()
        self._journal = MergeJournal()
        if self._structured_ok:
            try:
                await self._sqlite.clear_all()
            except _STORE_ERRORS as e:
                logger.error(f"Failed to clear structured store: {e}")
                for kind in STRUCTURED_KINDS:
                    await self._mark_written(kind, StorageSource.KEY_VALUE)
        elif self.structured is not None:
            # Unopened structured store: wipe it on the next start
            for kind in STRUCTURED_KINDS:
                await self._record_fallback(kind)

        if kv_failures:
            raise kv_failures[0]
        logger.info("All planner data cleared")
