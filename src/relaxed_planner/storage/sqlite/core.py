"""Core SQLiteStore class for the structured store.

Contains the SQLiteStore class with connection management and delegation
to operation modules. The connection is only ever used from inside tasks
submitted to the store's OperationQueue.
"""

import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from relaxed_planner.constants import SQLITE_TIMEOUT_SECONDS
from relaxed_planner.exceptions import InitializationError, StorageError
from relaxed_planner.models.schedule import CompletedTask, PointsTracking, Preset
from relaxed_planner.storage.sqlite import completions, points, presets
from relaxed_planner.storage.sqlite.migrations import apply_migrations, table_exists
from relaxed_planner.storage.sqlite.queue import OperationQueue
from relaxed_planner.storage.sqlite.schema import SCHEMA_SQL, SCHEMA_VERSION

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Tables whose presence marks a database written before versioning existed
_LEGACY_TABLES = ("presets", "preset_activities", "completed_tasks", "points_tracking")


def _casefold(value: Any) -> str | None:
    return value.casefold() if isinstance(value, str) else None


class SQLiteStore:
    """SQLite-backed store for presets, completed tasks and points.

    All public methods are coroutines that run their work on the
    operation queue, so calls never overlap on the single connection and
    execute in submission order.
    """

    def __init__(self, db_path: Path, queue: OperationQueue | None = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file.
            queue: Operation queue to run on. A private queue is created if omitted.
        """
        self.db_path = db_path
        self._queue = queue or OperationQueue()
        self._conn: sqlite3.Connection | None = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def queue(self) -> OperationQueue:
        return self._queue

    # ------------------------------------------------------------------
    # Connection management (queue thread only)
    # ------------------------------------------------------------------

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError(
                "Structured store is not initialized", store="sqlite", operation="connect"
            )
        return self._conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception as e:
            conn.rollback()
            if isinstance(e, sqlite3.Error):
                logger.error(f"Database transaction error: {e}")
            raise

    def _open(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            timeout=SQLITE_TIMEOUT_SECONDS,
        )
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.create_function("casefold", 1, _casefold, deterministic=True)
            self._conn = conn
            self._ensure_schema()
        except Exception:
            conn.close()
            self._conn = None
            raise

    def _detect_schema_version(self, conn: sqlite3.Connection) -> int:
        try:
            row = conn.execute(
                "SELECT MAX(version) FROM schema_version WHERE version <= ?",
                (SCHEMA_VERSION,),
            ).fetchone()
            version = row[0] if row and row[0] is not None else 0
        except sqlite3.OperationalError:
            version = 0
        if version == 0 and any(table_exists(conn, t) for t in _LEGACY_TABLES):
            return 1
        return version

    def _ensure_schema(self) -> None:
        """Create database schema if needed, applying migrations for existing databases."""
        with self._transaction() as conn:
            current_version = self._detect_schema_version(conn)

            if current_version < SCHEMA_VERSION:
                if current_version > 0:
                    apply_migrations(conn, current_version)
                conn.executescript(SCHEMA_SQL)
                conn.execute("DELETE FROM schema_version")
                conn.execute(
                    "INSERT INTO schema_version (version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )
                logger.info(
                    f"Structured store schema initialized (v{current_version} -> v{SCHEMA_VERSION})"
                )

            points.ensure_points_row(conn)

    def _close_connection(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _clear_all(self) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM preset_activities")
            conn.execute("DELETE FROM presets")
            conn.execute("DELETE FROM completed_tasks")
            points.ensure_points_row(conn)
            points.reset_points(conn)

    def _get_schema_version(self) -> int:
        try:
            row = (
                self._get_connection()
                .execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
                .fetchone()
            )
            return row[0] if row else 0
        except sqlite3.OperationalError:
            return 0

    async def _run(self, fn: Callable[..., T], *args: Any) -> T:
        return await self._queue.submit(fn, *args)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Open the database and bring the schema up to date.

        Raises:
            InitializationError: If the database cannot be opened or migrated.
        """
        if self._initialized:
            return
        try:
            await self._run(self._open)
        except (sqlite3.Error, OSError) as e:
            raise InitializationError(
                f"Cannot open structured store at {self.db_path}: {e}",
                db_path=self.db_path,
                cause=e,
            ) from e
        self._initialized = True
        logger.info(f"Structured store ready at {self.db_path}")

    async def close(self) -> None:
        """Finish queued work, close the connection and stop the queue."""
        if self._queue.is_running:
            await self._run(self._close_connection)
        await self._queue.close()
        self._initialized = False

    async def get_schema_version(self) -> int:
        """Get current database schema version (0 if unversioned)."""
        return await self._run(self._get_schema_version)

    async def clear_all(self) -> None:
        """Delete every preset, activity and completion and zero the points."""
        await self._run(self._clear_all)
        logger.info("Structured store cleared")

    # ------------------------------------------------------------------
    # Presets (delegate to presets module)
    # ------------------------------------------------------------------

    async def save_preset(self, preset: Preset) -> None:
        """Upsert a preset and replace its activities."""
        await self._run(presets.save_preset, self, preset)

    async def save_presets(self, preset_list: list[Preset]) -> None:
        """Upsert several presets in one transaction."""
        await self._run(presets.save_presets, self, preset_list)

    async def replace_presets(self, preset_list: list[Preset]) -> None:
        """Replace every stored preset with ``preset_list``."""
        await self._run(presets.replace_presets, self, preset_list)

    async def load_presets(self) -> list[Preset]:
        """Load all presets, newest first."""
        return await self._run(presets.load_presets, self)

    async def get_preset_by_id(self, preset_id: str) -> Preset | None:
        """Get a preset by id."""
        return await self._run(presets.get_preset_by_id, self, preset_id)

    async def search_presets(self, term: str) -> list[Preset]:
        """Case-insensitive substring search over names, moods and activity titles."""
        return await self._run(presets.search_presets, self, term)

    async def delete_preset(self, preset_id: str) -> bool:
        """Delete a preset and its activities."""
        return await self._run(presets.delete_preset, self, preset_id)

    async def count_presets(self) -> int:
        return await self._run(presets.count_presets, self)

    async def get_preset_stats(self) -> dict[str, int]:
        """Count presets and activities."""
        return await self._run(presets.get_preset_stats, self)

    # ------------------------------------------------------------------
    # Completed tasks (delegate to completions module)
    # ------------------------------------------------------------------

    async def save_completed_tasks(self, tasks: list[CompletedTask]) -> None:
        """Replace all completed tasks."""
        await self._run(completions.save_completed_tasks, self, tasks)

    async def add_completed_task(self, task: CompletedTask) -> None:
        """Insert or replace a completion."""
        await self._run(completions.add_completed_task, self, task)

    async def remove_completed_task(self, activity_id: str, date: str) -> bool:
        """Remove a completion."""
        return await self._run(completions.remove_completed_task, self, activity_id, date)

    async def load_completed_tasks(self) -> list[CompletedTask]:
        """Load all completions, newest first."""
        return await self._run(completions.load_completed_tasks, self)

    async def get_completed_task(self, activity_id: str, date: str) -> CompletedTask | None:
        return await self._run(completions.get_completed_task, self, activity_id, date)

    async def record_completion(self, task: CompletedTask) -> bool:
        """Record a completion and award its points atomically."""
        return await self._run(completions.record_completion, self, task)

    async def revoke_completion(self, activity_id: str, date: str) -> CompletedTask | None:
        """Remove a completion and take back its points atomically."""
        return await self._run(completions.revoke_completion, self, activity_id, date)

    # ------------------------------------------------------------------
    # Points (delegate to points module)
    # ------------------------------------------------------------------

    async def update_total_points(self, value: int) -> None:
        await self._run(points.update_total_points, self, value)

    async def update_daily_points(self, value: int) -> None:
        await self._run(points.update_daily_points, self, value)

    async def update_last_activity_date(self, date: str | None) -> None:
        await self._run(points.update_last_activity_date, self, date)

    async def save_points(
        self, total_points: int, daily_points: int, last_activity_date: str | None
    ) -> None:
        """Write every points field at once."""
        await self._run(points.save_points, self, total_points, daily_points, last_activity_date)

    async def load_points(self) -> PointsTracking:
        """Load the points singleton."""
        return await self._run(points.load_points, self)
