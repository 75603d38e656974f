"""Application root for relaxed-planner.

PlannerApp constructs every service explicitly and wires them together;
nothing in the package keeps a process-wide instance. Start order is
structured store -> persistence facade -> calendar coordinator, and close
runs in reverse.

Example:
    async with PlannerApp.from_data_dir(data_dir) as app:
        presets = await app.persistence.load_presets()
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from relaxed_planner.calendar_sync import (
    CalendarSyncService,
    GoogleCalendarClient,
    LogNotifier,
    Notifier,
)
from relaxed_planner.config.paths import database_path, default_data_dir, preferences_path
from relaxed_planner.config.planner import PlannerConfig, load_planner_config
from relaxed_planner.config.settings import GoogleSettings
from relaxed_planner.services.persistence_service import PersistenceService
from relaxed_planner.storage.kv import JsonFileKeyValueStore, KeyValueStore
from relaxed_planner.storage.sqlite import SQLiteStore

logger = logging.getLogger(__name__)


@dataclass
class PlannerApp:
    """Owns the planner's services for one session.

    Attributes:
        config: Effective planner configuration.
        kv: Key-value store shared by the facade and the coordinator.
        persistence: Persistence facade.
        calendar: Calendar sync coordinator.
        structured: Structured store, or None when disabled.
    """

    config: PlannerConfig
    kv: KeyValueStore
    persistence: PersistenceService
    calendar: CalendarSyncService
    structured: SQLiteStore | None = None
    _started: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        config: PlannerConfig,
        kv: KeyValueStore,
        db_path: Path | None = None,
        google: GoogleSettings | None = None,
        notifier: Notifier | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "PlannerApp":
        """Wire services from explicit parts.

        Args:
            config: Planner configuration.
            kv: Key-value store.
            db_path: SQLite file; required when the structured store is enabled.
            google: OAuth client settings (read from the environment if omitted).
            notifier: Reminder notifier (LogNotifier if omitted).
            transport: Optional httpx transport for the calendar client.
        """
        structured = None
        if config.storage.structured_enabled and db_path is not None:
            structured = SQLiteStore(db_path)
        google = google or GoogleSettings()
        client = GoogleCalendarClient(
            client_id=google.client_id,
            client_secret=google.client_secret,
            timeout=config.calendar.timeout_seconds,
            transport=transport,
        )
        calendar = CalendarSyncService(
            kv,
            client,
            notifier or LogNotifier(),
            calendar_id=config.calendar.calendar_id,
            timezone=config.calendar.timezone,
        )
        return cls(
            config=config,
            kv=kv,
            persistence=PersistenceService(kv, structured),
            calendar=calendar,
            structured=structured,
        )

    @classmethod
    def from_data_dir(
        cls,
        data_dir: Path | None = None,
        config: PlannerConfig | None = None,
        **kwargs: Any,
    ) -> "PlannerApp":
        """Wire services over the files in a data directory.

        Args:
            data_dir: Data directory (``~/.relaxed-planner`` if omitted).
            config: Configuration; loaded from ``config.yaml`` if omitted.
            **kwargs: Passed through to ``create``.
        """
        data_dir = data_dir or default_data_dir()
        config = config or load_planner_config(data_dir)
        kv_file = (
            Path(config.storage.preferences_file)
            if config.storage.preferences_file
            else preferences_path(data_dir)
        )
        db_file = (
            Path(config.storage.database_file)
            if config.storage.database_file
            else database_path(data_dir)
        )
        return cls.create(config, JsonFileKeyValueStore(kv_file), db_path=db_file, **kwargs)

    async def start(self, validate_calendar: bool = False) -> None:
        """Initialize services in dependency order.

        Args:
            validate_calendar: Check stored calendar credentials against the API.
        """
        if self._started:
            return
        await self.persistence.initialize()
        await self.calendar.initialize(validate=validate_calendar)
        self._started = True
        logger.debug("Planner services started")

    async def close(self) -> None:
        """Close services in reverse order."""
        await self.calendar.close()
        await self.persistence.close()
        self._started = False
        logger.debug("Planner services closed")

    async def __aenter__(self) -> "PlannerApp":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
