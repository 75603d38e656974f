"""Configuration models for relaxed-planner.

Configuration is read from ``<data_dir>/config.yaml`` under the
``planner`` key. Every section is a dataclass that validates itself on
construction and round-trips through ``from_dict``/``to_dict``.

Example config.yaml:

    planner:
      storage:
        structured_enabled: true
      calendar:
        calendar_id: primary
        timezone: Europe/Berlin
      logging:
        level: INFO
        file_enabled: true
        rotation:
          max_size_mb: 5
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from relaxed_planner.config.paths import config_path
from relaxed_planner.constants import (
    CONFIG_SECTION_KEY,
    DEFAULT_CALENDAR_ID,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_LOG_MAX_SIZE_MB,
    DEFAULT_LOG_ROTATION_ENABLED,
    MAX_HTTP_TIMEOUT_SECONDS,
    MAX_LOG_BACKUP_COUNT,
    MAX_LOG_MAX_SIZE_MB,
    MIN_HTTP_TIMEOUT_SECONDS,
    MIN_LOG_MAX_SIZE_MB,
    VALID_LOG_LEVELS,
)
from relaxed_planner.exceptions import ValidationError

logger = logging.getLogger(__name__)


@dataclass
class StorageConfig:
    """Storage backend configuration.

    Attributes:
        structured_enabled: Use the SQLite store. When False the session
            runs on the key-value store only.
        database_file: Optional database path override.
        preferences_file: Optional key-value file path override.
    """

    structured_enabled: bool = True
    database_file: str | None = None
    preferences_file: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StorageConfig":
        return cls(
            structured_enabled=data.get("structured_enabled", True),
            database_file=data.get("database_file"),
            preferences_file=data.get("preferences_file"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "structured_enabled": self.structured_enabled,
            "database_file": self.database_file,
            "preferences_file": self.preferences_file,
        }


@dataclass
class CalendarConfig:
    """Google Calendar sync configuration.

    Attributes:
        calendar_id: Target calendar for created events.
        timezone: IANA timezone for event times. None uses the local zone.
        timeout_seconds: HTTP timeout for calendar API requests.
    """

    calendar_id: str = DEFAULT_CALENDAR_ID
    timezone: str | None = None
    timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        if not self.calendar_id or not self.calendar_id.strip():
            raise ValidationError(
                "calendar_id cannot be empty",
                field="calendar_id",
                value=self.calendar_id,
                expected="non-empty calendar id",
            )
        if self.timezone is not None:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValidationError(
                    f"Unknown timezone: {self.timezone}",
                    field="timezone",
                    value=self.timezone,
                    expected="IANA timezone name (e.g. Europe/Berlin)",
                ) from e
        if not MIN_HTTP_TIMEOUT_SECONDS <= self.timeout_seconds <= MAX_HTTP_TIMEOUT_SECONDS:
            raise ValidationError(
                "timeout_seconds out of range",
                field="timeout_seconds",
                value=self.timeout_seconds,
                expected=f"{MIN_HTTP_TIMEOUT_SECONDS}-{MAX_HTTP_TIMEOUT_SECONDS}",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CalendarConfig":
        return cls(
            calendar_id=data.get("calendar_id", DEFAULT_CALENDAR_ID),
            timezone=data.get("timezone"),
            timeout_seconds=float(data.get("timeout_seconds", DEFAULT_HTTP_TIMEOUT_SECONDS)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "calendar_id": self.calendar_id,
            "timezone": self.timezone,
            "timeout_seconds": self.timeout_seconds,
        }


@dataclass
class LogRotationConfig:
    """Configuration for log file rotation.

    Attributes:
        enabled: Whether to enable log rotation.
        max_size_mb: Maximum log file size in megabytes before rotation.
        backup_count: Number of backup files to keep.
    """

    enabled: bool = DEFAULT_LOG_ROTATION_ENABLED
    max_size_mb: int = DEFAULT_LOG_MAX_SIZE_MB
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        """Validate configuration values.

        Raises:
            ValidationError: If any configuration value is invalid.
        """
        if not MIN_LOG_MAX_SIZE_MB <= self.max_size_mb <= MAX_LOG_MAX_SIZE_MB:
            raise ValidationError(
                "max_size_mb out of range",
                field="max_size_mb",
                value=self.max_size_mb,
                expected=f"{MIN_LOG_MAX_SIZE_MB}-{MAX_LOG_MAX_SIZE_MB}",
            )
        if not 0 <= self.backup_count <= MAX_LOG_BACKUP_COUNT:
            raise ValidationError(
                "backup_count out of range",
                field="backup_count",
                value=self.backup_count,
                expected=f"0-{MAX_LOG_BACKUP_COUNT}",
            )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LogRotationConfig":
        return cls(
            enabled=data.get("enabled", DEFAULT_LOG_ROTATION_ENABLED),
            max_size_mb=data.get("max_size_mb", DEFAULT_LOG_MAX_SIZE_MB),
            backup_count=data.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "max_size_mb": self.max_size_mb,
            "backup_count": self.backup_count,
        }

    def get_max_bytes(self) -> int:
        """Get maximum log file size in bytes."""
        return self.max_size_mb * 1024 * 1024


@dataclass
class LoggingConfig:
    """Logging configuration.

    Attributes:
        level: Log level name.
        file_enabled: Write to planner.log in the data directory instead of stderr.
        rotation: Rotation settings for the log file.
    """

    level: str = DEFAULT_LOG_LEVEL
    file_enabled: bool = False
    rotation: LogRotationConfig = field(default_factory=LogRotationConfig)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate()

    def _validate(self) -> None:
        if self.level.upper() not in VALID_LOG_LEVELS:
            raise ValidationError(
                f"Invalid log level: {self.level}",
                field="level",
                value=self.level,
                expected=", ".join(VALID_LOG_LEVELS),
            )
        self.level = self.level.upper()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LoggingConfig":
        return cls(
            level=data.get("level", DEFAULT_LOG_LEVEL),
            file_enabled=data.get("file_enabled", False),
            rotation=LogRotationConfig.from_dict(data.get("rotation", {}) or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "file_enabled": self.file_enabled,
            "rotation": self.rotation.to_dict(),
        }


@dataclass
class PlannerConfig:
    """Top-level planner configuration."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlannerConfig":
        """Create config from dictionary.

        Args:
            data: The ``planner`` section of config.yaml.

        Returns:
            PlannerConfig instance.

        Raises:
            ValidationError: If any section is invalid.
        """
        return cls(
            storage=StorageConfig.from_dict(data.get("storage", {}) or {}),
            calendar=CalendarConfig.from_dict(data.get("calendar", {}) or {}),
            logging=LoggingConfig.from_dict(data.get("logging", {}) or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "storage": self.storage.to_dict(),
            "calendar": self.calendar.to_dict(),
            "logging": self.logging.to_dict(),
        }


def load_planner_config(data_dir: Path) -> PlannerConfig:
    """Load planner configuration from the data directory.

    Args:
        data_dir: Planner data directory.

    Returns:
        PlannerConfig with settings (defaults if not configured).

    Note:
        Returns defaults on error rather than raising, so a broken
        config.yaml never locks the user out of their data.
    """
    config_file = config_path(data_dir)

    if not config_file.exists():
        logger.debug(f"No config file at {config_file}, using defaults")
        return PlannerConfig()

    try:
        with open(config_file, encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}

        config = PlannerConfig.from_dict(config_data.get(CONFIG_SECTION_KEY, {}) or {})
        logger.debug(
            f"Loaded planner config: structured={config.storage.structured_enabled}, "
            f"calendar={config.calendar.calendar_id}"
        )
        return config

    except ValidationError as e:
        logger.warning(f"Invalid planner config in {config_file}: {e}")
        logger.info("Using default configuration")
        return PlannerConfig()

    except yaml.YAMLError as e:
        logger.warning(f"Failed to parse config YAML from {config_file}: {e}")
        return PlannerConfig()

    except (OSError, AttributeError) as e:
        logger.warning(f"Failed to read config from {config_file}: {e}")
        return PlannerConfig()


def save_planner_config(data_dir: Path, config: PlannerConfig) -> None:
    """Write configuration to config.yaml, preserving unrelated top-level keys.

    Args:
        data_dir: Planner data directory.
        config: Configuration to persist.
    """
    config_file = config_path(data_dir)
    existing: dict[str, Any] = {}
    if config_file.exists():
        with open(config_file, encoding="utf-8") as f:
            existing = yaml.safe_load(f) or {}

    existing[CONFIG_SECTION_KEY] = config.to_dict()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    with open(config_file, "w", encoding="utf-8") as f:
        yaml.safe_dump(existing, f, default_flow_style=False, sort_keys=False)
    logger.debug(f"Saved planner config to {config_file}")
