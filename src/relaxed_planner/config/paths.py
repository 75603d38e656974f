"""Path helpers for relaxed-planner.

All planner state lives in a single data directory (``~/.relaxed-planner``
unless overridden). These helpers resolve the files inside it.
"""

from pathlib import Path

from relaxed_planner.constants import (
    CONFIG_FILE_NAME,
    DATABASE_FILE_NAME,
    DEFAULT_DATA_DIR_NAME,
    LOG_FILE_NAME,
    PREFERENCES_FILE_NAME,
)


def default_data_dir() -> Path:
    """Return the default data directory in the user's home."""
    return Path.home() / DEFAULT_DATA_DIR_NAME


def database_path(data_dir: Path) -> Path:
    return data_dir / DATABASE_FILE_NAME


def preferences_path(data_dir: Path) -> Path:
    return data_dir / PREFERENCES_FILE_NAME


def config_path(data_dir: Path) -> Path:
    return data_dir / CONFIG_FILE_NAME


def log_path(data_dir: Path) -> Path:
    return data_dir / LOG_FILE_NAME
