"""Logging configuration for relaxed-planner.

The package logger owns its handlers and does not propagate, so
reconfiguring (e.g. once per CLI invocation in tests) never duplicates
output.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from relaxed_planner.config.planner import LogRotationConfig
from relaxed_planner.constants import LOGGER_NAMESPACE, TOKEN_LOG_PREFIX_LENGTH


def configure_logging(
    log_level: str,
    log_file: Path | None = None,
    log_rotation: LogRotationConfig | None = None,
) -> logging.Logger:
    """Configure logging for the planner package.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional log file path. Stream logging to stderr is used otherwise.
        log_rotation: Optional log rotation configuration.

    Returns:
        The configured package logger.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    planner_logger = logging.getLogger(LOGGER_NAMESPACE)
    planner_logger.setLevel(level)
    planner_logger.propagate = False

    # Close and drop handlers from a previous configure call
    for handler in list(planner_logger.handlers):
        handler.close()
    planner_logger.handlers.clear()

    if level == logging.DEBUG:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s",
            datefmt="%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%H:%M:%S",
        )

    if log_file:
        try:
            rotation = log_rotation or LogRotationConfig()
            log_file.parent.mkdir(parents=True, exist_ok=True)

            file_handler: logging.Handler
            if rotation.enabled:
                file_handler = RotatingFileHandler(
                    log_file,
                    mode="a",
                    maxBytes=rotation.get_max_bytes(),
                    backupCount=rotation.backup_count,
                    encoding="utf-8",
                )
            else:
                file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")

            file_handler.setFormatter(formatter)
            planner_logger.addHandler(file_handler)
            return planner_logger
        except OSError as e:
            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(formatter)
            planner_logger.addHandler(stream_handler)
            planner_logger.warning(f"Could not set up file logging to {log_file}: {e}")
            return planner_logger

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    planner_logger.addHandler(stream_handler)
    return planner_logger


def mask_token(token: str | None) -> str:
    """Shorten a secret for log output."""
    if not token:
        return "<none>"
    return f"{token[:TOKEN_LOG_PREFIX_LENGTH]}..."
