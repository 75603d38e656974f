"""Custom exceptions for relaxed-planner.

This module defines a hierarchy of exceptions for consistent error handling
across storage, persistence and calendar sync. All exceptions inherit from
PlannerError, allowing callers to catch every planner error with a single
except clause if desired.

Exception hierarchy:
    PlannerError (base)
    ├── ConfigurationError
    │   └── ValidationError
    ├── StorageError
    │   ├── InitializationError
    │   ├── ConstraintViolation
    │   └── NotFoundError
    └── SyncError
        ├── CalendarNotConnectedError
        ├── AuthExpiredError
        ├── CredentialPersistenceError
        └── NetworkError
"""

from pathlib import Path
from typing import Any


class PlannerError(Exception):
    """Base exception for all relaxed-planner errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize planner error.

        Args:
            message: Error description.
            details: Optional dictionary with additional context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation."""
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(PlannerError):
    """Raised when configuration is invalid or cannot be loaded."""

    def __init__(
        self,
        message: str,
        config_file: Path | None = None,
        key: str | None = None,
    ):
        """Initialize configuration error.

        Args:
            message: Error description.
            config_file: Path to the problematic config file.
            key: The configuration key that caused the error.
        """
        details: dict[str, Any] = {}
        if config_file:
            details["config_file"] = str(config_file)
        if key:
            details["key"] = key
        super().__init__(message, details)
        self.config_file = config_file
        self.key = key


class ValidationError(ConfigurationError):
    """Raised when configuration or model values fail validation.

    Examples:
        - Unknown activity category
        - Malformed "HH:MM" time
        - Out-of-range log rotation settings
    """

    def __init__(
        self,
        message: str,
        field: str,
        value: Any = None,
        expected: str | None = None,
    ):
        """Initialize validation error.

        Args:
            message: Error description.
            field: The field that failed validation.
            value: The invalid value (truncated if too long).
            expected: Description of expected value format.
        """
        super().__init__(message)
        self.details["field"] = field
        if value is not None:
            value_str = str(value)
            self.details["value"] = value_str[:100] + "..." if len(value_str) > 100 else value_str
        if expected:
            self.details["expected"] = expected
        self.field = field
        self.value = value
        self.expected = expected


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(PlannerError):
    """Raised when a backing store operation fails.

    Storage errors are recovered locally by falling back to the secondary
    store and only reach callers when every available store has failed.
    """

    def __init__(
        self,
        message: str,
        store: str | None = None,
        operation: str | None = None,
        cause: Exception | None = None,
    ):
        """Initialize storage error.

        Args:
            message: Error description.
            store: Which store failed ("sqlite" or "kv").
            operation: The operation that failed.
            cause: Underlying exception.
        """
        details: dict[str, Any] = {}
        if store:
            details["store"] = store
        if operation:
            details["operation"] = operation
        super().__init__(message, details)
        self.store = store
        self.operation = operation
        self.cause = cause


class InitializationError(StorageError):
    """Raised when the structured store cannot be opened.

    Callers switch to key-value-only mode for the rest of the session.
    """

    def __init__(self, message: str, db_path: Path | None = None, cause: Exception | None = None):
        """Initialize initialization error.

        Args:
            message: Error description.
            db_path: Database file that could not be opened.
            cause: Underlying exception.
        """
        super().__init__(message, store="sqlite", operation="initialize", cause=cause)
        if db_path:
            self.details["db_path"] = str(db_path)
        self.db_path = db_path


class ConstraintViolation(StorageError):
    """Raised when a write breaks a uniqueness or foreign key constraint."""


class NotFoundError(StorageError):
    """Raised when a required record does not exist.

    Lookups in the persistence layer return None instead of raising; this
    is used by callers (such as the CLI) that need the record to proceed.
    """

    def __init__(self, message: str, entity: str, entity_id: str):
        """Initialize not-found error.

        Args:
            message: Error description.
            entity: Entity kind (preset, activity, ...).
            entity_id: Identifier that was looked up.
        """
        super().__init__(message)
        self.details["entity"] = entity
        self.details["id"] = entity_id
        self.entity = entity
        self.entity_id = entity_id


# =============================================================================
# Sync Errors
# =============================================================================


class SyncError(PlannerError):
    """Raised when calendar synchronization fails."""


class CalendarNotConnectedError(SyncError):
    """Raised when a sync is requested without stored credentials."""


class AuthExpiredError(SyncError):
    """Raised when the remote API rejects the token and refresh is impossible."""

    def __init__(self, message: str, status_code: int | None = None):
        """Initialize auth expired error.

        Args:
            message: Error description.
            status_code: HTTP status returned by the remote API.
        """
        details: dict[str, Any] = {}
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.status_code = status_code


class CredentialPersistenceError(SyncError):
    """Raised when credentials could not be written to the key-value store.

    The session stays connected in memory; the next start will not
    remember the connection.
    """

    def __init__(self, message: str, cause: Exception | None = None):
        """Initialize credential persistence error.

        Args:
            message: Error description.
            cause: Underlying storage exception.
        """
        super().__init__(message)
        self.cause = cause


class NetworkError(SyncError):
    """Raised when a remote call fails at the transport or API level."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
    ):
        """Initialize network error.

        Args:
            message: Error description.
            url: Request URL.
            status_code: HTTP status, if a response was received.
        """
        details: dict[str, Any] = {}
        if url:
            details["url"] = url
        if status_code is not None:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code
