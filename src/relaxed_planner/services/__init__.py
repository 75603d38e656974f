"""Services for relaxed-planner business logic."""

from relaxed_planner.services.legacy_migration import (
    LegacyMigrationReport,
    get_legacy_migrations,
    migrate_from_legacy_store,
)
from relaxed_planner.services.persistence_service import PersistenceService
from relaxed_planner.services.storage_state import (
    EntityKind,
    EntityState,
    ServiceState,
    StorageSource,
    StorageStatus,
)

__all__ = [
    "EntityKind",
    "EntityState",
    "LegacyMigrationReport",
    "PersistenceService",
    "ServiceState",
    "StorageSource",
    "StorageStatus",
    "get_legacy_migrations",
    "migrate_from_legacy_store",
]
