"""Schema migrations applied once each, tracked in a ledger collection."""

from .models import (
    Migration,
    MigrationBody,
    MigrationContext,
    MigrationRecord,
    MigrationStatus,
    migration,
)
from .runner import MigrationRunner

__all__ = [
    "Migration",
    "MigrationBody",
    "MigrationContext",
    "MigrationRecord",
    "MigrationRunner",
    "MigrationStatus",
    "migration",
]
