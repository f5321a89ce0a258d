"""Custom exceptions for the repository and migration layers."""

from typing import Sequence


class MongoRepoError(Exception):
    """Base exception for mongorepo errors."""

    pass


class ConfigurationError(MongoRepoError):
    """Collection or field mapping is missing or invalid."""

    pass


class MigrationError(MongoRepoError):
    """Base exception for migration runner errors."""

    pass


class UnrepairedMigrationStateError(MigrationError):
    """A previous run left ledger records that did not finish with success."""

    def __init__(self, migration_ids: Sequence[str]):
        self.migration_ids = list(migration_ids)
        super().__init__(
            "Old migrations not finished with success "
            f"({', '.join(self.migration_ids)}). Repair db state manually"
        )


class MigrationFailureError(MigrationError):
    """A migration body raised; its ledger record was marked FAIL."""

    def __init__(self, migration_id: str, cause: BaseException):
        self.migration_id = migration_id
        self.cause = cause
        super().__init__(f"Migration '{migration_id}' failed: {cause}")
