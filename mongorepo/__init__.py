"""mongorepo: typed repositories and transactional migrations for MongoDB."""

__version__ = "0.1.0"
__author__ = "Mongorepo Team"

from .cursor import ObjectQuery
from .exceptions import (
    ConfigurationError,
    MigrationError,
    MigrationFailureError,
    MongoRepoError,
    UnrepairedMigrationStateError,
)
from .fields import FieldRef
from .identity import IdentityMapping, generate_id
from .manager import MongoDbManager
from .query import Predicate, Query
from .repository import ObjectRepository

__all__ = [
    "__version__",
    "__author__",
    # Query building
    "FieldRef",
    "Predicate",
    "Query",
    # Storage
    "IdentityMapping",
    "MongoDbManager",
    "ObjectQuery",
    "ObjectRepository",
    "generate_id",
    # Errors
    "ConfigurationError",
    "MigrationError",
    "MigrationFailureError",
    "MongoRepoError",
    "UnrepairedMigrationStateError",
]
