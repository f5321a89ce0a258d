"""Mapping between application records and stored documents.

Records are pydantic models with one identity field. In storage that value
lives under MongoDB's reserved ``_id`` key; every other field is stored under
its own key (the alias, when one is declared).
"""

import logging
from collections.abc import Mapping
from typing import Any, Generic, TypeVar

from bson import ObjectId
from pydantic import BaseModel

from mongorepo.exceptions import ConfigurationError
from mongorepo.query import ID_KEY

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def generate_id() -> str:
    """New 24-character hex identity (ObjectId: timestamp, random, counter)."""
    return str(ObjectId())


class IdentityMapping(Generic[T]):
    """Renames a model's identity field to and from ``_id``."""

    def __init__(self, model: type[T], id_field: str):
        info = model.model_fields.get(id_field)
        if info is None:
            raise ConfigurationError(
                f"Identity field '{id_field}' is not defined on {model.__name__}"
            )
        self.model = model
        self.id_field = id_field
        self._id_key = info.alias or id_field

    def __repr__(self) -> str:
        return f"IdentityMapping({self.model.__name__}, id_field={self.id_field!r})"

    def get_id(self, record: T) -> Any:
        return getattr(record, self.id_field)

    def ensure_identity(self, record: T) -> T:
        """Return ``record``, or a copy carrying a new identity if it has none."""
        if self.get_id(record) is not None:
            return record
        new_id = generate_id()
        logger.debug(f"Generated identity {new_id} for {self.model.__name__}")
        return record.model_copy(update={self.id_field: new_id})

    def to_storage(self, record: T) -> dict[str, Any]:
        data = record.model_dump(by_alias=True)
        doc = {ID_KEY: data.pop(self._id_key)}
        doc.update(data)
        return doc

    def from_storage(self, doc: Mapping[str, Any]) -> T:
        data = dict(doc)
        data[self._id_key] = data.pop(ID_KEY, None)
        return self.model.model_validate(data)
