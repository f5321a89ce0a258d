"""
ObjectRepository

CRUD and query operations for one collection of typed records.

Methods:
- get / get_or_default / exists: lookup by identity
- get_many / get_many_as_map: batched lookup with a single $in query
- get_all / find / find_all / count / query: predicate-driven reads
- insert / replace / update / update_many: writes (update upserts)
- delete / delete_many: removals, reporting what was removed

Predicates are passed as functions receiving a ``Query`` bound to the
record model, e.g. ``repo.find_all(lambda q: q.gt("age", 18))``.
If the repository was built with a session, every call runs in it.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Generic, TypeVar

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pydantic import BaseModel

from mongorepo.cursor import ObjectQuery
from mongorepo.identity import IdentityMapping, generate_id
from mongorepo.query import ID_KEY, Predicate, Query, plain

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

PredicateFn = Callable[[Query[T]], Mapping[str, Any]]


class ObjectRepository(Generic[T]):
    """Typed repository over a single MongoDB collection."""

    def __init__(
        self,
        collection: AsyncIOMotorCollection,
        mapping: IdentityMapping[T],
        session: AsyncIOMotorClientSession | None = None,
    ):
        self.collection = collection
        self.mapping = mapping
        self.session = session

    def __repr__(self) -> str:
        return (
            f"ObjectRepository({self.collection.name!r}, {self.mapping!r}, "
            f"session={'bound' if self.session is not None else 'none'})"
        )

    def with_session(self, session: AsyncIOMotorClientSession | None) -> ObjectRepository[T]:
        """Same collection and mapping, operations bound to ``session``."""
        return ObjectRepository(self.collection, self.mapping, session)

    def generate_id(self) -> str:
        return generate_id()

    def _predicate(self, fn: PredicateFn[T]) -> Predicate:
        result = fn(Query(self.mapping.model, self.mapping.id_field))
        if not isinstance(result, Mapping):
            raise TypeError(
                f"Predicate function must return a mapping, got {type(result).__name__}"
            )
        return result if isinstance(result, Predicate) else Predicate(result)

    def _require_id(self, record: T) -> Any:
        record_id = self.mapping.get_id(record)
        if record_id is None:
            raise ValueError(
                f"{self.mapping.model.__name__} has no value for identity "
                f"field '{self.mapping.id_field}'"
            )
        return record_id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, key: Any) -> T | None:
        doc = await self.collection.find_one({ID_KEY: key}, session=self.session)
        return self.mapping.from_storage(doc) if doc is not None else None

    async def get_or_default(self, key: Any, default: T) -> T:
        record = await self.get(key)
        return record if record is not None else default

    async def exists(self, key: Any) -> bool:
        count = await self.collection.count_documents(
            {ID_KEY: key}, limit=1, session=self.session
        )
        return count > 0

    async def get_many(self, keys: Iterable[Any]) -> list[T]:
        """Records for ``keys`` in unspecified order; missing keys are skipped."""
        keys = list(keys)
        if not keys:
            return []
        cursor = self.collection.find({ID_KEY: {"$in": keys}}, session=self.session)
        docs = await cursor.to_list(length=None)
        return [self.mapping.from_storage(doc) for doc in docs]

    async def get_many_as_map(self, keys: Iterable[Any]) -> dict[Any, T]:
        """Records keyed by identity; ``None`` and repeated keys are dropped."""
        unique_keys = list(dict.fromkeys(key for key in keys if key is not None))
        records = await self.get_many(unique_keys)
        return {self.mapping.get_id(record): record for record in records}

    async def get_all(self) -> list[T]:
        docs = await self.collection.find({}, session=self.session).to_list(length=None)
        return [self.mapping.from_storage(doc) for doc in docs]

    async def count(self, fn: PredicateFn[T]) -> int:
        return await self.collection.count_documents(
            self._predicate(fn).to_filter(), session=self.session
        )

    async def find(self, fn: PredicateFn[T]) -> T | None:
        doc = await self.collection.find_one(
            self._predicate(fn).to_filter(), session=self.session
        )
        return self.mapping.from_storage(doc) if doc is not None else None

    async def find_all(self, fn: PredicateFn[T]) -> list[T]:
        cursor = self.collection.find(self._predicate(fn).to_filter(), session=self.session)
        docs = await cursor.to_list(length=None)
        return [self.mapping.from_storage(doc) for doc in docs]

    def query(self, fn: PredicateFn[T]) -> ObjectQuery[T]:
        return ObjectQuery(self.collection, self._predicate(fn), self.mapping, self.session)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, record: T) -> T:
        """Insert a new document and return the stored record.

        A record without identity is stored under a generated one; the
        returned copy carries it. Raises ``DuplicateKeyError`` if the
        identity is taken.
        """
        record = self.mapping.ensure_identity(record)
        await self.collection.insert_one(self.mapping.to_storage(record), session=self.session)
        logger.debug(
            f"Inserted {self.mapping.get_id(record)} into {self.collection.name}"
        )
        return record

    async def replace(self, record: T) -> bool:
        """Overwrite an existing document. Returns False if nothing matched."""
        record_id = self._require_id(record)
        result = await self.collection.replace_one(
            {ID_KEY: record_id}, self.mapping.to_storage(record), session=self.session
        )
        return result.matched_count > 0

    async def update(self, record: T) -> None:
        """Overwrite the document with the record's identity, creating it if absent."""
        record_id = self._require_id(record)
        await self.collection.replace_one(
            {ID_KEY: record_id},
            self.mapping.to_storage(record),
            upsert=True,
            session=self.session,
        )

    async def update_many(self, fn: PredicateFn[T], changes: Mapping[str, Any]) -> int:
        """Set ``changes`` (field name -> value) on every match. Returns modified count."""
        query = Query(self.mapping.model, self.mapping.id_field)
        fields: dict[str, Any] = {}
        for name, value in changes.items():
            path = query.prop_name(name)
            if path == ID_KEY:
                raise ValueError("The identity field cannot be changed with update_many")
            fields[path] = value
        if not fields:
            return 0
        update = {"$set": plain(fields)}
        result = await self.collection.update_many(
            self._predicate(fn).to_filter(), update, session=self.session
        )
        return result.modified_count

    async def delete(self, key: Any) -> bool:
        result = await self.collection.delete_one({ID_KEY: key}, session=self.session)
        return result.deleted_count > 0

    async def delete_many(self, fn: PredicateFn[T]) -> int:
        result = await self.collection.delete_many(
            self._predicate(fn).to_filter(), session=self.session
        )
        logger.debug(f"Deleted {result.deleted_count} documents from {self.collection.name}")
        return result.deleted_count
