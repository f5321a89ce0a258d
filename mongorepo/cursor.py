"""Deferred, immutable read operations over one collection."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from motor.motor_asyncio import (
    AsyncIOMotorClientSession,
    AsyncIOMotorCollection,
    AsyncIOMotorCursor,
)
from pymongo import ASCENDING, DESCENDING

from mongorepo.fields import FieldRef
from mongorepo.identity import IdentityMapping
from mongorepo.query import Predicate, Query

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ObjectQuery(Generic[T]):
    """Predicate plus limit/skip/sort, executed only by a terminal call.

    ``limit``, ``skip`` and ``sort`` return new cursors, so a cursor can be
    shared and refined without affecting earlier references. ``count`` always
    reports every match regardless of limit and skip.
    """

    collection: AsyncIOMotorCollection
    predicate: Predicate
    mapping: IdentityMapping[Any]
    session: AsyncIOMotorClientSession | None = None
    limit_value: int | None = None
    skip_value: int | None = None
    sort_value: tuple[str, bool] | None = None

    def limit(self, limit: int) -> ObjectQuery[T]:
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")
        return dataclasses.replace(self, limit_value=limit)

    def skip(self, skip: int) -> ObjectQuery[T]:
        if skip < 0:
            raise ValueError(f"skip must be non-negative, got {skip}")
        return dataclasses.replace(self, skip_value=skip)

    def sort(self, field: FieldRef[Any] | str, ascending: bool = True) -> ObjectQuery[T]:
        query = Query(self.mapping.model, self.mapping.id_field)
        return dataclasses.replace(self, sort_value=(query.prop_name(field), ascending))

    def _prepare(self, limit: int | None = None) -> AsyncIOMotorCursor:
        cursor = self.collection.find(self.predicate.to_filter(), session=self.session)
        if self.sort_value is not None:
            field, ascending = self.sort_value
            cursor = cursor.sort(field, ASCENDING if ascending else DESCENDING)
        if self.skip_value:
            cursor = cursor.skip(self.skip_value)
        limit = limit if limit is not None else self.limit_value
        if limit:
            cursor = cursor.limit(limit)
        return cursor

    async def one(self) -> T | None:
        # limit(0) would mean "no limit" to the server
        if self.limit_value == 0:
            return None
        docs = await self._prepare(limit=1).to_list(length=1)
        return self.mapping.from_storage(docs[0]) if docs else None

    async def array(self) -> list[T]:
        if self.limit_value == 0:
            return []
        docs = await self._prepare().to_list(length=None)
        logger.debug(f"Fetched {len(docs)} documents from {self.collection.name}")
        return [self.mapping.from_storage(doc) for doc in docs]

    async def count(self) -> int:
        return await self.collection.count_documents(
            self.predicate.to_filter(), session=self.session
        )

    async def exists(self) -> bool:
        return await self.count() > 0

    async def stream(self) -> AsyncIterator[T]:
        """Yield matching records without loading them all at once."""
        if self.limit_value == 0:
            return
        async for doc in self._prepare():
            yield self.mapping.from_storage(doc)

    def __aiter__(self) -> AsyncIterator[T]:
        return self.stream()
