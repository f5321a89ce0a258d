"""
MongoDB connection and collection bookkeeping.

This module provides:
- MongoDB client connection via Motor (async driver)
- A per-manager collection cache with one-time index creation
- Repository construction from the configured identity fields
- Transaction scopes with fixed read/write concerns
- Health check utilities
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorClientSession,
    AsyncIOMotorCollection,
)
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, ReadPreference
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

from mongorepo.config import MongoConfig
from mongorepo.exceptions import ConfigurationError
from mongorepo.identity import IdentityMapping, generate_id
from mongorepo.repository import ObjectRepository

logger = logging.getLogger(__name__)

R = TypeVar("R")
M = TypeVar("M", bound=BaseModel)


def _index_keys(spec: str) -> list[tuple[str, int]]:
    """Parse "field", "-field" or "a,-b" into pymongo index keys."""
    keys = []
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if part.startswith("-"):
            keys.append((part[1:], DESCENDING))
        else:
            keys.append((part.lstrip("+"), ASCENDING))
    if not keys:
        raise ConfigurationError(f"Empty index specification: '{spec}'")
    return keys


def sanitize_mongodb_url(url: str) -> str:
    """Mask the credentials of a connection URL for logs and ``info()``.

    ``user:secret@`` becomes ``user:***@``; a bare ``token@`` (x509 or
    password-less credentials) becomes ``***@``.
    """
    scheme, separator, rest = url.partition("://")
    if not separator:
        return url

    authority, slash, path = rest.partition("/")
    credentials, at, hosts = authority.rpartition("@")
    if not at:
        return url

    username, colon, _ = credentials.partition(":")
    masked = f"{username}:***" if colon else "***"
    return f"{scheme}://{masked}@{hosts}{slash}{path}"


class MongoDbManager:
    """Owns one Motor client and the collections opened through it.

    Collection handles are cached per manager: the first access to a name
    creates its declared indexes, later accesses reuse the handle. ``close``
    clears the cache and closes the client.
    """

    def __init__(self, client: AsyncIOMotorClient, config: MongoConfig):
        self._client = client
        self._config = config
        self._db = client[config.db_name]
        self._collections: dict[str, AsyncIOMotorCollection] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def connect(cls, config: MongoConfig) -> MongoDbManager:
        """
        Open the client, create missing mapped collections and their indexes.
        """
        client = AsyncIOMotorClient(
            config.url,
            minPoolSize=config.pool_size,
            maxPoolSize=config.pool_size,
        )
        manager = cls(client, config)
        try:
            await manager.prepare()
        except Exception:
            await manager.close()
            raise
        logger.info(
            f"Connected to {sanitize_mongodb_url(config.url)} (db: {config.db_name})"
        )
        return manager

    async def __aenter__(self) -> MongoDbManager:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def config(self) -> MongoConfig:
        return self._config

    @property
    def client(self) -> AsyncIOMotorClient:
        if self._closed:
            raise RuntimeError("MongoDbManager is closed")
        return self._client

    async def prepare(self) -> None:
        """Create every mapped collection that does not exist and prime its indexes."""
        existing = set(await self._db.list_collection_names())
        for name in self._config.identity_fields:
            if name not in existing:
                await self._db.create_collection(name)
                logger.info(f"Created collection '{name}'")
            await self.get_collection(name)

    async def get_collection(self, name: str) -> AsyncIOMotorCollection:
        if self._closed:
            raise RuntimeError("MongoDbManager is closed")

        collection = self._collections.get(name)
        if collection is not None:
            return collection

        async with self._lock:
            collection = self._collections.get(name)
            if collection is not None:
                return collection

            collection = self._db[name]
            for spec in self._config.indexes.get(name, []):
                await collection.create_index(_index_keys(spec))
                logger.debug(f"Ensured index '{spec}' on '{name}'")
            self._collections[name] = collection
            return collection

    async def remove_collection(self, name: str) -> bool:
        """Drop a collection. Returns False if it did not exist."""
        existed = name in await self._db.list_collection_names()
        await self._db.drop_collection(name)
        self._collections.pop(name, None)
        if existed:
            logger.info(f"Dropped collection '{name}'")
        return existed

    def next_id(self) -> str:
        return generate_id()

    def identity_field(self, collection_name: str) -> str:
        id_field = self._config.identity_fields.get(collection_name)
        if id_field is None:
            raise ConfigurationError(
                f"There is no id property for collection {collection_name}"
            )
        return id_field

    async def get_repository(
        self,
        collection_name: str,
        model: type[M],
        session: AsyncIOMotorClientSession | None = None,
    ) -> ObjectRepository[M]:
        mapping = IdentityMapping(model, self.identity_field(collection_name))
        collection = await self.get_collection(collection_name)
        return ObjectRepository(collection, mapping, session)

    async def with_transaction(
        self, fn: Callable[[AsyncIOMotorClientSession], Awaitable[R]]
    ) -> R:
        """Run ``fn(session)`` in a transaction and return its result.

        Reads from the primary with local read concern; writes are
        acknowledged by the majority. The session is ended on every exit path.
        """
        async with await self.client.start_session() as session:
            return await session.with_transaction(
                fn,
                read_concern=ReadConcern("local"),
                write_concern=WriteConcern("majority"),
                read_preference=ReadPreference.PRIMARY,
            )

    async def ping(self) -> bool:
        """
        Check if MongoDB connection is healthy.
        """
        if self._closed:
            return False

        try:
            await self._client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    def info(self) -> dict[str, Any]:
        """
        Get database connection information and status.
        """
        return {
            "status": "disconnected" if self._closed else "connected",
            "url": sanitize_mongodb_url(self._config.url),
            "database": self._config.db_name,
            "pool_size": self._config.pool_size,
            "collections": sorted(self._collections),
        }

    async def close(self) -> None:
        """
        Close MongoDB connection.
        """
        if self._closed:
            return
        self._collections.clear()
        self._client.close()
        self._closed = True
        logger.info("Closed MongoDB connection")
