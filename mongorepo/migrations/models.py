"""Ledger records and migration definitions."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from motor.motor_asyncio import AsyncIOMotorClientSession, AsyncIOMotorCollection
from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from mongorepo.manager import MongoDbManager
    from mongorepo.repository import ObjectRepository

M = TypeVar("M", bound=BaseModel)


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


class MigrationStatus(str, Enum):
    PERFORMING = "PERFORMING"
    FAIL = "FAIL"
    SUCCESS = "SUCCESS"


class MigrationRecord(BaseModel):
    """One ledger entry - stored as {_id, startDate, endDate, status}."""

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

    id: str
    start_date: int = Field(alias="startDate")
    end_date: int | None = Field(default=None, alias="endDate")
    status: MigrationStatus

    @property
    def succeeded(self) -> bool:
        return self.status == MigrationStatus.SUCCESS

    def finish(self, status: MigrationStatus) -> MigrationRecord:
        """Copy of this record closed with ``status`` at the current time."""
        return MigrationRecord(
            id=self.id,
            start_date=self.start_date,
            end_date=now_ms(),
            status=status,
        )


class MigrationContext:
    """What a migration body gets: the transaction session and repository access.

    Every repository or collection obtained here is bound to the session, so
    the body's writes commit or roll back together.
    """

    def __init__(self, manager: MongoDbManager, session: AsyncIOMotorClientSession):
        self.manager = manager
        self.session = session

    async def repository(self, collection_name: str, model: type[M]) -> ObjectRepository[M]:
        return await self.manager.get_repository(collection_name, model, session=self.session)

    async def collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """Raw collection for shape changes; pass ``session=context.session`` to calls."""
        return await self.manager.get_collection(collection_name)


MigrationBody = Callable[[MigrationContext], Awaitable[None]]


@dataclass(frozen=True)
class Migration:
    """A named, runnable schema change. The id must never change once released."""

    id: str
    body: MigrationBody
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Migration id must be a non-empty string")


def migration(migration_id: str) -> Callable[[MigrationBody], Migration]:
    """Decorator turning an async ``body(context)`` function into a Migration."""

    def decorator(body: MigrationBody) -> Migration:
        return Migration(
            id=migration_id,
            body=body,
            description=(body.__doc__ or "").strip(),
        )

    return decorator
