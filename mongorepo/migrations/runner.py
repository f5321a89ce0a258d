"""Sequential, transactional migration runner with a persisted ledger.

Each run:
1. refuses to start if any ledger record is not SUCCESS (manual repair gate);
2. walks the configured migrations in order, skipping ids already recorded;
3. records PERFORMING, runs the body inside a transaction, then records
   SUCCESS or FAIL. The first failure aborts the run.

Ledger writes happen outside the migration's transaction, so a FAIL record
survives the rollback of the body's writes.
"""

import asyncio
import logging
from collections.abc import Sequence
from functools import partial

from motor.motor_asyncio import AsyncIOMotorClientSession

from mongorepo.exceptions import MigrationFailureError, UnrepairedMigrationStateError
from mongorepo.manager import MongoDbManager
from mongorepo.migrations.models import (
    Migration,
    MigrationContext,
    MigrationRecord,
    MigrationStatus,
    now_ms,
)
from mongorepo.repository import ObjectRepository

logger = logging.getLogger(__name__)


class MigrationRunner:
    """Applies migrations exactly once each, one at a time."""

    def __init__(self, manager: MongoDbManager, migrations: Sequence[Migration]):
        seen: set[str] = set()
        for item in migrations:
            if item.id in seen:
                raise ValueError(f"Duplicate migration id: '{item.id}'")
            seen.add(item.id)

        self._manager = manager
        self._migrations = list(migrations)
        self._lock = asyncio.Lock()

    @property
    def migrations(self) -> list[Migration]:
        return list(self._migrations)

    async def _ledger(self) -> ObjectRepository[MigrationRecord]:
        return await self._manager.get_repository(
            self._manager.config.ledger_collection, MigrationRecord
        )

    async def status(self) -> list[MigrationRecord]:
        """Ledger records in configured order, followed by unknown ids."""
        ledger = await self._ledger()
        records = {record.id: record for record in await ledger.get_all()}
        ordered = [records.pop(m.id) for m in self._migrations if m.id in records]
        return ordered + sorted(records.values(), key=lambda r: r.start_date)

    async def run(self) -> list[str]:
        """Run pending migrations. Returns the ids performed by this run."""
        async with self._lock:
            logger.info("Starting migration process...")
            ledger = await self._ledger()
            records = {record.id: record for record in await ledger.get_all()}

            unrepaired = [r.id for r in records.values() if not r.succeeded]
            if unrepaired:
                logger.error(
                    f"Old migrations not finished with success: {unrepaired}. "
                    "Repair db state manually"
                )
                raise UnrepairedMigrationStateError(unrepaired)

            performed: list[str] = []
            for item in self._migrations:
                if item.id in records:
                    logger.debug(f"Migration '{item.id}' already done!")
                    continue
                await self._perform(ledger, item)
                performed.append(item.id)

            logger.info(
                f"Migration process finished with success ({len(performed)} performed)"
            )
            return performed

    async def _perform(
        self, ledger: ObjectRepository[MigrationRecord], item: Migration
    ) -> None:
        logger.info(f"Performing '{item.id}' migration...")
        record = MigrationRecord(
            id=item.id,
            start_date=now_ms(),
            end_date=None,
            status=MigrationStatus.PERFORMING,
        )
        await ledger.insert(record)

        try:
            await self._manager.with_transaction(partial(self._execute, item))
        except Exception as e:
            logger.error(f"Error during performing migration '{item.id}': {e}", exc_info=True)
            await ledger.update(record.finish(MigrationStatus.FAIL))
            logger.error("Migration process fails!")
            raise MigrationFailureError(item.id, e) from e

        await ledger.update(record.finish(MigrationStatus.SUCCESS))
        logger.info(f"Migration '{item.id}' successfully finished!")

    async def _execute(self, item: Migration, session: AsyncIOMotorClientSession) -> None:
        await item.body(MigrationContext(self._manager, session))
