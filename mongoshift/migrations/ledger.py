"""
Append-only ledger of applied change units.
"""

from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, OperationFailure

from mongoshift.core.config import MigrationSettings
from mongoshift.log.logging import logger
from mongoshift.migrations.exceptions import MigrationConnectionError, MigrationError
from mongoshift.migrations.models import ChangeRecord

CHANGE_INDEX_KEYS = [("changeId", 1), ("author", 1)]
INDEX_NOT_FOUND = 27


class ChangeLedger:
    """
    Tracks applied change units in MongoDB.

    Records are only ever inserted. A unique index on (changeId, author)
    guarantees a change is recorded once even if two runners slipped past
    the process lock.
    """

    def __init__(self, settings: MigrationSettings):
        self._settings = settings
        self._db: Optional[AsyncIOMotorDatabase] = None

    def connect(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection_name(self) -> str:
        return self._settings.changelog_collection

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        if self._db is None:
            raise MigrationConnectionError(
                "Database is not connected. Change ledger cannot access the changelog collection"
            )
        return self._db[self.collection_name]

    async def _find_change_indexes(self) -> list[tuple[str, dict]]:
        """Return (name, info) of every index keyed exactly on (changeId, author)."""
        indexes = await self._collection.index_information()
        wanted = [field for field, _ in CHANGE_INDEX_KEYS]
        return [
            (name, info)
            for name, info in indexes.items()
            if [field for field, _ in info.get("key", [])] == wanted
        ]

    async def ensure_constraint(self) -> None:
        """
        Make sure exactly one unique index covers (changeId, author).

        Ledgers written by older versions may carry a non-unique index on the
        same keys; it is dropped and recreated as unique.
        """
        collection = self._collection
        matching = await self._find_change_indexes()
        unique = [name for name, info in matching if info.get("unique")]

        if not matching:
            await collection.create_index(CHANGE_INDEX_KEYS, unique=True)
            logger.debug(
                "Index in collection {collection} was created",
                collection=self.collection_name,
                event_type="ledger_index_created",
            )
            return

        # Runs before the process lock, so another runner may drop the same
        # index between our read and our drop.
        keep = unique[0] if unique else None
        for name, _ in matching:
            if name != keep:
                try:
                    await collection.drop_index(name)
                except OperationFailure as e:
                    if e.code != INDEX_NOT_FOUND:
                        raise
                    logger.debug(
                        "Index {index} was already dropped",
                        index=name,
                        event_type="ledger_index_already_dropped",
                    )

        if keep is None:
            await collection.create_index(CHANGE_INDEX_KEYS, unique=True)
            logger.debug(
                "Index in collection {collection} was recreated",
                collection=self.collection_name,
                event_type="ledger_index_recreated",
            )

    async def is_new(self, change_id: str, author: str) -> bool:
        """True if no record matches both change_id and author."""
        entry = await self._collection.find_one({"changeId": change_id, "author": author})
        return entry is None

    async def append(self, record: ChangeRecord) -> None:
        """
        Insert a new ledger record.

        Raises:
            MigrationError: If the change was already recorded.
        """
        collection = self._collection
        try:
            await collection.insert_one(record.to_dict())
        except DuplicateKeyError as e:
            raise MigrationError(f"{record} is already recorded in {self.collection_name}") from e

    async def list_records(self) -> list[ChangeRecord]:
        """All ledger records ordered by application time."""
        cursor = self._collection.find({}).sort("appliedAt", 1)

        records = []
        async for doc in cursor:
            records.append(ChangeRecord.from_dict(doc))

        return records

    async def count(self) -> int:
        return await self._collection.count_documents({})
