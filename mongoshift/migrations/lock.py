"""
Process lock backed by a unique index on the lock collection.
"""

import asyncio
import os
import socket
import time
import uuid
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from mongoshift.core.config import MigrationSettings
from mongoshift.log.logging import logger
from mongoshift.migrations.exceptions import MigrationConnectionError, MigrationLockError
from mongoshift.migrations.models import LOCK_KEY, LockRecord


class LockAttempt(str, Enum):
    """Result of a single lock insert."""

    ACQUIRED = "acquired"
    HELD = "held"


class LockManager:
    """
    Singleton mutual exclusion across runners sharing one database.

    The lock is a single document keyed by a constant. The unique index on
    `key` makes the insert atomic: exactly one concurrent runner succeeds,
    the others get a duplicate key error.
    """

    def __init__(self, settings: MigrationSettings):
        self._settings = settings
        self._db: Optional[AsyncIOMotorDatabase] = None
        self.owner = f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"

    def connect(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection_name(self) -> str:
        return self._settings.lock_collection

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        if self._db is None:
            raise MigrationConnectionError(
                "Database is not connected. Lock manager cannot access the lock collection"
            )
        return self._db[self.collection_name]

    async def initialize(self) -> None:
        """Create the unique index on the lock key."""
        await self._collection.create_index("key", unique=True)

    async def try_acquire(self) -> LockAttempt:
        """
        Insert the lock document once.

        Returns:
            LockAttempt.ACQUIRED, or LockAttempt.HELD if another runner owns it.

        Raises:
            MigrationConnectionError: If the insert fails for any other reason.
        """
        lock = LockRecord(owner=self.owner)
        collection = self._collection
        try:
            await collection.insert_one(lock.to_dict())
        except DuplicateKeyError:
            return LockAttempt.HELD
        except PyMongoError as e:
            raise MigrationConnectionError(f"Failed to insert migration lock: {e}") from e

        logger.info(
            "Migration lock acquired",
            event_type="migration_lock_acquired",
            locked_by=self.owner,
        )
        return LockAttempt.ACQUIRED

    async def acquire(self, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """
        Acquire the lock, waiting for it when configured to.

        Args:
            cancel_event: Stops the wait early once set.

        Returns:
            True if the lock is held by this manager, False otherwise.

        Raises:
            MigrationLockError: If not acquired and throw_if_cannot_obtain_lock is set.
        """
        acquired = await self.try_acquire() == LockAttempt.ACQUIRED

        if not acquired and self._settings.wait_for_lock:
            deadline = time.monotonic() + self._settings.lock_wait_timeout
            while not acquired and time.monotonic() < deadline:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Lock wait cancelled", event_type="migration_lock_cancelled")
                    break

                logger.info(
                    "Waiting for changelog lock...",
                    event_type="migration_lock_waiting",
                    poll_interval=self._settings.lock_poll_interval,
                )
                delay = min(self._settings.lock_poll_interval, max(deadline - time.monotonic(), 0))
                if await self._sleep(delay, cancel_event):
                    logger.info("Lock wait cancelled", event_type="migration_lock_cancelled")
                    break
                acquired = await self.try_acquire() == LockAttempt.ACQUIRED

        if not acquired and self._settings.throw_if_cannot_obtain_lock:
            logger.info(
                "Did not acquire process lock. Throwing exception.",
                event_type="migration_lock_failed",
            )
            raise MigrationLockError("Could not acquire process lock")

        return acquired

    @staticmethod
    async def _sleep(delay: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep for delay seconds. Returns True if cancel_event fired."""
        if cancel_event is None:
            await asyncio.sleep(delay)
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def release(self) -> None:
        """Release the lock held by this manager."""
        await self._collection.delete_one({"key": LOCK_KEY, "owner": self.owner})
        logger.info(
            "Migration lock released",
            event_type="migration_lock_released",
            locked_by=self.owner,
        )

    async def force_release(self) -> bool:
        """
        Remove the lock whoever holds it.

        Meant for clearing a lock left behind by a crashed runner.

        Returns:
            True if a lock document was deleted.
        """
        result = await self._collection.delete_one({"key": LOCK_KEY})
        logger.warning(
            "Migration lock forcibly released",
            event_type="migration_lock_force_released",
            deleted=result.deleted_count,
        )
        return result.deleted_count > 0

    async def get_holder(self) -> Optional[LockRecord]:
        doc = await self._collection.find_one({"key": LOCK_KEY})
        return LockRecord.from_dict(doc) if doc else None

    async def is_held(self) -> bool:
        return await self.get_holder() is not None

    @asynccontextmanager
    async def hold(self, cancel_event: Optional[asyncio.Event] = None) -> AsyncIterator[bool]:
        """
        Acquire the lock for the duration of the block.

        Yields whether the lock was acquired; it is released on exit only if it was.
        """
        acquired = await self.acquire(cancel_event)
        try:
            yield acquired
        finally:
            if acquired:
                await self.release()
