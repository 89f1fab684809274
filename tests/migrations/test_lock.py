"""Tests for the LockManager class."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from mongoshift.core.config import MigrationSettings
from mongoshift.migrations.exceptions import MigrationConnectionError, MigrationLockError
from mongoshift.migrations.lock import LockAttempt, LockManager
from mongoshift.migrations.models import LOCK_KEY


def make_lock(fake_db, settings, **overrides):
    if overrides:
        settings = settings.model_copy(update=overrides)
    lock = LockManager(settings)
    lock.connect(fake_db)
    return lock


class TestLockManager:
    """Tests for LockManager."""

    @pytest.mark.asyncio
    async def test_requires_connection(self, settings):
        """Every data access fails before a database is bound."""
        lock = LockManager(settings)

        with pytest.raises(MigrationConnectionError):
            await lock.try_acquire()
        with pytest.raises(MigrationConnectionError):
            await lock.release()
        with pytest.raises(MigrationConnectionError):
            await lock.is_held()

    @pytest.mark.asyncio
    async def test_initialize_creates_unique_key_index(self, fake_db, settings, lock_collection):
        lock = make_lock(fake_db, settings)
        await lock.initialize()
        await lock.initialize()

        unique = [i for i in lock_collection.indexes.values() if i.get("unique")]
        assert len(unique) == 1
        assert unique[0]["key"] == [("key", 1)]

    @pytest.mark.asyncio
    async def test_acquire_and_release(self, fake_db, settings, lock_collection):
        lock = make_lock(fake_db, settings)
        await lock.initialize()

        assert await lock.try_acquire() == LockAttempt.ACQUIRED
        assert await lock.is_held() is True

        holder = await lock.get_holder()
        assert holder.owner == lock.owner
        assert holder.key == LOCK_KEY

        await lock.release()
        assert await lock.is_held() is False
        assert lock_collection.docs == []

    @pytest.mark.asyncio
    async def test_second_manager_sees_lock_held(self, fake_db, settings):
        first = make_lock(fake_db, settings)
        second = make_lock(fake_db, settings)
        await first.initialize()

        assert await first.try_acquire() == LockAttempt.ACQUIRED
        assert await second.try_acquire() == LockAttempt.HELD
        assert await second.acquire() is False

    @pytest.mark.asyncio
    async def test_release_keeps_foreign_lock(self, fake_db, settings):
        """Releasing only removes the lock this manager owns."""
        first = make_lock(fake_db, settings)
        second = make_lock(fake_db, settings)
        await first.initialize()
        await first.acquire()

        await second.release()

        assert await first.is_held() is True

    @pytest.mark.asyncio
    async def test_force_release(self, fake_db, settings):
        first = make_lock(fake_db, settings)
        other = make_lock(fake_db, settings)
        await first.initialize()
        await first.acquire()

        assert await other.force_release() is True
        assert await other.force_release() is False
        assert await first.is_held() is False

    @pytest.mark.asyncio
    async def test_driver_error_is_fatal(self, settings):
        """Insert failures other than duplicate key are connection errors."""
        db = MagicMock()
        collection = MagicMock()
        collection.insert_one = AsyncMock(side_effect=ServerSelectionTimeoutError("no servers"))
        db.__getitem__ = MagicMock(return_value=collection)

        lock = LockManager(settings)
        lock.connect(db)

        with pytest.raises(MigrationConnectionError):
            await lock.acquire()

    @pytest.mark.asyncio
    async def test_duplicate_key_reported_as_held(self, settings):
        db = MagicMock()
        collection = MagicMock()
        collection.insert_one = AsyncMock(side_effect=DuplicateKeyError("E11000"))
        db.__getitem__ = MagicMock(return_value=collection)

        lock = LockManager(settings)
        lock.connect(db)

        assert await lock.try_acquire() == LockAttempt.HELD

    @pytest.mark.asyncio
    async def test_throw_if_cannot_obtain_lock(self, fake_db, settings):
        holder = make_lock(fake_db, settings)
        await holder.initialize()
        await holder.acquire()

        lock = make_lock(fake_db, settings, throw_if_cannot_obtain_lock=True)

        with pytest.raises(MigrationLockError):
            await lock.acquire()

    @pytest.mark.asyncio
    async def test_wait_for_lock_times_out(self, fake_db, settings):
        holder = make_lock(fake_db, settings)
        await holder.initialize()
        await holder.acquire()

        lock = make_lock(fake_db, settings, wait_for_lock=True, lock_wait_timeout=0.05)
        lock.try_acquire = AsyncMock(wraps=lock.try_acquire)

        assert await lock.acquire() is False
        assert lock.try_acquire.await_count > 1

    @pytest.mark.asyncio
    async def test_wait_for_lock_acquires_after_release(self, fake_db, settings):
        holder = make_lock(fake_db, settings)
        await holder.initialize()
        await holder.acquire()

        lock = make_lock(fake_db, settings, wait_for_lock=True, lock_wait_timeout=5.0)

        async def release_later():
            await asyncio.sleep(0.05)
            await holder.release()

        acquired, _ = await asyncio.gather(lock.acquire(), release_later())

        assert acquired is True
        assert (await lock.get_holder()).owner == lock.owner

    @pytest.mark.asyncio
    async def test_wait_without_waiting_tries_once(self, fake_db, settings):
        holder = make_lock(fake_db, settings)
        await holder.initialize()
        await holder.acquire()

        lock = make_lock(fake_db, settings)
        lock.try_acquire = AsyncMock(return_value=LockAttempt.HELD)

        assert await lock.acquire() is False
        lock.try_acquire.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_event_stops_wait(self, fake_db, settings):
        holder = make_lock(fake_db, settings)
        await holder.initialize()
        await holder.acquire()

        lock = make_lock(
            fake_db, settings, wait_for_lock=True, lock_wait_timeout=60.0, lock_poll_interval=30.0
        )
        cancel = asyncio.Event()

        async def cancel_soon():
            await asyncio.sleep(0.02)
            cancel.set()

        acquired, _ = await asyncio.wait_for(
            asyncio.gather(lock.acquire(cancel), cancel_soon()), timeout=5.0
        )

        assert acquired is False

    @pytest.mark.asyncio
    async def test_cancelled_wait_raises_when_configured(self, fake_db, settings):
        holder = make_lock(fake_db, settings)
        await holder.initialize()
        await holder.acquire()

        lock = make_lock(
            fake_db,
            settings,
            wait_for_lock=True,
            throw_if_cannot_obtain_lock=True,
            lock_wait_timeout=60.0,
        )
        cancel = asyncio.Event()
        cancel.set()

        with pytest.raises(MigrationLockError):
            await lock.acquire(cancel)

    @pytest.mark.asyncio
    async def test_hold_releases_on_error(self, fake_db, settings):
        lock = make_lock(fake_db, settings)
        await lock.initialize()

        with pytest.raises(RuntimeError):
            async with lock.hold() as acquired:
                assert acquired is True
                raise RuntimeError("boom")

        assert await lock.is_held() is False

    @pytest.mark.asyncio
    async def test_hold_does_not_release_foreign_lock(self, fake_db, settings):
        holder = make_lock(fake_db, settings)
        await holder.initialize()
        await holder.acquire()

        lock = make_lock(fake_db, settings)
        async with lock.hold() as acquired:
            assert acquired is False

        assert await holder.is_held() is True


def test_owner_is_unique_per_manager():
    settings = MigrationSettings(_env_file=None)
    assert LockManager(settings).owner != LockManager(settings).owner
