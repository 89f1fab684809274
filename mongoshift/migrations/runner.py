"""
Migration runner for executing change units.
"""

import asyncio
import inspect
import time
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from mongoshift.core.config import MigrationSettings
from mongoshift.log.logging import logger
from mongoshift.migrations.exceptions import (
    ChangeExecutionError,
    MigrationConfigurationError,
    MigrationError,
)
from mongoshift.migrations.ledger import ChangeLedger
from mongoshift.migrations.lock import LockManager
from mongoshift.migrations.models import (
    ActionShape,
    ChangeOutcome,
    ChangeRecord,
    ChangeStatus,
    ChangeUnit,
    MigrationReport,
    RunnerState,
    RunStatus,
)
from mongoshift.migrations.provider import ChangeUnitProvider


class MigrationRunner:
    """
    Applies change units to a MongoDB database exactly once.

    Features:
    - Single runner per database via a lock document with a unique key
    - Ledger of applied units guarded by a unique (changeId, author) index
    - run_always units re-executed on every run without new ledger records
    - Domain failures isolated per unit; any other failure aborts the run
    - Lock released on every exit path once acquired
    """

    def __init__(
        self,
        client: Optional[AsyncIOMotorClient],
        provider: ChangeUnitProvider,
        settings: Optional[MigrationSettings] = None,
    ):
        """
        Initialize the migration runner.

        Args:
            client: Motor client for the target cluster.
            provider: Source of the ordered change units.
            settings: Runner configuration, loaded from the environment if omitted.
        """
        self._client = client
        self._provider = provider
        self._settings = settings or MigrationSettings()
        self._db: Optional[AsyncIOMotorDatabase] = None
        self.ledger = ChangeLedger(self._settings)
        self.lock = LockManager(self._settings)
        self.state = RunnerState.IDLE

    @property
    def settings(self) -> MigrationSettings:
        return self._settings

    @property
    def database(self) -> Optional[AsyncIOMotorDatabase]:
        return self._db

    def _transition(self, state: RunnerState) -> None:
        logger.debug(
            "Runner state {previous} -> {state}",
            previous=self.state.value,
            state=state.value,
            event_type="migration_state",
        )
        self.state = state

    def connect(self) -> AsyncIOMotorDatabase:
        """
        Resolve the target database and bind the ledger and lock to it.

        Raises:
            MigrationConfigurationError: If no client was given.
        """
        if self._client is None:
            raise MigrationConfigurationError("MongoClient cannot be None")

        if self._db is None:
            if self._settings.database_name:
                self._db = self._client[self._settings.database_name]
            else:
                self._db = self._client.get_default_database()
            self.ledger.connect(self._db)
            self.lock.connect(self._db)

        return self._db

    async def execute(self, cancel_event: Optional[asyncio.Event] = None) -> MigrationReport:
        """
        Run all change units supplied by the provider.

        Args:
            cancel_event: Cancels waiting for the lock once set.

        Returns:
            Report of the run. Its status is LOCK_NOT_ACQUIRED when another
            runner holds the lock, DISABLED when the runner is switched off.

        Raises:
            MigrationConfigurationError: Missing client or invalid action signature.
            MigrationLockError: Lock not acquired and configured to raise.
            MigrationError: A change unit failed with an unexpected error.
        """
        report = MigrationReport()

        if not self._settings.enabled:
            self._transition(RunnerState.DISABLED)
            logger.info("Migrations are disabled. Exiting.", event_type="migrations_disabled")
            return report.finish(RunStatus.DISABLED)

        self._transition(RunnerState.CONNECTING)
        self.connect()

        self._transition(RunnerState.CONSTRAINT_CHECK)
        await self.ledger.ensure_constraint()
        await self.lock.initialize()

        self._transition(RunnerState.LOCK_WAIT)
        if not await self.lock.acquire(cancel_event):
            self._transition(RunnerState.LOCK_NOT_ACQUIRED)
            logger.info(
                "Did not acquire process lock. Exiting.",
                event_type="migration_lock_not_acquired",
            )
            return report.finish(RunStatus.LOCK_NOT_ACQUIRED)

        logger.info(
            "Acquired process lock, starting the data migration sequence",
            event_type="migrations_starting",
        )
        self._transition(RunnerState.RUNNING)

        aborted: Optional[Exception] = None
        try:
            await self._execute_change_units(report)
        except Exception as e:
            aborted = e
            self._transition(RunnerState.ABORTED)
            report.finish(RunStatus.ABORTED)
            if isinstance(e, MigrationError):
                e.report = report
            logger.error(
                "Migration run aborted",
                event_type="migrations_aborted",
                error=str(e),
            )
            raise
        finally:
            self._transition(RunnerState.RELEASING)
            try:
                await self.lock.release()
            except Exception as release_error:
                if aborted is None:
                    raise
                # Keep the abort as the reported error.
                logger.error(
                    "Failed to release migration lock after abort",
                    event_type="migration_lock_release_failed",
                    error=str(release_error),
                )

        self._transition(RunnerState.DONE)
        report.finish(RunStatus.COMPLETED)
        logger.info(
            "Migration run finished: {applied} applied, {reapplied} reapplied, "
            "{skipped} skipped, {failed} failed",
            applied=len(report.applied),
            reapplied=len(report.reapplied),
            skipped=len(report.skipped),
            failed=len(report.failed),
            event_type="migrations_finished",
        )
        return report

    async def _execute_change_units(self, report: MigrationReport) -> None:
        for unit in self._provider.fetch_change_units():
            report.add(await self._execute_change_unit(unit))

    async def _execute_change_unit(self, unit: ChangeUnit) -> ChangeOutcome:
        if await self.ledger.is_new(unit.id, unit.author):
            status = ChangeStatus.APPLIED
        elif unit.run_always:
            status = ChangeStatus.REAPPLIED
        else:
            logger.info(
                "ChangeSet {change_id} by {author} passed over",
                change_id=unit.id,
                author=unit.author,
                event_type="change_skipped",
            )
            return ChangeOutcome(unit.id, unit.author, ChangeStatus.SKIPPED)

        # Only units about to run need a valid signature.
        shape = unit.resolve_shape()

        start_time = time.time()
        try:
            await self._invoke(unit, shape)
        except ChangeExecutionError as e:
            execution_time_ms = int((time.time() - start_time) * 1000)
            logger.error(
                "ChangeSet {change_id} by {author} failed",
                change_id=unit.id,
                author=unit.author,
                event_type="change_failed",
                error=str(e),
            )
            return ChangeOutcome(
                unit.id,
                unit.author,
                ChangeStatus.FAILED,
                execution_time_ms=execution_time_ms,
                error=str(e),
            )
        except MigrationError:
            raise
        except Exception as e:
            raise MigrationError(f"ChangeSet {unit.id} by {unit.author} raised: {e}") from e

        execution_time_ms = int((time.time() - start_time) * 1000)
        if status == ChangeStatus.APPLIED:
            await self.ledger.append(ChangeRecord.for_unit(unit, execution_time_ms))

        logger.info(
            "ChangeSet {change_id} by {author} {status}",
            change_id=unit.id,
            author=unit.author,
            status=status.value,
            event_type=f"change_{status.value}",
            execution_time_ms=execution_time_ms,
        )
        return ChangeOutcome(unit.id, unit.author, status, execution_time_ms=execution_time_ms)

    async def _invoke(self, unit: ChangeUnit, shape: ActionShape) -> Any:
        if shape == ActionShape.NO_ARGS:
            logger.debug("method with no params", change_id=unit.id)
            result = unit.action()
        elif shape == ActionShape.DATABASE:
            logger.debug("method with DB argument", change_id=unit.id)
            result = unit.action(self._db)
        else:
            logger.debug("method with aliased DB arguments", change_id=unit.id)
            result = unit.action(self._db, self._db)

        if inspect.isawaitable(result):
            result = await result
        return result

    async def is_execution_in_progress(self) -> bool:
        """True if any runner currently holds the lock on the target database."""
        self.connect()
        return await self.lock.is_held()

    def close(self) -> None:
        """Close the Motor client."""
        if self._client is not None:
            self._client.close()
