"""
MongoDB change unit migration system.

This module applies change units to a shared database exactly once, using a
lock document for mutual exclusion between runners and a ledger collection
to remember which units were applied.
"""

from mongoshift.migrations.exceptions import (
    ChangeExecutionError,
    MigrationConfigurationError,
    MigrationConnectionError,
    MigrationError,
    MigrationLockError,
)
from mongoshift.migrations.ledger import ChangeLedger
from mongoshift.migrations.lock import LockAttempt, LockManager
from mongoshift.migrations.models import (
    ChangeOutcome,
    ChangeRecord,
    ChangeStatus,
    ChangeUnit,
    MigrationReport,
    RunStatus,
)
from mongoshift.migrations.provider import (
    ChangeLog,
    ChangeLogProvider,
    ChangeUnitProvider,
    StaticChangeUnitProvider,
    load_provider,
)
from mongoshift.migrations.runner import MigrationRunner

__all__ = [
    "ChangeExecutionError",
    "ChangeLedger",
    "ChangeLog",
    "ChangeLogProvider",
    "ChangeOutcome",
    "ChangeRecord",
    "ChangeStatus",
    "ChangeUnit",
    "ChangeUnitProvider",
    "LockAttempt",
    "LockManager",
    "MigrationConfigurationError",
    "MigrationConnectionError",
    "MigrationError",
    "MigrationLockError",
    "MigrationReport",
    "MigrationRunner",
    "RunStatus",
    "StaticChangeUnitProvider",
    "load_provider",
]
