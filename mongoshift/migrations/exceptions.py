"""
Exception hierarchy for the migration engine.

Only ChangeExecutionError is recoverable: a change unit raises it to report a
domain-level failure, the runner logs it and moves on to the next unit.
Every other MigrationError aborts the run once the lock has been released.
"""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from mongoshift.migrations.models import MigrationReport


class MigrationError(Exception):
    """Base exception for migration errors."""

    def __init__(self, message: str, report: Optional["MigrationReport"] = None):
        super().__init__(message)
        self.report = report


class MigrationConfigurationError(MigrationError):
    """Raised when the runner or a change unit is misconfigured."""

    pass


class MigrationConnectionError(MigrationError):
    """Raised when the database is unavailable or not connected yet."""

    pass


class MigrationLockError(MigrationError):
    """Raised when unable to acquire migration lock."""

    pass


class ChangeExecutionError(MigrationError):
    """
    Raised by a change unit to signal a domain-level failure.

    The unit is not recorded in the ledger and is retried on the next run.
    """

    pass
