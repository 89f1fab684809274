"""
mongoshift: run change units against MongoDB exactly once across many processes.
"""

from mongoshift.core.config import MigrationSettings
from mongoshift.migrations import (
    ChangeExecutionError,
    ChangeLog,
    ChangeLogProvider,
    ChangeUnit,
    MigrationError,
    MigrationRunner,
    StaticChangeUnitProvider,
)

__version__ = "1.0.0"

__all__ = [
    "ChangeExecutionError",
    "ChangeLog",
    "ChangeLogProvider",
    "ChangeUnit",
    "MigrationError",
    "MigrationRunner",
    "MigrationSettings",
    "StaticChangeUnitProvider",
]
