"""
Change unit, ledger record, lock record and run report models.
"""

import inspect
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from mongoshift.migrations.exceptions import MigrationConfigurationError

LOCK_KEY = "migration_lock"


class ActionShape(str, Enum):
    """Accepted parameter lists of a change unit action."""

    NO_ARGS = "no_args"
    DATABASE = "database"
    # Two parameters, both bound to the same database handle.
    DATABASE_ALIASED = "database_aliased"


class ChangeStatus(str, Enum):
    """Outcome of a single change unit within a run."""

    APPLIED = "applied"
    REAPPLIED = "reapplied"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunStatus(str, Enum):
    """Overall outcome of a runner execution."""

    COMPLETED = "completed"
    DISABLED = "disabled"
    LOCK_NOT_ACQUIRED = "lock_not_acquired"
    ABORTED = "aborted"


class RunnerState(str, Enum):
    """Lifecycle states of MigrationRunner.execute()."""

    IDLE = "idle"
    DISABLED = "disabled"
    CONNECTING = "connecting"
    CONSTRAINT_CHECK = "constraint_check"
    LOCK_WAIT = "lock_wait"
    LOCK_NOT_ACQUIRED = "lock_not_acquired"
    RUNNING = "running"
    ABORTED = "aborted"
    RELEASING = "releasing"
    DONE = "done"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ChangeUnit:
    """
    A single idempotent change identified by (id, author).

    Attributes:
        id: Change identifier, unique per author.
        author: Author of the change.
        action: Callable taking no arguments or the database handle. May be
            a coroutine function.
        run_always: Re-run the action on every execution without writing a
            new ledger record.
        changelog: Name of the group the unit was declared in.
    """

    id: str
    author: str
    action: Callable[..., Any]
    run_always: bool = False
    changelog: str = ""

    @property
    def action_name(self) -> str:
        return getattr(self.action, "__qualname__", repr(self.action))

    def resolve_shape(self) -> ActionShape:
        """
        Classify the action's parameter list.

        Raises:
            MigrationConfigurationError: If the action takes anything other
                than zero, one or two positional parameters.
        """
        try:
            signature = inspect.signature(self.action)
        except (TypeError, ValueError) as e:
            raise MigrationConfigurationError(
                f"ChangeSet {self.id} by {self.author}: action {self.action_name} is not inspectable"
            ) from e

        positional = []
        for param in signature.parameters.values():
            if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
                positional.append(param)
            elif param.default is param.empty or param.kind in (
                param.VAR_POSITIONAL,
                param.VAR_KEYWORD,
            ):
                break
        else:
            if len(positional) == 0:
                return ActionShape.NO_ARGS
            if len(positional) == 1:
                return ActionShape.DATABASE
            if len(positional) == 2:
                return ActionShape.DATABASE_ALIASED

        raise MigrationConfigurationError(
            f"ChangeSet {self.id} by {self.author}: action {self.action_name} "
            f"has wrong arguments list, expected () or (db)"
        )


@dataclass
class ChangeRecord:
    """
    Ledger entry for an applied change unit.

    Attributes:
        change_id: Change identifier.
        author: Change author.
        applied_at: When the change was first applied.
        metadata: Diagnostic data (changelog, action, execution time).
    """

    change_id: str
    author: str
    applied_at: datetime = field(default_factory=utcnow)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_unit(cls, unit: ChangeUnit, execution_time_ms: int) -> "ChangeRecord":
        return cls(
            change_id=unit.id,
            author=unit.author,
            metadata={
                "changelog": unit.changelog,
                "action": unit.action_name,
                "execution_time_ms": execution_time_ms,
            },
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        return {
            "changeId": self.change_id,
            "author": self.author,
            "appliedAt": self.applied_at,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeRecord":
        """Create from MongoDB document."""
        return cls(
            change_id=data["changeId"],
            author=data["author"],
            applied_at=data["appliedAt"],
            metadata=data.get("metadata") or {},
        )

    def __str__(self) -> str:
        return f"ChangeSet {self.change_id} by {self.author}"


@dataclass
class LockRecord:
    """
    Singleton lock document preventing concurrent runs.

    Attributes:
        owner: Identifier of the runner holding the lock.
        acquired_at: When the lock was acquired.
    """

    owner: str
    acquired_at: datetime = field(default_factory=utcnow)
    key: str = LOCK_KEY

    def to_dict(self) -> dict:
        """Convert to dictionary for MongoDB storage."""
        return {
            "key": self.key,
            "owner": self.owner,
            "acquiredAt": self.acquired_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LockRecord":
        """Create from MongoDB document."""
        return cls(
            owner=data["owner"],
            acquired_at=data["acquiredAt"],
            key=data.get("key", LOCK_KEY),
        )


@dataclass
class ChangeOutcome:
    """Result of one change unit in a run."""

    change_id: str
    author: str
    status: ChangeStatus
    execution_time_ms: int = 0
    error: Optional[str] = None


@dataclass
class MigrationReport:
    """Summary of a runner execution."""

    status: RunStatus = RunStatus.COMPLETED
    outcomes: list[ChangeOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=utcnow)
    finished_at: Optional[datetime] = None

    def add(self, outcome: ChangeOutcome) -> None:
        self.outcomes.append(outcome)

    def with_status(self, status: ChangeStatus) -> list[ChangeOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def applied(self) -> list[ChangeOutcome]:
        return self.with_status(ChangeStatus.APPLIED)

    @property
    def reapplied(self) -> list[ChangeOutcome]:
        return self.with_status(ChangeStatus.REAPPLIED)

    @property
    def skipped(self) -> list[ChangeOutcome]:
        return self.with_status(ChangeStatus.SKIPPED)

    @property
    def failed(self) -> list[ChangeOutcome]:
        return self.with_status(ChangeStatus.FAILED)

    def finish(self, status: RunStatus) -> "MigrationReport":
        self.status = status
        self.finished_at = utcnow()
        return self

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "outcomes": [
                {
                    "change_id": o.change_id,
                    "author": o.author,
                    "status": o.status.value,
                    "execution_time_ms": o.execution_time_ms,
                    "error": o.error,
                }
                for o in self.outcomes
            ],
        }
