"""
Change unit providers.

The runner executes units in exactly the order a provider returns them, so a
provider must return a stable, deterministic sequence.
"""

import importlib
from typing import Any, Callable, Protocol, Sequence, runtime_checkable

from mongoshift.migrations.exceptions import MigrationConfigurationError
from mongoshift.migrations.models import ChangeUnit


@runtime_checkable
class ChangeUnitProvider(Protocol):
    """Supplies the ordered change units for a run."""

    def fetch_change_units(self) -> Sequence[ChangeUnit]: ...


class StaticChangeUnitProvider:
    """Provider over an explicit list of change units."""

    def __init__(self, units: Sequence[ChangeUnit]):
        self._units = list(units)

    def fetch_change_units(self) -> list[ChangeUnit]:
        return list(self._units)


class ChangeLog:
    """
    A named group of change units declared with a decorator.

    Example:
        changelog = ChangeLog("users", order=1)

        @changelog.changeset(id="001", author="alice")
        async def add_email_index(db):
            await db["users"].create_index("email", unique=True)
    """

    def __init__(self, name: str, order: int = 0):
        self.name = name
        self.order = order
        self._entries: list[tuple[int, ChangeUnit]] = []

    def changeset(
        self,
        id: str,
        author: str,
        order: int = 0,
        run_always: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register the decorated function as a change unit of this changelog."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.add(
                ChangeUnit(
                    id=id,
                    author=author,
                    action=func,
                    run_always=run_always,
                    changelog=self.name,
                ),
                order=order,
            )
            return func

        return decorator

    def add(self, unit: ChangeUnit, order: int = 0) -> None:
        self._entries.append((order, unit))

    @property
    def units(self) -> list[ChangeUnit]:
        """Units sorted by order; equal orders keep declaration order."""
        return [unit for _, unit in sorted(self._entries, key=lambda entry: entry[0])]


class ChangeLogProvider:
    """Concatenates changelogs sorted by their order (stable)."""

    def __init__(self, *changelogs: ChangeLog):
        self._changelogs = list(changelogs)

    def fetch_change_units(self) -> list[ChangeUnit]:
        units: list[ChangeUnit] = []
        for changelog in sorted(self._changelogs, key=lambda c: c.order):
            units.extend(changelog.units)
        return units


def load_provider(path: str) -> ChangeUnitProvider:
    """
    Import a provider from a "package.module:attribute" path.

    A ChangeLog attribute is wrapped in a ChangeLogProvider.

    Raises:
        MigrationConfigurationError: If the path cannot be resolved to a provider.
    """
    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise MigrationConfigurationError(
            f"Invalid provider path {path!r}, expected 'package.module:attribute'"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise MigrationConfigurationError(f"Cannot import provider module {module_name}: {e}") from e

    target = getattr(module, attribute, None)
    if target is None:
        raise MigrationConfigurationError(f"Module {module_name} has no attribute {attribute}")

    if isinstance(target, ChangeLog):
        return ChangeLogProvider(target)
    if isinstance(target, ChangeUnitProvider):
        return target

    raise MigrationConfigurationError(
        f"{path} is neither a ChangeLog nor an object with fetch_change_units()"
    )
