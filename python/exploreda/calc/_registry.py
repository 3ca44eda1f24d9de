"""Ordered registry of calculation definitions keyed by result column name."""

from __future__ import annotations

from typing import Iterator

from exploreda.calc._errors import DuplicateNameError, UnknownCalculationError
from exploreda.calc._protocol import CalculationDefinition


class CalculationRegistry:
    """Insertion-ordered collection enforcing unique result column names."""

    __slots__ = ("_calculations",)

    def __init__(self) -> None:
        self._calculations: dict[str, CalculationDefinition] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._calculations

    def __iter__(self) -> Iterator[CalculationDefinition]:
        return iter(list(self._calculations.values()))

    def __len__(self) -> int:
        return len(self._calculations)

    def add(self, definition: CalculationDefinition) -> None:
        name = definition.result_column_name
        if name in self._calculations:
            raise DuplicateNameError(name)
        self._calculations[name] = definition

    def get(self, name: str) -> CalculationDefinition | None:
        return self._calculations.get(name)

    def replace(self, name: str, definition: CalculationDefinition) -> None:
        """Swap the definition registered as *name*, keeping its position.

        A rename must not collide with another registered calculation.
        """
        if name not in self._calculations:
            raise UnknownCalculationError(name)
        new_name = definition.result_column_name
        if new_name != name and new_name in self._calculations:
            raise DuplicateNameError(new_name)
        if new_name == name:
            self._calculations[name] = definition
            return
        self._calculations = {
            (new_name if key == name else key): (definition if key == name else value)
            for key, value in self._calculations.items()
        }

    def remove(self, name: str) -> CalculationDefinition | None:
        return self._calculations.pop(name, None)

    def names(self) -> list[str]:
        return list(self._calculations)

    def snapshot(self) -> list[CalculationDefinition]:
        """The definitions as a new list, in insertion order."""
        return list(self._calculations.values())
