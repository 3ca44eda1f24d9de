"""Exception taxonomy for the calculation engine.

Structural errors (duplicate names, cycles, parse failures) are raised to the
caller and leave the manager untouched.  Evaluation errors are raised inside
the evaluator and captured per row; they never escape a batch execution.
"""

from __future__ import annotations


class CalculationError(Exception):
    """Base class for every error raised by ``exploreda.calc``."""


class DuplicateNameError(CalculationError, ValueError):
    """A calculation with the same result column name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"A calculation with result column name '{name}' already exists")
        self.name = name


class CyclicDependencyError(CalculationError, ValueError):
    """A dependency set would close (or already closes) a cycle."""

    def __init__(self, cycle: list[str] | set[str]) -> None:
        if isinstance(cycle, list):
            detail = " -> ".join(cycle)
        else:
            detail = str(sorted(cycle))
        super().__init__(f"Circular reference detected involving: {detail}")
        self.cycle = cycle


class UnknownCalculationError(CalculationError, KeyError):
    """No calculation is registered under the given result column name."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"No calculation named '{self.name}'"


class ParseError(CalculationError, ValueError):
    """Malformed expression source."""

    def __init__(self, message: str, position: int | None = None) -> None:
        if position is not None:
            message = f"Parse error at position {position}: {message}"
        else:
            message = f"Parse error: {message}"
        super().__init__(message)
        self.position = position


class EvaluationError(CalculationError):
    """An expression could not be evaluated for a single row."""


class UnresolvedReferenceError(EvaluationError):
    """A variable is neither a row field nor a computed column."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown variable: {name}")
        self.name = name


class UnknownFunctionError(EvaluationError):
    """A call names a function missing from the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown function: {name}")
        self.name = name
