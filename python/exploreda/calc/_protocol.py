"""Calculation definitions, evaluation results and the parser protocol."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Protocol, runtime_checkable

from exploreda.calc._parser import Expression, parse_expression


class _NoResult:
    """Marker stored in the results cache for rows that failed to evaluate."""

    __slots__ = ()
    _instance: _NoResult | None = None

    def __new__(cls) -> _NoResult:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_RESULT"

    def __bool__(self) -> bool:
        return False

    def __reduce__(self) -> str:
        return "NO_RESULT"


NO_RESULT = _NoResult()


@runtime_checkable
class ExpressionParser(Protocol):
    """Anything that turns source text into an :class:`Expression`."""

    def __call__(self, source: str) -> Expression:
        ...


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one expression against one row."""

    success: bool
    value: Any = None
    error: Exception | None = None

    @classmethod
    def ok(cls, value: Any) -> EvaluationResult:
        return cls(success=True, value=value)

    @classmethod
    def failed(cls, error: Exception) -> EvaluationResult:
        return cls(success=False, value=NO_RESULT, error=error)


@dataclass(frozen=True)
class CalculationDefinition:
    """A derived column: result column name -> expression."""

    result_column_name: str
    expression: Expression
    name: str | None = None  # display label
    is_active: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.result_column_name, str) or not self.result_column_name.strip():
            raise ValueError("result_column_name must be a non-empty string")

    @classmethod
    def from_source(
        cls,
        result_column_name: str,
        source: str,
        parser: Callable[[str], Expression] = parse_expression,
        **kwargs: Any,
    ) -> CalculationDefinition:
        """Parse *source* and build a definition. ``ParseError`` propagates."""
        return cls(result_column_name, parser(source), **kwargs)

    @property
    def dependencies(self) -> frozenset[str]:
        return frozenset(self.expression.dependencies)

    @property
    def label(self) -> str:
        return self.name or self.result_column_name

    def evolve(self, **changes: Any) -> CalculationDefinition:
        return replace(self, **changes)
