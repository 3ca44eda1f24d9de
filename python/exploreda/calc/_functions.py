"""Function library and builtin implementations for expression evaluation."""

from __future__ import annotations

import datetime
import math
import numbers
import re
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from exploreda.calc._errors import EvaluationError

NAN = float("nan")

RETURN_TYPES = frozenset({"number", "string", "boolean", "any"})

# plain decimal or exponent notation; no digit separators, no inf/nan spellings
_NUMBER_RE = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


# ---------------------------------------------------------------------------
# Coercion helpers shared with the evaluator
# ---------------------------------------------------------------------------


def to_number(value: Any) -> int | float:
    """Best-effort cast to a number; NaN when the value has no numeric reading.

    Booleans become 1/0, decimal strings such as ``"-1.5e3"`` are parsed (the
    empty string is 0; ``"1_000"``, ``"inf"`` and ``"nan"`` are not numbers),
    ``None`` and everything else become NaN.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, numbers.Real):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        if _NUMBER_RE.fullmatch(text) is None:
            return NAN
        return float(text)
    return NAN


def is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def is_truthy(value: Any) -> bool:
    """``None``, ``False``, ``0``, NaN and ``""`` are false; the rest is true."""
    if value is None:
        return False
    if is_nan(value):
        return False
    return bool(value)


def to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def to_datetime(value: Any) -> datetime.datetime:
    """Read a date from a ``date``/``datetime``, ISO-8601 string or epoch milliseconds."""
    if isinstance(value, datetime.datetime):
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime.combine(value, datetime.time())
    if isinstance(value, str):
        return datetime.datetime.fromisoformat(value.strip())
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        try:
            return datetime.datetime.fromtimestamp(value / 1000, tz=datetime.timezone.utc)
        except (OSError, OverflowError) as e:
            raise ValueError(f"timestamp {value!r} is out of range") from e
    raise ValueError(f"cannot interpret {value!r} as a date")


def _numbers(args: list[Any]) -> list[float]:
    """Flatten *args* and coerce to numbers, skipping absent values."""
    result: list[float] = []
    for v in args:
        if isinstance(v, (list, tuple)):
            result.extend(_numbers(list(v)))
        elif v is not None:
            result.append(to_number(v))
    return result


def _single_number(args: list[Any]) -> float:
    return to_number(args[0])


def power(base: Any, exponent: Any) -> float:
    """``base ** exponent`` in float arithmetic, shared by ``^`` and ``pow``.

    NaN for NaN operands or a negative base with a fractional exponent.  A
    result too large for a float becomes signed infinity.  Raises
    ZeroDivisionError for zero to a negative power and OverflowError for an
    operand too large to convert to a float.
    """
    b, e = to_number(base), to_number(exponent)
    if is_nan(b) or is_nan(e):
        return NAN
    b, e = float(b), float(e)
    if b < 0 and not e.is_integer():
        return NAN
    try:
        return b ** e
    except OverflowError:
        if b < 0 and e % 2 == 1:
            return -math.inf
        return math.inf


# ---------------------------------------------------------------------------
# FunctionDefinition
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FunctionDefinition:
    """A callable library function with its arity and return type contract.

    ``implementation`` receives the list of evaluated arguments.
    ``max_args=None`` marks a variadic function.
    """

    name: str
    category: str
    implementation: Callable[[list[Any]], Any]
    min_args: int = 0
    max_args: int | None = None
    return_type: str = "any"
    description: str = ""
    syntax: str = ""

    def __post_init__(self) -> None:
        if self.return_type not in RETURN_TYPES:
            raise ValueError(f"unknown return type {self.return_type!r}")

    def check_arity(self, count: int) -> None:
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            if self.max_args is None:
                expected = f"at least {self.min_args}"
            elif self.min_args == self.max_args:
                expected = f"exactly {self.min_args}"
            else:
                expected = f"{self.min_args} to {self.max_args}"
            raise EvaluationError(
                f"{self.name} expects {expected} argument(s), got {count}"
            )

    def __call__(self, args: list[Any]) -> Any:
        self.check_arity(len(args))
        return self.implementation(args)


# ---------------------------------------------------------------------------
# Math
# ---------------------------------------------------------------------------


def _builtin_sum(args: list[Any]) -> float:
    return sum(_numbers(args))


def _builtin_abs(args: list[Any]) -> float:
    return abs(_single_number(args))


def _builtin_round(args: list[Any]) -> float:
    x = _single_number(args)
    digits = int(to_number(args[1])) if len(args) > 1 else 0
    if is_nan(x):
        return NAN
    return round(x, digits)


def _builtin_floor(args: list[Any]) -> float:
    x = _single_number(args)
    return x if is_nan(x) else math.floor(x)


def _builtin_ceil(args: list[Any]) -> float:
    x = _single_number(args)
    return x if is_nan(x) else math.ceil(x)


def _builtin_sqrt(args: list[Any]) -> float:
    x = _single_number(args)
    if x < 0:
        raise ValueError("sqrt: negative argument")
    return math.sqrt(x)


def _builtin_pow(args: list[Any]) -> float:
    return power(args[0], args[1])


def _builtin_log(args: list[Any]) -> float:
    x = _single_number(args)
    if x <= 0:
        raise ValueError("log: argument must be positive")
    if len(args) > 1:
        return math.log(x, to_number(args[1]))
    return math.log(x)


def _builtin_exp(args: list[Any]) -> float:
    return math.exp(_single_number(args))


def _builtin_mod(args: list[Any]) -> float:
    x, y = to_number(args[0]), to_number(args[1])
    if y == 0:
        raise ZeroDivisionError("mod: division by zero")
    return math.fmod(x, y)


def _builtin_min(args: list[Any]) -> float:
    nums = _numbers(args)
    if not nums:
        raise ValueError("min: no numeric values")
    return min(nums)


def _builtin_max(args: list[Any]) -> float:
    nums = _numbers(args)
    if not nums:
        raise ValueError("max: no numeric values")
    return max(nums)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def _stat_values(name: str, args: list[Any]) -> np.ndarray:
    nums = _numbers(args)
    if not nums:
        raise ValueError(f"{name}: no numeric values")
    return np.asarray(nums, dtype=float)


def _builtin_average(args: list[Any]) -> float:
    return float(np.mean(_stat_values("average", args)))


def _builtin_median(args: list[Any]) -> float:
    return float(np.median(_stat_values("median", args)))


def _builtin_variance(args: list[Any]) -> float:
    # population variance, matching standardDeviation
    return float(np.var(_stat_values("variance", args)))


def _builtin_stdev(args: list[Any]) -> float:
    return float(np.std(_stat_values("standardDeviation", args)))


def _builtin_count(args: list[Any]) -> int:
    """Number of non-null arguments."""
    return sum(1 for v in args if v is not None)


# ---------------------------------------------------------------------------
# String
# ---------------------------------------------------------------------------


def _builtin_concat(args: list[Any]) -> str:
    return "".join(to_text(a) for a in args)


def _builtin_upper(args: list[Any]) -> str:
    return to_text(args[0]).upper()


def _builtin_lower(args: list[Any]) -> str:
    return to_text(args[0]).lower()


def _builtin_trim(args: list[Any]) -> str:
    return to_text(args[0]).strip()


def _builtin_length(args: list[Any]) -> int:
    return len(to_text(args[0]))


def _builtin_substring(args: list[Any]) -> str:
    """substring(text, start, end?) with 0-based, end-exclusive indices.

    Out-of-range indices are clamped and reversed bounds are swapped.
    """
    text = to_text(args[0])

    def _index(value: Any) -> int:
        n = to_number(value)
        if is_nan(n):
            return 0
        return max(0, min(len(text), int(n)))

    start = _index(args[1])
    end = _index(args[2]) if len(args) > 2 else len(text)
    if start > end:
        start, end = end, start
    return text[start:end]


def _builtin_replace(args: list[Any]) -> str:
    return to_text(args[0]).replace(to_text(args[1]), to_text(args[2]))


def _builtin_contains(args: list[Any]) -> bool:
    return to_text(args[1]) in to_text(args[0])


# ---------------------------------------------------------------------------
# Date
# ---------------------------------------------------------------------------

_DATE_COMPONENTS: dict[str, Callable[[datetime.datetime], int]] = {
    "year": lambda d: d.year,
    "month": lambda d: d.month,
    "day": lambda d: d.day,
    "quarter": lambda d: (d.month - 1) // 3 + 1,
    "week": lambda d: d.isocalendar()[1],
    "weekday": lambda d: d.isoweekday(),
    "hour": lambda d: d.hour,
    "minute": lambda d: d.minute,
    "second": lambda d: d.second,
}


def _date_component(component: str) -> Callable[[list[Any]], int]:
    getter = _DATE_COMPONENTS[component]

    def _builtin(args: list[Any]) -> int:
        return getter(to_datetime(args[0]))

    _builtin.__name__ = f"_builtin_{component}"
    return _builtin


def _builtin_extract_date_component(args: list[Any]) -> int:
    component = to_text(args[1]).lower()
    getter = _DATE_COMPONENTS.get(component)
    if getter is None:
        raise ValueError(f"extractDateComponent: unknown component {component!r}")
    return getter(to_datetime(args[0]))


def _builtin_format_date(args: list[Any]) -> str:
    return to_datetime(args[0]).strftime(to_text(args[1]))


# ---------------------------------------------------------------------------
# Logic and conversion
# ---------------------------------------------------------------------------


def _builtin_and(args: list[Any]) -> bool:
    return all(is_truthy(a) for a in args)


def _builtin_or(args: list[Any]) -> bool:
    return any(is_truthy(a) for a in args)


def _builtin_not(args: list[Any]) -> bool:
    return not is_truthy(args[0])


def _builtin_coalesce(args: list[Any]) -> Any:
    for a in args:
        if a is not None:
            return a
    return None


def _builtin_is_null(args: list[Any]) -> bool:
    return args[0] is None


def _builtin_number(args: list[Any]) -> float:
    return to_number(args[0])


def _builtin_text(args: list[Any]) -> str:
    return to_text(args[0])


# ---------------------------------------------------------------------------
# Builtin table
# ---------------------------------------------------------------------------

_BUILTINS: tuple[FunctionDefinition, ...] = (
    # math
    FunctionDefinition("sum", "math", _builtin_sum, 0, None, "number",
                       "Sum of the numeric arguments", "sum(a, b, ...)"),
    FunctionDefinition("abs", "math", _builtin_abs, 1, 1, "number",
                       "Absolute value", "abs(x)"),
    FunctionDefinition("round", "math", _builtin_round, 1, 2, "number",
                       "Round to a number of decimal digits", "round(x, digits?)"),
    FunctionDefinition("floor", "math", _builtin_floor, 1, 1, "number",
                       "Largest integer not greater than x", "floor(x)"),
    FunctionDefinition("ceil", "math", _builtin_ceil, 1, 1, "number",
                       "Smallest integer not less than x", "ceil(x)"),
    FunctionDefinition("sqrt", "math", _builtin_sqrt, 1, 1, "number",
                       "Square root", "sqrt(x)"),
    FunctionDefinition("pow", "math", _builtin_pow, 2, 2, "number",
                       "x raised to the power y", "pow(x, y)"),
    FunctionDefinition("log", "math", _builtin_log, 1, 2, "number",
                       "Logarithm, natural unless a base is given", "log(x, base?)"),
    FunctionDefinition("exp", "math", _builtin_exp, 1, 1, "number",
                       "e raised to the power x", "exp(x)"),
    FunctionDefinition("mod", "math", _builtin_mod, 2, 2, "number",
                       "Remainder of x / y", "mod(x, y)"),
    FunctionDefinition("min", "math", _builtin_min, 1, None, "number",
                       "Smallest numeric argument", "min(a, b, ...)"),
    FunctionDefinition("max", "math", _builtin_max, 1, None, "number",
                       "Largest numeric argument", "max(a, b, ...)"),
    # statistics
    FunctionDefinition("average", "statistics", _builtin_average, 1, None, "number",
                       "Arithmetic mean", "average(a, b, ...)"),
    FunctionDefinition("mean", "statistics", _builtin_average, 1, None, "number",
                       "Arithmetic mean (alias of average)", "mean(a, b, ...)"),
    FunctionDefinition("median", "statistics", _builtin_median, 1, None, "number",
                       "Median", "median(a, b, ...)"),
    FunctionDefinition("variance", "statistics", _builtin_variance, 1, None, "number",
                       "Population variance", "variance(a, b, ...)"),
    FunctionDefinition("standardDeviation", "statistics", _builtin_stdev, 1, None, "number",
                       "Population standard deviation", "standardDeviation(a, b, ...)"),
    FunctionDefinition("stdev", "statistics", _builtin_stdev, 1, None, "number",
                       "Population standard deviation (alias)", "stdev(a, b, ...)"),
    FunctionDefinition("count", "statistics", _builtin_count, 0, None, "number",
                       "Number of non-null arguments", "count(a, b, ...)"),
    # string
    FunctionDefinition("concat", "string", _builtin_concat, 0, None, "string",
                       "Concatenate arguments as text", "concat(a, b, ...)"),
    FunctionDefinition("upper", "string", _builtin_upper, 1, 1, "string",
                       "Upper-case text", "upper(text)"),
    FunctionDefinition("lower", "string", _builtin_lower, 1, 1, "string",
                       "Lower-case text", "lower(text)"),
    FunctionDefinition("trim", "string", _builtin_trim, 1, 1, "string",
                       "Strip surrounding whitespace", "trim(text)"),
    FunctionDefinition("length", "string", _builtin_length, 1, 1, "number",
                       "Number of characters", "length(text)"),
    FunctionDefinition("substring", "string", _builtin_substring, 2, 3, "string",
                       "Characters from start up to end (exclusive)",
                       "substring(text, start, end?)"),
    FunctionDefinition("replace", "string", _builtin_replace, 3, 3, "string",
                       "Replace every occurrence of old with new",
                       "replace(text, old, new)"),
    FunctionDefinition("contains", "string", _builtin_contains, 2, 2, "boolean",
                       "Whether text contains part", "contains(text, part)"),
    # date
    FunctionDefinition("year", "date", _date_component("year"), 1, 1, "number",
                       "Year of a date", "year(date)"),
    FunctionDefinition("month", "date", _date_component("month"), 1, 1, "number",
                       "Month (1-12) of a date", "month(date)"),
    FunctionDefinition("day", "date", _date_component("day"), 1, 1, "number",
                       "Day of month of a date", "day(date)"),
    FunctionDefinition("quarter", "date", _date_component("quarter"), 1, 1, "number",
                       "Quarter (1-4) of a date", "quarter(date)"),
    FunctionDefinition("week", "date", _date_component("week"), 1, 1, "number",
                       "ISO week number of a date", "week(date)"),
    FunctionDefinition("extractDateComponent", "date", _builtin_extract_date_component,
                       2, 2, "number", "Named component of a date",
                       'extractDateComponent(date, "year")'),
    FunctionDefinition("formatDate", "date", _builtin_format_date, 2, 2, "string",
                       "Format a date with strftime directives",
                       'formatDate(date, "%Y-%m-%d")'),
    # logic
    FunctionDefinition("and", "logic", _builtin_and, 1, None, "boolean",
                       "True when every argument is truthy", "and(a, b, ...)"),
    FunctionDefinition("or", "logic", _builtin_or, 1, None, "boolean",
                       "True when any argument is truthy", "or(a, b, ...)"),
    FunctionDefinition("not", "logic", _builtin_not, 1, 1, "boolean",
                       "Logical negation", "not(x)"),
    FunctionDefinition("coalesce", "logic", _builtin_coalesce, 1, None, "any",
                       "First non-null argument", "coalesce(a, b, ...)"),
    FunctionDefinition("isNull", "logic", _builtin_is_null, 1, 1, "boolean",
                       "Whether the value is null", "isNull(x)"),
    # conversion
    FunctionDefinition("number", "conversion", _builtin_number, 1, 1, "number",
                       "Cast to a number, NaN when not numeric", "number(x)"),
    FunctionDefinition("text", "conversion", _builtin_text, 1, 1, "string",
                       "Cast to text", "text(x)"),
)

FUNCTION_CATALOG: dict[str, str] = {d.name: d.category for d in _BUILTINS}


def is_supported(func_name: str) -> bool:
    """Check if a function name is a builtin (case-insensitive)."""
    return func_name.lower() in {name.lower() for name in FUNCTION_CATALOG}


class FunctionRegistry:
    """Registry of callable function definitions.

    Starts with the builtins and can be extended with custom functions.
    Lookups are case-insensitive.
    """

    def __init__(self) -> None:
        self._functions: dict[str, FunctionDefinition] = {
            d.name.lower(): d for d in _BUILTINS
        }

    def register(self, definition: FunctionDefinition) -> None:
        self._functions[definition.name.lower()] = definition

    def get(self, name: str) -> FunctionDefinition | None:
        return self._functions.get(name.lower())

    def has(self, name: str) -> bool:
        return name.lower() in self._functions

    def categories(self) -> list[str]:
        seen: dict[str, None] = {}
        for d in self._functions.values():
            seen.setdefault(d.category, None)
        return list(seen)

    def by_category(self, category: str) -> list[FunctionDefinition]:
        return [d for d in self._functions.values() if d.category == category]

    @property
    def supported_functions(self) -> frozenset[str]:
        return frozenset(d.name for d in self._functions.values())
