"""Evaluator: walks a parsed expression against one row's variable bindings.

Variables resolve through :class:`RowBindings`, which tags every name as a
raw row field or a computed column.  A computed column shadows a row field of
the same name.  Unknown names, unknown functions, bad arity, division by
zero, ints too large for a float and errors raised inside a function body
fail the evaluation; bad operand types never do (they produce NaN).  ``^``
works in floats and saturates to infinity.
"""

from __future__ import annotations

import datetime
import enum
import logging
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from exploreda._dataset import ROW_ID
from exploreda.calc._errors import EvaluationError, UnknownFunctionError, UnresolvedReferenceError
from exploreda.calc._functions import FunctionRegistry, is_nan, is_truthy, power, to_number
from exploreda.calc._parser import (
    BinaryOp,
    Conditional,
    Expression,
    FunctionCall,
    Identifier,
    Literal,
    Node,
    UnaryOp,
)
from exploreda.calc._protocol import NO_RESULT, EvaluationResult

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Variable bindings
# ---------------------------------------------------------------------------


class BindingSource(enum.Enum):
    FIELD = "field"
    COMPUTED = "computed"


@dataclass(frozen=True)
class Binding:
    name: str
    value: Any
    source: BindingSource


class RowBindings(Mapping[str, Binding]):
    """Name -> :class:`Binding` for a single row."""

    __slots__ = ("_bindings",)

    def __init__(
        self,
        fields: Mapping[str, Any] | None = None,
        computed: Mapping[str, Any] | None = None,
    ) -> None:
        self._bindings: dict[str, Binding] = {}
        for name, value in (fields or {}).items():
            if name == ROW_ID:
                continue
            self._bindings[name] = Binding(name, value, BindingSource.FIELD)
        for name, value in (computed or {}).items():
            # failed upstream rows read as missing values
            if value is NO_RESULT:
                value = None
            self._bindings[name] = Binding(name, value, BindingSource.COMPUTED)

    def __getitem__(self, name: str) -> Binding:
        return self._bindings[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def resolve(self, name: str) -> Any:
        binding = self._bindings.get(name)
        if binding is None:
            raise UnresolvedReferenceError(name)
        return binding.value


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    if op == "+" and isinstance(left, str) and isinstance(right, str):
        return left + right

    try:
        if op == "^":
            return power(left, right)
        lf, rf = to_number(left), to_number(right)
        if op == "+":
            return lf + rf
        if op == "-":
            return lf - rf
        if op == "*":
            return lf * rf
        if op == "/":
            if rf == 0:
                raise EvaluationError("Division by zero")
            return lf / rf
    except ZeroDivisionError:
        raise EvaluationError("Division by zero") from None
    except OverflowError:
        # an int operand too large to become a float
        raise EvaluationError("Numeric result out of range") from None
    raise EvaluationError(f"Unknown operator: {op}")


def _equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is right
    if isinstance(left, str) and isinstance(right, str):
        return left == right
    if isinstance(left, (datetime.date, str)) and isinstance(right, (datetime.date, str)):
        return left == right
    lf, rf = to_number(left), to_number(right)
    if is_nan(lf) or is_nan(rf):
        return False
    return lf == rf


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "==":
        return _equals(left, right)
    if op == "!=":
        return not _equals(left, right)

    if (isinstance(left, str) and isinstance(right, str)) or (
        isinstance(left, datetime.date) and isinstance(right, datetime.date)
    ):
        lv, rv = left, right
    else:
        lv, rv = to_number(left), to_number(right)
        if is_nan(lv) or is_nan(rv):
            return False
    try:
        if op == "<":
            return lv < rv
        if op == "<=":
            return lv <= rv
        if op == ">":
            return lv > rv
        if op == ">=":
            return lv >= rv
    except TypeError as e:
        # naive vs aware datetimes
        raise EvaluationError(str(e)) from e
    raise EvaluationError(f"Unknown operator: {op}")


# ---------------------------------------------------------------------------
# Evaluator
# ---------------------------------------------------------------------------


class Evaluator:
    """Evaluates expressions against one row's bindings.

    Usage::

        ev = Evaluator(RowBindings({"a": 2, "b": 3}))
        result = ev.evaluate(parse_expression("a + b"))
        assert result.success and result.value == 5
    """

    def __init__(
        self,
        bindings: RowBindings | Mapping[str, Any] | None = None,
        functions: FunctionRegistry | None = None,
    ) -> None:
        if bindings is None:
            bindings = RowBindings()
        elif not isinstance(bindings, RowBindings):
            bindings = RowBindings(fields=bindings)
        self._bindings = bindings
        self._functions = functions if functions is not None else FunctionRegistry()

    @property
    def bindings(self) -> RowBindings:
        return self._bindings

    def evaluate(self, expression: Expression | Node) -> EvaluationResult:
        """Evaluate *expression*; failures come back as an unsuccessful result."""
        root = expression.root if isinstance(expression, Expression) else expression
        try:
            return EvaluationResult.ok(self._eval(root))
        except EvaluationError as e:
            return EvaluationResult.failed(e)
        except RecursionError:
            return EvaluationResult.failed(EvaluationError("Expression nested too deeply"))
        except ArithmeticError as e:
            return EvaluationResult.failed(EvaluationError(str(e) or type(e).__name__))

    def _eval(self, node: Node) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Identifier):
            return self._bindings.resolve(node.name)

        if isinstance(node, BinaryOp):
            return self._eval_binary(node)

        if isinstance(node, UnaryOp):
            value = self._eval(node.operand)
            if node.op == "-":
                return -to_number(value)
            if node.op == "+":
                return to_number(value)
            if node.op == "!":
                return not is_truthy(value)
            raise EvaluationError(f"Unknown unary operator: {node.op}")

        if isinstance(node, Conditional):
            if is_truthy(self._eval(node.condition)):
                return self._eval(node.when_true)
            return self._eval(node.when_false)

        if isinstance(node, FunctionCall):
            return self._eval_call(node)

        raise EvaluationError(f"Unsupported expression node: {type(node).__name__}")

    def _eval_binary(self, node: BinaryOp) -> Any:
        op = node.op
        # logical operators short-circuit
        if op == "&&":
            return is_truthy(self._eval(node.left)) and is_truthy(self._eval(node.right))
        if op == "||":
            return is_truthy(self._eval(node.left)) or is_truthy(self._eval(node.right))

        left = self._eval(node.left)
        right = self._eval(node.right)
        if op in ("+", "-", "*", "/", "^"):
            return _arithmetic(op, left, right)
        return _compare(op, left, right)

    def _eval_call(self, node: FunctionCall) -> Any:
        func = self._functions.get(node.name)
        if func is None:
            raise UnknownFunctionError(node.name)
        func.check_arity(len(node.arguments))
        args = [self._eval(arg) for arg in node.arguments]
        try:
            return func.implementation(args)
        except EvaluationError:
            raise
        except Exception as e:
            logger.debug("Error evaluating %s: %s", func.name, e)
            raise EvaluationError(f"{func.name}: {e}") from e
