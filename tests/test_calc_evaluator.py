"""Tests for exploreda.calc evaluator: bindings, operators, calls, failures."""

from __future__ import annotations

import datetime
import math
from typing import Any

import pytest
from exploreda.calc._errors import EvaluationError, UnknownFunctionError, UnresolvedReferenceError
from exploreda.calc._evaluator import BindingSource, Evaluator, RowBindings
from exploreda.calc._functions import FunctionDefinition, FunctionRegistry
from exploreda.calc._parser import Literal, parse_expression
from exploreda.calc._protocol import NO_RESULT


def _eval(source: str, **fields: Any) -> Any:
    result = Evaluator(fields).evaluate(parse_expression(source))
    assert result.success, result.error
    return result.value


def _fail(source: str, **fields: Any) -> Exception:
    result = Evaluator(fields).evaluate(parse_expression(source))
    assert not result.success
    assert result.value is NO_RESULT
    return result.error


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


class TestRowBindings:
    def test_fields_exclude_row_id(self) -> None:
        b = RowBindings(fields={"__ID": 3, "a": 1})
        assert "__ID" not in b
        assert list(b) == ["a"]

    def test_sources_tagged(self) -> None:
        b = RowBindings(fields={"a": 1}, computed={"total": 5})
        assert b["a"].source is BindingSource.FIELD
        assert b["total"].source is BindingSource.COMPUTED

    def test_computed_shadows_field(self) -> None:
        b = RowBindings(fields={"x": 1}, computed={"x": 99})
        assert b.resolve("x") == 99
        assert len(b) == 1

    def test_no_result_reads_as_none(self) -> None:
        b = RowBindings(computed={"upstream": NO_RESULT})
        assert b.resolve("upstream") is None

    def test_resolve_missing(self) -> None:
        with pytest.raises(UnresolvedReferenceError, match="Unknown variable: nope"):
            RowBindings().resolve("nope")

    def test_plain_mapping_accepted(self) -> None:
        ev = Evaluator({"a": 2})
        assert isinstance(ev.bindings, RowBindings)
        assert ev.bindings.resolve("a") == 2


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


class TestArithmetic:
    def test_add(self) -> None:
        assert _eval("a + b", a=2, b=3) == 5

    def test_precedence(self) -> None:
        assert _eval("2 + 3 * 4") == 14

    def test_division(self) -> None:
        assert _eval("10 / 4") == 2.5

    def test_division_by_zero_fails(self) -> None:
        err = _fail("a / b", a=1, b=0)
        assert isinstance(err, EvaluationError)
        assert "Division by zero" in str(err)

    def test_power(self) -> None:
        assert _eval("2 ^ 3 ^ 2") == 512

    def test_negated_base_power(self) -> None:
        assert _eval("-2 ^ 2") == 4

    def test_fractional_power_of_negative_is_nan(self) -> None:
        assert math.isnan(_eval("(0 - 8) ^ 0.5"))

    def test_numeric_strings_coerced(self) -> None:
        assert _eval("a * 2", a="21") == 42.0

    def test_string_concat(self) -> None:
        assert _eval('a + "-" + b', a="x", b="y") == "x-y"

    def test_mixed_string_number_is_nan(self) -> None:
        assert math.isnan(_eval('"abc" + 1'))

    def test_none_is_nan(self) -> None:
        assert math.isnan(_eval("a + 1", a=None))

    def test_bool_is_number(self) -> None:
        assert _eval("true + true") == 2

    def test_unary(self) -> None:
        assert _eval("-a", a=3) == -3
        assert _eval('+"4"') == 4.0


# ---------------------------------------------------------------------------
# Comparison and logic
# ---------------------------------------------------------------------------


class TestComparison:
    def test_numbers(self) -> None:
        assert _eval("3 > 2") is True
        assert _eval("3 <= 2") is False

    def test_strings(self) -> None:
        assert _eval('"abc" < "abd"') is True
        assert _eval('a == "x"', a="x") is True

    def test_numeric_string_equals_number(self) -> None:
        assert _eval('"5" == 5') is True

    def test_null_equality(self) -> None:
        assert _eval("a == null", a=None) is True
        assert _eval("a != null", a=0) is True

    def test_nan_comparisons_false(self) -> None:
        assert _eval('number("x") == number("x")') is False
        assert _eval('number("x") < 1') is False
        assert _eval('number("x") != 1') is True

    def test_dates(self) -> None:
        d1 = datetime.date(2024, 1, 1)
        d2 = datetime.date(2024, 6, 1)
        assert _eval("a < b", a=d1, b=d2) is True


class TestLogic:
    def test_and_or(self) -> None:
        assert _eval("a > 1 && b > 1", a=2, b=0) is False
        assert _eval("a > 1 || b > 1", a=2, b=0) is True

    def test_short_circuit_skips_missing(self) -> None:
        assert _eval("false && missing") is False
        assert _eval("true || missing") is True

    def test_not(self) -> None:
        assert _eval("!0") is True
        assert _eval('!""') is True
        assert _eval("!a", a="text") is False

    def test_if_then_else(self) -> None:
        assert _eval('if a > 10 then "big" else "small"', a=11) == "big"
        assert _eval('if a > 10 then "big" else "small"', a=1) == "small"

    def test_ternary_lazy(self) -> None:
        assert _eval("a ? 1 : missing", a=True) == 1


# ---------------------------------------------------------------------------
# Calls and failures
# ---------------------------------------------------------------------------


class TestCalls:
    def test_builtin(self) -> None:
        assert _eval("sum(a, b, 4)", a=1, b=2) == 7

    def test_case_insensitive(self) -> None:
        assert _eval("SUM(1, 2)") == 3

    def test_nested(self) -> None:
        assert _eval("round(average(a, b), 1)", a=1, b=2) == 1.5

    def test_unknown_function(self) -> None:
        err = _fail("frobnicate(1)")
        assert isinstance(err, UnknownFunctionError)
        assert err.name == "frobnicate"

    def test_arity(self) -> None:
        err = _fail("abs(1, 2)")
        assert "abs expects exactly 1 argument(s), got 2" in str(err)

    def test_implementation_error_wrapped(self) -> None:
        err = _fail("sqrt(0 - 1)")
        assert isinstance(err, EvaluationError)
        assert str(err).startswith("sqrt:")

    def test_custom_function(self) -> None:
        reg = FunctionRegistry()
        reg.register(FunctionDefinition("twice", "math", lambda args: args[0] * 2, 1, 1, "number"))
        result = Evaluator({"a": 4}, reg).evaluate(parse_expression("twice(a)"))
        assert result.success
        assert result.value == 8


class TestFailures:
    def test_unknown_variable(self) -> None:
        err = _fail("a + c", a=1)
        assert isinstance(err, UnresolvedReferenceError)
        assert err.name == "c"

    def test_result_shape(self) -> None:
        result = Evaluator().evaluate(parse_expression("1 + 1"))
        assert result.success is True
        assert result.error is None
        assert result.value == 2

    def test_node_accepted(self) -> None:
        assert Evaluator().evaluate(Literal(3)).value == 3

    def test_errors_do_not_escape(self) -> None:
        ev = Evaluator({"a": 0})
        for source in ("1 / a", "missing", "nope()", "mod(1, a)", "log(a)"):
            assert ev.evaluate(parse_expression(source)).success is False


# ---------------------------------------------------------------------------
# Numeric range
# ---------------------------------------------------------------------------


class TestNumericRange:
    def test_power_overflow_then_multiply(self) -> None:
        assert _eval("10 ^ a * 1.5", a=2) == 150.0
        assert _eval("10 ^ a * 1.5", a=3000) == math.inf

    def test_power_overflow_then_divide(self) -> None:
        assert _eval("10 ^ a / 3", a=400) == math.inf

    def test_huge_exponent_is_float(self) -> None:
        value = _eval("10 ^ 1000000000")
        assert isinstance(value, float)
        assert value == math.inf

    def test_negative_base_odd_exponent_overflow(self) -> None:
        assert _eval("(0 - 10) ^ 1001") == -math.inf
        assert _eval("(0 - 10) ^ 1000") == math.inf

    def test_power_returns_float(self) -> None:
        value = _eval("2 ^ 10")
        assert isinstance(value, float)
        assert value == 1024.0

    @pytest.mark.parametrize("source", ["a * 1.5", "a / 3", "a - 0.5", "a ^ 2"])
    def test_int_too_large_for_float(self, source: str) -> None:
        err = _fail(source, a=10 ** 400)
        assert isinstance(err, EvaluationError)
        assert "out of range" in str(err)

    def test_zero_to_negative_power(self) -> None:
        err = _fail("0 ^ (0 - 1)")
        assert "Division by zero" in str(err)


class TestFunctionBodyErrors:
    def test_key_error_from_custom_function(self) -> None:
        reg = FunctionRegistry()
        reg.register(FunctionDefinition("boom", "math", lambda args: {}[args[0]], 1, 1, "number"))
        result = Evaluator({"a": 1}, reg).evaluate(parse_expression("boom(a)"))
        assert result.success is False
        assert result.value is NO_RESULT
        assert isinstance(result.error, EvaluationError)
        assert "boom" in str(result.error)

    def test_year_out_of_range(self) -> None:
        err = _fail("year(a)", a=1e20)
        assert isinstance(err, EvaluationError)

    def test_lookup_error_from_custom_function(self) -> None:
        reg = FunctionRegistry()
        reg.register(FunctionDefinition("first", "text", lambda args: [][0], 1, 1, "any"))
        result = Evaluator({"a": 1}, reg).evaluate(parse_expression("first(a)"))
        assert result.success is False
