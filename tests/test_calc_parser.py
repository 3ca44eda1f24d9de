"""Tests for exploreda.calc expression tokenizer and parser."""

from __future__ import annotations

import pytest
from exploreda.calc._errors import ParseError
from exploreda.calc._parser import (
    BinaryOp,
    Conditional,
    Expression,
    FunctionCall,
    Identifier,
    Literal,
    UnaryOp,
    parse_expression,
    tokenize,
)


class TestTokenize:
    def test_kinds(self) -> None:
        tokens = tokenize('a + 1.5 * "x"')
        assert [t.kind for t in tokens] == ["ident", "op", "number", "op", "string", "end"]

    def test_keywords(self) -> None:
        tokens = tokenize("if true then null else false")
        assert all(t.kind == "keyword" for t in tokens[:-1])

    def test_positions(self) -> None:
        tokens = tokenize("ab  +c")
        assert [t.position for t in tokens[:-1]] == [0, 4, 5]

    def test_comment_dropped(self) -> None:
        tokens = tokenize("1 // the rest is ignored\n+ 2")
        assert [t.text for t in tokens[:-1]] == ["1", "+", "2"]

    def test_two_char_operators(self) -> None:
        tokens = tokenize("a<=b && c!=d || e==f")
        ops = [t.text for t in tokens if t.kind == "op"]
        assert ops == ["<=", "&&", "!=", "||", "=="]

    def test_unterminated_string(self) -> None:
        with pytest.raises(ParseError, match="unterminated string"):
            tokenize('"abc')

    def test_unexpected_character(self) -> None:
        with pytest.raises(ParseError, match="position 2"):
            tokenize("1 $ 2")


class TestPrecedence:
    def test_mul_over_add(self) -> None:
        expr = parse_expression("1 + 2 * 3")
        assert expr.root == BinaryOp("+", Literal(1), BinaryOp("*", Literal(2), Literal(3)))

    def test_left_associative_subtraction(self) -> None:
        expr = parse_expression("10 - 4 - 3")
        assert expr.root == BinaryOp("-", BinaryOp("-", Literal(10), Literal(4)), Literal(3))

    def test_power_right_associative(self) -> None:
        expr = parse_expression("2 ^ 3 ^ 2")
        assert expr.root == BinaryOp("^", Literal(2), BinaryOp("^", Literal(3), Literal(2)))

    def test_unary_minus_binds_tighter_than_power(self) -> None:
        expr = parse_expression("-2 ^ 2")
        assert expr.root == BinaryOp("^", UnaryOp("-", Literal(2)), Literal(2))

    def test_comparison_below_arithmetic(self) -> None:
        expr = parse_expression("a + 1 > b")
        assert isinstance(expr.root, BinaryOp)
        assert expr.root.op == ">"

    def test_logical_lowest_binary(self) -> None:
        expr = parse_expression("a > 1 && b < 2")
        assert expr.root.op == "&&"
        assert expr.root.left.op == ">"

    def test_parentheses(self) -> None:
        expr = parse_expression("(1 + 2) * 3")
        assert expr.root == BinaryOp("*", BinaryOp("+", Literal(1), Literal(2)), Literal(3))


class TestTerms:
    def test_int_and_float(self) -> None:
        assert parse_expression("42").root == Literal(42)
        assert parse_expression("4.25").root == Literal(4.25)

    def test_string_escapes(self) -> None:
        expr = parse_expression(r'"say \"hi\""')
        assert expr.root == Literal('say "hi"')

    def test_literals(self) -> None:
        assert parse_expression("true").root == Literal(True)
        assert parse_expression("false").root == Literal(False)
        assert parse_expression("null").root == Literal(None)

    def test_not(self) -> None:
        assert parse_expression("!done").root == UnaryOp("!", Identifier("done"))

    def test_function_call(self) -> None:
        expr = parse_expression("sum(a, 2, b)")
        assert expr.root == FunctionCall("sum", (Identifier("a"), Literal(2), Identifier("b")))

    def test_function_call_no_args(self) -> None:
        assert parse_expression("concat()").root == FunctionCall("concat", ())

    def test_if_then_else(self) -> None:
        expr = parse_expression('if a > 1 then "big" else "small"')
        assert isinstance(expr.root, Conditional)
        assert expr.root.when_true == Literal("big")
        assert expr.root.when_false == Literal("small")

    def test_ternary(self) -> None:
        expr = parse_expression("a ? 1 : 2")
        assert expr.root == Conditional(Identifier("a"), Literal(1), Literal(2))

    def test_nested_ternary(self) -> None:
        expr = parse_expression("a ? 1 : b ? 2 : 3")
        assert expr.root.when_false == Conditional(Identifier("b"), Literal(2), Literal(3))


class TestDependencies:
    def test_first_occurrence_order(self) -> None:
        expr = parse_expression("b + a * b")
        assert expr.dependencies == ("b", "a")

    def test_function_names_excluded(self) -> None:
        expr = parse_expression("average(x, year(d))")
        assert expr.dependencies == ("x", "d")

    def test_no_dependencies(self) -> None:
        assert parse_expression('concat("a", 1)').dependencies == ()

    def test_conditional_branches(self) -> None:
        expr = parse_expression("if c then t else f")
        assert expr.dependencies == ("c", "t", "f")

    def test_raw_input_kept(self) -> None:
        source = "a+b // total"
        expr = parse_expression(source)
        assert expr.raw_input == source
        assert str(expr) == source
        assert isinstance(expr, Expression)


class TestErrors:
    @pytest.mark.parametrize("source", ["", "   ", "// only a comment"])
    def test_empty(self, source: str) -> None:
        with pytest.raises(ParseError, match="empty expression"):
            parse_expression(source)

    def test_trailing_operator(self) -> None:
        with pytest.raises(ParseError, match="position 3: expected a value, found end of input"):
            parse_expression("1 +")

    def test_unclosed_paren(self) -> None:
        with pytest.raises(ParseError, match="expected '\\)'"):
            parse_expression("(1 + 2")

    def test_juxtaposed_identifiers(self) -> None:
        with pytest.raises(ParseError, match="unexpected token"):
            parse_expression("a b")

    def test_missing_else(self) -> None:
        with pytest.raises(ParseError, match="expected 'else'"):
            parse_expression("if a then b")

    def test_keyword_as_value(self) -> None:
        with pytest.raises(ParseError):
            parse_expression("then + 1")

    def test_non_string_source(self) -> None:
        with pytest.raises(ParseError, match="must be a string"):
            parse_expression(42)  # type: ignore[arg-type]

    def test_parse_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_expression("1 +* 2")

    def test_position_attribute(self) -> None:
        with pytest.raises(ParseError) as excinfo:
            parse_expression("a + )")
        assert excinfo.value.position == 4

    def test_nesting_too_deep(self) -> None:
        with pytest.raises(ParseError, match="nested too deeply"):
            parse_expression("(" * 5000 + "1" + ")" * 5000)
