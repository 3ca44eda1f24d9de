"""Expression parser: regex tokenizer + recursive descent into a small AST.

Grammar, lowest to highest precedence::

    expression     := "if" expression "then" expression "else" expression
                    | logical ("?" expression ":" expression)?
    logical        := comparison (("&&" | "||") comparison)*
    comparison     := additive (("==" | "!=" | "<=" | ">=" | "<" | ">") additive)*
    additive       := multiplicative (("+" | "-") multiplicative)*
    multiplicative := power (("*" | "/") power)*
    power          := term ("^" power)?
    term           := ("-" | "+" | "!") term
                    | identifier "(" [expression ("," expression)*] ")"
                    | "(" expression ")"
                    | number | string | "true" | "false" | "null" | identifier

``//`` starts a comment that runs to the end of the line.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterator, Union

from exploreda.calc._errors import ParseError

# ---------------------------------------------------------------------------
# AST nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Identifier:
    name: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: Node


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True)
class Conditional:
    """Both ``c ? a : b`` and ``if c then a else b``."""

    condition: Node
    when_true: Node
    when_false: Node


@dataclass(frozen=True)
class FunctionCall:
    name: str
    arguments: tuple[Node, ...] = ()


Node = Union[Literal, Identifier, UnaryOp, BinaryOp, Conditional, FunctionCall]


def walk(node: Node) -> Iterator[Node]:
    """Yield *node* and all of its descendants, depth-first, left to right."""
    yield node
    if isinstance(node, UnaryOp):
        yield from walk(node.operand)
    elif isinstance(node, BinaryOp):
        yield from walk(node.left)
        yield from walk(node.right)
    elif isinstance(node, Conditional):
        yield from walk(node.condition)
        yield from walk(node.when_true)
        yield from walk(node.when_false)
    elif isinstance(node, FunctionCall):
        for arg in node.arguments:
            yield from walk(arg)


@dataclass(frozen=True)
class Expression:
    """A parsed expression: source text, AST and referenced variable names."""

    raw_input: str
    root: Node
    dependencies: tuple[str, ...] = field(default=())

    @classmethod
    def from_root(cls, raw_input: str, root: Node) -> Expression:
        deps: list[str] = []
        seen: set[str] = set()
        for node in walk(root):
            if isinstance(node, Identifier) and node.name not in seen:
                deps.append(node.name)
                seen.add(node.name)
        return cls(raw_input=raw_input, root=root, dependencies=tuple(deps))

    def __str__(self) -> str:
        return self.raw_input


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
  | (?P<comment>//[^\n]*)
  | (?P<number>\d+(?:\.\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*")
  | (?P<ident>[^\W\d_]\w*)
  | (?P<op>==|!=|<=|>=|&&|\|\||[-+*/^<>!?:(),])
    """,
    re.VERBOSE | re.DOTALL,
)

_ESCAPE_RE = re.compile(r"\\(.)", re.DOTALL)

KEYWORDS = frozenset({"if", "then", "else", "true", "false", "null"})

_COMPARISON_OPS = ("==", "!=", "<=", ">=", "<", ">")


@dataclass(frozen=True)
class Token:
    kind: str  # number | string | ident | keyword | op | end
    text: str
    position: int


def tokenize(source: str) -> list[Token]:
    """Split *source* into tokens, dropping whitespace and comments."""
    tokens: list[Token] = []
    pos = 0
    length = len(source)
    while pos < length:
        m = _TOKEN_RE.match(source, pos)
        if m is None:
            if source[pos] == '"':
                raise ParseError("unterminated string literal", pos)
            raise ParseError(f"unexpected character {source[pos]!r}", pos)
        kind = m.lastgroup
        text = m.group()
        if kind == "ident" and text in KEYWORDS:
            kind = "keyword"
        if kind not in ("space", "comment"):
            tokens.append(Token(kind, text, pos))
        pos = m.end()
    tokens.append(Token("end", "", length))
    return tokens


# ---------------------------------------------------------------------------
# Recursive descent
# ---------------------------------------------------------------------------


class _Parser:
    def __init__(self, source: str) -> None:
        self._tokens = tokenize(source)
        self._index = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        tok = self._tokens[self._index]
        if tok.kind != "end":
            self._index += 1
        return tok

    def _check(self, kind: str, *texts: str) -> bool:
        tok = self._current
        return tok.kind == kind and (not texts or tok.text in texts)

    def _expect(self, kind: str, text: str) -> Token:
        if not self._check(kind, text):
            raise self._error(f"expected {text!r}")
        return self._advance()

    def _error(self, message: str) -> ParseError:
        tok = self._current
        found = "end of input" if tok.kind == "end" else repr(tok.text)
        return ParseError(f"{message}, found {found}", tok.position)

    def parse(self) -> Node:
        if self._check("end"):
            raise ParseError("empty expression", 0)
        node = self._expression()
        if not self._check("end"):
            raise self._error("unexpected token")
        return node

    def _expression(self) -> Node:
        if self._check("keyword", "if"):
            self._advance()
            condition = self._expression()
            self._expect("keyword", "then")
            when_true = self._expression()
            self._expect("keyword", "else")
            when_false = self._expression()
            return Conditional(condition, when_true, when_false)

        node = self._logical()
        if self._check("op", "?"):
            self._advance()
            when_true = self._expression()
            self._expect("op", ":")
            when_false = self._expression()
            return Conditional(node, when_true, when_false)
        return node

    def _logical(self) -> Node:
        node = self._comparison()
        while self._check("op", "&&", "||"):
            op = self._advance().text
            node = BinaryOp(op, node, self._comparison())
        return node

    def _comparison(self) -> Node:
        node = self._additive()
        while self._check("op", *_COMPARISON_OPS):
            op = self._advance().text
            node = BinaryOp(op, node, self._additive())
        return node

    def _additive(self) -> Node:
        node = self._multiplicative()
        while self._check("op", "+", "-"):
            op = self._advance().text
            node = BinaryOp(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> Node:
        node = self._power()
        while self._check("op", "*", "/"):
            op = self._advance().text
            node = BinaryOp(op, node, self._power())
        return node

    def _power(self) -> Node:
        base = self._term()
        if self._check("op", "^"):
            self._advance()
            # right associative: 2^3^2 == 2^(3^2)
            return BinaryOp("^", base, self._power())
        return base

    def _term(self) -> Node:
        tok = self._current

        if tok.kind == "op" and tok.text in ("-", "+", "!"):
            self._advance()
            return UnaryOp(tok.text, self._term())

        if tok.kind == "op" and tok.text == "(":
            self._advance()
            node = self._expression()
            self._expect("op", ")")
            return node

        if tok.kind == "number":
            self._advance()
            if "." in tok.text:
                return Literal(float(tok.text))
            return Literal(int(tok.text))

        if tok.kind == "string":
            self._advance()
            return Literal(_ESCAPE_RE.sub(r"\1", tok.text[1:-1]))

        if tok.kind == "keyword" and tok.text in ("true", "false"):
            self._advance()
            return Literal(tok.text == "true")

        if tok.kind == "keyword" and tok.text == "null":
            self._advance()
            return Literal(None)

        if tok.kind == "ident":
            self._advance()
            if self._check("op", "("):
                return self._call(tok.text)
            return Identifier(tok.text)

        raise self._error("expected a value")

    def _call(self, name: str) -> FunctionCall:
        self._expect("op", "(")
        args: list[Node] = []
        if not self._check("op", ")"):
            args.append(self._expression())
            while self._check("op", ","):
                self._advance()
                args.append(self._expression())
        self._expect("op", ")")
        return FunctionCall(name, tuple(args))


def parse_expression(source: str) -> Expression:
    """Parse *source* into an :class:`Expression`.

    Raises :class:`ParseError` on malformed input.
    """
    if not isinstance(source, str):
        raise ParseError(f"expression source must be a string, not {type(source).__name__}")
    try:
        root = _Parser(source).parse()
    except RecursionError:
        raise ParseError("expression nested too deeply") from None
    return Expression.from_root(source, root)
