#!/usr/bin/env python3
"""
Core tokenizer, expression tree, parser and evaluator for arithmetic
expressions.

We parse strings of the form:

    2 + 3 * 4
    (a + b) / (c - d)
    rate * (principal - 100.5)

into a tree:

    BinaryOp(kind=OpKind.ADD, left=NumberLiteral(2.0), right=BinaryOp(...))

and evaluate the tree against a Context holding variable bindings.

Grammar (precedence low -> high, all binary operators left-associative):

    expression     -> additive
    additive       -> multiplicative (('+' | '-') multiplicative)*
    multiplicative -> factor (('*' | '/') factor)*
    factor         -> NUMBER
                    | IDENT
                    | '(' expression ')'

Lexical rules, tried in order at each position:

    whitespace     -> skipped
    NUMBER         -> -?[0-9]+(.[0-9]+)?
    IDENT          -> [A-Za-z][A-Za-z0-9_]*
    symbol         -> one of + - * / ( )

The optional '-' of a NUMBER is only taken where an operand is expected,
so "10-3-2" lexes as 10, -, 3, -, 2 while "1 - -2" keeps "-2" as a literal.
"""

from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

# Divisors with a smaller magnitude than this raise DivisionByZero.
DIVISION_EPSILON = 1e-9

# Parenthesis nesting accepted by the parser, which recurses once per level.
MAX_NESTING_DEPTH = 100

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ArithError(Exception):
    """Base class for every error raised by this module."""


class LexError(ArithError):
    def __init__(self, character: str, position: int):
        super().__init__(f"Invalid character {character!r} at position {position}")
        self.character = character
        self.position = position


class ParseError(ArithError):
    def __init__(self, message: str, position: int):
        super().__init__(f"{message} (at position {position})")
        self.message = message
        self.position = position


class EvalError(ArithError):
    """Raised while evaluating a tree or using the context stack."""


class UndefinedVariable(EvalError):
    def __init__(self, name: str):
        super().__init__(f"Variable {name!r} is not defined in context")
        self.name = name


class DivisionByZero(EvalError):
    def __init__(self):
        super().__init__("Division by zero")


class EmptyStack(EvalError):
    def __init__(self):
        super().__init__("Evaluation stack is empty")


# ---------------------------------------------------------------------------
# Tokenizer
# ---------------------------------------------------------------------------

class TokenKind(enum.Enum):
    NUMBER = "NUMBER"
    IDENTIFIER = "IDENTIFIER"
    OPERATOR = "OPERATOR"
    LEFT_PAREN = "LEFT_PAREN"
    RIGHT_PAREN = "RIGHT_PAREN"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: int

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, {self.text!r}, {self.position})"


_WHITESPACE_RE = re.compile(r"\s+")
_NUMBER_RE = re.compile(r"-?[0-9]+(?:\.[0-9]+)?")
_UNSIGNED_NUMBER_RE = re.compile(r"[0-9]+(?:\.[0-9]+)?")
_IDENT_RE = re.compile(r"[A-Za-z][A-Za-z0-9_]*")

_SYMBOL_KINDS = {
    "+": TokenKind.OPERATOR,
    "-": TokenKind.OPERATOR,
    "*": TokenKind.OPERATOR,
    "/": TokenKind.OPERATOR,
    "(": TokenKind.LEFT_PAREN,
    ")": TokenKind.RIGHT_PAREN,
}


def _ends_operand(tok: Optional[Token]) -> bool:
    if tok is None:
        return False
    return tok.kind in (TokenKind.NUMBER, TokenKind.IDENTIFIER, TokenKind.RIGHT_PAREN)


def tokenize(src: str) -> List[Token]:
    """
    Turn an arithmetic string into a flat list of tokens.

    Raises LexError naming the first character no rule accepts.
    """
    tokens: List[Token] = []
    i = 0
    n = len(src)

    while i < n:
        m = _WHITESPACE_RE.match(src, i)
        if m:
            i = m.end()
            continue

        # A leading '-' belongs to the number only where an operand is expected
        prev = tokens[-1] if tokens else None
        number_re = _UNSIGNED_NUMBER_RE if _ends_operand(prev) else _NUMBER_RE
        m = number_re.match(src, i)
        if m:
            tokens.append(Token(TokenKind.NUMBER, m.group(), i))
            i = m.end()
            continue

        m = _IDENT_RE.match(src, i)
        if m:
            tokens.append(Token(TokenKind.IDENTIFIER, m.group(), i))
            i = m.end()
            continue

        c = src[i]
        kind = _SYMBOL_KINDS.get(c)
        if kind is not None:
            tokens.append(Token(kind, c, i))
            i += 1
            continue

        raise LexError(c, i)

    return tokens


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------

class OpKind(enum.Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    # Not produced by the parser; available to programmatic trees.
    POWER = "^"


_PRETTY_SYMBOLS = {
    OpKind.ADD: "+",
    OpKind.SUBTRACT: "-",
    OpKind.MULTIPLY: "×",
    OpKind.DIVIDE: "÷",
    OpKind.POWER: "^",
}

_COMMUTATIVE = frozenset({OpKind.ADD, OpKind.MULTIPLY})
_ASSOCIATIVE = frozenset({OpKind.ADD, OpKind.MULTIPLY})


def is_commutative(kind: OpKind) -> bool:
    return kind in _COMMUTATIVE


def is_associative(kind: OpKind) -> bool:
    return kind in _ASSOCIATIVE


def op_kind_for_symbol(symbol: str) -> OpKind:
    return OpKind(symbol)


class Expr:
    """Base class for expressions."""

    def evaluate(self, context: Context) -> float:
        return evaluate(self, context)

    def render(self, pretty: bool = False) -> str:
        return render(self, pretty=pretty)

    def __str__(self) -> str:
        return render(self)


@dataclass(frozen=True)
class NumberLiteral(Expr):
    value: float

    @property
    def is_zero(self) -> bool:
        return abs(self.value) < DIVISION_EPSILON

    @property
    def is_integer(self) -> bool:
        return math.isfinite(self.value) and self.value == math.floor(self.value)


@dataclass(frozen=True)
class VariableRef(Expr):
    name: str


@dataclass(frozen=True)
class BinaryOp(Expr):
    kind: OpKind
    left: Expr
    right: Expr


def is_valid_variable_name(name: str) -> bool:
    return bool(name) and _IDENT_RE.fullmatch(name) is not None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def fold_tree(
    expr: Expr,
    on_leaf: Callable[[Expr], T],
    on_op: Callable[[BinaryOp, T, T], T],
) -> T:
    """
    Post-order fold over a tree using an explicit stack.

    on_leaf receives NumberLiteral / VariableRef nodes; on_op receives a
    BinaryOp together with the folded values of its left and right children.
    Left subtrees are always folded before right ones. Chains such as
    "1 + 1 + ... + 1" build left-deep trees as tall as the input is long, so
    no walker here recurses.
    """
    values: List[T] = []
    stack: List[Tuple[Expr, bool]] = [(expr, False)]
    while stack:
        node, children_done = stack.pop()
        if isinstance(node, BinaryOp):
            if children_done:
                right = values.pop()
                left = values.pop()
                values.append(on_op(node, left, right))
            else:
                stack.append((node, True))
                stack.append((node.right, False))
                stack.append((node.left, False))
        elif isinstance(node, (NumberLiteral, VariableRef)):
            values.append(on_leaf(node))
        else:
            raise TypeError(f"Unknown Expr node type: {type(node)}")
    return values[0]


def evaluate(expr: Expr, context: Context) -> float:
    """
    Evaluate an expression tree against a context.

    Children are evaluated left before right. The tree and the context are
    left untouched when an EvalError escapes, so the caller may fix the
    context (e.g. bind a missing variable) and retry.
    """

    def leaf(node: Expr) -> float:
        if isinstance(node, NumberLiteral):
            return node.value
        return context.get_variable(node.name)

    return fold_tree(expr, leaf, lambda node, left, right: apply_op(node.kind, left, right))


def apply_op(kind: OpKind, left: float, right: float) -> float:
    if kind is OpKind.ADD:
        return left + right
    if kind is OpKind.SUBTRACT:
        return left - right
    if kind is OpKind.MULTIPLY:
        return left * right
    if kind is OpKind.DIVIDE:
        if abs(right) < DIVISION_EPSILON:
            raise DivisionByZero()
        return left / right
    if kind is OpKind.POWER:
        try:
            return math.pow(left, right)
        except (ValueError, OverflowError) as e:
            raise EvalError(f"Invalid power {left!r} ^ {right!r}: {e}") from e

    raise TypeError(f"Unknown operator kind: {kind!r}")


# ---------------------------------------------------------------------------
# Rendering and tree utilities
# ---------------------------------------------------------------------------

def format_number(value: float) -> str:
    if not math.isfinite(value):
        return repr(value)
    if value == 0 and math.copysign(1.0, value) < 0:
        return "-0"
    if value == math.floor(value) and abs(value) < 1e16:
        return str(int(value))
    # Positional notation keeps the text inside the NUMBER grammar
    return format(Decimal(repr(value)), "f")


def render(expr: Expr, pretty: bool = False) -> str:
    """
    Fully parenthesized text for a tree, e.g. "((3 + 4) * (10 - 2))".

    The plain form is accepted back by parse(); pretty=True swaps in the
    typographic multiplication and division signs.
    """
    symbols = _PRETTY_SYMBOLS if pretty else {kind: kind.value for kind in OpKind}

    def leaf(node: Expr) -> str:
        if isinstance(node, NumberLiteral):
            return format_number(node.value)
        return node.name

    def op(node: BinaryOp, left: str, right: str) -> str:
        return f"({left} {symbols[node.kind]} {right})"

    return fold_tree(expr, leaf, op)


def free_variables(expr: Expr) -> List[str]:
    """Sorted distinct variable names referenced anywhere in the tree."""
    names = set()
    stack = [expr]
    while stack:
        node = stack.pop()
        if isinstance(node, VariableRef):
            names.add(node.name)
        elif isinstance(node, BinaryOp):
            stack.append(node.left)
            stack.append(node.right)
    return sorted(names)


def simplify(expr: Expr) -> Expr:
    """
    Fold every operator whose operands are both literals, bottom-up.

    Folds that would fail (a zero divisor, an invalid power) are left in
    place so the error surfaces when the tree is evaluated.
    """

    def op(node: BinaryOp, left: Expr, right: Expr) -> Expr:
        if isinstance(left, NumberLiteral) and isinstance(right, NumberLiteral):
            try:
                return NumberLiteral(apply_op(node.kind, left.value, right.value))
            except EvalError:
                pass
        if left is node.left and right is node.right:
            return node
        return BinaryOp(kind=node.kind, left=left, right=right)

    return fold_tree(expr, lambda node: node, op)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

class Context:
    """
    Variable bindings plus an auxiliary value stack.

    The stack is a scratch area for callers building their own evaluators;
    the tree-walking evaluator never touches it.
    """

    def __init__(self, variables: Optional[Mapping[str, float]] = None):
        self._variables: Dict[str, float] = dict(variables or {})
        self._stack: List[float] = []

    @classmethod
    def with_variables(cls, variables: Mapping[str, float]) -> Context:
        return cls(variables)

    def set_variable(self, name: str, value: float) -> None:
        self._variables[name] = value

    def get_variable(self, name: str) -> float:
        try:
            return self._variables[name]
        except KeyError:
            raise UndefinedVariable(name) from None

    def has_variable(self, name: str) -> bool:
        return name in self._variables

    def update(self, variables: Mapping[str, float]) -> None:
        for name, value in variables.items():
            self.set_variable(name, value)

    def variable_names(self) -> List[str]:
        return sorted(self._variables)

    @property
    def variable_count(self) -> int:
        return len(self._variables)

    # -- auxiliary stack --

    def push_value(self, value: float) -> None:
        self._stack.append(value)

    def pop_value(self) -> float:
        if not self._stack:
            raise EmptyStack()
        return self._stack.pop()

    def peek_value(self) -> float:
        if not self._stack:
            raise EmptyStack()
        return self._stack[-1]

    @property
    def stack_size(self) -> int:
        return len(self._stack)

    def clear_stack(self) -> None:
        self._stack.clear()

    def copy(self) -> Context:
        clone = Context(self._variables)
        clone._stack = list(self._stack)
        return clone

    def describe(self) -> str:
        lines = [f"Variables ({self.variable_count}):"]
        if self._variables:
            for name in self.variable_names():
                lines.append(f"  {name} = {self._variables[name]!r}")
        else:
            lines.append("  (none)")
        lines.append(f"Stack size: {self.stack_size}")
        for i, value in enumerate(reversed(self._stack)):
            lines.append(f"  [{i}]: {value!r}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Context(variables={self._variables!r}, stack={self._stack!r})"


# ---------------------------------------------------------------------------
# Recursive-descent parser
# ---------------------------------------------------------------------------

class Parser:
    def __init__(self, tokens: List[Token], src_length: int = 0):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0
        # Position reported for errors at end of input
        self.end_position = src_length

    @property
    def current(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def match(self, kind: TokenKind, text: Optional[str] = None) -> bool:
        tok = self.current
        if tok is None or tok.kind != kind:
            return False
        if text is not None and tok.text != text:
            return False
        return True

    def match_operator(self, symbols: Iterable[str]) -> bool:
        tok = self.current
        return tok is not None and tok.kind == TokenKind.OPERATOR and tok.text in symbols

    def consume(self) -> Token:
        tok = self.current
        if tok is None:
            raise ParseError("unexpected end of expression", self.end_position)
        self.pos += 1
        return tok

    def parse(self) -> Expr:
        node = self.parse_expression()
        tok = self.current
        if tok is not None:
            raise ParseError(f"unexpected trailing token {tok.text!r}", tok.position)
        return node

    # expression     -> additive
    def parse_expression(self) -> Expr:
        return self.parse_additive()

    # additive       -> multiplicative (('+' | '-') multiplicative)*
    def parse_additive(self) -> Expr:
        node = self.parse_multiplicative()
        while self.match_operator(("+", "-")):
            kind = op_kind_for_symbol(self.consume().text)
            right = self.parse_multiplicative()
            node = BinaryOp(kind=kind, left=node, right=right)
        return node

    # multiplicative -> factor (('*' | '/') factor)*
    def parse_multiplicative(self) -> Expr:
        node = self.parse_factor()
        while self.match_operator(("*", "/")):
            kind = op_kind_for_symbol(self.consume().text)
            right = self.parse_factor()
            node = BinaryOp(kind=kind, left=node, right=right)
        return node

    # factor         -> NUMBER | IDENT | '(' expression ')'
    def parse_factor(self) -> Expr:
        tok = self.current
        if tok is None:
            raise ParseError("unexpected end of expression", self.end_position)

        if tok.kind == TokenKind.NUMBER:
            self.consume()
            return NumberLiteral(float(tok.text))

        if tok.kind == TokenKind.IDENTIFIER:
            self.consume()
            return VariableRef(tok.text)

        if tok.kind == TokenKind.LEFT_PAREN:
            if self.depth >= MAX_NESTING_DEPTH:
                raise ParseError("expression nested too deeply", tok.position)
            self.consume()
            self.depth += 1
            node = self.parse_expression()
            self.depth -= 1
            if not self.match(TokenKind.RIGHT_PAREN):
                raise ParseError(
                    "missing closing parenthesis",
                    self.current.position if self.current else self.end_position,
                )
            self.consume()
            return node

        raise ParseError(f"unexpected token {tok.text!r}", tok.position)


def parse(src: str) -> Expr:
    """
    Parse an arithmetic string into an expression tree.

    Raises ParseError for empty input and grammar violations, LexError for
    characters outside the language.
    """
    if src is None or not src.strip():
        raise ParseError("empty expression", 0)
    tokens = tokenize(src)
    return Parser(tokens, len(src)).parse()


# ---------------------------------------------------------------------------
# Tiny manual test harness
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    ctx = Context.with_variables({"a": 20.0, "b": 15.0, "c": 10.0, "d": 5.0})
    tests = [
        "100 + 50",
        "a * b",
        "(a + b) / (c - d)",
        "a + b * c - d",
        "10-3-2",
        "a / (c - 2 * d)",
        "e + 1",
        "(1 + 2",
        "1 + @",
    ]
    for t in tests:
        print("====", t)
        try:
            tree = parse(t)
            print("tree:  ", tree.render(pretty=True))
            print("value: ", tree.evaluate(ctx))
        except ArithError as e:
            print(f"{type(e).__name__}:", e)
    print(ctx.describe())
