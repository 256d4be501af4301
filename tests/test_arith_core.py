"""Tests for the arithmetic expression core.

Covers:
- Tokenizer: token kinds, positions, sign handling, invalid characters
- Parser: precedence, left associativity, parentheses, error handling
- Evaluator: variables, division by zero, idempotence, depth limit
- Rendering, simplification and the Context store
"""

from __future__ import annotations

import math

import pytest

from arith_core import (
    DIVISION_EPSILON,
    MAX_NESTING_DEPTH,
    ArithError,
    BinaryOp,
    Context,
    DivisionByZero,
    EmptyStack,
    EvalError,
    LexError,
    NumberLiteral,
    OpKind,
    ParseError,
    TokenKind,
    UndefinedVariable,
    VariableRef,
    evaluate,
    free_variables,
    is_associative,
    is_commutative,
    is_valid_variable_name,
    parse,
    render,
    simplify,
    tokenize,
)


def _eval(src: str, **bindings: float) -> float:
    return parse(src).evaluate(Context.with_variables(bindings))


# ============================================================================
# Tokenizer tests
# ============================================================================


class TestTokenizer:
    def test_kinds_and_positions(self) -> None:
        tokens = tokenize("(a1 + 2.5) * x_y")
        assert [(t.kind, t.text, t.position) for t in tokens] == [
            (TokenKind.LEFT_PAREN, "(", 0),
            (TokenKind.IDENTIFIER, "a1", 1),
            (TokenKind.OPERATOR, "+", 4),
            (TokenKind.NUMBER, "2.5", 6),
            (TokenKind.RIGHT_PAREN, ")", 9),
            (TokenKind.OPERATOR, "*", 11),
            (TokenKind.IDENTIFIER, "x_y", 13),
        ]

    def test_whitespace_only_yields_nothing(self) -> None:
        assert tokenize(" \t\n ") == []

    def test_numbers_are_greedy(self) -> None:
        tokens = tokenize("12345.678")
        assert len(tokens) == 1
        assert tokens[0].text == "12345.678"

    def test_leading_sign_at_start(self) -> None:
        tokens = tokenize("-5 + 1")
        assert tokens[0].kind == TokenKind.NUMBER
        assert tokens[0].text == "-5"

    def test_minus_after_operand_is_operator(self) -> None:
        tokens = tokenize("10-3-2")
        assert [t.text for t in tokens] == ["10", "-", "3", "-", "2"]
        assert tokens[1].kind == TokenKind.OPERATOR

    def test_minus_after_operator_is_sign(self) -> None:
        tokens = tokenize("1 - -2")
        assert [t.text for t in tokens] == ["1", "-", "-2"]
        assert tokens[2].kind == TokenKind.NUMBER

    def test_minus_after_identifier_and_paren(self) -> None:
        assert [t.text for t in tokenize("x-1")] == ["x", "-", "1"]
        assert [t.text for t in tokenize("(x)-1")] == ["(", "x", ")", "-", "1"]

    def test_minus_before_paren_is_operator(self) -> None:
        tokens = tokenize("-(1)")
        assert tokens[0].kind == TokenKind.OPERATOR

    def test_identifier_after_number(self) -> None:
        tokens = tokenize("2x")
        assert [(t.kind, t.text) for t in tokens] == [
            (TokenKind.NUMBER, "2"),
            (TokenKind.IDENTIFIER, "x"),
        ]

    @pytest.mark.parametrize(
        "src, char, position",
        [
            ("1+@", "@", 2),
            ("a ^ b", "^", 2),
            ("_x", "_", 0),
            ("1.", ".", 1),
            (".5", ".", 0),
        ],
    )
    def test_invalid_character(self, src: str, char: str, position: int) -> None:
        with pytest.raises(LexError) as exc_info:
            tokenize(src)
        assert exc_info.value.character == char
        assert exc_info.value.position == position


# ============================================================================
# Parser tests
# ============================================================================


class TestParser:
    def test_precedence(self) -> None:
        assert _eval("2+3*4") == 14.0
        assert _eval("(2+3)*4") == 20.0

    def test_left_associativity(self) -> None:
        assert _eval("10-3-2") == 5.0
        assert _eval("100/10/2") == 5.0

    def test_tree_shape_folds_left(self) -> None:
        tree = parse("a - b - c")
        assert tree == BinaryOp(
            OpKind.SUBTRACT,
            BinaryOp(OpKind.SUBTRACT, VariableRef("a"), VariableRef("b")),
            VariableRef("c"),
        )

    def test_multiplicative_binds_tighter(self) -> None:
        tree = parse("1 + 2 * 3")
        assert isinstance(tree, BinaryOp)
        assert tree.kind is OpKind.ADD
        assert tree.right == BinaryOp(OpKind.MULTIPLY, NumberLiteral(2.0), NumberLiteral(3.0))

    def test_single_factor(self) -> None:
        assert parse("42") == NumberLiteral(42.0)
        assert parse("  rate ") == VariableRef("rate")
        assert parse("((7))") == NumberLiteral(7.0)

    def test_negative_literal(self) -> None:
        assert _eval("1 - -2") == 3.0
        assert _eval("-1.5 * 4") == -6.0

    @pytest.mark.parametrize("src", ["", "   ", "\t\n"])
    def test_empty_input(self, src: str) -> None:
        with pytest.raises(ParseError, match="empty expression"):
            parse(src)

    def test_missing_closing_parenthesis(self) -> None:
        with pytest.raises(ParseError, match="missing closing parenthesis"):
            parse("(1+2")

    def test_trailing_token(self) -> None:
        with pytest.raises(ParseError, match="unexpected trailing token") as exc_info:
            parse("1 + 2)")
        assert exc_info.value.position == 5

    def test_trailing_operand(self) -> None:
        with pytest.raises(ParseError, match="unexpected trailing token"):
            parse("2 x")

    def test_unexpected_token(self) -> None:
        with pytest.raises(ParseError, match="unexpected token"):
            parse("1 + * 2")

    def test_unexpected_end(self) -> None:
        with pytest.raises(ParseError, match="unexpected end of expression"):
            parse("1 +")

    def test_empty_parentheses(self) -> None:
        with pytest.raises(ParseError):
            parse("()")

    def test_lex_error_propagates(self) -> None:
        with pytest.raises(LexError):
            parse("1+@")

    def test_errors_share_base_class(self) -> None:
        for src in ["", "(1", "1+@"]:
            with pytest.raises(ArithError):
                parse(src)

    def test_nesting_limit(self) -> None:
        ok = "(" * MAX_NESTING_DEPTH + "1" + ")" * MAX_NESTING_DEPTH
        assert _eval(ok) == 1.0
        too_deep = "(" * (MAX_NESTING_DEPTH + 1) + "1" + ")" * (MAX_NESTING_DEPTH + 1)
        with pytest.raises(ParseError, match="nested too deeply"):
            parse(too_deep)


# ============================================================================
# Evaluation tests
# ============================================================================


class TestEvaluate:
    def test_variable_substitution_without_reparse(self) -> None:
        tree = parse("x*x+1")
        ctx = Context()
        ctx.set_variable("x", 5.0)
        assert tree.evaluate(ctx) == 26.0
        ctx.set_variable("x", 3.0)
        assert tree.evaluate(ctx) == 10.0

    def test_division_by_zero(self) -> None:
        with pytest.raises(DivisionByZero):
            _eval("5/0")

    def test_division_by_tiny_divisor(self) -> None:
        with pytest.raises(DivisionByZero):
            _eval("1 / d", d=DIVISION_EPSILON / 10)
        assert _eval("1 / d", d=DIVISION_EPSILON * 10) == pytest.approx(1e8)

    def test_division_by_computed_zero(self) -> None:
        with pytest.raises(DivisionByZero):
            _eval("a / (c - 2 * d)", a=20.0, c=10.0, d=5.0)

    def test_undefined_variable(self) -> None:
        with pytest.raises(UndefinedVariable) as exc_info:
            _eval("y+1")
        assert exc_info.value.name == "y"

    def test_retry_after_binding(self) -> None:
        tree = parse("y + 1")
        ctx = Context()
        with pytest.raises(UndefinedVariable):
            tree.evaluate(ctx)
        ctx.set_variable("y", 41.0)
        assert tree.evaluate(ctx) == 42.0

    def test_left_evaluated_before_right(self) -> None:
        # Both sides fail; the left one must be reported
        with pytest.raises(UndefinedVariable) as exc_info:
            _eval("first + second")
        assert exc_info.value.name == "first"

    def test_idempotent(self) -> None:
        tree = parse("(a + b) / (c - d)")
        ctx = Context.with_variables({"a": 20.0, "b": 15.0, "c": 10.0, "d": 5.0})
        first = tree.evaluate(ctx)
        second = tree.evaluate(ctx)
        assert first == second == 7.0
        assert ctx.stack_size == 0

    def test_infinite_binding_is_accepted(self) -> None:
        assert _eval("x + 1", x=math.inf) == math.inf
        with pytest.raises(DivisionByZero):
            _eval("inf_val / 0", inf_val=math.inf)

    def test_power_node(self) -> None:
        tree = BinaryOp(OpKind.POWER, VariableRef("x"), NumberLiteral(2.0))
        assert evaluate(tree, Context({"x": 3.0})) == 9.0

    def test_power_domain_error(self) -> None:
        tree = BinaryOp(OpKind.POWER, NumberLiteral(-8.0), NumberLiteral(0.5))
        with pytest.raises(EvalError):
            evaluate(tree, Context())

    @pytest.mark.parametrize("terms", [200, 600, 2000])
    def test_long_chain(self, terms: int) -> None:
        src = " + ".join(["1"] * terms)
        assert _eval(src) == float(terms)

    def test_deep_programmatic_tree(self) -> None:
        tree = NumberLiteral(0.0)
        for i in range(5000):
            tree = BinaryOp(OpKind.SUBTRACT if i % 2 else OpKind.ADD, tree, NumberLiteral(1.0))
        assert evaluate(tree, Context()) == 0.0

    def test_long_chain_reports_leftmost_undefined(self) -> None:
        src = " * ".join(["2"] * 1500 + ["missing", "other"])
        with pytest.raises(UndefinedVariable) as exc_info:
            _eval(src)
        assert exc_info.value.name == "missing"


# ============================================================================
# Rendering / tree utility tests
# ============================================================================


class TestRender:
    def test_fully_parenthesized(self) -> None:
        assert render(parse("(3+4)*(10-2)")) == "((3 + 4) * (10 - 2))"

    def test_pretty_symbols(self) -> None:
        tree = parse("(3+4)*(10-2)/x")
        assert tree.render(pretty=True) == "(((3 + 4) × (10 - 2)) ÷ x)"

    def test_str_uses_render(self) -> None:
        assert str(parse("a+1.5")) == "(a + 1.5)"

    def test_number_formatting(self) -> None:
        assert render(NumberLiteral(2.0)) == "2"
        assert render(NumberLiteral(-0.25)) == "-0.25"
        assert render(NumberLiteral(1e-05)) == "0.00001"

    def test_negative_zero_keeps_sign(self) -> None:
        assert render(NumberLiteral(-0.0)) == "-0"
        assert render(NumberLiteral(0.0)) == "0"
        reparsed = parse(render(NumberLiteral(-0.0)))
        assert isinstance(reparsed, NumberLiteral)
        assert math.copysign(1.0, reparsed.value) == -1.0

    def test_long_chain_render_and_simplify(self) -> None:
        tree = parse("+".join(["1"] * 2000))
        text = render(tree)
        assert text.count("(") == 1999
        assert text.startswith("(" * 1999 + "1 + 1)")
        assert simplify(tree) == NumberLiteral(2000.0)

    def test_long_chain_simplify_keeps_variables(self) -> None:
        tree = parse(" + ".join(["x"] + ["1"] * 1000))
        simplified = simplify(tree)
        assert simplified is tree
        assert free_variables(simplified) == ["x"]

    @pytest.mark.parametrize(
        "tree",
        [
            BinaryOp(OpKind.ADD, NumberLiteral(1.5), NumberLiteral(2.25)),
            BinaryOp(
                OpKind.MULTIPLY,
                BinaryOp(OpKind.ADD, NumberLiteral(3.0), NumberLiteral(-4.0)),
                BinaryOp(OpKind.MULTIPLY, NumberLiteral(0.1), NumberLiteral(7.0)),
            ),
            BinaryOp(
                OpKind.ADD,
                NumberLiteral(1e-05),
                BinaryOp(OpKind.ADD, NumberLiteral(123456.789), NumberLiteral(-2.0)),
            ),
        ],
    )
    def test_round_trip(self, tree: BinaryOp) -> None:
        ctx = Context()
        reparsed = parse(render(tree))
        assert reparsed.evaluate(ctx) == pytest.approx(tree.evaluate(ctx), abs=1e-9)

    def test_round_trip_with_variables(self) -> None:
        tree = parse("a * b - c / d")
        assert parse(tree.render()) == tree


class TestTreeUtilities:
    def test_operator_metadata(self) -> None:
        assert is_commutative(OpKind.ADD) and is_associative(OpKind.ADD)
        assert is_commutative(OpKind.MULTIPLY) and is_associative(OpKind.MULTIPLY)
        for kind in (OpKind.SUBTRACT, OpKind.DIVIDE, OpKind.POWER):
            assert not is_commutative(kind)
            assert not is_associative(kind)

    def test_free_variables(self) -> None:
        assert free_variables(parse("b * a + b / 2")) == ["a", "b"]
        assert free_variables(parse("1 + 2")) == []

    def test_simplify_folds_constants(self) -> None:
        tree = parse("x * (2 + 3) - 4 / 2")
        simplified = simplify(tree)
        assert render(simplified) == "((x * 5) - 2)"
        assert simplified.evaluate(Context({"x": 2.0})) == tree.evaluate(Context({"x": 2.0}))

    def test_simplify_keeps_zero_division(self) -> None:
        tree = parse("1 / (2 - 2)")
        simplified = simplify(tree)
        assert render(simplified) == "(1 / 0)"
        with pytest.raises(DivisionByZero):
            simplified.evaluate(Context())

    def test_simplify_returns_same_tree_when_nothing_folds(self) -> None:
        tree = parse("a + b")
        assert simplify(tree) is tree

    def test_nodes_are_immutable(self) -> None:
        node = NumberLiteral(1.0)
        with pytest.raises(AttributeError):
            node.value = 2.0  # type: ignore[misc]

    def test_literal_helpers(self) -> None:
        assert NumberLiteral(0.0).is_zero
        assert NumberLiteral(3.0).is_integer
        assert not NumberLiteral(3.5).is_integer

    @pytest.mark.parametrize(
        "name, valid",
        [("x", True), ("rate_2", True), ("A9", True), ("", False), ("_x", False), ("9a", False), ("a-b", False)],
    )
    def test_is_valid_variable_name(self, name: str, valid: bool) -> None:
        assert is_valid_variable_name(name) is valid


# ============================================================================
# Context tests
# ============================================================================


class TestContext:
    def test_set_get_has(self) -> None:
        ctx = Context()
        assert not ctx.has_variable("x")
        ctx.set_variable("x", 1.0)
        ctx.set_variable("x", 2.0)
        assert ctx.has_variable("x")
        assert ctx.get_variable("x") == 2.0
        assert ctx.variable_count == 1

    def test_get_missing(self) -> None:
        with pytest.raises(UndefinedVariable):
            Context().get_variable("nope")

    def test_with_variables_copies_mapping(self) -> None:
        source = {"a": 1.0}
        ctx = Context.with_variables(source)
        ctx.set_variable("b", 2.0)
        assert "b" not in source
        assert ctx.variable_names() == ["a", "b"]

    def test_nan_value_accepted(self) -> None:
        ctx = Context()
        ctx.set_variable("n", math.nan)
        assert math.isnan(ctx.get_variable("n"))

    def test_stack(self) -> None:
        ctx = Context()
        ctx.push_value(1.0)
        ctx.push_value(2.0)
        assert ctx.peek_value() == 2.0
        assert ctx.stack_size == 2
        assert ctx.pop_value() == 2.0
        assert ctx.pop_value() == 1.0
        assert ctx.stack_size == 0

    def test_empty_stack(self) -> None:
        ctx = Context()
        with pytest.raises(EmptyStack):
            ctx.pop_value()
        with pytest.raises(EmptyStack):
            ctx.peek_value()

    def test_clear_stack(self) -> None:
        ctx = Context()
        ctx.push_value(1.0)
        ctx.clear_stack()
        assert ctx.stack_size == 0

    def test_copy_is_independent(self) -> None:
        ctx = Context({"a": 1.0})
        ctx.push_value(5.0)
        clone = ctx.copy()
        clone.set_variable("a", 9.0)
        clone.push_value(6.0)
        assert ctx.get_variable("a") == 1.0
        assert ctx.stack_size == 1
        assert clone.peek_value() == 6.0

    def test_describe(self) -> None:
        ctx = Context({"b": 2.0, "a": 1.0})
        ctx.push_value(10.0)
        ctx.push_value(20.0)
        assert ctx.describe().splitlines() == [
            "Variables (2):",
            "  a = 1.0",
            "  b = 2.0",
            "Stack size: 2",
            "  [0]: 20.0",
            "  [1]: 10.0",
        ]

    def test_describe_empty(self) -> None:
        assert "(none)" in Context().describe()

    def test_same_tree_many_contexts(self) -> None:
        tree = parse("x * 2")
        assert [tree.evaluate(Context({"x": v})) for v in (1.0, 2.0, 3.0)] == [2.0, 4.0, 6.0]

    def test_update_upserts_many(self) -> None:
        ctx = Context({"a": 1.0})
        ctx.update({"a": 5.0, "b": 6.0})
        assert ctx.get_variable("a") == 5.0
        assert ctx.variable_names() == ["a", "b"]
