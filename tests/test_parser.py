"""Tests for the expression parser."""

import dataclasses

import pytest

from sandexpr import (
    ArrayLiteral,
    Assignment,
    BinaryOp,
    Conditional,
    FunctionCall,
    FunctionDef,
    GrammarConfig,
    Identifier,
    IndexAccess,
    Literal,
    MemberAccess,
    ParseError,
    Parser,
    Sequence,
    UnaryOp,
    children,
    parse,
    to_source,
    tokenize,
    tree_height,
)

FNDEF = GrammarConfig(fndef=True)


class TestParser:
    """Tests for AST construction."""

    def test_parse_literals(self):
        assert parse("42") == Literal(42)
        assert parse('"hello"') == Literal("hello")
        assert parse("true").value is True
        assert parse("null") == Literal(None)

    def test_parse_identifier(self):
        ast = parse("status")
        assert isinstance(ast, Identifier)
        assert ast.name == "status"

    def test_parse_chained_member_access(self):
        ast = parse("customer.address.city")
        assert isinstance(ast, MemberAccess)
        assert ast.member == "city"
        assert isinstance(ast.object, MemberAccess)
        assert ast.object.member == "address"

    def test_parse_index_access(self):
        ast = parse('items[0]["key"]')
        assert isinstance(ast, IndexAccess)
        assert ast.index == Literal("key")
        assert ast.object == IndexAccess(Identifier("items"), Literal(0))

    def test_logical_operators_are_normalized(self):
        assert parse("a && b").operator == "and"
        assert parse("a AND b").operator == "and"
        assert parse("a || b").operator == "or"
        assert parse("!active") == UnaryOp("not", Identifier("active"))

    def test_parse_not_in(self):
        ast = parse("x not in [1, 2]")
        assert isinstance(ast, BinaryOp)
        assert ast.operator == "not in"
        assert isinstance(ast.right, ArrayLiteral)

    def test_multiplication_binds_tighter_than_addition(self):
        assert parse("1 + 2 * 3") == BinaryOp(
            "+", Literal(1), BinaryOp("*", Literal(2), Literal(3))
        )

    def test_subtraction_is_left_associative(self):
        assert parse("10 - 4 - 3") == BinaryOp(
            "-", BinaryOp("-", Literal(10), Literal(4)), Literal(3)
        )

    def test_comparison_binds_tighter_than_logical(self):
        ast = parse("a > 1 and b < 2 or c")
        assert ast.operator == "or"
        assert ast.left.operator == "and"
        assert ast.left.left.operator == ">"

    def test_unary_minus_binds_looser_than_power(self):
        assert parse("-2^2") == UnaryOp("-", BinaryOp("^", Literal(2), Literal(2)))

    def test_power_is_right_associative(self):
        assert parse("2^3^2") == BinaryOp(
            "^", Literal(2), BinaryOp("^", Literal(3), Literal(2))
        )

    def test_power_exponent_may_be_negative(self):
        assert parse("2^-1") == BinaryOp("^", Literal(2), UnaryOp("-", Literal(1)))

    def test_parse_nested_conditional(self):
        ast = parse("a ? b : c ? d : e")
        assert isinstance(ast, Conditional)
        assert ast.then_branch == Identifier("b")
        assert ast.else_branch == Conditional(
            Identifier("c"), Identifier("d"), Identifier("e")
        )

    def test_parse_function_call(self):
        ast = parse("max(a, b)")
        assert ast == FunctionCall(Identifier("max"), (Identifier("a"), Identifier("b")))

    def test_call_on_member_and_on_call(self):
        assert parse("obj.fn(1)") == FunctionCall(
            MemberAccess(Identifier("obj"), "fn"), (Literal(1),)
        )
        inner = FunctionCall(Identifier("f"), (Literal(1),))
        assert parse("f(1)(2)") == FunctionCall(inner, (Literal(2),))

    def test_parse_array_literal(self):
        ast = parse('[1, "a", x]')
        assert ast == ArrayLiteral((Literal(1), Literal("a"), Identifier("x")))
        assert parse("[]") == ArrayLiteral(())

    def test_assignment_is_right_associative(self):
        assert parse("x = y = 2") == Assignment(
            Identifier("x"), Assignment(Identifier("y"), Literal(2))
        )

    def test_member_and_index_assignment_targets(self):
        assert isinstance(parse("a.b = 1").target, MemberAccess)
        assert isinstance(parse("a[0] = 1").target, IndexAccess)

    def test_parse_sequences(self):
        assert parse("a; b") == Sequence((Identifier("a"), Identifier("b")))
        assert parse("(x = 2, x * 3)") == Sequence(
            (
                Assignment(Identifier("x"), Literal(2)),
                BinaryOp("*", Identifier("x"), Literal(3)),
            )
        )

    def test_trailing_semicolon(self):
        assert parse("a;") == Identifier("a")

    def test_nodes_are_immutable(self):
        ast = parse("x")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ast.name = "y"

    def test_parse_from_tokens(self):
        assert parse(tokenize("1 + x")) == parse("1 + x")
        # EOF is appended when missing
        assert Parser(tokenize("x")[:-1]).parse() == Identifier("x")


class TestFunctionDefinition:
    """Tests for the fndef grammar extension."""

    def test_parse_function_definition(self):
        ast = parse("f(x, y) = x * y", FNDEF)
        assert ast == FunctionDef(
            "f", ("x", "y"), BinaryOp("*", Identifier("x"), Identifier("y"))
        )

    def test_immediately_invoked_definition(self):
        ast = parse("(f(x) = x * x)(5)", FNDEF)
        assert isinstance(ast, FunctionCall)
        assert isinstance(ast.callee, FunctionDef)
        assert ast.arguments == (Literal(5),)

    def test_definition_without_parameters(self):
        assert parse("g() = 1", FNDEF) == FunctionDef("g", (), Literal(1))

    def test_disabled_by_default(self):
        with pytest.raises(ParseError, match="Function definition is not enabled"):
            parse("f(x) = x * x")

    def test_parameters_must_be_identifiers(self):
        with pytest.raises(ParseError, match="Expected parameter name") as exc_info:
            parse("f(1) = 2", FNDEF)
        assert exc_info.value.expected == "identifier"

    def test_duplicate_parameters(self):
        with pytest.raises(ParseError, match="Duplicate parameter name"):
            parse("f(x, x) = x", FNDEF)

    def test_member_call_is_not_a_definition(self):
        with pytest.raises(ParseError, match="Invalid assignment target"):
            parse("a.f(x) = 1", FNDEF)


class TestGrammarToggles:
    """Tests for disabling operators."""

    @pytest.mark.parametrize(
        "source, config",
        [
            ("1 + 2", GrammarConfig(add=False)),
            ("1 - 2", GrammarConfig(subtract=False)),
            ("1 * 2", GrammarConfig(multiply=False)),
            ("1 / 2", GrammarConfig(divide=False)),
            ("1 % 2", GrammarConfig(remainder=False)),
            ("2 ^ 3", GrammarConfig(power=False)),
            ("1 < 2", GrammarConfig(comparison=False)),
            ("a == b", GrammarConfig(comparison=False)),
            ("a and b", GrammarConfig(logical=False)),
            ("!a", GrammarConfig(logical=False)),
            ("a in b", GrammarConfig(in_=False)),
            ("a not in b", GrammarConfig(in_=False)),
            ("x = 1", GrammarConfig(assignment=False)),
            ("a; b", GrammarConfig(sequence=False)),
            ("[1]", GrammarConfig(array=False)),
        ],
    )
    def test_disabled_operator_is_rejected(self, source, config):
        with pytest.raises(ParseError, match="is not enabled"):
            parse(source, config)

    def test_error_names_the_option(self):
        with pytest.raises(ParseError, match=r"'\^' is not enabled \(power\)"):
            parse("2 ^ 3", GrammarConfig(power=False))

    def test_unary_minus_survives_disabled_subtract(self):
        assert parse("-x", GrammarConfig(subtract=False)) == UnaryOp("-", Identifier("x"))

    def test_other_operators_unaffected(self):
        assert isinstance(parse("1 + 2", GrammarConfig(power=False)), BinaryOp)


class TestParseErrors:
    """Tests for parse error reporting."""

    def test_empty_expression(self):
        with pytest.raises(ParseError, match="Empty expression") as exc_info:
            parse("   ")
        assert exc_info.value.expected == "expression"

    def test_missing_closing_paren(self):
        with pytest.raises(ParseError) as exc_info:
            parse("(1 + 2")
        assert exc_info.value.position == 6
        assert exc_info.value.expected == "')'"

    def test_unexpected_end(self):
        with pytest.raises(ParseError, match="Unexpected end of expression") as exc_info:
            parse("1 +")
        assert exc_info.value.position == 3

    def test_trailing_token(self):
        with pytest.raises(ParseError, match="Unexpected token '2'") as exc_info:
            parse("1 2")
        assert exc_info.value.position == 2
        assert exc_info.value.expected == "end of expression"

    def test_top_level_comma(self):
        with pytest.raises(ParseError, match="Unexpected token ','"):
            parse("a, b")

    def test_empty_parentheses(self):
        with pytest.raises(ParseError, match="Empty parentheses"):
            parse("()")

    def test_invalid_assignment_target(self):
        with pytest.raises(ParseError, match="Invalid assignment target") as exc_info:
            parse("1 = 2")
        assert exc_info.value.position == 2

    def test_member_access_requires_identifier(self):
        with pytest.raises(ParseError, match="Expected identifier after '.'"):
            parse("a.(b)")

    def test_conditional_requires_colon(self):
        with pytest.raises(ParseError, match="Expected ':'"):
            parse("a ? b")

    def test_unclosed_index(self):
        with pytest.raises(ParseError, match="Expected ']'"):
            parse("a[1")

    def test_nesting_limit(self):
        with pytest.raises(ParseError, match="nested too deeply"):
            parse("(" * 100 + "1" + ")" * 100)

    def test_unary_chain_limit(self):
        with pytest.raises(ParseError, match="nested too deeply"):
            parse("-" * 100 + "1")

    def test_custom_nesting_limit(self):
        assert parse("((1))", max_nesting=3) == Literal(1)
        with pytest.raises(ParseError, match="nested too deeply"):
            parse("(((1)))", max_nesting=3)

    def test_long_operator_chain_is_rejected(self):
        with pytest.raises(ParseError, match="nested too deeply"):
            parse(" + ".join(["x"] * 3000))

    def test_chain_height_limit(self):
        assert isinstance(parse(" + ".join(["1"] * 200)), BinaryOp)
        with pytest.raises(ParseError, match="nested too deeply"):
            parse(" + ".join(["1"] * 201))

    def test_custom_height_limit(self):
        expected = MemberAccess(MemberAccess(Identifier("a"), "b"), "c")
        assert parse("a.b.c", max_depth=3) == expected
        with pytest.raises(ParseError, match="nested too deeply"):
            parse("a.b.c.d", max_depth=3)


class TestTreeWalk:
    """Tests for child iteration and tree height."""

    def test_children(self):
        ast = parse("f(a, b[0]) + 1")

        assert list(children(ast)) == [
            FunctionCall(
                Identifier("f"),
                (Identifier("a"), IndexAccess(Identifier("b"), Literal(0))),
            ),
            Literal(1),
        ]
        assert list(children(Literal(1))) == []

    def test_children_of_function_definition(self):
        ast = parse("g(x) = x * 2", FNDEF)

        assert list(children(ast)) == [BinaryOp("*", Identifier("x"), Literal(2))]

    def test_tree_height(self):
        assert tree_height(Literal(1)) == 1
        assert tree_height(parse("1 + 2 * 3")) == 3
        assert tree_height(parse(" + ".join(["1"] * 50))) == 50


class TestToSource:
    """Tests for rendering an AST back to text."""

    def test_fully_parenthesized(self):
        assert to_source(parse("1 + 2 * 3")) == "(1 + (2 * 3))"
        assert to_source(parse("not a")) == "(not a)"
        assert to_source(parse("-x")) == "(-x)"

    def test_literals(self):
        assert to_source(parse('[1, 2.5, "a\\"b", true, null]')) == '[1, 2.5, "a\\"b", true, null]'

    def test_calls_and_members(self):
        assert to_source(parse("obj.fn(1, x[0])")) == "obj.fn(1, x[0])"

    def test_function_definition(self):
        assert to_source(parse("f(x) = x * x", FNDEF)) == "(f(x) = (x * x))"

    @pytest.mark.parametrize(
        "source",
        [
            "a ? b : c",
            "x not in [1, 2]",
            "(x = 2; x ^ -1)",
            "(f(n) = n <= 1 ? 1 : n * f(n - 1))(5)",
        ],
    )
    def test_reparses_to_same_tree(self, source):
        ast = parse(source, FNDEF)
        assert parse(to_source(ast), FNDEF) == ast
