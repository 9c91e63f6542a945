"""Parser for the sandexpr expression language.

Converts a stream of tokens into an Abstract Syntax Tree (AST).
Binary operators are parsed by precedence climbing over a fixed table;
everything else is recursive descent.

Operator Precedence (lowest to highest):
1. ;  ,  (sequence - "," only inside parentheses)
2. =  (assignment, local function definition)
3. ? : (conditional)
4. or ||
5. and &&
6. == != < <= > >= in not_in
7. + -
8. * / %
9. - + not ! (unary)
10. ^ (power, right associative)
11. . (member access) () (call) [] (index)
"""

from collections.abc import Iterator
from collections.abc import Sequence as SequenceABC
from dataclasses import dataclass
from typing import Any

from sandexpr.config import DEFAULT_MAX_DEPTH, DEFAULT_MAX_NESTING, GrammarConfig
from sandexpr.errors import ParseError
from sandexpr.lexer import Lexer, Token, TokenType


# -----------------------------------------------------------------------------
# AST Node Types
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ASTNode:
    """Base class for AST nodes."""
    pass


@dataclass(frozen=True)
class Literal(ASTNode):
    """A literal value (number, string, boolean, null)."""
    value: Any


@dataclass(frozen=True)
class Identifier(ASTNode):
    """A variable or function reference."""
    name: str


@dataclass(frozen=True)
class MemberAccess(ASTNode):
    """Dot notation member access (e.g., user.name, a.b.c)."""
    object: ASTNode
    member: str


@dataclass(frozen=True)
class IndexAccess(ASTNode):
    """Bracket notation index access (e.g., items[0], data["key"])."""
    object: ASTNode
    index: ASTNode


@dataclass(frozen=True)
class BinaryOp(ASTNode):
    """Binary operation (e.g., a + b, x == y)."""
    operator: str
    left: ASTNode
    right: ASTNode


@dataclass(frozen=True)
class UnaryOp(ASTNode):
    """Unary operation (e.g., not x, -y)."""
    operator: str
    operand: ASTNode


@dataclass(frozen=True)
class Conditional(ASTNode):
    """Conditional expression (cond ? a : b)."""
    condition: ASTNode
    then_branch: ASTNode
    else_branch: ASTNode


@dataclass(frozen=True)
class FunctionCall(ASTNode):
    """Call of any callable expression (e.g., sqrt(x), obj.fn(1), (f(x) = x)(2))."""
    callee: ASTNode
    arguments: tuple[ASTNode, ...]


@dataclass(frozen=True)
class ArrayLiteral(ASTNode):
    """Array literal (e.g., [1, 2, 3], ["a", "b"])."""
    elements: tuple[ASTNode, ...]


@dataclass(frozen=True)
class FunctionDef(ASTNode):
    """Local function definition (e.g., f(x, y) = x * y). Requires fndef."""
    name: str
    params: tuple[str, ...]
    body: ASTNode


@dataclass(frozen=True)
class Assignment(ASTNode):
    """Assignment (e.g., x = 2). Target is an Identifier, MemberAccess or IndexAccess."""
    target: ASTNode
    value: ASTNode


@dataclass(frozen=True)
class Sequence(ASTNode):
    """Expressions evaluated in order; the value is the last one (a; b)."""
    expressions: tuple[ASTNode, ...]


# -----------------------------------------------------------------------------
# Operator table
# -----------------------------------------------------------------------------

# token type -> (operator, precedence, grammar option)
BINARY_OPERATORS: dict[TokenType, tuple[str, int, str]] = {
    TokenType.OR: ("or", 1, "logical"),
    TokenType.AND: ("and", 2, "logical"),
    TokenType.EQ: ("==", 3, "comparison"),
    TokenType.NEQ: ("!=", 3, "comparison"),
    TokenType.LT: ("<", 3, "comparison"),
    TokenType.LTE: ("<=", 3, "comparison"),
    TokenType.GT: (">", 3, "comparison"),
    TokenType.GTE: (">=", 3, "comparison"),
    TokenType.IN: ("in", 3, "in"),
    TokenType.NOT_IN: ("not in", 3, "in"),
    TokenType.PLUS: ("+", 4, "add"),
    TokenType.MINUS: ("-", 4, "subtract"),
    TokenType.MULTIPLY: ("*", 5, "multiply"),
    TokenType.DIVIDE: ("/", 5, "divide"),
    TokenType.MODULO: ("%", 5, "remainder"),
}

# token type -> (operator, grammar option or None when always enabled)
UNARY_OPERATORS: dict[TokenType, tuple[str, str | None]] = {
    TokenType.MINUS: ("-", None),
    TokenType.PLUS: ("+", None),
    TokenType.NOT: ("not", "logical"),
}


# -----------------------------------------------------------------------------
# Tree traversal
# -----------------------------------------------------------------------------


def children(node: ASTNode) -> Iterator[ASTNode]:
    """Yield the direct child nodes of node, left to right."""
    if isinstance(node, MemberAccess):
        yield node.object
    elif isinstance(node, IndexAccess):
        yield node.object
        yield node.index
    elif isinstance(node, BinaryOp):
        yield node.left
        yield node.right
    elif isinstance(node, UnaryOp):
        yield node.operand
    elif isinstance(node, Conditional):
        yield node.condition
        yield node.then_branch
        yield node.else_branch
    elif isinstance(node, FunctionCall):
        yield node.callee
        yield from node.arguments
    elif isinstance(node, ArrayLiteral):
        yield from node.elements
    elif isinstance(node, FunctionDef):
        yield node.body
    elif isinstance(node, Sequence):
        yield from node.expressions
    elif isinstance(node, Assignment):
        yield node.target
        yield node.value


def tree_height(node: ASTNode) -> int:
    """Number of nodes on the longest root-to-leaf path.

    Walks with an explicit stack so arbitrarily deep trees can be measured.
    """
    height = 0
    stack = [(node, 1)]
    while stack:
        current, depth = stack.pop()
        height = max(height, depth)
        stack.extend((child, depth + 1) for child in children(current))
    return height


# -----------------------------------------------------------------------------
# Parser
# -----------------------------------------------------------------------------


class Parser:
    """Precedence-climbing parser for the expression language.

    Usage:
        parser = Parser('x > 0 ? sqrt(x) : 0')
        ast = parser.parse()

        parser = Parser('(f(x) = x * x)(5)', GrammarConfig(fndef=True))
        ast = parser.parse()
    """

    def __init__(
        self,
        source: str | SequenceABC[Token],
        config: GrammarConfig | None = None,
        max_nesting: int = DEFAULT_MAX_NESTING,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        if isinstance(source, str):
            self.source = source
            self.tokens = Lexer(source).tokenize()
        else:
            self.tokens = list(source)
            if not self.tokens or self.tokens[-1].type != TokenType.EOF:
                end = self.tokens[-1].position + len(self.tokens[-1].text) if self.tokens else 0
                self.tokens.append(Token(TokenType.EOF, None, end))
            self.source = None
        self.config = config or GrammarConfig()
        self.max_nesting = max_nesting
        self.max_depth = max_depth
        self.position = 0
        self._depth = 0

    def parse(self) -> ASTNode:
        """Parse the expression and return the AST root."""
        if self.tokens[0].type == TokenType.EOF:
            raise ParseError("Empty expression", self.tokens[0], expected="expression")

        try:
            ast = self._parse_sequence((TokenType.SEMICOLON,))
        except RecursionError:
            raise ParseError("Expression is nested too deeply", self._current()) from None

        if not self._is_at_end():
            raise ParseError(
                f"Unexpected token '{self._current().text or self._current().value}'",
                self._current(),
                expected="end of expression",
            )

        # Left-associative chains are built by loops, so nesting alone does
        # not bound the height of the tree later walks recurse over
        if tree_height(ast) > self.max_depth:
            raise ParseError("Expression is nested too deeply", self._current())

        return ast

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _current(self) -> Token:
        """Get current token."""
        if self.position >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[self.position]

    def _is_at_end(self) -> bool:
        """Check if we've consumed all tokens."""
        return self._current().type == TokenType.EOF

    def _advance(self) -> Token:
        """Consume and return current token."""
        token = self._current()
        self.position += 1
        return token

    def _match(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        return self._current().type in types

    def _consume(self, token_type: TokenType, message: str, expected: str) -> Token:
        """Consume a token of the expected type, or raise error."""
        if self._current().type == token_type:
            return self._advance()
        raise ParseError(message, self._current(), expected=expected)

    def _require(self, option: str, token: Token) -> None:
        """Reject syntax whose grammar option is disabled."""
        if not self.config.is_enabled(option):
            raise ParseError(
                f"Operator '{token.text or token.value}' is not enabled ({option})",
                token,
            )

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > self.max_nesting:
            raise ParseError("Expression is nested too deeply", self._current())

    def _leave(self) -> None:
        self._depth -= 1

    # -------------------------------------------------------------------------
    # Parsing methods (in order of precedence, lowest to highest)
    # -------------------------------------------------------------------------

    def _parse_sequence(self, separators: tuple[TokenType, ...]) -> ASTNode:
        """Parse separator-delimited expressions; a single one is returned as-is."""
        expressions = [self._parse_assignment()]

        while self._match(*separators):
            self._require("sequence", self._advance())
            # Trailing separator
            if self._match(TokenType.EOF, TokenType.RPAREN):
                break
            expressions.append(self._parse_assignment())

        if len(expressions) == 1:
            return expressions[0]
        return Sequence(tuple(expressions))

    def _parse_assignment(self) -> ASTNode:
        """Parse assignment (right associative) and local function definitions."""
        self._enter()
        try:
            target = self._parse_conditional()

            if not self._match(TokenType.ASSIGN):
                return target

            assign_token = self._advance()
            self._require("assignment", assign_token)

            if isinstance(target, FunctionCall) and isinstance(target.callee, Identifier):
                if not self.config.fndef:
                    raise ParseError(
                        "Function definition is not enabled (fndef)", assign_token
                    )
                params = []
                for arg in target.arguments:
                    if not isinstance(arg, Identifier):
                        raise ParseError(
                            "Expected parameter name in function definition",
                            assign_token,
                            expected="identifier",
                        )
                    params.append(arg.name)
                if len(set(params)) != len(params):
                    raise ParseError("Duplicate parameter name", assign_token)
                body = self._parse_assignment()
                return FunctionDef(target.callee.name, tuple(params), body)

            if not isinstance(target, (Identifier, MemberAccess, IndexAccess)):
                raise ParseError(
                    "Invalid assignment target", assign_token, expected="variable"
                )

            value = self._parse_assignment()
            return Assignment(target, value)
        finally:
            self._leave()

    def _parse_conditional(self) -> ASTNode:
        """Parse conditional expression (right associative)."""
        condition = self._parse_binary(1)

        if not self._match(TokenType.QUESTION):
            return condition

        self._advance()
        then_branch = self._parse_assignment()
        self._consume(TokenType.COLON, "Expected ':' in conditional expression", "':'")
        else_branch = self._parse_assignment()
        return Conditional(condition, then_branch, else_branch)

    def _parse_binary(self, min_precedence: int) -> ASTNode:
        """Precedence climbing over BINARY_OPERATORS (all left associative)."""
        left = self._parse_unary()

        while True:
            token = self._current()
            entry = BINARY_OPERATORS.get(token.type)
            if entry is None:
                break
            op, precedence, option = entry
            if precedence < min_precedence:
                break
            self._require(option, token)
            self._advance()
            right = self._parse_binary(precedence + 1)
            left = BinaryOp(op, left, right)

        return left

    def _parse_unary(self) -> ASTNode:
        """Parse unary expression (-, +, not, !)."""
        token = self._current()
        entry = UNARY_OPERATORS.get(token.type)
        if entry is None:
            return self._parse_power()

        op, option = entry
        if option is not None:
            self._require(option, token)
        self._advance()
        self._enter()
        try:
            operand = self._parse_unary()
        finally:
            self._leave()
        return UnaryOp(op, operand)

    def _parse_power(self) -> ASTNode:
        """Parse power expression (right associative, exponent may be unary)."""
        base = self._parse_postfix()

        if self._match(TokenType.POWER):
            token = self._advance()
            self._require("power", token)
            self._enter()
            try:
                exponent = self._parse_unary()
            finally:
                self._leave()
            return BinaryOp("^", base, exponent)

        return base

    def _parse_postfix(self) -> ASTNode:
        """Parse postfix expressions (member access, index, call)."""
        expr = self._parse_primary()

        while True:
            if self._match(TokenType.DOT):
                self._advance()
                member_token = self._consume(
                    TokenType.IDENTIFIER, "Expected identifier after '.'", "identifier"
                )
                expr = MemberAccess(expr, str(member_token.value))

            elif self._match(TokenType.LBRACKET):
                self._advance()
                index = self._parse_assignment()
                self._consume(TokenType.RBRACKET, "Expected ']' after index", "']'")
                expr = IndexAccess(expr, index)

            elif self._match(TokenType.LPAREN):
                expr = FunctionCall(expr, self._parse_arguments())

            else:
                break

        return expr

    def _parse_primary(self) -> ASTNode:
        """Parse primary expression (literals, identifiers, grouped expressions)."""
        token = self._current()

        if token.type in (TokenType.NUMBER, TokenType.STRING, TokenType.BOOLEAN):
            self._advance()
            return Literal(token.value)

        if token.type == TokenType.NULL:
            self._advance()
            return Literal(None)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            return Identifier(str(token.value))

        # Grouped expression
        if token.type == TokenType.LPAREN:
            self._advance()
            if self._match(TokenType.RPAREN):
                raise ParseError("Empty parentheses", self._current(), expected="expression")
            expr = self._parse_sequence((TokenType.COMMA, TokenType.SEMICOLON))
            self._consume(TokenType.RPAREN, "Expected ')' after expression", "')'")
            return expr

        if token.type == TokenType.LBRACKET:
            self._require("array", token)
            return ArrayLiteral(self._parse_delimited(TokenType.RBRACKET, "']'"))

        if token.type == TokenType.EOF:
            raise ParseError("Unexpected end of expression", token, expected="expression")

        raise ParseError(
            f"Unexpected token '{token.text or token.value}'", token, expected="expression"
        )

    def _parse_arguments(self) -> tuple[ASTNode, ...]:
        """Parse call arguments in parentheses."""
        return self._parse_delimited(TokenType.RPAREN, "')'")

    def _parse_delimited(self, closing: TokenType, expected: str) -> tuple[ASTNode, ...]:
        """Parse a comma-separated list after an opening bracket."""
        self._advance()

        items: list[ASTNode] = []

        if not self._match(closing):
            items.append(self._parse_assignment())

            while self._match(TokenType.COMMA):
                self._advance()
                items.append(self._parse_assignment())

        self._consume(closing, f"Expected {expected}", expected)

        return tuple(items)


def parse(
    source: str | SequenceABC[Token],
    config: GrammarConfig | None = None,
    max_nesting: int = DEFAULT_MAX_NESTING,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> ASTNode:
    """Convenience function to parse an expression string or token list.

    Args:
        source: The expression string, or tokens produced by tokenize()
        config: Operator toggles (defaults: core operators on, fndef off)
        max_nesting: Maximum nesting depth before a ParseError
        max_depth: Maximum height of the resulting tree before a ParseError

    Returns:
        The AST root node
    """
    return Parser(source, config, max_nesting, max_depth).parse()


def to_source(node: ASTNode) -> str:
    """Render an AST back to expression text (fully parenthesized)."""
    if isinstance(node, Literal):
        if node.value is None:
            return "null"
        if isinstance(node.value, bool):
            return "true" if node.value else "false"
        if isinstance(node.value, str):
            escaped = node.value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
            return f'"{escaped}"'
        return repr(node.value)
    if isinstance(node, Identifier):
        return node.name
    if isinstance(node, MemberAccess):
        return f"{to_source(node.object)}.{node.member}"
    if isinstance(node, IndexAccess):
        return f"{to_source(node.object)}[{to_source(node.index)}]"
    if isinstance(node, BinaryOp):
        return f"({to_source(node.left)} {node.operator} {to_source(node.right)})"
    if isinstance(node, UnaryOp):
        separator = " " if node.operator == "not" else ""
        return f"({node.operator}{separator}{to_source(node.operand)})"
    if isinstance(node, Conditional):
        return (
            f"({to_source(node.condition)} ? {to_source(node.then_branch)}"
            f" : {to_source(node.else_branch)})"
        )
    if isinstance(node, FunctionCall):
        args = ", ".join(to_source(a) for a in node.arguments)
        return f"{to_source(node.callee)}({args})"
    if isinstance(node, ArrayLiteral):
        return "[" + ", ".join(to_source(e) for e in node.elements) + "]"
    if isinstance(node, FunctionDef):
        return f"({node.name}({', '.join(node.params)}) = {to_source(node.body)})"
    if isinstance(node, Assignment):
        return f"({to_source(node.target)} = {to_source(node.value)})"
    if isinstance(node, Sequence):
        return "(" + "; ".join(to_source(e) for e in node.expressions) + ")"
    raise TypeError(f"Unknown node type: {type(node).__name__}")
