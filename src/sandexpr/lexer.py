"""Lexer/tokenizer for the sandexpr expression language.

Converts expression strings into a flat sequence of tokens for the parser.
The lexer knows nothing about the grammar: which operators are enabled is
decided by the parser.

Token types:
- Literals: NUMBER, STRING, BOOLEAN, NULL
- Identifiers: IDENTIFIER (variable, member and function names)
- Operators: comparison, logical, arithmetic, assignment, conditional
- Punctuation: LPAREN, RPAREN, LBRACKET, RBRACKET, COMMA, DOT, SEMICOLON
"""

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Iterator

from sandexpr.errors import LexError


class TokenType(Enum):
    """Types of tokens in the expression language."""

    # Literals
    NUMBER = auto()
    STRING = auto()
    BOOLEAN = auto()
    NULL = auto()

    # Identifiers
    IDENTIFIER = auto()

    # Comparison operators
    EQ = auto()          # ==
    NEQ = auto()         # !=
    LT = auto()          # <
    LTE = auto()         # <=
    GT = auto()          # >
    GTE = auto()         # >=

    # Logical operators
    AND = auto()         # && or and
    OR = auto()          # || or or
    NOT = auto()         # ! or not

    # Arithmetic operators
    PLUS = auto()        # +
    MINUS = auto()       # -
    MULTIPLY = auto()    # *
    DIVIDE = auto()      # /
    MODULO = auto()      # %
    POWER = auto()       # ^

    # Membership operators
    IN = auto()          # in
    NOT_IN = auto()      # not in

    # Assignment and conditional
    ASSIGN = auto()      # =
    QUESTION = auto()    # ?
    COLON = auto()       # :

    # Punctuation
    LPAREN = auto()      # (
    RPAREN = auto()      # )
    LBRACKET = auto()    # [
    RBRACKET = auto()    # ]
    COMMA = auto()       # ,
    DOT = auto()         # .
    SEMICOLON = auto()   # ;

    # End of input
    EOF = auto()


class TokenKind(Enum):
    """Coarse classification of a token."""

    NUMBER = "number"
    STRING = "string"
    IDENTIFIER = "identifier"
    KEYWORD = "keyword"
    OPERATOR = "operator"
    PUNCTUATION = "punctuation"
    EOF = "eof"


_PUNCTUATION = {
    TokenType.LPAREN,
    TokenType.RPAREN,
    TokenType.LBRACKET,
    TokenType.RBRACKET,
    TokenType.COMMA,
    TokenType.DOT,
    TokenType.SEMICOLON,
}

_KIND_BY_TYPE = {
    TokenType.NUMBER: TokenKind.NUMBER,
    TokenType.STRING: TokenKind.STRING,
    TokenType.BOOLEAN: TokenKind.KEYWORD,
    TokenType.NULL: TokenKind.KEYWORD,
    TokenType.IDENTIFIER: TokenKind.IDENTIFIER,
    TokenType.EOF: TokenKind.EOF,
}


@dataclass(frozen=True)
class Token:
    """A single token from the lexer.

    Attributes:
        type: The token type
        value: The token's value (number, string content, identifier name, etc.)
        position: Character position in the source string
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        text: The raw source text of the token
    """

    type: TokenType
    value: str | int | float | bool | None
    position: int
    line: int = 1
    column: int = 1
    text: str = field(default="", compare=False)

    @property
    def kind(self) -> TokenKind:
        if self.type in _KIND_BY_TYPE:
            return _KIND_BY_TYPE[self.type]
        if self.type in _PUNCTUATION:
            return TokenKind.PUNCTUATION
        return TokenKind.OPERATOR

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, pos={self.position})"


# Token patterns (order matters - longer matches first)
TOKEN_PATTERNS = [
    # Whitespace (skip)
    (r"\s+", None),

    # Numbers: hex, binary, decimal with optional fraction/exponent
    (r"0[xX][0-9a-fA-F]*", TokenType.NUMBER),
    (r"0[bB][01]*", TokenType.NUMBER),
    (r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", TokenType.NUMBER),

    # Multi-character operators (before single character)
    (r"==", TokenType.EQ),
    (r"!=", TokenType.NEQ),
    (r"<=", TokenType.LTE),
    (r">=", TokenType.GTE),
    (r"&&", TokenType.AND),
    (r"\|\|", TokenType.OR),

    # Single character operators
    (r"<", TokenType.LT),
    (r">", TokenType.GT),
    (r"!", TokenType.NOT),
    (r"=", TokenType.ASSIGN),
    (r"\?", TokenType.QUESTION),
    (r":", TokenType.COLON),
    (r"\+", TokenType.PLUS),
    (r"-", TokenType.MINUS),
    (r"\*", TokenType.MULTIPLY),
    (r"/", TokenType.DIVIDE),
    (r"%", TokenType.MODULO),
    (r"\^", TokenType.POWER),

    # Punctuation
    (r"\(", TokenType.LPAREN),
    (r"\)", TokenType.RPAREN),
    (r"\[", TokenType.LBRACKET),
    (r"\]", TokenType.RBRACKET),
    (r",", TokenType.COMMA),
    (r"\.", TokenType.DOT),
    (r";", TokenType.SEMICOLON),

    # Strings (double or single quoted)
    (r'"([^"\\]|\\.)*"', TokenType.STRING),
    (r"'([^'\\]|\\.)*'", TokenType.STRING),

    # Keywords and identifiers (must come after operators)
    (r"[a-zA-Z_$][a-zA-Z0-9_$]*", TokenType.IDENTIFIER),
]

_COMPILED_PATTERNS = [
    (re.compile(pattern), token_type) for pattern, token_type in TOKEN_PATTERNS
]

_NOT_IN_RE = re.compile(r"\s+in\b", re.IGNORECASE)

# Keywords that map to specific token types
KEYWORDS = {
    "true": (TokenType.BOOLEAN, True),
    "false": (TokenType.BOOLEAN, False),
    "null": (TokenType.NULL, None),
    "and": (TokenType.AND, "and"),
    "or": (TokenType.OR, "or"),
    "not": (TokenType.NOT, "not"),
    "in": (TokenType.IN, "in"),
}

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "b": "\b",
    "f": "\f",
    "\\": "\\",
    '"': '"',
    "'": "'",
    "/": "/",
}


class Lexer:
    """Tokenizer for the expression language.

    Usage:
        lexer = Lexer('x > 0 ? sqrt(x) : 0')
        for token in lexer:
            print(token)
    """

    def __init__(self, source: str):
        self.source = source
        self.position = 0
        self.line = 1
        self.column = 1

    def __iter__(self) -> Iterator[Token]:
        """Iterate over all tokens in the source."""
        while True:
            token = self.next_token()
            yield token
            if token.type == TokenType.EOF:
                break

    def next_token(self) -> Token:
        """Get the next token from the source."""
        while True:
            if self.position >= len(self.source):
                return Token(TokenType.EOF, None, self.position, self.line, self.column)

            for pattern, token_type in _COMPILED_PATTERNS:
                match = pattern.match(self.source, self.position)
                if match:
                    break
            else:
                self._raise_unmatched()

            text = match.group()
            start = (self.position, self.line, self.column)
            self._advance(len(text))

            if token_type is None:
                continue

            if token_type == TokenType.NUMBER:
                return Token(TokenType.NUMBER, self._number_value(text, start), *start, text=text)

            if token_type == TokenType.STRING:
                value = self._unescape_string(text[1:-1], start)
                return Token(TokenType.STRING, value, *start, text=text)

            if token_type == TokenType.IDENTIFIER:
                return self._identifier_or_keyword(text, start)

            return Token(token_type, text, *start, text=text)

    def _identifier_or_keyword(self, text: str, start: tuple[int, int, int]) -> Token:
        lower_value = text.lower()
        if lower_value not in KEYWORDS:
            return Token(TokenType.IDENTIFIER, text, *start, text=text)

        keyword_type, keyword_value = KEYWORDS[lower_value]

        # "not in" is a single operator
        if lower_value == "not":
            in_match = _NOT_IN_RE.match(self.source, self.position)
            if in_match:
                self._advance(len(in_match.group()))
                raw = self.source[start[0]:self.position]
                return Token(TokenType.NOT_IN, "not in", *start, text=raw)

        return Token(keyword_type, keyword_value, *start, text=text)

    def _number_value(self, text: str, start: tuple[int, int, int]) -> int | float:
        """Convert number text, rejecting incomplete literals like '1.' or '0x'."""
        following = self.source[self.position:self.position + 1]
        lowered = text.lower()

        if lowered.startswith(("0x", "0b")):
            if len(text) == 2:
                raise LexError(f"Unterminated number '{text}'", *start)
            if following and (following.isalnum() or following == "_"):
                raise LexError(f"Invalid number '{text}{following}'", *start)
            return int(text[2:], 16 if lowered[1] == "x" else 2)

        if text.endswith(".") or following in ("e", "E"):
            raise LexError(f"Unterminated number '{text}{following}'", *start)
        if following and (following.isalnum() or following in "_$"):
            raise LexError(f"Invalid number '{text}{following}'", *start)

        if "." in text or "e" in lowered:
            return float(text)
        return int(text)

    def _raise_unmatched(self) -> None:
        char = self.source[self.position]
        if char in ("'", '"'):
            raise LexError("Unterminated string", self.position, self.line, self.column)
        raise LexError(
            f"Unexpected character '{char}'",
            self.position,
            self.line,
            self.column,
        )

    def _advance(self, count: int) -> None:
        """Advance position by count characters, updating line/column."""
        for _ in range(count):
            if self.position < len(self.source):
                if self.source[self.position] == "\n":
                    self.line += 1
                    self.column = 1
                else:
                    self.column += 1
                self.position += 1

    def _unescape_string(self, s: str, start: tuple[int, int, int]) -> str:
        """Process escape sequences in a string."""
        result = []
        i = 0
        while i < len(s):
            if s[i] == "\\" and i + 1 < len(s):
                next_char = s[i + 1]
                if next_char == "u":
                    digits = s[i + 2:i + 6]
                    if len(digits) != 4 or not all(c in "0123456789abcdefABCDEF" for c in digits):
                        raise LexError(f"Invalid unicode escape '\\u{digits}'", *start)
                    result.append(chr(int(digits, 16)))
                    i += 6
                    continue
                result.append(_SIMPLE_ESCAPES.get(next_char, next_char))
                i += 2
            else:
                result.append(s[i])
                i += 1
        return "".join(result)

    def tokenize(self) -> list[Token]:
        """Tokenize the entire source and return list of tokens."""
        return list(self)


def tokenize(source: str) -> list[Token]:
    """Tokenize an expression string. The list always ends with an EOF token."""
    return Lexer(source).tokenize()
