"""Error types for the sandexpr expression language.

Every failure surfaces as a subclass of ExpressionError:
- LexError: malformed token
- ParseError: malformed grammar (with position and expected-token hint)
- EvalError: evaluation failure, tagged with an EvalErrorKind
- SecurityViolation: EvalError raised by the security guard
"""

from enum import Enum
from typing import Any


class ExpressionError(Exception):
    """Base class for expression errors."""
    pass


class LexError(ExpressionError):
    """Error during lexical analysis."""

    def __init__(self, message: str, position: int, line: int = 1, column: int = 1):
        self.position = position
        self.line = line
        self.column = column
        super().__init__(f"{message} at line {line}, column {column}")


class ParseError(ExpressionError):
    """Error during parsing.

    Attributes:
        position: Character offset of the offending token (always within the source)
        expected: Hint describing what the parser expected, if known
        token: The offending token
    """

    def __init__(self, message: str, token: Any, expected: str | None = None):
        self.token = token
        self.position = token.position
        self.expected = expected
        super().__init__(f"{message} at position {token.position}")


class EvalErrorKind(Enum):
    """Sub-kinds of evaluation errors."""

    UNKNOWN_IDENTIFIER = "UnknownIdentifier"
    NOT_CALLABLE = "NotCallable"
    CALL_NOT_ALLOWED = "CallNotAllowed"
    PROTO_ACCESS_DENIED = "ProtoAccessDenied"
    DEPTH_EXCEEDED = "DepthExceeded"
    TYPE_MISMATCH = "TypeMismatch"
    DIVISION_BY_ZERO = "DivisionByZero"
    READ_ONLY = "ReadOnly"
    CALL_FAILED = "CallFailed"

    @property
    def is_security(self) -> bool:
        return self in SECURITY_KINDS


SECURITY_KINDS = frozenset(
    {EvalErrorKind.CALL_NOT_ALLOWED, EvalErrorKind.PROTO_ACCESS_DENIED}
)


class EvalError(ExpressionError):
    """Error during expression evaluation.

    Attributes:
        kind: What went wrong
        detail: Human-readable description (offending name, operand types, ...)
        name: The offending identifier or member name, when there is one
    """

    def __init__(self, kind: EvalErrorKind, detail: str, name: str | None = None):
        self.kind = kind
        self.detail = detail
        self.name = name
        super().__init__(f"{kind.value}: {detail}")

    @property
    def is_security_violation(self) -> bool:
        return self.kind.is_security


class SecurityViolation(EvalError):
    """Sandbox-escape attempt: a denied member access or an untrusted call."""

    def __init__(self, kind: EvalErrorKind, detail: str, name: str | None = None):
        if not kind.is_security:
            raise ValueError(f"{kind.value} is not a security error kind")
        super().__init__(kind, detail, name)
