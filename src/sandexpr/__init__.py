"""Sandboxed expression language.

This package provides:
- ExpressionEngine: Parses and evaluates expressions against a context
- FunctionRegistry: Trusted callables an engine may invoke
- Lexer: Tokenizes expression strings
- Parser: Produces AST from tokens
- Evaluator: Evaluates AST against a context
- SecurityGuard: Member-access denial and identity-based call trust
"""

from sandexpr.builtins import register_builtins
from sandexpr.config import EngineConfig, GrammarConfig
from sandexpr.engine import ExpressionEngine, evaluate
from sandexpr.errors import (
    EvalError,
    EvalErrorKind,
    ExpressionError,
    LexError,
    ParseError,
    SecurityViolation,
)
from sandexpr.evaluator import EvaluationContext, Evaluator, LocalFunction
from sandexpr.expression import Expression
from sandexpr.functions import (
    FunctionCategory,
    FunctionDefinition,
    FunctionRegistry,
    callable_identity,
)
from sandexpr.guard import SecurityGuard
from sandexpr.lexer import Lexer, Token, TokenKind, TokenType, tokenize
from sandexpr.parser import (
    ArrayLiteral,
    Assignment,
    ASTNode,
    BinaryOp,
    Conditional,
    FunctionCall,
    FunctionDef,
    Identifier,
    IndexAccess,
    Literal,
    MemberAccess,
    Parser,
    Sequence,
    UnaryOp,
    children,
    parse,
    to_source,
    tree_height,
)

__all__ = [
    # Engine
    "ExpressionEngine",
    "Expression",
    "evaluate",
    # Config
    "EngineConfig",
    "GrammarConfig",
    # Errors
    "EvalError",
    "EvalErrorKind",
    "ExpressionError",
    "LexError",
    "ParseError",
    "SecurityViolation",
    # Evaluator
    "EvaluationContext",
    "Evaluator",
    "LocalFunction",
    "SecurityGuard",
    # Functions
    "FunctionCategory",
    "FunctionDefinition",
    "FunctionRegistry",
    "callable_identity",
    "register_builtins",
    # Lexer
    "Lexer",
    "Token",
    "TokenKind",
    "TokenType",
    "tokenize",
    # Parser
    "ASTNode",
    "ArrayLiteral",
    "Assignment",
    "BinaryOp",
    "Conditional",
    "FunctionCall",
    "FunctionDef",
    "Identifier",
    "IndexAccess",
    "Literal",
    "MemberAccess",
    "Parser",
    "Sequence",
    "UnaryOp",
    "parse",
    "to_source",
    "children",
    "tree_height",
]
