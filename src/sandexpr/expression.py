"""Parsed expressions that can be evaluated many times."""

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from sandexpr.errors import EvalError, EvalErrorKind
from sandexpr.evaluator import EvaluationContext, Evaluator
from sandexpr.parser import (
    Assignment,
    ASTNode,
    FunctionDef,
    Identifier,
    children,
    to_source,
)

if TYPE_CHECKING:
    from sandexpr.engine import ExpressionEngine


class Expression:
    """An expression parsed by an ExpressionEngine.

    Usage:
        expr = engine.parse("x * 2 + offset")
        expr.variables()          # ["x", "offset"]
        expr.evaluate({"x": 3, "offset": 1})  # 7
    """

    def __init__(self, ast: ASTNode, engine: "ExpressionEngine"):
        self.ast = ast
        self.engine = engine

    def evaluate(self, context: Mapping[str, Any] | None = None) -> Any:
        """Evaluate against a context of named values.

        Each call gets fresh local scopes and a fresh set of trusted local
        functions; nothing defined by one evaluation carries into the next.

        Raises:
            TypeError: If context is not a mapping
            EvalError: If evaluation fails
        """
        if context is None:
            context = {}
        if not isinstance(context, Mapping):
            raise TypeError(f"Context must be a mapping, got {type(context).__name__}")

        eval_context = EvaluationContext(
            variables=context,
            registry=self.engine.registry,
            max_depth=self.engine.config.max_depth,
        )
        try:
            return Evaluator(eval_context).evaluate(self.ast)
        except RecursionError:
            raise EvalError(
                EvalErrorKind.DEPTH_EXCEEDED, "Recursion limit reached during evaluation"
            ) from None

    def symbols(self) -> list[str]:
        """All free names referenced, in order of first appearance.

        Function parameters inside their own bodies are not free.
        """
        names: list[str] = []
        for name in _free_names(self.ast, frozenset()):
            if name not in names:
                names.append(name)
        return names

    def variables(self) -> list[str]:
        """Free names the context must supply.

        Excludes names bound by the engine's registry (functions and
        constants) and names assigned or defined by the expression itself.
        """
        local = set(_assigned_names(self.ast))
        return [
            name
            for name in self.symbols()
            if name not in local and not self.engine.registry.is_bound(name)
        ]

    def __str__(self) -> str:
        return to_source(self.ast)

    def __repr__(self) -> str:
        return f"Expression({to_source(self.ast)!r})"


def _free_names(node: ASTNode, bound: frozenset[str]) -> Iterator[str]:
    if isinstance(node, Identifier):
        if node.name not in bound:
            yield node.name
        return
    if isinstance(node, FunctionDef):
        yield from _free_names(node.body, bound | set(node.params) | {node.name})
        return
    for child in children(node):
        yield from _free_names(child, bound)


def _assigned_names(node: ASTNode) -> Iterator[str]:
    if isinstance(node, Assignment) and isinstance(node.target, Identifier):
        yield node.target.name
    if isinstance(node, FunctionDef):
        yield node.name
        yield from _assigned_names(node.body)
        return
    for child in children(node):
        yield from _assigned_names(child)
