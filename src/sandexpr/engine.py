"""Host-facing entry points for the sandexpr expression language."""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from sandexpr.builtins import register_builtins
from sandexpr.config import EngineConfig, GrammarConfig
from sandexpr.expression import Expression
from sandexpr.functions import FunctionCategory, FunctionDefinition, FunctionRegistry
from sandexpr.parser import Parser

logger = logging.getLogger(__name__)


class ExpressionEngine:
    """Parses and evaluates expressions inside a sandbox.

    Each engine owns its trusted-callable registry, seeded with the
    built-in functions. Context callables are only invocable once the host
    registers them with register_function().

    Usage:
        engine = ExpressionEngine({"operators": {"fndef": True}})
        engine.evaluate("(f(x) = x * x)(5)")  # 25

        engine.register_function("double", double)
        engine.evaluate("obj.alias(5)", {"obj": {"alias": double}})
    """

    def __init__(
        self,
        config: EngineConfig | GrammarConfig | Mapping[str, Any] | None = None,
        *,
        registry: FunctionRegistry | None = None,
    ):
        """Create an engine.

        Args:
            config: Engine config, grammar config, or an options mapping such
                as ``{"operators": {"fndef": True}, "max_depth": 100}``
            registry: Share an existing registry (and therefore its trust)
                instead of creating a fresh one with the built-ins
        """
        self.config = _coerce_config(config)
        self.registry = registry if registry is not None else register_builtins(FunctionRegistry())

    @property
    def grammar(self) -> GrammarConfig:
        return self.config.grammar

    def parse(self, source: str) -> Expression:
        """Parse an expression string.

        Raises:
            LexError: On malformed tokens
            ParseError: On malformed grammar or a disabled operator
        """
        ast = Parser(
            source,
            self.config.grammar,
            max_nesting=self.config.max_nesting,
            max_depth=self.config.max_depth,
        ).parse()
        return Expression(ast, self)

    def evaluate(self, source: str, context: Mapping[str, Any] | None = None) -> Any:
        """Parse and evaluate an expression against a context."""
        return self.parse(source).evaluate(context)

    def register_function(
        self,
        name: str,
        fn: Callable[..., Any],
        *,
        category: FunctionCategory = FunctionCategory.HOST,
        description: str = "",
    ) -> FunctionDefinition:
        """Trust a host callable and bind it under name.

        The callable becomes invocable under this name and wherever the
        same reference appears in a context.
        """
        definition = self.registry.register(
            name, fn, category=category, description=description
        )
        logger.info("Trusted host function '%s'", name)
        return definition


def _coerce_config(
    config: EngineConfig | GrammarConfig | Mapping[str, Any] | None,
) -> EngineConfig:
    if config is None:
        return EngineConfig()
    if isinstance(config, EngineConfig):
        return config
    if isinstance(config, GrammarConfig):
        return EngineConfig(grammar=config)
    if isinstance(config, Mapping):
        if "operators" in config or "max_depth" in config or "max_nesting" in config:
            return EngineConfig.from_mapping(config)
        return EngineConfig(grammar=GrammarConfig.from_options(config))
    raise TypeError(f"Unsupported engine config: {type(config).__name__}")


def evaluate(
    source: str,
    context: Mapping[str, Any] | None = None,
    config: EngineConfig | GrammarConfig | Mapping[str, Any] | None = None,
) -> Any:
    """Evaluate an expression string with a fresh engine.

    This is the main entry point for one-off evaluation. Only built-in
    functions are trusted; use an ExpressionEngine to register more.

    Example:
        result = evaluate("x > 0 ? sqrt(x) : 0", {"x": 16})
        # result = 4.0
    """
    return ExpressionEngine(config).evaluate(source, context)
