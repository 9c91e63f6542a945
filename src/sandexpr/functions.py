"""Trusted-callable registry for the sandexpr expression language.

A callable is invocable from expression text only if its identity is in the
registry of the engine evaluating the expression. Each function is
registered with metadata for documentation.

Trust is identity-based: the name a callable is registered under only
controls direct lookup by that name. The same callable reached through any
other name, member path or array element is equally trusted, and a different
callable bound under a registered name is not.
"""

import logging
import re
import threading
import types
from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[a-zA-Z_$][a-zA-Z0-9_$]*$")


class FunctionCategory(Enum):
    """Categories for organizing functions in documentation."""

    MATH = "math"
    STRING = "string"
    COLLECTION = "collection"
    LOGIC = "logic"
    HOST = "host"  # Registered by the host application


@dataclass(frozen=True)
class FunctionDefinition:
    """Definition of a trusted function.

    Attributes:
        name: Function name as used in expressions
        implementation: The Python callable
        category: Category for documentation organization
        description: Human-readable description
        builtin: True for functions seeded at registry construction
        examples: Example expressions using this function
    """

    name: str
    implementation: Callable[..., Any]
    category: FunctionCategory = FunctionCategory.HOST
    description: str = ""
    builtin: bool = False
    examples: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        """Export for documentation."""
        return {
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "builtin": self.builtin,
            "examples": list(self.examples),
        }


def callable_identity(fn: Callable[..., Any]) -> Hashable:
    """Return a stable identity for a callable, independent of its name.

    Bound methods are created anew on every attribute access, so they are
    identified by the object they are bound to plus the underlying function.
    """
    if isinstance(fn, types.MethodType):
        return ("method", id(fn.__self__), id(fn.__func__))
    owner = getattr(fn, "__self__", None)
    if (
        isinstance(fn, types.BuiltinMethodType)
        and owner is not None
        and not isinstance(owner, types.ModuleType)
    ):
        return ("builtin-method", id(owner), fn.__name__)
    return id(fn)


class FunctionRegistry:
    """Registry of trusted callables and named constants.

    One registry belongs to one engine. It is append-only: there is no way
    to remove or replace a registration.

    Example:
        registry = FunctionRegistry()
        registry.register("double", lambda x: x * 2)

        registry.contains(registry.lookup("double"))  # True
    """

    def __init__(self) -> None:
        self._definitions: dict[str, FunctionDefinition] = {}
        self._constants: dict[str, Any] = {}
        # identity -> callable; holding the callable keeps its id() from being reused
        self._trusted: dict[Hashable, Callable[..., Any]] = {}
        self._lock = threading.Lock()

    def register(
        self,
        name: str,
        implementation: Callable[..., Any],
        *,
        category: FunctionCategory = FunctionCategory.HOST,
        description: str = "",
        examples: tuple[str, ...] = (),
        builtin: bool = False,
    ) -> FunctionDefinition:
        """Trust a callable and bind it under name.

        Idempotent for the same name and callable.

        Raises:
            TypeError: If implementation is not callable
            ValueError: If name is not a valid identifier, or is already
                bound to something else
        """
        if not callable(implementation):
            raise TypeError(f"Cannot register non-callable {type(implementation).__name__} as '{name}'")

        definition = FunctionDefinition(
            name=name,
            implementation=implementation,
            category=category,
            description=description,
            builtin=builtin,
            examples=tuple(examples),
        )

        with self._lock:
            self._check_name(name)
            if name in self._constants:
                raise ValueError(f"Name '{name}' is already bound to a constant")
            existing = self._definitions.get(name)
            if existing is not None:
                if callable_identity(existing.implementation) == callable_identity(implementation):
                    return existing
                raise ValueError(f"Function '{name}' is already registered")
            self._definitions[name] = definition
            self._trusted[callable_identity(implementation)] = implementation

        logger.debug("Registered %s function '%s'", category.value, name)
        return definition

    def constant(self, name: str, value: Any) -> None:
        """Bind a named constant (e.g., PI). Constants are never trusted callables."""
        if callable(value):
            raise TypeError(f"Constant '{name}' must not be callable; use register()")
        with self._lock:
            self._check_name(name)
            if name in self._definitions or name in self._constants:
                raise ValueError(f"Name '{name}' is already bound")
            self._constants[name] = value

    def _check_name(self, name: str) -> None:
        if not isinstance(name, str) or not _NAME_RE.match(name):
            raise ValueError(f"Invalid name: {name!r}")

    def contains(self, fn: Any) -> bool:
        """Check whether a callable's identity is trusted."""
        if not callable(fn):
            return False
        return callable_identity(fn) in self._trusted

    def is_registered(self, name: str) -> bool:
        """Check if a function is registered under name."""
        return name in self._definitions

    def is_bound(self, name: str) -> bool:
        """Check if name resolves to a function or a constant."""
        return name in self._definitions or name in self._constants

    def get(self, name: str) -> FunctionDefinition:
        """Get a function definition by name.

        Raises:
            ValueError: If function is not registered
        """
        if name not in self._definitions:
            raise ValueError(f"Unknown function: {name}")
        return self._definitions[name]

    def lookup(self, name: str) -> Any:
        """Resolve a bound name to its function or constant value.

        Raises:
            KeyError: If nothing is bound under name
        """
        if name in self._definitions:
            return self._definitions[name].implementation
        return self._constants[name]

    def list_all(self) -> list[FunctionDefinition]:
        """List all registered functions."""
        return list(self._definitions.values())

    def list_by_category(self, category: FunctionCategory) -> list[FunctionDefinition]:
        """List functions in a specific category."""
        return [f for f in self._definitions.values() if f.category == category]

    def export_documentation(self) -> dict[str, Any]:
        """Export the registry for documentation.

        Returns:
            Dict with all function definitions organized by category
        """
        by_category: dict[str, list[dict[str, Any]]] = {}
        for func_def in self._definitions.values():
            by_category.setdefault(func_def.category.value, []).append(func_def.to_dict())

        return {
            "functions": {name: f.to_dict() for name, f in self._definitions.items()},
            "byCategory": by_category,
            "constants": sorted(self._constants),
        }
