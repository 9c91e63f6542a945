"""Security guard for the sandexpr evaluator.

The evaluator consults the guard inline, at every member access and every
call site, so the checks always see fully resolved runtime values:

- check_member(name): deny names that lead into an object's inheritance
  chain or Python's object model (``__proto__``, ``constructor``,
  ``prototype``, dunders, frame/generator internals).
- check_call(fn): deny any callable whose identity is neither in the
  engine's FunctionRegistry nor a local function defined by the current
  evaluation.

Member reads go through get_member()/get_index(), which run check_member()
before anything is read.
"""

import logging
from collections.abc import Container, Hashable, Mapping
from decimal import Decimal
from typing import Any

from sandexpr.errors import EvalError, EvalErrorKind, SecurityViolation
from sandexpr.functions import FunctionRegistry, callable_identity

logger = logging.getLogger(__name__)

DENIED_MEMBERS = frozenset(
    {
        "__proto__",
        "constructor",
        "prototype",
        # Frame, generator, coroutine and traceback internals
        "f_globals",
        "f_locals",
        "f_builtins",
        "f_back",
        "f_code",
        "gi_frame",
        "gi_code",
        "cr_frame",
        "cr_code",
        "ag_frame",
        "ag_code",
        "tb_frame",
        "tb_next",
        "mro",
    }
)


def is_denied_member(name: str) -> bool:
    """Check a member name against the denylist.

    Any name starting with a double underscore is denied, which covers
    dunders (``__class__``, ``__globals__``) and name-mangled privates.
    """
    return name in DENIED_MEMBERS or name.startswith("__")


class SecurityGuard:
    """Member-access and call-trust checks for one registry."""

    def __init__(self, registry: FunctionRegistry):
        self.registry = registry

    def check_member(self, name: Any) -> None:
        """Raise ProtoAccessDenied if name is a denied member name."""
        if isinstance(name, str) and is_denied_member(name):
            logger.warning("Denied access to member '%s'", name)
            raise SecurityViolation(
                EvalErrorKind.PROTO_ACCESS_DENIED,
                f"Access to member '{name}' is not allowed",
                name=name,
            )

    def check_call(
        self,
        fn: Any,
        local_functions: Container[Hashable] = (),
        description: str = "<callable>",
    ) -> None:
        """Raise CallNotAllowed unless fn's identity is trusted.

        Args:
            fn: The resolved callable
            local_functions: Identities of local functions defined by the
                current evaluation
            description: How the callable was reached, for diagnostics
        """
        if self.registry.contains(fn):
            return
        if callable(fn) and callable_identity(fn) in local_functions:
            return
        logger.warning("Denied call to untrusted callable '%s'", description)
        raise SecurityViolation(
            EvalErrorKind.CALL_NOT_ALLOWED,
            f"Calling '{description}' is not allowed",
            name=description,
        )

    def get_member(self, obj: Any, name: str) -> Any:
        """Read a named member (a.b). Missing members read as None."""
        self.check_member(name)

        if obj is None:
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH,
                f"Cannot read member '{name}' of null",
                name=name,
            )

        if isinstance(obj, Mapping):
            return obj.get(name)

        if isinstance(obj, (str, list, tuple, int, float, bool, Decimal)):
            return None

        return getattr(obj, name, None)

    def get_index(self, obj: Any, index: Any) -> Any:
        """Read an indexed element (a[i]). Out-of-range reads as None."""
        if isinstance(index, str):
            self.check_member(index)

        if obj is None:
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH, f"Cannot index null with {index!r}"
            )

        if isinstance(obj, Mapping):
            try:
                return obj.get(index)
            except TypeError:
                raise EvalError(
                    EvalErrorKind.TYPE_MISMATCH,
                    f"Invalid key type {type(index).__name__}",
                ) from None

        if isinstance(obj, (list, tuple, str)):
            if isinstance(index, float) and index.is_integer():
                index = int(index)
            if isinstance(index, int) and not isinstance(index, bool):
                if 0 <= index < len(obj):
                    return obj[index]
                return None
            if isinstance(index, str):
                return None
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH,
                f"Cannot index {type(obj).__name__} with {type(index).__name__}",
            )

        if isinstance(index, str):
            return self.get_member(obj, index)

        raise EvalError(
            EvalErrorKind.TYPE_MISMATCH,
            f"Cannot index {type(obj).__name__} with {type(index).__name__}",
        )
