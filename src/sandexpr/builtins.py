"""Built-in functions for the sandexpr expression language.

register_builtins() seeds a FunctionRegistry with the safe functions and
constants every engine starts with. Where the math module already provides
a function it is registered as-is.

Categories:
- Math: sqrt, cbrt, abs, ceil, floor, round, trunc, exp, expm1, log, ln, lg,
  log10, log2, log1p, trig and hyperbolic functions, hypot, pow, min, max,
  sign, fac, gamma, roundTo
- String: length, join
- Collection: indexOf, map, filter, fold
- Logic: if

There is no random(): built-in calls are deterministic.
"""

import math
from collections.abc import Callable
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sandexpr.functions import FunctionCategory, FunctionRegistry


def register_builtins(registry: FunctionRegistry) -> FunctionRegistry:
    """Register all built-in functions and constants with registry."""
    for category, table in (
        (FunctionCategory.MATH, _MATH_FUNCTIONS),
        (FunctionCategory.STRING, _STRING_FUNCTIONS),
        (FunctionCategory.COLLECTION, _COLLECTION_FUNCTIONS),
        (FunctionCategory.LOGIC, _LOGIC_FUNCTIONS),
    ):
        for name, implementation, description in table:
            registry.register(
                name,
                implementation,
                category=category,
                description=description,
                builtin=True,
            )

    registry.constant("PI", math.pi)
    registry.constant("E", math.e)
    return registry


# -----------------------------------------------------------------------------
# Math Functions
# -----------------------------------------------------------------------------


def _require_number(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise TypeError(f"{name}() expects a number, got {type(value).__name__}")


def _round(value: Any, digits: int = 0) -> int | float:
    """Round half away from zero (2.5 -> 3, -2.5 -> -3)."""
    _require_number("round", value)
    quantum = Decimal(1).scaleb(-int(digits))
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    if digits <= 0:
        return int(rounded)
    return float(rounded)


def _cbrt(value: Any) -> float:
    _require_number("cbrt", value)
    return math.copysign(abs(value) ** (1.0 / 3.0), value)


def _sign(value: Any) -> int:
    _require_number("sign", value)
    return (value > 0) - (value < 0)


# Largest n whose factorial is finite as a float
MAX_EXACT_FACTORIAL = 170


def _fac(value: Any) -> int | float:
    """Factorial; non-integers use gamma(n + 1).

    Past 170! the result no longer fits a float and is infinity.
    """
    _require_number("fac", value)
    if isinstance(value, int) or float(value).is_integer():
        if value > MAX_EXACT_FACTORIAL:
            return math.inf
        return math.factorial(int(value))
    try:
        return math.gamma(value + 1)
    except OverflowError:
        return math.inf


def _lg(value: Any) -> float:
    return math.log10(value)


def _extremum(name: str, pick: Callable[..., Any], args: tuple[Any, ...]) -> Any:
    values = args[0] if len(args) == 1 and isinstance(args[0], (list, tuple)) else args
    if not values:
        raise ValueError(f"{name}() requires at least one value")
    for value in values:
        _require_number(name, value)
    return pick(values)


def _min(*args: Any) -> Any:
    return _extremum("min", min, args)


def _max(*args: Any) -> Any:
    return _extremum("max", max, args)


_MATH_FUNCTIONS: list[tuple[str, Callable[..., Any], str]] = [
    ("sqrt", math.sqrt, "Square root"),
    ("cbrt", _cbrt, "Cube root"),
    ("abs", abs, "Absolute value"),
    ("ceil", math.ceil, "Round up to the nearest integer"),
    ("floor", math.floor, "Round down to the nearest integer"),
    ("round", _round, "Round half away from zero, optionally to N decimals"),
    ("roundTo", _round, "Round to N decimal places"),
    ("trunc", math.trunc, "Integer part of a number"),
    ("exp", math.exp, "e raised to the given power"),
    ("expm1", math.expm1, "exp(x) - 1"),
    ("log", math.log, "Natural logarithm, or logarithm to a given base"),
    ("ln", math.log, "Natural logarithm"),
    ("lg", _lg, "Base-10 logarithm"),
    ("log10", math.log10, "Base-10 logarithm"),
    ("log2", math.log2, "Base-2 logarithm"),
    ("log1p", math.log1p, "log(1 + x)"),
    ("sin", math.sin, "Sine"),
    ("cos", math.cos, "Cosine"),
    ("tan", math.tan, "Tangent"),
    ("asin", math.asin, "Arcsine"),
    ("acos", math.acos, "Arccosine"),
    ("atan", math.atan, "Arctangent"),
    ("atan2", math.atan2, "Arctangent of y / x"),
    ("sinh", math.sinh, "Hyperbolic sine"),
    ("cosh", math.cosh, "Hyperbolic cosine"),
    ("tanh", math.tanh, "Hyperbolic tangent"),
    ("asinh", math.asinh, "Inverse hyperbolic sine"),
    ("acosh", math.acosh, "Inverse hyperbolic cosine"),
    ("atanh", math.atanh, "Inverse hyperbolic tangent"),
    ("hypot", math.hypot, "Euclidean norm of the arguments"),
    ("pow", math.pow, "x raised to the power y"),
    ("min", _min, "Smallest of the arguments or of an array"),
    ("max", _max, "Largest of the arguments or of an array"),
    ("sign", _sign, "-1, 0 or 1 depending on the sign"),
    ("fac", _fac, "Factorial"),
    ("gamma", math.gamma, "Gamma function"),
]


# -----------------------------------------------------------------------------
# String Functions
# -----------------------------------------------------------------------------


def _length(value: Any) -> int:
    """Return length of string or array."""
    if isinstance(value, (str, list, tuple)):
        return len(value)
    raise TypeError(f"length() expects a string or array, got {type(value).__name__}")


def _join(separator: Any, values: Any) -> str:
    """Join array items with separator."""
    if not isinstance(values, (list, tuple)):
        raise TypeError(f"join() expects an array, got {type(values).__name__}")
    return str(separator).join(str(v) for v in values)


_STRING_FUNCTIONS: list[tuple[str, Callable[..., Any], str]] = [
    ("length", _length, "Length of a string or array"),
    ("join", _join, "Join array items into a string"),
]


# -----------------------------------------------------------------------------
# Collection Functions
# -----------------------------------------------------------------------------


def _index_of(target: Any, collection: Any) -> int:
    """Position of target in a string or array, -1 if absent."""
    if isinstance(collection, str):
        return collection.find(str(target))
    if isinstance(collection, (list, tuple)):
        for i, item in enumerate(collection):
            if item == target:
                return i
        return -1
    raise TypeError(f"indexOf() expects a string or array, got {type(collection).__name__}")


def _require_array(name: str, values: Any) -> None:
    if not isinstance(values, (list, tuple)):
        raise TypeError(f"{name}() expects an array, got {type(values).__name__}")


def _map(fn: Callable[[Any], Any], values: Any) -> list[Any]:
    """Apply fn to each element."""
    _require_array("map", values)
    return [fn(v) for v in values]


def _filter(fn: Callable[[Any], Any], values: Any) -> list[Any]:
    """Keep elements for which fn returns a truthy value."""
    _require_array("filter", values)
    return [v for v in values if fn(v)]


def _fold(fn: Callable[[Any, Any], Any], initial: Any, values: Any) -> Any:
    """Reduce elements left to right: fn(accumulator, element)."""
    _require_array("fold", values)
    result = initial
    for v in values:
        result = fn(result, v)
    return result


_COLLECTION_FUNCTIONS: list[tuple[str, Callable[..., Any], str]] = [
    ("indexOf", _index_of, "Position of a value in a string or array"),
    ("map", _map, "Apply a function to every element of an array"),
    ("filter", _filter, "Elements of an array for which a function is true"),
    ("fold", _fold, "Reduce an array with a function and an initial value"),
]


# -----------------------------------------------------------------------------
# Logic Functions
# -----------------------------------------------------------------------------


def _if(condition: Any, when_true: Any, when_false: Any) -> Any:
    """Function form of the conditional operator.

    Unlike ``?:`` this is not short-circuit: every argument is evaluated
    before the call, so both branches run and both must succeed.
    """
    return when_true if condition else when_false


_LOGIC_FUNCTIONS: list[tuple[str, Callable[..., Any], str]] = [
    ("if", _if, "Return the second argument if the first is true, else the third"),
]
