"""Evaluator for the sandexpr expression language.

Walks the AST and computes the result against an evaluation context holding
the host's variables, the engine's trusted-callable registry and the local
scope stack. The security guard is consulted inline at every member access
and call site.
"""

from collections.abc import Hashable, Mapping
from dataclasses import dataclass, field
from decimal import Decimal, DecimalException
from typing import Any

from sandexpr.config import DEFAULT_MAX_DEPTH
from sandexpr.errors import EvalError, EvalErrorKind, ExpressionError
from sandexpr.functions import FunctionRegistry, callable_identity
from sandexpr.guard import SecurityGuard
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
    Sequence,
    UnaryOp,
    to_source,
)

_NUMBER_TYPES = (int, float, Decimal)

# Integer results wider than this are computed in floating point
MAX_INT_BITS = 4096


def _is_number(value: Any) -> bool:
    return isinstance(value, _NUMBER_TYPES) and not isinstance(value, bool)


def _int_result_too_wide(verb: str, left: Any, right: Any) -> bool:
    """Estimate whether an int product or power would exceed MAX_INT_BITS."""
    if not (isinstance(left, int) and isinstance(right, int)):
        return False
    if verb == "multiply":
        return left.bit_length() + right.bit_length() > MAX_INT_BITS
    if verb == "exponentiate":
        return right > 0 and right * max(left.bit_length(), 1) > MAX_INT_BITS
    return False


@dataclass
class EvaluationContext:
    """State of one top-level evaluation.

    Attributes:
        variables: Host-supplied name -> value bindings (never mutated)
        registry: Trusted callables and named constants of the engine
        max_depth: Maximum nesting of node visits and local function calls
        scopes: Local scope frames, innermost last
        local_functions: Identities of local functions defined by this
            evaluation; discarded with the context
        depth: Current evaluation depth
    """

    variables: Mapping[str, Any]
    registry: FunctionRegistry
    max_depth: int = DEFAULT_MAX_DEPTH
    scopes: list[dict[str, Any]] = field(default_factory=lambda: [{}])
    local_functions: dict[Hashable, "LocalFunction"] = field(default_factory=dict)
    depth: int = 0


class LocalFunction:
    """Closure produced by a local function definition (f(x) = x * x).

    Captures a snapshot of the scope chain at definition time plus a frame
    binding its own name, so it can call itself. Calling it from Python
    (e.g., from the map() built-in) evaluates the body with the evaluator
    that defined it, so every call inside the body is still checked.
    """

    def __init__(self, name: str, params: tuple[str, ...], body: ASTNode, evaluator: "Evaluator"):
        self.name = name
        self.params = params
        self.body = body
        self.scopes: list[dict[str, Any]] = []
        self._evaluator = evaluator

    def __call__(self, *args: Any) -> Any:
        return self._evaluator.call_local(self, list(args))

    def __repr__(self) -> str:
        return f"<local function {self.name}({', '.join(self.params)})>"


class Evaluator:
    """Evaluates expression AST against a context.

    Usage:
        ctx = EvaluationContext(variables={"x": 3}, registry=registry)
        evaluator = Evaluator(ctx)
        result = evaluator.evaluate(ast)
    """

    def __init__(self, context: EvaluationContext):
        self.context = context
        self.guard = SecurityGuard(context.registry)

    def evaluate(self, node: ASTNode) -> Any:
        """Evaluate an AST node and return the result."""
        method_name = f"_eval_{type(node).__name__.lower()}"
        method = getattr(self, method_name, None)

        if method is None:
            raise EvalError(EvalErrorKind.TYPE_MISMATCH, f"Unknown node type: {type(node).__name__}")

        self.context.depth += 1
        try:
            if self.context.depth > self.context.max_depth:
                raise EvalError(
                    EvalErrorKind.DEPTH_EXCEEDED,
                    f"Maximum evaluation depth of {self.context.max_depth} exceeded",
                )
            return method(node)
        finally:
            self.context.depth -= 1

    def call_local(self, fn: LocalFunction, args: list[Any]) -> Any:
        """Invoke a local function with a fresh frame for its parameters."""
        if len(args) != len(fn.params):
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH,
                f"{fn.name}() expects {len(fn.params)} argument(s), got {len(args)}",
                name=fn.name,
            )

        saved_scopes = self.context.scopes
        self.context.scopes = [*fn.scopes, dict(zip(fn.params, args))]
        try:
            return self.evaluate(fn.body)
        finally:
            self.context.scopes = saved_scopes

    # -------------------------------------------------------------------------
    # Node type evaluators
    # -------------------------------------------------------------------------

    def _eval_literal(self, node: Literal) -> Any:
        """Evaluate a literal value."""
        return node.value

    def _eval_identifier(self, node: Identifier) -> Any:
        """Resolve a name: local scopes, then host variables, then registry."""
        name = node.name

        for frame in reversed(self.context.scopes):
            if name in frame:
                return frame[name]

        if name in self.context.variables:
            return self.context.variables[name]

        if self.context.registry.is_bound(name):
            return self.context.registry.lookup(name)

        raise EvalError(EvalErrorKind.UNKNOWN_IDENTIFIER, f"Unknown identifier '{name}'", name=name)

    def _eval_memberaccess(self, node: MemberAccess) -> Any:
        """Evaluate member access (a.b)."""
        obj = self.evaluate(node.object)
        return self.guard.get_member(obj, node.member)

    def _eval_indexaccess(self, node: IndexAccess) -> Any:
        """Evaluate index access (a[b])."""
        obj = self.evaluate(node.object)
        index = self.evaluate(node.index)
        return self.guard.get_index(obj, index)

    def _eval_functioncall(self, node: FunctionCall) -> Any:
        """Evaluate a call; the callee's identity must be trusted."""
        description = to_source(node.callee)
        callee = self.evaluate(node.callee)

        if not callable(callee):
            raise EvalError(
                EvalErrorKind.NOT_CALLABLE,
                f"'{description}' is not a function",
                name=description,
            )

        args = [self.evaluate(arg) for arg in node.arguments]

        self.guard.check_call(callee, self.context.local_functions, description)
        # Trusted callables may invoke callable arguments (map, filter, fold)
        for position, arg in enumerate(args, start=1):
            if callable(arg):
                self.guard.check_call(
                    arg,
                    self.context.local_functions,
                    f"argument {position} of {description}",
                )

        if isinstance(callee, LocalFunction):
            return callee(*args)

        try:
            return callee(*args)
        except ExpressionError:
            raise
        except RecursionError:
            raise EvalError(
                EvalErrorKind.DEPTH_EXCEEDED, f"Recursion limit reached calling {description}"
            ) from None
        except Exception as e:
            raise EvalError(
                EvalErrorKind.CALL_FAILED,
                f"Error calling {description}: {e}",
                name=description,
            ) from e

    def _eval_functiondef(self, node: FunctionDef) -> LocalFunction:
        """Create a local function, bind it in the current frame and trust it."""
        fn = LocalFunction(node.name, node.params, node.body, self)
        fn.scopes = [dict(frame) for frame in self.context.scopes] + [{node.name: fn}]

        self.context.local_functions[callable_identity(fn)] = fn
        self.context.scopes[-1][node.name] = fn
        return fn

    def _eval_assignment(self, node: Assignment) -> Any:
        """Assign to a local variable. Host objects are read-only."""
        target = node.target

        if isinstance(target, Identifier):
            value = self.evaluate(node.value)
            self.context.scopes[-1][target.name] = value
            return value

        # Run the guard over the whole target before refusing the write
        if isinstance(target, MemberAccess):
            self.evaluate(target.object)
            self.guard.check_member(target.member)
            name = target.member
        elif isinstance(target, IndexAccess):
            self.evaluate(target.object)
            index = self.evaluate(target.index)
            self.guard.check_member(index)
            name = str(index)
        else:
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH,
                f"Invalid assignment target: {type(target).__name__}",
            )

        raise EvalError(
            EvalErrorKind.READ_ONLY,
            f"Cannot assign to '{to_source(target)}': only local variables are assignable",
            name=name,
        )

    def _eval_conditional(self, node: Conditional) -> Any:
        """Evaluate only the taken branch."""
        if self._to_bool(self.evaluate(node.condition)):
            return self.evaluate(node.then_branch)
        return self.evaluate(node.else_branch)

    def _eval_sequence(self, node: Sequence) -> Any:
        """Evaluate expressions in order, returning the last value."""
        result = None
        for expr in node.expressions:
            result = self.evaluate(expr)
        return result

    def _eval_binaryop(self, node: BinaryOp) -> Any:
        """Evaluate a binary operation."""
        op = node.operator

        # Short-circuit evaluation for logical operators
        if op == "and":
            left = self.evaluate(node.left)
            if not self._to_bool(left):
                return False
            return self._to_bool(self.evaluate(node.right))

        if op == "or":
            left = self.evaluate(node.left)
            if self._to_bool(left):
                return True
            return self._to_bool(self.evaluate(node.right))

        # Evaluate both operands for other operators
        left = self.evaluate(node.left)
        right = self.evaluate(node.right)

        # Comparison operators
        if op == "==":
            return self._equals(left, right)
        if op == "!=":
            return not self._equals(left, right)
        if op == "<":
            return self._compare(left, right) < 0
        if op == "<=":
            return self._compare(left, right) <= 0
        if op == ">":
            return self._compare(left, right) > 0
        if op == ">=":
            return self._compare(left, right) >= 0

        # Membership operators
        if op == "in":
            return self._in(left, right)
        if op == "not in":
            return not self._in(left, right)

        # Arithmetic operators
        if op == "+":
            return self._add(left, right)
        if op == "-":
            return self._arithmetic("subtract", left, right, lambda a, b: a - b)
        if op == "*":
            return self._arithmetic("multiply", left, right, lambda a, b: a * b)
        if op == "/":
            return self._divide(left, right)
        if op == "%":
            return self._modulo(left, right)
        if op == "^":
            return self._power(left, right)

        raise EvalError(EvalErrorKind.TYPE_MISMATCH, f"Unknown operator: {op}")

    def _eval_unaryop(self, node: UnaryOp) -> Any:
        """Evaluate a unary operation."""
        operand = self.evaluate(node.operand)

        if node.operator == "not":
            return not self._to_bool(operand)

        if node.operator in ("-", "+"):
            if not _is_number(operand):
                raise EvalError(
                    EvalErrorKind.TYPE_MISMATCH,
                    f"Cannot apply unary '{node.operator}' to {type(operand).__name__}",
                )
            return -operand if node.operator == "-" else operand

        raise EvalError(EvalErrorKind.TYPE_MISMATCH, f"Unknown unary operator: {node.operator}")

    def _eval_arrayliteral(self, node: ArrayLiteral) -> list[Any]:
        """Evaluate an array literal."""
        return [self.evaluate(elem) for elem in node.elements]

    # -------------------------------------------------------------------------
    # Helper methods
    # -------------------------------------------------------------------------

    def _to_bool(self, value: Any) -> bool:
        """Convert a value to boolean."""
        if value is None:
            return False
        if isinstance(value, bool):
            return value
        if isinstance(value, _NUMBER_TYPES):
            return value != 0
        if isinstance(value, (str, list, tuple, Mapping)):
            return len(value) > 0
        return True

    def _equals(self, left: Any, right: Any) -> bool:
        """Check equality; numbers compare by exact value across int/float/Decimal."""
        if isinstance(left, bool) != isinstance(right, bool):
            return False
        return left == right

    def _compare(self, left: Any, right: Any) -> int:
        """Compare two numbers or two strings, returning -1, 0, or 1."""
        if not (
            (_is_number(left) and _is_number(right))
            or (isinstance(left, str) and isinstance(right, str))
        ):
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH,
                f"Cannot compare {type(left).__name__} and {type(right).__name__}",
            )

        # int, float and Decimal compare exactly without conversion
        try:
            if left < right:
                return -1
            if left > right:
                return 1
        except DecimalException:
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH, f"Cannot order {left!r} and {right!r}"
            ) from None
        return 0

    def _in(self, item: Any, collection: Any) -> bool:
        """Check if item is in collection."""
        if isinstance(collection, str):
            if not isinstance(item, str):
                raise EvalError(
                    EvalErrorKind.TYPE_MISMATCH,
                    f"'in' on a string requires a string, got {type(item).__name__}",
                )
            return item in collection

        if isinstance(collection, (list, tuple)):
            return any(self._equals(item, element) for element in collection)

        if isinstance(collection, Mapping):
            try:
                return item in collection
            except TypeError:
                return False

        raise EvalError(
            EvalErrorKind.TYPE_MISMATCH,
            f"'in' operator requires collection, got {type(collection).__name__}",
        )

    def _add(self, left: Any, right: Any) -> Any:
        """Add numbers, concatenate strings or arrays."""
        if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
            return [*left, *right]

        # String concatenation
        if isinstance(left, str) and isinstance(right, (str, int, float, Decimal)):
            return left + self._to_text(right)
        if isinstance(right, str) and isinstance(left, (int, float, Decimal)):
            return self._to_text(left) + right

        return self._arithmetic("add", left, right, lambda a, b: a + b)

    def _to_text(self, value: Any) -> str:
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def _arithmetic(self, verb: str, left: Any, right: Any, operation: Any) -> Any:
        if not (_is_number(left) and _is_number(right)):
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH,
                f"Cannot {verb} {type(left).__name__} and {type(right).__name__}",
            )
        try:
            if _int_result_too_wide(verb, left, right):
                left, right = float(left), float(right)
            try:
                return operation(left, right)
            except TypeError:
                # Decimal mixed with float
                return operation(float(left), float(right))
        except ZeroDivisionError:
            raise
        except (OverflowError, DecimalException) as e:
            raise EvalError(
                EvalErrorKind.TYPE_MISMATCH, f"Numeric overflow in {verb}: {e}"
            ) from None

    def _divide(self, left: Any, right: Any) -> Any:
        """Divide two values."""
        if _is_number(left) and _is_number(right) and right == 0:
            raise EvalError(EvalErrorKind.DIVISION_BY_ZERO, "Division by zero")
        return self._arithmetic("divide", left, right, lambda a, b: a / b)

    def _modulo(self, left: Any, right: Any) -> Any:
        """Modulo operation."""
        if _is_number(left) and _is_number(right) and right == 0:
            raise EvalError(EvalErrorKind.DIVISION_BY_ZERO, "Modulo by zero")
        return self._arithmetic("modulo", left, right, lambda a, b: a % b)

    def _power(self, left: Any, right: Any) -> Any:
        """Exponentiation (a ^ b)."""
        try:
            result = self._arithmetic("exponentiate", left, right, lambda a, b: a ** b)
        except ZeroDivisionError:
            raise EvalError(EvalErrorKind.DIVISION_BY_ZERO, "Zero raised to a negative power") from None
        if isinstance(result, complex):
            raise EvalError(EvalErrorKind.TYPE_MISMATCH, "'^' produced a complex number")
        return result
