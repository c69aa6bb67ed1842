"""
Expression Evaluator

Interprets expression AST nodes against an EvaluationContext. The evaluator
holds no per-pass state; one instance can serve any number of contexts.
"""

import logging
from collections.abc import Callable
from typing import Any

from .ast import (
    BinaryOp,
    Conditional,
    Expression,
    ForExpr,
    FunctionCall,
    GetAttr,
    Index,
    ListExpr,
    Literal,
    MapExpr,
    Reference,
    Splat,
    TemplateString,
    UnaryOp,
)
from .comprehension import ComprehensionEngine
from .context import EvaluationContext
from .exceptions import (
    DuplicateKeyError,
    EvaluationError,
    IndexOutOfRangeError,
    MissingKeyError,
    TypeConversionError,
)
from .values import (
    ValueType,
    equals,
    from_python,
    iter_set,
    to_bool,
    to_number,
    to_string,
    to_whole_number,
    type_of,
)

logger = logging.getLogger(__name__)


def get_attribute(value: Any, name: str) -> Any:
    """
    Read attribute ``name`` of an object value.

    Raises:
        MissingKeyError: If the object has no such attribute.
        TypeConversionError: If the value is not an object.
    """
    tag = type_of(value)
    if tag == ValueType.MAP:
        if name not in value:
            raise MissingKeyError(f"Object has no attribute named '{name}'")
        return value[name]
    if tag == ValueType.NULL:
        raise TypeConversionError(f"Cannot read attribute '{name}' of a null value")
    if tag in (ValueType.LIST, ValueType.SET):
        raise TypeConversionError(
            f"A {tag.value} has no attribute '{name}'; use a splat ([*]) "
            "to read it from every element"
        )
    raise TypeConversionError(f"A {tag.value} value has no attribute '{name}'")


def index_value(collection: Any, key: Any) -> Any:
    """
    Index a list by position or a map by key.

    Raises:
        IndexOutOfRangeError: If a list index is outside the list.
        MissingKeyError: If a map has no such key.
        TypeConversionError: If the value cannot be indexed by ``key``.
    """
    tag = type_of(collection)

    if tag == ValueType.LIST:
        position = to_whole_number(key, "list index")
        if not 0 <= position < len(collection):
            raise IndexOutOfRangeError(
                f"Index {position} is out of range for a list of "
                f"{len(collection)} elements"
            )
        return collection[position]

    if tag == ValueType.MAP:
        map_key = to_string(key)
        if map_key not in collection:
            raise MissingKeyError(f"Map has no element for key '{map_key}'")
        return collection[map_key]

    if tag == ValueType.SET:
        raise TypeConversionError(
            "Elements of a set cannot be accessed by index; convert it with tolist()"
        )
    raise TypeConversionError(f"Cannot index a {tag.value} value")


class ExpressionEvaluator:
    """Evaluates expression nodes; the comprehension engine handles ``for``."""

    def __init__(self):
        self._logger = logger.getChild(self.__class__.__name__)
        self._comprehensions = ComprehensionEngine(self)
        self._handlers: dict[type, Callable[[Any, EvaluationContext], Any]] = {
            Literal: self._eval_literal,
            Reference: self._eval_reference,
            GetAttr: self._eval_get_attr,
            Index: self._eval_index,
            Splat: self._eval_splat,
            FunctionCall: self._eval_function_call,
            Conditional: self._eval_conditional,
            ForExpr: self._comprehensions.evaluate,
            TemplateString: self._eval_template,
            ListExpr: self._eval_list,
            MapExpr: self._eval_map,
            BinaryOp: self._eval_binary,
            UnaryOp: self._eval_unary,
        }

    def evaluate(self, node: Expression, ctx: EvaluationContext) -> Any:
        """
        Evaluate an expression.

        Args:
            node: Expression AST node
            ctx: Evaluation context providing bindings, functions and scope

        Returns:
            The resulting value

        Raises:
            EvaluationError: Any subclass, depending on what went wrong.
        """
        handler = self._handlers.get(type(node))
        if handler is None:
            raise EvaluationError(
                f"Unsupported expression node '{type(node).__name__}'", ctx.address
            )
        return handler(node, ctx)

    # ------------------------------------------------------------------ #
    # Node handlers
    # ------------------------------------------------------------------ #

    def _eval_literal(self, node: Literal, ctx: EvaluationContext) -> Any:
        return from_python(node.value)

    def _eval_reference(self, node: Reference, ctx: EvaluationContext) -> Any:
        value, remaining = ctx.lookup(node.parts)
        for name in remaining:
            value = get_attribute(value, name)
        return value

    def _eval_get_attr(self, node: GetAttr, ctx: EvaluationContext) -> Any:
        return get_attribute(self.evaluate(node.target, ctx), node.name)

    def _eval_index(self, node: Index, ctx: EvaluationContext) -> Any:
        collection = self.evaluate(node.target, ctx)
        key = self.evaluate(node.key, ctx)
        return index_value(collection, key)

    def _eval_splat(self, node: Splat, ctx: EvaluationContext) -> list:
        value = self.evaluate(node.target, ctx)
        tag = type_of(value)

        if tag == ValueType.NULL:
            return []
        if tag == ValueType.LIST:
            items = value
        elif tag == ValueType.SET:
            items = iter_set(value)
        else:
            # a splat over a single value treats it as a one-element list
            items = [value]

        result = []
        for item in items:
            for name in node.attributes:
                item = get_attribute(item, name)
            result.append(item)
        return result

    def _eval_function_call(self, node: FunctionCall, ctx: EvaluationContext) -> Any:
        function = ctx.functions.get(node.name)
        args = [self.evaluate(arg, ctx) for arg in node.args]
        self._logger.debug("Calling %s with %d arguments", node.name, len(args))
        return function.call(args, ctx)

    def _eval_conditional(self, node: Conditional, ctx: EvaluationContext) -> Any:
        condition = self.evaluate(node.condition, ctx)
        try:
            chosen = to_bool(condition)
        except TypeConversionError as e:
            raise TypeConversionError(
                f"Condition must be a bool: {e.message}", ctx.address
            ) from e

        # only the selected branch is evaluated
        if chosen:
            return self.evaluate(node.true_result, ctx)
        return self.evaluate(node.false_result, ctx)

    def _eval_template(self, node: TemplateString, ctx: EvaluationContext) -> str:
        rendered = []
        for part in node.parts:
            if isinstance(part, str):
                rendered.append(part)
                continue
            value = self.evaluate(part, ctx)
            try:
                rendered.append(to_string(value))
            except TypeConversionError as e:
                raise TypeConversionError(
                    f"Invalid template interpolation value: {e.message}", ctx.address
                ) from e
        return "".join(rendered)

    def _eval_list(self, node: ListExpr, ctx: EvaluationContext) -> list:
        return [self.evaluate(item, ctx) for item in node.items]

    def _eval_map(self, node: MapExpr, ctx: EvaluationContext) -> dict:
        result: dict[str, Any] = {}
        for key_node, value_node in node.items:
            key = to_string(self.evaluate(key_node, ctx))
            if key in result:
                raise DuplicateKeyError(
                    f"Duplicate object attribute '{key}'", ctx.address
                )
            result[key] = self.evaluate(value_node, ctx)
        return result

    def _eval_binary(self, node: BinaryOp, ctx: EvaluationContext) -> Any:
        op = node.operator

        if op in ("&&", "||"):
            left = to_bool(self.evaluate(node.left, ctx))
            if op == "&&" and not left:
                return False
            if op == "||" and left:
                return True
            return to_bool(self.evaluate(node.right, ctx))

        left = self.evaluate(node.left, ctx)
        right = self.evaluate(node.right, ctx)

        if op == "==":
            return equals(left, right)
        if op == "!=":
            return not equals(left, right)

        a, b = to_number(left), to_number(right)
        if op == "<":
            return a < b
        if op == "<=":
            return a <= b
        if op == ">":
            return a > b
        if op == ">=":
            return a >= b
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b

        if b == 0:
            raise EvaluationError(f"Division by zero in '{op}'", ctx.address)
        if op == "/":
            quotient = a / b
            return int(quotient) if quotient.is_integer() else quotient
        return a % b

    def _eval_unary(self, node: UnaryOp, ctx: EvaluationContext) -> Any:
        operand = self.evaluate(node.operand, ctx)
        if node.operator == "!":
            return not to_bool(operand)
        return -to_number(operand)


default_evaluator = ExpressionEvaluator()


def evaluate(node: Expression, ctx: EvaluationContext) -> Any:
    """Evaluate ``node`` with the shared, stateless default evaluator."""
    return default_evaluator.evaluate(node, ctx)
