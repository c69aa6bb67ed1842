"""
Comprehension Engine

Evaluates ``for`` expressions. Iteration order is fixed so results are
reproducible: lists in element order, maps by sorted key, sets in their
sorted iteration order.
"""

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from .ast import ForExpr
from .context import EvaluationContext
from .exceptions import DuplicateKeyError, TypeConversionError
from .values import ValueType, iter_set, to_bool, to_string, type_of

if TYPE_CHECKING:
    from .evaluator import ExpressionEvaluator

logger = logging.getLogger(__name__)


def iterate_collection(source: Any) -> Iterator[tuple[Any, Any]]:
    """
    Yield (key, value) pairs of a collection in deterministic order.

    Lists yield (index, element), maps (key, value) by sorted key and sets
    (element, element).

    Raises:
        TypeConversionError: If the value is not a collection.
    """
    tag = type_of(source)
    if tag == ValueType.LIST:
        yield from enumerate(source)
    elif tag == ValueType.MAP:
        for key in sorted(source):
            yield key, source[key]
    elif tag == ValueType.SET:
        for item in iter_set(source):
            yield item, item
    else:
        raise TypeConversionError(
            f"A for expression cannot iterate over a {tag.value} value"
        )


class ComprehensionEngine:
    """Evaluates list-form and map-form ``for`` expressions."""

    def __init__(self, evaluator: "ExpressionEvaluator"):
        self._evaluator = evaluator
        self._logger = logger.getChild(self.__class__.__name__)

    def evaluate(self, node: ForExpr, ctx: EvaluationContext) -> list | dict:
        """
        Evaluate a ``for`` expression.

        Args:
            node: The ForExpr node
            ctx: Context the collection and bodies are evaluated in

        Returns:
            A list for the list form, a map for the map form

        Raises:
            DuplicateKeyError: If the map form produces a key twice without
                grouping mode.
            TypeConversionError: If the source is not a collection or the
                condition is not a bool.
        """
        source = self._evaluator.evaluate(node.collection, ctx)
        pairs = iterate_collection(source)

        if node.is_map:
            return self._build_map(node, pairs, ctx)
        return self._build_list(node, pairs, ctx)

    def _loop_context(
        self, node: ForExpr, ctx: EvaluationContext, key: Any, value: Any
    ) -> EvaluationContext:
        names = {node.value_var: value}
        if node.key_var is not None:
            names[node.key_var] = key
        return ctx.child(**names)

    def _included(self, node: ForExpr, loop_ctx: EvaluationContext) -> bool:
        if node.condition is None:
            return True
        result = self._evaluator.evaluate(node.condition, loop_ctx)
        try:
            return to_bool(result)
        except TypeConversionError as e:
            raise TypeConversionError(
                f"for expression condition must be a bool: {e.message}",
                loop_ctx.address,
            ) from e

    def _build_list(
        self,
        node: ForExpr,
        pairs: Iterator[tuple[Any, Any]],
        ctx: EvaluationContext,
    ) -> list:
        result = []
        for key, value in pairs:
            loop_ctx = self._loop_context(node, ctx, key, value)
            if self._included(node, loop_ctx):
                result.append(self._evaluator.evaluate(node.value_expr, loop_ctx))
        return result

    def _build_map(
        self,
        node: ForExpr,
        pairs: Iterator[tuple[Any, Any]],
        ctx: EvaluationContext,
    ) -> dict:
        result: dict[str, Any] = {}
        for key, value in pairs:
            loop_ctx = self._loop_context(node, ctx, key, value)
            if not self._included(node, loop_ctx):
                continue

            raw_key = self._evaluator.evaluate(node.key_expr, loop_ctx)
            try:
                out_key = to_string(raw_key)
            except TypeConversionError as e:
                raise TypeConversionError(
                    f"for expression key must be a string: {e.message}",
                    ctx.address,
                ) from e
            out_value = self._evaluator.evaluate(node.value_expr, loop_ctx)

            if node.grouping:
                result.setdefault(out_key, []).append(out_value)
            elif out_key in result:
                raise DuplicateKeyError(
                    f"Duplicate key '{out_key}' in for expression; "
                    "use grouping mode (...) to collect values per key",
                    ctx.address,
                )
            else:
                result[out_key] = out_value

        self._logger.debug("Map comprehension produced %d keys", len(result))
        return result


def eval_for_expr(
    node: ForExpr,
    ctx: EvaluationContext,
    evaluator: "ExpressionEvaluator | None" = None,
) -> list | dict:
    """Evaluate a ``for`` expression with the given (or default) evaluator."""
    if evaluator is None:
        from .evaluator import default_evaluator

        evaluator = default_evaluator
    return ComprehensionEngine(evaluator).evaluate(node, ctx)
