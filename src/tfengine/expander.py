"""
Resource Expander

Turns a resource block into concrete instances. ``count`` produces instances
keyed 0..N-1 with ``count.index`` bound; ``for_each`` produces one instance
per key, in sorted key order, with ``each.key`` and ``each.value`` bound.
``dynamic`` blocks are expanded into lists of maps while attributes are
evaluated.
"""

import logging
from typing import Any

from .comprehension import iterate_collection
from .config import DataBlock, DynamicBlock, ResourceBlock, resolve_declaration
from .context import EvaluationContext
from .evaluator import ExpressionEvaluator, default_evaluator
from .exceptions import (
    DuplicateKeyError,
    ExpansionError,
    InvalidCountError,
    TfEngineError,
    TypeConversionError,
)
from .models import ResourceInstance
from .values import ValueType, iter_set, to_string, to_whole_number, type_of

logger = logging.getLogger(__name__)


class ResourceExpander:
    """Expands resource blocks into ResourceInstance objects."""

    def __init__(self, evaluator: ExpressionEvaluator | None = None):
        self._evaluator = evaluator or default_evaluator
        self._logger = logger.getChild(self.__class__.__name__)

    def expand(
        self, block: ResourceBlock, ctx: EvaluationContext
    ) -> list[ResourceInstance]:
        """
        Expand a resource block.

        Args:
            block: Resource block to expand
            ctx: Context for the block (its scope is ignored)

        Returns:
            Instances in key order

        Raises:
            ExpansionError: If both count and for_each are set, or for_each is
                not a map or set.
            InvalidCountError: If count is not a whole number >= 0.
            DuplicateKeyError: If for_each keys collide after string conversion.
        """
        block.check_meta_arguments()
        block_ctx = ctx.for_block(block.address)

        if block.count is not None:
            count = self.evaluate_count(block, block_ctx)
            scopes = [(index, {"count": {"index": index}}) for index in range(count)]
        elif block.for_each is not None:
            items = self.evaluate_for_each(block, block_ctx)
            scopes = [
                (key, {"each": {"key": key, "value": value}})
                for key, value in items.items()
            ]
        else:
            scopes = [(None, {})]

        instances = []
        for key, names in scopes:
            instance_ctx = block_ctx.child(**names)
            attributes = self.evaluate_attributes(block, instance_ctx)
            instances.append(
                ResourceInstance(
                    resource_type=block.resource_type,
                    name=block.name,
                    key=key,
                    attributes=attributes,
                )
            )

        self._logger.debug(
            "Expanded %s into %d instance(s)", block.address, len(instances)
        )
        return instances

    def evaluate_count(self, block: ResourceBlock, ctx: EvaluationContext) -> int:
        value = self._evaluator.evaluate(block.count, ctx)
        if type_of(value) not in (ValueType.NUMBER, ValueType.STRING):
            raise InvalidCountError(
                f"count must be a whole number, got a {type_of(value).value} value",
                block.address,
            )
        try:
            count = to_whole_number(value, "count")
        except TypeConversionError as e:
            raise InvalidCountError(e.message, block.address) from e
        if count < 0:
            raise InvalidCountError(
                f"count must not be negative, got {count}", block.address
            )
        return count

    def evaluate_for_each(
        self, block: ResourceBlock, ctx: EvaluationContext
    ) -> dict[str, Any]:
        """
        Evaluate ``for_each`` into an ordered key ➜ value map.

        Sets become element ➜ element; lists are rejected because their
        instance keys would depend on position.
        """
        value = self._evaluator.evaluate(block.for_each, ctx)
        tag = type_of(value)

        if tag == ValueType.MAP:
            return {key: value[key] for key in sorted(value)}

        if tag == ValueType.SET:
            items: dict[str, Any] = {}
            for element in iter_set(value):
                try:
                    key = to_string(element)
                except TypeConversionError as e:
                    raise ExpansionError(
                        f"for_each set elements must be strings: {e.message}",
                        block.address,
                    ) from e
                if key in items:
                    raise DuplicateKeyError(
                        f"for_each produces the key '{key}' more than once",
                        block.address,
                    )
                items[key] = element
            return {key: items[key] for key in sorted(items)}

        if tag == ValueType.LIST:
            raise ExpansionError(
                "for_each supports maps and sets of strings, but a list was "
                "given; convert it with toset()",
                block.address,
            )
        raise ExpansionError(
            f"for_each must be a map or a set of strings, got a {tag.value} value",
            block.address,
        )

    def evaluate_attributes(
        self, block: ResourceBlock | DataBlock, ctx: EvaluationContext
    ) -> dict[str, Any]:
        """
        Evaluate the attributes and dynamic blocks of a block body.

        Blocks generated by ``dynamic`` are appended after any static blocks
        of the same name.
        """
        attributes = {
            name: self._evaluator.evaluate(expr, ctx)
            for name, expr in block.attributes.items()
        }
        for dynamic in block.dynamic:
            generated = self.expand_dynamic(dynamic, ctx)
            existing = attributes.get(dynamic.name)
            if existing is None:
                attributes[dynamic.name] = generated
            elif type_of(existing) == ValueType.LIST:
                attributes[dynamic.name] = [*existing, *generated]
            else:
                raise ExpansionError(
                    f"dynamic block '{dynamic.name}' conflicts with attribute "
                    f"'{dynamic.name}'",
                    ctx.address,
                )
        return attributes

    def expand_dynamic(
        self, block: DynamicBlock, ctx: EvaluationContext
    ) -> list[dict[str, Any]]:
        """
        Generate the nested blocks of one ``dynamic`` block.

        Returns:
            One map per element of the for_each collection
        """
        collection = self._evaluator.evaluate(block.for_each, ctx)
        try:
            pairs = list(iterate_collection(collection))
        except TypeConversionError as e:
            raise ExpansionError(
                f"dynamic block '{block.name}' for_each is invalid: {e.message}",
                ctx.address,
            ) from e

        generated = []
        for key, value in pairs:
            inner = ctx.child(**{block.iterator_name: {"key": key, "value": value}})
            content = {
                name: self._evaluator.evaluate(expr, inner)
                for name, expr in block.content.items()
            }
            for nested in block.dynamic:
                content[nested.name] = self.expand_dynamic(nested, inner)
            generated.append(content)
        return generated

    @staticmethod
    def collection_value(
        block: ResourceBlock, instances: list[ResourceInstance]
    ) -> Any:
        """
        The value a resource address binds to.

        A list of attribute maps for count, a key ➜ attributes map for
        for_each and the single attribute map otherwise.
        """
        if block.count is not None:
            return [inst.attributes for inst in instances]
        if block.for_each is not None:
            return {inst.key: inst.attributes for inst in instances}
        return instances[0].attributes


def expand_resource(
    blocks: list[ResourceBlock], address: str, ctx: EvaluationContext
) -> list[ResourceInstance]:
    """Expand the effective declaration of ``address`` among ``blocks``."""
    block = resolve_declaration(blocks, address)
    try:
        return ResourceExpander().expand(block, ctx)
    except TfEngineError as e:
        raise e.with_address(address)


__all__ = ["ResourceExpander", "expand_resource", "resolve_declaration"]
