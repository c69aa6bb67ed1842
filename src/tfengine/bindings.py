"""Binding Graph: the write-once table of evaluated addresses."""

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .exceptions import BindingConflictError, UnresolvedReferenceError
from .models import ResourceInstance
from .values import ValueType, iter_set, to_string, type_of

logger = logging.getLogger(__name__)

# Longest address form is data.<type>.<name>
MAX_ADDRESS_PARTS = 3

# Shorter renderings match unrelated message text
MIN_REDACTED_LENGTH = 4


class BindingKind(str, Enum):
    """Kind of block that produced a binding."""

    VARIABLE = "variable"
    LOCAL = "local"
    DATA = "data"
    RESOURCE = "resource"
    OUTPUT = "output"


@dataclass(frozen=True)
class Binding:
    """
    An evaluated address.

    For resources, ``value`` is the per-instance collection: a list when the
    block used ``count``, a map keyed by instance key for ``for_each`` and the
    attribute map of the single instance otherwise. ``instances`` keeps the
    expanded ResourceInstance objects.
    """

    address: str
    kind: BindingKind
    value: Any
    sensitive: bool = False
    instances: tuple[ResourceInstance, ...] | None = None


class BindingGraph:
    """
    Holds every binding created during one evaluation pass.

    Each address can be defined once; the table is never mutated otherwise.
    """

    def __init__(self):
        self._bindings: dict[str, Binding] = {}
        self._logger = logger.getChild(self.__class__.__name__)

    def define(
        self,
        address: str,
        kind: BindingKind,
        value: Any,
        sensitive: bool = False,
        instances: Sequence[ResourceInstance] | None = None,
    ) -> Binding:
        """
        Create the binding for an address.

        Raises:
            BindingConflictError: If the address is already bound.
        """
        if address in self._bindings:
            raise BindingConflictError(
                f"Address '{address}' is already bound in this evaluation pass",
                address,
            )

        binding = Binding(
            address=address,
            kind=kind,
            value=value,
            sensitive=sensitive,
            instances=tuple(instances) if instances is not None else None,
        )
        self._bindings[address] = binding
        self._logger.debug("Bound %s (%s)", address, kind.value)
        return binding

    def get(self, address: str) -> Binding:
        """
        Get the binding for an exact address.

        Raises:
            UnresolvedReferenceError: If the address is not bound.
        """
        try:
            return self._bindings[address]
        except KeyError:
            raise UnresolvedReferenceError(
                f"Reference to undeclared or unevaluated address '{address}'"
            ) from None

    def resolve(self, parts: Sequence[str]) -> tuple[Binding, tuple[str, ...]] | None:
        """
        Find the binding named by the longest prefix of a traversal.

        Args:
            parts: Traversal parts, e.g. ("aws_iam_user", "example", "arn")

        Returns:
            (binding, remaining attribute names), or None if no prefix is bound
        """
        for length in range(min(len(parts), MAX_ADDRESS_PARTS), 0, -1):
            address = ".".join(parts[:length])
            binding = self._bindings.get(address)
            if binding is not None:
                return binding, tuple(parts[length:])
        return None

    def addresses(self) -> list[str]:
        """Bound addresses in the order they were defined."""
        return list(self._bindings)

    def of_kind(self, kind: BindingKind) -> list[Binding]:
        return [b for b in self._bindings.values() if b.kind == kind]

    def sensitive_strings(self) -> set[str]:
        """
        String renderings of every scalar inside a sensitive binding.

        Used to scrub error messages before they are logged.
        """
        found: set[str] = set()
        for binding in self._bindings.values():
            if binding.sensitive:
                _collect_scalars(binding.value, found)
        return found

    def __contains__(self, address: str) -> bool:
        return address in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)

    def __iter__(self) -> Iterator[Binding]:
        return iter(self._bindings.values())


def _collect_scalars(value: Any, found: set[str]) -> None:
    tag = type_of(value)
    if tag == ValueType.LIST:
        items = value
    elif tag == ValueType.SET:
        items = iter_set(value)
    elif tag == ValueType.MAP:
        items = value.values()
    else:
        if tag in (ValueType.STRING, ValueType.NUMBER):
            text = to_string(value)
            if len(text) >= MIN_REDACTED_LENGTH:
                found.add(text)
        return
    for item in items:
        _collect_scalars(item, found)
