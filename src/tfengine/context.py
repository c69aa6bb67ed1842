"""
Evaluation Context

The context object passed to every evaluation call. It replaces any notion of
a process-wide "current configuration": everything an expression may read is
reachable from here, so independent passes never share state.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .bindings import BindingGraph
from .exceptions import UnresolvedReferenceError

if TYPE_CHECKING:
    from .functions import FunctionRegistry
    from .secrets import SecretSource


@dataclass(frozen=True)
class EvaluationContext:
    """
    Everything needed to evaluate expressions for one block.

    ``scope`` holds names bound by the enclosing construct (``count``,
    ``each``, ``for`` loop variables, dynamic block iterators). Scope names
    shadow bindings with the same root.
    """

    bindings: BindingGraph
    functions: "FunctionRegistry"
    secrets: "SecretSource | None" = None
    base_dir: Path = Path(".")
    scope: Mapping[str, Any] = field(default_factory=dict)
    address: str | None = None

    def child(self, **names: Any) -> "EvaluationContext":
        """Return a context with additional scope names bound."""
        return replace(self, scope={**self.scope, **names})

    def for_block(self, address: str) -> "EvaluationContext":
        """Return a context for evaluating the block at ``address``."""
        return replace(self, address=address, scope={})

    def lookup(self, parts: Sequence[str]) -> tuple[Any, tuple[str, ...]]:
        """
        Resolve the root of a traversal.

        Args:
            parts: Traversal parts of a reference

        Returns:
            (value of the longest bound prefix, remaining attribute names)

        Raises:
            UnresolvedReferenceError: If nothing matches.
        """
        root = parts[0]
        if root in self.scope:
            return self.scope[root], tuple(parts[1:])

        resolved = self.bindings.resolve(parts)
        if resolved is None:
            raise UnresolvedReferenceError(
                f"Reference to undeclared or unevaluated name '{'.'.join(parts)}'",
                self.address,
            )
        binding, remaining = resolved
        return binding.value, remaining
