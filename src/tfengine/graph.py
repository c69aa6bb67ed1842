"""
Dependency graph over block addresses.

Edges come from static reference analysis of every expression in a block plus
its explicit ``depends_on`` list. Evaluation follows a deterministic
topological order: among blocks that are ready, the smallest address goes
first.
"""

import heapq
import logging
from collections.abc import Iterable, Sequence

from .ast import collect_references
from .config import AnyBlock
from .exceptions import ConfigurationError, CyclicDependencyError

logger = logging.getLogger(__name__)

# Reference roots that never name a block
IMPLICIT_ROOTS = frozenset({"count", "each", "self", "path", "terraform"})


def dependency_address(parts: Sequence[str]) -> str | None:
    """
    Map a reference traversal to the block address it depends on.

    Returns:
        The address, or None for implicit roots and incomplete references
    """
    root = parts[0]
    if root in IMPLICIT_ROOTS:
        return None
    if root in ("var", "local"):
        return ".".join(parts[:2]) if len(parts) >= 2 else None
    if root == "data":
        return ".".join(parts[:3]) if len(parts) >= 3 else None
    if len(parts) >= 2:
        # <resource_type>.<name>
        return ".".join(parts[:2])
    return None


class DependencyGraph:
    """Directed graph where an edge a ➜ b means a must be evaluated before b."""

    def __init__(self):
        self._nodes: set[str] = set()
        self._dependencies: dict[str, set[str]] = {}
        self._logger = logger.getChild(self.__class__.__name__)

    @classmethod
    def build(cls, blocks: Iterable[AnyBlock]) -> "DependencyGraph":
        """
        Build the graph for a set of effective blocks.

        References to undeclared addresses add no edge; if such a reference
        is evaluated it fails with UnresolvedReferenceError instead.

        Raises:
            ConfigurationError: If depends_on names an undeclared address.
        """
        graph = cls()
        blocks = list(blocks)
        for block in blocks:
            graph.add_node(block.address)

        for block in blocks:
            for expr, bound in block.iter_expressions():
                for ref in collect_references(expr, bound):
                    target = dependency_address(ref.parts)
                    if target is not None and target in graph:
                        graph.add_edge(target, block.address)

            for target in block.explicit_dependencies():
                if target not in graph:
                    raise ConfigurationError(
                        f"depends_on refers to undeclared '{target}'", block.address
                    )
                graph.add_edge(target, block.address)

        graph._logger.debug(
            "Built dependency graph with %d nodes and %d edges",
            len(graph),
            graph.edge_count(),
        )
        return graph

    def add_node(self, address: str) -> None:
        self._nodes.add(address)
        self._dependencies.setdefault(address, set())

    def add_edge(self, dependency: str, dependent: str) -> None:
        self.add_node(dependency)
        self.add_node(dependent)
        self._dependencies[dependent].add(dependency)

    def dependencies_of(self, address: str) -> set[str]:
        return set(self._dependencies.get(address, ()))

    def edge_count(self) -> int:
        return sum(len(deps) for deps in self._dependencies.values())

    def topological_order(self) -> list[str]:
        """
        Order the addresses so that every dependency comes first.

        Raises:
            CyclicDependencyError: If the graph contains a cycle.
        """
        remaining = {node: len(deps) for node, deps in self._dependencies.items()}
        dependents: dict[str, list[str]] = {node: [] for node in self._nodes}
        for node, deps in self._dependencies.items():
            for dep in deps:
                dependents[dep].append(node)

        ready = [node for node, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order = []
        while ready:
            node = heapq.heappop(ready)
            order.append(node)
            for dependent in dependents[node]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) != len(self._nodes):
            blocked = sorted(node for node, count in remaining.items() if count > 0)
            cycle = self.find_cycle(blocked)
            raise CyclicDependencyError(
                "Dependency cycle between: " + " -> ".join(cycle), cycle
            )
        return order

    def find_cycle(self, candidates: Sequence[str]) -> list[str]:
        """Return one cycle among ``candidates`` as a closed path of addresses."""
        blocked = set(candidates)
        for start in candidates:
            path = [start]
            seen = {start}
            node = start
            while True:
                nxt = min(
                    (d for d in self._dependencies[node] if d in blocked),
                    default=None,
                )
                if nxt is None:
                    break
                if nxt in seen:
                    return path[path.index(nxt):] + [nxt]
                path.append(nxt)
                seen.add(nxt)
                node = nxt
        return list(candidates)

    def __contains__(self, address: str) -> bool:
        return address in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)


__all__ = ["DependencyGraph", "IMPLICIT_ROOTS", "dependency_address"]
