from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from stackcraft.exceptions import CircularDependencyError


@dataclass(frozen=True)
class Dependency:
    source_logical_id: str
    target_logical_id: str


class DependencyGraph:
    """
    Directed graph between logical IDs: an edge ``source -> target`` means that ``source`` depends on ``target``
    and has to be created after it. Nodes and edges keep their insertion order, which makes traversals (and thus
    error messages) deterministic.
    """

    def __init__(self):
        self._nodes: dict[str, None] = {}
        self._edges: dict[str, dict[str, None]] = {}

    def add_node(self, logical_id: str) -> None:
        self._nodes.setdefault(logical_id, None)
        self._edges.setdefault(logical_id, {})

    def add_edge(self, source: str, target: str) -> None:
        self.add_node(source)
        self._edges[source][target] = None

    def add_edges(self, source: str, targets: Iterable[str]) -> None:
        self.add_node(source)
        for target in targets:
            self._edges[source][target] = None

    def clear_edges(self, source: str) -> None:
        if source in self._edges:
            self._edges[source] = {}

    def remove_node(self, logical_id: str) -> None:
        self._nodes.pop(logical_id, None)
        self._edges.pop(logical_id, None)
        for targets in self._edges.values():
            targets.pop(logical_id, None)

    def has_node(self, logical_id: str) -> bool:
        return logical_id in self._nodes

    @property
    def nodes(self) -> list[str]:
        return list(self._nodes)

    @property
    def dependencies(self) -> list[Dependency]:
        return [
            Dependency(source_logical_id=source, target_logical_id=target)
            for source, targets in self._edges.items()
            for target in targets
        ]

    def dependencies_of(self, logical_id: str) -> list[str]:
        return list(self._edges.get(logical_id, {}))

    def dependents_of(self, logical_id: str) -> list[str]:
        return [source for source, targets in self._edges.items() if logical_id in targets]

    def find_cycle(self) -> list[str] | None:
        """
        Depth-first search over all nodes (in insertion order). Returns the first cycle found as a path that starts
        and ends with the same logical ID, or ``None`` if the graph is acyclic.
        """
        visited: set[str] = set()
        recursion_stack: list[str] = []
        on_stack: set[str] = set()

        def visit(node: str) -> list[str] | None:
            if node in on_stack:
                return recursion_stack[recursion_stack.index(node) :] + [node]
            if node in visited:
                return None
            visited.add(node)
            recursion_stack.append(node)
            on_stack.add(node)
            for target in self._edges.get(node, {}):
                cycle = visit(target)
                if cycle:
                    return cycle
            recursion_stack.pop()
            on_stack.discard(node)
            return None

        for root in self._nodes:
            if root not in visited:
                cycle = visit(root)
                if cycle:
                    return cycle
        return None

    def detect_cycles(self) -> None:
        """
        :raises CircularDependencyError: naming the first node found on a cycle
        """
        cycle = self.find_cycle()
        if cycle:
            raise CircularDependencyError(cycle[0], cycle)

    def topological_order(self) -> list[str]:
        """
        Returns all nodes such that every node comes after the nodes it depends on. Ties are broken by insertion
        order.

        :raises CircularDependencyError: if the graph contains a cycle
        """
        self.detect_cycles()
        result: list[str] = []
        done: set[str] = set()

        def visit(node: str) -> None:
            if node in done:
                return
            done.add(node)
            for target in self._edges.get(node, {}):
                visit(target)
            if node in self._nodes:
                result.append(node)

        for root in self._nodes:
            visit(root)
        return result

    def __len__(self):
        return len(self._nodes)

    def __contains__(self, logical_id: str) -> bool:
        return logical_id in self._nodes
