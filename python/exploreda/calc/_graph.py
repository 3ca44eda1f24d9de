"""Dependency graph between calculations with traversal and topological ordering."""

from __future__ import annotations

import logging
from collections import deque
from typing import Iterable

from exploreda.calc._errors import CyclicDependencyError

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Tracks the direct dependencies of each calculation.

    Nodes are calculation result column names.  A dependency name may be
    another node or a raw row field; only nodes take part in ordering.
    """

    __slots__ = ("edges", "reverse_edges")

    def __init__(self) -> None:
        # calculation -> names it reads from
        self.edges: dict[str, set[str]] = {}
        # name -> calculations that read from it
        self.reverse_edges: dict[str, set[str]] = {}

    def __contains__(self, name: object) -> bool:
        return name in self.edges

    def __len__(self) -> int:
        return len(self.edges)

    @property
    def nodes(self) -> list[str]:
        return list(self.edges)

    def dependencies_of(self, name: str) -> set[str]:
        """Direct dependencies of *name* (a copy; empty for unknown names)."""
        return set(self.edges.get(name, ()))

    def copy(self) -> DependencyGraph:
        clone = DependencyGraph()
        clone.edges = {k: set(v) for k, v in self.edges.items()}
        clone.reverse_edges = {k: set(v) for k, v in self.reverse_edges.items()}
        return clone

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_dependencies(self, name: str, dependencies: Iterable[str]) -> None:
        """Replace the direct dependency set of *name*. Cycles are not checked."""
        for old in self.edges.get(name, ()):
            readers = self.reverse_edges.get(old)
            if readers is not None:
                readers.discard(name)
                if not readers:
                    del self.reverse_edges[old]

        deps = set(dependencies)
        self.edges[name] = deps
        for dep in deps:
            self.reverse_edges.setdefault(dep, set()).add(name)

    def remove(self, name: str, sever: bool = True) -> None:
        """Delete the node for *name*.

        With ``sever`` the name is also dropped from every other node's
        dependency set, so the calculations that read it lose the edge.
        """
        if name in self.edges:
            self.set_dependencies(name, ())
            del self.edges[name]

        if sever:
            for reader in self.reverse_edges.pop(name, set()):
                self.edges[reader].discard(name)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def precedents(self, name: str) -> set[str]:
        """All nodes that *name* transitively depends on (excluding *name*)."""
        found: set[str] = set()
        visited: set[str] = {name}
        stack = [name]

        while stack:
            current = stack.pop()
            for dep in self.edges.get(current, ()):
                if dep in visited:
                    continue
                visited.add(dep)
                if dep in self.edges:
                    found.add(dep)
                    stack.append(dep)

        return found

    def dependents(self, name: str) -> set[str]:
        """All nodes that transitively depend on *name* (excluding *name*)."""
        found: set[str] = set()
        queue: deque[str] = deque([name])
        visited: set[str] = {name}

        while queue:
            current = queue.popleft()
            for reader in self.reverse_edges.get(current, ()):
                if reader not in visited:
                    visited.add(reader)
                    found.add(reader)
                    queue.append(reader)

        return found

    def topological_order(self, names: Iterable[str] | None = None) -> list[str]:
        """Return nodes in evaluation order (Kahn's algorithm).

        When *names* is given only those nodes are ordered, considering the
        edges between them.  Ties keep insertion order.
        Raises CyclicDependencyError if the selection contains a cycle.
        """
        if names is None:
            selected = list(self.edges)
        else:
            wanted = set(names)
            selected = [n for n in self.edges if n in wanted]
        if not selected:
            return []
        position = {n: i for i, n in enumerate(selected)}

        in_degree: dict[str, int] = {}
        for node in selected:
            in_degree[node] = sum(1 for dep in self.edges[node] if dep in position)

        queue: deque[str] = deque(n for n in selected if in_degree[n] == 0)
        order: list[str] = []
        while queue:
            node = queue.popleft()
            order.append(node)
            readers = [r for r in self.reverse_edges.get(node, ()) if r in position]
            for reader in sorted(readers, key=position.__getitem__):
                in_degree[reader] -= 1
                if in_degree[reader] == 0:
                    queue.append(reader)

        if len(order) != len(selected):
            raise CyclicDependencyError(set(selected) - set(order))

        return order

    def find_cycle(self, name: str, dependencies: Iterable[str]) -> list[str] | None:
        """Look for a cycle through *name* if it were given *dependencies*.

        Depth-first search with a "visiting" marker.  Returns the cycle path
        with its first name repeated at the end, or ``None``.
        """
        proposed = set(dependencies)

        def deps_of(node: str) -> set[str]:
            if node == name:
                return proposed
            return self.edges.get(node, set())

        path: list[str] = []
        on_path: set[str] = set()
        done: set[str] = set()

        def visit(node: str) -> list[str] | None:
            path.append(node)
            on_path.add(node)
            for dep in sorted(deps_of(node)):
                if dep in on_path:
                    return path[path.index(dep):] + [dep]
                if dep in done:
                    continue
                if dep == name or dep in self.edges:
                    cycle = visit(dep)
                    if cycle is not None:
                        return cycle
            path.pop()
            on_path.discard(node)
            done.add(node)
            return None

        cycle = visit(name)
        if cycle is not None:
            logger.debug("Cycle through %s: %s", name, cycle)
        return cycle
