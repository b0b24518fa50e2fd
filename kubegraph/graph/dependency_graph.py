"""Directed dependency graph over resource ids.

An edge ``a -> b`` means *a* must be deployed no later than *b*.  Ordering
uses a depth-first topological sort that visits nodes, and each node's
dependencies, in insertion order so the result is deterministic.
"""

from __future__ import annotations

from typing import Any

from kubegraph.errors import CircularDependencyError
from kubegraph.graph.models import DeploymentPlan, EdgeType, GraphEdge


class DependencyGraph:
    """In-memory DAG of resource ids.

    Dictionaries with ``None`` values are used as insertion-ordered sets.
    """

    def __init__(self) -> None:
        self._nodes: dict[str, Any] = {}
        self._dependencies: dict[str, dict[str, None]] = {}
        self._dependents: dict[str, dict[str, None]] = {}
        self._edges: dict[tuple[str, str], GraphEdge] = {}

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_node(self, node_id: str, resource: Any = None) -> None:
        if node_id in self._nodes:
            raise ValueError(f"Node with id '{node_id}' already exists in dependency graph")
        self._nodes[node_id] = resource
        self._dependencies[node_id] = {}
        self._dependents[node_id] = {}

    def add_edge(
        self,
        from_id: str,
        to_id: str,
        edge_type: EdgeType = EdgeType.EXPLICIT,
        field_path: str = "",
    ) -> None:
        """Record that *from_id* must be deployed before *to_id*."""
        if from_id not in self._nodes:
            raise KeyError(f"Dependency node '{from_id}' not found in graph")
        if to_id not in self._nodes:
            raise KeyError(f"Dependent node '{to_id}' not found in graph")
        self._dependencies[to_id][from_id] = None
        self._dependents[from_id][to_id] = None
        self._edges.setdefault((from_id, to_id), GraphEdge(from_id, to_id, edge_type, field_path))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def node_ids(self) -> list[str]:
        return list(self._nodes)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    def get_resource(self, node_id: str) -> Any:
        return self._nodes[node_id]

    def dependencies(self, node_id: str) -> list[str]:
        """Ids that must be deployed before *node_id*."""
        return list(self._dependencies.get(node_id, {}))

    def dependents(self, node_id: str) -> list[str]:
        """Ids that wait for *node_id*."""
        return list(self._dependents.get(node_id, {}))

    def transitive_dependents(self, node_id: str) -> list[str]:
        seen: dict[str, None] = {}
        stack = list(reversed(self.dependents(node_id)))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen[current] = None
            stack.extend(reversed(self.dependents(current)))
        return list(seen)

    def root_nodes(self) -> list[str]:
        return [n for n, deps in self._dependencies.items() if not deps]

    def leaf_nodes(self) -> list[str]:
        return [n for n, deps in self._dependents.items() if not deps]

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def topological_order(self) -> list[str]:
        """Return every id with dependencies before dependents.

        Raises CircularDependencyError on the first cycle found, naming it.
        """
        order: list[str] = []
        done: set[str] = set()
        on_stack: dict[str, None] = {}

        def visit(node_id: str) -> None:
            if node_id in done:
                return
            if node_id in on_stack:
                path = list(on_stack)
                cycle = path[path.index(node_id) :] + [node_id]
                raise CircularDependencyError(cycle)
            on_stack[node_id] = None
            for dep in self._dependencies[node_id]:
                visit(dep)
            del on_stack[node_id]
            done.add(node_id)
            order.append(node_id)

        for node_id in self._nodes:
            visit(node_id)
        return order

    def validate(self) -> None:
        """Raise CircularDependencyError if the graph has a cycle."""
        self.topological_order()

    def has_cycles(self) -> bool:
        try:
            self.topological_order()
        except CircularDependencyError:
            return True
        return False

    def find_cycles(self) -> list[list[str]]:
        """Every back-edge cycle reachable by DFS, each closed on its first node."""
        cycles: list[list[str]] = []
        visited: set[str] = set()
        on_stack: dict[str, None] = {}

        def visit(node_id: str) -> None:
            if node_id in on_stack:
                path = list(on_stack)
                cycles.append(path[path.index(node_id) :] + [node_id])
                return
            if node_id in visited:
                return
            visited.add(node_id)
            on_stack[node_id] = None
            for dep in self._dependencies[node_id]:
                visit(dep)
            del on_stack[node_id]

        for node_id in self._nodes:
            visit(node_id)
        return cycles

    def deployment_levels(self) -> DeploymentPlan:
        """Group ids into levels whose members have no edges between them."""
        order = self.topological_order()
        placed: set[str] = set()
        plan = DeploymentPlan()
        while len(placed) < len(order):
            level = [n for n in order if n not in placed and all(d in placed for d in self._dependencies[n])]
            plan.levels.append(level)
            placed.update(level)
        return plan

    def subgraph(self, node_ids: list[str]) -> DependencyGraph:
        wanted = [n for n in node_ids if n in self._nodes]
        keep = set(wanted)
        sub = DependencyGraph()
        for node_id in wanted:
            sub.add_node(node_id, self._nodes[node_id])
        for (src, dst), edge in self._edges.items():
            if src in keep and dst in keep:
                sub.add_edge(src, dst, edge.edge_type, edge.field_path)
        return sub
