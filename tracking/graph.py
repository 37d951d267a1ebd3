"""TrackedGraph: an adjacency-map graph that records structural edits as Steps."""

from __future__ import annotations

import copy
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from .base import InvalidRange, TrackedContainer
from .steps import Clock, ObserverLike

DEFAULT_WEIGHT = 1


class TrackedGraph(TrackedContainer):
    """
    Directed or undirected weighted graph over hashable vertices.

    ``to_list`` returns one ``{"vertex": v, "neighbors": [[n, weight], ...]}``
    record per vertex in insertion order; the same shape is accepted as
    initial data, alongside bare vertices. An undirected edge is stored in
    both directions but reported once by ``edges``.

    Structural edits that change nothing (adding an existing vertex,
    removing a missing edge) return False and emit no step. Traversals and
    path queries are reads.
    """

    target = "graph"

    def __init__(
        self,
        initial_data: Iterable[Any] | None = None,
        observer: ObserverLike | None = None,
        clock: Clock | None = None,
        directed: bool = False,
    ) -> None:
        super().__init__(observer=observer, clock=clock)
        self.directed = directed
        self._adjacency: dict[Any, dict[Any, Any]] = {}
        self._replace(self._coerce(initial_data))

    @staticmethod
    def _coerce(values: Any) -> list[Any]:
        if values is None:
            return []
        if isinstance(values, TrackedGraph):
            return values.to_list()
        records = []
        for item in copy.deepcopy(list(values)):
            if isinstance(item, Mapping):
                if "vertex" not in item:
                    raise InvalidRange(f"graph record is missing 'vertex': {item!r}")
                neighbors = []
                for entry in item.get("neighbors", []):
                    if isinstance(entry, list) and len(entry) == 2:
                        neighbors.append([entry[0], entry[1]])
                    else:
                        neighbors.append([entry, DEFAULT_WEIGHT])
                records.append({"vertex": item["vertex"], "neighbors": neighbors})
            else:
                records.append({"vertex": item, "neighbors": []})
        return records

    def _replace(self, values: list[Any]) -> None:
        previous = self._adjacency
        self._adjacency = {}
        try:
            for record in values:
                self._adjacency.setdefault(record["vertex"], {})
            for record in values:
                for neighbor, weight in record["neighbors"]:
                    self._link(record["vertex"], neighbor, weight)
        except TypeError:
            self._adjacency = previous
            raise

    def _link(self, source: Any, destination: Any, weight: Any) -> None:
        self._adjacency.setdefault(source, {})[destination] = weight
        self._adjacency.setdefault(destination, {})
        if not self.directed:
            self._adjacency[destination][source] = weight

    def to_list(self) -> list[Any]:
        return [
            {"vertex": vertex, "neighbors": [[n, w] for n, w in edges.items()]}
            for vertex, edges in self._adjacency.items()
        ]

    def __len__(self) -> int:
        return len(self._adjacency)

    def __contains__(self, vertex: object) -> bool:
        return self.has_vertex(vertex)

    def has_vertex(self, vertex: Any) -> bool:
        return vertex in self._adjacency

    def has_edge(self, source: Any, destination: Any) -> bool:
        return destination in self._adjacency.get(source, {})

    def weight(self, source: Any, destination: Any) -> Any:
        return self._adjacency.get(source, {}).get(destination)

    def vertices(self) -> list[Any]:
        return list(self._adjacency)

    def neighbors(self, vertex: Any) -> list[Any]:
        return list(self._adjacency.get(vertex, {}))

    def edges(self) -> list[list[Any]]:
        """``[source, destination, weight]`` triples; undirected edges appear once."""
        out = []
        seen: set[Any] = set()
        for source, edges in self._adjacency.items():
            for destination, weight in edges.items():
                if not self.directed and destination in seen:
                    continue
                out.append([source, destination, weight])
            seen.add(source)
        return out

    def add_vertex(self, vertex: Any) -> bool:
        if vertex in self._adjacency:
            return False
        self._adjacency[vertex] = {}
        self._emit("add_vertex", [vertex], {"vertex": vertex})
        return True

    def add_edge(self, source: Any, destination: Any, weight: Any = DEFAULT_WEIGHT) -> None:
        """Connect two vertices, creating either one if needed."""
        added_vertices = [v for v in dict.fromkeys([source, destination]) if v not in self._adjacency]
        old_weight = self.weight(source, destination)
        updated = self.has_edge(source, destination)
        self._link(source, destination, weight)
        metadata: dict[str, Any] = {
            "from": source,
            "to": destination,
            "weight": weight,
            "directed": self.directed,
            "added_vertices": added_vertices,
            "updated": updated,
        }
        if updated:
            metadata["old_weight"] = old_weight
        self._emit("add_edge", [source, destination, weight], metadata)

    def remove_edge(self, source: Any, destination: Any) -> bool:
        if not self.has_edge(source, destination):
            return False
        weight = self._adjacency[source].pop(destination)
        if not self.directed:
            self._adjacency[destination].pop(source, None)
        self._emit(
            "remove_edge",
            [source, destination],
            {"from": source, "to": destination, "weight": weight, "directed": self.directed},
        )
        return True

    def remove_vertex(self, vertex: Any) -> bool:
        if vertex not in self._adjacency:
            return False
        outgoing = self._adjacency.pop(vertex)
        incoming = [source for source, edges in self._adjacency.items() if vertex in edges]
        for source in incoming:
            del self._adjacency[source][vertex]
        removed_edges = len(outgoing) if not self.directed else len(outgoing) + len(incoming)
        self._emit("remove_vertex", [vertex], {"vertex": vertex, "removed_edges": removed_edges})
        return True

    def clear(self) -> None:
        cleared = len(self._adjacency)
        self._adjacency = {}
        self._emit("clear", [], {"cleared": cleared})

    def bfs(self, start: Any) -> list[Any]:
        """Breadth-first visit order from ``start``; empty when it is unknown."""
        if start not in self._adjacency:
            return []
        order = [start]
        visited = {start}
        queue = deque([start])
        while queue:
            for neighbor in self._adjacency[queue.popleft()]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    order.append(neighbor)
                    queue.append(neighbor)
        return order

    def dfs(self, start: Any) -> list[Any]:
        """Depth-first preorder from ``start``, neighbors taken in insertion order."""
        if start not in self._adjacency:
            return []
        order = []
        visited = set()
        stack = [start]
        while stack:
            vertex = stack.pop()
            if vertex in visited:
                continue
            visited.add(vertex)
            order.append(vertex)
            stack.extend(n for n in reversed(list(self._adjacency[vertex])) if n not in visited)
        return order

    def shortest_path(self, start: Any, end: Any) -> list[Any]:
        """Fewest-edge path from ``start`` to ``end``; empty when unreachable."""
        if start not in self._adjacency or end not in self._adjacency:
            return []
        previous: dict[Any, Any] = {start: None}
        queue = deque([start])
        while queue:
            vertex = queue.popleft()
            if vertex == end:
                path = [end]
                while path[-1] != start:
                    path.append(previous[path[-1]])
                return path[::-1]
            for neighbor in self._adjacency[vertex]:
                if neighbor not in previous:
                    previous[neighbor] = vertex
                    queue.append(neighbor)
        return []

    def has_cycle(self) -> bool:
        if self.directed:
            return self._has_directed_cycle()
        parent: dict[Any, Any] = {}
        for root in self._adjacency:
            if root in parent:
                continue
            parent[root] = root
            queue = deque([root])
            while queue:
                vertex = queue.popleft()
                for neighbor in self._adjacency[vertex]:
                    if neighbor not in parent:
                        parent[neighbor] = vertex
                        queue.append(neighbor)
                    elif neighbor == vertex or parent[vertex] != neighbor:
                        return True
        return False

    def _has_directed_cycle(self) -> bool:
        done: set[Any] = set()
        for root in self._adjacency:
            if root in done:
                continue
            on_path = {root}
            stack = [(root, iter(self._adjacency[root]))]
            while stack:
                vertex, pending = stack[-1]
                for neighbor in pending:
                    if neighbor in on_path:
                        return True
                    if neighbor not in done:
                        on_path.add(neighbor)
                        stack.append((neighbor, iter(self._adjacency[neighbor])))
                        break
                else:
                    stack.pop()
                    on_path.discard(vertex)
                    done.add(vertex)
        return False
