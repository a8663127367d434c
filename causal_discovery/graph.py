# causal_discovery/graph.py
"""
Graph value objects and the unified graph-result schema.

Two representations are produced by the engine:

- ``PartiallyDirectedGraph``: PC output, a mix of directed (u -> v) and
  undirected (u -- v) edges with no directed cycle.
- ``DAG``: hill-climbing output, every edge directed, acyclic after every
  mutation. Mutations are validated before they are committed.

Both serialize to the same dictionary layout consumed by the presentation layer:

    {"graph": {"variables": [...], "edges": [{"from", "to", "type", ...}]},
     "metadata": {"method", "params", "runtime", "graph_type"}}
"""

import logging
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import networkx as nx

logger = logging.getLogger(__name__)

Edge = Tuple[str, str]

GRAPH_TYPES = ("DAG", "CPDAG", "skeleton")

# === Standardized graph result schema helpers ===
# Edge attribute semantics:
# - type: "->" for directed edges, "--" for undirected ones
# - strength: bootstrap frequency of the adjacency in [0,1], if estimated
# - direction: bootstrap frequency of this orientation given the adjacency, if estimated


def validate_graph_schema(graph: Dict[str, Any]) -> bool:
    """Validate that graph follows unified schema structure.

    Returns:
        True if valid

    Raises:
        ValueError: If graph schema is invalid
    """
    if not isinstance(graph, dict):
        raise ValueError(f"Graph must be a dict, got {type(graph)}")
    if "graph" not in graph or not isinstance(graph["graph"], dict):
        raise ValueError("Graph missing 'graph' dict")

    graph_data = graph["graph"]
    if not isinstance(graph_data.get("variables"), list):
        raise ValueError("Graph missing 'graph.variables' list")
    if not isinstance(graph_data.get("edges"), list):
        raise ValueError("Graph missing 'graph.edges' list")

    metadata = graph.get("metadata")
    if not isinstance(metadata, dict) or "graph_type" not in metadata:
        raise ValueError("Graph missing 'metadata.graph_type' key")
    if metadata["graph_type"] not in GRAPH_TYPES:
        logger.warning(f"Unknown graph_type '{metadata['graph_type']}', expected {'|'.join(GRAPH_TYPES)}")

    for i, edge in enumerate(graph_data["edges"]):
        if not isinstance(edge, dict):
            raise ValueError(f"Edge at index {i} must be a dict, got {type(edge)}")
        for key in ("from", "to", "type"):
            if key not in edge:
                raise ValueError(f"Edge at index {i} missing '{key}' field")
    return True


def get_edges(graph: Dict[str, Any]) -> List[Dict[str, Any]]:
    if "graph" in graph and "edges" in graph["graph"]:
        return graph["graph"]["edges"]
    raise ValueError("Graph does not follow unified schema: missing graph.edges")


def get_variables(graph: Dict[str, Any]) -> List[str]:
    if "graph" in graph and "variables" in graph["graph"]:
        return graph["graph"]["variables"]
    raise ValueError("Graph does not follow unified schema: missing graph.variables")


def get_graph_type(graph: Dict[str, Any]) -> str:
    if "metadata" in graph and "graph_type" in graph["metadata"]:
        return graph["metadata"]["graph_type"]
    raise ValueError("Graph missing 'metadata.graph_type' - schema validation required")


def _normalize_edges(edges, graph_type: str) -> List[Dict[str, Any]]:
    """Normalize edges (dicts or (from, to[, type]) tuples) to schema dicts."""
    norm = []
    for e in edges or []:
        if isinstance(e, dict):
            frm, to, edge_type = e.get("from"), e.get("to"), e.get("type")
            extras = {k: e[k] for k in ("strength", "direction") if e.get(k) is not None}
        else:
            frm, to = e[0], e[1]
            edge_type = e[2] if len(e) > 2 else None
            extras = {}
        if edge_type is None:
            edge_type = "->" if graph_type == "DAG" else "--"
        item = {"from": str(frm), "to": str(to), "type": str(edge_type)}
        item.update({k: float(v) for k, v in extras.items()})
        norm.append(item)
    return norm


def normalize_graph_result(method: str, variables, edges, params=None, runtime=None,
                           graph_type: Optional[str] = None) -> Dict[str, Any]:
    """Normalize graph result to unified schema.

    Args:
        method: Algorithm method name
        variables: List of variable names
        edges: List of edges (dicts or tuples)
        params: Optional parameters dictionary
        runtime: Optional runtime in seconds
        graph_type: DAG|CPDAG|skeleton. If None, inferred from method.

    Returns:
        Normalized graph dictionary following unified schema
    """
    if graph_type is None:
        graph_type = "CPDAG" if method == "PC" else "DAG"
    return {
        "graph": {
            "edges": _normalize_edges(edges, graph_type),
            "variables": list(map(str, variables or [])),
        },
        "metadata": {
            "method": method,
            "params": params or {},
            "runtime": runtime,
            "graph_type": graph_type,
        },
    }


class DAG:
    """Directed acyclic graph over a fixed, ordered node set.

    Edge listings follow node order, so every traversal of the graph is
    deterministic.
    """

    def __init__(self, nodes: Sequence[str], edges: Iterable[Edge] = ()):
        self._nodes: Tuple[str, ...] = tuple(nodes)
        if len(set(self._nodes)) != len(self._nodes):
            raise ValueError(f"Duplicate nodes: {self._nodes}")
        self._index = {n: i for i, n in enumerate(self._nodes)}
        self._g = nx.DiGraph()
        self._g.add_nodes_from(self._nodes)
        for u, v in edges:
            self.add_edge(u, v)

    # === Queries ===

    @property
    def nodes(self) -> Tuple[str, ...]:
        return self._nodes

    @property
    def edges(self) -> List[Edge]:
        return sorted(self._g.edges(), key=lambda e: (self._index[e[0]], self._index[e[1]]))

    @property
    def n_edges(self) -> int:
        return self._g.number_of_edges()

    def __contains__(self, edge: object) -> bool:
        return isinstance(edge, tuple) and len(edge) == 2 and self._g.has_edge(*edge)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DAG):
            return NotImplemented
        return set(self._nodes) == set(other._nodes) and set(self._g.edges()) == set(other._g.edges())

    def __repr__(self) -> str:
        return f"DAG(nodes={len(self._nodes)}, edges={self.n_edges})"

    def index_of(self, node: str) -> int:
        return self._index[node]

    def has_edge(self, u: str, v: str) -> bool:
        return self._g.has_edge(u, v)

    def is_adjacent(self, u: str, v: str) -> bool:
        return self._g.has_edge(u, v) or self._g.has_edge(v, u)

    def parents(self, node: str) -> Tuple[str, ...]:
        return tuple(sorted(self._g.predecessors(node), key=self._index.__getitem__))

    def children(self, node: str) -> Tuple[str, ...]:
        return tuple(sorted(self._g.successors(node), key=self._index.__getitem__))

    def descendants(self, node: str) -> Set[str]:
        return nx.descendants(self._g, node)

    def has_path(self, u: str, v: str) -> bool:
        return nx.has_path(self._g, u, v)

    def _has_indirect_path(self, u: str, v: str) -> bool:
        """Directed path u ~> v that does not use the edge u -> v itself."""
        seen = {u}
        queue = deque(c for c in self._g.successors(u) if c != v)
        while queue:
            node = queue.popleft()
            if node == v:
                return True
            if node in seen:
                continue
            seen.add(node)
            queue.extend(self._g.successors(node))
        return False

    def creates_cycle(self, u: str, v: str) -> bool:
        """Would adding u -> v close a directed cycle?"""
        return u == v or nx.has_path(self._g, v, u)

    def can_add(self, u: str, v: str) -> bool:
        self._check_nodes(u, v)
        return not self.is_adjacent(u, v) and not self.creates_cycle(u, v)

    def can_reverse(self, u: str, v: str) -> bool:
        """u -> v may become v -> u iff no other directed path leads from u to v."""
        self._check_nodes(u, v)
        return self._g.has_edge(u, v) and not self._has_indirect_path(u, v)

    def is_acyclic(self) -> bool:
        return nx.is_directed_acyclic_graph(self._g)

    def topological_order(self) -> List[str]:
        return list(nx.lexicographical_topological_sort(self._g, key=self._index.__getitem__))

    # === Mutations ===

    def _check_nodes(self, *nodes: str) -> None:
        for n in nodes:
            if n not in self._index:
                raise ValueError(f"Unknown node '{n}'")

    def add_edge(self, u: str, v: str) -> None:
        self._check_nodes(u, v)
        if self.is_adjacent(u, v):
            raise ValueError(f"Nodes already adjacent: {u}, {v}")
        if self.creates_cycle(u, v):
            raise ValueError(f"Adding {u} -> {v} would create a cycle")
        self._g.add_edge(u, v)

    def remove_edge(self, u: str, v: str) -> None:
        if not self._g.has_edge(u, v):
            raise ValueError(f"No edge {u} -> {v}")
        self._g.remove_edge(u, v)

    def reverse_edge(self, u: str, v: str) -> None:
        if not self._g.has_edge(u, v):
            raise ValueError(f"No edge {u} -> {v}")
        if self._has_indirect_path(u, v):
            raise ValueError(f"Reversing {u} -> {v} would create a cycle")
        self._g.remove_edge(u, v)
        self._g.add_edge(v, u)

    def copy(self) -> "DAG":
        return DAG(self._nodes, self.edges)

    def to_networkx(self) -> nx.DiGraph:
        return self._g.copy()

    def to_dict(self, method: str = "HC", params: Optional[Dict[str, Any]] = None,
                runtime: Optional[float] = None) -> Dict[str, Any]:
        return normalize_graph_result(method, self._nodes, self.edges, params, runtime, graph_type="DAG")


class PartiallyDirectedGraph:
    """Graph with directed and undirected edges and no directed cycle."""

    def __init__(self, nodes: Sequence[str], directed: Iterable[Edge] = (),
                 undirected: Iterable[Edge] = ()):
        self._nodes: Tuple[str, ...] = tuple(nodes)
        self._index = {n: i for i, n in enumerate(self._nodes)}
        self._directed = nx.DiGraph()
        self._directed.add_nodes_from(self._nodes)
        self._undirected = nx.Graph()
        self._undirected.add_nodes_from(self._nodes)
        for u, v in undirected:
            if self.is_adjacent(u, v):
                raise ValueError(f"Nodes already adjacent: {u}, {v}")
            self._undirected.add_edge(u, v)
        for u, v in directed:
            if self.is_adjacent(u, v):
                raise ValueError(f"Nodes already adjacent: {u}, {v}")
            self._directed.add_edge(u, v)
        if not nx.is_directed_acyclic_graph(self._directed):
            raise ValueError("Directed edges contain a cycle")

    @property
    def nodes(self) -> Tuple[str, ...]:
        return self._nodes

    def _key(self, e: Edge) -> Tuple[int, int]:
        return self._index[e[0]], self._index[e[1]]

    @property
    def directed_edges(self) -> List[Edge]:
        return sorted(self._directed.edges(), key=self._key)

    @property
    def undirected_edges(self) -> List[Edge]:
        out = []
        for u, v in self._undirected.edges():
            out.append((u, v) if self._index[u] < self._index[v] else (v, u))
        return sorted(out, key=self._key)

    @property
    def n_edges(self) -> int:
        return self._directed.number_of_edges() + self._undirected.number_of_edges()

    def __repr__(self) -> str:
        return (f"PartiallyDirectedGraph(nodes={len(self._nodes)}, "
                f"directed={self._directed.number_of_edges()}, "
                f"undirected={self._undirected.number_of_edges()})")

    def is_directed(self, u: str, v: str) -> bool:
        return self._directed.has_edge(u, v)

    def is_undirected(self, u: str, v: str) -> bool:
        return self._undirected.has_edge(u, v)

    def is_adjacent(self, u: str, v: str) -> bool:
        return (self._undirected.has_edge(u, v) or self._directed.has_edge(u, v)
                or self._directed.has_edge(v, u))

    def adjacent(self, node: str) -> Set[str]:
        return (set(self._undirected.neighbors(node)) | set(self._directed.successors(node))
                | set(self._directed.predecessors(node)))

    def undirected_neighbors(self, node: str) -> Set[str]:
        return set(self._undirected.neighbors(node))

    def parents(self, node: str) -> Set[str]:
        return set(self._directed.predecessors(node))

    def children(self, node: str) -> Set[str]:
        return set(self._directed.successors(node))

    def has_directed_path(self, u: str, v: str) -> bool:
        return nx.has_path(self._directed, u, v)

    def has_directed_cycle(self) -> bool:
        return not nx.is_directed_acyclic_graph(self._directed)

    def orient(self, u: str, v: str) -> bool:
        """Turn u -- v into u -> v.

        Returns False, leaving the graph untouched, when the edge is not
        undirected or when the orientation would close a directed cycle.
        """
        if not self._undirected.has_edge(u, v):
            return False
        if nx.has_path(self._directed, v, u):
            return False
        self._undirected.remove_edge(u, v)
        self._directed.add_edge(u, v)
        return True

    def copy(self) -> "PartiallyDirectedGraph":
        return PartiallyDirectedGraph(self._nodes, self.directed_edges, self.undirected_edges)

    def edge_list(self) -> List[Tuple[str, str, str]]:
        return ([(u, v, "->") for u, v in self.directed_edges]
                + [(u, v, "--") for u, v in self.undirected_edges])

    def to_dict(self, method: str = "PC", params: Optional[Dict[str, Any]] = None,
                runtime: Optional[float] = None) -> Dict[str, Any]:
        return normalize_graph_result(method, self._nodes, self.edge_list(), params, runtime,
                                      graph_type="CPDAG")
