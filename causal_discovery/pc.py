# causal_discovery/pc.py
"""
PC algorithm on continuous variables.

Phase 1 (skeleton): start from the complete undirected graph and remove every
edge whose endpoints are conditionally independent given some subset of the
neighbours of one endpoint, growing the subset size level by level.

Phases 2-3 (orientation): orient unshielded colliders x -> y <- z when y is
not in the separating set of (x, z), then propagate with Meek's rules R1-R4
until nothing changes. Edges left undirected are unresolved within the Markov
equivalence class; that is regular output.
"""

import logging
import time
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Set, Tuple

from .dataset import Dataset
from .errors import ConfigurationError
from .graph import PartiallyDirectedGraph, normalize_graph_result
from .independence import DEFAULT_ALPHA, CIResult, FisherZTest

logger = logging.getLogger(__name__)

CITest = Callable[[str, str, Tuple[str, ...]], CIResult]


@dataclass
class Skeleton:
    """Undirected adjacencies plus the separating set of every removed pair."""
    variables: Tuple[str, ...]
    adjacency: Dict[str, Set[str]]
    separating_sets: Dict[FrozenSet[str], Tuple[str, ...]]
    n_tests: int = 0
    max_level: int = 0

    @property
    def edges(self) -> List[Tuple[str, str]]:
        idx = {n: i for i, n in enumerate(self.variables)}
        out = {(u, v) if idx[u] < idx[v] else (v, u) for u in self.adjacency for v in self.adjacency[u]}
        return sorted(out, key=lambda e: (idx[e[0]], idx[e[1]]))

    def is_adjacent(self, x: str, y: str) -> bool:
        return y in self.adjacency[x]

    def sepset(self, x: str, y: str) -> Optional[Tuple[str, ...]]:
        return self.separating_sets.get(frozenset((x, y)))

    def to_dict(self) -> Dict[str, Any]:
        return normalize_graph_result("PC", self.variables, self.edges,
                                      {"n_tests": self.n_tests, "max_level": self.max_level},
                                      graph_type="skeleton")


def build_skeleton(dataset: Dataset, alpha: float = DEFAULT_ALPHA, max_cond_size: Optional[int] = None,
                   stable: bool = False, ci_test: Optional[CITest] = None) -> Skeleton:
    """PC phase 1 over the continuous variables of ``dataset``.

    Args:
        dataset: Data view; categorical variables are ignored
        alpha: Significance level of the CI tests
        max_cond_size: Largest conditioning set to try (unbounded if None)
        stable: Freeze adjacency sets at the start of each level, making the
            result independent of the pair visiting order
        ci_test: Optional oracle ``(x, y, Z) -> CIResult``; Fisher-z by default

    Returns:
        Skeleton with separating sets

    Raises:
        ConfigurationError: Fewer than two continuous variables
    """
    names = dataset.continuous_names
    if len(names) < 2:
        raise ConfigurationError(
            f"PC needs at least 2 continuous variables, got {len(names)}: {list(names)}"
        )
    if max_cond_size is not None and max_cond_size < 0:
        raise ConfigurationError(f"max_cond_size must be >= 0, got {max_cond_size}")
    skipped = dataset.categorical_names
    if skipped:
        logger.info(f"PC skeleton ignores categorical variables: {list(skipped)}")

    oracle = FisherZTest(dataset, alpha)
    test = ci_test or oracle.test
    idx = {n: i for i, n in enumerate(names)}
    adjacency: Dict[str, Set[str]] = {n: set(names) - {n} for n in names}
    sepsets: Dict[FrozenSet[str], Tuple[str, ...]] = {}
    n_tests = 0

    level = 0
    while max_cond_size is None or level <= max_cond_size:
        frozen = {n: set(adj) for n, adj in adjacency.items()} if stable else adjacency
        testable = False
        for x in names:
            for y in sorted(adjacency[x], key=idx.__getitem__):
                if y not in adjacency[x]:
                    continue
                candidates = sorted(frozen[x] - {y}, key=idx.__getitem__)
                if len(candidates) < level:
                    continue
                testable = True
                for z in combinations(candidates, level):
                    n_tests += 1
                    result = test(x, y, z)
                    if result.independent:
                        adjacency[x].discard(y)
                        adjacency[y].discard(x)
                        sepsets[frozenset((x, y))] = tuple(z)
                        logger.debug(f"Removed {x} -- {y} given {list(z)} (p={result.p_value:.4g})")
                        break
        if not testable:
            break
        level += 1

    skeleton = Skeleton(tuple(names), adjacency, sepsets, n_tests, max_level=max(0, level - 1))
    logger.info(f"PC skeleton: {len(skeleton.edges)} edges after {n_tests} CI tests "
                f"(max level {skeleton.max_level})")
    return skeleton


# === Orientation ===

def _orient(graph: PartiallyDirectedGraph, a: str, b: str, reason: str) -> bool:
    if graph.is_directed(a, b):
        return False
    if graph.is_directed(b, a):
        logger.warning(f"{reason}: conflicting orientation for {a} -> {b}, keeping {b} -> {a}")
        return False
    if not graph.orient(a, b):
        logger.warning(f"{reason}: orienting {a} -> {b} would create a directed cycle, left undirected")
        return False
    logger.debug(f"{reason}: oriented {a} -> {b}")
    return True


def orient_v_structures(skeleton: Skeleton, graph: PartiallyDirectedGraph) -> int:
    """Orient x -> y <- z for every unshielded triple whose middle node is not
    in the separating set of its endpoints."""
    idx = {n: i for i, n in enumerate(skeleton.variables)}
    count = 0
    for y in skeleton.variables:
        neighbours = sorted(skeleton.adjacency[y], key=idx.__getitem__)
        for x, z in combinations(neighbours, 2):
            if skeleton.is_adjacent(x, z):
                continue
            sep = skeleton.sepset(x, z)
            if sep is None or y in sep:
                continue
            count += _orient(graph, x, y, "v-structure")
            count += _orient(graph, z, y, "v-structure")
    return count


def _meek_rule(graph: PartiallyDirectedGraph, a: str, b: str) -> Optional[str]:
    """Name of the first Meek rule that forces a -- b into a -> b, if any."""
    # R1: c -> a -- b, c and b non-adjacent
    for c in graph.parents(a):
        if c != b and not graph.is_adjacent(c, b):
            return "R1"
    # R2: a -> c -> b
    for c in graph.children(a):
        if graph.is_directed(c, b):
            return "R2"
    # R3: a -- c -> b, a -- d -> b, c and d non-adjacent
    cands = sorted(c for c in graph.undirected_neighbors(a) if c != b and graph.is_directed(c, b))
    for c, d in combinations(cands, 2):
        if not graph.is_adjacent(c, d):
            return "R3"
    # R4: a -- d -> c -> b, a adjacent to c, d and b non-adjacent
    for c in graph.parents(b):
        if c == a or not graph.is_adjacent(a, c):
            continue
        for d in graph.parents(c):
            if d != b and graph.is_undirected(a, d) and not graph.is_adjacent(d, b):
                return "R4"
    return None


def apply_meek_rules(graph: PartiallyDirectedGraph) -> int:
    """Apply R1-R4 until a fixed point; returns the number of oriented edges."""
    count = 0
    changed = True
    while changed:
        changed = False
        for u, v in graph.undirected_edges:
            for a, b in ((u, v), (v, u)):
                if not graph.is_undirected(a, b):
                    break
                rule = _meek_rule(graph, a, b)
                if rule and _orient(graph, a, b, f"Meek {rule}"):
                    count += 1
                    changed = True
                    break
    return count


def orient_edges(skeleton: Skeleton) -> PartiallyDirectedGraph:
    """PC phases 2-3: colliders, then Meek propagation."""
    graph = PartiallyDirectedGraph(skeleton.variables, undirected=skeleton.edges)
    n_colliders = orient_v_structures(skeleton, graph)
    n_meek = apply_meek_rules(graph)
    logger.info(f"PC orientation: {n_colliders} edges from v-structures, {n_meek} from Meek rules, "
                f"{len(graph.undirected_edges)} left undirected")
    return graph


@dataclass
class PCResult:
    graph: PartiallyDirectedGraph
    n_tests: int
    max_level: int
    runtime: float
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        params = dict(self.params, n_tests=self.n_tests, max_level=self.max_level)
        return self.graph.to_dict("PC", params, self.runtime)


def pc(dataset: Dataset, alpha: float = DEFAULT_ALPHA, max_cond_size: Optional[int] = None,
       stable: bool = False) -> PCResult:
    """Run the PC algorithm on the continuous variables of ``dataset``."""
    t0 = time.time()
    skeleton = build_skeleton(dataset, alpha=alpha, max_cond_size=max_cond_size, stable=stable)
    graph = orient_edges(skeleton)
    return PCResult(
        graph=graph,
        n_tests=skeleton.n_tests,
        max_level=skeleton.max_level,
        runtime=time.time() - t0,
        params={"alpha": alpha, "max_cond_size": max_cond_size, "stable": stable,
                "indep_test": "fisherz"},
    )
