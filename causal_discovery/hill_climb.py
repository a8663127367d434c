# causal_discovery/hill_climb.py
"""
Greedy hill-climbing over DAGs with a decomposable BIC score.

Each iteration enumerates every legal single-edge mutation (add, remove,
reverse), scores it from the local scores of the one or two nodes whose parent
sets change, and applies the best strict improvement. The search stops at a
local optimum: hill-climbing does not guarantee the globally best DAG, and
different starting graphs can end in different optima.

Ties between equally good mutations are broken by a fixed order: additions,
then removals, then reversals, each in lexicographic order of the variables'
positions in the dataset. Results are therefore reproducible.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .constraints import ConstraintSet
from .dataset import Dataset
from .errors import ConfigurationError
from .graph import DAG
from .scores import ScoreCache

logger = logging.getLogger(__name__)

ADD = "add"
REMOVE = "remove"
REVERSE = "reverse"

# Smallest score decrease accepted as an improvement
_MIN_IMPROVEMENT = 1e-6
# Gains closer than this are ties; the earlier mutation in enumeration order wins
_TIE_TOLERANCE = 1e-6

Mutation = Tuple[str, str, str]


def legal_mutations(dag: DAG, constraints: Optional[ConstraintSet] = None,
                    max_parents: Optional[int] = None) -> Iterator[Mutation]:
    """Every single-edge mutation that keeps ``dag`` acyclic and honours the
    constraints, in tie-break order.

    Yields:
        (operation, u, v) where operation is 'add', 'remove' or 'reverse' and
        u -> v is the edge added, removed or reversed
    """
    constraints = constraints or ConstraintSet()
    nodes = dag.nodes
    # Reachability is computed once per call; v reaching u rules out u -> v
    descendants = {n: dag.descendants(n) for n in nodes}

    for u in nodes:
        for v in nodes:
            if u == v or dag.is_adjacent(u, v) or not constraints.allows(u, v):
                continue
            if u in descendants[v]:
                continue
            if max_parents is not None and len(dag.parents(v)) >= max_parents:
                continue
            yield ADD, u, v

    edges = dag.edges
    for u, v in edges:
        if not constraints.is_required(u, v):
            yield REMOVE, u, v

    for u, v in edges:
        if constraints.is_required(u, v) or not constraints.allows(v, u):
            continue
        if max_parents is not None and len(dag.parents(u)) >= max_parents:
            continue
        if dag.can_reverse(u, v):
            yield REVERSE, u, v


def apply_mutation(dag: DAG, mutation: Mutation) -> None:
    op, u, v = mutation
    if op == ADD:
        dag.add_edge(u, v)
    elif op == REMOVE:
        dag.remove_edge(u, v)
    elif op == REVERSE:
        dag.reverse_edge(u, v)
    else:
        raise ValueError(f"Unknown mutation '{op}'")


def _score_gain(mutation: Mutation, dag: DAG, local: Dict[str, float], cache: ScoreCache) -> float:
    """Decrease of the total BIC if ``mutation`` were applied."""
    op, u, v = mutation
    parents_v = set(dag.parents(v))
    if op == ADD:
        return local[v] - cache.local_score(v, parents_v | {u})
    if op == REMOVE:
        return local[v] - cache.local_score(v, parents_v - {u})
    parents_u = set(dag.parents(u))
    return (local[v] - cache.local_score(v, parents_v - {u})
            + local[u] - cache.local_score(u, parents_u | {v}))


@dataclass
class HillClimbResult:
    """Learned DAG and search diagnostics.

    ``converged`` is False when the iteration cap or the timeout stopped the
    search before a local optimum; ``dag`` is still a valid acyclic graph.
    """
    dag: DAG
    score: float
    n_iterations: int
    converged: bool
    runtime: float
    history: List[Dict[str, Any]] = field(default_factory=list)
    params: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        params = dict(self.params, score=self.score, n_iterations=self.n_iterations,
                      converged=self.converged)
        return self.dag.to_dict("HC", params, self.runtime)


def _initial_dag(dataset: Dataset, constraints: ConstraintSet, initial_graph: Optional[DAG]) -> DAG:
    nodes = dataset.names
    if initial_graph is None:
        dag = DAG(nodes)
    else:
        if set(initial_graph.nodes) != set(nodes):
            raise ConfigurationError(
                f"Initial graph nodes {sorted(initial_graph.nodes)} do not match dataset variables {sorted(nodes)}"
            )
        dag = DAG(nodes, initial_graph.edges)
        bad = [e for e in dag.edges if not constraints.allows(*e)]
        if bad:
            raise ConfigurationError(f"Initial graph contains forbidden edges: {bad}")

    unknown = sorted({n for e in constraints.required for n in e if n not in dataset})
    if unknown:
        raise ConfigurationError(f"Required edges refer to unknown variables: {unknown}")
    for u, v in sorted(constraints.required):
        if dag.has_edge(u, v):
            continue
        if dag.has_edge(v, u):
            dag.remove_edge(v, u)
        if dag.creates_cycle(u, v):
            raise ConfigurationError(f"Required edge {u} -> {v} creates a cycle with the initial graph")
        dag.add_edge(u, v)
    return dag


def hill_climb(
    dataset: Dataset,
    constraints: Optional[ConstraintSet] = None,
    initial_graph: Optional[DAG] = None,
    max_iter: Optional[int] = None,
    max_parents: Optional[int] = None,
    timeout: Optional[float] = None,
) -> HillClimbResult:
    """Learn a DAG by greedy hill-climbing on BIC (lower is better).

    Args:
        dataset: Data view, continuous and/or categorical variables
        constraints: Forbidden/required edges; forbidden edges never appear in
            the output and required edges are never removed or reversed
        initial_graph: Starting DAG (empty by default)
        max_iter: Maximum number of applied mutations
        max_parents: Maximum in-degree of any node
        timeout: Wall-clock budget in seconds, checked between iterations

    Returns:
        HillClimbResult; ``converged`` tells whether a local optimum was reached

    Raises:
        ConfigurationError: Invalid initial graph or required edges, bad limits
    """
    if dataset.n_variables < 1:
        raise ConfigurationError("Hill-climbing needs at least one variable")
    if max_iter is not None and max_iter < 0:
        raise ConfigurationError(f"max_iter must be >= 0, got {max_iter}")
    if max_parents is not None and max_parents < 0:
        raise ConfigurationError(f"max_parents must be >= 0, got {max_parents}")

    t0 = time.time()
    deadline = time.monotonic() + timeout if timeout is not None else None
    constraints = constraints or ConstraintSet()
    dag = _initial_dag(dataset, constraints, initial_graph)

    cache = ScoreCache(dataset)
    local = {n: cache.local_score(n, dag.parents(n)) for n in dag.nodes}
    history: List[Dict[str, Any]] = []
    converged = False
    iterations = 0

    while True:
        if max_iter is not None and iterations >= max_iter:
            logger.warning(f"Hill-climbing stopped at iteration cap ({max_iter}) before a local optimum")
            break
        if deadline is not None and time.monotonic() >= deadline:
            logger.warning(f"Hill-climbing stopped by timeout ({timeout}s) after {iterations} iterations")
            break

        best: Optional[Mutation] = None
        best_gain = _MIN_IMPROVEMENT
        for mutation in legal_mutations(dag, constraints, max_parents):
            gain = _score_gain(mutation, dag, local, cache)
            threshold = best_gain if best is None else best_gain + _TIE_TOLERANCE
            if gain > threshold:
                best, best_gain = mutation, gain

        if best is None:
            converged = True
            break

        apply_mutation(dag, best)
        op, u, v = best
        for node in ((u, v) if op == REVERSE else (v,)):
            local[node] = cache.local_score(node, dag.parents(node))
        iterations += 1
        history.append({"operation": op, "from": u, "to": v, "delta": -best_gain})
        logger.debug(f"Iteration {iterations}: {op} {u} -> {v} (score -{best_gain:.4f})")

    score = float(sum(local.values()))
    runtime = time.time() - t0
    logger.info(f"Hill-climbing finished: {dag.n_edges} edges, BIC={score:.3f}, "
                f"{iterations} iterations, converged={converged}, "
                f"{len(cache)} local scores evaluated")
    return HillClimbResult(
        dag=dag,
        score=score,
        n_iterations=iterations,
        converged=converged,
        runtime=runtime,
        history=history,
        params={"score_func": "bic", "max_iter": max_iter, "max_parents": max_parents,
                "n_forbidden": len(constraints.forbidden), "n_required": len(constraints.required)},
    )
