# causal_discovery/bootstrap.py
"""
Bootstrap estimation of edge strength and direction.

Every trial draws n rows with replacement, relearns the structure on the
resample with the same constraints, and reports its edge list. Aggregation:

- strength(u, v): fraction of valid trials in which u and v are adjacent,
  in either direction;
- direction(u, v): among those trials, the fraction in which the edge
  pointed u -> v.

Trials are independent. Each one gets its own child of a single
``numpy.random.SeedSequence``, so the statistics do not depend on how trials
are scheduled across worker threads. Resamples in which a variable
degenerates (a categorical variable collapses to one level, a continuous one
becomes constant) are skipped and counted, never treated as "no edges found".
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from tqdm import tqdm

from .constraints import ConstraintSet
from .dataset import Dataset
from .errors import ConfigurationError, DegenerateDataError
from .graph import DAG, normalize_graph_result
from .hill_climb import hill_climb
from .pc import pc

logger = logging.getLogger(__name__)

ALGORITHMS = ("hc", "pc")

# (from, to, weight); an undirected PC edge contributes 0.5 in each direction
WeightedEdge = Tuple[str, str, float]

_CANCELLED = object()


@dataclass
class EdgeStatistics:
    """Aggregated bootstrap counts; owned by the caller, never shared."""
    variables: Tuple[str, ...]
    counts: Dict[Tuple[str, str], float]
    n_trials: int
    n_valid: int
    n_skipped: int
    algorithm: str = "hc"
    cancelled: bool = False
    runtime: Optional[float] = None
    params: Dict[str, Any] = field(default_factory=dict)

    def _present(self, u: str, v: str) -> float:
        return self.counts.get((u, v), 0.0) + self.counts.get((v, u), 0.0)

    def strength(self, u: str, v: str) -> float:
        """Fraction of valid trials with u and v adjacent (symmetric)."""
        if self.n_valid == 0:
            return 0.0
        return self._present(u, v) / self.n_valid

    def direction(self, u: str, v: str) -> float:
        """Fraction of edge-present trials in which the edge pointed u -> v."""
        present = self._present(u, v)
        if present == 0:
            return 0.0
        return self.counts.get((u, v), 0.0) / present

    def pairs(self) -> List[Tuple[str, str]]:
        """Unordered pairs observed in at least one trial, in variable order."""
        idx = {n: i for i, n in enumerate(self.variables)}
        out = {(u, v) if idx[u] < idx[v] else (v, u) for (u, v), c in self.counts.items() if c > 0}
        return sorted(out, key=lambda e: (idx[e[0]], idx[e[1]]))

    def table(self) -> pd.DataFrame:
        """One row per ordered pair of every observed adjacency: from, to, strength, direction."""
        rows = []
        for u, v in self.pairs():
            for a, b in ((u, v), (v, u)):
                rows.append({"from": a, "to": b, "strength": self.strength(a, b),
                             "direction": self.direction(a, b)})
        return pd.DataFrame(rows, columns=["from", "to", "strength", "direction"])

    def strong_edges(self, threshold: float = 0.5, direction_threshold: float = 0.5) -> pd.DataFrame:
        """Edges with strength > threshold and direction > direction_threshold,
        strongest first."""
        tbl = self.table()
        strong = tbl[(tbl["strength"] > threshold) & (tbl["direction"] > direction_threshold)]
        return strong.sort_values(["strength", "direction"], ascending=False, kind="stable").reset_index(drop=True)

    def averaged_network(self, threshold: float = 0.5) -> DAG:
        """Consensus DAG: strong edges added strongest first, skipping any that
        would close a cycle."""
        dag = DAG(self.variables)
        for row in self.strong_edges(threshold).to_dict("records"):
            u, v = row["from"], row["to"]
            if dag.can_add(u, v):
                dag.add_edge(u, v)
            else:
                logger.info(f"Averaged network: skipped {u} -> {v} (strength {row['strength']:.2f}), "
                            f"would create a cycle")
        return dag

    def to_dict(self, threshold: Optional[float] = None) -> Dict[str, Any]:
        """Unified graph schema; every edge carries strength and direction.

        With ``threshold`` only strong edges are listed, otherwise every
        orientation observed at least once.
        """
        tbl = self.table() if threshold is None else self.strong_edges(threshold)
        edges = [{"from": r["from"], "to": r["to"], "type": "->",
                  "strength": r["strength"], "direction": r["direction"]}
                 for r in tbl.to_dict("records") if r["direction"] > 0]
        params = dict(self.params, n_trials=self.n_trials, n_valid=self.n_valid,
                      n_skipped=self.n_skipped, cancelled=self.cancelled, threshold=threshold)
        return normalize_graph_result(f"bootstrap-{self.algorithm.upper()}", self.variables, edges,
                                      params, self.runtime, graph_type="DAG")


def _check_resample(sample: Dataset, allowed: Sequence[str]) -> None:
    degenerate = [n for n in sample.degenerate_variables() if n not in allowed]
    if degenerate:
        raise DegenerateDataError(f"Resample degenerate in variables: {degenerate}")


def _learn_edges(sample: Dataset, constraints: ConstraintSet, algorithm: str,
                 algorithm_args: Dict[str, Any]) -> List[WeightedEdge]:
    if algorithm == "hc":
        result = hill_climb(sample, constraints, **algorithm_args)
        return [(u, v, 1.0) for u, v in result.dag.edges]
    graph = pc(sample, **algorithm_args).graph
    edges = [(u, v, 1.0) for u, v in graph.directed_edges]
    for u, v in graph.undirected_edges:
        edges += [(u, v, 0.5), (v, u, 0.5)]
    return edges


def bootstrap_strength(
    dataset: Dataset,
    constraints: Optional[ConstraintSet] = None,
    trials: int = 200,
    algorithm: str = "hc",
    seed: Optional[int] = None,
    n_jobs: int = 1,
    cancel_event: Optional[threading.Event] = None,
    progress: bool = False,
    **algorithm_args: Any,
) -> EdgeStatistics:
    """Estimate edge strength and direction over bootstrap resamples.

    Args:
        dataset: Data view (read-only, shared by all trials)
        constraints: Constraint set applied in every trial (hill-climbing only)
        trials: Number of resamples
        algorithm: 'hc' (hill-climbing) or 'pc'
        seed: Seed of the trial seed sequence
        n_jobs: Worker threads; -1 uses all CPUs
        cancel_event: Checked between trials; once set, remaining trials are
            not run and partial statistics are returned with ``cancelled=True``
        progress: Show a tqdm progress bar
        **algorithm_args: Passed to ``hill_climb`` or ``pc``

    Returns:
        EdgeStatistics over the valid trials

    Raises:
        ConfigurationError: Bad arguments
        DegenerateDataError: Every trial was skipped as degenerate
    """
    if trials < 1:
        raise ConfigurationError(f"trials must be >= 1, got {trials}")
    if algorithm not in ALGORITHMS:
        raise ConfigurationError(f"Unknown algorithm '{algorithm}', expected one of {ALGORITHMS}")
    if algorithm == "pc" and len(dataset.continuous_names) < 2:
        raise ConfigurationError("PC bootstrap needs at least 2 continuous variables")
    if algorithm == "pc" and constraints is not None and len(constraints):
        logger.warning("Constraints are ignored by the PC bootstrap")
    if n_jobs == -1:
        n_jobs = os.cpu_count() or 1
    if n_jobs < 1:
        raise ConfigurationError(f"n_jobs must be >= 1 or -1, got {n_jobs}")

    constraints = constraints or ConstraintSet()
    seeds = np.random.SeedSequence(seed).spawn(trials)
    # PC runs on the continuous variables only
    source = dataset.continuous_view() if algorithm == "pc" else dataset
    # Variables already constant in the full data do not invalidate a trial
    allowed = source.degenerate_variables()
    if allowed:
        logger.warning(f"Variables degenerate in the full dataset: {allowed}")

    def run_trial(i: int):
        if cancel_event is not None and cancel_event.is_set():
            return _CANCELLED
        sample = source.resample(np.random.default_rng(seeds[i]))
        try:
            _check_resample(sample, allowed)
        except DegenerateDataError as e:
            logger.debug(f"Bootstrap trial {i} skipped: {e}")
            return None
        return _learn_edges(sample, constraints, algorithm, algorithm_args)

    t0 = time.time()
    results: Dict[int, Any] = {}
    with tqdm(total=trials, desc=f"bootstrap-{algorithm}", disable=not progress) as bar:
        if n_jobs == 1:
            for i in range(trials):
                results[i] = run_trial(i)
                bar.update(1)
                if results[i] is _CANCELLED:
                    break
        else:
            with ThreadPoolExecutor(max_workers=n_jobs) as executor:
                futures = {i: executor.submit(run_trial, i) for i in range(trials)}
                for i, future in futures.items():
                    results[i] = future.result()
                    bar.update(1)

    counts: Dict[Tuple[str, str], float] = {}
    n_valid = n_skipped = 0
    cancelled = False
    for i in sorted(results):
        edges = results[i]
        if edges is _CANCELLED:
            cancelled = True
            continue
        if edges is None:
            n_skipped += 1
            continue
        n_valid += 1
        for u, v, w in edges:
            counts[(u, v)] = counts.get((u, v), 0.0) + w

    if n_valid == 0 and not cancelled:
        raise DegenerateDataError(f"All {trials} bootstrap trials were degenerate")
    if cancelled:
        logger.warning(f"Bootstrap cancelled after {n_valid + n_skipped} of {trials} trials")

    runtime = time.time() - t0
    logger.info(f"Bootstrap ({algorithm}): {n_valid} valid trials, {n_skipped} skipped, "
                f"{len(counts)} directed edges observed in {runtime:.1f}s")
    return EdgeStatistics(
        variables=dataset.continuous_names if algorithm == "pc" else dataset.names,
        counts=counts,
        n_trials=trials,
        n_valid=n_valid,
        n_skipped=n_skipped,
        algorithm=algorithm,
        cancelled=cancelled,
        runtime=runtime,
        params={"seed": seed, "n_jobs": n_jobs, **algorithm_args},
    )
