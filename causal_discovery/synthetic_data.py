"""
Synthetic data with a known structure, for tests and examples.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

import networkx as nx
import numpy as np
import pandas as pd

from .graph import DAG


def simulate_linear_sem(
    dag: DAG,
    n_samples: int,
    rng: np.random.Generator,
    weights: Optional[Dict[Tuple[str, str], float]] = None,
    noise_scale: float = 1.0,
) -> Tuple[pd.DataFrame, Dict[Tuple[str, str], float]]:
    """Sample a linear Gaussian SEM over ``dag``.

    Each node is the weighted sum of its parents plus N(0, noise_scale^2)
    noise. Missing edge weights are drawn from [0.5, 1.5] with a random sign.

    Returns (df, weights); columns follow ``dag.nodes``.
    """
    weights = dict(weights or {})
    for edge in dag.edges:
        if edge not in weights:
            weights[edge] = float(rng.uniform(0.5, 1.5) * rng.choice([-1.0, 1.0]))

    noise = rng.normal(0.0, noise_scale, size=(n_samples, len(dag.nodes)))
    values: Dict[str, np.ndarray] = {}
    for node in dag.topological_order():
        col = noise[:, dag.index_of(node)].copy()
        for parent in dag.parents(node):
            col += weights[(parent, node)] * values[parent]
        values[node] = col

    return pd.DataFrame({n: values[n] for n in dag.nodes}), weights


def generate_er_synthetic(
    n_nodes: int = 8,
    edge_prob: float = 0.25,
    n_samples: int = 1500,
    seed: int = 42,
    n_categorical: int = 0,
    n_levels: int = 3,
) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """Random DAG plus linear-Gaussian data.

    The skeleton is an Erdos-Renyi graph from networkx; every edge points from
    the earlier to the later node of a random permutation, which keeps the
    graph acyclic. The last ``n_categorical`` columns are then cut into
    ``n_levels`` quantile bins, giving mixed data.

    Returns (df, meta); meta holds variables, true edges, topological order,
    the permutation and the kind of every column.
    """
    rng = np.random.default_rng(seed)
    names = [f"V{i}" for i in range(n_nodes)]

    skeleton = nx.gnp_random_graph(n_nodes, edge_prob, seed=seed, directed=False)
    rank = np.argsort(rng.permutation(n_nodes))
    dag = DAG(names, [(names[u], names[v]) if rank[u] < rank[v] else (names[v], names[u])
                      for u, v in skeleton.edges()])

    df, weights = simulate_linear_sem(dag, n_samples, rng)

    kinds = {c: "continuous" for c in names}
    for col in names[n_nodes - n_categorical:] if n_categorical else []:
        df[col] = pd.qcut(df[col], q=n_levels, labels=[f"L{k}" for k in range(n_levels)]).astype(str)
        kinds[col] = "categorical"

    meta = {
        "variables": names,
        "edges": [{"from": u, "to": v, "type": "->", "weight": weights[(u, v)]} for u, v in dag.edges],
        "order": dag.topological_order(),
        "perm": np.argsort(rank).tolist(),
        "kinds": kinds,
    }
    return df, meta


def generate_farm_data(
    n_samples: int = 1000,
    seed: int = 42,
    weaned_per_sow: float = 0.01,
    missing_prob: float = 0.0,
) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """Synthetic sow-farm records with known relationships.

    - previous_weaned increases with avg_sows (``weaned_per_sow`` per sow)
    - prev_pba increases with the previous lactation period
    - losses_born_alive depends on prev_sowlactpd, prev_pba and sow_age_first_mating

    Light hours, herd size, year, season and farm are exogenous. With
    ``missing_prob`` > 0 every column gets that share of missing values, as
    raw farm exports do; drop incomplete rows before building a Dataset.

    Returns (df, meta) with the true edges, the kind of every column and the
    exogenous variables.
    """
    rng = np.random.default_rng(seed)
    n = n_samples

    avg_sows = rng.normal(150, 30, n)
    prev_sowlactpd = rng.normal(21, 3, n)
    prev_pba = rng.poisson(12, n) + 0.2 * (prev_sowlactpd - prev_sowlactpd.mean())
    previous_weaned = rng.poisson(10, n) + weaned_per_sow * (avg_sows - avg_sows.mean())
    sow_age_first_mating = rng.normal(365, 50, n)

    losses = (
        0.05
        + 0.002 * (prev_sowlactpd - prev_sowlactpd.mean())
        - 0.001 * (prev_pba - prev_pba.mean())
        + 0.0005 * (sow_age_first_mating - sow_age_first_mating.mean())
        + rng.normal(0, 0.02, n)
    )

    df = pd.DataFrame({
        "avg_sows": avg_sows,
        "prev_sowlactpd": prev_sowlactpd,
        "prev_pba": prev_pba,
        "previous_weaned": previous_weaned,
        "sow_age_first_mating": sow_age_first_mating,
        "f_light_hr": rng.normal(14, 2, n),
        "ai_light_hr": rng.normal(14, 2, n),
        "company_farm": rng.choice([f"Farm_{i}" for i in range(1, 11)], n),
        "year": rng.choice(np.arange(2018, 2024), n).astype(str),
        "season": rng.choice(["Spring", "Summer", "Fall", "Winter"], n),
        "prev_pbd_cat": rng.choice(["Low", "Medium", "High"], n),
        "losses_born_alive": np.clip(losses, 0.0, 1.0),
    })

    if missing_prob > 0:
        for col in df.columns:
            idx = rng.choice(n, size=int(round(n * missing_prob)), replace=False)
            df.loc[idx, col] = np.nan

    categorical = ["company_farm", "year", "season", "prev_pbd_cat"]
    meta = {
        "variables": list(df.columns),
        "kinds": {c: ("categorical" if c in categorical else "continuous") for c in df.columns},
        "exogenous": ["avg_sows", "f_light_hr", "ai_light_hr", "company_farm", "year", "season"],
        "edges": [
            {"from": "avg_sows", "to": "previous_weaned", "type": "->"},
            {"from": "prev_sowlactpd", "to": "prev_pba", "type": "->"},
            {"from": "prev_sowlactpd", "to": "losses_born_alive", "type": "->"},
            {"from": "prev_pba", "to": "losses_born_alive", "type": "->"},
            {"from": "sow_age_first_mating", "to": "losses_born_alive", "type": "->"},
        ],
    }
    return df, meta
