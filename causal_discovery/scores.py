# causal_discovery/scores.py
"""
Decomposable BIC scores for mixed continuous/categorical data.

    BIC = -2 * logLik + k * log(n)        (lower is better)

The variant is chosen from the kinds of the node and of its parents through a
lookup table, never by inspecting column values:

- bic-g  : continuous node, continuous parents (linear regression);
- bic-cg : continuous node with categorical parents (one regression per
           configuration of the categorical parents), or categorical node
           with continuous parents (Gaussian discriminant per configuration);
- bic-d  : categorical node, categorical parents (conditional frequency tables).

All Gaussian likelihoods use the full -2logL = n*log(2*pi*sigma^2) + n, i.e.
n*log(sigma^2) plus a constant that depends only on the node, so deltas between
parent sets of the same node are unaffected and the variants stay comparable.
"""

import logging
import math
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Sequence, Tuple

import numpy as np
from sklearn.discriminant_analysis import LinearDiscriminantAnalysis

from .dataset import Dataset, VariableKind
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

_LOG_2PI = math.log(2.0 * math.pi)
# Residual variance floor, relative to the node's marginal variance
_RELATIVE_VARIANCE_FLOOR = 1e-8
_ABSOLUTE_VARIANCE_FLOOR = 1e-12


class ScoreVariant(str, Enum):
    GAUSSIAN = "bic-g"
    CONDITIONAL_GAUSSIAN = "bic-cg"
    DISCRETE = "bic-d"


# (node kind, has continuous parents, has categorical parents) -> variant
_VARIANTS: Dict[Tuple[VariableKind, bool, bool], ScoreVariant] = {
    (VariableKind.CONTINUOUS, False, False): ScoreVariant.GAUSSIAN,
    (VariableKind.CONTINUOUS, True, False): ScoreVariant.GAUSSIAN,
    (VariableKind.CONTINUOUS, False, True): ScoreVariant.CONDITIONAL_GAUSSIAN,
    (VariableKind.CONTINUOUS, True, True): ScoreVariant.CONDITIONAL_GAUSSIAN,
    (VariableKind.CATEGORICAL, False, False): ScoreVariant.DISCRETE,
    (VariableKind.CATEGORICAL, False, True): ScoreVariant.DISCRETE,
    (VariableKind.CATEGORICAL, True, False): ScoreVariant.CONDITIONAL_GAUSSIAN,
    (VariableKind.CATEGORICAL, True, True): ScoreVariant.CONDITIONAL_GAUSSIAN,
}


def _split_parents(parents: Sequence[str], dataset: Dataset) -> Tuple[list, list]:
    cont = [p for p in parents if dataset.variable(p).is_continuous]
    cat = [p for p in parents if not dataset.variable(p).is_continuous]
    return cont, cat


def score_variant(node: str, parents: Sequence[str], dataset: Dataset) -> ScoreVariant:
    """Which BIC variant scores ``node`` given ``parents``."""
    cont, cat = _split_parents(parents, dataset)
    return _VARIANTS[(dataset.kind(node), bool(cont), bool(cat))]


def _configurations(cat_parents: Sequence[str], dataset: Dataset) -> Tuple[Optional[np.ndarray], int]:
    """Row-wise configuration index of the categorical parents and the number
    of possible configurations (product of level counts)."""
    if not cat_parents:
        return None, 1
    dims = [max(1, dataset.variable(p).n_levels) for p in cat_parents]
    codes = [dataset.values(p) for p in cat_parents]
    return np.ravel_multi_index(codes, dims), int(np.prod(dims))


def _groups(configs: Optional[np.ndarray], n: int) -> Iterable[np.ndarray]:
    if configs is None:
        yield np.arange(n)
        return
    order = np.argsort(configs, kind="stable")
    boundaries = np.flatnonzero(np.diff(configs[order])) + 1
    for rows in np.split(order, boundaries):
        yield rows


def _variance_floor(y: np.ndarray) -> float:
    return max(_ABSOLUTE_VARIANCE_FLOOR, _RELATIVE_VARIANCE_FLOOR * float(np.var(y)))


def _residual_ss(y: np.ndarray, X: np.ndarray) -> float:
    """Residual sum of squares of a least-squares regression of y on X (with intercept)."""
    n = y.shape[0]
    design = np.column_stack([np.ones(n), X]) if X.shape[1] else np.ones((n, 1))
    beta, *_ = np.linalg.lstsq(design, y, rcond=None)
    resid = y - design @ beta
    return float(resid @ resid)


def _gaussian_neg2ll(n: int, rss: float, sigma2: float) -> float:
    """-2 log-likelihood of n Gaussian residuals with sum of squares ``rss`` and variance ``sigma2``."""
    return n * (_LOG_2PI + math.log(sigma2)) + rss / sigma2


def _continuous_node_bic(node: str, cont: Sequence[str], cat: Sequence[str], dataset: Dataset) -> float:
    y = dataset.values(node)
    X = dataset.matrix(cont)
    n = dataset.n_samples
    configs, n_configs = _configurations(cat, dataset)
    floor = _variance_floor(y)
    n_coef = len(cont) + 1

    fits = [(rows.size, _residual_ss(y[rows], X[rows])) for rows in _groups(configs, n)]
    # A configuration with no residual degrees of freedom fits its rows exactly;
    # its variance comes from the pooled within-configuration residuals instead
    full = [(size, rss) for size, rss in fits if size > n_coef]
    pooled = floor
    if len(full) < len(fits):
        if full:
            pooled = sum(rss for _, rss in full) / sum(size for size, _ in full)
        else:
            pooled = float(np.var(y))
        logger.warning(
            f"{node}: {len(fits) - len(full)} parent configuration(s) have at most {n_coef} rows"
            f", scored with the pooled variance {pooled:.3g}"
        )
        pooled = max(pooled, floor)

    neg2ll = 0.0
    for size, rss in fits:
        if size > n_coef:
            sigma2 = rss / size
            if sigma2 < floor:
                logger.warning(f"{node}: residual variance {sigma2:.3g} floored at {floor:.3g} (n={size})")
                sigma2 = floor
        else:
            sigma2 = pooled
        neg2ll += _gaussian_neg2ll(size, rss, sigma2)

    k = n_configs * (len(cont) + 2)
    return neg2ll + k * math.log(n)


def _discrete_bic(node: str, cont: Sequence[str], cat: Sequence[str], dataset: Dataset) -> float:
    y = dataset.values(node)
    n_levels = max(1, dataset.variable(node).n_levels)
    n = dataset.n_samples
    configs, n_configs = _configurations(cat, dataset)
    if configs is None:
        configs = np.zeros(n, dtype=np.int64)

    table = np.bincount(configs * n_levels + y, minlength=n_configs * n_levels)
    table = table.reshape(n_configs, n_levels).astype(float)
    totals = table.sum(axis=1, keepdims=True)
    with np.errstate(divide="ignore", invalid="ignore"):
        terms = np.where(table > 0, table * np.log(table / totals), 0.0)
    loglik = float(terms.sum())

    k = (n_levels - 1) * n_configs
    return -2.0 * loglik + k * math.log(n)


def _discriminant_loglik(y: np.ndarray, X: np.ndarray) -> float:
    """Log-likelihood of categorical y given continuous X under a Gaussian
    discriminant model (class-specific means, shared covariance)."""
    classes, counts = np.unique(y, return_counts=True)
    if classes.size < 2:
        return 0.0
    marginal = float(np.sum(counts * np.log(counts / counts.sum())))
    if y.shape[0] <= classes.size:
        # No within-class degrees of freedom left for a covariance estimate
        return marginal
    try:
        lda = LinearDiscriminantAnalysis(solver="svd")
        lda.fit(X, y)
        log_proba = lda.predict_log_proba(X)
    except (ValueError, np.linalg.LinAlgError) as e:
        # Fall back to the marginal class frequencies: parents explain nothing
        logger.warning(f"Discriminant fit failed ({e}), scoring without continuous parents")
        return marginal
    idx = np.searchsorted(lda.classes_, y)
    picked = log_proba[np.arange(y.shape[0]), idx]
    return float(np.sum(np.maximum(picked, np.log(np.finfo(float).tiny))))


def _categorical_node_bic(node: str, cont: Sequence[str], cat: Sequence[str], dataset: Dataset) -> float:
    y = dataset.values(node)
    X = dataset.matrix(cont)
    n = dataset.n_samples
    n_levels = max(1, dataset.variable(node).n_levels)
    p = len(cont)
    configs, n_configs = _configurations(cat, dataset)

    loglik = 0.0
    for rows in _groups(configs, n):
        loglik += _discriminant_loglik(y[rows], X[rows])

    k = n_configs * ((n_levels - 1) + n_levels * p + p * (p + 1) // 2)
    return -2.0 * loglik + k * math.log(n)


_SCORERS: Dict[Tuple[VariableKind, ScoreVariant], Callable[..., float]] = {
    (VariableKind.CONTINUOUS, ScoreVariant.GAUSSIAN): _continuous_node_bic,
    (VariableKind.CONTINUOUS, ScoreVariant.CONDITIONAL_GAUSSIAN): _continuous_node_bic,
    (VariableKind.CATEGORICAL, ScoreVariant.CONDITIONAL_GAUSSIAN): _categorical_node_bic,
    (VariableKind.CATEGORICAL, ScoreVariant.DISCRETE): _discrete_bic,
}


def local_score(node: str, parents: Iterable[str], dataset: Dataset) -> float:
    """BIC of ``node`` given ``parents`` (lower is better).

    Raises:
        ConfigurationError: Unknown variables, or ``node`` among its own parents
    """
    parents = sorted(set(parents), key=dataset.index_of)
    if node in parents:
        raise ConfigurationError(f"Node '{node}' cannot be its own parent")
    if dataset.n_samples < 2:
        raise ConfigurationError(f"Cannot score with {dataset.n_samples} observations")
    cont, cat = _split_parents(parents, dataset)
    kind = dataset.kind(node)
    variant = _VARIANTS[(kind, bool(cont), bool(cat))]
    return _SCORERS[(kind, variant)](node, cont, cat, dataset)


class ScoreCache:
    """Memoised local scores for one dataset.

    Hill-climbing evaluates the same (node, parent set) pairs many times; a
    cache is owned by a single search and discarded with it.
    """

    def __init__(self, dataset: Dataset):
        self.dataset = dataset
        self._cache: Dict[Tuple[str, FrozenSet[str]], float] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._cache)

    def local_score(self, node: str, parents: Iterable[str]) -> float:
        key = (node, frozenset(parents))
        if key in self._cache:
            self.hits += 1
            return self._cache[key]
        self.misses += 1
        value = local_score(node, key[1], self.dataset)
        self._cache[key] = value
        return value


def network_score(graph, dataset: Dataset, cache: Optional[ScoreCache] = None) -> float:
    """Total BIC of a DAG: the sum of its nodes' local scores."""
    score = cache.local_score if cache is not None else (
        lambda node, parents: local_score(node, parents, dataset))
    return float(sum(score(node, graph.parents(node)) for node in graph.nodes))
