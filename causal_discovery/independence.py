# causal_discovery/independence.py
"""
Conditional-independence oracle for continuous variables.

Gaussian partial-correlation test with Fisher's z-transform. Statistical edge
cases never abort a run: they return ``independent=False`` so that callers keep
the edge (conservative), and log a warning.
"""

import logging
import math
from typing import NamedTuple, Sequence

import numpy as np
from scipy import stats
from sklearn.linear_model import LinearRegression

from .dataset import Dataset
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ALPHA = 0.05


class CIResult(NamedTuple):
    independent: bool
    p_value: float


def _residuals(target: np.ndarray, conditioning: np.ndarray) -> np.ndarray:
    lr = LinearRegression()
    lr.fit(conditioning, target)
    return target - lr.predict(conditioning)


def partial_correlation(x: str, y: str, conditioning_set: Sequence[str], dataset: Dataset) -> float:
    """Partial correlation of ``x`` and ``y`` given ``conditioning_set``.

    Uses the marginal correlation for an empty set, the recursive formula for a
    single conditioning variable and residuals of linear regressions on the
    conditioning set otherwise. Returns NaN when the quantity is undefined
    (constant columns, perfectly explained residuals).
    """
    z = list(conditioning_set)
    if not z:
        return dataset.correlation_between(x, y)

    if len(z) == 1:
        r_xy = dataset.correlation_between(x, y)
        r_xz = dataset.correlation_between(x, z[0])
        r_yz = dataset.correlation_between(y, z[0])
        denom = (1.0 - r_xz ** 2) * (1.0 - r_yz ** 2)
        if not np.isfinite(denom) or denom <= 0:
            return float("nan")
        return float((r_xy - r_xz * r_yz) / math.sqrt(denom))

    Z = dataset.matrix(z)
    res_x = _residuals(dataset.values(x), Z)
    res_y = _residuals(dataset.values(y), Z)
    if np.std(res_x) == 0 or np.std(res_y) == 0:
        return float("nan")
    return float(np.corrcoef(res_x, res_y)[0, 1])


def fisher_z_test(x: str, y: str, conditioning_set: Sequence[str], dataset: Dataset,
                  alpha: float = DEFAULT_ALPHA) -> CIResult:
    """Test ``x`` _||_ ``y`` | ``conditioning_set``.

    Args:
        x, y: Continuous variable names
        conditioning_set: Continuous variable names, excluding ``x`` and ``y``
        dataset: Data view
        alpha: Significance level; independence is declared iff p >= alpha

    Returns:
        CIResult(independent, p_value). When the test cannot be carried out
        (n - |Z| - 3 <= 0, undefined correlation) the result is
        ``(False, nan)``: treat as dependent.
    """
    z = list(conditioning_set)
    if x == y or x in z or y in z:
        raise ConfigurationError(f"CI test variables overlap: x={x}, y={y}, Z={z}")
    for name in [x, y] + z:
        if not dataset.variable(name).is_continuous:
            raise ConfigurationError(f"Fisher-z test requires continuous variables, '{name}' is not")

    dof = dataset.n_samples - len(z) - 3
    if dof <= 0:
        logger.warning(f"CI test {x} _||_ {y} | {z}: insufficient degrees of freedom "
                       f"(n={dataset.n_samples}), assuming dependence")
        return CIResult(False, float("nan"))

    rho = partial_correlation(x, y, z, dataset)
    if not np.isfinite(rho):
        logger.warning(f"CI test {x} _||_ {y} | {z}: partial correlation undefined, assuming dependence")
        return CIResult(False, float("nan"))
    if abs(rho) >= 1.0:
        return CIResult(False, 0.0)

    statistic = abs(math.atanh(rho)) * math.sqrt(dof)
    p_value = float(2.0 * stats.norm.sf(statistic))
    logger.debug(f"CI test {x} _||_ {y} | {z}: rho={rho:.4f}, p={p_value:.4g}")
    return CIResult(p_value >= alpha, p_value)


class FisherZTest:
    """Fisher-z oracle bound to one dataset and significance level.

    Keeps a count of the tests performed, which the skeleton builder reports.
    """

    def __init__(self, dataset: Dataset, alpha: float = DEFAULT_ALPHA):
        if not 0.0 < alpha < 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1), got {alpha}")
        self.dataset = dataset
        self.alpha = alpha
        self.n_tests = 0

    def test(self, x: str, y: str, conditioning_set: Sequence[str] = ()) -> CIResult:
        self.n_tests += 1
        return fisher_z_test(x, y, conditioning_set, self.dataset, self.alpha)

    __call__ = test
