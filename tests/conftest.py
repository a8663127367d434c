"""
Shared fixtures: small datasets whose (in)dependencies are exact.

Noise terms built with ``orthogonal_noise`` have zero sample correlation with
the given columns, so the corresponding partial correlations are zero up to
rounding and the CI tests and scores give the same answer for every seed.
"""

import numpy as np
import pandas as pd
import pytest

from causal_discovery import Dataset


def orthogonal_noise(rng, n, *columns, scale=1.0):
    """Gaussian noise with zero sample covariance with every column (and the intercept)."""
    e = rng.normal(0.0, scale, n)
    design = np.column_stack([np.ones(n), *columns])
    beta, *_ = np.linalg.lstsq(design, e, rcond=None)
    return e - design @ beta


@pytest.fixture
def orthogonal():
    return orthogonal_noise


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture
def chain_dataset(rng):
    """X -> Y -> Z with X independent of Z given Y exactly."""
    n = 2000
    x = rng.normal(0, 1, n)
    y = x + rng.normal(0, 1, n)
    z = y + orthogonal_noise(rng, n, x, y)
    return Dataset.from_frame(pd.DataFrame({"X": x, "Y": y, "Z": z}))


@pytest.fixture
def collider_dataset(rng):
    """X -> Z <- Y, Z -> W, with X independent of Y and W independent of X, Y given Z."""
    n = 2000
    x = rng.normal(0, 1, n)
    y = orthogonal_noise(rng, n, x)
    y = y / y.std()
    z = x + y + rng.normal(0, 1, n)
    w = z + orthogonal_noise(rng, n, x, y, z)
    return Dataset.from_frame(pd.DataFrame({"X": x, "Y": y, "Z": z, "W": w}))


@pytest.fixture
def linear_pair():
    """Y = 2X + small noise."""
    gen = np.random.default_rng(11)
    n = 200
    x = gen.normal(0, 1, n)
    y = 2.0 * x + gen.normal(0, 0.01, n)
    return Dataset.from_frame(pd.DataFrame({"X": x, "Y": y}))


@pytest.fixture
def mixed_frame():
    gen = np.random.default_rng(3)
    n = 400
    x = gen.normal(0, 1, n)
    group = np.where(x + gen.normal(0, 0.5, n) > 0, "high", "low")
    y = np.where(group == "high", 2.0, -1.0) + gen.normal(0, 1, n)
    season = gen.choice(["Spring", "Summer", "Fall", "Winter"], n)
    return pd.DataFrame({"x": x, "group": group, "y": y, "season": season})


@pytest.fixture
def mixed_dataset(mixed_frame):
    return Dataset.from_frame(mixed_frame)
