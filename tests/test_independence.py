"""
Tests for the Fisher-z conditional-independence oracle.
"""

import math

import numpy as np
import pandas as pd
import pytest

from causal_discovery import ConfigurationError, Dataset, FisherZTest, fisher_z_test, partial_correlation


def _frame(**columns):
    return Dataset.from_frame(pd.DataFrame(columns))


class TestFisherZ:
    """Test independence decisions and p-values."""

    def test_uncorrelated_pair_is_independent(self, rng, orthogonal):
        x = rng.normal(0, 1, 500)
        ds = _frame(x=x, y=orthogonal(rng, 500, x))
        result = fisher_z_test("x", "y", [], ds)
        assert result.independent
        assert result.p_value == pytest.approx(1.0, abs=1e-6)

    def test_strong_dependence(self, linear_pair):
        result = fisher_z_test("X", "Y", [], linear_pair)
        assert not result.independent
        assert result.p_value < 1e-10

    def test_chain_independent_given_middle(self, chain_dataset):
        assert not fisher_z_test("X", "Z", [], chain_dataset).independent
        result = fisher_z_test("X", "Z", ["Y"], chain_dataset)
        assert result.independent
        assert result.p_value > 0.99

    def test_two_conditioning_variables(self, rng, orthogonal):
        n = 300
        z1 = rng.normal(0, 1, n)
        z2 = rng.normal(0, 1, n)
        x = z1 + z2 + rng.normal(0, 1, n)
        y = z1 - z2 + orthogonal(rng, n, x, z1, z2)
        ds = _frame(x=x, y=y, z1=z1, z2=z2)
        assert fisher_z_test("x", "y", ["z1", "z2"], ds).independent

    def test_statistic_matches_formula(self, rng):
        x = rng.normal(0, 1, 100)
        ds = _frame(x=x, y=0.2 * x + rng.normal(0, 1, 100))
        rho = ds.correlation_between("x", "y")
        expected = math.erfc(abs(math.atanh(rho)) * math.sqrt(100 - 3) / math.sqrt(2))
        result = fisher_z_test("x", "y", [], ds)
        assert result.p_value == pytest.approx(expected, abs=1e-12)

    def test_alpha_threshold(self, rng):
        x = rng.normal(0, 1, 50)
        y = 0.3 * x + rng.normal(0, 1, 50)
        ds = _frame(x=x, y=y)
        p = fisher_z_test("x", "y", [], ds).p_value
        assert fisher_z_test("x", "y", [], ds, alpha=p).independent
        assert not fisher_z_test("x", "y", [], ds, alpha=(p + 1) / 2).independent

    def test_deterministic(self, chain_dataset):
        a = fisher_z_test("X", "Z", ["Y"], chain_dataset)
        b = fisher_z_test("X", "Z", ["Y"], chain_dataset)
        assert a == b


class TestDegenerateTests:
    """Test that statistical edge cases report dependence instead of failing."""

    def test_insufficient_degrees_of_freedom(self):
        ds = _frame(x=[1.0, 2.0, 3.0, 4.0], y=[2.0, 1.0, 4.0, 3.0], z=[0.5, 0.1, 0.9, 0.3])
        result = fisher_z_test("x", "y", ["z"], ds)
        assert result.independent is False
        assert math.isnan(result.p_value)

    def test_constant_column(self):
        ds = _frame(x=[1.0, 2.0, 3.0, 4.0, 5.0, 6.0], y=[1.0] * 6)
        result = fisher_z_test("x", "y", [], ds)
        assert result.independent is False
        assert math.isnan(result.p_value)

    def test_perfect_correlation(self):
        x = np.arange(10, dtype=float)
        ds = _frame(x=x, y=3 * x + 1)
        result = fisher_z_test("x", "y", [], ds)
        assert result.independent is False
        assert result.p_value == pytest.approx(0.0, abs=1e-12)


class TestValidation:
    """Test argument validation of the oracle."""

    def test_categorical_variable_rejected(self, mixed_dataset):
        with pytest.raises(ConfigurationError, match="continuous"):
            fisher_z_test("x", "group", [], mixed_dataset)

    def test_overlapping_sets_rejected(self, chain_dataset):
        with pytest.raises(ConfigurationError, match="overlap"):
            fisher_z_test("X", "Y", ["X"], chain_dataset)

    def test_bad_alpha(self, chain_dataset):
        with pytest.raises(ConfigurationError, match="alpha"):
            FisherZTest(chain_dataset, alpha=1.5)

    def test_oracle_counts_tests(self, chain_dataset):
        oracle = FisherZTest(chain_dataset)
        oracle("X", "Y")
        oracle.test("X", "Z", ("Y",))
        assert oracle.n_tests == 2


class TestPartialCorrelation:
    """Test the partial correlation estimators against each other."""

    def test_recursive_formula_matches_residuals(self, chain_dataset):
        z = chain_dataset.matrix(["Z"])
        design = np.column_stack([np.ones(len(z)), z])
        res = []
        for name in ("X", "Y"):
            target = chain_dataset.values(name)
            beta, *_ = np.linalg.lstsq(design, target, rcond=None)
            res.append(target - design @ beta)
        expected = np.corrcoef(res[0], res[1])[0, 1]
        assert partial_correlation("X", "Y", ["Z"], chain_dataset) == pytest.approx(expected, abs=1e-10)

    def test_marginal(self, chain_dataset):
        assert partial_correlation("X", "Y", [], chain_dataset) == pytest.approx(
            chain_dataset.correlation_between("X", "Y"))
