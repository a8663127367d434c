"""
Tests for bootstrap edge strength and direction.
"""

import threading

import numpy as np
import pandas as pd
import pytest

import causal_discovery.bootstrap as bootstrap_module
from causal_discovery import (
    ConfigurationError,
    Dataset,
    DegenerateDataError,
    EdgeStatistics,
    bootstrap_strength,
    build_constraints,
    validate_graph_schema,
)


def _rare_level_dataset():
    gen = np.random.default_rng(4)
    n = 30
    x = gen.normal(0, 1, n)
    flag = np.array(["common"] * (n - 1) + ["rare"])
    return Dataset.from_frame(pd.DataFrame({"x": x, "y": x + gen.normal(0, 1, n), "flag": flag}))


class TestConvergence:
    """Test the statistics on a strong linear relationship."""

    def test_strong_linear_pair(self, linear_pair):
        stats = bootstrap_strength(linear_pair, trials=200, seed=0)
        assert stats.n_valid == 200
        assert stats.strength("X", "Y") > 0.95
        assert stats.direction("X", "Y") > 0.9
        assert stats.strength("Y", "X") == stats.strength("X", "Y")
        assert stats.direction("X", "Y") + stats.direction("Y", "X") == pytest.approx(1.0)

    def test_seeded_runs_agree(self, chain_dataset):
        a = bootstrap_strength(chain_dataset, trials=20, seed=3)
        b = bootstrap_strength(chain_dataset, trials=20, seed=3)
        assert a.counts == b.counts

    def test_parallel_matches_sequential(self, chain_dataset):
        sequential = bootstrap_strength(chain_dataset, trials=16, seed=5, n_jobs=1)
        parallel = bootstrap_strength(chain_dataset, trials=16, seed=5, n_jobs=4)
        assert sequential.counts == parallel.counts
        assert sequential.n_valid == parallel.n_valid

    def test_constraints_hold_in_every_trial(self, chain_dataset):
        constraints = build_constraints(chain_dataset.names, exogenous=["Z"])
        stats = bootstrap_strength(chain_dataset, constraints, trials=20, seed=1)
        assert stats.counts.get(("Y", "Z"), 0.0) == 0.0
        assert stats.counts.get(("X", "Z"), 0.0) == 0.0
        assert stats.strength("Y", "Z") == 1.0


class TestPCBootstrap:
    """Test bootstrapping the PC algorithm."""

    def test_undirected_edges_split_evenly(self, chain_dataset):
        stats = bootstrap_strength(chain_dataset, trials=10, algorithm="pc", seed=2)
        assert stats.variables == ("X", "Y", "Z")
        assert stats.strength("X", "Y") == 1.0
        assert stats.direction("X", "Y") == pytest.approx(0.5)
        assert stats.strength("X", "Z") < 0.5

    def test_rare_categorical_does_not_skip_trials(self):
        stats = bootstrap_strength(_rare_level_dataset(), trials=40, algorithm="pc", seed=0)
        assert stats.n_skipped == 0
        assert stats.n_valid == 40
        assert stats.variables == ("x", "y")

    def test_needs_two_continuous_variables(self, mixed_dataset):
        with pytest.raises(ConfigurationError, match="2 continuous"):
            bootstrap_strength(mixed_dataset.subset(["x", "group"]), algorithm="pc", trials=2)


class TestDegenerateResamples:
    """Test skipping of resamples in which a variable collapses."""

    def test_rare_level_trials_skipped(self):
        stats = bootstrap_strength(_rare_level_dataset(), trials=60, seed=8)
        assert stats.n_skipped > 0
        assert stats.n_valid > 0
        assert stats.n_valid + stats.n_skipped == 60
        assert all(0.0 <= stats.strength(u, v) <= 1.0 for u, v in stats.pairs())

    def test_all_trials_degenerate(self, chain_dataset, monkeypatch):
        def always_degenerate(sample, allowed):
            raise DegenerateDataError("collapsed")

        monkeypatch.setattr(bootstrap_module, "_check_resample", always_degenerate)
        with pytest.raises(DegenerateDataError, match="All 5"):
            bootstrap_strength(chain_dataset, trials=5, seed=0)

    def test_variable_constant_in_full_data_allowed(self):
        df = pd.DataFrame({"x": np.arange(20, dtype=float), "c": [1.0] * 20})
        stats = bootstrap_strength(Dataset.from_frame(df), trials=5, seed=0)
        assert stats.n_valid == 5


class TestCancellation:
    """Test cooperative cancellation between trials."""

    def test_cancelled_before_start(self, chain_dataset):
        event = threading.Event()
        event.set()
        stats = bootstrap_strength(chain_dataset, trials=10, seed=0, cancel_event=event)
        assert stats.cancelled
        assert stats.n_valid == 0
        assert stats.strength("X", "Y") == 0.0

    def test_cancelled_midway(self, chain_dataset, monkeypatch):
        event = threading.Event()
        learn = bootstrap_module._learn_edges
        calls = []

        def learn_then_cancel(*args, **kwargs):
            calls.append(1)
            if len(calls) == 3:
                event.set()
            return learn(*args, **kwargs)

        monkeypatch.setattr(bootstrap_module, "_learn_edges", learn_then_cancel)
        stats = bootstrap_strength(chain_dataset, trials=10, seed=0, cancel_event=event)
        assert stats.cancelled
        assert stats.n_valid == 3


class TestEdgeStatistics:
    """Test derived tables and the averaged network."""

    def _stats(self):
        counts = {("a", "b"): 9.0, ("b", "a"): 1.0, ("b", "c"): 3.0, ("c", "b"): 3.0,
                  ("c", "a"): 8.0, ("a", "d"): 2.0}
        return EdgeStatistics(("a", "b", "c", "d"), counts, n_trials=10, n_valid=10, n_skipped=0)

    def test_strength_and_direction(self):
        stats = self._stats()
        assert stats.strength("a", "b") == pytest.approx(1.0)
        assert stats.direction("a", "b") == pytest.approx(0.9)
        assert stats.strength("b", "c") == pytest.approx(0.6)
        assert stats.direction("c", "b") == pytest.approx(0.5)
        assert stats.strength("b", "d") == 0.0
        assert stats.direction("b", "d") == 0.0

    def test_table(self):
        table = self._stats().table()
        assert list(table.columns) == ["from", "to", "strength", "direction"]
        assert len(table) == 8

    def test_strong_edges(self):
        strong = self._stats().strong_edges(0.5)
        assert list(zip(strong["from"], strong["to"])) == [("a", "b"), ("c", "a")]

    def test_averaged_network_skips_cycles(self):
        counts = {("a", "b"): 10.0, ("b", "c"): 9.0, ("c", "a"): 8.0}
        stats = EdgeStatistics(("a", "b", "c"), counts, n_trials=10, n_valid=10, n_skipped=0)
        dag = stats.averaged_network(0.5)
        assert dag.edges == [("a", "b"), ("b", "c")]
        assert dag.is_acyclic()

    def test_to_dict(self):
        out = self._stats().to_dict(threshold=0.5)
        assert validate_graph_schema(out)
        assert [(e["from"], e["to"]) for e in out["graph"]["edges"]] == [("a", "b"), ("c", "a")]
        assert out["graph"]["edges"][0]["strength"] == pytest.approx(1.0)
        assert out["metadata"]["params"]["n_valid"] == 10


class TestValidation:
    """Test argument validation."""

    @pytest.mark.parametrize("kwargs", [{"trials": 0}, {"algorithm": "ges"}, {"n_jobs": 0}])
    def test_bad_arguments(self, chain_dataset, kwargs):
        with pytest.raises(ConfigurationError):
            bootstrap_strength(chain_dataset, **kwargs)
