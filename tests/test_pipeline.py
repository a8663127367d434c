"""
End-to-end tests: configuration loading and the full analysis on farm-like data.
"""

import numpy as np
import pandas as pd
import pytest

from causal_discovery import (
    ConfigurationError,
    Dataset,
    EngineConfig,
    load_config,
    run_analysis,
    validate_graph_schema,
)
from causal_discovery.synthetic_data import generate_farm_data


@pytest.fixture
def farm_dataset():
    """Herd size drives weaned piglets; light hours are exogenous and also matter."""
    gen = np.random.default_rng(2024)
    n = 1000
    avg_sows = gen.normal(150, 30, n)
    light_hours = gen.normal(14, 2, n)
    previous_weaned = 10 + 0.05 * (avg_sows - 150) + 0.3 * (light_hours - 14) + gen.normal(0, 1, n)
    df = pd.DataFrame({"avg_sows": avg_sows, "light_hours": light_hours, "previous_weaned": previous_weaned})
    return Dataset.from_frame(df)


class TestEndToEnd:
    """Test the full analysis on a small farm scenario."""

    def test_farm_scenario(self, farm_dataset):
        config = EngineConfig(trials=100, seed=1, constraints={"exogenous": ["light_hours"]})
        result = run_analysis(farm_dataset, config)

        dag = result.hill_climb.dag
        assert dag.parents("light_hours") == ()
        assert dag.is_acyclic()
        assert dag.has_edge("avg_sows", "previous_weaned")

        stats = result.bootstrap
        assert stats.n_valid == 100
        assert stats.counts.get(("avg_sows", "light_hours"), 0.0) == 0.0
        assert stats.counts.get(("previous_weaned", "light_hours"), 0.0) == 0.0
        assert stats.strength("avg_sows", "previous_weaned") > 0.9
        assert stats.direction("avg_sows", "previous_weaned") > 0.5
        assert stats.averaged_network(config.strength_threshold).is_acyclic()

        assert result.pc is not None
        assert not result.pc.graph.has_directed_cycle()

    def test_result_serialization(self, farm_dataset):
        config = EngineConfig(trials=10, seed=3, constraints={"exogenous": ["light_hours"]})
        out = run_analysis(farm_dataset, config).to_dict()
        for key in ("hill_climb", "pc", "bootstrap", "averaged_network"):
            assert validate_graph_schema(out[key])
        assert out["summary"]["n_samples"] == 1000
        assert out["summary"]["bootstrap_valid_trials"] == 10
        assert out["constraints"]["required"] == []
        assert all(e["to"] != "light_hours" for e in out["hill_climb"]["graph"]["edges"])
        assert {"from", "to", "strength", "direction"} <= set(out["strong_edges"][0])

    def test_without_bootstrap(self, farm_dataset):
        result = run_analysis(farm_dataset, EngineConfig(), bootstrap=False)
        assert result.bootstrap is None
        assert "strong_edges" not in result.summary()

    def test_pc_skipped_with_one_continuous_variable(self, mixed_dataset):
        result = run_analysis(mixed_dataset.subset(["x", "group", "season"]), bootstrap=False)
        assert result.pc is None
        assert result.summary()["pc_edges"] is None
        assert result.hill_climb.dag.is_acyclic()

    def test_generated_farm_records(self):
        raw, meta = generate_farm_data(n_samples=400, seed=1, weaned_per_sow=0.05, missing_prob=0.02)
        clean = raw.dropna().reset_index(drop=True)
        ds = Dataset.from_frame(clean, kinds=meta["kinds"])
        config = EngineConfig(trials=5, seed=0, max_parents=3,
                              constraints={"exogenous": meta["exogenous"]})
        result = run_analysis(ds, config)
        dag = result.hill_climb.dag
        for name in meta["exogenous"]:
            assert dag.parents(name) == ()
        assert result.bootstrap.n_valid + result.bootstrap.n_skipped == 5


class TestConfig:
    """Test engine configuration loading and validation."""

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "alpha: 0.01\n"
            "max_parents: 3\n"
            "trials: 50\n"
            "constraints:\n"
            "  exogenous: [light_hours]\n"
            "  stages: [[avg_sows], [previous_weaned]]\n"
        )
        config = load_config(path)
        assert config.alpha == 0.01
        assert config.trials == 50
        assert config.pc_args() == {"alpha": 0.01, "max_cond_size": None, "stable": False}
        assert config.hill_climb_args()["max_parents"] == 3

        cs = config.build_constraints(["avg_sows", "light_hours", "previous_weaned"])
        assert not cs.allows("avg_sows", "light_hours")
        assert not cs.allows("previous_weaned", "avg_sows")

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == EngineConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("alpha: [0.05\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path)

    def test_non_mapping_root(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Unknown configuration keys"):
            EngineConfig.from_dict({"alpah": 0.05})

    @pytest.mark.parametrize("kwargs", [{"alpha": 0.0}, {"trials": 0}, {"strength_threshold": 1.0}])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ConfigurationError):
            EngineConfig(**kwargs)

    def test_round_trip(self):
        config = EngineConfig(alpha=0.1, seed=7, constraints={"exogenous": ["a"]})
        assert EngineConfig.from_dict(config.to_dict()) == config
