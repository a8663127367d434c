# examples/farm_analysis.py
"""
Structure learning on synthetic sow-farm records with domain constraints.
"""
import logging
from pathlib import Path

from causal_discovery import Dataset, load_config, run_analysis
from causal_discovery.synthetic_data import generate_farm_data

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(message)s')


def main():
    config = load_config(Path(__file__).with_name("farm_config.yaml"))

    # Loading and cleaning is the caller's job: drop incomplete rows first
    raw, meta = generate_farm_data(n_samples=1000, seed=42, weaned_per_sow=0.05, missing_prob=0.05)
    clean = raw.dropna().reset_index(drop=True)
    print(f"Removed {len(raw) - len(clean)} rows with missing values")

    dataset = Dataset.from_frame(clean, kinds=meta["kinds"])
    result = run_analysis(dataset, config, progress=True)

    print("\n=== Summary ===")
    for key, value in result.summary().items():
        print(f"  {key}: {value}")

    print("\n=== Hill-climbing arcs ===")
    for u, v in result.hill_climb.dag.edges:
        print(f"  {u} -> {v}")

    print("\n=== Strong relationships (strength > 0.5, direction > 0.5) ===")
    print(result.bootstrap.strong_edges(config.strength_threshold).to_string(index=False))


if __name__ == "__main__":
    main()
