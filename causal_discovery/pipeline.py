# causal_discovery/pipeline.py
"""
End-to-end structure learning on one cleaned dataset.

1. PC on the continuous variables (skipped with a warning if fewer than two)
2. Hill-climbing with BIC on all variables, under the domain constraints
3. Bootstrap strength/direction of every edge, strong-edge filter and the
   averaged (consensus) network

The result is a plain value object; rendering and report writing belong to
the caller.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .bootstrap import EdgeStatistics, bootstrap_strength
from .config import EngineConfig
from .constraints import ConstraintSet
from .dataset import Dataset
from .hill_climb import HillClimbResult, hill_climb
from .pc import PCResult, pc

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    config: EngineConfig
    constraints: ConstraintSet
    hill_climb: HillClimbResult
    pc: Optional[PCResult] = None
    bootstrap: Optional[EdgeStatistics] = None
    n_samples: int = 0
    n_continuous: int = 0
    n_categorical: int = 0

    def summary(self) -> Dict[str, Any]:
        """Counts and headline numbers for a report."""
        threshold = self.config.strength_threshold
        out: Dict[str, Any] = {
            "n_samples": self.n_samples,
            "n_variables": self.n_continuous + self.n_categorical,
            "n_continuous": self.n_continuous,
            "n_categorical": self.n_categorical,
            "n_forbidden_edges": len(self.constraints.forbidden),
            "n_required_edges": len(self.constraints.required),
            "hc_edges": self.hill_climb.dag.n_edges,
            "hc_score": self.hill_climb.score,
            "hc_converged": self.hill_climb.converged,
            "pc_edges": self.pc.graph.n_edges if self.pc is not None else None,
            "pc_undirected_edges": len(self.pc.graph.undirected_edges) if self.pc is not None else None,
        }
        if self.bootstrap is not None:
            out.update({
                "bootstrap_valid_trials": self.bootstrap.n_valid,
                "bootstrap_skipped_trials": self.bootstrap.n_skipped,
                "bootstrap_cancelled": self.bootstrap.cancelled,
                "strong_edges": len(self.bootstrap.strong_edges(threshold)),
                "strength_threshold": threshold,
            })
        return out

    def to_dict(self) -> Dict[str, Any]:
        threshold = self.config.strength_threshold
        out: Dict[str, Any] = {
            "summary": self.summary(),
            "config": self.config.to_dict(),
            "constraints": self.constraints.to_dict(),
            "hill_climb": self.hill_climb.to_dict(),
            "pc": self.pc.to_dict() if self.pc is not None else None,
            "bootstrap": None,
            "strong_edges": [],
            "averaged_network": None,
        }
        if self.bootstrap is not None:
            out["bootstrap"] = self.bootstrap.to_dict()
            out["strong_edges"] = self.bootstrap.strong_edges(threshold).to_dict("records")
            out["averaged_network"] = self.bootstrap.averaged_network(threshold).to_dict(
                "averaged-HC", {"threshold": threshold})
        return out


def run_analysis(
    dataset: Dataset,
    config: Optional[EngineConfig] = None,
    constraints: Optional[ConstraintSet] = None,
    bootstrap: bool = True,
    cancel_event: Optional[threading.Event] = None,
    progress: bool = False,
) -> AnalysisResult:
    """Run PC, hill-climbing and (optionally) the bootstrap on ``dataset``.

    Args:
        dataset: Cleaned data view
        config: Engine settings; defaults to ``EngineConfig()``
        constraints: Constraint set; built from ``config.constraints`` if None
        bootstrap: Whether to estimate edge strengths
        cancel_event: Forwarded to the bootstrap
        progress: Show a bootstrap progress bar

    Returns:
        AnalysisResult
    """
    config = config or EngineConfig()
    if constraints is None:
        constraints = config.build_constraints(dataset.names)
    logger.info(f"Structure learning on {dataset!r}")

    pc_result = None
    if len(dataset.continuous_names) >= 2:
        pc_result = pc(dataset, **config.pc_args())
    else:
        logger.warning(f"Insufficient continuous variables for PC (need at least 2, "
                       f"got {len(dataset.continuous_names)}), skipping")

    hc_result = hill_climb(dataset, constraints, **config.hill_climb_args())

    stats = None
    if bootstrap:
        stats = bootstrap_strength(
            dataset,
            constraints,
            trials=config.trials,
            seed=config.seed,
            n_jobs=config.n_jobs,
            cancel_event=cancel_event,
            progress=progress,
            **config.hill_climb_args(),
        )

    return AnalysisResult(
        config=config,
        constraints=constraints,
        hill_climb=hc_result,
        pc=pc_result,
        bootstrap=stats,
        n_samples=dataset.n_samples,
        n_continuous=len(dataset.continuous_names),
        n_categorical=len(dataset.categorical_names),
    )
