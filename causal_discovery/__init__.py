# causal_discovery/__init__.py
"""
Causal structure learning over mixed continuous/categorical data.

Key Components:
- Dataset: immutable columnar view with a kind tag per variable
- fisher_z_test: Gaussian partial-correlation CI test
- pc: skeleton discovery and orientation (PC algorithm)
- hill_climb: score-based DAG search with BIC and edge constraints
- build_constraints: exogeneity and temporal-order blacklists
- bootstrap_strength: edge strength/direction over resamples
- run_analysis: all of the above on one dataset
"""

from .bootstrap import EdgeStatistics, bootstrap_strength
from .config import EngineConfig, load_config
from .constraints import ConstraintSet, build_constraints, stages_from_partition
from .dataset import Dataset, Variable, VariableKind
from .errors import ConfigurationError, DegenerateDataError, StructureLearningError
from .graph import DAG, PartiallyDirectedGraph, normalize_graph_result, validate_graph_schema
from .hill_climb import HillClimbResult, hill_climb, legal_mutations
from .independence import CIResult, FisherZTest, fisher_z_test, partial_correlation
from .pc import PCResult, Skeleton, build_skeleton, orient_edges, pc
from .pipeline import AnalysisResult, run_analysis
from .scores import ScoreCache, ScoreVariant, local_score, network_score, score_variant

__all__ = [
    # Data
    "Dataset",
    "Variable",
    "VariableKind",

    # Errors
    "StructureLearningError",
    "ConfigurationError",
    "DegenerateDataError",

    # Graphs
    "DAG",
    "PartiallyDirectedGraph",
    "normalize_graph_result",
    "validate_graph_schema",

    # Algorithms
    "CIResult",
    "FisherZTest",
    "fisher_z_test",
    "partial_correlation",
    "Skeleton",
    "PCResult",
    "build_skeleton",
    "orient_edges",
    "pc",
    "ScoreCache",
    "ScoreVariant",
    "local_score",
    "network_score",
    "score_variant",
    "ConstraintSet",
    "build_constraints",
    "stages_from_partition",
    "HillClimbResult",
    "hill_climb",
    "legal_mutations",
    "EdgeStatistics",
    "bootstrap_strength",

    # Orchestration
    "EngineConfig",
    "load_config",
    "AnalysisResult",
    "run_analysis",
]
