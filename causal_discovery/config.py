# causal_discovery/config.py
"""
Engine settings, optionally read from a YAML file.

    alpha: 0.05            # CI test significance level (PC)
    max_cond_size: null    # largest PC conditioning set
    stable: false          # PC-stable skeleton
    max_iter: null         # hill-climbing iteration cap
    max_parents: null      # hill-climbing in-degree cap
    timeout: null          # hill-climbing wall-clock budget (seconds)
    trials: 200            # bootstrap resamples
    n_jobs: 1              # bootstrap worker threads
    seed: 0                # bootstrap seed
    strength_threshold: 0.5
    constraints:
      exogenous: [light_hours]
      stages: [[prev_PBA], [prev_sowlactpd], [previous_weaned]]
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Union

import yaml

from .constraints import ConstraintSet
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    alpha: float = 0.05
    max_cond_size: Optional[int] = None
    stable: bool = False
    max_iter: Optional[int] = None
    max_parents: Optional[int] = None
    timeout: Optional[float] = None
    trials: int = 200
    n_jobs: int = 1
    seed: Optional[int] = 0
    strength_threshold: float = 0.5
    constraints: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not 0.0 < self.alpha < 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1), got {self.alpha}")
        if self.trials < 1:
            raise ConfigurationError(f"trials must be >= 1, got {self.trials}")
        if not 0.0 <= self.strength_threshold < 1.0:
            raise ConfigurationError(f"strength_threshold must be in [0, 1), got {self.strength_threshold}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def build_constraints(self, variables: Sequence[str]) -> ConstraintSet:
        return ConstraintSet.from_config(self.constraints, variables)

    def pc_args(self) -> Dict[str, Any]:
        return {"alpha": self.alpha, "max_cond_size": self.max_cond_size, "stable": self.stable}

    def hill_climb_args(self) -> Dict[str, Any]:
        return {"max_iter": self.max_iter, "max_parents": self.max_parents, "timeout": self.timeout}


def load_config(config_path: Union[str, Path]) -> EngineConfig:
    """Load engine configuration from a YAML file."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if data is not None and not isinstance(data, dict):
        raise ConfigurationError(f"Config root must be a mapping, got {type(data).__name__}")
    logger.info(f"Loaded engine config from {config_path}")
    return EngineConfig.from_dict(data)
