# causal_discovery/dataset.py
"""
Immutable columnar view over a cleaned, fully observed table.

Every algorithm in the package reads data through a ``Dataset``: variables are
tagged with a ``VariableKind`` once, when the view is built, and never
re-inspected afterwards. Continuous columns are stored as float arrays,
categorical columns as integer codes into the variable's ordered levels.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class VariableKind(str, Enum):
    """Semantic kind of a variable"""
    CONTINUOUS = "continuous"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class Variable:
    """A named variable; categorical variables carry their ordered levels."""
    name: str
    kind: VariableKind
    levels: Tuple[Any, ...] = ()

    @property
    def is_continuous(self) -> bool:
        return self.kind is VariableKind.CONTINUOUS

    @property
    def n_levels(self) -> int:
        return len(self.levels)


KindSpec = Union[VariableKind, str]


def _coerce_kind(name: str, kind: KindSpec) -> VariableKind:
    try:
        return VariableKind(kind)
    except ValueError:
        raise ConfigurationError(
            f"Unknown kind '{kind}' for variable '{name}', expected one of "
            f"{[k.value for k in VariableKind]}"
        ) from None


def _infer_kind(series: pd.Series) -> VariableKind:
    """Numeric (non-boolean) columns are continuous, everything else categorical."""
    if pd.api.types.is_bool_dtype(series) or not pd.api.types.is_numeric_dtype(series):
        return VariableKind.CATEGORICAL
    return VariableKind.CONTINUOUS


class Dataset:
    """Read-only N x P table with a kind tag per column.

    Instances are never mutated after construction and can be shared freely
    between threads. Row resampling (``take``/``resample``) returns a new view
    that keeps the original level sets, so a level missing from a resample is
    still known to the scoring code.
    """

    def __init__(self, variables: Sequence[Variable], columns: Mapping[str, np.ndarray]):
        names = [v.name for v in variables]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"Duplicate variable names: {names}")
        missing = [n for n in names if n not in columns]
        if missing:
            raise ConfigurationError(f"No column data for variables: {missing}")

        lengths = {len(columns[n]) for n in names}
        if len(lengths) > 1:
            raise ConfigurationError(f"Columns have different lengths: {sorted(lengths)}")

        self._variables: Dict[str, Variable] = {v.name: v for v in variables}
        self._order: Tuple[str, ...] = tuple(names)
        self._index: Dict[str, int] = {n: i for i, n in enumerate(names)}
        self._columns: Dict[str, np.ndarray] = {}
        for var in variables:
            dtype = float if var.is_continuous else np.int64
            col = np.array(columns[var.name], dtype=dtype, copy=True)
            col.flags.writeable = False
            self._columns[var.name] = col
        self._n = lengths.pop() if lengths else 0
        self._corr: Optional[np.ndarray] = None

    # === Construction ===

    @classmethod
    def from_frame(cls, df: pd.DataFrame, kinds: Optional[Mapping[str, KindSpec]] = None) -> "Dataset":
        """Build a view from a cleaned DataFrame.

        Args:
            df: Table without missing values
            kinds: Optional mapping column -> kind; unlisted columns are inferred
                from their dtype

        Returns:
            Dataset over all columns of ``df`` in column order

        Raises:
            ConfigurationError: On missing values, unknown columns in ``kinds`` or
                non-numeric continuous columns
        """
        kinds = dict(kinds or {})
        unknown = [k for k in kinds if k not in df.columns]
        if unknown:
            raise ConfigurationError(f"Kinds given for unknown columns: {unknown}")

        na_cols = [str(c) for c in df.columns if df[c].isna().any()]
        if na_cols:
            raise ConfigurationError(
                f"Columns contain missing values (drop incomplete rows first): {na_cols}"
            )

        variables: List[Variable] = []
        columns: Dict[str, np.ndarray] = {}
        for col in df.columns:
            name = str(col)
            series = df[col]
            kind = _coerce_kind(name, kinds[col]) if col in kinds else _infer_kind(series)
            if kind is VariableKind.CONTINUOUS:
                if not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series):
                    raise ConfigurationError(f"Continuous variable '{name}' is not numeric")
                variables.append(Variable(name, kind))
                columns[name] = series.to_numpy(dtype=float)
            else:
                cat = pd.Categorical(series)
                variables.append(Variable(name, kind, tuple(cat.categories.tolist())))
                columns[name] = np.asarray(cat.codes, dtype=np.int64)

        logger.debug(f"Dataset view built: {len(df)} rows x {len(variables)} variables")
        return cls(variables, columns)

    # === Accessors ===

    @property
    def names(self) -> Tuple[str, ...]:
        return self._order

    @property
    def variables(self) -> Tuple[Variable, ...]:
        return tuple(self._variables[n] for n in self._order)

    @property
    def n_samples(self) -> int:
        return self._n

    @property
    def n_variables(self) -> int:
        return len(self._order)

    @property
    def continuous_names(self) -> Tuple[str, ...]:
        return tuple(n for n in self._order if self._variables[n].is_continuous)

    @property
    def categorical_names(self) -> Tuple[str, ...]:
        return tuple(n for n in self._order if not self._variables[n].is_continuous)

    def __contains__(self, name: object) -> bool:
        return name in self._variables

    def __len__(self) -> int:
        return self._n

    def __repr__(self) -> str:
        return (f"Dataset(n_samples={self._n}, continuous={len(self.continuous_names)}, "
                f"categorical={len(self.categorical_names)})")

    def variable(self, name: str) -> Variable:
        try:
            return self._variables[name]
        except KeyError:
            raise ConfigurationError(f"Unknown variable '{name}'") from None

    def kind(self, name: str) -> VariableKind:
        return self.variable(name).kind

    def index_of(self, name: str) -> int:
        self.variable(name)
        return self._index[name]

    def values(self, name: str) -> np.ndarray:
        """Float values for continuous variables, integer level codes for categorical ones."""
        self.variable(name)
        return self._columns[name]

    def matrix(self, names: Iterable[str]) -> np.ndarray:
        """(n_samples, len(names)) float matrix of continuous columns."""
        names = list(names)
        self._require_continuous(names)
        if not names:
            return np.empty((self._n, 0))
        return np.column_stack([self._columns[n] for n in names])

    def _require_continuous(self, names: Iterable[str]) -> None:
        bad = [n for n in names if not self.variable(n).is_continuous]
        if bad:
            raise ConfigurationError(f"Variables are not continuous: {bad}")

    # === Second moments ===

    def covariance(self, names: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Sample covariance matrix of continuous variables (all by default)."""
        names = list(self.continuous_names if names is None else names)
        cov = np.atleast_2d(np.cov(self.matrix(names), rowvar=False))
        return pd.DataFrame(cov, index=names, columns=names)

    def correlation(self, names: Optional[Sequence[str]] = None) -> pd.DataFrame:
        """Pearson correlation matrix of continuous variables (all by default)."""
        names = list(self.continuous_names if names is None else names)
        self._require_continuous(names)
        full = self._full_correlation()
        idx = [self.continuous_names.index(n) for n in names]
        return pd.DataFrame(full[np.ix_(idx, idx)], index=names, columns=names)

    def correlation_between(self, x: str, y: str) -> float:
        cont = self.continuous_names
        self._require_continuous([x, y])
        return float(self._full_correlation()[cont.index(x), cont.index(y)])

    def _full_correlation(self) -> np.ndarray:
        # Derived and idempotent, so a racing recomputation is harmless
        if self._corr is None:
            cont = self.continuous_names
            if not cont:
                self._corr = np.empty((0, 0))
            else:
                with np.errstate(divide="ignore", invalid="ignore"):
                    self._corr = np.atleast_2d(np.corrcoef(self.matrix(cont), rowvar=False))
        return self._corr

    # === Derived views ===

    def subset(self, names: Sequence[str]) -> "Dataset":
        """View restricted to ``names`` (in the given order)."""
        variables = [self.variable(n) for n in names]
        return Dataset(variables, {n: self._columns[n] for n in names})

    def continuous_view(self) -> "Dataset":
        return self.subset(self.continuous_names)

    def take(self, rows: np.ndarray) -> "Dataset":
        """Rows selected by integer index (repeats allowed); levels are preserved."""
        rows = np.asarray(rows, dtype=np.int64)
        return Dataset(self.variables, {n: c[rows] for n, c in self._columns.items()})

    def resample(self, rng: np.random.Generator, n: Optional[int] = None) -> "Dataset":
        """Bootstrap resample of ``n`` rows (default: same size) drawn with replacement."""
        n = self._n if n is None else n
        return self.take(rng.integers(0, self._n, size=n))

    def degenerate_variables(self) -> List[str]:
        """Categorical variables with fewer than two observed levels and constant
        continuous variables."""
        out = []
        for name in self._order:
            col = self._columns[name]
            if self._variables[name].is_continuous:
                if col.size == 0 or np.ptp(col) == 0:
                    out.append(name)
            elif np.unique(col).size < 2:
                out.append(name)
        return out

    def to_frame(self) -> pd.DataFrame:
        """Back to a DataFrame; categorical columns decoded to their levels."""
        data = {}
        for var in self.variables:
            col = self._columns[var.name]
            if var.is_continuous:
                data[var.name] = col.copy()
            else:
                data[var.name] = pd.Categorical.from_codes(col, categories=list(var.levels))
        return pd.DataFrame(data, columns=list(self._order))
