# causal_discovery/constraints.py
"""
Domain knowledge as hard edge constraints.

Two declarative rule types are translated into forbidden directed edges
(a blacklist):

- exogeneity: nothing may point into an exogenous variable (x -> e is
  forbidden for every x != e; e -> x stays allowed);
- temporal order: variables are assigned to ordered stages and no variable
  may point into a variable of an earlier stage. Variables that share a
  stage may point at each other in either direction.

An optional whitelist of required edges can be attached. A ``ConstraintSet``
is built once and never mutated afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import networkx as nx

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

Edge = Tuple[str, str]

EXOGENOUS = "exogenous"
ENDOGENOUS = "endogenous"

ExogeneityRules = Union[Iterable[str], Iterable[Tuple[str, str]], Mapping[str, str]]
StageRules = Union[Mapping[str, int], Iterable[Tuple[str, int]]]


@dataclass(frozen=True)
class ConstraintSet:
    """Forbidden (blacklist) and required (whitelist) directed edges."""
    forbidden: FrozenSet[Edge] = frozenset()
    required: FrozenSet[Edge] = frozenset()

    def allows(self, u: str, v: str) -> bool:
        return (u, v) not in self.forbidden

    def is_required(self, u: str, v: str) -> bool:
        return (u, v) in self.required

    def __len__(self) -> int:
        return len(self.forbidden) + len(self.required)

    def to_dict(self) -> Dict[str, List[List[str]]]:
        return {
            "forbidden": [list(e) for e in sorted(self.forbidden)],
            "required": [list(e) for e in sorted(self.required)],
        }

    @classmethod
    def from_config(cls, config: Optional[Mapping[str, Any]], variables: Sequence[str]) -> "ConstraintSet":
        """Build from a ``constraints:`` configuration section.

        Recognised keys: ``exogenous`` (list of names or mapping name ->
        classification), ``stages`` (mapping name -> stage index, or a list of
        stages, each a list of names, earliest first), ``forbidden`` and
        ``required`` (lists of [from, to] pairs).
        """
        config = dict(config or {})
        unknown = set(config) - {"exogenous", "stages", "forbidden", "required"}
        if unknown:
            raise ConfigurationError(f"Unknown constraint keys: {sorted(unknown)}")

        stages = config.get("stages")
        if isinstance(stages, list):
            stages = stages_from_partition(stages)

        return build_constraints(
            variables,
            exogenous=config.get("exogenous") or (),
            stages=stages,
            required=[tuple(e) for e in config.get("required") or []],
            forbidden=[tuple(e) for e in config.get("forbidden") or []],
        )


def _check_known(names: Iterable[str], known: Set[str], what: str) -> None:
    unknown = sorted({n for n in names if n not in known})
    if unknown:
        raise ConfigurationError(f"Unknown variables in {what}: {unknown}")


def _parse_exogenous(rules: ExogeneityRules) -> List[str]:
    """Names declared exogenous, from bare names or (name, classification) pairs."""
    items = rules.items() if isinstance(rules, Mapping) else rules
    out: List[str] = []
    for item in items:
        if isinstance(item, str):
            name, cls = item, EXOGENOUS
        else:
            name, cls = item
        if cls not in (EXOGENOUS, ENDOGENOUS):
            raise ConfigurationError(
                f"Unknown classification '{cls}' for '{name}', expected '{EXOGENOUS}' or '{ENDOGENOUS}'"
            )
        if cls == EXOGENOUS and name not in out:
            out.append(name)
    return out


def _parse_stages(rules: Optional[StageRules]) -> Dict[str, int]:
    if rules is None:
        return {}
    items = rules.items() if isinstance(rules, Mapping) else rules
    stages: Dict[str, int] = {}
    for name, stage in items:
        if isinstance(stage, bool) or not isinstance(stage, int):
            raise ConfigurationError(f"Stage index for '{name}' must be an integer, got {stage!r}")
        if name in stages and stages[name] != stage:
            raise ConfigurationError(
                f"Variable '{name}' assigned to more than one stage: {stages[name]} and {stage}"
            )
        stages[name] = stage
    return stages


def stages_from_partition(partition: Sequence[Sequence[str]]) -> List[Tuple[str, int]]:
    """[(name, stage)] pairs from an ordered partition, earliest stage first."""
    return [(name, i) for i, stage in enumerate(partition) for name in stage]


def exogeneity_edges(variables: Sequence[str], exogenous: Iterable[str]) -> Set[Edge]:
    """Every edge x -> e for x != e and e exogenous."""
    return {(x, e) for e in exogenous for x in variables if x != e}


def temporal_edges(stages: Mapping[str, int]) -> Set[Edge]:
    """Every edge from a later stage into an earlier stage."""
    return {(u, v) for u, su in stages.items() for v, sv in stages.items() if su > sv}


def build_constraints(
    variables: Sequence[str],
    exogenous: ExogeneityRules = (),
    stages: Optional[StageRules] = None,
    required: Iterable[Edge] = (),
    forbidden: Iterable[Edge] = (),
) -> ConstraintSet:
    """Translate domain rules into a ConstraintSet.

    Args:
        variables: All variable names the constraints refer to
        exogenous: Exogenous variable names, or (name, classification) pairs /
            mapping with classification 'exogenous' or 'endogenous'
        stages: Mapping or (name, stage index) pairs; lower index = earlier
        required: Edges that must appear in the output graph
        forbidden: Extra edges to blacklist explicitly

    Returns:
        Frozen ConstraintSet

    Raises:
        ConfigurationError: A variable in two stages, an exogenous variable
            placed after the earliest stage, unknown names, self-loops,
            required edges that are forbidden or that form a cycle
    """
    known = set(variables)
    exog = _parse_exogenous(exogenous)
    stage_map = _parse_stages(stages)
    required = [tuple(e) for e in required]
    extra = [tuple(e) for e in forbidden]

    _check_known(exog, known, "exogeneity rules")
    _check_known(stage_map, known, "stage assignment")
    _check_known([n for e in required + extra for n in e], known, "edge lists")

    if stage_map:
        first = min(stage_map.values())
        late = sorted(e for e in exog if stage_map.get(e, first) > first)
        if late:
            raise ConfigurationError(
                f"Exogenous variables assigned to a stage after the earliest stage ({first}): "
                f"{[(e, stage_map[e]) for e in late]}"
            )

    for u, v in required + extra:
        if u == v:
            raise ConfigurationError(f"Self-loop in constraint edges: {u} -> {v}")

    blacklist = exogeneity_edges(variables, exog) | temporal_edges(stage_map) | set(extra)

    clash = sorted(set(required) & blacklist)
    if clash:
        raise ConfigurationError(f"Edges both required and forbidden: {clash}")
    if required:
        g = nx.DiGraph(required)
        if not nx.is_directed_acyclic_graph(g):
            raise ConfigurationError(f"Required edges form a cycle: {nx.find_cycle(g)}")

    logger.info(f"Constraint set: {len(blacklist)} forbidden edges "
                f"({len(exog)} exogenous variables, {len(stage_map)} staged variables), "
                f"{len(required)} required edges")
    return ConstraintSet(frozenset(blacklist), frozenset(required))
