"""Sequence accepted recommendations into cycle-free implementation phases.

Dependencies here are discovered from unit output (registry effect rules and
each recommendation's ``affects`` list), so cycles are expected data rather
than a bug. Each cycle loses its lowest-priority edge and the break is
reported as a warning.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field

from loguru import logger

from dispatchkit.core.exceptions import RuntimeCycleWarning
from dispatchkit.services.orchestration.graph import depth_layers, find_cycle
from dispatchkit.services.orchestration.models import (
    BrokenEdge,
    DependencyEdge,
    ImplementationPhase,
    PhaseAction,
    Recommendation,
    UnitResult,
    action_id_for,
)
from dispatchkit.services.orchestration.registry import UnitRegistry


@dataclass
class SequencingOutcome:
    phases: list[ImplementationPhase] = field(default_factory=list)
    edges: list[DependencyEdge] = field(default_factory=list)  # kept after breaking
    broken_edges: list[BrokenEdge] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Node:
    action_id: str
    unit_id: str
    recommendation: Recommendation
    position: tuple[int, int]


class PhaseSequencer:
    """Builds the cross-unit dependency graph and phases it by depth."""

    def __init__(self, registry: UnitRegistry):
        self._registry = registry

    def build_edges(self, accepted: Sequence[tuple[str, Recommendation]]) -> list[DependencyEdge]:
        """Cross-unit edges between accepted recommendations, in node order."""
        nodes = self._nodes(accepted)
        rules = self._registry.effects
        edges: list[DependencyEdge] = []
        for src in nodes:
            for dst in nodes:
                if src.unit_id == dst.unit_id:
                    continue
                declared = any(
                    rule.matches(
                        src.unit_id, src.recommendation.field,
                        dst.unit_id, dst.recommendation.field,
                    )
                    for rule in rules
                )
                if not declared and dst.recommendation.field not in src.recommendation.affects:
                    continue
                edges.append(
                    DependencyEdge(
                        from_unit=src.unit_id,
                        to_unit=dst.unit_id,
                        trigger_recommendation=src.action_id,
                        affected_recommendation=dst.action_id,
                        priority_score=min(
                            self._level(src.recommendation), self._level(dst.recommendation)
                        ),
                    )
                )
        return edges

    def sequence(
        self,
        accepted: Sequence[tuple[str, Recommendation]],
        results: Iterable[UnitResult] = (),
        winners: Iterable[str] = (),
    ) -> SequencingOutcome:
        """Phase the accepted recommendations.

        Args:
            accepted: (unit_id, recommendation) pairs that survived resolution
            results: Unit results, used for tie-breaking by source confidence
            winners: Action ids that won a conflict

        Returns:
            SequencingOutcome; every edge of the discovered graph is either in
            ``edges`` or in ``broken_edges``
        """
        nodes = self._nodes(accepted)
        confidence = {r.unit_id: r.confidence for r in results}
        winner_ids = set(winners)
        outcome = SequencingOutcome()

        edges = self.build_edges(accepted)
        node_ids = [n.action_id for n in nodes]
        while True:
            successors: dict[str, list[str]] = {node_id: [] for node_id in node_ids}
            for edge in edges:
                successors[edge.trigger_recommendation].append(edge.affected_recommendation)
            cycle = find_cycle(node_ids, successors)
            if not cycle:
                break
            broken = self._break(cycle, edges, confidence)
            edges.remove(broken.edge)
            outcome.broken_edges.append(broken)
            warning = RuntimeCycleWarning(broken.edge.label, broken.rationale)
            logger.warning(str(warning))
            outcome.warnings.append(str(warning))

        outcome.edges = edges
        outcome.phases = self._phases(nodes, edges, winner_ids)
        logger.info(
            f"Sequenced {len(nodes)} action(s) into {len(outcome.phases)} phase(s); "
            f"{len(outcome.broken_edges)} edge(s) broken"
        )
        return outcome

    def _nodes(self, accepted: Sequence[tuple[str, Recommendation]]) -> list[_Node]:
        nodes = [
            _Node(
                action_id=action_id_for(unit_id, rec.field),
                unit_id=unit_id,
                recommendation=rec,
                position=(self._registry.declaration_index(unit_id), i),
            )
            for i, (unit_id, rec) in enumerate(accepted)
        ]
        return sorted(nodes, key=lambda n: n.position)

    def _level(self, recommendation: Recommendation) -> int:
        return self._registry.category_level(recommendation.category)

    def _break(
        self,
        cycle: list[tuple[str, str]],
        edges: list[DependencyEdge],
        confidence: Mapping[str, float],
    ) -> BrokenEdge:
        by_pair = {(e.trigger_recommendation, e.affected_recommendation): e for e in edges}
        candidates = [by_pair[pair] for pair in cycle]

        # Lowest priority, then lower source confidence, then latest-declared source
        victim = min(
            candidates,
            key=lambda e: (
                e.priority_score,
                confidence.get(e.from_unit, 0.0),
                -self._registry.declaration_index(e.from_unit),
            ),
        )
        rationale = f"lowest priority {victim.priority_score} in cycle " + " -> ".join(
            [cycle[0][0]] + [dst for _, dst in cycle]
        )
        tied = [
            e for e in candidates
            if e is not victim and e.priority_score == victim.priority_score
        ]
        if tied:
            victim_confidence = confidence.get(victim.from_unit, 0.0)
            if all(confidence.get(e.from_unit, 0.0) > victim_confidence for e in tied):
                rationale += (
                    f"; priority tie broken by lower source confidence "
                    f"{victim_confidence:.2f}"
                )
            else:
                rationale += (
                    f"; priority and source confidence {victim_confidence:.2f} tied, "
                    f"broken by latest-declared source unit '{victim.from_unit}'"
                )
        return BrokenEdge(edge=victim, rationale=rationale)

    def _phases(
        self,
        nodes: list[_Node],
        edges: list[DependencyEdge],
        winners: set[str],
    ) -> list[ImplementationPhase]:
        by_id = {n.action_id: n for n in nodes}
        pairs = [(e.trigger_recommendation, e.affected_recommendation) for e in edges]
        layers = depth_layers([n.action_id for n in nodes], pairs)

        phase_of: dict[str, int] = {}
        for number, layer in enumerate(layers, start=1):
            for action_id in layer:
                phase_of[action_id] = number

        predecessors: dict[str, list[str]] = {n.action_id: [] for n in nodes}
        for src, dst in pairs:
            predecessors[dst].append(src)

        phases: list[ImplementationPhase] = []
        for number, layer in enumerate(layers, start=1):
            ordered = sorted(
                (by_id[a] for a in layer),
                key=lambda n: (
                    0 if n.action_id in winners else 1,
                    -n.recommendation.risk.rank,
                    n.position,
                ),
            )
            actions = []
            for node in ordered:
                deps = sorted(
                    predecessors[node.action_id],
                    key=lambda a: (phase_of[a], by_id[a].position),
                )
                actions.append(
                    PhaseAction(
                        action_id=node.action_id,
                        unit_id=node.unit_id,
                        field=node.recommendation.field,
                        value=node.recommendation.value,
                        depends_on=tuple(f"P{phase_of[d]}:{d}" for d in deps),
                    )
                )
            phases.append(ImplementationPhase(number=number, actions=tuple(actions)))
        return phases
