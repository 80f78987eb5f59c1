"""Deterministic resolution of contradictory unit recommendations.

Two recommendations conflict when different units emit the same field with
unequal values. Every conflicting pair is decided by the first rule that
fires:

1. user_constraint: the query's constraints name the field
2. weighted_priority: side scores differ by more than the tie tolerance
3. category_level: highest single category level
4. system_priority: static domain tiebreak order
5. execution_status: ok > low_confidence > error

A pair no rule decides is reported as unresolved with both rationales; it is
never decided arbitrarily and neither side is dropped.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace

from loguru import logger

from dispatchkit.core.exceptions import UnresolvedConflictError
from dispatchkit.services.orchestration.models import (
    Conflict,
    ConflictSide,
    ConflictStatus,
    Recommendation,
    UnitResult,
    action_id_for,
)
from dispatchkit.services.orchestration.registry import UnitRegistry

DEFAULT_TIE_TOLERANCE = 0.10


@dataclass
class ResolutionOutcome:
    """Conflicts found in one run and the recommendations that survive them."""

    conflicts: list[Conflict] = field(default_factory=list)
    accepted: list[tuple[str, Recommendation]] = field(default_factory=list)
    rejected: set[str] = field(default_factory=set)  # action ids
    winners: set[str] = field(default_factory=set)  # action ids
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Decision:
    winner: str | None
    winning_value: object
    rule: str
    rationale: str


def _values_equal(a: object, b: object) -> bool:
    if a == b:
        return True
    # Constraint values arrive as strings; "0.7" and 0.7 name the same setting
    return str(a) == str(b)


class ConflictResolver:
    """Finds field-level contradictions and decides each one."""

    def __init__(
        self,
        registry: UnitRegistry,
        system_priority: Sequence[str] | None = None,
        tie_tolerance: float = DEFAULT_TIE_TOLERANCE,
    ):
        self._registry = registry
        order = list(system_priority) if system_priority else registry.system_priority
        self._domain_rank = {domain: i for i, domain in enumerate(order)}
        self._tie_tolerance = tie_tolerance

    def weighted_priority(self, recommendation: Recommendation) -> float:
        """Sum of category level times strength over every category claim.

        A Data Integrity claim at 0.6 scores 3.0 and outweighs a Convenience
        claim at 0.9, which scores 0.9.
        """
        return sum(
            self._registry.category_level(category) * score
            for category, score in recommendation.claims()
        )

    def top_level(self, recommendation: Recommendation) -> int:
        return max(self._registry.category_level(c) for c, _ in recommendation.claims())

    def resolve(
        self,
        results: Sequence[UnitResult],
        constraints: Mapping[str, str] | None = None,
    ) -> ResolutionOutcome:
        """Detect and decide every conflict among the given results.

        Args:
            results: Unit results in dispatch order
            constraints: User constraints keyed by field name

        Returns:
            ResolutionOutcome with accepted recommendations in dispatch order
        """
        constraints = constraints or {}
        sides = [
            self._side(result, rec)
            for result in results
            for rec in result.recommendations
        ]

        outcome = ResolutionOutcome()
        required: dict[str, object] = {}  # constraint values neither side offered
        for i in range(len(sides)):
            for j in range(i + 1, len(sides)):
                a, b = sides[i], sides[j]
                if a.unit_id == b.unit_id:
                    continue
                if a.recommendation.field != b.recommendation.field:
                    continue
                if a.recommendation.value == b.recommendation.value:
                    continue
                conflict = self._resolve_pair(f"cf-{i}-{j}", a, b, constraints)
                outcome.conflicts.append(conflict)
                if conflict.status is ConflictStatus.UNRESOLVED:
                    outcome.warnings.append(
                        f"Unresolved conflict {conflict.conflict_id} on "
                        f"'{conflict.field}': {a.unit_id}={a.recommendation.value!r} vs "
                        f"{b.unit_id}={b.recommendation.value!r}"
                    )
                    continue
                winning = conflict.winning_side
                if winning is not None:
                    outcome.winners.add(winning.action_id)
                else:
                    required.setdefault(conflict.field, conflict.winning_value)
                outcome.rejected.update(side.action_id for side in conflict.rejected_sides)

        # A side that wins one conflict but loses another stays rejected
        outcome.winners -= outcome.rejected
        outcome.accepted = self._accepted(sides, outcome, required)

        logger.info(
            f"Conflict resolution: {len(outcome.conflicts)} conflict(s), "
            f"{len(outcome.rejected)} rejected, {len(outcome.accepted)} accepted"
        )
        return outcome

    def _side(self, result: UnitResult, rec: Recommendation) -> ConflictSide:
        return ConflictSide(
            unit_id=result.unit_id,
            domain=self._registry.get(result.unit_id).domain,
            recommendation=rec,
            weighted_priority=self.weighted_priority(rec),
            top_level=self.top_level(rec),
            status=result.status,
        )

    def _accepted(
        self,
        sides: Sequence[ConflictSide],
        outcome: ResolutionOutcome,
        required: Mapping[str, object],
    ) -> list[tuple[str, Recommendation]]:
        """Surviving recommendations in dispatch order.

        A user-required value that no surviving side carries takes the slot of
        the first rejected side on that field, so the field is still phased.
        """
        satisfied = {
            side.recommendation.field
            for side in sides
            if side.action_id not in outcome.rejected
            and side.recommendation.field in required
            and _values_equal(side.recommendation.value, required[side.recommendation.field])
        }
        accepted: list[tuple[str, Recommendation]] = []
        for side in sides:
            rec = side.recommendation
            if side.action_id not in outcome.rejected:
                accepted.append((side.unit_id, rec))
            elif rec.field in required and rec.field not in satisfied:
                satisfied.add(rec.field)
                wanted = required[rec.field]
                accepted.append((
                    side.unit_id,
                    replace(rec, value=wanted, rationale=f"User constraint requires {rec.field}={wanted}"),
                ))
                outcome.winners.add(side.action_id)
        return accepted

    def _resolve_pair(
        self,
        conflict_id: str,
        a: ConflictSide,
        b: ConflictSide,
        constraints: Mapping[str, str],
    ) -> Conflict:
        field_name = a.recommendation.field
        try:
            decision = self._decide(a, b, constraints)
        except UnresolvedConflictError as e:
            logger.warning(f"{conflict_id}: {e}")
            return Conflict(
                conflict_id=conflict_id,
                field=field_name,
                side_a=a,
                side_b=b,
                status=ConflictStatus.UNRESOLVED,
                rationale=e.rationale,
            )

        mitigation = self._mitigation(field_name, a, b, decision)
        logger.debug(
            f"{conflict_id} on '{field_name}' resolved by {decision.rule}: "
            f"winner={decision.winner or 'none'}"
        )
        return Conflict(
            conflict_id=conflict_id,
            field=field_name,
            side_a=a,
            side_b=b,
            status=ConflictStatus.RESOLVED,
            winner=decision.winner,
            winning_value=decision.winning_value,
            rule_applied=decision.rule,
            mitigation=mitigation,
            rationale=decision.rationale,
        )

    def _decide(
        self, a: ConflictSide, b: ConflictSide, constraints: Mapping[str, str]
    ) -> _Decision:
        field_name = a.recommendation.field
        value_a, value_b = a.recommendation.value, b.recommendation.value

        if field_name in constraints:
            wanted = constraints[field_name]
            if _values_equal(value_a, wanted):
                return _Decision("a", value_a, "user_constraint",
                                 f"User constraint requires {field_name}={wanted}")
            if _values_equal(value_b, wanted):
                return _Decision("b", value_b, "user_constraint",
                                 f"User constraint requires {field_name}={wanted}")
            return _Decision(None, wanted, "user_constraint",
                             f"User constraint requires {field_name}={wanted}; "
                             "neither unit recommended it")

        wp_a, wp_b = a.weighted_priority, b.weighted_priority
        larger = max(wp_a, wp_b)
        if larger > 0 and abs(wp_a - wp_b) > self._tie_tolerance * larger:
            winner = "a" if wp_a > wp_b else "b"
            return _Decision(
                winner,
                value_a if winner == "a" else value_b,
                "weighted_priority",
                f"Weighted priority {wp_a:.3f} vs {wp_b:.3f} differs by more than "
                f"{self._tie_tolerance:.0%}",
            )

        if a.top_level != b.top_level:
            winner = "a" if a.top_level > b.top_level else "b"
            return _Decision(
                winner,
                value_a if winner == "a" else value_b,
                "category_level",
                f"Category {a.recommendation.category.value} (level {a.top_level}) vs "
                f"{b.recommendation.category.value} (level {b.top_level})",
            )

        rank_a = self._domain_rank.get(a.domain)
        rank_b = self._domain_rank.get(b.domain)
        if a.domain != b.domain and (rank_a is not None or rank_b is not None):
            unlisted = len(self._domain_rank)
            ra = unlisted if rank_a is None else rank_a
            rb = unlisted if rank_b is None else rank_b
            winner = "a" if ra < rb else "b"
            return _Decision(
                winner,
                value_a if winner == "a" else value_b,
                "system_priority",
                f"Domain '{a.domain if winner == 'a' else b.domain}' precedes "
                f"'{b.domain if winner == 'a' else a.domain}' in the system priority order",
            )

        fid_a, fid_b = a.status.fidelity_rank, b.status.fidelity_rank
        if fid_a != fid_b:
            winner = "a" if fid_a > fid_b else "b"
            return _Decision(
                winner,
                value_a if winner == "a" else value_b,
                "execution_status",
                f"Execution status {a.status.value} vs {b.status.value}",
            )

        raise UnresolvedConflictError(
            field_name,
            f"{a.unit_id}: {a.recommendation.rationale or repr(value_a)} | "
            f"{b.unit_id}: {b.recommendation.rationale or repr(value_b)}",
        )

    def _mitigation(
        self, field_name: str, a: ConflictSide, b: ConflictSide, decision: _Decision
    ) -> str:
        if decision.winner is None:
            return (
                f"Apply user-required {field_name}={decision.winning_value}; record "
                f"{action_id_for(a.unit_id, field_name)}={a.recommendation.value!r} and "
                f"{action_id_for(b.unit_id, field_name)}={b.recommendation.value!r} "
                "as rejected alternatives"
            )
        winner, loser = (a, b) if decision.winner == "a" else (b, a)
        return (
            f"Apply {winner.action_id}={winner.recommendation.value!r}; keep "
            f"{loser.action_id}={loser.recommendation.value!r} as a documented "
            f"fallback and re-evaluate it against {loser.recommendation.category.value} "
            "requirements after rollout"
        )
