"""Confidence aggregation and merged report assembly."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from dispatchkit.core.constants import (
    CALIBRATION_HIGH,
    CALIBRATION_MIN_RATIONALE_CHARS,
    CALIBRATION_MIN_RECOMMENDATIONS,
    CONFIDENCE_PASS,
    CONFIDENCE_RETRY,
    CONFIDENCE_WARN,
)
from dispatchkit.services.orchestration.conflict_resolver import ResolutionOutcome
from dispatchkit.services.orchestration.models import (
    DispatchPlan,
    Fidelity,
    MergedReport,
    Selection,
    UnitContribution,
    UnitResult,
    UnitStatus,
)
from dispatchkit.services.orchestration.phase_sequencer import SequencingOutcome
from dispatchkit.services.orchestration.registry import UnitRegistry


def confidence_gate(confidence: float) -> str:
    """Map a unit confidence to PASS / WARN / RETRY / REJECT."""
    if confidence >= CONFIDENCE_PASS:
        return "PASS"
    if confidence >= CONFIDENCE_WARN:
        return "WARN"
    if confidence >= CONFIDENCE_RETRY:
        return "RETRY"
    return "REJECT"


def calibration_issue(result: UnitResult) -> str | None:
    """Describe why a high confidence looks unsupported, or None if it does not.

    Weak signals are: fewer than two recommendations, less than 100 characters
    of rationale in total, and no recommendation declaring secondary categories
    or affected fields. Two or more weak signals at 0.90 and above are flagged.
    """
    if result.confidence >= 1.0:
        return "confidence 1.0 is not a plausible unit result"
    if result.confidence < CALIBRATION_HIGH:
        return None
    recommendations = result.recommendations
    weak = 0
    if len(recommendations) < CALIBRATION_MIN_RECOMMENDATIONS:
        weak += 1
    if sum(len(r.rationale) for r in recommendations) < CALIBRATION_MIN_RATIONALE_CHARS:
        weak += 1
    if not any(r.secondary_categories or r.affects for r in recommendations):
        weak += 1
    if weak >= 2:
        return f"high confidence ({result.confidence:.2f}) with {weak} weak supporting signals"
    return None


class ResultAggregator:
    """Merges per-unit confidences and assembles the MergedReport."""

    def __init__(
        self,
        registry: UnitRegistry,
        low_confidence_threshold: float = 0.5,
        low_fidelity_cap: float = 0.3,
    ):
        self._registry = registry
        self._low_confidence_threshold = low_confidence_threshold
        self._low_fidelity_cap = low_fidelity_cap

    def aggregate_confidence(self, results: Sequence[UnitResult]) -> float:
        """Weight-normalised mean confidence; capped when nothing is full fidelity.

        Pure: the same results always give the same number.
        """
        if not results:
            return 0.0
        total_weight = 0.0
        weighted = 0.0
        for result in results:
            weight = self._registry.get(result.unit_id).weight
            total_weight += weight
            weighted += weight * result.confidence
        score = weighted / total_weight if total_weight else 0.0
        if self.all_low_fidelity(results):
            score = min(score, self._low_fidelity_cap)
        return round(score, 4)

    def all_low_fidelity(self, results: Sequence[UnitResult]) -> bool:
        return bool(results) and all(r.status is not UnitStatus.OK for r in results)

    def fidelity(self, result: UnitResult) -> Fidelity:
        if result.status is UnitStatus.ERROR:
            return Fidelity.MISSING
        if result.status is UnitStatus.LOW_CONFIDENCE:
            return Fidelity.DEGRADED
        if result.confidence < self._low_confidence_threshold:
            return Fidelity.DEGRADED
        return Fidelity.FULL

    def contributions(
        self, results: Sequence[UnitResult], selection: Selection | None = None
    ) -> list[UnitContribution]:
        contributions = []
        for r in results:
            gate = confidence_gate(r.confidence)
            calibration = calibration_issue(r)
            if calibration is not None:
                logger.warning(f"Unit '{r.unit_id}' confidence may be miscalibrated: {calibration}")
                if gate == "PASS":
                    gate = "WARN"
            contributions.append(
                UnitContribution(
                    unit_id=r.unit_id,
                    status=r.status,
                    confidence=r.confidence,
                    fidelity=self.fidelity(r),
                    confidence_gate=gate,
                    ambiguous=bool(selection and selection.is_ambiguous(r.unit_id)),
                    calibration=calibration,
                )
            )
        return contributions

    def review_units(self, results: Sequence[UnitResult]) -> list[str]:
        """Units whose confidence is below the human-review threshold."""
        return [r.unit_id for r in results if r.confidence < self._low_confidence_threshold]

    def build_report(
        self,
        results: Sequence[UnitResult],
        resolution: ResolutionOutcome,
        sequencing: SequencingOutcome,
        plan: DispatchPlan | None = None,
        selection: Selection | None = None,
        warnings: Sequence[str] = (),
    ) -> MergedReport:
        aggregate = self.aggregate_confidence(results)
        notes: list[str] = []

        if self.all_low_fidelity(results):
            notes.append(
                "All invoked units returned low-fidelity results; aggregate confidence "
                f"capped at {self._low_fidelity_cap:.2f} regardless of the raw average"
            )

        review = self.review_units(results)
        if review:
            notes.append(
                f"Human review required: confidence below "
                f"{self._low_confidence_threshold:.2f} for {', '.join(review)}"
            )

        if selection and selection.ambiguous_units:
            ambiguous = [u for u in selection.unit_ids if selection.is_ambiguous(u)]
            notes.append(
                f"Default unit(s) used for ambiguous domains: {', '.join(ambiguous)}"
            )

        contributions = self.contributions(results, selection)
        miscalibrated = [c.unit_id for c in contributions if c.calibration]
        if miscalibrated:
            notes.append(
                f"Confidence may be miscalibrated for {', '.join(miscalibrated)}; "
                "treated as WARN"
            )

        report = MergedReport(
            units_dispatched=plan.unit_ids if plan else [r.unit_id for r in results],
            results=list(results),
            conflicts=list(resolution.conflicts),
            phases=list(sequencing.phases),
            aggregate_confidence=aggregate,
            warnings=list(warnings),
            contributions=contributions,
            requires_human_review=bool(review),
            notes=notes,
            broken_edges=list(sequencing.broken_edges),
            plan=plan,
        )
        logger.info(
            f"Merged report: {len(report.results)} result(s), "
            f"aggregate confidence {report.aggregate_confidence:.2f}, "
            f"human review={'yes' if report.requires_human_review else 'no'}"
        )
        return report
