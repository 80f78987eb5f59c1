"""Unit orchestration: selection, wave scheduling, conflict resolution,
phase sequencing and result aggregation."""

from .aggregator import ResultAggregator, calibration_issue, confidence_gate
from .conflict_resolver import ConflictResolver, ResolutionOutcome
from .invocation import GuardedResult, InvocationGuard
from .models import (
    BrokenEdge,
    Category,
    Conflict,
    ConflictSide,
    ConflictStatus,
    DependencyEdge,
    DispatchPlan,
    Fidelity,
    ImplementationPhase,
    MergedReport,
    PhaseAction,
    Query,
    QueryTriple,
    Recommendation,
    RiskLevel,
    RunOutcome,
    Selection,
    UnitContribution,
    UnitResult,
    UnitSpec,
    UnitStatus,
)
from .phase_sequencer import PhaseSequencer, SequencingOutcome
from .registry import UnitRegistry, matches_keywords
from .render import render_diagnostic, render_markdown
from .service import OrchestrationService
from .wave_scheduler import WaveScheduler

__all__ = [
    "BrokenEdge",
    "Category",
    "Conflict",
    "ConflictResolver",
    "ConflictSide",
    "ConflictStatus",
    "DependencyEdge",
    "DispatchPlan",
    "Fidelity",
    "GuardedResult",
    "ImplementationPhase",
    "InvocationGuard",
    "MergedReport",
    "OrchestrationService",
    "PhaseAction",
    "PhaseSequencer",
    "Query",
    "QueryTriple",
    "Recommendation",
    "ResolutionOutcome",
    "ResultAggregator",
    "RiskLevel",
    "RunOutcome",
    "Selection",
    "SequencingOutcome",
    "UnitContribution",
    "UnitRegistry",
    "UnitResult",
    "UnitSpec",
    "UnitStatus",
    "WaveScheduler",
    "calibration_issue",
    "confidence_gate",
    "matches_keywords",
    "render_diagnostic",
    "render_markdown",
]
