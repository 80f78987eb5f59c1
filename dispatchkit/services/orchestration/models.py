"""Data models for unit orchestration.

This module contains the data structures that flow through one orchestration
run, from the classified query to the merged report.

Key concepts:
- Query: classified free text, a set of (domain, sub-topic, keywords) triples
- UnitSpec: static registry descriptor of one analysis unit
- DispatchPlan: dependency-respecting concurrent waves of unit ids
- UnitResult: what one invoked unit produced (recommendations + confidence)
- Conflict: two units recommending different values for the same field
- ImplementationPhase: depth-ordered bucket of accepted recommendations
- MergedReport: terminal artifact of a run

Everything here lives for a single run; nothing is persisted.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from dispatchkit.core.constants import WEIGHT_CLASS_VALUES


class Category(str, Enum):
    """Recommendation category; priority levels come from the registry."""

    DATA_INTEGRITY = "data_integrity"
    SECURITY = "security"
    AVAILABILITY = "availability"
    PERFORMANCE = "performance"
    CONVENIENCE = "convenience"


class UnitStatus(str, Enum):
    """Execution status of one unit invocation."""

    OK = "ok"
    LOW_CONFIDENCE = "low_confidence"
    ERROR = "error"

    @property
    def fidelity_rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {UnitStatus.OK: 2, UnitStatus.LOW_CONFIDENCE: 1, UnitStatus.ERROR: 0}


class RiskLevel(str, Enum):
    """Declared implementation risk of a recommendation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class Fidelity(str, Enum):
    """How much of a unit's contribution made it into the report."""

    FULL = "full"
    DEGRADED = "degraded"
    MISSING = "missing"


class ConflictStatus(str, Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class ClassificationInput(BaseModel):
    """Validated output of a classification adapter."""

    query: str
    domain_tags: list[str] = Field(default_factory=list)
    sub_topics: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    constraints: dict[str, str] = Field(default_factory=dict)
    context: str | None = None


@dataclass(frozen=True)
class QueryTriple:
    """One classified (domain, sub-topic, keywords) triple."""

    domain_tag: str
    sub_topic: str
    keywords: frozenset[str]


@dataclass(frozen=True)
class Query:
    """Classified query; immutable for the duration of a run."""

    text: str
    triples: tuple[QueryTriple, ...]
    constraints: Mapping[str, str] = field(default_factory=dict)
    context: str | None = None

    @classmethod
    def from_classification(cls, payload: Mapping[str, Any]) -> Query:
        """Build a query from classification adapter output.

        Triple ``i`` pairs ``domain_tags[i]`` with ``sub_topics[i]`` (empty when
        absent); all triples share the classified keyword set.
        """
        data = ClassificationInput.model_validate(dict(payload))
        keywords = frozenset(kw.strip().lower() for kw in data.keywords if kw.strip())
        triples = tuple(
            QueryTriple(
                domain_tag=tag,
                sub_topic=data.sub_topics[i] if i < len(data.sub_topics) else "",
                keywords=keywords,
            )
            for i, tag in enumerate(data.domain_tags)
        )
        return cls(
            text=data.query,
            triples=triples,
            constraints=dict(data.constraints),
            context=data.context,
        )


@dataclass(frozen=True)
class UnitSpec:
    """Static registry descriptor of one analysis unit."""

    unit_id: str
    domain: str
    trigger_keywords: frozenset[str]
    default_if_ambiguous: bool = False
    depends_on: tuple[str, ...] = ()
    weight_class: str = "standard"

    @property
    def weight(self) -> float:
        return WEIGHT_CLASS_VALUES[self.weight_class]


@dataclass(frozen=True)
class Recommendation:
    """One field-level recommendation emitted by a unit."""

    field: str
    value: Any
    category: Category
    strength: float = 1.0
    risk: RiskLevel = RiskLevel.LOW
    affects: tuple[str, ...] = ()  # Field names of other units' recommendations
    secondary_categories: tuple[tuple[Category, float], ...] = ()
    rationale: str = ""

    def claims(self) -> tuple[tuple[Category, float], ...]:
        """All (category, strength) claims, primary category first."""
        return ((self.category, self.strength),) + self.secondary_categories

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "value": self.value,
            "category": self.category.value,
            "strength": self.strength,
            "risk": self.risk.value,
            "affects": list(self.affects),
            "secondary_categories": {c.value: s for c, s in self.secondary_categories},
            "rationale": self.rationale,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Recommendation:
        secondary = data.get("secondary_categories") or {}
        return cls(
            field=data["field"],
            value=data["value"],
            category=Category(data["category"]),
            strength=float(data.get("strength", 1.0)),
            risk=RiskLevel(data.get("risk", RiskLevel.LOW.value)),
            affects=tuple(data.get("affects") or ()),
            secondary_categories=tuple(
                (Category(cat), float(score)) for cat, score in secondary.items()
            ),
            rationale=data.get("rationale", ""),
        )


@dataclass(frozen=True)
class UnitResult:
    """Result of one unit invocation; immutable once created."""

    unit_id: str
    recommendations: tuple[Recommendation, ...]
    confidence: float
    status: UnitStatus
    error: str | None = None
    elapsed_ms: float = 0.0

    @classmethod
    def error_result(cls, unit_id: str, reason: str, elapsed_ms: float = 0.0) -> UnitResult:
        return cls(
            unit_id=unit_id,
            recommendations=(),
            confidence=0.0,
            status=UnitStatus.ERROR,
            error=reason,
            elapsed_ms=elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "recommendations": [r.to_dict() for r in self.recommendations],
            "confidence": self.confidence,
            "status": self.status.value,
            "error": self.error,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UnitResult:
        return cls(
            unit_id=data["unit_id"],
            recommendations=tuple(
                Recommendation.from_dict(r) for r in data.get("recommendations") or ()
            ),
            confidence=float(data.get("confidence", 0.0)),
            status=UnitStatus(data.get("status", UnitStatus.OK.value)),
            error=data.get("error"),
        )


@dataclass
class Selection:
    """Units chosen for a query, in registry declaration order."""

    units: list[UnitSpec] = field(default_factory=list)
    ambiguous_units: set[str] = field(default_factory=set)
    ambiguous_domains: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def unit_ids(self) -> list[str]:
        return [u.unit_id for u in self.units]

    def is_ambiguous(self, unit_id: str) -> bool:
        return unit_id in self.ambiguous_units


@dataclass(frozen=True)
class DispatchPlan:
    """Ordered waves; no dependency edge joins two members of one wave."""

    waves: tuple[tuple[str, ...], ...]
    edges: tuple[tuple[str, str], ...] = ()

    @property
    def unit_ids(self) -> list[str]:
        return [unit_id for wave in self.waves for unit_id in wave]

    def wave_index(self, unit_id: str) -> int:
        for index, wave in enumerate(self.waves):
            if unit_id in wave:
                return index
        raise KeyError(unit_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "waves": [list(wave) for wave in self.waves],
            "edges": [list(edge) for edge in self.edges],
        }


def action_id_for(unit_id: str, field_name: str) -> str:
    return f"{unit_id}.{field_name}"


@dataclass(frozen=True)
class ConflictSide:
    """One side of a conflict with its computed score."""

    unit_id: str
    domain: str
    recommendation: Recommendation
    weighted_priority: float
    top_level: int  # Highest single category level among the side's claims
    status: UnitStatus

    @property
    def action_id(self) -> str:
        return action_id_for(self.unit_id, self.recommendation.field)

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "domain": self.domain,
            "value": self.recommendation.value,
            "category": self.recommendation.category.value,
            "strength": self.recommendation.strength,
            "weighted_priority": round(self.weighted_priority, 4),
            "top_level": self.top_level,
            "status": self.status.value,
        }


@dataclass(frozen=True)
class Conflict:
    """A resolved or unresolved contradiction between two units."""

    conflict_id: str
    field: str
    side_a: ConflictSide
    side_b: ConflictSide
    status: ConflictStatus
    winner: str | None = None  # "a", "b", or None
    winning_value: Any = None
    rule_applied: str | None = None
    mitigation: str | None = None
    rationale: str = ""

    @property
    def winning_side(self) -> ConflictSide | None:
        if self.winner == "a":
            return self.side_a
        if self.winner == "b":
            return self.side_b
        return None

    @property
    def rejected_sides(self) -> tuple[ConflictSide, ...]:
        """Sides whose recommendation was overruled."""
        if self.status is ConflictStatus.UNRESOLVED:
            return ()
        return tuple(
            side
            for side in (self.side_a, self.side_b)
            if side is not self.winning_side
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "conflict_id": self.conflict_id,
            "field": self.field,
            "side_a": self.side_a.to_dict(),
            "side_b": self.side_b.to_dict(),
            "status": self.status.value,
            "winner": self.winner,
            "winning_value": self.winning_value,
            "rule_applied": self.rule_applied,
            "mitigation": self.mitigation,
            "rationale": self.rationale,
        }


@dataclass(frozen=True)
class DependencyEdge:
    """Cross-unit effect between two accepted recommendations."""

    from_unit: str
    to_unit: str
    trigger_recommendation: str  # action id in the source unit
    affected_recommendation: str  # action id in the target unit
    priority_score: int

    @property
    def label(self) -> str:
        return f"{self.trigger_recommendation} -> {self.affected_recommendation}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_unit": self.from_unit,
            "to_unit": self.to_unit,
            "trigger_recommendation": self.trigger_recommendation,
            "affected_recommendation": self.affected_recommendation,
            "priority_score": self.priority_score,
        }


@dataclass(frozen=True)
class BrokenEdge:
    """Edge removed to break a runtime dependency cycle."""

    edge: DependencyEdge
    rationale: str

    def to_dict(self) -> dict[str, Any]:
        return {**self.edge.to_dict(), "rationale": self.rationale}


@dataclass(frozen=True)
class PhaseAction:
    """An accepted recommendation scheduled into a phase."""

    action_id: str
    unit_id: str
    field: str
    value: Any
    depends_on: tuple[str, ...] = ()  # Phase-qualified ids, e.g. "P1:db.fill_factor"

    def to_dict(self) -> dict[str, Any]:
        return {
            "action_id": self.action_id,
            "unit_id": self.unit_id,
            "field": self.field,
            "value": self.value,
            "depends_on": list(self.depends_on),
        }


@dataclass(frozen=True)
class ImplementationPhase:
    number: int
    actions: tuple[PhaseAction, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"phase": self.number, "actions": [a.to_dict() for a in self.actions]}


@dataclass(frozen=True)
class UnitContribution:
    """Per-unit fidelity summary shown in the report."""

    unit_id: str
    status: UnitStatus
    confidence: float
    fidelity: Fidelity
    confidence_gate: str
    ambiguous: bool = False
    calibration: str | None = None  # why the confidence looks miscalibrated

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "status": self.status.value,
            "confidence": self.confidence,
            "fidelity": self.fidelity.value,
            "confidence_gate": self.confidence_gate,
            "ambiguous": self.ambiguous,
            "calibration": self.calibration,
        }


@dataclass
class MergedReport:
    """Terminal artifact of a run; append-only while it is assembled."""

    units_dispatched: list[str]
    results: list[UnitResult]
    conflicts: list[Conflict]
    phases: list[ImplementationPhase]
    aggregate_confidence: float
    warnings: list[str] = field(default_factory=list)
    contributions: list[UnitContribution] = field(default_factory=list)
    requires_human_review: bool = False
    notes: list[str] = field(default_factory=list)
    broken_edges: list[BrokenEdge] = field(default_factory=list)
    plan: DispatchPlan | None = None

    @property
    def unresolved_conflicts(self) -> list[Conflict]:
        return [c for c in self.conflicts if c.status is ConflictStatus.UNRESOLVED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "units_dispatched": list(self.units_dispatched),
            "results": [r.to_dict() for r in self.results],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "phases": [p.to_dict() for p in self.phases],
            "aggregate_confidence": self.aggregate_confidence,
            "warnings": list(self.warnings),
            "contributions": [c.to_dict() for c in self.contributions],
            "requires_human_review": self.requires_human_review,
            "notes": list(self.notes),
            "broken_edges": [b.to_dict() for b in self.broken_edges],
            "plan": self.plan.to_dict() if self.plan else None,
        }


@dataclass
class RunOutcome:
    """Report on success; diagnostic only when a fatal error aborted the run."""

    report: MergedReport | None = None
    diagnostic: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.report is not None
