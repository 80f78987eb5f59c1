"""Orchestration exceptions.

Fatal errors abort a run before any unit result is merged:
- SelectionError: nothing to dispatch
- StaticCycleError: declared registry dependencies form a cycle
- RegistryConfigurationError: registry data is malformed

Recoverable errors never escape a run; they are embedded in the merged report:
- InvocationError: a unit failed or timed out (becomes an error result)
- UnresolvedConflictError: no resolution rule produced a winner
- RuntimeCycleWarning: a discovered dependency cycle had an edge removed
"""

from __future__ import annotations

from typing import Any

from dispatchkit.core.constants import SELECTION_ERROR_CODE, STATIC_CYCLE_ERROR_CODE


class OrchestrationError(Exception):
    """Base exception for orchestration errors."""

    code = "orchestration_error"

    def to_dict(self) -> dict[str, Any]:
        return {"error_type": type(self).__name__, "code": self.code, "error": str(self)}


class OrchestrationFatalError(OrchestrationError):
    """Raised for errors that abort the whole run."""

    pass


class SelectionError(OrchestrationFatalError):
    """Raised when the query selects no analysis units."""

    code = SELECTION_ERROR_CODE

    def __init__(self, message: str = SELECTION_ERROR_CODE, warnings: list[str] | None = None):
        super().__init__(message)
        self.warnings = list(warnings or [])

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["warnings"] = list(self.warnings)
        return data


class StaticCycleError(OrchestrationFatalError):
    """Raised when declared unit dependencies form a cycle.

    This is a registry bug and must be fixed in the registry data; the
    scheduler never tries to work around it.
    """

    code = STATIC_CYCLE_ERROR_CODE

    def __init__(self, edges: list[tuple[str, str]]):
        self.edges = list(edges)
        rendered = ", ".join(f"{src} -> {dst}" for src, dst in self.edges)
        super().__init__(f"Declared unit dependencies form a cycle: {rendered}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["edges"] = [list(edge) for edge in self.edges]
        return data


class RegistryConfigurationError(OrchestrationFatalError):
    """Raised when registry data fails validation."""

    code = "invalid_registry"


class InvocationError(OrchestrationError):
    """Raised (and recovered locally) when a unit invocation fails."""

    code = "invocation_failed"

    def __init__(self, unit_id: str, reason: str, timed_out: bool = False):
        self.unit_id = unit_id
        self.reason = reason
        self.timed_out = timed_out
        super().__init__(f"Unit '{unit_id}' failed: {reason}")


class UnresolvedConflictError(OrchestrationError):
    """Raised when no resolution rule decides a conflict."""

    code = "unresolved_conflict"

    def __init__(self, field: str, rationale: str):
        self.field = field
        self.rationale = rationale
        super().__init__(f"Conflict on '{field}' could not be resolved: {rationale}")


class RuntimeCycleWarning(UserWarning):
    """Describes a dependency edge removed to break a discovered cycle."""

    def __init__(self, edge_label: str, rationale: str):
        self.edge_label = edge_label
        self.rationale = rationale
        super().__init__(f"Broke dependency cycle at {edge_label}: {rationale}")
