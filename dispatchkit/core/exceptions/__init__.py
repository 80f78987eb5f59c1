"""Exception hierarchy for dispatchkit."""

from .orchestration import (
    InvocationError,
    OrchestrationError,
    OrchestrationFatalError,
    RegistryConfigurationError,
    RuntimeCycleWarning,
    SelectionError,
    StaticCycleError,
    UnresolvedConflictError,
)

__all__ = [
    "OrchestrationError",
    "OrchestrationFatalError",
    "SelectionError",
    "StaticCycleError",
    "RegistryConfigurationError",
    "InvocationError",
    "UnresolvedConflictError",
    "RuntimeCycleWarning",
]
