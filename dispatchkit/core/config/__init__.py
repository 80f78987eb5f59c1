"""Configuration models for dispatchkit."""

from .logging_config import FileLoggingConfig, LoggingConfig
from .orchestration_config import OrchestrationConfig
from .registry_config import (
    DomainDefinition,
    EffectRuleDefinition,
    RegistryDefinition,
    UnitDefinition,
)

__all__ = [
    "FileLoggingConfig",
    "LoggingConfig",
    "OrchestrationConfig",
    "RegistryDefinition",
    "DomainDefinition",
    "UnitDefinition",
    "EffectRuleDefinition",
]
