"""
Orchestration configuration for dispatchkit.

Configuration Sources (in order of precedence):
1. Explicit keyword arguments
2. Environment variables (DISPATCHKIT_*)
3. Default values

Environment Variables:
    DISPATCHKIT_MAX_UNITS_PER_WAVE=3
    DISPATCHKIT_RUN_TIMEOUT_SECONDS=600
    DISPATCHKIT_SYSTEM_PRIORITY='["db", "security"]'
    DISPATCHKIT_LOGGING__CONSOLE_LEVEL=INFO
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self

from .logging_config import LoggingConfig


class OrchestrationConfig(BaseSettings):
    """Knobs consumed by the orchestration core."""

    model_config = SettingsConfigDict(
        env_prefix="DISPATCHKIT_",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    max_units_per_wave: int = Field(
        default=3,
        ge=1,
        description="Maximum number of units invoked concurrently in one wave",
    )

    unit_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a single unit invocation",
    )

    run_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Timeout for the whole dispatch pipeline",
    )

    system_priority: list[str] = Field(
        default_factory=list,
        description=(
            "Domain tiebreak order, highest priority first "
            "(overrides the registry order when non-empty)"
        ),
    )

    low_confidence_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Unit confidence below which the report is flagged for human review",
    )

    low_fidelity_cap: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Aggregate confidence cap when every unit returned a low-fidelity result",
    )

    tie_tolerance: float = Field(
        default=0.10,
        ge=0.0,
        lt=1.0,
        description="Relative weighted-priority difference treated as a tie",
    )

    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def validate_timeouts(self) -> Self:
        if self.unit_timeout_seconds > self.run_timeout_seconds:
            raise ValueError(
                "unit_timeout_seconds must not exceed run_timeout_seconds "
                f"({self.unit_timeout_seconds} > {self.run_timeout_seconds})"
            )
        return self

    def __repr__(self) -> str:
        return (
            f"OrchestrationConfig("
            f"max_units_per_wave={self.max_units_per_wave}, "
            f"unit_timeout_seconds={self.unit_timeout_seconds}, "
            f"run_timeout_seconds={self.run_timeout_seconds})"
        )
