"""Registry data models for dispatchkit.

The unit registry is static configuration supplied at startup. These models
validate its shape; cross-reference checks (unknown units, duplicate ids)
happen when a UnitRegistry is built from the definition.
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from typing_extensions import Self

from dispatchkit.core.constants import DEFAULT_CATEGORY_ORDER

WILDCARD = "*"


class UnitDefinition(BaseModel):
    """One analysis unit as declared in registry data."""

    unit_id: str = Field(min_length=1)
    trigger_keywords: list[str] = Field(default_factory=list)
    default_if_ambiguous: bool = False
    depends_on: list[str] = Field(
        default_factory=list,
        description="Unit ids whose output this unit may consume",
    )
    weight_class: Literal["primary", "standard", "auxiliary"] = "standard"

    @field_validator("trigger_keywords")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        return [kw.strip().lower() for kw in v if kw.strip()]


class DomainDefinition(BaseModel):
    """A domain tag and the units it owns, in declaration order."""

    domain: str = Field(min_length=1)
    units: list[UnitDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_single_default(self) -> Self:
        defaults = [u.unit_id for u in self.units if u.default_if_ambiguous]
        if len(defaults) > 1:
            raise ValueError(
                f"Domain '{self.domain}' declares more than one default unit: "
                f"{', '.join(defaults)}"
            )
        return self


class EffectRuleDefinition(BaseModel):
    """Declares that a recommendation of one unit affects another unit's."""

    source_unit: str
    target_unit: str
    source_field: str = WILDCARD
    target_field: str = WILDCARD

    @model_validator(mode="after")
    def validate_distinct_units(self) -> Self:
        if self.source_unit == self.target_unit:
            raise ValueError(
                f"Effect rule must link two different units, got '{self.source_unit}' twice"
            )
        return self

    def matches(
        self, source_unit: str, source_field: str, target_unit: str, target_field: str
    ) -> bool:
        return (
            self.source_unit == source_unit
            and self.target_unit == target_unit
            and self.source_field in (WILDCARD, source_field)
            and self.target_field in (WILDCARD, target_field)
        )


class RegistryDefinition(BaseModel):
    """Complete registry document."""

    domains: list[DomainDefinition] = Field(default_factory=list)
    category_order: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORY_ORDER),
        description="Recommendation categories, highest priority first",
    )
    system_priority: list[str] = Field(
        default_factory=list,
        description="Domain tiebreak order, highest priority first",
    )
    effects: list[EffectRuleDefinition] = Field(default_factory=list)

    @field_validator("category_order")
    @classmethod
    def validate_category_order(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("category_order contains duplicate categories")
        if set(v) != set(DEFAULT_CATEGORY_ORDER):
            raise ValueError(
                "category_order must be a permutation of "
                f"{', '.join(DEFAULT_CATEGORY_ORDER)}"
            )
        return v

    @field_validator("system_priority")
    @classmethod
    def validate_system_priority(cls, v: list[str]) -> list[str]:
        if len(set(v)) != len(v):
            raise ValueError("system_priority contains duplicate domains")
        return v
