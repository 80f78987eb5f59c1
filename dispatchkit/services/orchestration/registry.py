"""Unit registry and query-driven unit selection.

The registry is static configuration: domains, the units each domain owns,
declared unit dependencies, cross-unit effect rules, the category priority
order and the domain tiebreak order. It is read-only during a run and may be
shared between concurrent runs.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from dispatchkit.core.config.registry_config import (
    EffectRuleDefinition,
    RegistryDefinition,
)
from dispatchkit.core.exceptions import RegistryConfigurationError, SelectionError
from dispatchkit.services.orchestration.models import (
    Category,
    Query,
    Selection,
    UnitSpec,
)


def matches_keywords(triggers: Iterable[str], keywords: Iterable[str]) -> bool:
    """Return True when any trigger matches a keyword token.

    Matching is case-insensitive; a trigger matches a keyword when it equals
    the keyword or is a substring of it ("index" matches "covering index").
    """
    tokens = [kw.lower() for kw in keywords if kw]
    for trigger in triggers:
        needle = trigger.lower()
        if not needle:
            continue
        for token in tokens:
            if needle == token or needle in token:
                return True
    return False


class UnitRegistry:
    """Static mapping from domains and keywords to analysis units."""

    def __init__(self, definition: RegistryDefinition):
        self._definition = definition
        self._units: dict[str, UnitSpec] = {}
        self._domain_units: dict[str, list[UnitSpec]] = {}
        self._order: dict[str, int] = {}

        for domain_def in definition.domains:
            if domain_def.domain in self._domain_units:
                raise RegistryConfigurationError(
                    f"Domain '{domain_def.domain}' is declared more than once"
                )
            owned: list[UnitSpec] = []
            for unit_def in domain_def.units:
                if unit_def.unit_id in self._units:
                    raise RegistryConfigurationError(
                        f"Unit id '{unit_def.unit_id}' is declared more than once"
                    )
                spec = UnitSpec(
                    unit_id=unit_def.unit_id,
                    domain=domain_def.domain,
                    trigger_keywords=frozenset(unit_def.trigger_keywords),
                    default_if_ambiguous=unit_def.default_if_ambiguous,
                    depends_on=tuple(unit_def.depends_on),
                    weight_class=unit_def.weight_class,
                )
                self._units[spec.unit_id] = spec
                self._order[spec.unit_id] = len(self._order)
                owned.append(spec)
            self._domain_units[domain_def.domain] = owned

        self._validate_references()

        levels = len(definition.category_order)
        self._category_levels: dict[Category, int] = {
            Category(name): levels - i for i, name in enumerate(definition.category_order)
        }

        logger.debug(
            f"UnitRegistry loaded: {len(self._domain_units)} domains, "
            f"{len(self._units)} units, {len(definition.effects)} effect rules"
        )

    def _validate_references(self) -> None:
        for spec in self._units.values():
            unknown = [dep for dep in spec.depends_on if dep not in self._units]
            if unknown:
                raise RegistryConfigurationError(
                    f"Unit '{spec.unit_id}' depends on unknown unit(s): {', '.join(unknown)}"
                )
            if spec.unit_id in spec.depends_on:
                raise RegistryConfigurationError(
                    f"Unit '{spec.unit_id}' declares a dependency on itself"
                )
        for rule in self._definition.effects:
            for unit_id in (rule.source_unit, rule.target_unit):
                if unit_id not in self._units:
                    raise RegistryConfigurationError(
                        f"Effect rule references unknown unit '{unit_id}'"
                    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UnitRegistry:
        try:
            definition = RegistryDefinition.model_validate(data)
        except ValidationError as e:
            raise RegistryConfigurationError(f"Invalid registry definition: {e}") from e
        return cls(definition)

    @classmethod
    def from_file(cls, path: Path) -> UnitRegistry:
        """Load a registry from a JSON document."""
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryConfigurationError(f"Failed to read registry '{path}': {e}") from e
        return cls.from_dict(data)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def domains(self) -> list[str]:
        return list(self._domain_units)

    @property
    def system_priority(self) -> list[str]:
        return list(self._definition.system_priority)

    @property
    def effects(self) -> list[EffectRuleDefinition]:
        return list(self._definition.effects)

    def has_domain(self, domain: str) -> bool:
        return domain in self._domain_units

    def get(self, unit_id: str) -> UnitSpec:
        return self._units[unit_id]

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._units

    def __len__(self) -> int:
        return len(self._units)

    def default_unit(self, domain: str) -> UnitSpec | None:
        for spec in self._domain_units.get(domain, []):
            if spec.default_if_ambiguous:
                return spec
        return None

    def declaration_index(self, unit_id: str) -> int:
        return self._order[unit_id]

    def category_level(self, category: Category) -> int:
        return self._category_levels[category]

    def dependency_edges(self, unit_ids: Iterable[str] | None = None) -> list[tuple[str, str]]:
        """Declared (upstream, downstream) edges, optionally restricted to a unit set."""
        allowed = set(self._units) if unit_ids is None else set(unit_ids)
        edges: list[tuple[str, str]] = []
        for spec in sorted(self._units.values(), key=lambda s: self._order[s.unit_id]):
            if spec.unit_id not in allowed:
                continue
            for dep in spec.depends_on:
                if dep in allowed:
                    edges.append((dep, spec.unit_id))
        return edges

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_units(self, query: Query) -> Selection:
        """Select the units a classified query should run.

        Pure and deterministic: the same triples always select the same units
        in registry declaration order.

        Raises:
            SelectionError: If no unit is selected
        """
        chosen: set[str] = set()
        explicit: set[str] = set()
        ambiguous: set[str] = set()
        ambiguous_domains: list[str] = []
        warnings: list[str] = []

        for triple in query.triples:
            if not self.has_domain(triple.domain_tag):
                message = f"Unrecognized domain tag '{triple.domain_tag}' skipped"
                if message not in warnings:
                    warnings.append(message)
                    logger.warning(message)
                continue

            matched = [
                spec.unit_id
                for spec in self._domain_units[triple.domain_tag]
                if matches_keywords(spec.trigger_keywords, triple.keywords)
            ]
            if matched:
                chosen.update(matched)
                explicit.update(matched)
                continue

            fallback = self.default_unit(triple.domain_tag)
            if triple.domain_tag not in ambiguous_domains:
                ambiguous_domains.append(triple.domain_tag)
            if fallback is None:
                message = (
                    f"No unit in domain '{triple.domain_tag}' matched and the "
                    "domain has no default unit"
                )
                if message not in warnings:
                    warnings.append(message)
                    logger.warning(message)
                continue
            chosen.add(fallback.unit_id)
            ambiguous.add(fallback.unit_id)
            logger.debug(
                f"Domain '{triple.domain_tag}' ambiguous for sub-topic "
                f"'{triple.sub_topic}', using default unit '{fallback.unit_id}'"
            )

        # A default also matched explicitly by another triple is not ambiguous
        ambiguous -= explicit

        if not chosen:
            raise SelectionError(warnings=warnings)

        units = sorted((self._units[u] for u in chosen), key=lambda s: self._order[s.unit_id])
        logger.info(
            f"Selected {len(units)} unit(s): {', '.join(s.unit_id for s in units)}"
        )
        return Selection(
            units=units,
            ambiguous_units=ambiguous,
            ambiguous_domains=ambiguous_domains,
            warnings=warnings,
        )
