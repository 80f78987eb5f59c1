"""Wave scheduler: turns selected units into a dependency-respecting plan.

Declared dependencies come from static registry data, so a cycle among them is
a configuration bug. It fails the run immediately with the offending edges
rather than being broken heuristically (compare the runtime cycle breaking in
the phase sequencer, which works on discovered dependencies).
"""

from __future__ import annotations

from collections.abc import Iterable

from loguru import logger

from dispatchkit.core.exceptions import StaticCycleError
from dispatchkit.services.orchestration.graph import depth_layers, find_cycle
from dispatchkit.services.orchestration.models import DispatchPlan
from dispatchkit.services.orchestration.registry import UnitRegistry

DEFAULT_MAX_UNITS_PER_WAVE = 3


class WaveScheduler:
    """Partitions selected units into ordered, concurrency-bounded waves."""

    def __init__(
        self, registry: UnitRegistry, max_units_per_wave: int = DEFAULT_MAX_UNITS_PER_WAVE
    ):
        if max_units_per_wave < 1:
            raise ValueError(f"max_units_per_wave must be >= 1, got {max_units_per_wave}")
        self._registry = registry
        self._max_units_per_wave = max_units_per_wave

    def plan(self, unit_ids: Iterable[str]) -> DispatchPlan:
        """Build the dispatch plan for the given units.

        Args:
            unit_ids: Selected unit ids (any order; registry order is used)

        Returns:
            DispatchPlan whose waves honor every declared dependency among
            the selected units and never exceed the wave cap

        Raises:
            StaticCycleError: If the declared dependencies form a cycle
        """
        selected = sorted(set(unit_ids), key=self._registry.declaration_index)
        edges = self._registry.dependency_edges(selected)

        successors: dict[str, list[str]] = {unit_id: [] for unit_id in selected}
        for src, dst in edges:
            successors[src].append(dst)

        cycle = find_cycle(selected, successors)
        if cycle:
            logger.error(
                "Static dependency cycle in registry: "
                + ", ".join(f"{a} -> {b}" for a, b in cycle)
            )
            raise StaticCycleError(cycle)

        waves: list[tuple[str, ...]] = []
        for layer in depth_layers(selected, edges):
            waves.extend(self._split(layer))

        plan = DispatchPlan(waves=tuple(waves), edges=tuple(edges))
        logger.info(
            f"Dispatch plan: {len(plan.waves)} wave(s) for {len(selected)} unit(s) "
            f"(cap {self._max_units_per_wave})"
        )
        for index, wave in enumerate(plan.waves):
            logger.debug(f"Wave {index}: {', '.join(wave)}")
        return plan

    def _split(self, layer: list[str]) -> list[tuple[str, ...]]:
        # Members of one layer share no edges, so any split stays correct
        cap = self._max_units_per_wave
        return [tuple(layer[i:i + cap]) for i in range(0, len(layer), cap)]
