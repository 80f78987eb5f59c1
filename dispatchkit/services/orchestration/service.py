"""Orchestration service: drives one run from query to merged report.

Pipeline: select -> plan -> dispatch waves -> resolve -> sequence -> aggregate.

The coroutine calling ``run`` is the only owner of per-run state. Unit tasks
return their results through their futures; nothing they do mutates the
collections built here.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from loguru import logger

from dispatchkit.core.config.logging_config import setup_logging
from dispatchkit.core.config.orchestration_config import OrchestrationConfig
from dispatchkit.core.exceptions import OrchestrationFatalError
from dispatchkit.services.orchestration.aggregator import ResultAggregator
from dispatchkit.services.orchestration.conflict_resolver import ConflictResolver
from dispatchkit.services.orchestration.invocation import GuardedResult, InvocationGuard
from dispatchkit.services.orchestration.models import (
    DispatchPlan,
    MergedReport,
    Query,
    RunOutcome,
    UnitResult,
)
from dispatchkit.services.orchestration.phase_sequencer import PhaseSequencer
from dispatchkit.services.orchestration.registry import UnitRegistry
from dispatchkit.services.orchestration.wave_scheduler import WaveScheduler

if TYPE_CHECKING:
    from dispatchkit.interfaces.classification_adapter import ClassificationAdapter
    from dispatchkit.interfaces.unit_invoker import UnitInvoker

NOT_STARTED_REASON = "not started: run timeout"
CANCELLED_REASON = "cancelled: run timeout"


class OrchestrationService:
    """Runs classified queries against a unit registry."""

    def __init__(
        self,
        registry: UnitRegistry,
        invoker: UnitInvoker,
        config: OrchestrationConfig | None = None,
        classifier: ClassificationAdapter | None = None,
        configure_logging: bool = False,
    ):
        """Wire the pipeline stages from one configuration.

        Args:
            registry: Units, domains and effect rules for every run
            invoker: Runs a single unit against a query
            config: Orchestration settings; defaults are loaded when omitted
            classifier: Turns free text into a classified query
            configure_logging: Install loguru sinks from ``config.logging``.
                Off by default so embedding applications keep their sinks.
        """
        self._registry = registry
        self._config = config or OrchestrationConfig()
        if configure_logging:
            setup_logging(config=self._config.logging)
        self._classifier = classifier
        self._guard = InvocationGuard(invoker, self._config.unit_timeout_seconds)
        self._scheduler = WaveScheduler(registry, self._config.max_units_per_wave)
        self._resolver = ConflictResolver(
            registry,
            system_priority=self._config.system_priority,
            tie_tolerance=self._config.tie_tolerance,
        )
        self._sequencer = PhaseSequencer(registry)
        self._aggregator = ResultAggregator(
            registry,
            low_confidence_threshold=self._config.low_confidence_threshold,
            low_fidelity_cap=self._config.low_fidelity_cap,
        )

    async def run(self, query: Query) -> MergedReport:
        """Run the full pipeline for a classified query.

        Raises:
            SelectionError: If the query selects no units
            StaticCycleError: If the selected units' declared dependencies cycle
        """
        logger.info(f"Orchestration run started for query: {query.text[:80]!r}")
        selection = self._registry.select_units(query)
        plan = self._scheduler.plan(selection.unit_ids)

        warnings = list(selection.warnings)
        results, dispatch_warnings = await self._dispatch(plan, query)
        warnings.extend(dispatch_warnings)

        resolution = self._resolver.resolve(results, query.constraints)
        warnings.extend(resolution.warnings)

        sequencing = self._sequencer.sequence(
            resolution.accepted, results, resolution.winners
        )
        warnings.extend(sequencing.warnings)

        return self._aggregator.build_report(
            results,
            resolution,
            sequencing,
            plan=plan,
            selection=selection,
            warnings=warnings,
        )

    async def execute(self, query: Query) -> RunOutcome:
        """Run the pipeline, turning fatal errors into a diagnostic."""
        try:
            report = await self.run(query)
        except OrchestrationFatalError as e:
            logger.error(f"Orchestration run aborted: {e}")
            return RunOutcome(diagnostic=e.to_dict())
        return RunOutcome(report=report)

    async def classify_and_run(self, text: str) -> RunOutcome:
        """Classify free text with the configured adapter, then execute."""
        if self._classifier is None:
            raise ValueError("No classification adapter configured")
        payload: dict[str, Any] = dict(await self._classifier.classify(text))
        payload.setdefault("query", text)
        return await self.execute(Query.from_classification(payload))

    async def _dispatch(
        self, plan: DispatchPlan, query: Query
    ) -> tuple[list[UnitResult], list[str]]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.run_timeout_seconds
        collected: dict[str, UnitResult] = {}
        warnings: list[str] = []
        timed_out = False

        for index, wave in enumerate(plan.waves):
            remaining = deadline - loop.time()
            if timed_out or remaining <= 0:
                timed_out = True
                for unit_id in wave:
                    collected[unit_id] = UnitResult.error_result(unit_id, NOT_STARTED_REASON)
                    warnings.append(f"Unit '{unit_id}' {NOT_STARTED_REASON}")
                continue

            logger.debug(f"Dispatching wave {index}: {', '.join(wave)}")
            tasks: dict[asyncio.Task[GuardedResult], str] = {
                asyncio.create_task(
                    self._guard.invoke(unit_id, query, self._upstream(unit_id, collected)),
                    name=f"dispatchkit-unit-{unit_id}",
                ): unit_id
                for unit_id in wave
            }
            done, pending = await asyncio.wait(tasks, timeout=remaining)

            if pending:
                timed_out = True
                logger.warning(
                    f"Run timeout reached during wave {index}; cancelling "
                    f"{len(pending)} in-flight unit(s)"
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

            for task, unit_id in tasks.items():
                if task in done and not task.cancelled():
                    guarded = task.result()
                    collected[unit_id] = guarded.result
                    warnings.extend(guarded.warnings)
                else:
                    collected[unit_id] = UnitResult.error_result(unit_id, CANCELLED_REASON)
                    warnings.append(f"Unit '{unit_id}' {CANCELLED_REASON}")

        return [collected[unit_id] for unit_id in plan.unit_ids], warnings

    def _upstream(
        self, unit_id: str, collected: Mapping[str, UnitResult]
    ) -> dict[str, UnitResult]:
        return {
            dep: collected[dep]
            for dep in self._registry.get(unit_id).depends_on
            if dep in collected
        }
