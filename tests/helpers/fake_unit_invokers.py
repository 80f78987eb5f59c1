"""Test-only fake unit invokers.

ScriptedUnitInvoker never calls a model. Each unit id maps to a script entry
that is either a UnitResult to return, an exception to raise, or any other
object to return as-is (for output-check tests). Every call is recorded.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from dispatchkit.services.orchestration.models import (
    Category,
    Query,
    Recommendation,
    UnitResult,
    UnitStatus,
)


@dataclass
class InvokeCall:
    unit_id: str
    constraints: dict[str, str]
    upstream_ids: list[str]
    started_at: float
    finished_at: float | None = None


def ok_result(
    unit_id: str,
    *recommendations: Recommendation,
    confidence: float = 0.9,
    status: UnitStatus = UnitStatus.OK,
) -> UnitResult:
    return UnitResult(
        unit_id=unit_id,
        recommendations=tuple(recommendations),
        confidence=confidence,
        status=status,
    )


def rec(field_name: str, value: Any, category: Category, strength: float = 0.6, **kwargs) -> Recommendation:
    return Recommendation(field=field_name, value=value, category=category, strength=strength, **kwargs)


@dataclass
class ScriptedUnitInvoker:
    """Returns scripted results, optionally after a per-unit delay."""

    script: dict[str, Any] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    calls: list[InvokeCall] = field(default_factory=list)
    default_confidence: float = 0.8

    async def invoke(
        self,
        unit_id: str,
        query: Query,
        constraints: Mapping[str, str],
        upstream_results: Mapping[str, UnitResult],
    ) -> UnitResult:
        loop = asyncio.get_running_loop()
        call = InvokeCall(
            unit_id=unit_id,
            constraints=dict(constraints),
            upstream_ids=sorted(upstream_results),
            started_at=loop.time(),
        )
        self.calls.append(call)

        delay = self.delays.get(unit_id, 0.0)
        if delay:
            await asyncio.sleep(delay)
        call.finished_at = loop.time()

        entry = self.script.get(unit_id)
        if isinstance(entry, BaseException):
            raise entry
        if entry is None:
            return ok_result(unit_id, confidence=self.default_confidence)
        return entry

    def call_for(self, unit_id: str) -> InvokeCall:
        for call in self.calls:
            if call.unit_id == unit_id:
                return call
        raise KeyError(unit_id)
