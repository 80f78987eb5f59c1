"""Guarded invocation of analysis units.

InvocationGuard is the only place the core calls a UnitInvoker. It enforces
the per-unit timeout, converts failures into error results, and checks the
shape of what came back:
- a result for a different unit, or not a UnitResult at all, is an error
- confidence and strengths outside [0, 1] are clamped with a warning
- repeated fields within one unit keep the first recommendation

Cancellation is not swallowed: the run-level timeout cancels in-flight
invocations and the coordinator records them as error results.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from loguru import logger

from dispatchkit.core.exceptions import InvocationError
from dispatchkit.services.orchestration.models import (
    Query,
    Recommendation,
    UnitResult,
)

if TYPE_CHECKING:
    from dispatchkit.interfaces.unit_invoker import UnitInvoker


@dataclass
class GuardedResult:
    """A unit result plus any output-check warnings raised while accepting it."""

    result: UnitResult
    warnings: list[str] = field(default_factory=list)


def _clamp(value: float) -> float:
    return min(1.0, max(0.0, value))


class InvocationGuard:
    """Wraps a UnitInvoker with a timeout and result checks."""

    def __init__(self, invoker: UnitInvoker, timeout_seconds: float):
        self._invoker = invoker
        self._timeout = timeout_seconds

    async def invoke(
        self,
        unit_id: str,
        query: Query,
        upstream_results: Mapping[str, UnitResult],
    ) -> GuardedResult:
        """Invoke one unit; never raises except on cancellation."""
        start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(
                self._invoker.invoke(
                    unit_id, query, dict(query.constraints), dict(upstream_results)
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            error = InvocationError(
                unit_id, f"timed out after {self._timeout:g}s", timed_out=True
            )
            return self._failed(error, start)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = InvocationError(unit_id, f"{type(e).__name__}: {e}")
            return self._failed(error, start)

        elapsed_ms = (time.perf_counter() - start) * 1000
        return self._check(unit_id, raw, elapsed_ms)

    def _failed(self, error: InvocationError, start: float) -> GuardedResult:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.warning(str(error))
        return GuardedResult(
            result=UnitResult.error_result(error.unit_id, error.reason, elapsed_ms),
            warnings=[str(error)],
        )

    def _check(self, unit_id: str, raw: object, elapsed_ms: float) -> GuardedResult:
        if not isinstance(raw, UnitResult):
            error = InvocationError(
                unit_id, f"invoker returned {type(raw).__name__}, expected UnitResult"
            )
            logger.warning(str(error))
            return GuardedResult(
                result=UnitResult.error_result(unit_id, error.reason, elapsed_ms),
                warnings=[str(error)],
            )
        if raw.unit_id != unit_id:
            error = InvocationError(
                unit_id, f"invoker returned a result for unit '{raw.unit_id}'"
            )
            logger.warning(str(error))
            return GuardedResult(
                result=UnitResult.error_result(unit_id, error.reason, elapsed_ms),
                warnings=[str(error)],
            )

        warnings: list[str] = []
        confidence = raw.confidence
        if not 0.0 <= confidence <= 1.0:
            confidence = _clamp(confidence)
            warnings.append(
                f"Unit '{unit_id}' confidence {raw.confidence} outside [0.0, 1.0]; "
                f"clamped to {confidence}"
            )

        recommendations: list[Recommendation] = []
        seen_fields: set[str] = set()
        for rec in raw.recommendations:
            if rec.field in seen_fields:
                warnings.append(
                    f"Unit '{unit_id}' repeated field '{rec.field}'; keeping the first value"
                )
                continue
            seen_fields.add(rec.field)
            if not 0.0 <= rec.strength <= 1.0:
                warnings.append(
                    f"Unit '{unit_id}' strength {rec.strength} for '{rec.field}' "
                    "outside [0.0, 1.0]; clamped"
                )
                rec = replace(rec, strength=_clamp(rec.strength))
            if any(not 0.0 <= s <= 1.0 for _, s in rec.secondary_categories):
                warnings.append(
                    f"Unit '{unit_id}' secondary strengths for '{rec.field}' "
                    "outside [0.0, 1.0]; clamped"
                )
                rec = replace(
                    rec,
                    secondary_categories=tuple(
                        (cat, _clamp(s)) for cat, s in rec.secondary_categories
                    ),
                )
            recommendations.append(rec)

        for message in warnings:
            logger.warning(message)

        result = replace(
            raw,
            confidence=confidence,
            recommendations=tuple(recommendations),
            elapsed_ms=elapsed_ms,
        )
        logger.debug(
            f"Unit '{unit_id}' returned status={result.status.value} "
            f"confidence={result.confidence:.2f} "
            f"recommendations={len(result.recommendations)} in {elapsed_ms:.0f}ms"
        )
        return GuardedResult(result=result, warnings=warnings)
