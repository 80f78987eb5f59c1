"""Tests for the guarded unit invocation boundary."""

import asyncio

import pytest

from dispatchkit.services.orchestration.invocation import InvocationGuard
from dispatchkit.services.orchestration.models import (
    Category,
    Query,
    Recommendation,
    UnitResult,
    UnitStatus,
)
from tests.helpers.fake_unit_invokers import ScriptedUnitInvoker, ok_result, rec

QUERY = Query(text="tune", triples=(), constraints={"fill_factor": "0.7"})


class TestInvocationFailures:
    @pytest.mark.asyncio
    async def test_success_passes_through(self):
        invoker = ScriptedUnitInvoker(
            script={"u": ok_result("u", rec("f", 1, Category.SECURITY), confidence=0.8)}
        )
        guarded = await InvocationGuard(invoker, timeout_seconds=1.0).invoke("u", QUERY, {})
        assert guarded.result.status is UnitStatus.OK
        assert guarded.result.confidence == 0.8
        assert guarded.result.elapsed_ms >= 0
        assert guarded.warnings == []
        assert invoker.calls[0].constraints == {"fill_factor": "0.7"}

    @pytest.mark.asyncio
    async def test_exception_becomes_error_result(self):
        invoker = ScriptedUnitInvoker(script={"u": RuntimeError("model unavailable")})
        guarded = await InvocationGuard(invoker, timeout_seconds=1.0).invoke("u", QUERY, {})
        assert guarded.result.status is UnitStatus.ERROR
        assert guarded.result.confidence == 0.0
        assert "RuntimeError: model unavailable" in guarded.result.error
        assert guarded.warnings == ["Unit 'u' failed: RuntimeError: model unavailable"]

    @pytest.mark.asyncio
    async def test_timeout_becomes_error_result(self):
        invoker = ScriptedUnitInvoker(delays={"u": 1.0})
        guarded = await InvocationGuard(invoker, timeout_seconds=0.05).invoke("u", QUERY, {})
        assert guarded.result.status is UnitStatus.ERROR
        assert "timed out" in guarded.result.error

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        invoker = ScriptedUnitInvoker(delays={"u": 1.0})
        task = asyncio.create_task(
            InvocationGuard(invoker, timeout_seconds=5.0).invoke("u", QUERY, {})
        )
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    @pytest.mark.asyncio
    async def test_upstream_results_forwarded(self):
        invoker = ScriptedUnitInvoker()
        upstream = {"a": ok_result("a")}
        await InvocationGuard(invoker, timeout_seconds=1.0).invoke("u", QUERY, upstream)
        assert invoker.call_for("u").upstream_ids == ["a"]


class TestOutputChecks:
    @pytest.mark.asyncio
    async def test_non_result_rejected(self):
        invoker = ScriptedUnitInvoker(script={"u": {"unit_id": "u"}})
        guarded = await InvocationGuard(invoker, timeout_seconds=1.0).invoke("u", QUERY, {})
        assert guarded.result.status is UnitStatus.ERROR
        assert "expected UnitResult" in guarded.result.error

    @pytest.mark.asyncio
    async def test_result_for_other_unit_rejected(self):
        invoker = ScriptedUnitInvoker(script={"u": ok_result("v")})
        guarded = await InvocationGuard(invoker, timeout_seconds=1.0).invoke("u", QUERY, {})
        assert guarded.result.unit_id == "u"
        assert guarded.result.status is UnitStatus.ERROR
        assert "'v'" in guarded.result.error

    @pytest.mark.asyncio
    async def test_out_of_range_values_clamped(self):
        raw = UnitResult(
            unit_id="u",
            recommendations=(
                Recommendation(
                    field="f", value=1, category=Category.SECURITY, strength=1.4,
                    secondary_categories=((Category.PERFORMANCE, -0.2),),
                ),
            ),
            confidence=1.2,
            status=UnitStatus.OK,
        )
        invoker = ScriptedUnitInvoker(script={"u": raw})
        guarded = await InvocationGuard(invoker, timeout_seconds=1.0).invoke("u", QUERY, {})
        result = guarded.result
        assert result.confidence == 1.0
        assert result.recommendations[0].strength == 1.0
        assert result.recommendations[0].secondary_categories == ((Category.PERFORMANCE, 0.0),)
        assert len(guarded.warnings) == 3

    @pytest.mark.asyncio
    async def test_repeated_field_keeps_first(self):
        raw = ok_result("u", rec("f", 1, Category.SECURITY), rec("f", 2, Category.SECURITY))
        invoker = ScriptedUnitInvoker(script={"u": raw})
        guarded = await InvocationGuard(invoker, timeout_seconds=1.0).invoke("u", QUERY, {})
        assert [r.value for r in guarded.result.recommendations] == [1]
        assert any("repeated field 'f'" in w for w in guarded.warnings)
