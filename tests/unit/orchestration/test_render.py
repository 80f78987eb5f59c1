"""Tests for Markdown rendering of reports and diagnostics."""

import pytest

from dispatchkit.core.exceptions import StaticCycleError
from dispatchkit.services.orchestration.aggregator import ResultAggregator
from dispatchkit.services.orchestration.conflict_resolver import ConflictResolver
from dispatchkit.services.orchestration.models import Category, UnitStatus
from dispatchkit.services.orchestration.phase_sequencer import PhaseSequencer
from dispatchkit.services.orchestration.render import (
    confidence_label,
    render_diagnostic,
    render_markdown,
)
from tests.helpers.fake_unit_invokers import ok_result, rec


@pytest.fixture
def report(registry):
    results = [
        ok_result("db.tuning", rec("fill_factor", 0.7, Category.DATA_INTEGRITY, 0.6), confidence=0.8),
        ok_result("cache.policy", rec("fill_factor", 0.9, Category.PERFORMANCE, 0.6), confidence=0.4,
                  status=UnitStatus.LOW_CONFIDENCE),
    ]
    resolution = ConflictResolver(registry).resolve(results)
    sequencing = PhaseSequencer(registry).sequence(resolution.accepted, results, resolution.winners)
    return ResultAggregator(registry).build_report(
        results, resolution, sequencing, warnings=["Unrecognized domain tag 'nosql' skipped"]
    )


class TestConfidenceLabel:
    @pytest.mark.parametrize(
        "value,label", [(0.9, "High"), (0.7, "High"), (0.6, "Medium"), (0.5, "Medium"), (0.2, "Low")]
    )
    def test_labels(self, value, label):
        assert confidence_label(value) == label


class TestRenderMarkdown:
    def test_full_report_sections(self, report):
        text = render_markdown(report)
        assert text.startswith("## Merged Analysis")
        assert "### Unit Contributions" in text
        assert "| cache.policy | low_confidence | 0.40 | degraded | RETRY |" in text
        assert "### Conflicts" in text
        assert "`weighted_priority`" in text
        assert "Mitigation:" in text
        assert "**Phase 1**" in text
        assert "`db.tuning.fill_factor` = 0.7" in text
        assert "**Human Review Required**: yes" in text
        assert "Unrecognized domain tag 'nosql' skipped" in text
        assert text.endswith("\n")

    def test_summary_mode(self, report):
        text = render_markdown(report, summary=True)
        assert text.startswith("**Merged** [db.tuning, cache.policy]")
        assert "Conflicts: 1 (0 unresolved)" in text
        assert "**Start with**: db.tuning.fill_factor=0.7" in text
        assert "### Unit Contributions" not in text


class TestRenderDiagnostic:
    def test_static_cycle(self):
        diagnostic = StaticCycleError([("a", "b"), ("b", "a")]).to_dict()
        text = render_diagnostic(diagnostic)
        assert "**Error Type**: StaticCycleError" in text
        assert "**Code**: static_dependency_cycle" in text
        assert "- a -> b" in text
        assert "- b -> a" in text
