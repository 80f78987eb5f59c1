"""Markdown rendering of merged reports and fatal-run diagnostics."""

from __future__ import annotations

from typing import Any

from dispatchkit.core.constants import CONFIDENCE_PASS, CONFIDENCE_WARN
from dispatchkit.services.orchestration.models import ConflictStatus, MergedReport

SUMMARY_TEXT_LIMIT = 200


def confidence_label(confidence: float) -> str:
    if confidence >= CONFIDENCE_PASS:
        return "High"
    if confidence >= CONFIDENCE_WARN:
        return "Medium"
    return "Low"


def _truncate(text: str, limit: int = SUMMARY_TEXT_LIMIT) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def render_markdown(report: MergedReport, summary: bool = False) -> str:
    """Render a merged report as Markdown.

    Args:
        report: Report to render
        summary: Emit a short header-plus-recommendation block instead of the
            full report

    Returns:
        Markdown text ending with a newline
    """
    if summary:
        return _render_summary(report)

    label = confidence_label(report.aggregate_confidence)
    lines = [
        "## Merged Analysis",
        "",
        f"**Units Dispatched**: {', '.join(report.units_dispatched) or 'none'}",
        f"**Aggregate Confidence**: {report.aggregate_confidence:.2f} ({label})",
    ]
    if report.requires_human_review:
        lines.append("**Human Review Required**: yes")
    lines.append("")

    lines += [
        "### Unit Contributions",
        "",
        "| Unit | Status | Confidence | Fidelity | Gate |",
        "|------|--------|------------|----------|------|",
    ]
    for c in report.contributions:
        unit = f"{c.unit_id} (default)" if c.ambiguous else c.unit_id
        lines.append(
            f"| {unit} | {c.status.value} | {c.confidence:.2f} | "
            f"{c.fidelity.value} | {c.confidence_gate} |"
        )
    lines.append("")

    if report.conflicts:
        lines += ["### Conflicts", ""]
        for conflict in report.conflicts:
            a, b = conflict.side_a, conflict.side_b
            header = (
                f"- **{conflict.field}** ({conflict.conflict_id}): "
                f"{a.unit_id}={a.recommendation.value!r} vs "
                f"{b.unit_id}={b.recommendation.value!r}"
            )
            if conflict.status is ConflictStatus.UNRESOLVED:
                lines.append(f"{header} | **unresolved**: {conflict.rationale}")
                continue
            lines.append(
                f"{header} | winner: {conflict.winning_value!r} "
                f"via `{conflict.rule_applied}`"
            )
            lines.append(f"  - Mitigation: {conflict.mitigation}")
        lines.append("")

    if report.phases:
        lines += ["### Implementation Order", ""]
        for phase in report.phases:
            lines.append(f"**Phase {phase.number}**")
            for action in phase.actions:
                entry = f"- `{action.action_id}` = {action.value!r}"
                if action.depends_on:
                    entry += f" (after {', '.join(action.depends_on)})"
                lines.append(entry)
            lines.append("")

    if report.broken_edges:
        lines += ["### Broken Dependencies", ""]
        lines += [f"- {b.edge.label}: {b.rationale}" for b in report.broken_edges]
        lines.append("")

    if report.notes:
        lines += ["### Notes", ""]
        lines += [f"> {note}" for note in report.notes]
        lines.append("")

    if report.warnings:
        lines += ["### Warnings", ""]
        lines += [f"- {w}" for w in report.warnings]
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def _render_summary(report: MergedReport) -> str:
    unresolved = len(report.unresolved_conflicts)
    header = (
        f"**Merged** [{', '.join(report.units_dispatched)}] | "
        f"Confidence: {report.aggregate_confidence:.2f} "
        f"({confidence_label(report.aggregate_confidence)}) | "
        f"Conflicts: {len(report.conflicts)} ({unresolved} unresolved) | "
        f"Phases: {len(report.phases)}"
    )
    lines = [header, ""]
    first_actions = report.phases[0].actions if report.phases else ()
    if first_actions:
        text = ", ".join(f"{a.action_id}={a.value!r}" for a in first_actions)
        lines += [f"**Start with**: {_truncate(text)}", ""]
    if report.requires_human_review:
        lines += ["**Human review required**", ""]
    lines.append("> Render without summary for the full report")
    return "\n".join(lines) + "\n"


def render_diagnostic(diagnostic: dict[str, Any]) -> str:
    """Render the diagnostic of a run aborted by a fatal error."""
    lines = [
        "## Orchestration Error",
        "",
        f"**Error Type**: {diagnostic.get('error_type', 'unknown')}",
        f"**Code**: {diagnostic.get('code', 'unknown')}",
        "",
        str(diagnostic.get("error", "Unknown error")),
    ]
    edges = diagnostic.get("edges") or []
    if edges:
        lines += ["", "Offending edges:"]
        lines += [f"- {src} -> {dst}" for src, dst in edges]
    warnings = diagnostic.get("warnings") or []
    if warnings:
        lines += ["", "Warnings:"]
        lines += [f"- {w}" for w in warnings]
    return "\n".join(lines) + "\n"
