"""Markdown report of a generation's runs and mined patterns."""

from __future__ import annotations

from indesign_evolution.analysis import stats
from indesign_evolution.analysis.patterns import Pattern
from indesign_evolution.evolution.state import TestRun, scored

_SEVERITY_ORDER = ("high", "medium", "low")


def format_pattern_report(
    runs: list[TestRun],
    patterns: list[Pattern],
    test_case: str,
    reference: str | None = None,
) -> str:
    total = len(runs)
    scores = scored(runs)
    generation = runs[0].generation if runs else 0

    lines = [
        f"# Generation {generation} analysis: {test_case}",
        "",
    ]
    if reference:
        lines += [f"Reference: {reference}", ""]

    lines += [
        "## Runs",
        "",
        "| Agent | Score | Tool calls | Errors | Telemetry |",
        "|---|---|---|---|---|",
    ]
    for run in runs:
        errors = sum(1 for c in run.telemetry.calls if c.result == "error")
        score = f"{run.score:.1f}" if run.score is not None else "n/a"
        source = "inferred" if run.synthesized else "captured"
        lines.append(
            f"| {run.agent_id} | {score} | {len(run.telemetry.calls)} | {errors} | {source} |"
        )

    lines += ["", "## Scores", ""]
    if scores:
        lines += [
            f"- Average: {stats.mean(scores):.1f}",
            f"- Best: {max(scores):.1f}",
            f"- Worst: {min(scores):.1f}",
            f"- Std dev: {stats.std(scores):.1f}",
        ]
    else:
        lines.append("- No scored runs")

    lines += ["", f"## Patterns ({len(patterns)})", ""]
    if not patterns:
        lines.append("No patterns met the frequency and confidence thresholds.")
    for severity in _SEVERITY_ORDER:
        group = [p for p in patterns if p.severity == severity]
        if not group:
            continue
        lines += [f"### {severity.capitalize()} severity", ""]
        for p in group:
            lines.append(
                f"- **{p.type}**: {p.description} "
                f"({p.frequency}/{total} agents, confidence {p.confidence:.0%})"
            )
            for example in p.examples[:3]:
                lines.append(f"  - {example.agent_id}: {example.evidence}")
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"
