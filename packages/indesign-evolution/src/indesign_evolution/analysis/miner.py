"""Pattern mining across a generation's trials.

Every detector groups evidence by a signature and counts the distinct agents
that exhibit it; occurrence counts only feed consistency checks. Confidence
starts at ``frequency / total_runs`` and is weighted down when the evidence
behind a signature disagrees with itself.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from typing import Any

import structlog

from indesign_evolution.analysis import stats
from indesign_evolution.analysis.patterns import Pattern, PatternExample, PatternType
from indesign_evolution.comparison import Deviation
from indesign_evolution.config import PatternConfig
from indesign_evolution.evolution.state import TestRun

logger = structlog.get_logger()

_MAX_EXAMPLES = 5


class _Evidence:
    """Per-signature accumulator: first evidence per agent plus raw values."""

    def __init__(self) -> None:
        self.examples: dict[str, PatternExample] = {}
        self.values: list[float] = []

    def add(self, agent_id: str, evidence: str, deviation: Deviation | None = None) -> None:
        self.examples.setdefault(agent_id, PatternExample(agent_id, evidence, deviation))

    @property
    def agents(self) -> list[str]:
        return list(self.examples)


class PatternMiner:
    """Aggregates telemetry and scores into ranked patterns."""

    def __init__(self, config: PatternConfig | None = None) -> None:
        self._config = config or PatternConfig()

    @property
    def config(self) -> PatternConfig:
        return self._config

    def analyze(self, runs: list[TestRun]) -> list[Pattern]:
        """Mine, filter and rank patterns for one generation."""
        if not runs:
            return []

        total = len(runs)
        scores = {r.agent_id: (r.score if r.score is not None else 0.0) for r in runs}

        candidates = self._visual_deviations(runs, total)
        if any(r.telemetry.calls for r in runs):
            candidates += self._parameter_choices(runs, total, scores)
            candidates += self._errors(runs, total)
            candidates += self._missing_tools(runs, total)
            candidates += self._sequences(runs, total, scores)
            candidates += self._redundant_calls(runs, total)

        cfg = self._config
        surfaced = [
            p for p in candidates
            if p.frequency >= cfg.min_frequency and p.confidence >= cfg.confidence_threshold
        ]
        surfaced.sort(key=lambda p: (-p.significance, p.type, p.description))

        logger.info(
            "patterns_mined",
            runs=total,
            candidates=len(candidates),
            surfaced=len(surfaced),
        )
        return surfaced

    # ------------------------------------------------------------------ #
    # Construction helpers
    # ------------------------------------------------------------------ #

    def _pattern(
        self,
        kind: PatternType,
        evidence: _Evidence,
        total: int,
        description: str,
        signature: dict[str, Any],
        weight: float = 1.0,
    ) -> Pattern:
        frequency = len(evidence.examples)
        confidence = min(1.0, frequency / total) * weight
        return Pattern(
            type=kind,
            frequency=frequency,
            description=description,
            confidence=round(confidence, 4),
            severity=stats.severity_for(frequency, total),  # type: ignore[arg-type]
            examples=list(evidence.examples.values())[:_MAX_EXAMPLES],
            signature=signature,
        )

    def _consistency_weight(self, values: list[float]) -> float:
        if stats.coefficient_of_variation(values) > self._config.inconsistency_cv:
            return self._config.inconsistency_penalty
        return 1.0

    def _mean_score(self, agents: list[str], scores: dict[str, float]) -> float:
        return stats.mean([scores.get(a, 0.0) for a in agents])

    # ------------------------------------------------------------------ #
    # Detectors
    # ------------------------------------------------------------------ #

    def _visual_deviations(self, runs: list[TestRun], total: int) -> list[Pattern]:
        groups: dict[tuple[str, str], _Evidence] = defaultdict(_Evidence)
        for run in runs:
            if run.comparison is None:
                continue
            for dev in run.comparison.deviations:
                if abs(dev.deviation_percent) <= self._config.deviation_tolerance_percent:
                    continue
                key = (dev.field, dev.direction)
                groups[key].add(
                    run.agent_id,
                    f"{dev.field}: expected {dev.expected}, got {dev.actual} "
                    f"({dev.deviation_percent:+.1f}%)",
                    dev,
                )
                groups[key].values.append(abs(dev.deviation_percent))

        patterns = []
        for (field_name, direction), ev in groups.items():
            avg = stats.mean(ev.values)
            description = (
                f"{field_name} consistently {direction} reference by {avg:.1f}% on average"
            )
            patterns.append(self._pattern(
                "visual-deviation", ev, total, description,
                {"field": field_name, "direction": direction, "averageDeviation": round(avg, 2)},
                self._consistency_weight(ev.values),
            ))
        return patterns

    def _parameter_choices(
        self, runs: list[TestRun], total: int, scores: dict[str, float]
    ) -> list[Pattern]:
        groups: dict[tuple[str, str, str], _Evidence] = defaultdict(_Evidence)
        # (tool, param) -> agent -> Counter of values used by that agent
        usage: dict[tuple[str, str], dict[str, Counter[str]]] = defaultdict(
            lambda: defaultdict(Counter)
        )
        for run in runs:
            for call in run.telemetry.calls:
                if call.parameters.get("inferred"):
                    continue
                for param, raw in call.parameters.items():
                    if isinstance(raw, (dict, list)):
                        continue
                    value = str(raw)
                    groups[(call.tool, param, value)].add(
                        run.agent_id, f"{call.tool}({param}={value})"
                    )
                    usage[(call.tool, param)][run.agent_id][value] += 1

        patterns = []
        for (tool, param, value), ev in groups.items():
            agents = ev.agents
            avg_score = self._mean_score(agents, scores)
            if avg_score >= self._config.problem_score_threshold:
                continue
            per_agent = usage[(tool, param)]
            uses = sum(per_agent[a][value] for a in agents)
            all_uses = sum(sum(per_agent[a].values()) for a in agents)
            share = uses / all_uses if all_uses else 1.0
            description = (
                f"{tool} called with {param}={value} by agents averaging {avg_score:.1f}"
            )
            patterns.append(self._pattern(
                "parameter-choice", ev, total, description,
                {"tool": tool, "parameter": param, "value": value,
                 "averageScore": round(avg_score, 2)},
                share,
            ))
        return patterns

    def _errors(self, runs: list[TestRun], total: int) -> list[Pattern]:
        groups: dict[tuple[str, str], _Evidence] = defaultdict(_Evidence)
        for run in runs:
            for call in run.telemetry.calls:
                if call.result != "error":
                    continue
                message = call.error_message or "unknown error"
                groups[(call.tool, message)].add(run.agent_id, f"{call.tool}: {message}")

        return [
            self._pattern(
                "error-pattern", ev, total, f"{tool} fails with: {message}",
                {"tool": tool, "message": message},
            )
            for (tool, message), ev in groups.items()
        ]

    def _missing_tools(self, runs: list[TestRun], total: int) -> list[Pattern]:
        with_calls = [r for r in runs if r.telemetry.calls]
        patterns = []
        for group, tools in self._config.expected_tools.items():
            for tool in tools:
                ev = _Evidence()
                for run in with_calls:
                    if tool not in run.telemetry.tools_used:
                        ev.add(run.agent_id, f"never called {tool}")
                if not ev.examples:
                    continue
                patterns.append(self._pattern(
                    "missing-tool", ev, total, f"{tool} not used ({group})",
                    {"tool": tool, "group": group},
                ))
        return patterns

    def _sequences(
        self, runs: list[TestRun], total: int, scores: dict[str, float]
    ) -> list[Pattern]:
        groups: dict[tuple[str, ...], _Evidence] = defaultdict(_Evidence)
        for run in runs:
            tools = run.telemetry.tools_used
            seen: set[tuple[str, ...]] = set()
            for n in range(2, self._config.max_sequence_length + 1):
                for i in range(len(tools) - n + 1):
                    seq = tuple(tools[i:i + n])
                    if seq in seen:
                        continue
                    seen.add(seq)
                    groups[seq].add(run.agent_id, " -> ".join(seq))

        problematic: dict[tuple[str, ...], tuple[_Evidence, float]] = {}
        for seq, ev in groups.items():
            agents = ev.agents
            avg_score = self._mean_score(agents, scores)
            if avg_score < self._config.problem_score_threshold:
                problematic[seq] = (ev, avg_score)

        # Drop subsequences already explained by a longer sequence with the same agents
        kept = {
            seq: item for seq, item in problematic.items()
            if not any(
                len(other) > len(seq)
                and _contains(other, seq)
                and set(other_item[0].agents) == set(item[0].agents)
                for other, other_item in problematic.items()
            )
        }

        patterns = []
        for seq, (ev, avg_score) in kept.items():
            agent_scores = [scores.get(a, 0.0) for a in ev.agents]
            description = (
                f"sequence {' -> '.join(seq)} in runs averaging {avg_score:.1f}"
            )
            patterns.append(self._pattern(
                "tool-sequence", ev, total, description,
                {"sequence": list(seq), "tool": seq[0], "averageScore": round(avg_score, 2)},
                self._consistency_weight(agent_scores),
            ))
        return patterns

    def _redundant_calls(self, runs: list[TestRun], total: int) -> list[Pattern]:
        groups: dict[str, _Evidence] = defaultdict(_Evidence)
        for run in runs:
            counts = Counter(run.telemetry.tools_used)
            for tool, count in counts.items():
                if count > self._config.redundant_call_threshold:
                    groups[tool].add(run.agent_id, f"{tool} called {count} times")
                    groups[tool].values.append(float(count))

        return [
            self._pattern(
                "redundant-call", ev, total,
                f"{tool} called more than {self._config.redundant_call_threshold} times per run",
                {"tool": tool, "averageCalls": round(stats.mean(ev.values), 2)},
                self._consistency_weight(ev.values),
            )
            for tool, ev in groups.items()
        ]


def _contains(seq: tuple[str, ...], sub: tuple[str, ...]) -> bool:
    n = len(sub)
    return any(seq[i:i + n] == sub for i in range(len(seq) - n + 1))
