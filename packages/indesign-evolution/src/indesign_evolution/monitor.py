"""Progress reporting for evolution runs.

The monitor only observes: it logs events, appends them to a metrics file and
renders reports. It never changes loop state, and a failed metrics write is
logged rather than raised.
"""

from __future__ import annotations

import json
import time
from collections import Counter
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from indesign_evolution.analysis.patterns import Pattern
from indesign_evolution.evolution.state import ConvergenceState, GenerationResult
from indesign_evolution.improvements.model import Improvement, ImprovementResult

logger = structlog.get_logger()

_CHART_HEIGHT = 10


@dataclass
class EvolutionSummary:
    test_case: str
    start_score: float
    final_score: float
    best_score: float
    generations: int
    improvements_applied: int
    improvements_successful: int
    duration_s: float
    converged: bool

    @property
    def total_gain(self) -> float:
        return self.final_score - self.start_score

    def to_dict(self) -> dict[str, Any]:
        return {
            "testCase": self.test_case,
            "startScore": self.start_score,
            "finalScore": self.final_score,
            "bestScore": self.best_score,
            "generations": self.generations,
            "improvementsApplied": self.improvements_applied,
            "improvementsSuccessful": self.improvements_successful,
            "durationSeconds": self.duration_s,
            "converged": self.converged,
        }


class EvolutionMonitor:
    """Logs loop events and keeps a JSON metrics trail."""

    def __init__(self, test_case: str, metrics_dir: Path | None = None) -> None:
        self._test_case = test_case
        self._started = time.monotonic()
        self._entries: list[dict[str, Any]] = []
        self._metrics_file: Path | None = None
        if metrics_dir is not None:
            stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
            self._metrics_file = Path(metrics_dir) / f"evolution-metrics-{test_case}-{stamp}.json"

    @property
    def metrics_file(self) -> Path | None:
        return self._metrics_file

    @property
    def elapsed_s(self) -> float:
        return time.monotonic() - self._started

    def _record(self, event: str, **data: Any) -> None:
        self._entries.append({"event": event, "timestamp": datetime.now(UTC).isoformat(), **data})
        if self._metrics_file is None:
            return
        try:
            self._metrics_file.parent.mkdir(parents=True, exist_ok=True)
            self._metrics_file.write_text(
                json.dumps({"testCase": self._test_case, "entries": self._entries}, indent=2)
            )
        except OSError as exc:
            logger.warning("metrics_write_failed", path=str(self._metrics_file), error=str(exc))

    # ---- events ---- #

    def generation_started(self, generation: int, agent_count: int) -> None:
        logger.info("generation_start", generation=generation, agents=agent_count)
        self._record("generation_start", generation=generation, agentCount=agent_count)

    def generation_completed(self, result: GenerationResult) -> None:
        logger.info(
            "generation_complete",
            generation=result.generation,
            average_score=round(result.average_score, 2),
            best_score=round(result.best_score, 2),
            worst_score=round(result.worst_score, 2),
            patterns=len(result.patterns),
        )
        self._record(
            "generation_complete",
            generation=result.generation,
            averageScore=result.average_score,
            bestScore=result.best_score,
            worstScore=result.worst_score,
            runs=len(result.runs),
            synthesizedRuns=sum(1 for r in result.runs if r.synthesized),
        )

    def patterns_found(self, generation: int, patterns: list[Pattern]) -> None:
        by_severity = Counter(p.severity for p in patterns)
        logger.info(
            "patterns_found",
            generation=generation,
            total=len(patterns),
            high=by_severity["high"],
            medium=by_severity["medium"],
            low=by_severity["low"],
        )
        self._record(
            "patterns_found",
            generation=generation,
            patterns=[{"type": p.type, "description": p.description,
                       "frequency": p.frequency, "confidence": p.confidence} for p in patterns],
        )

    def improvement_applied(self, improvement: Improvement) -> None:
        logger.info(
            "improvement_applied",
            improvement_id=improvement.id,
            type=improvement.type,
            tool=improvement.tool,
            generation=improvement.generation,
        )
        self._record("improvement_applied", improvement=improvement.to_dict())

    def improvement_result(self, result: ImprovementResult) -> None:
        logger.info(
            "improvement_result",
            improvement_id=result.improvement.id,
            outcome=result.outcome,
            before=round(result.before_score, 2),
            after=round(result.after_score, 2),
            error=result.error,
        )
        self._record("improvement_result", result=result.to_dict())

    def convergence(self, generation: int, state: ConvergenceState) -> None:
        logger.info(
            "convergence_check",
            generation=generation,
            converged=state.has_converged,
            plateau=state.plateau_generations,
            best_score=round(state.best_score, 2),
            reason=state.reason,
        )
        self._record("convergence", generation=generation, state=state.to_dict())

    # ---- reports ---- #

    def generate_progress_report(
        self, score_history: list[float], improvements: list[Improvement]
    ) -> str:
        lines = [
            "# Evolution Progress Report",
            "",
            f"Generated: {datetime.now(UTC).isoformat(timespec='seconds')}",
            "",
            "## Score Progression",
            "```",
        ]
        if score_history:
            low, high = min(score_history), max(score_history)
            span = (high - low) or 1.0
            for step in range(_CHART_HEIGHT, -1, -1):
                threshold = low + span * step / _CHART_HEIGHT
                row = "".join(" * " if s >= threshold else "   " for s in score_history)
                lines.append(f"{threshold:3.0f}% |{row}")
            lines.append("     +" + "---" * len(score_history))
            lines.append("      " + "".join(f"G{i + 1} " for i in range(len(score_history))))
        else:
            lines.append("(no generations yet)")
        lines += ["```", "", "## Improvements Applied", f"Total: {len(improvements)}"]

        for kind, count in sorted(Counter(i.type for i in improvements).items()):
            lines.append(f"- {kind}: {count}")
        if improvements:
            lines += ["", "### Recent Improvements"]
            lines += [f"- Gen {i.generation}: {i.tool} ({i.type})" for i in improvements[-5:]]

        minutes = self.elapsed_s / 60
        lines += ["", "## Performance", f"- Duration: {minutes:.1f} minutes"]
        if score_history:
            lines.append(f"- Generations: {len(score_history)}")
            lines.append(f"- Latest score: {score_history[-1]:.1f}%")
        return "\n".join(lines) + "\n"

    def create_evolution_summary(
        self,
        score_history: list[float],
        results: list[ImprovementResult],
        converged: bool,
    ) -> EvolutionSummary:
        summary = EvolutionSummary(
            test_case=self._test_case,
            start_score=score_history[0] if score_history else 0.0,
            final_score=score_history[-1] if score_history else 0.0,
            best_score=max(score_history) if score_history else 0.0,
            generations=len(score_history),
            improvements_applied=sum(1 for r in results if r.outcome != "failed"),
            improvements_successful=sum(1 for r in results if r.outcome == "successful"),
            duration_s=round(self.elapsed_s, 1),
            converged=converged,
        )
        logger.info("evolution_summary", **summary.to_dict())
        self._record("summary", summary=summary.to_dict())
        return summary
