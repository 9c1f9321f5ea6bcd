"""Improvement ledger - the append-only record of every attempted edit."""

from __future__ import annotations

import json
import secrets
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from indesign_evolution.analysis import stats
from indesign_evolution.errors import PersistenceError
from indesign_evolution.improvements.model import Improvement, ImprovementResult
from indesign_evolution.telemetry.session import now_ms

logger = structlog.get_logger()

_ANNOTATION_MARKERS = ("//", "/*", "#", "Example:", "Note:")


@dataclass
class ValidationReport:
    valid: bool
    issues: list[str] = field(default_factory=list)


@dataclass
class LedgerStatistics:
    total_attempted: int = 0
    successful: int = 0
    reverted: int = 0
    failed: int = 0
    average_impact: float = 0.0
    by_type: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalAttempted": self.total_attempted,
            "successful": self.successful,
            "reverted": self.reverted,
            "failed": self.failed,
            "averageImpact": self.average_impact,
            "byType": dict(self.by_type),
        }


class ImprovementLedger:
    """Creates, validates and records improvements; computes statistics.

    Results are only ever appended. ``history_dir`` is where
    ``save_history`` and ``load_history`` read and write by default.
    """

    def __init__(self, history_dir: Path | None = None) -> None:
        self._history_dir = Path(history_dir) if history_dir else None
        self._improvements: list[Improvement] = []
        self._results: list[ImprovementResult] = []

    def create_improvement(self, **params: Any) -> Improvement:
        """Build a candidate with a fresh id. Only recorded results enter the history."""
        return Improvement(id=f"imp_{now_ms()}_{secrets.token_hex(4)}", **params)

    def validate_improvement(self, improvement: Improvement) -> ValidationReport:
        issues = []
        if not improvement.tool:
            issues.append("Tool name is required")
        if not improvement.proposed or not improvement.proposed.strip():
            issues.append("Proposed value cannot be empty")
        if improvement.proposed == improvement.current:
            issues.append("Proposed value must differ from current value")
        if not 0.0 <= improvement.expected_impact <= 1.0:
            issues.append("Expected impact must be between 0 and 1")
        if improvement.type == "parameter" and not improvement.field:
            issues.append("Parameter improvements must specify a field")
        if improvement.type == "example" and not any(
            marker in improvement.proposed for marker in _ANNOTATION_MARKERS
        ):
            issues.append("Example improvements should include an explanatory annotation")
        return ValidationReport(valid=not issues, issues=issues)

    def record_result(
        self,
        improvement: Improvement,
        before_score: float,
        after_score: float,
        success: bool,
        reverted: bool = False,
        error: str | None = None,
    ) -> ImprovementResult:
        result = ImprovementResult(
            improvement=improvement,
            before_score=before_score,
            after_score=after_score,
            success=success,
            reverted=reverted,
            error=error,
        )
        self._results.append(result)
        if all(i.id != improvement.id for i in self._improvements):
            self._improvements.append(improvement)
        logger.info(
            "improvement_recorded",
            improvement_id=improvement.id,
            tool=improvement.tool,
            outcome=result.outcome,
            impact=round(result.impact, 2),
        )
        return result

    def get_statistics(self, generation: int | None = None) -> LedgerStatistics:
        results = [
            r for r in self._results
            if generation is None or r.improvement.generation == generation
        ]
        outcomes = Counter(r.outcome for r in results)
        impacts = [r.impact for r in results if r.success and not r.reverted]
        return LedgerStatistics(
            total_attempted=len(results),
            successful=outcomes["successful"],
            reverted=outcomes["reverted"],
            failed=outcomes["failed"],
            average_impact=stats.mean(impacts),
            by_type=dict(Counter(r.improvement.type for r in results)),
        )

    def has_been_tried(self, improvement: Improvement) -> bool:
        return any(
            r.improvement.tool == improvement.tool
            and r.improvement.type == improvement.type
            and r.improvement.field == improvement.field
            and r.improvement.proposed == improvement.proposed
            for r in self._results
        )

    def find_similar_improvements(self, improvement: Improvement) -> list[ImprovementResult]:
        return [
            r for r in self._results
            if r.improvement.tool == improvement.tool
            and r.improvement.type == improvement.type
            and r.improvement.field == improvement.field
        ]

    def get_history(self) -> list[ImprovementResult]:
        return list(self._results)

    def get_improvements(self) -> list[Improvement]:
        return list(self._improvements)

    def restore(
        self, results: list[ImprovementResult], improvements: list[Improvement] | None = None
    ) -> None:
        """Replace in-memory history, e.g. when resuming from saved progress."""
        self._results = list(results)
        self._improvements = []
        for improvement in (improvements or []) + [r.improvement for r in results]:
            if all(i.id != improvement.id for i in self._improvements):
                self._improvements.append(improvement)

    def get_successful_improvements(self) -> list[ImprovementResult]:
        return [r for r in self._results if r.success and not r.reverted]

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def save_history(self, path: Path | None = None) -> Path:
        if path is None:
            if self._history_dir is None:
                raise PersistenceError("No history path or directory configured")
            stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%f")
            path = self._history_dir / f"improvement-history-{stamp}.json"
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "improvements": [i.to_dict() for i in self._improvements],
            "results": [r.to_dict() for r in self._results],
            "statistics": self.get_statistics().to_dict(),
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2))
        except OSError as exc:
            raise PersistenceError(f"Cannot save improvement history: {exc}") from exc
        logger.info("improvement_history_saved", path=str(path), results=len(self._results))
        return path

    def load_history(self, path: Path | None = None) -> bool:
        """Replace in-memory history from ``path`` or the newest file in the history dir."""
        if path is None:
            if self._history_dir is None or not self._history_dir.exists():
                return False
            files = sorted(self._history_dir.glob("improvement-history-*.json"))
            if not files:
                return False
            path = files[-1]
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot load improvement history {path}: {exc}") from exc
        self._improvements = [Improvement.from_dict(i) for i in data.get("improvements", [])]
        self._results = [ImprovementResult.from_dict(r) for r in data.get("results", [])]
        logger.info("improvement_history_loaded", path=str(path), results=len(self._results))
        return True

    def generate_summary(self) -> str:
        s = self.get_statistics()
        lines = [
            "# Improvement summary",
            "",
            f"- Total attempted: {s.total_attempted}",
            f"- Successful: {s.successful}",
            f"- Reverted: {s.reverted}",
            f"- Failed: {s.failed}",
            f"- Average impact: {s.average_impact:+.1f}",
        ]
        if s.by_type:
            lines += ["", "## By type", ""]
            lines += [f"- {t}: {n}" for t, n in sorted(s.by_type.items())]
        successful = self.get_successful_improvements()
        if successful:
            lines += ["", "## Successful improvements", ""]
            for r in successful:
                lines.append(
                    f"- Gen {r.improvement.generation} {r.improvement.type} on "
                    f"{r.improvement.tool}: {r.before_score:.1f} -> {r.after_score:.1f} "
                    f"({r.impact:+.1f})"
                )
        return "\n".join(lines) + "\n"
