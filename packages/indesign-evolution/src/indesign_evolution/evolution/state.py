"""Loop state records: trial runs, generation results and phases."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from indesign_evolution.analysis.patterns import Pattern
from indesign_evolution.analysis.stats import mean
from indesign_evolution.comparison import ComparisonResult
from indesign_evolution.telemetry.session import TelemetrySession


class EvolutionPhase(str, Enum):
    """Phases of the automated loop."""
    IDLE = "idle"
    PREPARING_GENERATION = "preparing_generation"
    RUNNING_AGENTS = "running_agents"
    ANALYZING = "analyzing"
    PROPOSING_IMPROVEMENT = "proposing_improvement"
    VALIDATING = "validating"
    COMMITTING = "committing"
    REVERTING = "reverting"
    CHECKING_CONVERGENCE = "checking_convergence"
    CONVERGED = "converged"
    MAX_GENERATIONS_REACHED = "max_generations_reached"


@dataclass
class TestRun:
    """Outcome of one agent trial."""

    __test__ = False

    agent_id: str
    telemetry: TelemetrySession
    generation: int = 0
    duration: int = 0  # ms
    success: bool = True
    extracted_metrics: dict[str, Any] | None = None
    comparison: ComparisonResult | None = None
    error: str | None = None
    synthesized: bool = False  # telemetry inferred from document state

    @property
    def score(self) -> float | None:
        return self.comparison.score if self.comparison is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "telemetry": self.telemetry.to_dict(),
            "generation": self.generation,
            "duration": self.duration,
            "success": self.success,
            "extractedMetrics": self.extracted_metrics,
            "comparisonResult": self.comparison.to_dict() if self.comparison else None,
            "error": self.error,
            "synthesized": self.synthesized,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestRun:
        comparison = data.get("comparisonResult")
        return cls(
            agent_id=data["agentId"],
            telemetry=TelemetrySession.from_dict(data["telemetry"]),
            generation=int(data.get("generation", 0)),
            duration=int(data.get("duration", 0)),
            success=bool(data.get("success", True)),
            extracted_metrics=data.get("extractedMetrics"),
            comparison=ComparisonResult.from_dict(comparison) if comparison else None,
            error=data.get("error"),
            synthesized=bool(data.get("synthesized", False)),
        )


def scored(runs: list[TestRun]) -> list[float]:
    """One score per run; a run that could not be compared scores 0."""
    return [r.score if r.score is not None else 0.0 for r in runs]


@dataclass
class GenerationResult:
    generation: int
    runs: list[TestRun] = field(default_factory=list)
    patterns: list[Pattern] = field(default_factory=list)
    average_score: float = 0.0
    best_score: float = 0.0
    worst_score: float = 0.0

    @classmethod
    def from_runs(
        cls, generation: int, runs: list[TestRun], patterns: list[Pattern]
    ) -> GenerationResult:
        scores = scored(runs)
        return cls(
            generation=generation,
            runs=list(runs),
            patterns=list(patterns),
            average_score=mean(scores),
            best_score=max(scores) if scores else 0.0,
            worst_score=min(scores) if scores else 0.0,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "generation": self.generation,
            "runs": [r.to_dict() for r in self.runs],
            "patterns": [p.to_dict() for p in self.patterns],
            "averageScore": self.average_score,
            "bestScore": self.best_score,
            "worstScore": self.worst_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GenerationResult:
        return cls(
            generation=int(data["generation"]),
            runs=[TestRun.from_dict(r) for r in data.get("runs", [])],
            patterns=[Pattern.from_dict(p) for p in data.get("patterns", [])],
            average_score=float(data.get("averageScore", 0.0)),
            best_score=float(data.get("bestScore", 0.0)),
            worst_score=float(data.get("worstScore", 0.0)),
        )


@dataclass
class ConvergenceState:
    has_converged: bool = False
    plateau_generations: int = 0
    best_score: float = 0.0
    average_improvement_per_generation: float = 0.0
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hasConverged": self.has_converged,
            "plateauGenerations": self.plateau_generations,
            "bestScore": self.best_score,
            "averageImprovementPerGeneration": self.average_improvement_per_generation,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConvergenceState:
        return cls(
            has_converged=bool(data.get("hasConverged", False)),
            plateau_generations=int(data.get("plateauGenerations", 0)),
            best_score=float(data.get("bestScore", 0.0)),
            average_improvement_per_generation=float(
                data.get("averageImprovementPerGeneration", 0.0)
            ),
            reason=data.get("reason"),
        )
