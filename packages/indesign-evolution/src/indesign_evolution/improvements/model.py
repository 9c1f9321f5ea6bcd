"""Improvement records - proposed edits to tool definitions and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

ImprovementType = Literal["description", "parameter", "example", "constraint"]


@dataclass
class Improvement:
    """A proposed structured edit to one tool definition."""

    id: str
    type: ImprovementType
    tool: str
    current: str
    proposed: str
    rationale: str = ""
    expected_impact: float = 0.0  # 0..1
    generation: int = 0
    field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "tool": self.tool,
            "field": self.field,
            "current": self.current,
            "proposed": self.proposed,
            "rationale": self.rationale,
            "expectedImpact": self.expected_impact,
            "generation": self.generation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Improvement:
        return cls(
            id=data["id"],
            type=data["type"],
            tool=data.get("tool", ""),
            field=data.get("field"),
            current=data.get("current", ""),
            proposed=data.get("proposed", ""),
            rationale=data.get("rationale", ""),
            expected_impact=float(data.get("expectedImpact", 0.0)),
            generation=int(data.get("generation", 0)),
        )


@dataclass
class ImprovementResult:
    """Outcome of an attempted improvement."""

    improvement: Improvement
    before_score: float
    after_score: float
    success: bool
    reverted: bool = False
    error: str | None = None

    @property
    def impact(self) -> float:
        return self.after_score - self.before_score

    @property
    def outcome(self) -> str:
        if self.reverted:
            return "reverted"
        return "successful" if self.success else "failed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "improvement": self.improvement.to_dict(),
            "beforeScore": self.before_score,
            "afterScore": self.after_score,
            "success": self.success,
            "reverted": self.reverted,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImprovementResult:
        return cls(
            improvement=Improvement.from_dict(data["improvement"]),
            before_score=float(data.get("beforeScore", 0.0)),
            after_score=float(data.get("afterScore", 0.0)),
            success=bool(data.get("success", False)),
            reverted=bool(data.get("reverted", False)),
            error=data.get("error"),
        )
