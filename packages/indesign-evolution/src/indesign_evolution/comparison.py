"""Result of scoring a produced layout against its reference."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Deviation:
    """One measured difference between produced and reference layout."""

    type: str
    field: str
    expected: Any
    actual: Any
    deviation_percent: float = 0.0  # signed

    @property
    def direction(self) -> str:
        if isinstance(self.expected, (int, float)) and isinstance(self.actual, (int, float)):
            if self.actual > self.expected:
                return "over"
            if self.actual < self.expected:
                return "under"
        return "wrong"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "field": self.field,
            "expected": self.expected,
            "actual": self.actual,
            "deviationPercent": self.deviation_percent,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Deviation:
        return cls(
            type=data.get("type", ""),
            field=data["field"],
            expected=data.get("expected"),
            actual=data.get("actual"),
            deviation_percent=float(data.get("deviationPercent", 0.0)),
        )


@dataclass
class ComparisonResult:
    """Comparator output: overall match, a 0-100 score and the deviations."""

    match: bool
    score: float
    deviations: list[Deviation] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "match": self.match,
            "score": self.score,
            "deviations": [d.to_dict() for d in self.deviations],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComparisonResult:
        return cls(
            match=bool(data.get("match", False)),
            score=float(data.get("score", 0.0)),
            deviations=[Deviation.from_dict(d) for d in data.get("deviations", [])],
        )
