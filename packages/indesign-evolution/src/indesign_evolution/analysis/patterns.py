"""Pattern - a recurring behaviour observed across trials of a generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from indesign_evolution.comparison import Deviation

PatternType = Literal[
    "tool-sequence",
    "parameter-choice",
    "error-pattern",
    "visual-deviation",
    "missing-tool",
    "redundant-call",
]
Severity = Literal["low", "medium", "high"]


@dataclass
class PatternExample:
    agent_id: str
    evidence: str
    deviation: Deviation | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"agentId": self.agent_id, "evidence": self.evidence}
        if self.deviation is not None:
            data["deviation"] = self.deviation.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PatternExample:
        deviation = data.get("deviation")
        return cls(
            agent_id=data["agentId"],
            evidence=data.get("evidence", ""),
            deviation=Deviation.from_dict(deviation) if deviation else None,
        )


@dataclass
class Pattern:
    """A signature exhibited by ``frequency`` distinct agents."""

    type: PatternType
    frequency: int
    description: str
    confidence: float
    severity: Severity
    examples: list[PatternExample] = field(default_factory=list)
    # Structured subject (tool, parameter, value, field, direction, sequence...)
    signature: dict[str, Any] = field(default_factory=dict)

    @property
    def significance(self) -> float:
        return self.confidence * self.frequency

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "frequency": self.frequency,
            "description": self.description,
            "confidence": self.confidence,
            "severity": self.severity,
            "examples": [e.to_dict() for e in self.examples],
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Pattern:
        return cls(
            type=data["type"],
            frequency=int(data["frequency"]),
            description=data.get("description", ""),
            confidence=float(data.get("confidence", 0.0)),
            severity=data.get("severity", "low"),
            examples=[PatternExample.from_dict(e) for e in data.get("examples", [])],
            signature=dict(data.get("signature") or {}),
        )
