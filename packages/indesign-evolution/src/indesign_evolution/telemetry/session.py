"""Telemetry session - the ordered record of one agent trial's tool calls."""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from typing import Any, Literal

from indesign_evolution.errors import TelemetryError

CallResult = Literal["success", "error"]


def now_ms() -> int:
    return int(time.time() * 1000)


def new_session_id(agent_id: str, generation: int) -> str:
    return f"{now_ms()}-{agent_id}-gen{generation}-{secrets.token_hex(3)}"


@dataclass(frozen=True)
class ToolCall:
    """A single tool invocation captured during a trial."""

    timestamp: int
    tool: str
    parameters: dict[str, Any] = field(default_factory=dict)
    result: CallResult = "success"
    execution_time: int = 0  # ms
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "tool": self.tool,
            "parameters": self.parameters,
            "executionTime": self.execution_time,
            "result": self.result,
        }
        if self.error_message is not None:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        return cls(
            timestamp=int(data["timestamp"]),
            tool=data["tool"],
            parameters=dict(data.get("parameters") or {}),
            result=data.get("result", "success"),
            execution_time=int(data.get("executionTime", 0)),
            error_message=data.get("errorMessage"),
        )


@dataclass(frozen=True)
class TelemetrySession:
    """Immutable snapshot of a trial; calls are ordered by timestamp."""

    id: str
    agent_id: str
    generation: int
    start_time: int
    end_time: int | None = None
    calls: tuple[ToolCall, ...] = ()

    @property
    def is_complete(self) -> bool:
        return self.end_time is not None

    @property
    def tools_used(self) -> list[str]:
        return [c.tool for c in self.calls]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "agentId": self.agent_id,
            "generation": self.generation,
            "calls": [c.to_dict() for c in self.calls],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TelemetrySession:
        calls = sorted(
            (ToolCall.from_dict(c) for c in data.get("calls", [])),
            key=lambda c: c.timestamp,
        )
        return cls(
            id=data["id"],
            agent_id=data.get("agentId", ""),
            generation=int(data.get("generation", 0)),
            start_time=int(data.get("startTime", 0)),
            end_time=data.get("endTime"),
            calls=tuple(calls),
        )


class SessionBuffer:
    """Append-only builder for a session that is still open.

    Enforces timestamp ordering and refuses calls after the session ends.
    """

    def __init__(self, session_id: str, agent_id: str, generation: int,
                 start_time: int | None = None) -> None:
        self.id = session_id
        self.agent_id = agent_id
        self.generation = generation
        self.start_time = start_time if start_time is not None else now_ms()
        self.end_time: int | None = None
        self._calls: list[ToolCall] = []

    def append(self, call: ToolCall) -> None:
        if self.end_time is not None:
            raise TelemetryError(f"Session {self.id} has ended; cannot record {call.tool}")
        if self._calls and call.timestamp < self._calls[-1].timestamp:
            raise TelemetryError(
                f"Out-of-order call {call.tool} at {call.timestamp} in session {self.id}"
            )
        self._calls.append(call)

    def close(self) -> None:
        if self.end_time is None:
            self.end_time = now_ms()

    def snapshot(self) -> TelemetrySession:
        return TelemetrySession(
            id=self.id,
            agent_id=self.agent_id,
            generation=self.generation,
            start_time=self.start_time,
            end_time=self.end_time,
            calls=tuple(self._calls),
        )
