"""Protocol for pluggable telemetry storage backends."""

from __future__ import annotations

from typing import Protocol

from indesign_evolution.telemetry.session import TelemetrySession, ToolCall


class TelemetryStore(Protocol):
    """Backend interface for trial telemetry sessions."""

    async def start_session(
        self, agent_id: str, generation: int, session_id: str | None = None
    ) -> str: ...
    async def record_call(self, session_id: str, call: ToolCall) -> None: ...
    async def end_session(self, session_id: str) -> TelemetrySession: ...
    async def wait_for_completion(self, session_id: str, timeout: float) -> bool: ...
    async def read_session(self, session_id: str) -> TelemetrySession | None: ...
    async def save(self, session: TelemetrySession) -> None: ...
    async def load(self, session_id: str) -> TelemetrySession | None: ...
    async def list_sessions(self) -> list[str]: ...
    async def cleanup(self, max_age: float) -> int: ...
