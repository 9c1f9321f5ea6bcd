"""In-memory telemetry store for testing."""

from __future__ import annotations

import asyncio

from indesign_evolution.errors import TelemetryError
from indesign_evolution.telemetry.session import (
    SessionBuffer,
    TelemetrySession,
    ToolCall,
    new_session_id,
    now_ms,
)


class InMemoryTelemetryStore:
    """Simple in-memory telemetry store for testing and development."""

    def __init__(self) -> None:
        self._open: dict[str, SessionBuffer] = {}
        self._sessions: dict[str, TelemetrySession] = {}
        self._done: dict[str, asyncio.Event] = {}

    def _event(self, session_id: str) -> asyncio.Event:
        return self._done.setdefault(session_id, asyncio.Event())

    async def start_session(
        self, agent_id: str, generation: int, session_id: str | None = None
    ) -> str:
        session_id = session_id or new_session_id(agent_id, generation)
        self._open[session_id] = SessionBuffer(session_id, agent_id, generation)
        self._event(session_id)
        return session_id

    async def record_call(self, session_id: str, call: ToolCall) -> None:
        buffer = self._open.get(session_id)
        if buffer is None:
            raise TelemetryError(f"No open session {session_id}")
        buffer.append(call)

    async def end_session(self, session_id: str) -> TelemetrySession:
        buffer = self._open.pop(session_id, None)
        if buffer is None:
            raise TelemetryError(f"No open session {session_id}")
        buffer.close()
        session = buffer.snapshot()
        self._sessions[session_id] = session
        self._event(session_id).set()
        return session

    async def wait_for_completion(self, session_id: str, timeout: float) -> bool:
        try:
            async with asyncio.timeout(timeout):
                await self._event(session_id).wait()
        except TimeoutError:
            return False
        return True

    async def read_session(self, session_id: str) -> TelemetrySession | None:
        if session_id in self._open:
            return self._open[session_id].snapshot()
        return self._sessions.get(session_id)

    async def save(self, session: TelemetrySession) -> None:
        self._sessions[session.id] = session
        if session.is_complete:
            self._event(session.id).set()

    async def load(self, session_id: str) -> TelemetrySession | None:
        return self._sessions.get(session_id)

    async def list_sessions(self) -> list[str]:
        ordered = sorted(self._sessions.values(), key=lambda s: s.start_time, reverse=True)
        return [s.id for s in ordered]

    async def cleanup(self, max_age: float) -> int:
        cutoff = now_ms() - int(max_age * 1000)
        stale = [sid for sid, s in self._sessions.items() if s.start_time < cutoff]
        for sid in stale:
            del self._sessions[sid]
            self._done.pop(sid, None)
        return len(stale)
