"""File-backed telemetry store.

One JSON document per session (``session_<id>.json``) rewritten on every
recorded call, plus an empty ``session_<id>.complete`` sentinel written when
the session ends. The sentinel is what the orchestrator waits for, so a trial
running in another process only needs to share the directory.
"""

from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path

import structlog

from indesign_evolution.errors import PersistenceError, TelemetryError
from indesign_evolution.telemetry.session import (
    SessionBuffer,
    TelemetrySession,
    ToolCall,
    new_session_id,
)

logger = structlog.get_logger()


class FileTelemetryStore:
    """Telemetry store persisting sessions as JSON files in a directory."""

    def __init__(self, directory: Path, poll_interval: float = 1.0) -> None:
        self._dir = Path(directory)
        self._poll_interval = poll_interval
        self._open: dict[str, SessionBuffer] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    def session_path(self, session_id: str) -> Path:
        return self._dir / f"session_{session_id}.json"

    def sentinel_path(self, session_id: str) -> Path:
        return self._dir / f"session_{session_id}.complete"

    def _write(self, session: TelemetrySession) -> None:
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            self.session_path(session.id).write_text(json.dumps(session.to_dict(), indent=2))
        except OSError as exc:
            raise PersistenceError(f"Cannot write session {session.id}: {exc}") from exc

    def _read(self, session_id: str) -> TelemetrySession | None:
        path = self.session_path(session_id)
        if not path.exists():
            return None
        try:
            return TelemetrySession.from_dict(json.loads(path.read_text()))
        except OSError as exc:
            raise PersistenceError(f"Cannot read session {session_id}: {exc}") from exc
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            # A writer may be mid-flush; treat as absent rather than fail the trial.
            logger.warning("telemetry_session_unreadable", session_id=session_id, error=str(exc))
            return None

    async def start_session(
        self, agent_id: str, generation: int, session_id: str | None = None
    ) -> str:
        session_id = session_id or new_session_id(agent_id, generation)
        buffer = SessionBuffer(session_id, agent_id, generation)
        self._open[session_id] = buffer
        self.sentinel_path(session_id).unlink(missing_ok=True)
        self._write(buffer.snapshot())
        logger.info("telemetry_session_started", session_id=session_id, agent_id=agent_id)
        return session_id

    async def record_call(self, session_id: str, call: ToolCall) -> None:
        buffer = self._open.get(session_id)
        if buffer is None:
            raise TelemetryError(f"No open session {session_id}")
        buffer.append(call)
        self._write(buffer.snapshot())

    async def end_session(self, session_id: str) -> TelemetrySession:
        buffer = self._open.pop(session_id, None)
        if buffer is None:
            raise TelemetryError(f"No open session {session_id}")
        buffer.close()
        session = buffer.snapshot()
        self._write(session)
        try:
            self.sentinel_path(session_id).touch()
        except OSError as exc:
            raise PersistenceError(f"Cannot write sentinel for {session_id}: {exc}") from exc
        logger.info("telemetry_session_ended", session_id=session_id, calls=len(session.calls))
        return session

    async def wait_for_completion(self, session_id: str, timeout: float) -> bool:
        """Poll for the completion sentinel; False on timeout."""
        sentinel = self.sentinel_path(session_id)
        try:
            async with asyncio.timeout(timeout):
                while not sentinel.exists():
                    await asyncio.sleep(self._poll_interval)
        except TimeoutError:
            logger.warning("telemetry_wait_timeout", session_id=session_id, timeout_s=timeout)
            return False
        return True

    async def read_session(self, session_id: str) -> TelemetrySession | None:
        if session_id in self._open:
            return self._open[session_id].snapshot()
        return self._read(session_id)

    async def save(self, session: TelemetrySession) -> None:
        self._write(session)
        if session.is_complete:
            self.sentinel_path(session.id).touch()

    async def load(self, session_id: str) -> TelemetrySession | None:
        return self._read(session_id)

    async def list_sessions(self) -> list[str]:
        """Session ids on disk, newest first."""
        if not self._dir.exists():
            return []
        files = sorted(
            self._dir.glob("session_*.json"), key=lambda p: p.stat().st_mtime, reverse=True
        )
        return [p.stem.removeprefix("session_") for p in files]

    async def load_all(self) -> list[TelemetrySession]:
        sessions = []
        for session_id in await self.list_sessions():
            session = self._read(session_id)
            if session is not None:
                sessions.append(session)
        return sessions

    async def cleanup(self, max_age: float) -> int:
        """Delete session files and sentinels older than ``max_age`` seconds."""
        if not self._dir.exists():
            return 0
        cutoff = time.time() - max_age
        removed = 0
        try:
            for path in self._dir.glob("session_*"):
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    if path.suffix == ".json":
                        removed += 1
        except OSError as exc:
            raise PersistenceError(f"Telemetry cleanup failed: {exc}") from exc
        if removed:
            logger.info("telemetry_cleanup", removed=removed)
        return removed
