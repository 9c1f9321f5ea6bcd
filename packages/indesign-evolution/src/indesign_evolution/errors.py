"""Exception taxonomy for the evolution loop."""

from __future__ import annotations


class EvolutionError(Exception):
    """Base class for all evolution loop failures."""


class PreflightError(EvolutionError):
    """Environment is not ready for a generation; aborts the run."""


class ReferenceDataError(PreflightError):
    """Reference test case or image could not be loaded."""


class SessionTimeoutError(EvolutionError):
    """A trial did not signal completion in time; the run degrades to inferred telemetry."""

    def __init__(self, session_id: str, timeout: float) -> None:
        super().__init__(f"Session {session_id} did not complete within {timeout:g}s")
        self.session_id = session_id
        self.timeout = timeout


class TelemetryError(EvolutionError):
    """Invalid mutation of a telemetry session."""


class PersistenceError(EvolutionError):
    """Disk read or write failed."""


class ImprovementError(EvolutionError):
    """An improvement could not be applied to the tool definitions."""


class ToolNotFoundError(ImprovementError):
    def __init__(self, tool: str) -> None:
        super().__init__(f"Tool not found: {tool}")
        self.tool = tool


class FieldNotFoundError(ImprovementError):
    def __init__(self, tool: str, field: str) -> None:
        super().__init__(f"Parameter {field!r} not found on tool {tool!r}")
        self.tool = tool
        self.field = field


class InvalidEditError(ImprovementError):
    """The edit is malformed for its improvement type."""


class RegressionFailure(EvolutionError):
    """Regression checks rejected an edit."""

    def __init__(self, errors: list[tuple[str, str]]) -> None:
        details = "; ".join(f"{name}: {msg}" for name, msg in errors)
        super().__init__(f"Regression checks failed: {details}")
        self.errors = errors


class GitCommandError(EvolutionError):
    """A git invocation timed out or exited non-zero."""

    def __init__(self, args: list[str], message: str, returncode: int | None = None) -> None:
        super().__init__(f"git {' '.join(args)} failed: {message}")
        self.command = args
        self.returncode = returncode
