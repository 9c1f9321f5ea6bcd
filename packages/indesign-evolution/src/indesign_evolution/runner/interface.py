"""Boundaries to the systems the loop drives but does not own.

The document automation layer, the agent trial mechanism and the layout
comparator all live outside this package; the loop only sees these
interfaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from indesign_evolution.comparison import ComparisonResult


@dataclass(frozen=True)
class SessionDescriptor:
    """Identity of one trial, handed explicitly to the agent runner."""

    session_id: str
    agent_id: str
    generation: int
    test_case: str
    reference: str | None = None  # image path or textual description


class ToolBridge(Protocol):
    """Invokes a named tool and returns an MCP-shaped response."""

    async def call_tool(self, name: str, params: dict[str, Any]) -> dict[str, Any]: ...


def response_text(response: dict[str, Any]) -> str:
    """First text block of an MCP-style ``{"content": [{"text": ...}]}`` response."""
    content = response.get("content") or []
    if not content:
        return ""
    return str(content[0].get("text", ""))


class AgentRunner(ABC):
    """Runs one agent trial.

    Implementations must record tool calls into the shared telemetry store
    under ``descriptor.session_id`` and end the session when done; ending it
    writes the completion signal the orchestrator waits on.
    """

    @abstractmethod
    async def launch(self, descriptor: SessionDescriptor, prompt: str) -> None:
        """Start the trial. May return before the trial finishes."""
        ...


class DocumentController(ABC):
    """Controls the working document between trials."""

    @abstractmethod
    async def check_ready(self) -> bool:
        """True when the host application is reachable and a document is open."""
        ...

    @abstractmethod
    async def reset(self) -> None:
        """Return the document to a clean state."""
        ...

    @abstractmethod
    async def extract_metrics(self) -> dict[str, Any]:
        """Layout metrics of the current document.

        Expected keys include ``frames`` (list of ``{"hasText", "contentLength", ...}``)
        and ``styles``.
        """
        ...

    async def save_snapshot(self, path: Path) -> None:
        """Persist the current document for later inspection. Optional."""
        return None


class LayoutComparator(ABC):
    """Scores extracted metrics against a reference layout."""

    @abstractmethod
    async def compare(
        self,
        metrics: dict[str, Any],
        reference: dict[str, Any],
        tolerance: float,
    ) -> ComparisonResult: ...
