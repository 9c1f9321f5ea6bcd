"""Best-effort telemetry inferred from document state.

Used when a trial never signals completion and left no session on disk. The
result is approximate: every call is marked ``inferred`` and the run carrying
it is flagged ``synthesized``.
"""

from __future__ import annotations

from typing import Any

import structlog

from indesign_evolution.runner.interface import DocumentController
from indesign_evolution.telemetry.session import TelemetrySession, ToolCall, now_ms

logger = structlog.get_logger()

_ASSUMED_TRIAL_MS = 180_000


def infer_calls(metrics: dict[str, Any], session_id: str, agent_id: str) -> list[ToolCall]:
    now = now_ms()
    frames = metrics.get("frames") or []
    styles = metrics.get("styles") or []
    total_text = sum(int(f.get("contentLength") or 0) for f in frames)
    has_content = any(f.get("hasText") and (f.get("contentLength") or 0) > 0 for f in frames)

    if not has_content:
        return [ToolCall(
            timestamp=now - 60_000,
            tool="agent_failure_detected",
            parameters={
                "inferred": True,
                "note": "No document content suggests agent crash or early failure",
                "sessionId": session_id,
                "agentId": agent_id,
            },
            result="error",
            error_message="Agent produced no document content",
        )]

    calls = [ToolCall(
        timestamp=now - 150_000,
        tool="create_textframe",
        parameters={"inferred": True, "note": f"Inferred from {len(frames)} text frames found"},
        execution_time=1000,
    )]
    if total_text > 0:
        calls.append(ToolCall(
            timestamp=now - 120_000,
            tool="add_text",
            parameters={
                "inferred": True,
                "note": f"Inferred from {total_text} characters of text content",
            },
            execution_time=500,
        ))
    if styles:
        calls.append(ToolCall(
            timestamp=now - 90_000,
            tool="create_paragraph_style",
            parameters={"inferred": True, "note": f"Inferred from {len(styles)} paragraph styles"},
            execution_time=300,
        ))
    calls.append(ToolCall(
        timestamp=now - 30_000,
        tool="telemetry_end_session",
        parameters={"inferred": True, "note": "Inferred completion based on document content"},
        execution_time=100,
    ))
    return calls


async def synthesize_session(
    document: DocumentController,
    session_id: str,
    agent_id: str,
    generation: int,
) -> tuple[TelemetrySession, dict[str, Any] | None]:
    """Build a session from the document; also returns the metrics it inspected."""
    now = now_ms()
    metrics: dict[str, Any] | None = None
    try:
        metrics = await document.extract_metrics()
        calls = infer_calls(metrics, session_id, agent_id)
    except Exception as exc:
        logger.warning("fallback_telemetry_failed", session_id=session_id, error=str(exc))
        calls = [ToolCall(
            timestamp=now,
            tool="fallback_telemetry_failed",
            parameters={
                "inferred": True,
                "error": str(exc),
                "sessionId": session_id,
                "agentId": agent_id,
            },
            result="error",
            error_message="Could not analyze document state for fallback telemetry",
        )]

    logger.info(
        "telemetry_synthesized",
        session_id=session_id,
        agent_id=agent_id,
        calls=[c.tool for c in calls],
    )
    session = TelemetrySession(
        id=session_id,
        agent_id=agent_id,
        generation=generation,
        start_time=now - _ASSUMED_TRIAL_MS,
        end_time=now,
        calls=tuple(calls),
    )
    return session, metrics
