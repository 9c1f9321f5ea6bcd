"""Trial telemetry: session model, capture and storage."""

from indesign_evolution.telemetry.session import TelemetrySession, ToolCall

__all__ = ["TelemetrySession", "ToolCall"]
