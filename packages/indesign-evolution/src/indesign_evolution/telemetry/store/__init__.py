from indesign_evolution.telemetry.store.base import TelemetryStore
from indesign_evolution.telemetry.store.file import FileTelemetryStore
from indesign_evolution.telemetry.store.memory import InMemoryTelemetryStore

__all__ = ["FileTelemetryStore", "InMemoryTelemetryStore", "TelemetryStore"]
