"""Reading and writing the tool definition registry file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Protocol

from indesign_evolution.errors import PersistenceError
from indesign_evolution.tools.definition import ToolDefinition, ToolDefinitionStore


class ToolDefinitionSerializer(Protocol):
    def read(self, path: Path) -> ToolDefinitionStore: ...
    def write(self, store: ToolDefinitionStore, path: Path) -> None: ...


class JsonToolDefinitionSerializer:
    """Stores definitions as ``{"tools": [...]}`` sorted by name."""

    def read(self, path: Path) -> ToolDefinitionStore:
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot read tool definitions from {path}: {exc}") from exc
        return ToolDefinitionStore([ToolDefinition.from_dict(t) for t in data.get("tools", [])])

    def write(self, store: ToolDefinitionStore, path: Path) -> None:
        path = Path(path)
        payload = {"tools": [d.to_dict() for d in store.all()]}
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n")
        except OSError as exc:
            raise PersistenceError(f"Cannot write tool definitions to {path}: {exc}") from exc
