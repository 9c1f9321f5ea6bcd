"""Structured model of the tool definitions the loop tunes."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ParameterConstraint:
    """Allowed values for a parameter: a numeric range and/or an enum."""

    minimum: float | None = None
    maximum: float | None = None
    enum: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.minimum is not None:
            data["minimum"] = self.minimum
        if self.maximum is not None:
            data["maximum"] = self.maximum
        if self.enum is not None:
            data["enum"] = list(self.enum)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterConstraint:
        return cls(
            minimum=data.get("minimum"),
            maximum=data.get("maximum"),
            enum=list(data["enum"]) if data.get("enum") is not None else None,
        )


@dataclass
class ParameterDefinition:
    type: str = "string"
    description: str = ""
    constraint: ParameterConstraint = field(default_factory=ParameterConstraint)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "description": self.description}
        data.update(self.constraint.to_dict())
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParameterDefinition:
        return cls(
            type=data.get("type", "string"),
            description=data.get("description", ""),
            constraint=ParameterConstraint.from_dict(data),
        )


@dataclass
class ToolDefinition:
    """Name, description, parameter schema and usage examples of one tool."""

    name: str
    description: str = ""
    parameters: dict[str, ParameterDefinition] = field(default_factory=dict)
    examples: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {k: v.to_dict() for k, v in self.parameters.items()},
            "examples": list(self.examples),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolDefinition:
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            parameters={
                k: ParameterDefinition.from_dict(v)
                for k, v in (data.get("parameters") or {}).items()
            },
            examples=list(data.get("examples") or []),
        )


class ToolDefinitionStore:
    """Current tool definitions keyed by tool name.

    ``get`` returns a copy so callers can edit freely; only ``set`` changes
    the store.
    """

    def __init__(self, definitions: list[ToolDefinition] | None = None) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for definition in definitions or []:
            self._tools[definition.name] = definition

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> ToolDefinition | None:
        definition = self._tools.get(name)
        return copy.deepcopy(definition) if definition is not None else None

    def set(self, definition: ToolDefinition) -> None:
        self._tools[definition.name] = copy.deepcopy(definition)

    def names(self) -> list[str]:
        return sorted(self._tools)

    def all(self) -> list[ToolDefinition]:
        return [copy.deepcopy(self._tools[n]) for n in self.names()]
