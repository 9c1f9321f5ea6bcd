"""Applies an improvement to a copy of a tool definition."""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from indesign_evolution.errors import FieldNotFoundError, InvalidEditError, ToolNotFoundError
from indesign_evolution.improvements.model import Improvement
from indesign_evolution.tools.definition import (
    ParameterConstraint,
    ParameterDefinition,
    ToolDefinition,
    ToolDefinitionStore,
)

logger = structlog.get_logger()

_NUMBER = r"-?\d+(?:\.\d+)?"
_RANGE = re.compile(rf"({_NUMBER})\s*(?:-|to|\.\.)\s*({_NUMBER})")
_ENUM = re.compile(r"one of:\s*(.+)", re.IGNORECASE)


@dataclass
class ModifiedDefinition:
    """Before and after copies of the edited tool; the store is untouched."""

    tool: str
    before: ToolDefinition
    after: ToolDefinition


def parse_constraint(text: str) -> ParameterConstraint:
    """Parse "one of: a, b, c" or "min-max" into a constraint."""
    enum_match = _ENUM.search(text)
    if enum_match:
        values = [v.strip().strip("'\"") for v in enum_match.group(1).rstrip(".").split(",")]
        values = [v for v in values if v]
        if not values:
            raise InvalidEditError(f"Empty enumeration in constraint: {text!r}")
        return ParameterConstraint(enum=values)

    range_match = _RANGE.search(text)
    if range_match:
        low, high = float(range_match.group(1)), float(range_match.group(2))
        if low > high:
            raise InvalidEditError(f"Range minimum exceeds maximum: {text!r}")
        return ParameterConstraint(minimum=low, maximum=high)

    raise InvalidEditError(f"Unrecognised constraint, expected a range or 'one of:' list: {text!r}")


class ImprovementApplier:
    """Produces the edited definition for an improvement without persisting it."""

    def apply(self, improvement: Improvement, store: ToolDefinitionStore) -> ModifiedDefinition:
        before = store.get(improvement.tool)
        if before is None:
            raise ToolNotFoundError(improvement.tool)
        after = store.get(improvement.tool)

        if improvement.type == "description":
            after.description = improvement.proposed
        elif improvement.type == "parameter":
            self._require_field(improvement, after).description = improvement.proposed
        elif improvement.type == "example":
            after.examples.append(improvement.proposed)
        elif improvement.type == "constraint":
            if improvement.field:
                param = self._require_field(improvement, after)
                param.constraint = parse_constraint(improvement.proposed)
            else:
                after.description = f"{after.description.rstrip()}\n{improvement.proposed}".strip()
        else:
            raise InvalidEditError(f"Unknown improvement type: {improvement.type!r}")

        logger.debug("improvement_applied", tool=improvement.tool, type=improvement.type)
        return ModifiedDefinition(tool=improvement.tool, before=before, after=after)

    @staticmethod
    def _require_field(
        improvement: Improvement, definition: ToolDefinition
    ) -> ParameterDefinition:
        if not improvement.field:
            raise InvalidEditError(f"{improvement.type} improvement requires a field")
        param = definition.parameters.get(improvement.field)
        if param is None:
            raise FieldNotFoundError(improvement.tool, improvement.field)
        return param
