"""Turns mined patterns into candidate tool-definition edits."""

from __future__ import annotations

import structlog

from indesign_evolution.analysis.patterns import Pattern
from indesign_evolution.config import ProposerConfig
from indesign_evolution.improvements.ledger import ImprovementLedger
from indesign_evolution.improvements.model import Improvement
from indesign_evolution.tools.definition import ToolDefinitionStore

logger = structlog.get_logger()

_TYPOGRAPHY_FIELDS = {"fontSize", "leading", "fontFamily", "alignment", "spaceBefore", "spaceAfter"}


def _join(current: str, addition: str) -> str:
    return f"{current.rstrip()} {addition}".strip() if current else addition


class ImprovementProposer:
    """Derives one candidate per high or medium severity pattern, in rank order."""

    def __init__(
        self,
        ledger: ImprovementLedger,
        definitions: ToolDefinitionStore,
        config: ProposerConfig | None = None,
    ) -> None:
        self._ledger = ledger
        self._definitions = definitions
        self._config = config or ProposerConfig()

    def propose(self, patterns: list[Pattern], generation: int) -> list[Improvement]:
        candidates = []
        for pattern in patterns:
            if pattern.severity not in ("high", "medium"):
                continue
            improvement = self._from_pattern(pattern, generation)
            if improvement is not None:
                candidates.append(improvement)
        logger.info("improvements_proposed", generation=generation, candidates=len(candidates))
        return candidates

    def _from_pattern(self, pattern: Pattern, generation: int) -> Improvement | None:
        sig = pattern.signature
        if pattern.type == "parameter-choice":
            return self._parameter_guidance(pattern, generation)
        if pattern.type == "visual-deviation":
            tool = self._config.field_tools.get(sig.get("field", ""), self._config.default_tool)
            return self._description_edit(pattern, generation, tool, self._deviation_hint(sig))
        if pattern.type == "missing-tool":
            return self._example_edit(pattern, generation)
        if pattern.type == "tool-sequence":
            sequence = sig.get("sequence") or []
            hint = (
                f"Note: the call order {' -> '.join(sequence)} correlated with low layout "
                "scores; create and configure styles before adding text, then apply them."
            )
            return self._description_edit(pattern, generation, sig.get("tool", ""), hint)
        if pattern.type == "error-pattern":
            return self._constraint_edit(pattern, generation)
        # redundant calls have no single definition edit
        return None

    def _known(self, tool: str, pattern: Pattern) -> bool:
        if tool and tool in self._definitions:
            return True
        logger.debug("proposal_skipped_unknown_tool", tool=tool, pattern=pattern.type)
        return False

    def _create(self, pattern: Pattern, generation: int, **params) -> Improvement | None:
        if params["proposed"] == params["current"]:
            return None
        return self._ledger.create_improvement(
            rationale=f"{pattern.description} ({pattern.frequency} agents, {pattern.severity})",
            expected_impact=pattern.confidence,
            generation=generation,
            **params,
        )

    def _parameter_guidance(self, pattern: Pattern, generation: int) -> Improvement | None:
        sig = pattern.signature
        tool, param, value = sig.get("tool", ""), sig.get("parameter", ""), sig.get("value", "")
        if not self._known(tool, pattern):
            return None
        definition = self._definitions.get(tool)
        spec = definition.parameters.get(param) if definition else None
        current = spec.description if spec else ""
        guidance = (
            f"Set {param} explicitly to match the reference layout; "
            f"{param}={value} was used by {pattern.frequency} low-scoring agents "
            f"(average score {sig.get('averageScore', 0):.0f})."
        )
        return self._create(
            pattern, generation, type="parameter", tool=tool, field=param,
            current=current, proposed=_join(current, guidance),
        )

    def _deviation_hint(self, sig: dict) -> str:
        field_name = sig.get("field", "")
        direction = sig.get("direction", "wrong")
        avg = sig.get("averageDeviation", 0.0)
        if field_name in _TYPOGRAPHY_FIELDS:
            return (
                f"Size hint: {field_name} came out {direction} the reference by about "
                f"{avg:.0f}%. Measure the reference and give {field_name} in points; "
                "headings are usually 1.5-2x body size."
            )
        return (
            f"Positioning hint: {field_name} came out {direction} the reference by about "
            f"{avg:.0f}%. Give x, y, width and height in points from the page origin "
            "and keep frames inside the page margins."
        )

    def _description_edit(
        self, pattern: Pattern, generation: int, tool: str, hint: str
    ) -> Improvement | None:
        if not self._known(tool, pattern):
            return None
        current = self._definitions.get(tool).description
        return self._create(
            pattern, generation, type="description", tool=tool,
            current=current, proposed=_join(current, hint),
        )

    def _example_edit(self, pattern: Pattern, generation: int) -> Improvement | None:
        tool = pattern.signature.get("tool", "")
        if not self._known(tool, pattern):
            return None
        definition = self._definitions.get(tool)
        group = pattern.signature.get("group", "layout")
        proposed = (
            f"// Example: call {tool} for {group.replace('-', ' ')}; "
            f"{pattern.frequency} agents skipped it and lost fidelity."
        )
        return self._create(
            pattern, generation, type="example", tool=tool,
            current="\n".join(definition.examples), proposed=proposed,
        )

    def _constraint_edit(self, pattern: Pattern, generation: int) -> Improvement | None:
        tool = pattern.signature.get("tool", "")
        if not self._known(tool, pattern):
            return None
        current = self._definitions.get(tool).description
        message = pattern.signature.get("message", "")
        proposed = (
            f"Constraint: calls failed with \"{message}\"; "
            "check inputs against the schema first."
        )
        return self._create(
            pattern, generation, type="constraint", tool=tool,
            current=current, proposed=proposed,
        )
