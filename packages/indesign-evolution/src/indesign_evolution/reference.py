"""Loading reference test cases (expected layout metrics plus reference image)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from indesign_evolution.errors import ReferenceDataError


class TestCase(BaseModel):
    """A layout the agents are asked to reproduce."""
    __test__ = False

    name: str
    description: str = ""
    reference_image: Path | None = Field(default=None, alias="referenceImage")
    tolerance: float = Field(default=0.05, ge=0.0, le=1.0)
    expected_metrics: dict[str, Any] = Field(default_factory=dict, alias="expectedMetrics")
    page_info: dict[str, Any] | None = Field(default=None, alias="pageInfo")
    font_fallbacks: dict[str, list[str]] | None = Field(default=None, alias="fontFallbacks")

    model_config = {"populate_by_name": True}


def load_test_case(name: str, cases_dir: Path) -> TestCase:
    """Read ``<cases_dir>/<name>.json``; relative image paths resolve against that file."""
    path = Path(cases_dir) / f"{name}.json"
    if not path.exists():
        raise ReferenceDataError(f"Test case not found: {path}")
    try:
        data = json.loads(path.read_text())
        data.setdefault("name", name)
        case = TestCase.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise ReferenceDataError(f"Invalid test case {path}: {exc}") from exc

    if case.reference_image is not None and not case.reference_image.is_absolute():
        case.reference_image = (path.parent / case.reference_image).resolve()
    return case


def list_test_cases(cases_dir: Path) -> list[str]:
    cases_dir = Path(cases_dir)
    if not cases_dir.exists():
        return []
    return sorted(p.stem for p in cases_dir.glob("*.json"))
