"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make _helpers importable from test files
sys.path.insert(0, str(Path(__file__).parent))

from _helpers import make_definitions  # noqa: E402

from indesign_evolution.config import (  # noqa: E402
    EvolutionParams,
    EvolutionSettings,
    GitConfig,
    PathsConfig,
    TestCaseConfig,
    TimingConfig,
)
from indesign_evolution.telemetry.store.memory import InMemoryTelemetryStore  # noqa: E402
from indesign_evolution.tools.definition import ToolDefinitionStore  # noqa: E402


@pytest.fixture
def settings(tmp_path: Path) -> EvolutionSettings:
    return EvolutionSettings(
        paths=PathsConfig(base_dir=tmp_path / "evolution"),
        timing=TimingConfig(
            completion_timeout_s=0.05,
            poll_interval_s=0.01,
            delay_between_agents_s=0,
        ),
        evolution=EvolutionParams(agent_count=3, max_generations=2, impact_trial_agents=2),
        git=GitConfig(enabled=False),
    )


@pytest.fixture
def memory_store() -> InMemoryTelemetryStore:
    return InMemoryTelemetryStore()


@pytest.fixture
def definitions() -> ToolDefinitionStore:
    return make_definitions()


@pytest.fixture
def test_case() -> TestCaseConfig:
    return TestCaseConfig(
        test_case="book-page",
        agent_count=3,
        reference_metrics={"frames": [{"hasText": True, "contentLength": 120}]},
        reference_description="A heading above two paragraphs of body text",
    )
