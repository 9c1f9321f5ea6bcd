"""Configuration for evolutionary tool-tuning runs."""

from __future__ import annotations

import tempfile
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


def _default_base_dir() -> Path:
    return Path(tempfile.gettempdir()) / "evolution_tests"


class PathsConfig(BaseModel):
    """Filesystem layout for telemetry, results and history."""
    base_dir: Path = Field(default_factory=_default_base_dir)
    tool_definitions: Path | None = Field(
        default=None, description="JSON registry of tool definitions edited by the loop"
    )
    test_cases_dir: Path | None = None
    repo_dir: Path | None = Field(default=None, description="Git working tree; defaults to cwd")

    @property
    def telemetry_dir(self) -> Path:
        return self.base_dir / "telemetry"

    @property
    def documents_dir(self) -> Path:
        return self.base_dir / "documents"

    @property
    def results_dir(self) -> Path:
        return self.base_dir / "results"

    @property
    def improvements_dir(self) -> Path:
        return self.base_dir / "improvements"

    @property
    def history_dir(self) -> Path:
        return self.improvements_dir / "history"

    @property
    def monitoring_dir(self) -> Path:
        return self.base_dir / "monitoring"

    @property
    def regression_dir(self) -> Path:
        return self.base_dir / "regression"

    @property
    def checkpoints_dir(self) -> Path:
        return self.base_dir / "checkpoints"

    @property
    def reports_dir(self) -> Path:
        return self.base_dir / "reports"


class TimingConfig(BaseModel):
    """Timeouts and pacing, in seconds."""
    completion_timeout_s: float = Field(
        default=180.0, gt=0, description="Wait for the session completion sentinel"
    )
    poll_interval_s: float = Field(default=1.0, gt=0)
    delay_between_agents_s: float = Field(default=5.0, ge=0)
    git_timeout_s: float = Field(default=30.0, gt=0)
    telemetry_max_age_s: float = Field(default=7 * 24 * 3600, gt=0)


class PatternConfig(BaseModel):
    """Thresholds for the pattern miner."""
    min_frequency: int = Field(default=2, ge=1, description="Distinct agents required")
    confidence_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    deviation_tolerance_percent: float = Field(default=5.0, ge=0.0)
    problem_score_threshold: float = Field(default=70.0, ge=0.0, le=100.0)
    redundant_call_threshold: int = Field(default=3, ge=1)
    max_sequence_length: int = Field(default=4, ge=2)
    inconsistency_penalty: float = Field(default=0.7, ge=0.0, le=1.0)
    inconsistency_cv: float = Field(
        default=0.5, gt=0.0,
        description="Coefficient of variation above which evidence is inconsistent",
    )
    expected_tools: dict[str, list[str]] = Field(default_factory=lambda: {
        "text-hierarchy": ["create_paragraph_style", "apply_paragraph_style"],
        "layout-structure": ["create_textframe"],
        "font-styling": ["create_character_style"],
    })


class ProposerConfig(BaseModel):
    """Maps visual deviation fields onto the tool that controls them."""
    field_tools: dict[str, str] = Field(default_factory=lambda: {
        "fontSize": "create_paragraph_style",
        "leading": "create_paragraph_style",
        "fontFamily": "create_paragraph_style",
        "alignment": "create_paragraph_style",
        "spaceBefore": "create_paragraph_style",
        "spaceAfter": "create_paragraph_style",
        "x": "create_textframe",
        "y": "create_textframe",
        "width": "create_textframe",
        "height": "create_textframe",
    })
    default_tool: str = "create_textframe"


class EvolutionParams(BaseModel):
    """Loop sizing and convergence criteria."""
    agent_count: int = Field(default=3, ge=1, description="Trials per generation")
    max_generations: int = Field(default=10, ge=1)
    target_score: float = Field(default=85.0, ge=0.0, le=100.0)
    improvement_threshold: float = Field(
        default=5.0, ge=0.0, description="Score gain required to accept an improvement"
    )
    plateau_generations: int = Field(default=3, ge=1)
    impact_trial_agents: int = Field(
        default=2, ge=1, description="Extra trials used to measure an applied improvement"
    )


class GitConfig(BaseModel):
    """Version control behaviour for accepted improvements."""
    enabled: bool = True
    branch_prefix: str = "evolution"
    commit_prefix: str = "[Evolution]"
    create_backup_branch: bool = True


class EvolutionSettings(BaseSettings):
    """Top-level settings; every field can be overridden from EVOLUTION_* env vars."""
    paths: PathsConfig = Field(default_factory=PathsConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    patterns: PatternConfig = Field(default_factory=PatternConfig)
    proposer: ProposerConfig = Field(default_factory=ProposerConfig)
    evolution: EvolutionParams = Field(default_factory=EvolutionParams)
    git: GitConfig = Field(default_factory=GitConfig)

    model_config = {
        "env_prefix": "EVOLUTION_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


class TestCaseConfig(BaseModel):
    """Per-run description of the layout task being reproduced."""
    __test__ = False

    test_case: str
    agent_count: int = Field(default=3, ge=1)
    generation: int = 0
    reference_metrics: dict[str, object] | None = None
    reference_image: Path | None = None
    reference_description: str | None = None
    tolerance: float = Field(default=0.05, ge=0.0, le=1.0)
