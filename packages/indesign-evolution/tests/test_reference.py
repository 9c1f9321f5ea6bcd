"""Tests for reference test-case loading and settings."""

import json

import pytest

from indesign_evolution.config import EvolutionSettings
from indesign_evolution.errors import PreflightError, ReferenceDataError
from indesign_evolution.reference import list_test_cases, load_test_case


@pytest.fixture
def cases_dir(tmp_path):
    directory = tmp_path / "cases"
    directory.mkdir()
    (directory / "book-page.json").write_text(json.dumps({
        "description": "Chapter opener with heading and two body paragraphs",
        "referenceImage": "images/book-page.png",
        "tolerance": 0.1,
        "expectedMetrics": {"frames": [{"hasText": True}], "styles": [{"name": "Heading"}]},
        "fontFallbacks": {"Minion Pro": ["Times New Roman"]},
    }))
    (directory / "broken.json").write_text(json.dumps({"tolerance": 3}))
    return directory


def test_load_test_case(cases_dir):
    case = load_test_case("book-page", cases_dir)
    assert case.name == "book-page"
    assert case.tolerance == 0.1
    assert case.expected_metrics["styles"] == [{"name": "Heading"}]
    assert case.font_fallbacks == {"Minion Pro": ["Times New Roman"]}
    assert case.reference_image == (cases_dir / "images" / "book-page.png").resolve()


def test_missing_case_is_a_preflight_error(cases_dir):
    with pytest.raises(PreflightError):
        load_test_case("magazine", cases_dir)


def test_invalid_case(cases_dir):
    with pytest.raises(ReferenceDataError):
        load_test_case("broken", cases_dir)


def test_list_test_cases(cases_dir, tmp_path):
    assert list_test_cases(cases_dir) == ["book-page", "broken"]
    assert list_test_cases(tmp_path / "missing") == []


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("EVOLUTION_EVOLUTION__AGENT_COUNT", "5")
    monkeypatch.setenv("EVOLUTION_PATHS__BASE_DIR", str(tmp_path))
    monkeypatch.setenv("EVOLUTION_GIT__ENABLED", "false")
    settings = EvolutionSettings()
    assert settings.evolution.agent_count == 5
    assert settings.paths.telemetry_dir == tmp_path / "telemetry"
    assert settings.paths.history_dir == tmp_path / "improvements" / "history"
    assert settings.git.enabled is False
    assert settings.patterns.min_frequency == 2
