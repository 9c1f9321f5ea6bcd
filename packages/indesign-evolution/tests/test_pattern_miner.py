"""Tests for pattern mining and the generation report."""

import pytest
from _helpers import deviation, make_call, make_run

from indesign_evolution.analysis import stats
from indesign_evolution.analysis.miner import PatternMiner
from indesign_evolution.analysis.report import format_pattern_report
from indesign_evolution.config import PatternConfig


@pytest.fixture
def miner() -> PatternMiner:
    return PatternMiner(PatternConfig(expected_tools={}))


def test_consistent_font_size_deviation_is_one_high_pattern():
    runs = [
        make_run("agent-0-1", 55, [deviation("fontSize", 24, 18)]),
        make_run("agent-0-2", 58, [deviation("fontSize", 24, 17)]),
        make_run("agent-0-3", 52, [deviation("fontSize", 24, 18.5)]),
    ]
    patterns = PatternMiner().analyze(runs)

    assert len(patterns) == 1
    pattern = patterns[0]
    assert pattern.type == "visual-deviation"
    assert pattern.frequency == 3
    assert pattern.severity == "high"
    assert pattern.signature["field"] == "fontSize"
    assert pattern.signature["direction"] == "under"
    assert pattern.confidence == 1.0


def test_deviation_within_tolerance_is_ignored():
    runs = [make_run(f"agent-0-{i}", 80, [deviation("leading", 14, 14.3)]) for i in range(3)]
    assert PatternMiner().analyze(runs) == []


def test_equal_significance_orders_by_type_name(miner: PatternMiner):
    runs = [
        make_run(
            f"agent-0-{i}", 60, [deviation("fontSize", 24, 12)],
            calls=[make_call("add_text", result="error", error="No document open")],
        )
        for i in range(3)
    ]
    patterns = miner.analyze(runs)

    assert [p.type for p in patterns] == ["error-pattern", "visual-deviation"]
    assert patterns[0].significance == patterns[1].significance
    assert [p.type for p in miner.analyze(list(reversed(runs)))] == [p.type for p in patterns]


def test_frequency_never_exceeds_run_count(miner: PatternMiner):
    calls = [make_call("add_text", offset=i, text="body") for i in range(6)]
    runs = [make_run(f"agent-0-{i}", 40, calls=calls) for i in range(4)]
    for pattern in miner.analyze(runs):
        assert 1 <= pattern.frequency <= len(runs)
        assert 0.0 <= pattern.confidence <= 1.0
        assert len(pattern.examples) <= 5


def test_empty_generation_yields_no_patterns(miner: PatternMiner):
    assert miner.analyze([]) == []


def test_single_agent_never_surfaces(miner: PatternMiner):
    runs = [
        make_run("agent-0-1", 30, calls=[make_call("add_text", result="error", error="boom")]),
        make_run("agent-0-2", 90),
    ]
    assert [p for p in miner.analyze(runs) if p.type == "error-pattern"] == []


def test_parameter_choice_only_for_low_scores(miner: PatternMiner):
    low = [
        make_run(f"agent-0-{i}", 45, calls=[make_call("create_textframe", x=0, width=600)])
        for i in range(3)
    ]
    found = {(p.signature.get("parameter"), p.signature.get("value"))
             for p in miner.analyze(low) if p.type == "parameter-choice"}
    assert ("width", "600") in found

    high = [
        make_run(f"agent-0-{i}", 90, calls=[make_call("create_textframe", x=0, width=600)])
        for i in range(3)
    ]
    assert not [p for p in miner.analyze(high) if p.type == "parameter-choice"]


def test_inferred_calls_do_not_count_as_parameter_choices(miner: PatternMiner):
    runs = [
        make_run(f"agent-0-{i}", 20,
                 calls=[make_call("create_textframe", inferred=True, note="from frames")])
        for i in range(3)
    ]
    assert not [p for p in miner.analyze(runs) if p.type == "parameter-choice"]


def test_missing_expected_tool():
    config = PatternConfig(expected_tools={"text-hierarchy": ["create_paragraph_style"]})
    miner = PatternMiner(config)
    runs = [
        make_run(f"agent-0-{i}", 60, calls=[make_call("add_text", text="x")]) for i in range(3)
    ]
    missing = [p for p in miner.analyze(runs) if p.type == "missing-tool"]
    assert len(missing) == 1
    assert missing[0].signature == {"tool": "create_paragraph_style", "group": "text-hierarchy"}


def test_longest_problem_sequence_subsumes_its_parts(miner: PatternMiner):
    calls = [make_call("add_text", 1), make_call("create_textframe", 2),
             make_call("create_paragraph_style", 3)]
    runs = [make_run(f"agent-0-{i}", 40, calls=calls) for i in range(3)]
    sequences = [p for p in miner.analyze(runs) if p.type == "tool-sequence"]
    assert [p.signature["sequence"] for p in sequences] == [
        ["add_text", "create_textframe", "create_paragraph_style"]
    ]


def test_redundant_calls(miner: PatternMiner):
    calls = [make_call("add_text", offset=i) for i in range(5)]
    runs = [make_run(f"agent-0-{i}", 70, calls=calls) for i in range(3)]
    redundant = [p for p in miner.analyze(runs) if p.type == "redundant-call"]
    assert len(redundant) == 1
    assert redundant[0].signature["averageCalls"] == 5.0


def test_missing_score_counts_as_zero(miner: PatternMiner):
    calls = [make_call("add_text", 1, text="x"), make_call("create_textframe", 2)]
    runs = [make_run(f"agent-0-{i}", None, calls=calls) for i in range(2)]
    assert any(p.type == "tool-sequence" for p in miner.analyze(runs))


def test_inconsistent_evidence_lowers_confidence():
    runs = [
        make_run("agent-0-1", 50, [deviation("width", 100, 110)]),
        make_run("agent-0-2", 50, [deviation("width", 100, 300)]),
    ]
    patterns = PatternMiner(PatternConfig(confidence_threshold=0.5)).analyze(runs)
    assert len(patterns) == 1
    assert patterns[0].confidence == pytest.approx(0.7)


def test_stats_helpers():
    assert stats.mean([]) == 0.0
    assert stats.std([5.0]) == 0.0
    assert stats.variance([1.0, 3.0]) == pytest.approx(1.0)
    assert stats.is_consistent([10.0, 10.5, 9.5])
    assert not stats.is_consistent([1.0, 10.0], max_cv=0.5)
    assert stats.severity_for(1, 3) == "medium"
    assert stats.severity_for(0, 0) == "low"
    assert stats.mean_step([60.0, 65.0, 75.0]) == pytest.approx(7.5)


def test_report_lists_runs_and_patterns():
    runs = [
        make_run(f"agent-0-{i + 1}", 50 + i, [deviation("fontSize", 24, 12)]) for i in range(3)
    ]
    runs[2].synthesized = True
    patterns = PatternMiner().analyze(runs)
    report = format_pattern_report(runs, patterns, "book-page", reference="ref.png")

    assert report.startswith("# Generation 0 analysis: book-page")
    assert "Reference: ref.png" in report
    assert "| agent-0-3 | 52.0 | 0 | 0 | inferred |" in report
    assert "### High severity" in report
    assert "fontSize consistently under reference" in report


def test_report_without_patterns():
    report = format_pattern_report([], [], "book-page")
    assert "No scored runs" in report
    assert "No patterns met" in report
