"""Tests for git tracking of improvements."""

import shutil
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from indesign_evolution.config import GitConfig
from indesign_evolution.errors import GitCommandError
from indesign_evolution.improvements.model import Improvement
from indesign_evolution.vcs.tracker import (
    CommitMetadata,
    VersionControlTracker,
    format_commit_message,
)


def _improvement(field: str | None = None) -> Improvement:
    return Improvement(
        id="imp_1",
        type="parameter" if field else "description",
        tool="create_paragraph_style",
        field=field,
        current="Font size in points",
        proposed="Font size in points; headings 1.5-2x body",
        rationale="fontSize under reference (3 agents, high)",
        expected_impact=0.8,
    )


def _completed(stdout: str = "", returncode: int = 0, stderr: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


def test_commit_message_format():
    message = format_commit_message(_improvement("font_size"), CommitMetadata(3, 65.0, 72.0))
    assert message.splitlines() == [
        "[Evolution] parameter: create_paragraph_style",
        "",
        "Generation: 3",
        "Expected Impact: 80%",
        "Actual Impact: 65.0% → 72.0% (+7.0%)",
        "",
        "Rationale:",
        "fontSize under reference (3 agents, high)",
        "",
        "Changes:",
        "- Current: Font size in points",
        "- Proposed: Font size in points; headings 1.5-2x body",
        "- Field: font_size",
    ]


def test_commit_message_without_field():
    message = format_commit_message(_improvement(), CommitMetadata(0, 70.0, 68.0), prefix="[Tune]")
    assert message.startswith("[Tune] description: create_paragraph_style")
    assert "(-2.0%)" in message
    assert "Field:" not in message


def test_commit_runs_add_commit_and_rev_parse(tmp_path):
    tracker = VersionControlTracker(tmp_path, GitConfig(), timeout=5)
    with patch("indesign_evolution.vcs.tracker.subprocess.run",
               return_value=_completed("abc123def\n")) as run:
        commit = tracker.commit_improvement(_improvement(), CommitMetadata(1, 60.0, 70.0))

    assert commit == "abc123def"
    commands = [call.args[0] for call in run.call_args_list]
    assert commands[0] == ["git", "add", "-A"]
    assert commands[1][:3] == ["git", "commit", "-m"]
    assert commands[1][3].startswith("[Evolution] description: create_paragraph_style")
    assert commands[2] == ["git", "rev-parse", "HEAD"]
    assert all(call.kwargs["timeout"] == 5 for call in run.call_args_list)
    assert all(call.kwargs["cwd"] == tmp_path for call in run.call_args_list)


def test_timeout_raises_git_command_error(tmp_path):
    tracker = VersionControlTracker(tmp_path)
    with patch("indesign_evolution.vcs.tracker.subprocess.run",
               side_effect=subprocess.TimeoutExpired(cmd="git", timeout=30)):
        with pytest.raises(GitCommandError, match="timed out"):
            tracker.revert_last_commit()


def test_non_zero_exit_raises(tmp_path):
    tracker = VersionControlTracker(tmp_path)
    with patch("indesign_evolution.vcs.tracker.subprocess.run",
               return_value=_completed(returncode=128, stderr="fatal: not a git repository")):
        with pytest.raises(GitCommandError) as excinfo:
            tracker.tag_generation(2, 71.6)
    assert excinfo.value.returncode == 128
    assert excinfo.value.command[:3] == ["tag", "-a", "evolution-gen-2-score-72"]


def test_is_repo_false_on_failure(tmp_path):
    tracker = VersionControlTracker(tmp_path)
    with patch("indesign_evolution.vcs.tracker.subprocess.run",
               side_effect=FileNotFoundError("git")):
        assert tracker.is_repo() is False


def test_history_parsing(tmp_path):
    tracker = VersionControlTracker(tmp_path)
    out = (
        "aaa111|2026-01-02 10:00:00 +0000|[Evolution] description: add_text\n"
        "bbb222|2026-01-01 09:00:00 +0000|[Evolution] example: create_textframe|extra\n"
    )
    with patch("indesign_evolution.vcs.tracker.subprocess.run", return_value=_completed(out)):
        history = tracker.get_improvement_history(limit=5)
    assert [e.hash for e in history] == ["aaa111", "bbb222"]
    assert history[1].message == "[Evolution] example: create_textframe|extra"


def test_stash_skips_clean_tree(tmp_path):
    tracker = VersionControlTracker(tmp_path)
    with patch("indesign_evolution.vcs.tracker.subprocess.run",
               return_value=_completed("")) as run:
        assert tracker.stash_changes() is False
    assert run.call_count == 1


def _git(repo, *args):
    subprocess.run(["git", *args], cwd=repo, check=True, capture_output=True, text=True)


@pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
def test_real_repository_flow(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "config", "user.email", "evolution@example.com")
    _git(repo, "config", "user.name", "Evolution Test")
    (repo / "tools.json").write_text('{"tools": []}\n')
    _git(repo, "add", "-A")
    _git(repo, "commit", "-q", "-m", "initial")

    tracker = VersionControlTracker(repo, GitConfig(branch_prefix="evo"))
    assert tracker.is_repo()
    backup = tracker.create_backup_branch()
    branch = tracker.create_improvement_branch(0)
    assert branch.startswith("evo/gen-0-")
    assert tracker.current_branch() == branch

    (repo / "tools.json").write_text('{"tools": [{"name": "add_text"}]}\n')
    assert tracker.has_uncommitted_changes()
    commit = tracker.commit_improvement(_improvement(), CommitMetadata(0, 60.0, 70.0))
    tag = tracker.tag_generation(0, 70.0)
    assert tag == "evolution-gen-0-score-70"

    history = tracker.get_improvement_history()
    assert [e.hash for e in history] == [commit]
    assert "tools.json" in tracker.get_commit_diff(commit)
    report = tracker.generate_git_report()
    assert "Improvement commits: 1" in report
    assert tag in report

    tracker.revert_last_commit()
    assert tracker.get_improvement_history() == []
    tracker.checkout(backup)
    assert tracker.current_branch() == backup

    (repo / "scratch.txt").write_text("wip")
    assert tracker.stash_changes()
    assert not tracker.has_uncommitted_changes()
    tracker.pop_stash()
    assert (repo / "scratch.txt").exists()
    tracker.revert_to_commit("HEAD")
