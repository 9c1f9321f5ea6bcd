"""Git tracking of accepted improvements.

Every operation is a synchronous ``git`` subprocess with a timeout. A timeout
or non-zero exit raises ``GitCommandError`` for that operation only.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

import structlog

from indesign_evolution.config import GitConfig
from indesign_evolution.errors import GitCommandError
from indesign_evolution.improvements.model import Improvement

logger = structlog.get_logger()


@dataclass
class CommitMetadata:
    generation: int
    before_score: float
    after_score: float


@dataclass
class HistoryEntry:
    hash: str
    date: str
    message: str


def _timestamp() -> str:
    return datetime.now(UTC).strftime("%Y%m%d-%H%M%S")


def format_commit_message(
    improvement: Improvement, metadata: CommitMetadata, prefix: str = "[Evolution]"
) -> str:
    """Structured commit message; tooling parses this format from history."""
    delta = metadata.after_score - metadata.before_score
    lines = [
        f"{prefix} {improvement.type}: {improvement.tool}",
        "",
        f"Generation: {metadata.generation}",
        f"Expected Impact: {improvement.expected_impact * 100:.0f}%",
        f"Actual Impact: {metadata.before_score:.1f}% → {metadata.after_score:.1f}% "
        f"({delta:+.1f}%)",
        "",
        "Rationale:",
        improvement.rationale,
        "",
        "Changes:",
        f"- Current: {improvement.current}",
        f"- Proposed: {improvement.proposed}",
    ]
    if improvement.field:
        lines.append(f"- Field: {improvement.field}")
    return "\n".join(lines)


class VersionControlTracker:
    """Commits, tags and reverts improvements on the evolution branch."""

    def __init__(
        self,
        repo_dir: Path | None = None,
        config: GitConfig | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._repo = Path(repo_dir) if repo_dir else Path.cwd()
        self._config = config or GitConfig()
        self._timeout = timeout

    def _git(self, *args: str) -> str:
        cmd = ["git", *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=self._repo,
                capture_output=True,
                text=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(list(args), f"timed out after {self._timeout}s") from exc
        except FileNotFoundError as exc:
            raise GitCommandError(list(args), "git executable not found") from exc
        if result.returncode != 0:
            raise GitCommandError(
                list(args), result.stderr.strip() or result.stdout.strip(), result.returncode
            )
        return result.stdout.strip()

    # ---- branches ---- #

    def is_repo(self) -> bool:
        try:
            return self._git("rev-parse", "--is-inside-work-tree") == "true"
        except GitCommandError:
            return False

    def current_branch(self) -> str:
        return self._git("rev-parse", "--abbrev-ref", "HEAD")

    def create_branch(self, name: str) -> str:
        self._git("checkout", "-b", name)
        logger.info("git_branch_created", branch=name)
        return name

    def checkout(self, name: str) -> None:
        self._git("checkout", name)

    def create_backup_branch(self) -> str:
        """Snapshot HEAD as ``backup/pre-evolution-<ts>`` without switching to it."""
        name = f"backup/pre-evolution-{_timestamp()}"
        self._git("branch", name)
        logger.info("git_backup_branch", branch=name)
        return name

    def create_improvement_branch(self, generation: int) -> str:
        return self.create_branch(f"{self._config.branch_prefix}/gen-{generation}-{_timestamp()}")

    # ---- commits ---- #

    def commit_improvement(self, improvement: Improvement, metadata: CommitMetadata) -> str:
        self._git("add", "-A")
        self._git(
            "commit", "-m", format_commit_message(improvement, metadata, self._config.commit_prefix)
        )
        commit = self._git("rev-parse", "HEAD")
        logger.info(
            "git_improvement_committed",
            commit=commit[:8],
            tool=improvement.tool,
            generation=metadata.generation,
        )
        return commit

    def revert_last_commit(self) -> None:
        self._git("reset", "--hard", "HEAD~1")
        logger.info("git_reverted_last_commit")

    def revert_to_commit(self, commit: str) -> None:
        self._git("reset", "--hard", commit)
        logger.info("git_reverted_to_commit", commit=commit[:8])

    def tag_generation(self, generation: int, score: float) -> str:
        tag = f"evolution-gen-{generation}-score-{round(score)}"
        self._git("tag", "-a", tag, "-m", f"Generation {generation}: score {score:.1f}")
        logger.info("git_generation_tagged", tag=tag)
        return tag

    def get_improvement_history(self, limit: int = 20) -> list[HistoryEntry]:
        out = self._git(
            "log",
            f"--grep={self._config.commit_prefix}",
            "--fixed-strings",
            f"-n{limit}",
            "--format=%H|%ai|%s",
        )
        entries = []
        for line in out.splitlines():
            parts = line.split("|", 2)
            if len(parts) == 3:
                entries.append(HistoryEntry(hash=parts[0], date=parts[1], message=parts[2]))
        return entries

    def get_commit_diff(self, commit: str) -> str:
        return self._git("show", "--stat", "--format=%H%n%s", commit)

    # ---- working tree ---- #

    def has_uncommitted_changes(self) -> bool:
        return bool(self._git("status", "--porcelain"))

    def stash_changes(self, message: str = "evolution-autostash") -> bool:
        if not self.has_uncommitted_changes():
            return False
        self._git("stash", "push", "-u", "-m", message)
        return True

    def pop_stash(self) -> None:
        self._git("stash", "pop")

    def generate_git_report(self) -> str:
        history = self.get_improvement_history(limit=50)
        tags = [t for t in self._git("tag", "--list", "evolution-gen-*").splitlines() if t]
        lines = [
            "# Evolution git report",
            "",
            f"- Branch: {self.current_branch()}",
            f"- Improvement commits: {len(history)}",
            f"- Generation tags: {len(tags)}",
            "",
        ]
        if history:
            lines += ["## Commits", ""]
            lines += [f"- {e.hash[:8]} {e.date} {e.message}" for e in history]
            lines.append("")
        if tags:
            lines += ["## Tags", ""]
            lines += [f"- {t}" for t in tags]
        return "\n".join(lines).rstrip() + "\n"
