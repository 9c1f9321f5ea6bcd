"""Regression validator - gates every edit behind the check battery."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

import structlog

from indesign_evolution.errors import PersistenceError
from indesign_evolution.improvements.model import Improvement
from indesign_evolution.regression.check import Check, core_checks
from indesign_evolution.runner.interface import ToolBridge

logger = structlog.get_logger()


@dataclass
class RegressionReport:
    safe: bool
    affected_checks: list[str] = field(default_factory=list)
    errors: list[tuple[str, str]] = field(default_factory=list)  # (check, message)


@dataclass
class RegressionSummary:
    passed: int = 0
    failed: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)


class RegressionValidator:
    """Runs the registered checks sequentially against the already-edited tools."""

    def __init__(self, bridge: ToolBridge, results_dir: Path | None = None) -> None:
        self._bridge = bridge
        self._results_dir = Path(results_dir) if results_dir else None
        self._checks: dict[str, Check] = {}

    def register(self, check: Check) -> None:
        self._checks[check.name] = check

    def register_core_checks(self) -> None:
        for check in core_checks():
            self.register(check)

    @property
    def checks(self) -> list[Check]:
        return list(self._checks.values())

    def checks_for_tool(self, tool: str) -> list[Check]:
        return [c for c in self._checks.values() if tool in c.required_tools]

    async def test_improvement(self, improvement: Improvement) -> RegressionReport:
        selected = self.checks_for_tool(improvement.tool)
        if not selected:
            logger.info("regression_no_checks", tool=improvement.tool)
            return RegressionReport(safe=True)

        errors = []
        for check in selected:
            error = await self._run_check(check)
            if error is not None:
                errors.append((check.name, error))

        report = RegressionReport(
            safe=not errors,
            affected_checks=[c.name for c in selected],
            errors=errors,
        )
        logger.info(
            "regression_checked",
            tool=improvement.tool,
            checks=len(selected),
            failed=len(errors),
            safe=report.safe,
        )
        return report

    async def run_all(self) -> RegressionSummary:
        return await self._run_many(self.checks)

    async def run_for_tools(self, tools: list[str]) -> RegressionSummary:
        wanted = set(tools)
        return await self._run_many(
            [c for c in self._checks.values() if wanted.intersection(c.required_tools)]
        )

    async def _run_many(self, checks: list[Check]) -> RegressionSummary:
        summary = RegressionSummary()
        for check in checks:
            error = await self._run_check(check)
            if error is None:
                summary.passed += 1
            else:
                summary.failed += 1
                summary.errors.append((check.name, error))
        self._write_results(summary)
        return summary

    async def _run_check(self, check: Check) -> str | None:
        """Run one check; returns an error message or None when it passes."""
        error = None
        try:
            try:
                if check.setup is not None:
                    await check.setup(self._bridge)
                await check.execute(self._bridge)
                if not await check.validate(self._bridge):
                    error = "validation failed"
            except Exception as exc:
                logger.warning("regression_check_error", check=check.name, error=str(exc))
                error = str(exc) or type(exc).__name__
        finally:
            if check.cleanup is not None:
                cleanup_error = await self._cleanup(check)
                if cleanup_error:
                    error = f"{error}; {cleanup_error}" if error else cleanup_error
        return error

    async def _cleanup(self, check: Check) -> str | None:
        try:
            await check.cleanup(self._bridge)
        except Exception as exc:
            logger.warning("regression_cleanup_failed", check=check.name, error=str(exc))
            return f"cleanup failed: {str(exc) or type(exc).__name__}"
        return None

    def _write_results(self, summary: RegressionSummary) -> None:
        if self._results_dir is None:
            return
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S%f")
        path = self._results_dir / f"regression-results-{stamp}.json"
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "passed": summary.passed,
            "failed": summary.failed,
            "errors": [{"check": name, "error": msg} for name, msg in summary.errors],
        }
        try:
            self._results_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2))
        except OSError as exc:
            raise PersistenceError(f"Cannot write regression results: {exc}") from exc
