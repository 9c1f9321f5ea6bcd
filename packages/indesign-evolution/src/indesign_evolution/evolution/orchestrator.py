"""Evolution orchestrator - drives generations of agent trials and tool edits.

Two ways in:

* ``run()`` executes the whole loop automatically through an ``AgentRunner``.
* The step API (``initialize`` / ``start_generation`` / ``get_next_agent_prompt``
  / ``process_agent_completion`` / ``analyze_generation`` /
  ``suggest_improvements`` / ``apply_improvement`` / ``next_generation``) lets a
  caller launch the agents itself and drive the loop one step at a time.

Trials always run one at a time because they share one document.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from indesign_evolution.analysis import stats
from indesign_evolution.analysis.miner import PatternMiner
from indesign_evolution.analysis.patterns import Pattern
from indesign_evolution.analysis.report import format_pattern_report
from indesign_evolution.config import EvolutionSettings, TestCaseConfig
from indesign_evolution.errors import (
    EvolutionError,
    GitCommandError,
    ImprovementError,
    PersistenceError,
    PreflightError,
    RegressionFailure,
    SessionTimeoutError,
)
from indesign_evolution.evolution.convergence import ConvergenceTracker
from indesign_evolution.evolution.state import (
    ConvergenceState,
    EvolutionPhase,
    GenerationResult,
    TestRun,
    scored,
)
from indesign_evolution.improvements.ledger import ImprovementLedger, LedgerStatistics
from indesign_evolution.improvements.model import Improvement, ImprovementResult
from indesign_evolution.improvements.proposer import ImprovementProposer
from indesign_evolution.monitor import EvolutionMonitor, EvolutionSummary
from indesign_evolution.reference import load_test_case
from indesign_evolution.regression.validator import RegressionValidator
from indesign_evolution.runner.fallback import synthesize_session
from indesign_evolution.runner.interface import (
    AgentRunner,
    DocumentController,
    LayoutComparator,
    SessionDescriptor,
)
from indesign_evolution.telemetry.session import new_session_id
from indesign_evolution.telemetry.store.base import TelemetryStore
from indesign_evolution.tools.applier import ImprovementApplier
from indesign_evolution.tools.definition import ToolDefinition, ToolDefinitionStore
from indesign_evolution.tools.serializer import (
    JsonToolDefinitionSerializer,
    ToolDefinitionSerializer,
)
from indesign_evolution.vcs.tracker import CommitMetadata, VersionControlTracker

logger = structlog.get_logger()

_BANNER = "━" * 40


@dataclass
class AgentPrompt:
    session_id: str
    agent_id: str
    prompt: str
    is_last_agent: bool
    descriptor: SessionDescriptor


@dataclass
class PendingImprovement:
    """An edit that passed regression checks and awaits its score measurement."""

    improvement: Improvement
    before_score: float
    original: ToolDefinition

    def to_dict(self) -> dict[str, Any]:
        return {
            "improvement": self.improvement.to_dict(),
            "beforeScore": self.before_score,
            "original": self.original.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingImprovement:
        return cls(
            improvement=Improvement.from_dict(data["improvement"]),
            before_score=float(data["beforeScore"]),
            original=ToolDefinition.from_dict(data["original"]),
        )


@dataclass
class EvolutionResult:
    phase: EvolutionPhase
    summary: EvolutionSummary
    convergence: ConvergenceState
    statistics: LedgerStatistics
    generations: list[GenerationResult] = field(default_factory=list)
    report_path: Path | None = None


class EvolutionOrchestrator:
    """Owns the generation loop state; composes miner, proposer, validator and git."""

    def __init__(
        self,
        settings: EvolutionSettings,
        telemetry: TelemetryStore,
        document: DocumentController,
        comparator: LayoutComparator,
        definitions: ToolDefinitionStore,
        validator: RegressionValidator,
        runner: AgentRunner | None = None,
        tracker: VersionControlTracker | None = None,
        serializer: ToolDefinitionSerializer | None = None,
        ledger: ImprovementLedger | None = None,
    ) -> None:
        self._settings = settings
        self._telemetry = telemetry
        self._document = document
        self._comparator = comparator
        self._definitions = definitions
        self._validator = validator
        self._runner = runner
        self._tracker = tracker if settings.git.enabled else None
        self._serializer = serializer or JsonToolDefinitionSerializer()
        self._ledger = ledger or ImprovementLedger(settings.paths.history_dir)
        self._miner = PatternMiner(settings.patterns)
        self._proposer = ImprovementProposer(self._ledger, definitions, settings.proposer)
        self._applier = ImprovementApplier()
        self._convergence = ConvergenceTracker(settings.evolution)

        self.phase = EvolutionPhase.IDLE
        self._test_case: TestCaseConfig | None = None
        self._monitor: EvolutionMonitor | None = None
        self._generation = 0
        self._agent_index = 0
        self._runs: list[TestRun] = []
        self._issued: dict[str, tuple[SessionDescriptor, float]] = {}
        self._completed_agents: list[str] = []
        self._generations: list[GenerationResult] = []
        self._patterns: list[Pattern] = []
        self._pending: PendingImprovement | None = None
        self._applied: list[Improvement] = []
        self._gain_since_update: float | None = None
        self._start_time = datetime.now(UTC)

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def ledger(self) -> ImprovementLedger:
        return self._ledger

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def runs(self) -> list[TestRun]:
        return list(self._runs)

    @property
    def generations(self) -> list[GenerationResult]:
        return list(self._generations)

    @property
    def convergence(self) -> ConvergenceState:
        return self._convergence.state

    @property
    def pending_improvement(self) -> PendingImprovement | None:
        return self._pending

    @property
    def applied_improvements(self) -> list[Improvement]:
        return list(self._applied)

    @property
    def test_case(self) -> TestCaseConfig:
        if self._test_case is None:
            raise EvolutionError("Orchestrator not initialized; call initialize() first")
        return self._test_case

    @property
    def monitor(self) -> EvolutionMonitor:
        if self._monitor is None:
            raise EvolutionError("Orchestrator not initialized; call initialize() first")
        return self._monitor

    # ------------------------------------------------------------------ #
    # Step API
    # ------------------------------------------------------------------ #

    def initialize(self, test_case: TestCaseConfig | str, agent_count: int | None = None) -> None:
        if isinstance(test_case, str):
            test_case = self._resolve_test_case(test_case)
        if agent_count is not None:
            test_case = test_case.model_copy(update={"agent_count": agent_count})
        self._test_case = test_case
        self._monitor = EvolutionMonitor(test_case.test_case, self._settings.paths.monitoring_dir)
        self._generation = test_case.generation
        self._agent_index = 0
        self._runs = []
        self._start_time = datetime.now(UTC)
        logger.info(
            "evolution_initialized",
            test_case=test_case.test_case,
            agents=test_case.agent_count,
            generation=self._generation,
        )

    def _resolve_test_case(self, name: str) -> TestCaseConfig:
        cases_dir = self._settings.paths.test_cases_dir
        if cases_dir is None:
            return TestCaseConfig(test_case=name, agent_count=self._settings.evolution.agent_count)
        case = load_test_case(name, cases_dir)
        return TestCaseConfig(
            test_case=name,
            agent_count=self._settings.evolution.agent_count,
            reference_metrics=case.expected_metrics,
            reference_image=case.reference_image,
            reference_description=case.description or None,
            tolerance=case.tolerance,
        )

    async def start_generation(self) -> None:
        self.phase = EvolutionPhase.PREPARING_GENERATION
        await self._preflight()
        self._agent_index = 0
        self._runs = []
        self._completed_agents = []
        self._issued = {}
        self.monitor.generation_started(self._generation, self.test_case.agent_count)

    async def _preflight(self) -> None:
        test_case = self.test_case
        try:
            ready = await self._document.check_ready()
            if ready:
                await self._document.reset()
        except Exception as exc:
            raise PreflightError(f"Document reset unavailable: {exc}") from exc
        if not ready:
            raise PreflightError("Document is not ready for trials")
        if not test_case.reference_metrics:
            raise PreflightError(f"No reference metrics for test case {test_case.test_case!r}")
        if test_case.reference_image is not None and not test_case.reference_image.is_file():
            raise PreflightError(f"Reference image not readable: {test_case.reference_image}")

    def get_next_agent_prompt(self) -> AgentPrompt | None:
        test_case = self.test_case
        if self._agent_index >= test_case.agent_count:
            return None
        self.phase = EvolutionPhase.RUNNING_AGENTS
        agent_id = f"agent-{self._generation}-{self._agent_index + 1}"
        prompt = self._issue(agent_id)
        self._agent_index += 1
        prompt.is_last_agent = self._agent_index >= test_case.agent_count
        return prompt

    def _issue(self, agent_id: str) -> AgentPrompt:
        test_case = self.test_case
        reference = (
            str(test_case.reference_image) if test_case.reference_image
            else test_case.reference_description
        )
        descriptor = SessionDescriptor(
            session_id=new_session_id(agent_id, self._generation),
            agent_id=agent_id,
            generation=self._generation,
            test_case=test_case.test_case,
            reference=reference,
        )
        self._issued[descriptor.session_id] = (descriptor, time.monotonic())
        return AgentPrompt(
            session_id=descriptor.session_id,
            agent_id=agent_id,
            prompt=self._build_prompt(descriptor),
            is_last_agent=False,
            descriptor=descriptor,
        )

    def _build_prompt(self, descriptor: SessionDescriptor) -> str:
        test_case = self.test_case
        lines = [
            _BANNER,
            f"SESSION ID: {descriptor.session_id}",
            _BANNER,
            "",
            "CONTEXT: The InDesign document has been cleared and is ready for your layout.",
            "",
            "TASK: Recreate this page layout in InDesign using the available MCP tools.",
            "",
        ]
        if test_case.reference_image:
            lines.append(f"Reference Image: {test_case.reference_image}")
        elif test_case.reference_description:
            lines.append(f"Reference: {test_case.reference_description}")
        else:
            lines.append("Reference: A typical book page with a heading and body text.")
        lines += [
            "",
            "Pay attention to text sizes and hierarchy, alignment and positioning,",
            "font styles, and spacing.",
            "",
            _BANNER,
            "When the layout is complete, call telemetry_end_session.",
            _BANNER,
        ]
        return "\n".join(lines)

    async def process_agent_completion(self, session_id: str) -> dict[str, Any]:
        """Collect the trial's telemetry and score, then reset the document."""
        issued = self._issued.pop(session_id, None)
        if issued is None:
            raise EvolutionError(f"Unknown session {session_id}")
        descriptor, started = issued
        run = await self._collect_run(descriptor, started)
        self._runs.append(run)
        self._completed_agents.append(descriptor.agent_id)
        await self._reset_document()

        score = run.score if run.score is not None else 0.0
        summary = (
            f"{descriptor.agent_id}: {len(run.telemetry.calls)} tool calls, score {score:.1f}"
            + (" (telemetry inferred)" if run.synthesized else "")
        )
        return {"score": score, "summary": summary, "synthesized": run.synthesized}

    async def _collect_run(self, descriptor: SessionDescriptor, started: float) -> TestRun:
        timeout = self._settings.timing.completion_timeout_s
        completed = await self._telemetry.wait_for_completion(descriptor.session_id, timeout)
        session = await self._telemetry.read_session(descriptor.session_id)

        synthesized = False
        metrics: dict[str, Any] | None = None
        if session is None:
            logger.warning(
                "telemetry_missing",
                session_id=descriptor.session_id,
                agent_id=descriptor.agent_id,
                completed=completed,
            )
            session, metrics = await synthesize_session(
                self._document, descriptor.session_id, descriptor.agent_id, descriptor.generation
            )
            synthesized = True
            try:
                await self._telemetry.save(session)
            except PersistenceError as exc:
                logger.warning("telemetry_save_failed", session_id=session.id, error=str(exc))

        run = TestRun(
            agent_id=descriptor.agent_id,
            telemetry=session,
            generation=descriptor.generation,
            duration=int((time.monotonic() - started) * 1000),
            synthesized=synthesized,
            error=None if completed else str(SessionTimeoutError(descriptor.session_id, timeout)),
        )
        try:
            if metrics is None:
                metrics = await self._document.extract_metrics()
            run.extracted_metrics = metrics
            run.comparison = await self._comparator.compare(
                metrics, self.test_case.reference_metrics or {}, self.test_case.tolerance
            )
        except Exception as exc:
            logger.warning("trial_scoring_failed", agent_id=descriptor.agent_id, error=str(exc))
            if not synthesized:
                run.success = False
            run.error = str(exc)
        await self._save_snapshot(descriptor)

        logger.info(
            "trial_complete",
            agent_id=descriptor.agent_id,
            calls=len(session.calls),
            score=run.score,
            synthesized=synthesized,
        )
        return run

    async def _save_snapshot(self, descriptor: SessionDescriptor) -> None:
        path = self._settings.paths.documents_dir / f"{descriptor.session_id}.indd"
        try:
            await self._document.save_snapshot(path)
        except Exception as exc:
            logger.warning("snapshot_failed", session_id=descriptor.session_id, error=str(exc))

    async def _reset_document(self) -> None:
        try:
            await self._document.reset()
        except Exception as exc:
            raise PreflightError(f"Document reset failed between trials: {exc}") from exc

    async def analyze_generation(self) -> dict[str, Any]:
        self.phase = EvolutionPhase.ANALYZING
        patterns = self._miner.analyze(self._runs)
        result = GenerationResult.from_runs(self._generation, self._runs, patterns)
        self._generations.append(result)
        self._patterns = patterns

        if self._pending is not None:
            await self._resolve_pending(result.average_score)

        state = self._convergence.update(result.average_score, self._gain_since_update)
        self._gain_since_update = None

        monitor = self.monitor
        monitor.generation_completed(result)
        monitor.patterns_found(self._generation, patterns)
        monitor.convergence(self._generation, state)

        reference = (
            str(self.test_case.reference_image) if self.test_case.reference_image
            else self.test_case.reference_description
        )
        report = format_pattern_report(self._runs, patterns, self.test_case.test_case, reference)
        self._write_text(
            self._settings.paths.results_dir / f"gen{self._generation}-analysis.md", report
        )
        return {
            "patterns": patterns,
            "report": report,
            "average_score": result.average_score,
            "best_score": result.best_score,
            "worst_score": result.worst_score,
            "convergence": state,
        }

    def suggest_improvements(self) -> list[Improvement]:
        """Ranked candidates that validate and have not been tried before."""
        self.phase = EvolutionPhase.PROPOSING_IMPROVEMENT
        candidates = []
        for improvement in self._proposer.propose(self._patterns, self._generation):
            if self._ledger.has_been_tried(improvement):
                logger.debug("improvement_already_tried", tool=improvement.tool)
                continue
            if not self._ledger.validate_improvement(improvement).valid:
                continue
            candidates.append(improvement)
        return candidates

    def _current_score(self) -> float:
        return self._generations[-1].average_score if self._generations else 0.0

    async def apply_improvement(self, improvement: Improvement) -> ImprovementResult | None:
        """Validate, apply, persist and regression-check an edit.

        Returns the recorded result when the edit is rejected. Returns None when
        it passed and now awaits measurement against the next scored trials.
        """
        if self._pending is not None:
            raise EvolutionError("Another improvement is still awaiting measurement")
        self.phase = EvolutionPhase.VALIDATING
        before = self._current_score()

        validation = self._ledger.validate_improvement(improvement)
        if not validation.valid:
            return self._record(improvement, before, before, error="; ".join(validation.issues))

        try:
            modified = self._applier.apply(improvement, self._definitions)
        except ImprovementError as exc:
            return self._record(improvement, before, before, error=str(exc))

        self._definitions.set(modified.after)
        try:
            self._persist_definitions()
            self.monitor.improvement_applied(improvement)
            regression = await self._validator.test_improvement(improvement)
        except PersistenceError as exc:
            self._restore(modified.before)
            return self._record(improvement, before, before, error=str(exc))
        except BaseException:
            self._restore(modified.before)
            raise

        if not regression.safe:
            self.phase = EvolutionPhase.REVERTING
            self._restore(modified.before)
            failure = RegressionFailure(regression.errors)
            return self._record(improvement, before, before, reverted=True, error=str(failure))

        self._pending = PendingImprovement(improvement, before, modified.before)
        self._applied.append(improvement)
        logger.info("improvement_pending_measurement", improvement_id=improvement.id)
        return None

    async def _resolve_pending(self, after_score: float) -> ImprovementResult:
        pending = self._pending
        if pending is None:
            raise EvolutionError("No improvement is awaiting measurement")
        self._pending = None
        improvement = pending.improvement
        gain = after_score - pending.before_score
        self._gain_since_update = gain

        if gain < self._settings.evolution.improvement_threshold:
            self.phase = EvolutionPhase.REVERTING
            self._restore(pending.original)
            return self._record(
                improvement, pending.before_score, after_score, reverted=True,
                error=f"Impact {gain:+.1f} below threshold",
            )

        self.phase = EvolutionPhase.COMMITTING
        if self._tracker is not None:
            try:
                self._tracker.commit_improvement(
                    improvement,
                    CommitMetadata(self._generation, pending.before_score, after_score),
                )
                if after_score > self._convergence.best_score:
                    self._tracker.tag_generation(self._generation, after_score)
            except GitCommandError as exc:
                logger.error("git_commit_failed", improvement_id=improvement.id, error=str(exc))
                self._restore(pending.original)
                return self._record(
                    improvement, pending.before_score, after_score, error=str(exc)
                )
        return self._record(improvement, pending.before_score, after_score, success=True)

    def _record(
        self,
        improvement: Improvement,
        before: float,
        after: float,
        success: bool = False,
        reverted: bool = False,
        error: str | None = None,
    ) -> ImprovementResult:
        result = self._ledger.record_result(
            improvement, before, after, success=success, reverted=reverted, error=error
        )
        self.monitor.improvement_result(result)
        return result

    def _persist_definitions(self) -> None:
        path = self._settings.paths.tool_definitions
        if path is not None:
            self._serializer.write(self._definitions, path)

    def _restore(self, original: ToolDefinition) -> None:
        self._definitions.set(original)
        try:
            self._persist_definitions()
        except PersistenceError as exc:
            logger.error("definition_restore_failed", tool=original.name, error=str(exc))
        logger.info("improvement_restored", tool=original.name)

    def next_generation(self) -> bool:
        """Advance the generation counter; False when the loop should stop."""
        self.phase = EvolutionPhase.CHECKING_CONVERGENCE
        if self._convergence.state.has_converged:
            self.phase = EvolutionPhase.CONVERGED
            return False
        if self._generation + 1 >= self._settings.evolution.max_generations:
            self.phase = EvolutionPhase.MAX_GENERATIONS_REACHED
            return False
        self._generation += 1
        self._agent_index = 0
        self._runs = []
        self._patterns = []
        self.phase = EvolutionPhase.PREPARING_GENERATION
        return True

    def get_progress(self) -> str:
        header = [
            f"Phase: {self.phase.value}",
            f"Generation: {self._generation}",
            f"Agents completed: {len(self._completed_agents)}/{self.test_case.agent_count}",
        ]
        if self._pending is not None:
            header.append(f"Awaiting measurement: {self._pending.improvement.id}")
        report = self.monitor.generate_progress_report(
            self._convergence.score_history, self._applied
        )
        return "\n".join(header) + "\n\n" + report

    # ------------------------------------------------------------------ #
    # Progress persistence
    # ------------------------------------------------------------------ #

    def save_progress(self, path: Path) -> None:
        payload = {
            "generation": self._generation,
            "currentAgentIndex": self._agent_index,
            "runs": [r.to_dict() for r in self._runs],
            "improvements": [i.to_dict() for i in self._applied],
            "results": [r.to_dict() for r in self._ledger.get_history()],
            "attempted": [i.to_dict() for i in self._ledger.get_improvements()],
            "config": self.test_case.model_dump(mode="json"),
            "startTime": self._start_time.isoformat(),
            "completedAgents": list(self._completed_agents),
            "generations": [
                {
                    "generation": g.generation,
                    "averageScore": g.average_score,
                    "bestScore": g.best_score,
                    "worstScore": g.worst_score,
                    "patterns": [p.to_dict() for p in g.patterns],
                }
                for g in self._generations
            ],
            "scoreHistory": list(self._convergence.score_history),
            "convergence": self._convergence.state.to_dict(),
            "pendingImprovement": self._pending.to_dict() if self._pending else None,
            "phase": self.phase.value,
        }
        self._write_text(Path(path), json.dumps(payload, indent=2), raise_errors=True)
        logger.info("progress_saved", path=str(path), generation=self._generation)

    def load_progress(self, path: Path) -> None:
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"Cannot load progress {path}: {exc}") from exc

        self.initialize(TestCaseConfig.model_validate(data["config"]))
        self._generation = int(data["generation"])
        self._agent_index = int(data.get("currentAgentIndex", 0))
        self._runs = [TestRun.from_dict(r) for r in data.get("runs", [])]
        self._applied = [Improvement.from_dict(i) for i in data.get("improvements", [])]
        self._ledger.restore(
            [ImprovementResult.from_dict(r) for r in data.get("results", [])],
            [Improvement.from_dict(i) for i in data.get("attempted", [])],
        )
        self._completed_agents = list(data.get("completedAgents", []))
        self._start_time = datetime.fromisoformat(data["startTime"])
        self._generations = [
            GenerationResult(
                generation=int(g["generation"]),
                patterns=[Pattern.from_dict(p) for p in g.get("patterns", [])],
                average_score=float(g["averageScore"]),
                best_score=float(g["bestScore"]),
                worst_score=float(g["worstScore"]),
            )
            for g in data.get("generations", [])
        ]
        self._patterns = self._generations[-1].patterns if self._generations else []
        self._convergence.restore(
            [float(s) for s in data.get("scoreHistory", [])],
            ConvergenceState.from_dict(data.get("convergence") or {}),
        )
        pending = data.get("pendingImprovement")
        self._pending = PendingImprovement.from_dict(pending) if pending else None
        self.phase = EvolutionPhase(data.get("phase", EvolutionPhase.IDLE.value))
        logger.info("progress_loaded", path=str(path), generation=self._generation)

    # ------------------------------------------------------------------ #
    # Automated loop
    # ------------------------------------------------------------------ #

    async def run(
        self, test_case: TestCaseConfig | str, resume_from: Path | None = None
    ) -> EvolutionResult:
        if self._runner is None:
            raise EvolutionError("Automated run requires an AgentRunner")
        if resume_from is not None:
            self.load_progress(resume_from)
            self._generation += 1
        else:
            self.initialize(test_case)
        self._prepare_repository()

        try:
            while True:
                await self.start_generation()
                await self._run_generation_trials()
                analysis = await self.analyze_generation()

                is_last = self._generation + 1 >= self._settings.evolution.max_generations
                if analysis["patterns"] and not self.convergence.has_converged and not is_last:
                    await self._try_improvement()

                self.phase = EvolutionPhase.CHECKING_CONVERGENCE
                self._checkpoint()
                if not self.next_generation():
                    break
        except Exception as exc:
            self._dump_error_state(exc)
            raise
        finally:
            if self._pending is not None:
                logger.warning("pending_improvement_discarded", id=self._pending.improvement.id)
                self._restore(self._pending.original)
                self._pending = None
            try:
                self._ledger.save_history()
            except PersistenceError as exc:
                logger.error("history_save_failed", error=str(exc))

        return self._finish()

    def _prepare_repository(self) -> None:
        if self._tracker is None:
            return
        try:
            if self._settings.git.create_backup_branch:
                self._tracker.create_backup_branch()
            self._tracker.create_improvement_branch(self._generation)
        except GitCommandError as exc:
            logger.error("git_prepare_failed", error=str(exc))

    async def _run_generation_trials(self) -> None:
        delay = self._settings.timing.delay_between_agents_s
        while True:
            prompt = self.get_next_agent_prompt()
            if prompt is None:
                break
            await self._runner.launch(prompt.descriptor, prompt.prompt)
            outcome = await self.process_agent_completion(prompt.session_id)
            logger.info("agent_finished", summary=outcome["summary"])
            if not prompt.is_last_agent and delay > 0:
                await asyncio.sleep(delay)

    async def _try_improvement(self) -> None:
        for improvement in self.suggest_improvements():
            rejected = await self.apply_improvement(improvement)
            if rejected is None:
                await self._measure_pending()
                return
            if rejected.reverted:
                # one regression-checked attempt per generation
                return

    async def _measure_pending(self) -> None:
        """Score the pending edit with a short batch of extra trials."""
        count = min(self._settings.evolution.impact_trial_agents, self.test_case.agent_count)
        runs = []
        for i in range(count):
            prompt = self._issue(f"agent-{self._generation}-impact-{i + 1}")
            await self._runner.launch(prompt.descriptor, prompt.prompt)
            descriptor, started = self._issued.pop(prompt.session_id)
            runs.append(await self._collect_run(descriptor, started))
            await self._reset_document()
        self.phase = EvolutionPhase.VALIDATING
        await self._resolve_pending(stats.mean(scored(runs)))

    def _checkpoint(self) -> None:
        path = self._settings.paths.checkpoints_dir / f"checkpoint-gen{self._generation}.json"
        try:
            self.save_progress(path)
        except PersistenceError as exc:
            logger.error("checkpoint_failed", generation=self._generation, error=str(exc))

    def _dump_error_state(self, exc: BaseException) -> None:
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
        payload = {
            "error": str(exc),
            "type": type(exc).__name__,
            "phase": self.phase.value,
            "generation": self._generation,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        logger.error("evolution_failed", **payload)
        self._write_text(
            self._settings.paths.reports_dir / f"error-state-{stamp}.json",
            json.dumps(payload, indent=2),
        )

    def _finish(self) -> EvolutionResult:
        history = self._convergence.score_history
        summary = self.monitor.create_evolution_summary(
            history, self._ledger.get_history(), self.convergence.has_converged
        )
        sections = [
            self.get_progress(),
            self._ledger.generate_summary(),
        ]
        if self._tracker is not None:
            try:
                sections.append(self._tracker.generate_git_report())
            except GitCommandError as exc:
                logger.warning("git_report_failed", error=str(exc))
        stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%S")
        report_path = (
            self._settings.paths.reports_dir
            / f"evolution-report-{self.test_case.test_case}-{stamp}.md"
        )
        if not self._write_text(report_path, "\n".join(sections)):
            report_path = None
        logger.info("evolution_finished", phase=self.phase.value, generations=len(history))
        return EvolutionResult(
            phase=self.phase,
            summary=summary,
            convergence=self.convergence,
            statistics=self._ledger.get_statistics(),
            generations=list(self._generations),
            report_path=report_path,
        )

    def _write_text(self, path: Path, text: str, raise_errors: bool = False) -> bool:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text)
        except OSError as exc:
            if raise_errors:
                raise PersistenceError(f"Cannot write {path}: {exc}") from exc
            logger.warning("write_failed", path=str(path), error=str(exc))
            return False
        return True
