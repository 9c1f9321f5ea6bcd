"""Local entry point - wires an EvolutionOrchestrator from settings.

The caller supplies the pieces that talk to InDesign (tool registry, document
controller, comparator, agent runner); everything else is built here from
``EvolutionSettings``.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from indesign_evolution.config import EvolutionSettings
from indesign_evolution.evolution.orchestrator import EvolutionOrchestrator
from indesign_evolution.regression.validator import RegressionValidator
from indesign_evolution.runner.interface import AgentRunner, DocumentController, LayoutComparator
from indesign_evolution.telemetry.capture import (
    CapturingToolRegistry,
    RegistryToolBridge,
    ToolRegistry,
)
from indesign_evolution.telemetry.store.file import FileTelemetryStore
from indesign_evolution.tools.definition import ToolDefinitionStore
from indesign_evolution.tools.serializer import JsonToolDefinitionSerializer
from indesign_evolution.vcs.tracker import VersionControlTracker

logger = structlog.get_logger()


@dataclass
class LocalEnvironment:
    orchestrator: EvolutionOrchestrator
    telemetry: FileTelemetryStore
    registry: CapturingToolRegistry
    definitions: ToolDefinitionStore


def ensure_directories(settings: EvolutionSettings) -> None:
    paths = settings.paths
    for directory in (
        paths.telemetry_dir,
        paths.documents_dir,
        paths.results_dir,
        paths.history_dir,
        paths.monitoring_dir,
        paths.regression_dir,
        paths.checkpoints_dir,
        paths.reports_dir,
    ):
        directory.mkdir(parents=True, exist_ok=True)


def load_definitions(settings: EvolutionSettings, registry: ToolRegistry) -> ToolDefinitionStore:
    """Definitions from the registry file when configured, else from the live registry."""
    path = settings.paths.tool_definitions
    if path is not None and path.exists():
        return JsonToolDefinitionSerializer().read(path)
    definitions = [registry.get_definition(name) for name in registry.names()]
    return ToolDefinitionStore([d for d in definitions if d is not None])


async def build_local_environment(
    settings: EvolutionSettings,
    registry: ToolRegistry,
    document: DocumentController,
    comparator: LayoutComparator,
    runner: AgentRunner | None = None,
) -> LocalEnvironment:
    ensure_directories(settings)

    telemetry = FileTelemetryStore(settings.paths.telemetry_dir, settings.timing.poll_interval_s)
    removed = await telemetry.cleanup(settings.timing.telemetry_max_age_s)
    if removed:
        logger.info("stale_telemetry_removed", count=removed)

    capturing = CapturingToolRegistry(registry, telemetry)
    validator = RegressionValidator(RegistryToolBridge(capturing), settings.paths.regression_dir)
    validator.register_core_checks()

    tracker = None
    if settings.git.enabled:
        tracker = VersionControlTracker(
            settings.paths.repo_dir, settings.git, timeout=settings.timing.git_timeout_s
        )
        if not tracker.is_repo():
            logger.warning("git_disabled_not_a_repo", repo=str(settings.paths.repo_dir or "."))
            tracker = None

    definitions = load_definitions(settings, registry)
    orchestrator = EvolutionOrchestrator(
        settings=settings,
        telemetry=telemetry,
        document=document,
        comparator=comparator,
        definitions=definitions,
        validator=validator,
        runner=runner,
        tracker=tracker,
    )
    return LocalEnvironment(
        orchestrator=orchestrator,
        telemetry=telemetry,
        registry=capturing,
        definitions=definitions,
    )
