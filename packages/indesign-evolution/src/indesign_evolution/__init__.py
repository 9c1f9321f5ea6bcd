"""InDesign Evolution - evolutionary tuning of MCP tool definitions."""

__all__ = ["EvolutionOrchestrator", "EvolutionSettings"]
__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy imports - keep numpy out of light-weight imports of the config."""
    if name == "EvolutionSettings":
        from indesign_evolution.config import EvolutionSettings

        return EvolutionSettings
    if name == "EvolutionOrchestrator":
        from indesign_evolution.evolution.orchestrator import EvolutionOrchestrator

        return EvolutionOrchestrator
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
