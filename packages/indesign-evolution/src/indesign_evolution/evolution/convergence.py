"""Convergence tracking across generations."""

from __future__ import annotations

from indesign_evolution.analysis import stats
from indesign_evolution.config import EvolutionParams
from indesign_evolution.evolution.state import ConvergenceState


class ConvergenceTracker:
    """Tracks generation averages and decides when the loop should stop.

    A generation counts toward the plateau when its average does not beat the
    best so far by at least ``improvement_threshold`` and no improvement
    applied before it gained that much either.
    """

    def __init__(self, params: EvolutionParams) -> None:
        self._params = params
        self.score_history: list[float] = []
        self._state = ConvergenceState()

    @property
    def state(self) -> ConvergenceState:
        return self._state

    @property
    def best_score(self) -> float:
        return max(self.score_history) if self.score_history else 0.0

    def update(
        self, average_score: float, improvement_gain: float | None = None
    ) -> ConvergenceState:
        threshold = self._params.improvement_threshold
        previous_best = self.best_score if self.score_history else None
        self.score_history.append(average_score)

        plateau = self._state.plateau_generations
        if previous_best is not None:
            progressed = average_score - previous_best >= threshold
            improved = improvement_gain is not None and improvement_gain >= threshold
            plateau = 0 if (progressed or improved) else plateau + 1

        reason = None
        if self.best_score >= self._params.target_score:
            reason = "target_score"
        elif plateau >= self._params.plateau_generations:
            reason = "plateau"

        self._state = ConvergenceState(
            has_converged=reason is not None,
            plateau_generations=plateau,
            best_score=self.best_score,
            average_improvement_per_generation=stats.mean_step(self.score_history),
            reason=reason,
        )
        return self._state

    def restore(self, score_history: list[float], state: ConvergenceState) -> None:
        self.score_history = list(score_history)
        self._state = state
