"""Small numeric helpers used by the pattern miner and convergence tracking."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=np.float64)))


def std(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return float(np.std(np.asarray(values, dtype=np.float64)))


def variance(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return float(np.var(np.asarray(values, dtype=np.float64)))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """std / |mean|; 0 when the mean is 0 or there is a single value."""
    m = mean(values)
    if m == 0:
        return 0.0
    return std(values) / abs(m)


def is_consistent(values: Sequence[float], max_cv: float = 0.5) -> bool:
    return coefficient_of_variation(values) <= max_cv


def severity_for(frequency: int, total: int) -> str:
    if total <= 0:
        return "low"
    ratio = frequency / total
    if ratio >= 0.66:
        return "high"
    if ratio >= 0.33:
        return "medium"
    return "low"


def mean_step(values: Sequence[float]) -> float:
    """Average change between consecutive values."""
    if len(values) < 2:
        return 0.0
    return float(np.mean(np.diff(np.asarray(values, dtype=np.float64))))
