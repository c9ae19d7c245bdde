from __future__ import annotations

from typing import Sequence

import math

import numpy as np


DEFAULT_EXPLORATION = 0.75


def _normal_pdf(z: float) -> float:
    return math.exp(-0.5 * z * z) / math.sqrt(2.0 * math.pi)


def _normal_cdf(z: float) -> float:
    return 0.5 * (1.0 + math.erf(z / math.sqrt(2.0)))


def argmax(values: Sequence[float]) -> int:
    """Index of the largest value; ties go to the first occurrence."""
    arr = np.asarray(values, dtype=float).reshape(-1)
    if arr.size == 0:
        raise ValueError("argmax of an empty sequence.")
    return int(np.argmax(arr))


def expected_improvement(best_objective: float, mean: Sequence[float], std: Sequence[float]) -> np.ndarray:
    """
    Expected improvement over `best_objective` (maximisation).

    EI = std * (gamma * Phi(gamma) + phi(gamma)) with gamma = (mean - best) / std.
    For std == 0 gamma is +/-inf and EI takes its limit max(mean - best, 0).
    """
    mu = np.asarray(mean, dtype=float).reshape(-1)
    sigma = np.asarray(std, dtype=float).reshape(-1)
    if mu.shape != sigma.shape:
        raise ValueError(f"mean and std must have the same shape, got {mu.shape} and {sigma.shape}")

    out = np.zeros_like(mu)
    for i, (m, s) in enumerate(zip(mu, sigma)):
        imp = float(m - best_objective)
        if s <= 0.0:
            out[i] = max(imp, 0.0)
            continue
        gamma = imp / float(s)
        out[i] = max(0.0, float(s) * (gamma * _normal_cdf(gamma) + _normal_pdf(gamma)))
    return out


def upper_confidence_bound(
    mean: Sequence[float],
    std: Sequence[float],
    exploration: float = DEFAULT_EXPLORATION,
) -> np.ndarray:
    """mean + exploration * std; a larger coefficient explores more."""
    mu = np.asarray(mean, dtype=float).reshape(-1)
    sigma = np.asarray(std, dtype=float).reshape(-1)
    return mu + float(exploration) * sigma
