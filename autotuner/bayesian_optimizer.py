from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import logging
import random

import numpy as np

from autotuner.acquisition import DEFAULT_EXPLORATION, argmax, expected_improvement, upper_confidence_bound
from autotuner.optimizer import (
    TERMINAL_STEP,
    UNINFORMED,
    OptimisationStep,
    normalise_acquisition,
    normalise_model_selection,
)


DEFAULT_PRIMING_FRACTION = 0.15
DEFAULT_JITTER = 1e-3


@dataclass(frozen=True)
class Observation:
    point: int
    value: float
    delay: float = 1.0


class BayesianOptimizer:
    """
    Gaussian-process Bayesian optimisation over a discrete, partitioned domain.

    `domain_indices` are the point labels handed out by `get_next_point` and
    accepted by `add_sample`; `models_domains` maps each model to the *positions*
    (rows of `mean` / `kernel`) of its points. For a `ParameterSpace` both are the
    same `0..n-1` range.

    The prior is a mean vector and a covariance matrix over the whole domain
    (usually `PriorStore.mean` / `PriorStore.kernel`); without one the optimizer
    starts from a zero mean and an identity kernel.

    Selection goes through three states:
      - priming: fewer than `priming_fraction` of the points observed, pick an
        unobserved point uniformly at random;
      - modeling: condition the GP on every observation and rank the unobserved
        points of each model by expected improvement over that model's own best
        (or by upper confidence bound);
      - exhausted: nothing left, return the terminal step.
    """

    def __init__(
        self,
        domain_indices: Sequence[int],
        models_domains: Mapping[str, Sequence[int]],
        acquisition_function: str = "expected_improvement",
        mean: Optional[Sequence[float]] = None,
        kernel: Optional[Sequence[Sequence[float]]] = None,
        *,
        model_selection: str = "ei",
        priming_fraction: float = DEFAULT_PRIMING_FRACTION,
        exploration: float = DEFAULT_EXPLORATION,
        cost_aware: bool = False,
        delays: Optional[Mapping[int, float]] = None,
        jitter: float = DEFAULT_JITTER,
        seed: Optional[int] = None,
    ):
        self.domain_indices: List[int] = [int(p) for p in domain_indices]
        self._position: Dict[int, int] = {p: i for i, p in enumerate(self.domain_indices)}
        n = len(self.domain_indices)
        if n == 0:
            raise ValueError("BayesianOptimizer needs a non-empty domain.")

        self.models_domains: Dict[str, List[int]] = {}
        for model, positions in models_domains.items():
            ps = [int(p) for p in positions]
            bad = [p for p in ps if p < 0 or p >= n]
            if bad:
                raise ValueError(f"Partition {model!r} references positions outside the domain: {bad}")
            self.models_domains[str(model)] = ps

        self.acquisition_function = normalise_acquisition(acquisition_function)
        self.model_selection = normalise_model_selection(model_selection)
        if not 0.0 <= float(priming_fraction) <= 1.0:
            raise ValueError(f"priming_fraction must lie in [0, 1], got {priming_fraction}")
        self.priming_fraction = float(priming_fraction)
        self.exploration = float(exploration)
        self.cost_aware = bool(cost_aware)
        self.jitter = float(jitter)

        # own copies; PriorStore.commit updates its arrays in place
        self.mean = np.zeros(n, dtype=float) if mean is None else np.array(mean, dtype=float).reshape(-1)
        self.kernel = np.identity(n, dtype=float) if kernel is None else np.atleast_2d(np.array(kernel, dtype=float))
        if self.mean.shape != (n,):
            raise ValueError(f"Prior mean has shape {self.mean.shape}, expected ({n},)")
        if self.kernel.shape != (n, n):
            raise ValueError(f"Prior kernel has shape {self.kernel.shape}, expected ({n}, {n})")

        # Explicit per-point cost estimates; observed delays override them.
        self._delay_estimates: Dict[int, float] = {}
        for point, d in (delays or {}).items():
            self._delay_estimates[self._position_of(point)] = _check_delay(d)

        self.observations: List[Observation] = []
        self.observed_values: Dict[int, float] = {}
        self.models_samples: Dict[str, List[int]] = {m: [] for m in self.models_domains}
        self.models_best: Dict[str, float] = {}
        self.all_samples: List[int] = []
        self._history: Dict[int, List[float]] = {}
        self._observed_delays: Dict[int, float] = {}

        self.last_acquisition: Optional[np.ndarray] = None
        self._rr_cursor = 0
        self._rng = random.Random(seed)

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> str:
        n = len(self.domain_indices)
        if len(self.all_samples) >= n:
            return "exhausted"
        if len(self.all_samples) / n < self.priming_fraction:
            return "priming"
        return "modeling"

    def _position_of(self, point: int) -> int:
        try:
            return self._position[int(point)]
        except (KeyError, TypeError, ValueError):
            raise KeyError(f"Point {point!r} is not part of the optimizer domain.") from None

    # ------------------------------------------------------------- reporting

    def add_sample(self, point: int, value: float, delay: float = 1.0) -> None:
        """
        Record that `point` scored `value` (higher is better) after `delay` cost units.

        Repeated reports for a point are all kept; the GP conditions on their mean.
        """
        pos = self._position_of(point)
        v = float(value)
        d = _check_delay(delay)

        self.observations.append(Observation(point=int(point), value=v, delay=d))
        history = self._history.setdefault(pos, [])
        history.append(v)
        self.observed_values[int(point)] = float(np.mean(history))
        self._observed_delays[pos] = d

        if len(history) == 1:
            self.all_samples.append(pos)
        for model, positions in self.models_domains.items():
            if pos in positions:
                if pos not in self.models_samples[model]:
                    self.models_samples[model].append(pos)
                if model not in self.models_best or v > self.models_best[model]:
                    self.models_best[model] = v

    # -------------------------------------------------------------- posterior

    def posterior(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        GP posterior mean and standard deviation over the whole domain, conditioned
        on every observation so far. Recomputed from scratch on each call.
        """
        if not self.all_samples:
            return self.mean.copy(), np.sqrt(np.clip(np.diag(self.kernel), 0.0, None))

        obs = np.asarray(self.all_samples, dtype=int)
        y = np.asarray([self.observed_values[self.domain_indices[p]] for p in obs], dtype=float)

        sample_kernel = np.atleast_2d(self.kernel[np.ix_(obs, obs)])
        sample_kernel = sample_kernel + self.jitter * np.identity(obs.size)
        all_to_sample = self.kernel[:, obs]

        try:
            sample_kernel_inv = np.linalg.inv(sample_kernel)
        except np.linalg.LinAlgError:
            logging.warning("Sample kernel is singular even with jitter; falling back to the pseudo-inverse.")
            sample_kernel_inv = np.linalg.pinv(sample_kernel)

        weights = all_to_sample @ sample_kernel_inv
        post_mean = self.mean + weights @ (y - self.mean[obs])
        post_var = np.diag(self.kernel) - np.sum(weights * all_to_sample, axis=1)
        post_std = np.sqrt(np.clip(post_var, 0.0, None))
        return post_mean, post_std

    # -------------------------------------------------------------- selection

    def _remaining(self, model: str) -> List[int]:
        sampled = set(self.all_samples)
        return [p for p in self.models_domains[model] if p not in sampled]

    def _eligible_models(self, exclude_models: Iterable[str]) -> List[str]:
        excluded = {str(m) for m in exclude_models}
        return [m for m in self.models_domains if m not in excluded and self._remaining(m)]

    def _select_models(self, eligible: List[str]) -> List[str]:
        if self.model_selection == "ei" or len(eligible) <= 1:
            return eligible
        if self.model_selection == "random":
            return [self._rng.choice(eligible)]
        # round robin over the declared model order, skipping exhausted/excluded models
        order = list(self.models_domains)
        for step in range(len(order)):
            model = order[(self._rr_cursor + step) % len(order)]
            if model in eligible:
                self._rr_cursor = (order.index(model) + 1) % len(order)
                return [model]
        return eligible

    def _incumbent(self, model: str, post_mean: np.ndarray) -> float:
        if model in self.models_best:
            return self.models_best[model]
        if self.models_best:
            return max(self.models_best.values())
        return float(np.max(post_mean))

    def _delay_of(self, pos: int) -> float:
        if pos in self._delay_estimates:
            return self._delay_estimates[pos]
        # unsampled points inherit the mean observed delay of their model
        for model, positions in self.models_domains.items():
            if pos in positions:
                seen = [self._observed_delays[p] for p in self.models_samples[model] if p in self._observed_delays]
                if seen:
                    return float(np.mean(seen))
        return 1.0

    def get_next_point(self, exclude_models: Iterable[str] = ()) -> OptimisationStep:
        """
        Suggest the next point to evaluate.

        Returns `TERMINAL_STEP` (acquisition value -2) when no unobserved point
        remains in the eligible partitions, and acquisition value 0 while priming.
        """
        eligible = self._eligible_models(exclude_models)
        if self.state == "exhausted" or not eligible:
            self.last_acquisition = None
            return TERMINAL_STEP

        if self.state == "priming":
            candidates = sorted({p for m in eligible for p in self._remaining(m)})
            pos = self._rng.choice(candidates)
            self.last_acquisition = None
            logging.debug(f"Priming: sampled point {self.domain_indices[pos]} at random")
            return OptimisationStep(next_point=self.domain_indices[pos], acquisition_value=UNINFORMED)

        post_mean, post_std = self.posterior()

        scores: Dict[int, float] = {}
        for model in self._select_models(eligible):
            remaining = self._remaining(model)
            mu = post_mean[remaining]
            sigma = post_std[remaining]
            if self.acquisition_function == "expected_improvement":
                values = expected_improvement(self._incumbent(model, post_mean), mu, sigma)
            else:
                values = upper_confidence_bound(mu, sigma, self.exploration)
            for p, v in zip(remaining, values):
                scores[p] = max(scores.get(p, -np.inf), float(v))

        acquisition = np.zeros(len(self.domain_indices), dtype=float)
        for p, v in scores.items():
            acquisition[p] = v
        self.last_acquisition = acquisition

        candidates = sorted(scores)
        values = np.asarray([scores[p] for p in candidates], dtype=float)
        if self.cost_aware:
            delays = np.asarray([self._delay_of(p) for p in candidates], dtype=float)
            values = values / np.maximum(delays, 1e-12)

        idx = argmax(values)
        if self.cost_aware and values[idx] == 0.0:
            idx = int(np.argmin(delays))

        pos = candidates[idx]
        logging.debug(
            f"Modeling: point {self.domain_indices[pos]} ({self.acquisition_function}={values[idx]:.6g}, "
            f"mean={post_mean[pos]:.6g}, std={post_std[pos]:.6g}, {len(candidates)} candidates)"
        )
        return OptimisationStep(next_point=self.domain_indices[pos], acquisition_value=float(values[idx]))


def _check_delay(delay: float) -> float:
    d = float(delay)
    if d < 0.0:
        raise ValueError(f"delay must be >= 0, got {delay}")
    return d
