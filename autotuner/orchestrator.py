from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import inspect
import logging
import time

from autotuner.history import StudyStore, TrialRecord, best_trial
from autotuner.optimizer import OptimisationStep, Optimizer, build_optimizer
from autotuner.param_space import ParameterSpace
from autotuner.priors import PriorStore
from autotuner.scoring import EvaluationResult, Scorer
from autotuner.session import SessionConfig


@dataclass
class TuningResult:
    best: Optional[TrialRecord]
    trials: List[TrialRecord] = field(default_factory=list)
    stop_reason: str = ""

    @property
    def best_params(self) -> Optional[Dict[str, Any]]:
        return None if self.best is None else dict(self.best.params)

    @property
    def best_model(self) -> Optional[str]:
        return None if self.best is None else self.best.model_id


class TuningOrchestrator:
    """
    Drives one tuning session: ask the optimizer for a point, score it, report the
    result back, and decide whether to stop.

    Objective values are minimised (`error`, or `1 - accuracy`). The optimizer
    maximises, so it is fed the negated objective; that same value is what gets
    committed to the prior store when the session ends.
    """

    def __init__(
        self,
        space: ParameterSpace,
        scorer: Scorer,
        config: Optional[SessionConfig] = None,
        priors: Optional[PriorStore] = None,
        store: Optional[StudyStore] = None,
        optimizer: Optional[Optimizer] = None,
    ):
        self.config = config or SessionConfig()
        if len(space) == 0:
            raise ValueError("Parameter space is empty; add at least one model before tuning.")
        self.space = space
        self.scorer = scorer
        self.priors = priors if priors is not None else PriorStore(space.domain_indices)
        if list(self.priors.domain_indices) != list(space.domain_indices):
            raise ValueError("Prior store was initialized for a different parameter space.")
        self.store = store
        self.optimizer: Optimizer = optimizer or build_optimizer(
            self.config, space.domain_indices, space.models_domains, self.priors
        )

        self.trials: List[TrialRecord] = []
        self.session_observations: Dict[int, float] = {}
        self.last_acquisition_value: float = 0.0
        self._stop_requested = False
        # reported since the last commit to the prior store
        self._uncommitted: Dict[int, float] = {}

    def request_stop(self) -> None:
        """Stop after the evaluation in flight (if any) has been reported."""
        self._stop_requested = True

    # ------------------------------------------------------------ loop pieces

    def _next_step(self) -> OptimisationStep:
        step = self.optimizer.get_next_point(exclude_models=self.config.exclude_models)
        self.last_acquisition_value = float(step.acquisition_value)
        return step

    def _record(self, step: OptimisationStep, result: EvaluationResult, duration_s: float) -> TrialRecord:
        point = int(step.next_point)  # type: ignore[arg-type]
        dp = self.space.point(point)
        objective_value = self.config.objective_value(result.error, result.accuracy)
        self.optimizer.add_sample(point, -objective_value, delay=duration_s)
        self.session_observations[point] = -objective_value
        self._uncommitted[point] = -objective_value

        rec = TrialRecord(
            trial_id=len(self.trials) + 1,
            domain_index=point,
            model_id=dp.model_id,
            params=dict(dp.parameters),
            error=float(result.error),
            accuracy=float(result.accuracy),
            objective_value=float(objective_value),
            acquisition_value=float(step.acquisition_value),
            duration_s=float(duration_s),
            notes=f"objective={self.config.objective}",
        )
        self.trials.append(rec)
        if self.store is not None:
            self.store.append(rec)
        logging.info(
            f"Trial {rec.trial_id}: {dp.describe()} -> {self.config.objective}={objective_value:.6g} "
            f"(error={rec.error:.6g}, accuracy={rec.accuracy:.4f}, acq={rec.acquisition_value:.4g}, {duration_s:.2f}s)"
        )
        return rec

    def _stop_reason(self) -> Optional[str]:
        if self._stop_requested:
            return "stop requested"
        evaluated = len({t.domain_index for t in self.trials})
        fraction = evaluated / len(self.space)
        if fraction > self.config.max_iteration_fraction:
            return f"evaluated {fraction:.0%} of the domain (ceiling {self.config.max_iteration_fraction:.0%})"
        predicate = self.config.stopping_predicate
        if predicate is not None and predicate(list(self.trials), self.last_acquisition_value):
            return "stopping predicate"
        return None

    def _finish(self, reason: str) -> TuningResult:
        self.priors.commit(self._uncommitted)
        self._uncommitted = {}
        best = best_trial(self.trials)
        if best is None:
            logging.info(f"Tuning finished ({reason}) without evaluating any point.")
        else:
            logging.info(
                f"Tuning finished ({reason}) after {len(self.trials)} trials; best {self.config.objective}="
                f"{best.objective_value:.6g} at point {best.domain_index}: {self.space.describe(best.domain_index)}"
            )
        return TuningResult(best=best, trials=list(self.trials), stop_reason=reason)

    # ------------------------------------------------------------ entrypoints

    def tune(self) -> TuningResult:
        """Run the session with a synchronous scorer."""
        logging.info(f"Tuning {len(self.space)} configurations over {len(self.space.models_domains)} models")
        while True:
            step = self._next_step()
            if step.terminal:
                return self._finish("domain exhausted")

            start = time.perf_counter()
            result = self.scorer.evaluate(
                int(step.next_point),  # type: ignore[arg-type]
                self.config.objective,
                self.config.use_cross_validation,
                self.config.use_test_data,
            )
            if inspect.isawaitable(result):
                if inspect.iscoroutine(result):
                    result.close()
                raise TypeError("Scorer returned an awaitable; use tune_async() for coroutine scorers.")
            self._record(step, result, max(0.0, time.perf_counter() - start))

            reason = self._stop_reason()
            if reason is not None:
                return self._finish(reason)

    async def tune_async(self) -> TuningResult:
        """Run the session, awaiting the scorer when it returns an awaitable."""
        logging.info(f"Tuning {len(self.space)} configurations over {len(self.space.models_domains)} models")
        while True:
            step = self._next_step()
            if step.terminal:
                return self._finish("domain exhausted")

            start = time.perf_counter()
            result = self.scorer.evaluate(
                int(step.next_point),  # type: ignore[arg-type]
                self.config.objective,
                self.config.use_cross_validation,
                self.config.use_test_data,
            )
            if inspect.isawaitable(result):
                result = await result
            self._record(step, result, max(0.0, time.perf_counter() - start))

            reason = self._stop_reason()
            if reason is not None:
                return self._finish(reason)
