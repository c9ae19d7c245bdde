from __future__ import annotations

import asyncio
import json
from typing import Dict, List

import pytest

from autotuner.errors import ConfigurationError
from autotuner.history import StudyStore
from autotuner.optimizer import OptimisationStep
from autotuner.orchestrator import TuningOrchestrator
from autotuner.param_space import ParameterSpace
from autotuner.priors import PriorStore
from autotuner.scoring import EvaluationResult
from autotuner.session import SessionConfig


class FakeScorer:
    """Deterministic scorer: error is looked up per domain index."""

    def __init__(self, errors: Dict[int, float], accuracies: Dict[int, float] | None = None):
        self.errors = errors
        self.accuracies = accuracies or {}
        self.calls: List[int] = []

    def evaluate(self, domain_index, objective, use_cross_validation, use_test_data):
        self.calls.append(int(domain_index))
        return EvaluationResult(
            error=self.errors[int(domain_index)],
            accuracy=self.accuracies.get(int(domain_index), 1.0 - self.errors[int(domain_index)]),
        )


class AsyncFakeScorer(FakeScorer):
    async def evaluate(self, domain_index, objective, use_cross_validation, use_test_data):
        await asyncio.sleep(0)
        return super().evaluate(domain_index, objective, use_cross_validation, use_test_data)


def _space() -> ParameterSpace:
    space = ParameterSpace()
    space.add_model("lr", {"C": [0.01, 0.1, 1.0]})
    space.add_model("rf", {"n_estimators": [10, 50]})
    return space


ERRORS = {0: 0.9, 1: 0.4, 2: 0.2, 3: 0.5, 4: 0.3}


def test_full_session_visits_each_point_once_and_stops_on_exhaustion():
    scorer = FakeScorer(ERRORS)
    config = SessionConfig(max_iteration_fraction=1.0, seed=0)
    result = TuningOrchestrator(_space(), scorer, config=config).tune()

    assert sorted(scorer.calls) == [0, 1, 2, 3, 4]
    assert result.stop_reason == "domain exhausted"
    assert result.best.domain_index == 2
    assert result.best_model == "lr"
    assert result.best_params == {"C": 1.0}


def test_iteration_ceiling_stops_the_session():
    space = ParameterSpace()
    space.add_model("m", {"x": list(range(10))})
    scorer = FakeScorer({i: 1.0 / (i + 1) for i in range(10)})
    config = SessionConfig(optimizer="grid", max_iteration_fraction=0.5)
    result = TuningOrchestrator(space, scorer, config=config).tune()

    # stops as soon as more than half of the points have been evaluated
    assert scorer.calls == [0, 1, 2, 3, 4, 5]
    assert result.stop_reason.startswith("evaluated")
    assert result.best.domain_index == 5


def test_stopping_predicate_sees_history_and_last_acquisition():
    seen = []

    def predicate(history, last_acquisition):
        seen.append((len(history), last_acquisition))
        return len(history) >= 2

    scorer = FakeScorer(ERRORS)
    config = SessionConfig(optimizer="grid", max_iteration_fraction=1.0, stopping_predicate=predicate)
    result = TuningOrchestrator(_space(), scorer, config=config).tune()

    assert scorer.calls == [0, 1]
    assert result.stop_reason == "stopping predicate"
    assert seen == [(1, 0.0), (2, 0.0)]


def test_request_stop_ends_after_current_evaluation():
    scorer = FakeScorer(ERRORS)
    orch = TuningOrchestrator(_space(), scorer, config=SessionConfig(optimizer="grid", max_iteration_fraction=1.0))
    orch.request_stop()
    result = orch.tune()
    assert scorer.calls == [0]
    assert result.stop_reason == "stop requested"


def test_optimizer_and_priors_receive_negated_objective():
    priors = PriorStore(_space().domain_indices)
    scorer = FakeScorer(ERRORS)
    orch = TuningOrchestrator(
        _space(), scorer, config=SessionConfig(optimizer="grid", max_iteration_fraction=1.0), priors=priors
    )
    orch.tune()

    assert orch.optimizer.observed_values == {i: -e for i, e in ERRORS.items()}
    assert priors.observed_values == {i: [-e] for i, e in ERRORS.items()}
    assert priors.mean[2] == pytest.approx(-0.2)


def test_accuracy_objective_minimises_one_minus_accuracy():
    scorer = FakeScorer(
        {i: 0.5 for i in range(5)},
        accuracies={0: 0.6, 1: 0.95, 2: 0.7, 3: 0.8, 4: 0.1},
    )
    config = SessionConfig(objective="accuracy", optimizer="grid", max_iteration_fraction=1.0)
    result = TuningOrchestrator(_space(), scorer, config=config).tune()
    assert result.best.domain_index == 1
    assert result.best.objective_value == pytest.approx(0.05)
    assert [t.objective_value for t in result.trials][4] == pytest.approx(0.9)


def test_excluded_models_are_not_evaluated():
    scorer = FakeScorer(ERRORS)
    config = SessionConfig(max_iteration_fraction=1.0, exclude_models=["lr"], seed=1)
    result = TuningOrchestrator(_space(), scorer, config=config).tune()
    assert sorted(scorer.calls) == [3, 4]
    assert result.best_model == "rf"


def test_invalid_objective_fails_before_any_evaluation():
    with pytest.raises(ConfigurationError):
        SessionConfig(objective="f1")


def test_empty_space_is_rejected():
    with pytest.raises(ValueError):
        TuningOrchestrator(ParameterSpace(), FakeScorer({}))


def test_priors_for_another_space_are_rejected():
    with pytest.raises(ValueError):
        TuningOrchestrator(_space(), FakeScorer(ERRORS), priors=PriorStore([0, 1]))


def test_terminal_step_does_not_call_scorer():
    class ExhaustedOptimizer:
        def get_next_point(self, exclude_models=()):
            return OptimisationStep(next_point=None, acquisition_value=-2.0)

        def add_sample(self, point, value, delay=1.0):
            raise AssertionError("nothing should be reported")

    scorer = FakeScorer(ERRORS)
    result = TuningOrchestrator(_space(), scorer, optimizer=ExhaustedOptimizer()).tune()
    assert scorer.calls == []
    assert result.best is None
    assert result.stop_reason == "domain exhausted"


def test_async_scorer_with_tune_async():
    scorer = AsyncFakeScorer(ERRORS)
    config = SessionConfig(optimizer="grid", max_iteration_fraction=1.0)
    result = asyncio.run(TuningOrchestrator(_space(), scorer, config=config).tune_async())
    assert scorer.calls == [0, 1, 2, 3, 4]
    assert result.best.domain_index == 2


def test_sync_tune_rejects_coroutine_scorer():
    orch = TuningOrchestrator(_space(), AsyncFakeScorer(ERRORS), config=SessionConfig(optimizer="grid"))
    with pytest.raises(TypeError):
        orch.tune()


def test_study_store_records_every_trial(tmp_path):
    store = StudyStore(tmp_path / "study")
    config = SessionConfig(optimizer="grid", max_iteration_fraction=1.0)
    TuningOrchestrator(_space(), FakeScorer(ERRORS), config=config, store=store).tune()

    trials = store.load()
    assert [t.domain_index for t in trials] == [0, 1, 2, 3, 4]
    assert trials[3].model_id == "rf"
    assert trials[3].params == {"n_estimators": 10}

    snapshot = json.loads((tmp_path / "study" / "history.json").read_text(encoding="utf-8"))
    assert snapshot["trial_count"] == 5
    assert snapshot["best"]["domain_index"] == 2


def test_second_session_warm_starts_from_priors():
    priors = PriorStore(_space().domain_indices)
    first = SessionConfig(optimizer="grid", max_iteration_fraction=1.0)
    TuningOrchestrator(_space(), FakeScorer(ERRORS), config=first, priors=priors).tune()

    orch = TuningOrchestrator(_space(), FakeScorer(ERRORS), config=SessionConfig(), priors=priors)
    assert list(orch.optimizer.mean) == list(priors.mean)
    assert orch.optimizer.mean[2] == pytest.approx(-0.2)


def test_backwards_clock_step_does_not_abort_the_session(monkeypatch):
    import itertools
    import types

    from autotuner import orchestrator

    ticks = itertools.count(1000.0, -1.0)
    monkeypatch.setattr(orchestrator, "time", types.SimpleNamespace(perf_counter=lambda: next(ticks)))

    priors = PriorStore(_space().domain_indices)
    config = SessionConfig(max_iteration_fraction=1.0, seed=0)
    result = TuningOrchestrator(_space(), FakeScorer(ERRORS), config=config, priors=priors).tune()

    assert result.stop_reason == "domain exhausted"
    assert all(t.duration_s == 0.0 for t in result.trials)
    assert priors.observation_count() == 5


def test_optimizer_prior_is_not_changed_by_the_commit():
    import numpy as np

    priors = PriorStore(_space().domain_indices)
    orch = TuningOrchestrator(_space(), FakeScorer(ERRORS), config=SessionConfig(max_iteration_fraction=1.0), priors=priors)
    orch.tune()

    assert priors.mean[2] == pytest.approx(-0.2)
    np.testing.assert_array_equal(orch.optimizer.mean, np.zeros(5))


def test_resumed_session_commits_only_new_observations():
    priors = PriorStore(_space().domain_indices)
    config = SessionConfig(optimizer="grid", max_iteration_fraction=0.4)
    orch = TuningOrchestrator(_space(), FakeScorer(ERRORS), config=config, priors=priors)

    first = orch.tune()
    assert [t.domain_index for t in first.trials] == [0, 1, 2]
    assert priors.observation_count() == 3

    second = orch.tune()
    assert [t.domain_index for t in second.trials] == [0, 1, 2, 3]
    assert priors.observation_count() == 4
    assert priors.observed_values[3] == [-0.5]
    assert priors.observed_values[0] == [-0.9]
