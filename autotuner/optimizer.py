"""
Shared contract for the search strategies.

Every optimizer exposes `get_next_point()` and `add_sample(point, value, delay)`;
the orchestrator only ever talks to that pair, and `build_optimizer` picks the
concrete strategy from the session configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, Mapping, Optional, Protocol, Sequence

from autotuner.errors import ConfigurationError

if TYPE_CHECKING:
    from autotuner.priors import PriorStore
    from autotuner.session import SessionConfig


# Acquisition value reported while no model-informed score exists (priming, grid).
UNINFORMED = 0.0
# Acquisition value reported when there is nothing left to evaluate.
TERMINAL = -2.0


@dataclass(frozen=True)
class OptimisationStep:
    next_point: Optional[int]
    acquisition_value: float

    @property
    def terminal(self) -> bool:
        return self.next_point is None or self.acquisition_value == TERMINAL


TERMINAL_STEP = OptimisationStep(next_point=None, acquisition_value=TERMINAL)


class Optimizer(Protocol):
    def get_next_point(self, exclude_models: Iterable[str] = ()) -> OptimisationStep: ...

    def add_sample(self, point: int, value: float, delay: float = 1.0) -> None: ...


_ACQUISITION_ALIASES: Dict[str, str] = {
    "expected_improvement": "expected_improvement",
    "expectedimprovement": "expected_improvement",
    "ei": "expected_improvement",
    "upper_confidence_bound": "upper_confidence_bound",
    "upperconfidencebound": "upper_confidence_bound",
    "ucb": "upper_confidence_bound",
}

_MODEL_SELECTION_ALIASES: Dict[str, str] = {
    "ei": "ei",
    "expected_improvement": "ei",
    "round_robin": "round_robin",
    "roundrobin": "round_robin",
    "random": "random",
}

_OPTIMIZER_ALIASES: Dict[str, str] = {
    "bayesian": "bayesian",
    "bayes": "bayesian",
    "gp": "bayesian",
    "grid": "grid",
    "grid_search": "grid",
    "gridsearch": "grid",
}


def _normalise(value: str, aliases: Mapping[str, str], what: str) -> str:
    key = str(value).strip().lower().replace("-", "_")
    if key not in aliases:
        key = key.replace("_", "")
    if key not in aliases:
        choices = sorted(set(aliases.values()))
        raise ConfigurationError(f"Unknown {what} {value!r}; expected one of {choices}")
    return aliases[key]


def normalise_acquisition(value: str) -> str:
    return _normalise(value, _ACQUISITION_ALIASES, "acquisition strategy")


def normalise_model_selection(value: str) -> str:
    return _normalise(value, _MODEL_SELECTION_ALIASES, "model-selection strategy")


def normalise_optimizer(value: str) -> str:
    return _normalise(value, _OPTIMIZER_ALIASES, "optimizer")


def build_optimizer(
    config: "SessionConfig",
    domain_indices: Sequence[int],
    models_domains: Mapping[str, Sequence[int]],
    priors: Optional["PriorStore"] = None,
) -> Optimizer:
    """Construct the optimizer named by `config.optimizer`, warm-started from `priors`."""
    kind = normalise_optimizer(config.optimizer)
    if kind == "grid":
        from autotuner.grid_search import GridSearchOptimizer

        return GridSearchOptimizer(domain_indices, models_domains)

    from autotuner.bayesian_optimizer import BayesianOptimizer

    return BayesianOptimizer(
        domain_indices,
        models_domains,
        acquisition_function=config.acquisition_strategy,
        mean=None if priors is None else priors.mean,
        kernel=None if priors is None else priors.kernel,
        model_selection=config.model_selection_strategy,
        priming_fraction=config.priming_fraction,
        exploration=config.exploration_coefficient,
        cost_aware=config.cost_aware,
        seed=config.seed,
    )
