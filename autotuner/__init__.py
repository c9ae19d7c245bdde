"""
Sequential model-based hyperparameter search over discrete, multi-model spaces.

A `ParameterSpace` enumerates the candidate configurations, a `BayesianOptimizer`
(or the `GridSearchOptimizer` baseline) decides what to evaluate next, and a
`TuningOrchestrator` runs the evaluate/report/stop loop against a scorer. A
`PriorStore` carries observations across sessions to warm-start later searches.
"""

from __future__ import annotations

from autotuner.acquisition import argmax, expected_improvement, upper_confidence_bound
from autotuner.bayesian_optimizer import BayesianOptimizer
from autotuner.errors import ConfigurationError
from autotuner.grid_search import GridSearchOptimizer
from autotuner.optimizer import TERMINAL, TERMINAL_STEP, OptimisationStep, Optimizer, build_optimizer
from autotuner.orchestrator import TuningOrchestrator, TuningResult
from autotuner.param_space import DomainPoint, ParameterSpace, space_from_dict
from autotuner.priors import PriorStore
from autotuner.session import SessionConfig

__version__ = "0.1.0"

__all__ = [
    "BayesianOptimizer",
    "ConfigurationError",
    "DomainPoint",
    "GridSearchOptimizer",
    "OptimisationStep",
    "Optimizer",
    "ParameterSpace",
    "PriorStore",
    "SessionConfig",
    "TERMINAL",
    "TERMINAL_STEP",
    "TuningOrchestrator",
    "TuningResult",
    "argmax",
    "build_optimizer",
    "expected_improvement",
    "space_from_dict",
    "upper_confidence_bound",
]
