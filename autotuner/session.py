from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, FrozenSet, Mapping, Optional, Sequence

import json

import yaml

from autotuner.errors import ConfigurationError
from autotuner.optimizer import normalise_acquisition, normalise_model_selection, normalise_optimizer

if TYPE_CHECKING:
    from autotuner.history import TrialRecord


OBJECTIVES = ("error", "accuracy")

StoppingPredicate = Callable[[Sequence["TrialRecord"], float], bool]


@dataclass(frozen=True)
class SessionConfig:
    """
    Options for one tuning session.

    objective:
      - "error": minimise the scorer's error
      - "accuracy": minimise 1 - accuracy
    max_iteration_fraction:
      stop once more than this fraction of the domain has been evaluated.
    stopping_predicate:
      optional `(history, last_acquisition_value) -> bool`, ORed with the ceiling.
    """

    objective: str = "error"
    use_cross_validation: bool = False
    use_test_data: bool = False
    max_iteration_fraction: float = 0.75
    stopping_predicate: Optional[StoppingPredicate] = None
    acquisition_strategy: str = "expected_improvement"
    model_selection_strategy: str = "ei"
    exclude_models: FrozenSet[str] = field(default_factory=frozenset)
    optimizer: str = "bayesian"
    priming_fraction: float = 0.15
    exploration_coefficient: float = 0.75
    cost_aware: bool = False
    seed: Optional[int] = 42

    def __post_init__(self) -> None:
        objective = str(self.objective).strip().lower()
        if objective not in OBJECTIVES:
            raise ConfigurationError(f"Unknown objective {self.objective!r}; expected one of {list(OBJECTIVES)}")
        object.__setattr__(self, "objective", objective)

        frac = float(self.max_iteration_fraction)
        if not 0.0 < frac <= 1.0:
            raise ConfigurationError(f"max_iteration_fraction must lie in (0, 1], got {self.max_iteration_fraction}")
        object.__setattr__(self, "max_iteration_fraction", frac)

        prime = float(self.priming_fraction)
        if not 0.0 <= prime <= 1.0:
            raise ConfigurationError(f"priming_fraction must lie in [0, 1], got {self.priming_fraction}")
        object.__setattr__(self, "priming_fraction", prime)

        object.__setattr__(self, "acquisition_strategy", normalise_acquisition(self.acquisition_strategy))
        object.__setattr__(self, "model_selection_strategy", normalise_model_selection(self.model_selection_strategy))
        object.__setattr__(self, "optimizer", normalise_optimizer(self.optimizer))
        object.__setattr__(self, "exclude_models", frozenset(str(m) for m in (self.exclude_models or ())))

        if self.stopping_predicate is not None and not callable(self.stopping_predicate):
            raise ConfigurationError("stopping_predicate must be callable.")

    def objective_value(self, error: float, accuracy: float) -> float:
        """The scalar to minimise for this session."""
        if self.objective == "error":
            return float(error)
        return 1.0 - float(accuracy)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], **overrides: Any) -> "SessionConfig":
        src: Dict[str, Any] = {_snake(k): v for k, v in (raw or {}).items()}
        src.update({k: v for k, v in overrides.items() if v is not None})

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(src) - known)
        if unknown:
            raise ConfigurationError(f"Unknown session options: {unknown}")
        if "stopping_predicate" in src and not callable(src["stopping_predicate"]):
            raise ConfigurationError("stopping_predicate cannot be set from a config file.")

        _ensure_bool(src, "use_cross_validation")
        _ensure_bool(src, "use_test_data")
        _ensure_bool(src, "cost_aware")
        _ensure_float(src, "max_iteration_fraction")
        _ensure_float(src, "priming_fraction")
        _ensure_float(src, "exploration_coefficient")
        _ensure_int(src, "seed")
        if isinstance(src.get("exclude_models"), str):
            src["exclude_models"] = [m.strip() for m in src["exclude_models"].split(",") if m.strip()]
        return cls(**src)

    @classmethod
    def from_file(cls, path: Path, **overrides: Any) -> "SessionConfig":
        """Read the `session` section of a JSON/YAML file (or the whole file if it has none)."""
        raw = load_any(path)
        section = raw.get("session", raw if "models" not in raw else {})
        return cls.from_dict(section or {}, **overrides)


def load_any(path: Path) -> Dict[str, Any]:
    suf = path.suffix.lower()
    if suf == ".json":
        with path.open("r", encoding="utf-8") as f:
            obj = json.load(f)
    elif suf in {".yaml", ".yml"}:
        with path.open("r", encoding="utf-8") as f:
            obj = yaml.safe_load(f)
    else:
        raise ValueError(f"Unsupported config format: {path.suffix} (use .json/.yaml/.yml)")
    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise TypeError(f"Top level of {path} must be a mapping; got {type(obj)}")
    return obj


def _snake(key: str) -> str:
    out = []
    for ch in str(key):
        if ch.isupper():
            out.append("_" + ch.lower())
        else:
            out.append(ch)
    return "".join(out).lstrip("_")


def _ensure_float(d: Dict[str, Any], key: str) -> None:
    if key in d and isinstance(d[key], str):
        try:
            d[key] = float(d[key])
        except ValueError:
            raise ConfigurationError(f"{key} must be a number, got {d[key]!r}") from None


def _ensure_int(d: Dict[str, Any], key: str) -> None:
    if key in d and isinstance(d[key], str):
        try:
            d[key] = int(float(d[key]))
        except ValueError:
            raise ConfigurationError(f"{key} must be an integer, got {d[key]!r}") from None


def _ensure_bool(d: Dict[str, Any], key: str) -> None:
    if key in d and isinstance(d[key], str):
        val = d[key].strip().lower()
        if val in {"true", "1", "yes", "y"}:
            d[key] = True
        elif val in {"false", "0", "no", "n"}:
            d[key] = False
        else:
            raise ConfigurationError(f"{key} must be a boolean, got {d[key]!r}")
