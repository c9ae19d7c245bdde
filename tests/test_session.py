from __future__ import annotations

import json

import pytest

from autotuner.errors import ConfigurationError
from autotuner.session import SessionConfig, load_any


def test_defaults():
    cfg = SessionConfig()
    assert cfg.objective == "error"
    assert cfg.max_iteration_fraction == 0.75
    assert cfg.acquisition_strategy == "expected_improvement"
    assert cfg.model_selection_strategy == "ei"
    assert cfg.optimizer == "bayesian"
    assert cfg.exclude_models == frozenset()


def test_invalid_objective_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        SessionConfig(objective="loss")
    # still a ValueError for callers that only know the builtin
    with pytest.raises(ValueError):
        SessionConfig(objective="loss")


@pytest.mark.parametrize("frac", [0.0, -0.1, 1.5])
def test_iteration_fraction_bounds(frac):
    with pytest.raises(ConfigurationError):
        SessionConfig(max_iteration_fraction=frac)


def test_strategy_aliases_are_normalised():
    cfg = SessionConfig(acquisition_strategy="upperConfidenceBound", model_selection_strategy="roundRobin", optimizer="gridSearch")
    assert cfg.acquisition_strategy == "upper_confidence_bound"
    assert cfg.model_selection_strategy == "round_robin"
    assert cfg.optimizer == "grid"
    with pytest.raises(ConfigurationError):
        SessionConfig(acquisition_strategy="thompson")


def test_objective_value():
    assert SessionConfig(objective="error").objective_value(0.3, 0.9) == 0.3
    assert SessionConfig(objective="accuracy").objective_value(0.3, 0.9) == pytest.approx(0.1)


def test_from_dict_accepts_camel_case_and_string_values():
    cfg = SessionConfig.from_dict(
        {
            "objective": "accuracy",
            "useCrossValidation": "true",
            "maxIterationFraction": "0.5",
            "costAware": "no",
            "seed": "7",
            "excludeModels": "svc, mlp",
        }
    )
    assert cfg.objective == "accuracy"
    assert cfg.use_cross_validation is True
    assert cfg.max_iteration_fraction == 0.5
    assert cfg.cost_aware is False
    assert cfg.seed == 7
    assert cfg.exclude_models == frozenset({"svc", "mlp"})


def test_from_dict_overrides_skip_none():
    cfg = SessionConfig.from_dict({"objective": "accuracy"}, objective=None, optimizer="grid")
    assert cfg.objective == "accuracy"
    assert cfg.optimizer == "grid"


def test_from_dict_rejects_unknown_and_malformed_options():
    with pytest.raises(ConfigurationError):
        SessionConfig.from_dict({"learningRate": 0.1})
    with pytest.raises(ConfigurationError):
        SessionConfig.from_dict({"useTestData": "maybe"})
    with pytest.raises(ConfigurationError):
        SessionConfig.from_dict({"priming_fraction": "lots"})


def test_from_file_reads_session_section(tmp_path):
    path = tmp_path / "space.yaml"
    path.write_text(
        "models:\n"
        "  lr:\n"
        "    C: [0.1, 1.0]\n"
        "session:\n"
        "  objective: accuracy\n"
        "  maxIterationFraction: 1.0\n",
        encoding="utf-8",
    )
    cfg = SessionConfig.from_file(path)
    assert cfg.objective == "accuracy"
    assert cfg.max_iteration_fraction == 1.0

    bare = tmp_path / "session.json"
    bare.write_text(json.dumps({"optimizer": "grid"}), encoding="utf-8")
    assert SessionConfig.from_file(bare).optimizer == "grid"


def test_load_any_rejects_unknown_suffix(tmp_path):
    path = tmp_path / "space.toml"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ValueError):
        load_any(path)
