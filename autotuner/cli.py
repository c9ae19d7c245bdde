from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from autotuner.history import StudyStore
from autotuner.orchestrator import TuningOrchestrator
from autotuner.param_space import space_from_dict
from autotuner.priors import PriorStore
from autotuner.scoring import SklearnScorer
from autotuner.session import SessionConfig, load_any


DATASETS = ("iris", "wine", "breast_cancer", "digits")


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Run one model-based hyperparameter search session.")
    p.add_argument(
        "--space",
        required=True,
        help="Search space file (.json/.yaml) with a 'models' section and an optional 'session' section.",
    )
    p.add_argument("--dataset", choices=list(DATASETS), default="iris", help="scikit-learn toy dataset to tune on.")
    p.add_argument(
        "--priors",
        default=None,
        help="Prior store JSON. Loaded when it exists and rewritten with this session's observations.",
    )
    p.add_argument(
        "--study-dir",
        default="autotuner_outputs/study",
        help="Where to write history.jsonl / history.json.",
    )

    # Session overrides; unset values fall back to the space file, then to defaults.
    p.add_argument("--optimizer", choices=["bayesian", "grid"], default=None)
    p.add_argument("--objective", choices=["error", "accuracy"], default=None)
    p.add_argument("--acquisition", choices=["expected_improvement", "upper_confidence_bound"], default=None)
    p.add_argument("--model-selection", choices=["ei", "round_robin", "random"], default=None)
    p.add_argument("--exclude-model", action="append", default=None, help="Model id to leave out (repeatable).")
    p.add_argument("--max-fraction", type=float, default=None, help="Stop after this fraction of the domain.")
    p.add_argument("--priming-fraction", type=float, default=None)
    p.add_argument("--exploration", type=float, default=None, help="UCB exploration coefficient.")
    p.add_argument("--cross-validation", action="store_true", default=None)
    p.add_argument("--use-test-data", action="store_true", default=None)
    p.add_argument("--cost-aware", action="store_true", default=None)
    p.add_argument("--seed", type=int, default=None)

    p.add_argument("--validation-ratio", type=float, default=0.2)
    p.add_argument("--test-ratio", type=float, default=0.2)
    p.add_argument("--log-file", default=None, help="Also write logs to this file.")
    p.add_argument("--verbose", action="store_true")
    return p


def _load_dataset(name: str):
    from sklearn import datasets

    loaders = {
        "iris": datasets.load_iris,
        "wine": datasets.load_wine,
        "breast_cancer": datasets.load_breast_cancer,
        "digits": datasets.load_digits,
    }
    return loaders[name](return_X_y=True)


def _setup_logging(verbose: bool, log_file: Optional[str]) -> None:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
        force=True,
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = build_arg_parser().parse_args(argv)
    _setup_logging(bool(args.verbose), args.log_file)

    space_path = Path(str(args.space)).resolve()
    if not space_path.exists():
        raise SystemExit(f"--space file not found: {space_path}")
    raw = load_any(space_path)
    space = space_from_dict(raw)

    overrides: Dict[str, Any] = {
        "optimizer": args.optimizer,
        "objective": args.objective,
        "acquisition_strategy": args.acquisition,
        "model_selection_strategy": args.model_selection,
        "exclude_models": args.exclude_model,
        "max_iteration_fraction": args.max_fraction,
        "priming_fraction": args.priming_fraction,
        "exploration_coefficient": args.exploration,
        "use_cross_validation": args.cross_validation,
        "use_test_data": args.use_test_data,
        "cost_aware": args.cost_aware,
        "seed": args.seed,
    }
    config = SessionConfig.from_dict(raw.get("session") or {}, **overrides)

    priors_path = None if args.priors is None else Path(str(args.priors)).resolve()
    if priors_path is not None and priors_path.exists():
        priors = PriorStore.load(priors_path, domain_indices=space.domain_indices)
    else:
        priors = PriorStore(space.domain_indices)

    X, y = _load_dataset(str(args.dataset))
    scorer = SklearnScorer(
        space,
        X,
        y,
        validation_ratio=float(args.validation_ratio),
        test_ratio=float(args.test_ratio),
        seed=config.seed,
    )
    store = StudyStore(Path(str(args.study_dir)).resolve())

    result = TuningOrchestrator(space, scorer, config=config, priors=priors, store=store).tune()

    if priors_path is not None:
        priors.save(priors_path)

    summary = {
        "stop_reason": result.stop_reason,
        "trials": len(result.trials),
        "best": None
        if result.best is None
        else {
            "domain_index": result.best.domain_index,
            "model_id": result.best.model_id,
            "params": result.best.params,
            "objective_value": result.best.objective_value,
            "error": result.best.error,
            "accuracy": result.best.accuracy,
        },
    }
    sys.stdout.write(json.dumps(summary, indent=2, default=str) + "\n")


if __name__ == "__main__":
    main()
