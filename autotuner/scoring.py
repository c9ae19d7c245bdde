"""
Scorer interface and a reference scikit-learn implementation.

The search engine only needs something with
`evaluate(domain_index, objective, use_cross_validation, use_test_data)` that
returns an `EvaluationResult`. `SklearnScorer` is the stock implementation used by
the CLI: it resolves a domain point to an estimator through a model registry,
fits it and reports error (log-loss when the estimator exposes probabilities,
otherwise the misclassification rate) together with accuracy.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Tuple, Union

import logging
import math

import numpy as np
from sklearn.base import clone
from sklearn.ensemble import GradientBoostingClassifier, RandomForestClassifier
from sklearn.linear_model import LogisticRegression, SGDClassifier
from sklearn.metrics import accuracy_score, log_loss
from sklearn.model_selection import KFold
from sklearn.neural_network import MLPClassifier
from sklearn.svm import SVC

from autotuner.param_space import ParameterSpace


@dataclass(frozen=True)
class EvaluationResult:
    error: float
    accuracy: float


class Scorer(Protocol):
    def evaluate(
        self,
        domain_index: int,
        objective: str,
        use_cross_validation: bool,
        use_test_data: bool,
    ) -> Union[EvaluationResult, Awaitable[EvaluationResult]]: ...


class LossFunction(str, Enum):
    """Loss identifiers a search space may declare; the scorer resolves them."""

    ABSOLUTE_DIFFERENCE = "absoluteDifference"
    COSINE_DISTANCE = "cosineDistance"
    HINGE_LOSS = "hingeLoss"
    HUBER_LOSS = "huberLoss"
    LOG_LOSS = "logLoss"
    MEAN_SQUARED_ERROR = "meanSquaredError"
    SIGMOID_CROSS_ENTROPY = "sigmoidCrossEntropy"
    SOFTMAX_CROSS_ENTROPY = "softmaxCrossEntropy"
    CATEGORICAL_CROSSENTROPY = "categoricalCrossentropy"

    @property
    def sgd_loss(self) -> Optional[str]:
        """Matching `SGDClassifier(loss=...)` name, or None when sklearn has no equivalent."""
        return _SGD_LOSSES.get(self)


_SGD_LOSSES = {
    LossFunction.HINGE_LOSS: "hinge",
    LossFunction.HUBER_LOSS: "modified_huber",
    LossFunction.LOG_LOSS: "log_loss",
    LossFunction.SIGMOID_CROSS_ENTROPY: "log_loss",
    LossFunction.MEAN_SQUARED_ERROR: "squared_error",
}


class OptimizerName(str, Enum):
    """Training-optimizer identifiers a search space may declare."""

    SGD = "sgd"
    MOMENTUM = "momentum"
    ADAGRAD = "adagrad"
    ADADELTA = "adadelta"
    ADAM = "adam"
    ADAMAX = "adamax"
    RMSPROP = "rmsprop"
    LBFGS = "lbfgs"

    @property
    def mlp_solver(self) -> Optional[str]:
        """Matching `MLPClassifier(solver=...)` name, or None when unsupported."""
        return _MLP_SOLVERS.get(self)


_MLP_SOLVERS = {
    OptimizerName.SGD: "sgd",
    OptimizerName.MOMENTUM: "sgd",
    OptimizerName.ADAM: "adam",
    OptimizerName.LBFGS: "lbfgs",
}


ModelFactory = Callable[[Mapping[str, Any]], Any]


def _sgd_factory(params: Mapping[str, Any]) -> Any:
    kwargs = dict(params)
    if "loss_function" in kwargs:
        loss = LossFunction(kwargs.pop("loss_function"))
        if loss.sgd_loss is None:
            raise ValueError(f"Loss function {loss.value!r} has no SGDClassifier equivalent.")
        kwargs["loss"] = loss.sgd_loss
    return SGDClassifier(**kwargs)


def _mlp_factory(params: Mapping[str, Any]) -> Any:
    kwargs = dict(params)
    if "optimizer" in kwargs:
        opt = OptimizerName(kwargs.pop("optimizer"))
        if opt.mlp_solver is None:
            raise ValueError(f"Optimizer {opt.value!r} has no MLPClassifier solver.")
        kwargs["solver"] = opt.mlp_solver
        if opt is OptimizerName.MOMENTUM:
            kwargs.setdefault("momentum", 0.9)
    return MLPClassifier(**kwargs)


DEFAULT_REGISTRY: Dict[str, ModelFactory] = {
    "logistic_regression": lambda p: LogisticRegression(**{"max_iter": 1000, **dict(p)}),
    "random_forest": lambda p: RandomForestClassifier(**dict(p)),
    "gradient_boosting": lambda p: GradientBoostingClassifier(**dict(p)),
    "svc": lambda p: SVC(**dict(p)),
    "sgd": _sgd_factory,
    "mlp": _mlp_factory,
}


def cv_fold_count(dataset_size: int) -> int:
    """k = min(10, floor(sqrt(n)))."""
    return int(min(10, math.floor(math.sqrt(max(0, int(dataset_size))))))


def split_dataset(
    n: int,
    validation_ratio: float,
    test_ratio: float,
    seed: Optional[int],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Shuffle `range(n)` and carve off a validation then a test split (each at least
    one sample); the rest is training data.
    """
    if n < 3:
        raise ValueError(f"Need at least 3 samples to split into train/validation/test, got {n}")
    order = np.random.default_rng(seed).permutation(n)
    n_val = max(1, int(round(n * float(validation_ratio))))
    val, rest = order[:n_val], order[n_val:]
    n_test = max(1, int(round(rest.size * float(test_ratio))))
    test, train = rest[:n_test], rest[n_test:]
    if train.size == 0:
        raise ValueError("Validation/test ratios leave no training data.")
    return train, val, test


class SklearnScorer:
    """
    Fit-and-score collaborator for classification datasets.

    Domain points are resolved through `space`; the point's `model_id` selects a
    factory in `registry` which receives the point's parameters.
    """

    def __init__(
        self,
        space: ParameterSpace,
        X: Any,
        y: Any,
        registry: Optional[Mapping[str, ModelFactory]] = None,
        validation_ratio: float = 0.2,
        test_ratio: float = 0.2,
        seed: Optional[int] = 42,
    ):
        self.space = space
        self.X = np.asarray(X)
        self.y = np.asarray(y)
        if self.X.shape[0] != self.y.shape[0]:
            raise ValueError(f"X and y must have the same length, got {self.X.shape[0]} and {self.y.shape[0]}")
        self.registry: Dict[str, ModelFactory] = dict(DEFAULT_REGISTRY if registry is None else registry)
        self.seed = seed
        self.train_idx, self.val_idx, self.test_idx = split_dataset(self.y.shape[0], validation_ratio, test_ratio, seed)

    def build_model(self, domain_index: int) -> Any:
        point = self.space.point(int(domain_index))
        if point.model_id not in self.registry:
            raise KeyError(f"No model factory registered for {point.model_id!r}")
        return self.registry[point.model_id](point.parameters)

    def evaluate(
        self,
        domain_index: int,
        objective: str = "error",
        use_cross_validation: bool = False,
        use_test_data: bool = False,
    ) -> EvaluationResult:
        model = self.build_model(domain_index)
        if use_test_data:
            fit_idx = np.concatenate([self.train_idx, self.val_idx])
            result = self._fit_score(model, fit_idx, self.test_idx)
        elif use_cross_validation:
            result = self._cross_validate(model)
        else:
            result = self._fit_score(model, self.train_idx, self.val_idx)
        logging.debug(
            f"Scored point {domain_index} ({self.space.describe(int(domain_index))}): "
            f"error={result.error:.6g}, accuracy={result.accuracy:.4f} (objective={objective})"
        )
        return result

    def _cross_validate(self, model: Any) -> EvaluationResult:
        idx = np.concatenate([self.train_idx, self.val_idx])
        k = cv_fold_count(idx.size)
        if k < 2:
            raise ValueError(f"Dataset of {idx.size} samples is too small for cross-validation.")
        folds = KFold(n_splits=k, shuffle=True, random_state=self.seed)
        errors, accuracies = [], []
        for fit_pos, eval_pos in folds.split(idx):
            r = self._fit_score(clone(model), idx[fit_pos], idx[eval_pos])
            errors.append(r.error)
            accuracies.append(r.accuracy)
        return EvaluationResult(error=float(np.mean(errors)), accuracy=float(np.mean(accuracies)))

    def _fit_score(self, model: Any, fit_idx: np.ndarray, eval_idx: np.ndarray) -> EvaluationResult:
        model.fit(self.X[fit_idx], self.y[fit_idx])
        y_true = self.y[eval_idx]
        y_pred = model.predict(self.X[eval_idx])
        accuracy = float(accuracy_score(y_true, y_pred))

        classes = getattr(model, "classes_", None)
        can_log_loss = (
            hasattr(model, "predict_proba")
            and classes is not None
            and set(np.unique(y_true)).issubset(set(classes))
        )
        if can_log_loss:
            try:
                proba = model.predict_proba(self.X[eval_idx])
            except AttributeError:
                # e.g. SVC(probability=False) or SGDClassifier with a non-probabilistic loss
                can_log_loss = False
        if can_log_loss:
            error = float(log_loss(y_true, proba, labels=classes))
        else:
            error = 1.0 - accuracy
        return EvaluationResult(error=error, accuracy=accuracy)
