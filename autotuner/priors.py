from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import json
import logging

import numpy as np


class PriorStore:
    """
    Cross-session statistical memory over a fixed domain.

    Keeps every value ever committed for each domain point and derives from it
    the warm-start mean vector and empirical covariance ("kernel") matrix that a
    new `BayesianOptimizer` is built with. Nothing is ever removed: `commit` only
    appends history and refines the estimates.

    The store is only meaningful for the domain it was initialized with; the
    domain indices are saved alongside the history and checked on load.
    """

    def __init__(self, domain_indices: Sequence[int]):
        self.initialize(domain_indices)

    def initialize(self, domain_indices: Sequence[int]) -> None:
        self.domain_indices: List[int] = [int(i) for i in domain_indices]
        self._position: Dict[int, int] = {p: i for i, p in enumerate(self.domain_indices)}
        if len(self._position) != len(self.domain_indices):
            raise ValueError("Domain indices must be unique.")
        n = len(self.domain_indices)
        self.observed_values: Dict[int, List[float]] = {p: [] for p in self.domain_indices}
        self.mean: np.ndarray = np.zeros(n, dtype=float)
        self.kernel: np.ndarray = np.identity(n, dtype=float)

    def commit(self, observations: Mapping[int, float]) -> None:
        """
        Fold one session's observations (domain index -> value) into the store.
        """
        for point, value in observations.items():
            p = int(point)
            if p not in self._position:
                raise KeyError(f"Point {point!r} is not part of the prior domain.")
            self.observed_values[p].append(float(value))
            self.mean[self._position[p]] = float(np.mean(self.observed_values[p]))

        observed = [p for p in self.domain_indices if self.observed_values[p]]
        if not observed:
            return

        # Never-sampled points get the pooled mean of every individual observation.
        pooled = np.concatenate([np.asarray(self.observed_values[p], dtype=float) for p in observed])
        fallback = float(pooled.mean())
        for p in self.domain_indices:
            if not self.observed_values[p]:
                self.mean[self._position[p]] = fallback

        for a_pos, a in enumerate(observed):
            for b in observed[a_pos + 1:]:
                cov = self._pair_covariance(a, b)
                i, j = self._position[a], self._position[b]
                self.kernel[i, j] = cov
                self.kernel[j, i] = cov

        logging.debug(
            f"PriorStore commit: {len(observations)} new observations, "
            f"{len(observed)}/{len(self.domain_indices)} points with history, pooled mean={fallback:.6g}"
        )

    def _pair_covariance(self, a: int, b: int) -> float:
        ha = np.asarray(self.observed_values[a], dtype=float)
        hb = np.asarray(self.observed_values[b], dtype=float)
        m = min(ha.size, hb.size)
        da = ha[:m] - self.mean[self._position[a]]
        db = hb[:m] - self.mean[self._position[b]]
        return float(np.dot(da, db) / (ha.size * hb.size))

    def observation_count(self) -> int:
        return int(sum(len(v) for v in self.observed_values.values()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain_indices": list(self.domain_indices),
            "observed_values": {str(p): list(v) for p, v in self.observed_values.items()},
            "mean": self.mean.tolist(),
            "kernel": self.kernel.tolist(),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any], domain_indices: Optional[Sequence[int]] = None) -> "PriorStore":
        stored = [int(i) for i in d["domain_indices"]]
        if domain_indices is not None and [int(i) for i in domain_indices] != stored:
            raise ValueError(
                f"Prior domain ({len(stored)} points) does not match the parameter space "
                f"({len(domain_indices)} points); priors are only valid for an unchanged space."
            )
        store = cls(stored)
        for key, values in (d.get("observed_values") or {}).items():
            p = int(key)
            if p not in store._position:
                raise ValueError(f"Prior history references unknown point {key!r}.")
            store.observed_values[p] = [float(v) for v in values]
        n = len(stored)
        mean = np.asarray(d.get("mean", np.zeros(n)), dtype=float)
        kernel = np.asarray(d.get("kernel", np.identity(n)), dtype=float)
        if mean.shape != (n,) or kernel.shape != (n, n):
            raise ValueError(f"Prior mean/kernel shapes {mean.shape}/{kernel.shape} do not match {n} points.")
        store.mean = mean
        store.kernel = kernel
        return store

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logging.info(f"Saved priors ({self.observation_count()} observations) to {path}")

    @classmethod
    def load(cls, path: Path, domain_indices: Optional[Sequence[int]] = None) -> "PriorStore":
        with path.open("r", encoding="utf-8") as f:
            d = json.load(f)
        store = cls.from_dict(d, domain_indices=domain_indices)
        logging.info(f"Loaded priors ({store.observation_count()} observations) from {path}")
        return store
