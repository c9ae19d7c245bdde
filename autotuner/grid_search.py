from __future__ import annotations

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set

from autotuner.optimizer import TERMINAL_STEP, UNINFORMED, OptimisationStep


class GridSearchOptimizer:
    """
    Baseline that walks the domain in ascending order, one point per call.

    After the last point it returns the terminal step once and wraps back to the
    start, so a point is never repeated within a pass. Points owned by an
    excluded model are skipped for that call.
    """

    def __init__(self, domain_indices: Sequence[int], models_domains: Optional[Mapping[str, Sequence[int]]] = None):
        labels = [int(p) for p in domain_indices]
        self.domain_indices: List[int] = sorted(labels)
        self.models_domains: Dict[str, List[int]] = {str(m): list(ix) for m, ix in (models_domains or {}).items()}
        self._owners: Dict[int, Set[str]] = {}
        for model, positions in self.models_domains.items():
            for pos in positions:
                self._owners.setdefault(labels[int(pos)], set()).add(model)
        self.next_domain_index = 0
        self.observed_values: Dict[int, float] = {}

    def get_next_point(self, exclude_models: Iterable[str] = ()) -> OptimisationStep:
        excluded = {str(m) for m in exclude_models}
        while self.next_domain_index < len(self.domain_indices):
            point = self.domain_indices[self.next_domain_index]
            self.next_domain_index += 1
            owners = self._owners.get(point, set())
            if excluded and owners and owners <= excluded:
                continue
            return OptimisationStep(next_point=point, acquisition_value=UNINFORMED)
        self.next_domain_index = 0
        return TERMINAL_STEP

    def add_sample(self, point: int, value: float, delay: float = 1.0) -> None:
        # Scheduling ignores results; kept for reporting only.
        self.observed_values[int(point)] = float(value)
