from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import itertools


@dataclass(frozen=True)
class DomainPoint:
    """
    One fully-resolved configuration: the owning model plus a concrete value for
    each of its declared parameters (in declaration order).
    """

    model_id: str
    parameters: Dict[str, Any] = field(default_factory=dict)

    def describe(self) -> str:
        if not self.parameters:
            return f"{self.model_id}()"
        args = ", ".join(f"{k}={v!r}" for k, v in self.parameters.items())
        return f"{self.model_id}({args})"


class ParameterSpace:
    """
    Flat, indexed enumeration of every candidate configuration.

    Each call to `add_model` expands the Cartesian product of the model's parameter
    ranges and appends the combinations as one contiguous block of domain indices.
    Indices never move once assigned, so they can key persisted state (see
    `autotuner.priors.PriorStore`).

    Example:
      space = ParameterSpace()
      space.add_model("m", {"a": [1, 2], "b": [10]})
      space.domain  -> [DomainPoint("m", {"a": 1, "b": 10}), DomainPoint("m", {"a": 2, "b": 10})]
    """

    def __init__(self) -> None:
        self.models: Dict[str, Dict[str, List[Any]]] = {}
        self.domain: List[DomainPoint] = []
        self.domain_indices: List[int] = []
        self.models_domains: Dict[str, List[int]] = {}

    def __len__(self) -> int:
        return len(self.domain)

    def add_model(self, model_id: str, ranges: Mapping[str, Any]) -> List[int]:
        """
        Expand `ranges` (parameter name -> ordered candidate values) and append the
        combinations to the domain.

        The first declared parameter varies slowest. Adding the same `model_id`
        twice appends a second, independent block rather than merging.

        Returns the domain indices assigned to the new block.
        """
        names: List[str] = []
        values: List[List[Any]] = []
        for name, raw in ranges.items():
            seq = _as_value_list(raw)
            if not seq:
                raise ValueError(f"Parameter {name!r} of model {model_id!r} has an empty range.")
            names.append(str(name))
            values.append(seq)

        start = len(self.domain)
        block: List[int] = []
        for combo in itertools.product(*values):
            self.domain.append(DomainPoint(model_id=str(model_id), parameters=dict(zip(names, combo))))
            block.append(start + len(block))

        self.models[str(model_id)] = {n: list(v) for n, v in zip(names, values)}
        self.models_domains.setdefault(str(model_id), []).extend(block)
        self.domain_indices = list(range(len(self.domain)))
        return block

    def point(self, index: int) -> DomainPoint:
        if index < 0 or index >= len(self.domain):
            raise KeyError(f"Domain index {index} out of range (domain size {len(self.domain)}).")
        return self.domain[index]

    def model_of(self, index: int) -> str:
        return self.point(index).model_id

    def describe(self, index: int) -> str:
        return self.point(index).describe()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "models": {m: {n: list(v) for n, v in r.items()} for m, r in self.models.items()},
            "models_domains": {m: list(ix) for m, ix in self.models_domains.items()},
            "domain": [{"model_id": p.model_id, "parameters": dict(p.parameters)} for p in self.domain],
        }


def _as_value_list(raw: Any) -> List[Any]:
    # Strings are scalars here, not sequences of characters.
    if isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
        return [raw]
    return list(raw)


def space_from_dict(obj: Mapping[str, Any]) -> ParameterSpace:
    """
    Build a ParameterSpace from a parsed JSON/YAML document.

    Accepted formats:

    1) {"models": {"<model_id>": {"<param>": [values...], ...}, ...}}
    2) {"models": [ {"id": "<model_id>", "params": {...}}, ... ]}   (allows repeated ids)
    """
    models_obj = obj.get("models")
    space = ParameterSpace()

    if isinstance(models_obj, Mapping):
        for model_id, ranges in models_obj.items():
            space.add_model(str(model_id), _coerce_ranges(ranges, model_id))
        return space

    if isinstance(models_obj, Sequence) and not isinstance(models_obj, (str, bytes)):
        for i, entry in enumerate(models_obj):
            if not isinstance(entry, Mapping):
                raise TypeError(f"Model entry at index {i} must be a dict; got {type(entry)}")
            model_id = entry.get("id") or entry.get("model") or f"model{i}"
            space.add_model(str(model_id), _coerce_ranges(entry.get("params") or {}, model_id))
        return space

    raise TypeError("Search space must be a dict with key 'models' as a dict or a list of model entries.")


def _coerce_ranges(ranges: Any, model_id: Any) -> Dict[str, Any]:
    if ranges is None:
        return {}
    if not isinstance(ranges, Mapping):
        raise TypeError(f"Parameter ranges for model {model_id!r} must be a dict; got {type(ranges)}")
    return {str(k): v for k, v in ranges.items()}
