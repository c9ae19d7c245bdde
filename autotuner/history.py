from __future__ import annotations

from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import json
import time


@dataclass(frozen=True)
class TrialRecord:
    """One scored domain point; `objective_value` is the minimised quantity."""

    trial_id: int
    domain_index: int
    model_id: str
    params: Dict[str, Any]
    error: float
    accuracy: float
    objective_value: float
    acquisition_value: float
    duration_s: Optional[float] = None
    notes: str = ""

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "TrialRecord":
        duration = d.get("duration_s")
        return cls(
            trial_id=int(d["trial_id"]),
            domain_index=int(d["domain_index"]),
            model_id=str(d["model_id"]),
            params=dict(d.get("params") or {}),
            error=float(d["error"]),
            accuracy=float(d["accuracy"]),
            objective_value=float(d["objective_value"]),
            acquisition_value=float(d["acquisition_value"]),
            duration_s=None if duration is None else float(duration),
            notes=str(d.get("notes") or ""),
        )


class StudyStore:
    """
    Session trial log under `study_dir`.

    `history.jsonl` gets one line per trial as it is recorded. `history.json` is
    rewritten after each trial with the best trial overall and per model.
    """

    def __init__(self, study_dir: Path):
        self.study_dir = Path(study_dir)
        self.history_jsonl = self.study_dir / "history.jsonl"
        self.history_json = self.study_dir / "history.json"
        self._trials: Optional[List[TrialRecord]] = None

    def ensure(self) -> None:
        self.study_dir.mkdir(parents=True, exist_ok=True)

    def load(self) -> List[TrialRecord]:
        if not self.history_jsonl.exists():
            return []
        with self.history_jsonl.open("r", encoding="utf-8") as f:
            return [TrialRecord.from_dict(json.loads(line)) for line in f if line.strip()]

    def append(self, rec: TrialRecord) -> None:
        self.ensure()
        if self._trials is None:
            self._trials = self.load()
        with self.history_jsonl.open("a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(rec), sort_keys=True, default=str) + "\n")
        self._trials.append(rec)
        self._write_snapshot(self._trials)

    def _write_snapshot(self, trials: Sequence[TrialRecord]) -> None:
        payload = {
            "updated_unix_s": time.time(),
            "trial_count": len(trials),
            "best": _as_payload(best_trial(trials)),
            "best_per_model": {m: asdict(t) for m, t in best_per_model(trials).items()},
            "trials": [asdict(t) for t in trials],
        }
        with self.history_json.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True, default=str)


def best_trial(trials: Sequence[TrialRecord]) -> Optional[TrialRecord]:
    """Lowest objective value; the earliest trial wins ties."""
    if not trials:
        return None
    return min(trials, key=lambda t: float(t.objective_value))


def best_per_model(trials: Sequence[TrialRecord]) -> Dict[str, TrialRecord]:
    out: Dict[str, TrialRecord] = {}
    for t in trials:
        if t.model_id not in out or t.objective_value < out[t.model_id].objective_value:
            out[t.model_id] = t
    return out


def _as_payload(rec: Optional[TrialRecord]) -> Optional[Mapping[str, Any]]:
    return None if rec is None else asdict(rec)
