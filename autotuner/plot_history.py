from __future__ import annotations

"""
Figures for a finished (or running) tuning session, read from `history.jsonl`.

  python -m autotuner plot-history \
    --history autotuner_outputs/study/history.jsonl \
    --outdir autotuner_outputs/study/figs

Writes best_so_far.png, model_boxplot.png and acquisition_trace.png.
"""

import argparse
import json
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from autotuner.history import TrialRecord


def _read_trials(path: Path) -> List[TrialRecord]:
    with path.open("r", encoding="utf-8") as f:
        return [TrialRecord.from_dict(json.loads(line)) for line in f if line.strip()]


def _column(trials: Sequence[TrialRecord], field: str) -> np.ndarray:
    vals = [getattr(t, field, None) for t in trials]
    return np.asarray([np.nan if v is None else float(v) for v in vals], dtype=float)


def best_so_far(y: np.ndarray) -> np.ndarray:
    """Running minimum; non-finite entries carry the previous best forward."""
    y = np.asarray(y, dtype=float)
    filled = np.where(np.isfinite(y), y, np.inf)
    return np.minimum.accumulate(filled)


def _by_model(trials: Sequence[TrialRecord], y: np.ndarray) -> Dict[str, np.ndarray]:
    groups: Dict[str, List[float]] = {}
    for t, v in zip(trials, y.tolist()):
        groups.setdefault(t.model_id, []).append(v)
    return {m: np.asarray(vs, dtype=float) for m, vs in sorted(groups.items())}


def _save(fig, out_path: Path) -> None:
    import matplotlib.pyplot as plt

    fig.tight_layout()
    fig.savefig(str(out_path), dpi=200, bbox_inches="tight")
    plt.close(fig)


def plot_best_so_far(trials: Sequence[TrialRecord], y: np.ndarray, out_path: Path, *, ylabel: str) -> None:
    import matplotlib.pyplot as plt

    x = np.arange(1, len(trials) + 1)
    fig, ax = plt.subplots(figsize=(5.6, 3.4))
    for model, ys in _by_model(trials, y).items():
        xs = [i + 1 for i, t in enumerate(trials) if t.model_id == model]
        ax.scatter(xs, ys, s=12, alpha=0.7, label=model)
    ax.step(x, best_so_far(y), where="post", color="black", linewidth=1.6, label="best so far")
    ax.set_xlabel("trial")
    ax.set_ylabel(ylabel)
    ax.grid(True, alpha=0.25)
    ax.legend(frameon=False, fontsize=7)
    _save(fig, out_path)


def plot_model_boxplot(trials: Sequence[TrialRecord], y: np.ndarray, out_path: Path, *, ylabel: str) -> bool:
    import matplotlib.pyplot as plt

    groups = {m: ys[np.isfinite(ys)] for m, ys in _by_model(trials, y).items()}
    groups = {m: ys for m, ys in groups.items() if ys.size}
    if not groups:
        return False

    fig, ax = plt.subplots(figsize=(max(4.2, 1.2 * len(groups)), 3.4))
    ax.boxplot(list(groups.values()), showfliers=False)
    ax.set_xticks(range(1, len(groups) + 1))
    ax.set_xticklabels(list(groups), rotation=30, ha="right")
    ax.set_ylabel(ylabel)
    ax.set_title("objective by model")
    ax.grid(True, axis="y", alpha=0.2)
    _save(fig, out_path)
    return True


def plot_acquisition_trace(trials: Sequence[TrialRecord], out_path: Path) -> None:
    import matplotlib.pyplot as plt

    acq = _column(trials, "acquisition_value")
    fig, ax = plt.subplots(figsize=(5.6, 3.0))
    ax.plot(np.arange(1, acq.size + 1), acq, color="#d62728", linewidth=1.2, marker=".")
    # priming trials report 0
    ax.axhline(0.0, color="#999999", linewidth=0.8, linestyle="--")
    ax.set_xlabel("trial")
    ax.set_ylabel("acquisition value")
    ax.grid(True, alpha=0.25)
    _save(fig, out_path)


def main(argv: Optional[List[str]] = None) -> None:
    p = argparse.ArgumentParser(description="Plot tuning-session figures from history.jsonl")
    p.add_argument("--history", required=True, help="history.jsonl written by a tuning session")
    p.add_argument("--outdir", required=True, help="Output directory for the PNG figures")
    p.add_argument("--field", default="objective_value", help="Trial field on the y axis (default: objective_value)")
    p.add_argument("--ylabel", default=None, help="Y-axis label (defaults to --field)")
    args = p.parse_args(argv)

    history = Path(str(args.history)).resolve()
    if not history.exists():
        raise SystemExit(f"History file not found: {history}")
    trials = _read_trials(history)
    if not trials:
        raise SystemExit(f"{history} contains no trials")

    outdir = Path(str(args.outdir)).resolve()
    outdir.mkdir(parents=True, exist_ok=True)
    field = str(args.field)
    ylabel = str(args.ylabel or field)
    y = _column(trials, field)

    plot_best_so_far(trials, y, outdir / "best_so_far.png", ylabel=ylabel)
    plot_model_boxplot(trials, y, outdir / "model_boxplot.png", ylabel=ylabel)
    plot_acquisition_trace(trials, outdir / "acquisition_trace.png")


if __name__ == "__main__":
    main()
