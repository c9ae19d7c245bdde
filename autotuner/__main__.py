from __future__ import annotations

import sys
from typing import List, Optional


def _print_help() -> None:
    sys.stdout.write(
        "Model-based hyperparameter search\n\n"
        "Single command entrypoint:\n"
        "  python -m autotuner <subcommand> <args>\n\n"
        "Subcommands:\n"
        "  run           Run one tuning session over a search-space file\n"
        "  plot-history  Plot figures from a study history.jsonl\n\n"
        "Default behavior (no subcommand):\n"
        "  Runs a tuning session (same args as `run`).\n\n"
        "Examples:\n"
        "  python -m autotuner --help\n"
        "  python -m autotuner run --space examples/space.yaml --dataset iris --priors out/priors.json --study-dir out/study\n"
        "  python -m autotuner run --space examples/space.yaml --optimizer grid --max-fraction 1.0\n"
        "  python -m autotuner plot-history --history out/study/history.jsonl --outdir out/study/figs\n"
    )


def main(argv: Optional[List[str]] = None) -> None:
    args = sys.argv[1:] if argv is None else list(argv)

    if not args or args[0] in {"-h", "--help", "help"}:
        _print_help()
        return

    cmd = str(args[0]).lower()
    if cmd in {"plot-history", "plot_history", "plot"}:
        from autotuner.plot_history import main as plot_main

        plot_main(args[1:])
        return
    if cmd in {"run", "tune"}:
        args = args[1:]

    from autotuner.cli import main as run_main

    run_main(args)


if __name__ == "__main__":
    main()
