# Copyright (c) Syntropy Systems
"""Analyze command - re-run the detector over an existing experiment."""

from pathlib import Path
from typing import Optional

import typer

from linkprobe.cli import common
from linkprobe.cli.common import RUNS_ROOT, console, fail
from linkprobe.cli.display import print_report
from linkprobe.cli.test_cmd import REPORT_FILENAME, write_report
from linkprobe.detector import build_report
from linkprobe.errors import LinkprobeError
from linkprobe.experiment import load_runs, rehash_runs


def analyze(
    runs_root: Path = typer.Argument(
        RUNS_ROOT,
        help="Directory holding run_NNN directories from linkprobe test",
    ),
    rehash: bool = typer.Option(
        True,
        "--rehash/--no-rehash",
        help="Recompute map hashes with the configured canonicalization rules",
    ),
    json_path: Optional[Path] = typer.Option(
        None,
        "--json",
        help="Write the report to this path instead of RUNS_ROOT/report.json",
    ),
) -> None:
    """Re-analyze recorded runs without linking again.

    Reads each run's meta.json. With --rehash, map files still on disk are
    re-canonicalized so new rules in config.yaml take effect.
    """
    config = common.get_config()

    try:
        runs = load_runs(runs_root)
    except LinkprobeError as e:
        fail(e)

    if rehash:
        runs = rehash_runs(runs, config.rules)

    # Runs without readable metadata carry no fingerprint
    fingerprints = {run.input_fingerprint for run in runs if run.input_fingerprint is not None}
    report = build_report(
        runs,
        input_fingerprint=next(iter(fingerprints)) if len(fingerprints) == 1 else None,
        inputs_stable=len(fingerprints) <= 1,
    )

    console.print(f"[bold]Analyzing {len(runs)} runs in {runs_root}[/bold]")
    print_report(report, runs_root)

    saved = write_report(report, json_path or runs_root / REPORT_FILENAME)
    console.print(f"\n  [dim]report:[/dim] {saved}")

    raise typer.Exit(report.exit_code)
