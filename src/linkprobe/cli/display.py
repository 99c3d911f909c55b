# Copyright (c) Syntropy Systems
"""Rich rendering of stage results and determinism reports."""
from __future__ import annotations

from typing import TYPE_CHECKING

from rich.table import Table

from linkprobe.cli.common import console
from linkprobe.detector import diff_hints
from linkprobe.models.report import Verdict

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from linkprobe.models.report import DivergenceReport, ExperimentReport, StageResult
    from linkprobe.models.run import LinkRun

DIGEST_WIDTH = 16

_ARTIFACT_LABELS = {"binary": "Binary file", "map": "Map file"}


def short_digest(digest: str | None) -> str:
    """Leading hex digits of a digest, or a dash."""
    if not digest:
        return "-"
    return digest[:DIGEST_WIDTH]


def print_stages(stages: Sequence[StageResult]) -> None:
    """Table of per-stage success and failure counts."""
    if not stages:
        return
    table = Table(show_header=True, header_style="bold")
    table.add_column("Stage")
    table.add_column("OK", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Detail", style="dim")

    for stage in stages:
        failed = f"[red]{stage.failed}[/red]" if stage.failed else "0"
        table.add_row(stage.stage, str(stage.succeeded), failed, stage.detail or "")

    console.print(table)


def print_runs(runs: Sequence[LinkRun]) -> None:
    """One row per run with its status and both digests."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Run", justify="right")
    table.add_column("Status")
    table.add_column("Exit", justify="right")
    table.add_column("Binary")
    table.add_column("Map")
    table.add_column("Time", justify="right")
    table.add_column("Load", justify="right", style="dim")

    for run in runs:
        status = "[green]ok[/green]" if run.ok else "[red]failed[/red]"
        load = "-"
        if run.host is not None and run.host.load_avg_1m is not None:
            load = f"{run.host.load_avg_1m:.2f}"
        table.add_row(
            str(run.run_index),
            status,
            str(run.exit_code) if run.exit_code is not None else "-",
            short_digest(run.binary_hash),
            short_digest(run.map_hash),
            f"{run.duration_seconds:.1f}s" if run.duration_seconds is not None else "-",
            load,
        )

    console.print(table)


def print_divergence(report: DivergenceReport) -> None:
    """Hash groups for one artifact, largest group first."""
    label = _ARTIFACT_LABELS[report.artifact.value]
    console.print(f"\n[bold]{label} analysis:[/bold]")

    if report.deterministic:
        digest = report.groups[0].digest
        console.print(f"  [green]✓[/green] All identical (hash: {digest})")
        return
    if report.all_missing:
        console.print(f"  [red]✗[/red] No run produced a {report.artifact.value}")
        return

    console.print(f"  [red]✗[/red] NONDETERMINISM DETECTED in {report.artifact.value}")
    console.print(f"  Found {report.unique_count} unique hashes:")
    for group in report.groups:
        runs = ", ".join(str(i) for i in group.run_indices)
        digest = "[red]MISSING[/red]" if group.missing else group.digest
        console.print(f"    - {digest}: {group.count} occurrence(s) [dim](runs {runs})[/dim]")


def print_report(report: ExperimentReport, runs_root: Path | None = None) -> None:
    """Full report: stages, runs, both groupings, summary and diff hints."""
    if report.stages:
        console.print("\n[bold]Stages[/bold]")
        print_stages(report.stages)

    if report.runs:
        console.print("\n[bold]Runs[/bold]")
        print_runs(report.runs)

    print_divergence(report.binary)
    print_divergence(report.map)

    console.print("\n[bold]Summary[/bold]")
    console.print(f"  Total runs: {report.run_count}")
    console.print(f"  Failed runs: {len(report.failed_runs)}")
    console.print(f"  Inputs linked: {report.input_count}")
    console.print(f"  Binaries deterministic: {str(report.binary.deterministic).lower()}")
    console.print(f"  Map files deterministic: {str(report.map.deterministic).lower()}")
    if runs_root is not None:
        console.print(f"  Test outputs: {runs_root}")
    if not report.inputs_stable:
        console.print("  [red]Link inputs changed during the experiment[/red]")

    style = "green" if report.verdict is Verdict.DETERMINISTIC else "red"
    console.print(f"  Verdict: [{style}]{report.verdict.value}[/{style}]")

    hints = diff_hints(report)
    if hints:
        console.print("\nTo compare differences between runs, use:")
        for hint in hints:
            console.print(f"  {hint}", markup=False, highlight=False, soft_wrap=True)
