# Copyright (c) Syntropy Systems
"""linkprobe doctor command."""

import shutil
from typing import Optional

import typer

from linkprobe.cli import common
from linkprobe.cli.common import TargetOption, console
from linkprobe.config import find_config_dir
from linkprobe.host import collect_snapshot
from linkprobe.runner import capture_output
from linkprobe.toolchain import TargetTriple, default_sdk_path

TOOLS = ("swiftc", "clang", "ld")


def doctor(target: Optional[str] = TargetOption) -> None:
    """Check the toolchain linkprobe drives.

    Verifies:
    - xcrun is on PATH
    - swiftc, clang and ld can be located through xcrun
    - an SDK exists for the target triple
    """
    issues: list[str] = []
    warnings: list[str] = []

    config = common.get_config()
    target = target or config.target

    config_dir = find_config_dir()
    if config_dir is None:
        console.print("[dim]•[/dim] No .linkprobe directory found, using defaults")
    else:
        console.print(f"[green]✓[/green] linkprobe directory: {config_dir}")

    try:
        triple = TargetTriple.parse(target)
    except ValueError as e:
        console.print(f"[red]✗[/red] {e}")
        issues.append("Invalid target triple")
        triple = None
    else:
        console.print(f"[green]✓[/green] Target: {target} (SDK {triple.sdk_name})")

    xcrun = shutil.which(config.xcrun)
    if xcrun is None:
        console.print(f"[red]✗[/red] {config.xcrun} not found on PATH")
        issues.append(f"{config.xcrun} missing")
    else:
        console.print(f"[green]✓[/green] xcrun: {xcrun}")

        for tool in TOOLS:
            found = capture_output([xcrun, "--find", tool])
            if found:
                console.print(f"[green]✓[/green] {tool}: {found}")
            else:
                console.print(f"[red]✗[/red] {tool} not found by xcrun")
                issues.append(f"{tool} missing")

        if config.sdk_path is not None:
            sdk_path = config.sdk_path
        elif triple is not None:
            sdk_path = default_sdk_path(target, xcrun)
        else:
            sdk_path = None
        if sdk_path is not None and sdk_path.is_dir():
            console.print(f"[green]✓[/green] SDK: {sdk_path}")
        else:
            console.print(f"[red]✗[/red] No SDK found for {target}")
            issues.append("SDK missing")

    snapshot = collect_snapshot()
    if snapshot.load_avg_1m is None:
        console.print("[yellow]⚠[/yellow] Load average unavailable")
        warnings.append("No load average")
    else:
        console.print(
            f"[dim]•[/dim] Load average (1m): {snapshot.load_avg_1m:.2f}, "
            f"CPU {snapshot.cpu_percent or 0:.0f}%"
        )

    # Summary
    console.print()
    if issues:
        console.print(f"[red]Found {len(issues)} issue(s)[/red]")
        for issue in issues:
            console.print(f"  - {issue}")
        raise typer.Exit(1)
    if warnings:
        console.print(f"[yellow]Found {len(warnings)} warning(s)[/yellow]")
        for warning in warnings:
            console.print(f"  - {warning}")
    else:
        console.print("[green]All checks passed[/green]")
