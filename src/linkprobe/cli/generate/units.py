# Copyright (c) Syntropy Systems
"""linkprobe generate logic|padding|entry commands."""

from pathlib import Path
from typing import Optional

import typer

from linkprobe.cli import common
from linkprobe.cli.common import (
    ENTRY_ROOT,
    LOGIC_ROOT,
    PADDING_ROOT,
    SdkOption,
    TargetOption,
    console,
    fail,
)
from linkprobe.cli.display import print_stages
from linkprobe.errors import LinkprobeError
from linkprobe.generator import DEFAULT_NAMING
from linkprobe.models.workload import UnitKind, WorkloadSpec
from linkprobe.workload import WorkloadBuild, build_entry, build_workload

TemplateOption = typer.Option(
    None,
    "--template",
    help="Template file; every INDEX is replaced by the unit number",
)
JobsOption = typer.Option(
    None,
    "--jobs",
    "-j",
    min=1,
    help="Parallel compile workers (default: config, then 1)",
)


def _finish(build: WorkloadBuild) -> None:
    """Print the stage table and exit non-zero if any unit failed."""
    print_stages(build.stages())
    if build.kind is not UnitKind.ENTRY:
        console.print(f"  [dim]sources:[/dim] {build.sources_dir}")
    console.print(f"  [dim]objects:[/dim] {build.objects_dir}")

    if not build.ok:
        console.print(f"[red]{build.kind.value} generation incomplete[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Generated {build.kind.value} units[/green]")


def _generate(  # noqa: PLR0913
    kind: UnitKind,
    count: int,
    size: int,
    output_dir: Path,
    template: Optional[Path],
    target: Optional[str],
    sdk: Optional[Path],
    jobs: Optional[int],
) -> None:
    config = common.get_config()
    target = target or config.target
    sdk = sdk or config.sdk_path

    try:
        spec = WorkloadSpec(
            unit_count=count,
            unit_size_bytes=size,
            naming_template=DEFAULT_NAMING[kind],
            target_triple=target,
            sdk_path=sdk,
        )
        toolchain = common.make_toolchain(target, sdk, config.xcrun)
        build = build_workload(
            spec,
            kind,
            output_dir,
            toolchain,
            template_path=template,
            jobs=config.jobs if jobs is None else jobs,
        )
    except (LinkprobeError, ValueError) as e:
        fail(e)

    _finish(build)


def logic(
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        min=1,
        help="Number of logic units (default: config, then 512)",
    ),
    output_dir: Path = typer.Option(
        LOGIC_ROOT,
        "--output-dir",
        "-o",
        help="Workload directory; sources/ and objects/ are created inside",
    ),
    template: Optional[Path] = TemplateOption,
    target: Optional[str] = TargetOption,
    sdk: Optional[Path] = SdkOption,
    jobs: Optional[int] = JobsOption,
) -> None:
    """Generate and compile Swift logic units.

    Each unit gets an index-dependent compute() so that no two objects are
    identical and every one contributes call sites to the link.
    """
    config = common.get_config()
    _generate(
        UnitKind.LOGIC,
        config.logic_units if count is None else count,
        0,
        output_dir,
        template,
        target,
        sdk,
        jobs,
    )


def padding(
    count: Optional[int] = typer.Option(
        None,
        "--count",
        "-n",
        min=1,
        help="Number of padding units (default: config, then 2)",
    ),
    size: Optional[int] = typer.Option(
        None,
        "--size",
        "-s",
        min=1,
        help="Bytes of padding per unit (default: config, then 64 MiB)",
    ),
    output_dir: Path = typer.Option(
        PADDING_ROOT,
        "--output-dir",
        "-o",
        help="Workload directory; sources/ and objects/ are created inside",
    ),
    template: Optional[Path] = TemplateOption,
    target: Optional[str] = TargetOption,
    sdk: Optional[Path] = SdkOption,
    jobs: Optional[int] = JobsOption,
) -> None:
    """Generate and assemble padding units.

    Padding puts enough text between call sites and their targets to force
    the linker to insert branch islands.
    """
    config = common.get_config()
    _generate(
        UnitKind.PADDING,
        config.padding_units if count is None else count,
        config.padding_size if size is None else size,
        output_dir,
        template,
        target,
        sdk,
        jobs,
    )


def entry(
    source: Optional[Path] = typer.Option(
        None,
        "--source",
        help="Existing entry source to compile instead of the built-in stub",
    ),
    output_dir: Path = typer.Option(
        ENTRY_ROOT,
        "--output-dir",
        "-o",
        help="Directory for main.swift and main.o",
    ),
    template: Optional[Path] = TemplateOption,
    target: Optional[str] = TargetOption,
    sdk: Optional[Path] = SdkOption,
) -> None:
    """Compile the program entry point."""
    config = common.get_config()
    target = target or config.target
    sdk = sdk or config.sdk_path

    try:
        toolchain = common.make_toolchain(target, sdk, config.xcrun)
        build = build_entry(output_dir, toolchain, source=source, template_path=template)
    except (LinkprobeError, ValueError) as e:
        fail(e)

    _finish(build)
