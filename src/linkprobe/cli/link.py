# Copyright (c) Syntropy Systems
"""linkprobe link command."""

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
from linkprobe.errors import LinkprobeError
from linkprobe.linker import build_input_set, link_once
from linkprobe.toolchain import LinkStrategy
from linkprobe.workload import OBJECTS_DIR

LogicDirOption = typer.Option(
    LOGIC_ROOT / OBJECTS_DIR,
    "--logic-dir",
    "-s",
    help="Directory containing logic .o files",
)
PaddingDirOption = typer.Option(
    PADDING_ROOT / OBJECTS_DIR,
    "--padding-dir",
    "-p",
    help="Directory containing padding .o files",
)
EntryOption = typer.Option(
    ENTRY_ROOT / "main.o",
    "--entry",
    "-m",
    help="Entry object, always linked last",
)
NameOption = typer.Option(
    None,
    "--name",
    "-n",
    help="Output binary name (default: config, then test_binary)",
)
MaxLogicOption = typer.Option(
    None,
    "--max-logic",
    min=0,
    help="Link only the first N logic objects (default: all)",
)
MaxPaddingOption = typer.Option(
    None,
    "--max-padding",
    min=0,
    help="Link only the first N padding objects (default: all)",
)
UseLdOption = typer.Option(
    False,
    "--use-ld",
    help="Invoke ld directly instead of through the clang driver",
)


def strategy_for(use_ld: bool) -> LinkStrategy:
    """Map the --use-ld flag to a link strategy."""
    return LinkStrategy.DIRECT if use_ld else LinkStrategy.DRIVER


def link(  # noqa: PLR0913
    logic_dir: Path = LogicDirOption,
    padding_dir: Path = PaddingDirOption,
    entry: Path = EntryOption,
    output_dir: Path = typer.Option(
        Path("link_outputs"),
        "--output-dir",
        "-o",
        help="Directory for the binary, map and trace",
    ),
    name: Optional[str] = NameOption,
    max_logic: Optional[int] = MaxLogicOption,
    max_padding: Optional[int] = MaxPaddingOption,
    use_ld: bool = UseLdOption,
    target: Optional[str] = TargetOption,
    sdk: Optional[Path] = SdkOption,
) -> None:
    """Link the object corpus once.

    Logic objects come first, then padding objects, then the entry object,
    each group in sorted file-name order.
    """
    config = common.get_config()
    target = target or config.target
    name = name or config.output_name

    try:
        input_set = build_input_set(
            logic_dir,
            padding_dir,
            entry,
            max_logic=max_logic,
            max_padding=max_padding,
        )
        toolchain = common.make_toolchain(
            target, sdk or config.sdk_path, config.xcrun, for_link=True
        )
        outcome = link_once(input_set, toolchain, output_dir, name, strategy_for(use_ld))
    except (LinkprobeError, ValueError) as e:
        fail(e)

    outputs = outcome.outputs
    if outcome.exit_code != 0 or not outputs.produced():
        console.print(f"[red]Link failed[/red] (exit {outcome.exit_code})")
        console.print(f"  [dim]trace:[/dim] {outputs.trace}")
        raise typer.Exit(1)

    console.print("[green]✓ Link succeeded[/green]")
    console.print(f"  Logic objects linked: {len(input_set.logic)}")
    console.print(f"  Padding objects linked: {len(input_set.padding)}")
    console.print(f"  Total objects: {len(input_set)}")
    console.print(f"  Output binary: {outputs.binary}")
    console.print(f"  Link map: {outputs.map}")
    console.print(f"  Link trace: {outputs.trace}")
    console.print(f"  Duration: {outcome.duration_seconds:.1f}s")
