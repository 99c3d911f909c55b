# Copyright (c) Syntropy Systems
"""linkprobe init command."""

from pathlib import Path

import typer
import yaml

from linkprobe.cli.common import console
from linkprobe.config import CONFIG_DIR_NAME, CONFIG_FILE_NAME, ProbeConfig


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a linkprobe project.

    Creates a .linkprobe directory holding config.yaml with the defaults.
    """
    target = path.resolve()
    probe_dir = target / CONFIG_DIR_NAME

    if probe_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {probe_dir}")
        return

    probe_dir.mkdir(parents=True)

    config = ProbeConfig().to_dict()
    config_path = probe_dir / CONFIG_FILE_NAME
    with config_path.open("w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    console.print(f"[green]Initialized linkprobe project:[/green] {probe_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
