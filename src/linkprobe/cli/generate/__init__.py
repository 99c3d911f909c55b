# Copyright (c) Syntropy Systems
"""linkprobe generate subcommand group."""

import typer

from linkprobe.cli.generate.units import entry, logic, padding

generate_app = typer.Typer(
    name="generate",
    help="Generate and compile the objects an experiment links.",
    no_args_is_help=True,
)

# Register subcommands
_ = generate_app.command()(logic)
_ = generate_app.command()(padding)
_ = generate_app.command()(entry)
