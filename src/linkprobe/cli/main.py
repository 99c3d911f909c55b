# Copyright (c) Syntropy Systems
"""Main CLI entry point for linkprobe."""

import typer

from linkprobe.cli.analyze import analyze
from linkprobe.cli.common import setup_logging
from linkprobe.cli.doctor import doctor
from linkprobe.cli.generate import generate_app
from linkprobe.cli.init_cmd import init
from linkprobe.cli.link import link
from linkprobe.cli.test_cmd import test

app = typer.Typer(
    name="linkprobe",
    help=(
        "Linker nondeterminism harness. Link identical inputs many times "
        "and report every binary or map that differs."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logging, including tool command lines",
    ),
) -> None:
    """Linker nondeterminism harness."""
    setup_logging(verbose)


# Register commands
_ = app.command()(init)
_ = app.command()(link)
_ = app.command(name="test")(test)
_ = app.command()(analyze)
_ = app.command()(doctor)

# Register generate sub-app
app.add_typer(generate_app, name="generate")


if __name__ == "__main__":
    app()
