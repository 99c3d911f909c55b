# Copyright (c) Syntropy Systems
"""Shared CLI plumbing: console, logging, toolchain construction."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from linkprobe.config import ProbeConfig, load_config
from linkprobe.errors import LinkprobeError, ToolchainError
from linkprobe.toolchain import XcrunToolchain, default_sdk_path

if TYPE_CHECKING:
    from typing import NoReturn

    from linkprobe.toolchain import Toolchain

console = Console()

# Defaults matching the directory layout the generate commands produce
LOGIC_ROOT = Path("swift_outputs")
PADDING_ROOT = Path("padding_outputs")
ENTRY_ROOT = Path("main")
RUNS_ROOT = Path("nondet_test_outputs")

TARGET_ENVVAR = "LINKPROBE_TARGET"
SDK_ENVVAR = "LINKPROBE_SDK"

TargetOption = typer.Option(
    None,
    "--target",
    envvar=TARGET_ENVVAR,
    help="Target triple (default: config, then arm64-apple-macos15.0)",
)
SdkOption = typer.Option(
    None,
    "--sdk",
    envvar=SDK_ENVVAR,
    help="SDK path (default: config, then xcrun --show-sdk-path)",
)


def setup_logging(verbose: bool = False) -> None:
    """Route linkprobe log records to a RichHandler on stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger("linkprobe")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=True,
    )
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False


def get_config() -> ProbeConfig:
    """Load the nearest linkprobe configuration."""
    return load_config()


def make_toolchain(
    target: str,
    sdk: Optional[Path],
    xcrun: str = "xcrun",
    *,
    for_link: bool = False,
) -> Toolchain:
    """Build the xcrun toolchain, asking xcrun for the SDK when none is given.

    With ``for_link`` the SDK and Swift runtime are checked up front so a
    misconfigured toolchain fails before any run directory is created.
    """
    sdk_path = sdk or default_sdk_path(target, xcrun)
    if sdk_path is None:
        msg = f"Cannot determine SDK for {target}; pass --sdk or set {SDK_ENVVAR}"
        raise ToolchainError(msg)
    toolchain = XcrunToolchain(target, sdk_path, xcrun)
    if for_link:
        toolchain.preflight()
    return toolchain


def fail(error: LinkprobeError | ValueError) -> NoReturn:
    """Print an error the way every command reports one, then exit 1."""
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    raise typer.Exit(1) from error
