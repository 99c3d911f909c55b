# Copyright (c) Syntropy Systems
"""Exception types raised by linkprobe."""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class LinkprobeError(Exception):
    """Base class for linkprobe errors."""


class GenerationError(LinkprobeError):
    """A workload could not be generated (template or output unusable)."""


class PreconditionError(LinkprobeError):
    """A required input file or directory is missing."""

    path: Path
    what: str

    def __init__(self, path: Path, what: str, reason: str = "does not exist") -> None:
        self.path = path
        self.what = what
        super().__init__(f"{what} {reason}: {path}")


class ToolchainError(LinkprobeError):
    """A toolchain component could not be located or queried."""
