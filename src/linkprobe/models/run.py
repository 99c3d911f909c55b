# Copyright (c) Syntropy Systems
"""Pydantic models for link runs and their metadata."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field

from .base import FrozenModel, ProbeBaseModel

META_FILENAME = "meta.json"


class RunStatus(str, Enum):
    """Outcome of one link run."""

    OK = "ok"
    FAILED = "failed"


class HostSnapshot(ProbeBaseModel):
    """Host load captured just before a link run."""

    timestamp: str
    cpu_percent: Optional[float] = None
    load_avg_1m: Optional[float] = None
    memory_used_gb: Optional[float] = None
    memory_total_gb: Optional[float] = None


class LinkRun(FrozenModel):
    """One invocation of the linker against the experiment's input set."""

    run_index: int = Field(ge=0)
    run_dir: Path
    binary_path: Path
    map_path: Path
    log_path: Path
    status: RunStatus
    exit_code: Optional[int] = None
    binary_hash: Optional[str] = None
    map_hash: Optional[str] = None
    started_at: Optional[str] = None
    duration_seconds: Optional[float] = None
    input_fingerprint: Optional[str] = None
    host: Optional[HostSnapshot] = None

    @property
    def ok(self) -> bool:
        """Return whether both binary and map were produced."""
        return self.status is RunStatus.OK
