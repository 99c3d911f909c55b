# Copyright (c) Syntropy Systems
"""Pydantic models for stage results and the determinism report."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import Field, computed_field

from .base import ProbeBaseModel
from .run import LinkRun

MISSING = "MISSING"


class Artifact(str, Enum):
    """Which link output a report covers."""

    BINARY = "binary"
    MAP = "map"


class Verdict(str, Enum):
    """Overall classification of an experiment."""

    DETERMINISTIC = "deterministic"
    DIVERGENT = "divergent"
    ALL_FAILED = "all_failed"
    SETUP_FAILED = "setup_failed"


class HashGroup(ProbeBaseModel):
    """Runs that produced the same digest."""

    digest: str
    run_indices: list[int] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def count(self) -> int:
        """Number of runs in the group."""
        return len(self.run_indices)

    @property
    def missing(self) -> bool:
        """Return whether this is the sentinel group for failed runs."""
        return self.digest == MISSING


class DivergenceReport(ProbeBaseModel):
    """Hash grouping for one artifact across a run collection."""

    artifact: Artifact
    groups: list[HashGroup] = Field(default_factory=list)
    unique_count: int = 0
    missing_count: int = 0
    deterministic: bool = False
    all_missing: bool = False


class StageResult(ProbeBaseModel):
    """Counted outcome of a pipeline stage."""

    stage: str
    succeeded: int = 0
    failed: int = 0
    detail: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ok(self) -> bool:
        """Return whether the stage had no failures."""
        return self.failed == 0


class ExperimentReport(ProbeBaseModel):
    """Everything an experiment produced, aggregated for display and exit."""

    run_count: int
    input_count: int = 0
    input_fingerprint: Optional[str] = None
    inputs_stable: bool = True
    stages: list[StageResult] = Field(default_factory=list)
    runs: list[LinkRun] = Field(default_factory=list)
    binary: DivergenceReport
    map: DivergenceReport
    verdict: Verdict

    @computed_field  # type: ignore[prop-decorator]
    @property
    def deterministic(self) -> bool:
        """Return whether binaries and maps each hashed to one real digest."""
        return self.verdict is Verdict.DETERMINISTIC

    @property
    def failed_runs(self) -> list[LinkRun]:
        """Runs that did not produce both outputs."""
        return [run for run in self.runs if not run.ok]

    @property
    def exit_code(self) -> int:
        """Process exit status: 0 only if every stage and every run passed."""
        if not self.deterministic:
            return 1
        if any(not stage.ok for stage in self.stages):
            return 1
        if self.failed_runs:
            return 1
        return 0
