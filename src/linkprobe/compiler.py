# Copyright (c) Syntropy Systems
"""Compile generated units into relocatable objects."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from linkprobe.generator import PROGRESS_EVERY
from linkprobe.models.report import StageResult
from linkprobe.toolchain import CompileOutcome, object_path_for

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from linkprobe.models.workload import ObjectUnit
    from linkprobe.toolchain import Toolchain

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    """Compiled corpus plus the units that failed."""

    compiled: list[ObjectUnit] = field(default_factory=list)
    failures: list[CompileOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        """Number of units with an object artifact."""
        return len(self.compiled)

    @property
    def failed(self) -> int:
        """Number of units excluded from the corpus."""
        return len(self.failures)

    @property
    def ok(self) -> bool:
        """Return whether every unit compiled."""
        return not self.failures

    def stage(self, name: str) -> StageResult:
        """Summarize as a stage result for the experiment report."""
        detail = None
        if self.failures:
            detail = ", ".join(str(f.unit.source_path.name) for f in self.failures[:5])
        return StageResult(
            stage=name,
            succeeded=self.succeeded,
            failed=self.failed,
            detail=detail,
        )


def clear_objects(objects_dir: Path) -> int:
    """Remove ``*.o`` files from a previous compile."""
    removed = 0
    if not objects_dir.is_dir():
        return removed
    for stale in objects_dir.glob("*.o"):
        stale.unlink()
        removed += 1
    return removed


def _compile_one(toolchain: Toolchain, unit: ObjectUnit, objects_dir: Path) -> CompileOutcome:
    try:
        return toolchain.compile(unit, objects_dir)
    except OSError as e:
        return CompileOutcome(unit=unit, exit_code=1, error=f"compile could not run: {e}")


def compile_units(
    units: Sequence[ObjectUnit],
    toolchain: Toolchain,
    objects_dir: Path,
    jobs: int = 1,
) -> CompileResult:
    """Compile every unit independently.

    A failing unit is logged and counted, never fatal to the batch. With
    ``jobs > 1`` compiles run on a thread pool; the returned corpus is sorted
    by artifact path so completion order does not matter.
    """
    objects_dir.mkdir(parents=True, exist_ok=True)
    removed = clear_objects(objects_dir)
    if removed:
        logger.info("Removed %d stale objects from %s", removed, objects_dir)

    total = len(units)
    result = CompileResult()
    logger.info("Compiling %d units into %s (jobs=%d)", total, objects_dir, jobs)

    def _record(done: int, outcome: CompileOutcome) -> None:
        if outcome.ok:
            result.compiled.append(outcome.unit)
        else:
            result.failures.append(outcome)
            leftover = object_path_for(outcome.unit, objects_dir)
            if leftover.exists():
                leftover.unlink()
            logger.warning(
                "Failed to compile %s: %s",
                outcome.unit.source_path,
                outcome.error or f"exit {outcome.exit_code}",
            )
        if done % PROGRESS_EVERY == 0:
            logger.info("  Compiled %d/%d files...", done, total)

    if jobs <= 1:
        for done, unit in enumerate(units, start=1):
            _record(done, _compile_one(toolchain, unit, objects_dir))
    else:
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            outcomes = pool.map(lambda u: _compile_one(toolchain, u, objects_dir), units)
            for done, outcome in enumerate(outcomes, start=1):
                _record(done, outcome)

    result.compiled.sort(key=lambda u: str(u.artifact_path))
    result.failures.sort(key=lambda f: str(f.unit.source_path))

    logger.info("Compiled %d/%d units (%d failed)", result.succeeded, total, result.failed)
    return result
