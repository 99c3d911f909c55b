# Copyright (c) Syntropy Systems
"""Repeat the same link many times, each run in its own directory."""
from __future__ import annotations

import logging
import shutil
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import ValidationError

from linkprobe.detector import DEFAULT_RULES, hash_binary_file, hash_map_file
from linkprobe.errors import PreconditionError
from linkprobe.host import collect_snapshot, utcnow
from linkprobe.linker import DEFAULT_OUTPUT_NAME, link_once
from linkprobe.models.run import META_FILENAME, LinkRun, RunStatus
from linkprobe.toolchain import LinkOutputs, LinkStrategy

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence
    from pathlib import Path

    from linkprobe.detector import CanonicalRule
    from linkprobe.models.workload import LinkInputSet
    from linkprobe.toolchain import Toolchain

logger = logging.getLogger(__name__)

RUN_DIR_PREFIX = "run_"
RUN_LOG_NAME = "link.log"


@dataclass
class RunCollection:
    """Runs of one experiment plus the input fingerprint they share."""

    runs: list[LinkRun] = field(default_factory=list)
    input_fingerprint: str | None = None
    inputs_stable: bool = True

    def __len__(self) -> int:
        return len(self.runs)

    @property
    def failed(self) -> int:
        """Number of runs missing the binary or the map."""
        return sum(1 for run in self.runs if not run.ok)


def run_dir_name(index: int, run_count: int) -> str:
    """Zero-padded, sortable directory name for a run (at least 3 digits)."""
    width = max(3, len(str(max(run_count - 1, 0))))
    return f"{RUN_DIR_PREFIX}{index:0{width}d}"


def clear_runs(runs_root: Path) -> int:
    """Remove run directories left by a previous experiment."""
    removed = 0
    for stale in runs_root.glob(f"{RUN_DIR_PREFIX}*"):
        if stale.is_dir():
            shutil.rmtree(stale)
            removed += 1
    return removed


@contextmanager
def _run_log(log_path: Path) -> Iterator[None]:
    """Mirror linkprobe log records into a run's own log file."""
    handler = logging.FileHandler(log_path, mode="w")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    handler.setLevel(logging.DEBUG)
    root = logging.getLogger("linkprobe")
    previous_level = root.level
    root.addHandler(handler)
    if root.getEffectiveLevel() > logging.DEBUG:
        root.setLevel(logging.DEBUG)
    try:
        yield
    finally:
        root.removeHandler(handler)
        root.setLevel(previous_level)
        handler.close()


def write_meta(run: LinkRun) -> Path:
    """Persist a run's record next to its outputs."""
    meta_path = run.run_dir / META_FILENAME
    _ = meta_path.write_text(run.model_dump_json(indent=2))
    return meta_path


def execute_run(  # noqa: PLR0913
    index: int,
    run_dir: Path,
    input_set: LinkInputSet,
    toolchain: Toolchain,
    *,
    output_name: str = DEFAULT_OUTPUT_NAME,
    strategy: LinkStrategy = LinkStrategy.DRIVER,
    rules: Iterable[CanonicalRule] = DEFAULT_RULES,
    input_fingerprint: str | None = None,
    capture_host: bool = True,
) -> LinkRun:
    """Link once into ``run_dir`` and record the outcome.

    A run is ok only when the linker exits 0 and both the binary and the map
    exist afterwards: a linker that exits 0 without writing its map still
    failed, and files left behind by a failing linker are not hashed.
    """
    run_dir.mkdir(parents=True, exist_ok=True)
    log_path = run_dir / RUN_LOG_NAME
    outputs = LinkOutputs.in_dir(run_dir, output_name)

    with _run_log(log_path):
        host = collect_snapshot() if capture_host else None
        started_at = utcnow()
        start = time.monotonic()
        outcome = link_once(input_set, toolchain, run_dir, output_name, strategy)
        duration = time.monotonic() - start

        binary_hash = map_hash = None
        if outcome.exit_code == 0 and outputs.produced():
            status = RunStatus.OK
            binary_hash = hash_binary_file(outputs.binary)
            map_hash = hash_map_file(outputs.map, rules)
        else:
            status = RunStatus.FAILED
            if outcome.exit_code != 0:
                logger.warning("Run %d: linker exited %d", index, outcome.exit_code)
            if not outputs.binary.is_file():
                logger.warning("Run %d: binary not generated", index)
            if not outputs.map.is_file():
                logger.warning("Run %d: map file not generated", index)

    run = LinkRun(
        run_index=index,
        run_dir=run_dir,
        binary_path=outputs.binary,
        map_path=outputs.map,
        log_path=log_path,
        status=status,
        exit_code=outcome.exit_code,
        binary_hash=binary_hash,
        map_hash=map_hash,
        started_at=started_at,
        duration_seconds=round(duration, 3),
        input_fingerprint=input_fingerprint,
        host=host,
    )
    _ = write_meta(run)
    return run


def run_experiment(  # noqa: PLR0913
    input_set: LinkInputSet,
    toolchain: Toolchain,
    runs_root: Path,
    run_count: int,
    *,
    output_name: str = DEFAULT_OUTPUT_NAME,
    strategy: LinkStrategy = LinkStrategy.DRIVER,
    rules: Iterable[CanonicalRule] = DEFAULT_RULES,
    capture_host: bool = True,
) -> RunCollection:
    """Link the identical input set ``run_count`` times, one run at a time.

    Every attempt is made even when earlier ones fail. Runs are strictly
    sequential; concurrent links add I/O and scheduler noise of their own.
    """
    if run_count < 1:
        msg = f"run_count must be at least 1, got {run_count}"
        raise ValueError(msg)

    active_rules = tuple(rules)
    runs_root.mkdir(parents=True, exist_ok=True)
    removed = clear_runs(runs_root)
    if removed:
        logger.info("Removed %d previous run directories from %s", removed, runs_root)

    fingerprint = input_set.fingerprint()
    collection = RunCollection(input_fingerprint=fingerprint)
    logger.info("Running %d link operations into %s", run_count, runs_root)

    for index in range(run_count):
        logger.info("Run %d/%d...", index + 1, run_count)
        run = execute_run(
            index,
            runs_root / run_dir_name(index, run_count),
            input_set,
            toolchain,
            output_name=output_name,
            strategy=strategy,
            rules=active_rules,
            input_fingerprint=fingerprint,
            capture_host=capture_host,
        )
        collection.runs.append(run)

    collection.inputs_stable = input_set.fingerprint() == fingerprint
    if not collection.inputs_stable:
        logger.error("Link inputs changed during the experiment; results are not comparable")
    return collection


def _run_index(run_dir: Path) -> int | None:
    suffix = run_dir.name[len(RUN_DIR_PREFIX) :]
    return int(suffix) if suffix.isdigit() else None


def unreadable_run(run_dir: Path, index: int) -> LinkRun:
    """Failed record for a run directory whose ``meta.json`` cannot be read."""
    outputs = LinkOutputs.in_dir(run_dir, DEFAULT_OUTPUT_NAME)
    return LinkRun(
        run_index=index,
        run_dir=run_dir,
        binary_path=outputs.binary,
        map_path=outputs.map,
        log_path=run_dir / RUN_LOG_NAME,
        status=RunStatus.FAILED,
    )


def load_runs(runs_root: Path) -> list[LinkRun]:
    """Read back every run under ``runs_root``, by run index.

    A run directory without readable metadata still counts, as a failed run.
    """
    if not runs_root.is_dir():
        raise PreconditionError(runs_root, "Runs directory")

    runs: list[LinkRun] = []
    for run_dir in sorted(runs_root.glob(f"{RUN_DIR_PREFIX}*")):
        index = _run_index(run_dir)
        if not run_dir.is_dir() or index is None:
            continue
        meta_path = run_dir / META_FILENAME
        try:
            runs.append(LinkRun.model_validate_json(meta_path.read_text()))
        except (OSError, ValidationError) as e:
            logger.warning("Unreadable run metadata %s, counting run as failed: %s", meta_path, e)
            runs.append(unreadable_run(run_dir, index))

    if not runs:
        raise PreconditionError(runs_root, "Run metadata", "not found in")
    return sorted(runs, key=lambda r: r.run_index)


def rehash_runs(
    runs: Sequence[LinkRun],
    rules: Iterable[CanonicalRule] = DEFAULT_RULES,
) -> list[LinkRun]:
    """Recompute map digests from the files on disk with a different rule set."""
    active_rules = tuple(rules)
    rehashed: list[LinkRun] = []
    for run in runs:
        if run.ok and run.map_path.is_file():
            run = run.model_copy(update={"map_hash": hash_map_file(run.map_path, active_rules)})  # noqa: PLW2901
        rehashed.append(run)
    return rehashed
