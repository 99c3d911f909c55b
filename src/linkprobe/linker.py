# Copyright (c) Syntropy Systems
"""Assemble the ordered link inputs and run one link."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from linkprobe.errors import PreconditionError
from linkprobe.models.workload import LinkInputSet
from linkprobe.toolchain import LinkOutputs, LinkStrategy

if TYPE_CHECKING:
    from pathlib import Path

    from linkprobe.toolchain import LinkOutcome, Toolchain

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "test_binary"


def collect_objects(directory: Path, limit: int | None = None) -> list[Path]:
    """Sorted ``*.o`` files in ``directory``, capped to the first ``limit``.

    A limit of None or <= 0 means all objects.
    """
    objects = sorted(p for p in directory.glob("*.o") if p.is_file())
    if limit is not None and 0 < limit < len(objects):
        logger.info("  Limited to first %d of %d objects in %s", limit, len(objects), directory)
        objects = objects[:limit]
    return objects


def build_input_set(  # noqa: PLR0913
    logic_dir: Path,
    padding_dir: Path,
    entry_object: Path,
    *,
    max_logic: int | None = None,
    max_padding: int | None = None,
) -> LinkInputSet:
    """Collect objects from disk into a LinkInputSet.

    Checks every input path before collecting anything and raises
    PreconditionError naming the first missing one.
    """
    if not logic_dir.is_dir():
        raise PreconditionError(logic_dir, "Logic object directory")
    if not padding_dir.is_dir():
        raise PreconditionError(padding_dir, "Padding object directory")
    if not entry_object.is_file():
        raise PreconditionError(entry_object, "Entry object file")

    logic = collect_objects(logic_dir, max_logic)
    logger.info("Found %d logic objects in %s", len(logic), logic_dir)
    padding = collect_objects(padding_dir, max_padding)
    logger.info("Found %d padding objects in %s", len(padding), padding_dir)

    if not logic and not padding:
        raise PreconditionError(logic_dir, "Object files to link", "not found in")

    return LinkInputSet(logic=tuple(logic), padding=tuple(padding), entry=entry_object)


def link_once(
    input_set: LinkInputSet,
    toolchain: Toolchain,
    output_dir: Path,
    output_name: str = DEFAULT_OUTPUT_NAME,
    strategy: LinkStrategy = LinkStrategy.DRIVER,
) -> LinkOutcome:
    """Invoke the linker exactly once over the input set.

    Writes ``<name>``, ``<name>.map`` and ``<name>.trace`` into
    ``output_dir``. A non-zero exit is logged; callers decide the run status.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    outputs = LinkOutputs.in_dir(output_dir, output_name)

    logger.info(
        "Linking %d objects (%d logic, %d padding, entry last) via %s",
        len(input_set),
        len(input_set.logic),
        len(input_set.padding),
        strategy.value,
    )
    outcome = toolchain.link(input_set, outputs, strategy)
    if outcome.exit_code != 0:
        logger.warning("Link exited %d, see %s", outcome.exit_code, outputs.trace)
    return outcome
