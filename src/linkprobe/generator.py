# Copyright (c) Syntropy Systems
"""Workload generation: render source units from templates."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import TYPE_CHECKING

from linkprobe.errors import GenerationError
from linkprobe.models.workload import INDEX_FIELD, ObjectUnit, UnitKind

if TYPE_CHECKING:
    from pathlib import Path

    from linkprobe.models.workload import WorkloadSpec

logger = logging.getLogger(__name__)

PLACEHOLDER = "INDEX"
PROGRESS_EVERY = 50

DEFAULT_NAMING = {
    UnitKind.LOGIC: "SwiftFile_{index}.swift",
    UnitKind.PADDING: "Padding_{index}.s",
    UnitKind.ENTRY: "main.swift",
}

LOGIC_TEMPLATE = """\
import Foundation

public struct SwiftFile_INDEX {
    public var id: Int = INDEX
    public var name: String = "SwiftFile_INDEX"

    public init() {}

    public func compute() -> Int {
        var result = INDEX
        for i in 0..<10 {
            result = result &* 31 &+ i
        }
        return result
    }

    public func description() -> String {
        return "SwiftFile_INDEX: id=\\(id), computed=\\(compute())"
    }
}

@inline(never)
public func entryPoint_INDEX() -> Int {
    let file = SwiftFile_INDEX()
    return file.compute()
}
"""

ENTRY_TEMPLATE = """\
@main
struct LinkProbeMain {
    static func main() {
        print("linkprobe entry INDEX")
    }
}
"""


def padding_template(size: int) -> str:
    """Assembly template reserving ``size`` bytes between two global labels."""
    return (
        "    .section __TEXT,__text,regular,pure_instructions\n"
        f"    .globl _pad{PLACEHOLDER}_start\n"
        f"_pad{PLACEHOLDER}_start:\n"
        f"    .space {size:#x}\n"
        f"    .globl _pad{PLACEHOLDER}_end\n"
        f"_pad{PLACEHOLDER}_end:\n"
    )


def render(template: str, index: int) -> str:
    """Render a unit from a template.

    The only substitution: every occurrence of ``INDEX`` becomes the decimal
    index. Nothing else in the template is touched.
    """
    if index < 0:
        msg = f"Unit index must be non-negative, got {index}"
        raise ValueError(msg)
    return template.replace(PLACEHOLDER, str(index))


def builtin_template(kind: UnitKind, unit_size_bytes: int = 0) -> str:
    """Return the built-in template for a unit kind."""
    if kind is UnitKind.LOGIC:
        return LOGIC_TEMPLATE
    if kind is UnitKind.PADDING:
        return padding_template(unit_size_bytes)
    return ENTRY_TEMPLATE


def load_template(
    kind: UnitKind,
    path: Path | None = None,
    unit_size_bytes: int = 0,
) -> str:
    """Read a template file, or fall back to the built-in one for ``kind``.

    Raises GenerationError if the file cannot be read; no partial corpus is
    produced in that case.
    """
    if path is None:
        return builtin_template(kind, unit_size_bytes)
    try:
        return path.read_text()
    except (OSError, UnicodeDecodeError) as e:
        msg = f"Cannot read template {path}: {e}"
        raise GenerationError(msg) from e


def unit_filename(spec: WorkloadSpec, index: int) -> str:
    """Zero-padded, lexicographically sortable file name for a unit."""
    padded = f"{index:0{spec.index_width}d}"
    return spec.naming_template.replace(INDEX_FIELD, padded)


@dataclass
class GenerationResult:
    """Outcome of generating one kind of unit."""

    kind: UnitKind
    units: list[ObjectUnit] = field(default_factory=list)
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        """Number of units written."""
        return len(self.units)

    @property
    def ok(self) -> bool:
        """Return whether every unit was written."""
        return self.failed == 0


def _clear_stale(sources_dir: Path, suffix: str) -> int:
    """Remove sources left by a previous generation with the same suffix."""
    removed = 0
    if not suffix:
        return removed
    for stale in sources_dir.glob(f"*{suffix}"):
        if stale.is_file():
            stale.unlink()
            removed += 1
    return removed


def generate_units(
    spec: WorkloadSpec,
    kind: UnitKind,
    template: str,
    sources_dir: Path,
) -> GenerationResult:
    """Write ``spec.unit_count`` rendered sources into ``sources_dir``.

    A failure writing one unit is counted and generation moves on. An output
    directory that cannot be created is fatal.
    """
    try:
        sources_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        msg = f"Cannot create sources directory {sources_dir}: {e}"
        raise GenerationError(msg) from e

    removed = _clear_stale(sources_dir, PurePath(spec.naming_template).suffix)
    if removed:
        logger.info("Removed %d stale %s sources from %s", removed, kind.value, sources_dir)

    result = GenerationResult(kind=kind)
    logger.info("Generating %d %s units in %s", spec.unit_count, kind.value, sources_dir)

    for index in range(spec.unit_count):
        source_path = sources_dir / unit_filename(spec, index)
        try:
            _ = source_path.write_text(render(template, index))
        except (OSError, ValueError) as e:
            result.failed += 1
            result.errors.append(f"{source_path}: {e}")
            logger.warning("Failed to generate %s: %s", source_path, e)
        else:
            result.units.append(
                ObjectUnit(id=index, kind=kind, source_path=source_path),
            )

        if (index + 1) % PROGRESS_EVERY == 0:
            logger.info("  Generated %d/%d files...", index + 1, spec.unit_count)

    logger.info(
        "Generated %d %s units (%d failed)",
        result.succeeded,
        kind.value,
        result.failed,
    )
    return result


def generate_entry(template: str, source_path: Path) -> ObjectUnit:
    """Write the single entry unit (index 0)."""
    try:
        source_path.parent.mkdir(parents=True, exist_ok=True)
        _ = source_path.write_text(render(template, 0))
    except OSError as e:
        msg = f"Cannot write entry source {source_path}: {e}"
        raise GenerationError(msg) from e
    return ObjectUnit(id=0, kind=UnitKind.ENTRY, source_path=source_path)
