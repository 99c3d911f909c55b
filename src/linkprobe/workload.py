# Copyright (c) Syntropy Systems
"""Generate-then-compile pipeline for each kind of unit."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from linkprobe.compiler import CompileResult, compile_units
from linkprobe.errors import PreconditionError
from linkprobe.generator import (
    GenerationResult,
    generate_entry,
    generate_units,
    load_template,
)
from linkprobe.models.report import StageResult
from linkprobe.models.workload import ObjectUnit, UnitKind

if TYPE_CHECKING:
    from pathlib import Path

    from linkprobe.models.workload import WorkloadSpec
    from linkprobe.toolchain import Toolchain

logger = logging.getLogger(__name__)

SOURCES_DIR = "sources"
OBJECTS_DIR = "objects"
ENTRY_SOURCE_NAME = "main.swift"


@dataclass
class WorkloadBuild:
    """Generation and compilation results for one kind of unit."""

    kind: UnitKind
    root: Path
    generation: GenerationResult
    compilation: CompileResult = field(default_factory=CompileResult)

    @property
    def sources_dir(self) -> Path:
        """Directory holding the generated sources."""
        return self.root / SOURCES_DIR

    @property
    def objects_dir(self) -> Path:
        """Directory holding the compiled objects."""
        if self.kind is UnitKind.ENTRY:
            return self.root
        return self.root / OBJECTS_DIR

    @property
    def ok(self) -> bool:
        """Return whether every unit was generated and compiled."""
        return self.generation.ok and self.compilation.ok

    def stages(self) -> list[StageResult]:
        """Generation and compile outcomes as report stages."""
        generated = StageResult(
            stage=f"generate {self.kind.value}",
            succeeded=self.generation.succeeded,
            failed=self.generation.failed,
            detail="; ".join(self.generation.errors[:3]) or None,
        )
        return [generated, self.compilation.stage(f"compile {self.kind.value}")]


def build_workload(  # noqa: PLR0913
    spec: WorkloadSpec,
    kind: UnitKind,
    root: Path,
    toolchain: Toolchain,
    *,
    template_path: Path | None = None,
    jobs: int = 1,
) -> WorkloadBuild:
    """Render ``spec.unit_count`` units under ``root/sources`` and compile them.

    Raises GenerationError before any compile if the template is unusable.
    """
    template = load_template(kind, template_path, spec.unit_size_bytes)
    generation = generate_units(spec, kind, template, root / SOURCES_DIR)
    compilation = compile_units(generation.units, toolchain, root / OBJECTS_DIR, jobs=jobs)
    return WorkloadBuild(kind=kind, root=root, generation=generation, compilation=compilation)


def build_entry(
    root: Path,
    toolchain: Toolchain,
    *,
    source: Path | None = None,
    template_path: Path | None = None,
) -> WorkloadBuild:
    """Compile the entry unit into ``root/main.o``.

    An explicit ``source`` must exist. Without one, the entry source is
    rendered from ``template_path`` or the built-in stub.
    """
    if source is not None:
        if not source.is_file():
            raise PreconditionError(source, "Entry source file")
        unit = ObjectUnit(id=0, kind=UnitKind.ENTRY, source_path=source)
    else:
        template = load_template(UnitKind.ENTRY, template_path)
        unit = generate_entry(template, root / ENTRY_SOURCE_NAME)

    generation = GenerationResult(kind=UnitKind.ENTRY, units=[unit])
    compilation = compile_units([unit], toolchain, root)
    for compiled in compilation.compiled:
        logger.info("Entry object: %s", compiled.artifact_path)
    return WorkloadBuild(
        kind=UnitKind.ENTRY,
        root=root,
        generation=generation,
        compilation=compilation,
    )
