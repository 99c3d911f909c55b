# Copyright (c) Syntropy Systems
"""Pydantic models for the generated workload and the link input set."""

from __future__ import annotations

import hashlib
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from typing_extensions import Self

from linkprobe.digest import hash_file

from .base import FrozenModel

INDEX_FIELD = "{index}"


class UnitKind(str, Enum):
    """Role of a unit in the link line."""

    LOGIC = "logic"
    PADDING = "padding"
    ENTRY = "entry"


class WorkloadSpec(FrozenModel):
    """Parameters for one generated corpus of units."""

    unit_count: int = Field(ge=1)
    unit_size_bytes: int = Field(default=0, ge=0)
    naming_template: str
    target_triple: str
    sdk_path: Optional[Path] = None

    @field_validator("naming_template")
    @classmethod
    def _check_naming_template(cls, value: str) -> str:
        if INDEX_FIELD not in value:
            msg = f"naming_template must contain {INDEX_FIELD}: {value!r}"
            raise ValueError(msg)
        return value

    @property
    def index_width(self) -> int:
        """Digits used for zero-padded indices (at least 5)."""
        return max(5, len(str(self.unit_count - 1)))


class ObjectUnit(FrozenModel):
    """One source unit and, once compiled, its relocatable object."""

    id: int
    kind: UnitKind
    source_path: Path
    artifact_path: Optional[Path] = None
    compiled: bool = False

    def with_artifact(self, artifact_path: Path) -> ObjectUnit:
        """Return the compiled copy of this unit."""
        if self.compiled:
            msg = f"Unit {self.source_path} is already compiled"
            raise RuntimeError(msg)
        return self.model_copy(
            update={"artifact_path": artifact_path, "compiled": True},
        )


class LinkInputSet(FrozenModel):
    """Ordered link inputs: logic objects, then padding objects, then entry."""

    logic: tuple[Path, ...] = ()
    padding: tuple[Path, ...] = ()
    entry: Path

    @model_validator(mode="after")
    def _check_entry_is_unique(self) -> Self:
        if self.entry in self.logic or self.entry in self.padding:
            msg = f"Entry object must not also be a logic or padding input: {self.entry}"
            raise ValueError(msg)
        return self

    def ordered(self) -> list[Path]:
        """Flat link order with the entry object last."""
        return [*self.logic, *self.padding, self.entry]

    def __len__(self) -> int:
        return len(self.logic) + len(self.padding) + 1

    def fingerprint(self) -> str:
        """Digest of every input's path, size and content, in link order."""
        h = hashlib.sha256()
        for path in self.ordered():
            h.update(str(path).encode("utf-8"))
            h.update(b"\0")
            h.update(str(path.stat().st_size).encode("ascii"))
            h.update(b"\0")
            h.update(hash_file(path).encode("ascii"))
            h.update(b"\n")
        return h.hexdigest()
