# Copyright (c) Syntropy Systems
"""Pytest fixtures for linkprobe tests."""

from __future__ import annotations

import tempfile
from collections.abc import Callable, Generator, Iterable
from pathlib import Path

import pytest

from linkprobe.models.workload import LinkInputSet, ObjectUnit
from linkprobe.toolchain import (
    CompileOutcome,
    LinkOutcome,
    LinkOutputs,
    LinkStrategy,
    object_path_for,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class FakeToolchain:
    """In-process stand-in for xcrun.

    Compiling copies the source into the object file. Linking concatenates
    the inputs into the binary and writes a map listing them, headed by a
    ``# Path:`` line that differs per run directory.

    Args:
        fail_units: source stems whose compile fails
        fail_runs: link call numbers (0-based) that write nothing and exit 1
        bad_exit_runs: link call numbers that write both outputs and still exit 1
        flip_runs: link call numbers whose map lists the islands in reverse
        flip_binary: also change the binary on flipped runs
        skip_map: link exits 0 and writes the binary but no map
        on_link: callback invoked with the call number before each link

    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        fail_units: Iterable[str] = (),
        fail_runs: Iterable[int] = (),
        bad_exit_runs: Iterable[int] = (),
        flip_runs: Iterable[int] = (),
        flip_binary: bool = False,
        skip_map: bool = False,
        on_link: Callable[[int], None] | None = None,
    ) -> None:
        self.fail_units = set(fail_units)
        self.fail_runs = set(fail_runs)
        self.bad_exit_runs = set(bad_exit_runs)
        self.flip_runs = set(flip_runs)
        self.flip_binary = flip_binary
        self.skip_map = skip_map
        self.on_link = on_link
        self.compiled: list[str] = []
        self.link_calls = 0
        self.link_orders: list[list[Path]] = []
        self.strategies: list[LinkStrategy] = []

    def compile(self, unit: ObjectUnit, objects_dir: Path) -> CompileOutcome:
        object_path = object_path_for(unit, objects_dir)
        self.compiled.append(unit.source_path.name)
        if unit.source_path.stem in self.fail_units:
            return CompileOutcome(unit=unit, exit_code=1, error="fake compile error")
        objects_dir.mkdir(parents=True, exist_ok=True)
        _ = object_path.write_bytes(b"OBJ\0" + unit.source_path.read_bytes())
        return CompileOutcome(unit=unit.with_artifact(object_path), exit_code=0)

    def link(
        self,
        input_set: LinkInputSet,
        outputs: LinkOutputs,
        strategy: LinkStrategy,
    ) -> LinkOutcome:
        call = self.link_calls
        self.link_calls += 1
        if self.on_link is not None:
            self.on_link(call)

        ordered = input_set.ordered()
        self.link_orders.append(ordered)
        self.strategies.append(strategy)
        _ = outputs.trace.write_text("".join(f"{p}\n" for p in ordered))

        if call in self.fail_runs:
            return LinkOutcome(outputs=outputs, exit_code=1, command=["fake-ld"])

        flipped = call in self.flip_runs
        binary = b"".join(p.read_bytes() for p in ordered)
        if flipped and self.flip_binary:
            binary += b"\x01"
        _ = outputs.binary.write_bytes(binary)

        if not self.skip_map:
            islands = [f"0x{0x1000 * (i + 1):08X}\t__island_{i}\n" for i in range(3)]
            if flipped:
                islands.reverse()
            symbols = [f"0x{0x100 * (i + 1):08X}\t{p.name}\n" for i, p in enumerate(ordered)]
            _ = outputs.map.write_text(
                f"# Path: {outputs.binary}\n# Arch: arm64\n" + "".join(symbols + islands)
            )
        exit_code = 1 if call in self.bad_exit_runs else 0
        return LinkOutcome(outputs=outputs, exit_code=exit_code, command=["fake-ld"])


def make_corpus(root: Path, logic: int = 3, padding: int = 2) -> tuple[Path, Path, Path]:
    """Write a small object corpus laid out like the generate commands do."""
    logic_dir = root / "swift_outputs" / "objects"
    padding_dir = root / "padding_outputs" / "objects"
    entry_dir = root / "main"
    for directory in (logic_dir, padding_dir, entry_dir):
        directory.mkdir(parents=True)
    for i in range(logic):
        _ = (logic_dir / f"SwiftFile_{i:05d}.o").write_bytes(f"logic {i}".encode())
    for i in range(padding):
        _ = (padding_dir / f"Padding_{i:05d}.o").write_bytes(f"padding {i}".encode())
    entry = entry_dir / "main.o"
    _ = entry.write_bytes(b"entry")
    return logic_dir, padding_dir, entry


@pytest.fixture
def corpus(temp_dir: Path) -> tuple[Path, Path, Path]:
    """Logic directory, padding directory and entry object on disk."""
    return make_corpus(temp_dir)


@pytest.fixture
def input_set(corpus: tuple[Path, Path, Path]) -> LinkInputSet:
    """Input set over the corpus fixture."""
    logic_dir, padding_dir, entry = corpus
    return LinkInputSet(
        logic=tuple(sorted(logic_dir.glob("*.o"))),
        padding=tuple(sorted(padding_dir.glob("*.o"))),
        entry=entry,
    )
