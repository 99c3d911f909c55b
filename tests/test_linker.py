# Copyright (c) Syntropy Systems
"""Tests for link input assembly and the xcrun binding."""

from pathlib import Path

import pytest
from conftest import FakeToolchain
from pydantic import ValidationError

from linkprobe.errors import PreconditionError
from linkprobe.linker import build_input_set, collect_objects, link_once
from linkprobe.models.workload import LinkInputSet, ObjectUnit, UnitKind
from linkprobe.toolchain import LinkOutputs, LinkStrategy, TargetTriple, XcrunToolchain


class TestCollectObjects:
    """Tests for object listing."""

    def test_sorted_by_name(self, temp_dir: Path) -> None:
        """Test that objects are listed in sorted order."""
        for name in ("b.o", "a.o", "c.o", "notes.txt"):
            _ = (temp_dir / name).write_bytes(b"x")

        assert [p.name for p in collect_objects(temp_dir)] == ["a.o", "b.o", "c.o"]

    def test_limit(self, temp_dir: Path) -> None:
        """Test capping to the first N objects."""
        for i in range(5):
            _ = (temp_dir / f"SwiftFile_{i:05d}.o").write_bytes(b"x")

        limited = collect_objects(temp_dir, 2)
        assert [p.name for p in limited] == ["SwiftFile_00000.o", "SwiftFile_00001.o"]
        assert len(collect_objects(temp_dir, 0)) == 5
        assert len(collect_objects(temp_dir, 99)) == 5


class TestBuildInputSet:
    """Tests for precondition checks and ordering."""

    def test_order_entry_last(self, corpus: tuple[Path, Path, Path]) -> None:
        """Test logic, then padding, then entry."""
        logic_dir, padding_dir, entry = corpus
        input_set = build_input_set(logic_dir, padding_dir, entry)

        names = [p.name for p in input_set.ordered()]
        assert names == [
            "SwiftFile_00000.o",
            "SwiftFile_00001.o",
            "SwiftFile_00002.o",
            "Padding_00000.o",
            "Padding_00001.o",
            "main.o",
        ]
        assert len(input_set) == 6

    def test_max_logic(self, corpus: tuple[Path, Path, Path]) -> None:
        """Test threshold-finding limits."""
        logic_dir, padding_dir, entry = corpus
        input_set = build_input_set(logic_dir, padding_dir, entry, max_logic=1, max_padding=1)

        assert len(input_set.logic) == 1
        assert len(input_set.padding) == 1

    def test_missing_logic_dir(self, corpus: tuple[Path, Path, Path], temp_dir: Path) -> None:
        """Test that a missing directory is named in the error."""
        _, padding_dir, entry = corpus
        missing = temp_dir / "nope"

        with pytest.raises(PreconditionError) as exc_info:
            _ = build_input_set(missing, padding_dir, entry)

        assert exc_info.value.path == missing
        assert "Logic object directory does not exist" in str(exc_info.value)

    def test_missing_entry(self, corpus: tuple[Path, Path, Path], temp_dir: Path) -> None:
        """Test that the entry object must exist."""
        logic_dir, padding_dir, _ = corpus

        with pytest.raises(PreconditionError, match="Entry object file"):
            _ = build_input_set(logic_dir, padding_dir, temp_dir / "main.o")

    def test_no_objects(self, temp_dir: Path) -> None:
        """Test that empty directories are a precondition failure."""
        (temp_dir / "logic").mkdir()
        (temp_dir / "padding").mkdir()
        entry = temp_dir / "main.o"
        _ = entry.write_bytes(b"entry")

        with pytest.raises(PreconditionError, match="Object files to link not found"):
            _ = build_input_set(temp_dir / "logic", temp_dir / "padding", entry)

    def test_entry_cannot_be_logic(self, temp_dir: Path) -> None:
        """Test that the entry unit is never also a logic input."""
        obj = temp_dir / "a.o"
        with pytest.raises(ValidationError):
            _ = LinkInputSet(logic=(obj,), entry=obj)

    def test_fingerprint_tracks_content(self, input_set: LinkInputSet) -> None:
        """Test that changing an input changes the fingerprint."""
        before = input_set.fingerprint()
        assert input_set.fingerprint() == before

        _ = input_set.logic[0].write_bytes(b"changed")
        assert input_set.fingerprint() != before


class TestLinkOnce:
    """Tests for a single link."""

    def test_links_once_in_given_order(self, input_set: LinkInputSet, temp_dir: Path) -> None:
        """Test that the toolchain sees the caller's order exactly once."""
        toolchain = FakeToolchain()
        outcome = link_once(input_set, toolchain, temp_dir / "out", "test_binary")

        assert toolchain.link_calls == 1
        assert toolchain.link_orders[0] == input_set.ordered()
        assert outcome.exit_code == 0
        assert outcome.outputs.binary == temp_dir / "out" / "test_binary"
        assert outcome.outputs.map.name == "test_binary.map"
        assert outcome.outputs.trace.name == "test_binary.trace"
        assert outcome.outputs.produced()

    def test_strategy_passed_through(self, input_set: LinkInputSet, temp_dir: Path) -> None:
        """Test that the direct strategy reaches the toolchain."""
        toolchain = FakeToolchain()
        _ = link_once(input_set, toolchain, temp_dir / "out", strategy=LinkStrategy.DIRECT)

        assert toolchain.strategies == [LinkStrategy.DIRECT]


class TestTargetTriple:
    """Tests for target triple parsing."""

    def test_parse_ios(self) -> None:
        """Test an iOS triple."""
        triple = TargetTriple.parse("arm64-apple-ios15.0")

        assert triple.arch == "arm64"
        assert triple.os == "ios"
        assert triple.version == "15.0"
        assert triple.sdk_name == "iphoneos"

    def test_parse_macos(self) -> None:
        """Test a macOS triple."""
        triple = TargetTriple.parse("arm64-apple-macos15.0")

        assert triple.sdk_name == "macosx"
        assert triple.platform == "macos"

    def test_parse_invalid(self) -> None:
        """Test that a malformed triple is rejected."""
        with pytest.raises(ValueError, match="arch-vendor-os"):
            _ = TargetTriple.parse("arm64")


class TestXcrunCommands:
    """Tests for the argv the xcrun binding builds."""

    @pytest.fixture
    def toolchain(self, monkeypatch: pytest.MonkeyPatch, temp_dir: Path) -> XcrunToolchain:
        monkeypatch.setattr(
            "linkprobe.toolchain.capture_output",
            lambda argv, **_: "/tc/usr/bin/swift",
        )
        return XcrunToolchain("arm64-apple-macos15.0", temp_dir / "sdk")

    def test_driver_link(self, toolchain: XcrunToolchain, input_set: LinkInputSet) -> None:
        """Test the clang driver link line."""
        outputs = LinkOutputs.in_dir(Path("/out"), "test_binary")
        argv = toolchain.link_command(input_set, outputs, LinkStrategy.DRIVER)

        assert argv[:2] == ["xcrun", "clang"]
        objects = [a for a in argv if a.endswith(".o")]
        assert objects == [str(p) for p in input_set.ordered()]
        assert "-Wl,-map,/out/test_binary.map" in argv
        assert "-Wl,-no_uuid" in argv
        assert "-Wl,-no_adhoc_codesign" in argv
        assert "-L/tc/usr/lib/swift/macosx" in argv

    def test_direct_link(self, toolchain: XcrunToolchain, input_set: LinkInputSet) -> None:
        """Test the direct ld link line."""
        outputs = LinkOutputs.in_dir(Path("/out"), "test_binary")
        argv = toolchain.link_command(input_set, outputs, LinkStrategy.DIRECT)

        assert argv[:2] == ["xcrun", "ld"]
        assert argv[argv.index("-map") + 1] == "/out/test_binary.map"
        assert "-t" in argv
        assert "-no_uuid" in argv
        platform = argv.index("-platform_version")
        assert argv[platform + 1 : platform + 4] == ["macos", "15.0", "15.0"]

    def test_compile_commands(self, toolchain: XcrunToolchain) -> None:
        """Test that padding is assembled by clang and logic by swiftc."""
        padding = ObjectUnit(id=0, kind=UnitKind.PADDING, source_path=Path("Padding_00000.s"))
        logic = ObjectUnit(id=0, kind=UnitKind.LOGIC, source_path=Path("SwiftFile_00000.swift"))

        pad_argv = toolchain.compile_command(padding, Path("Padding_00000.o"))
        logic_argv = toolchain.compile_command(logic, Path("SwiftFile_00000.o"))

        assert pad_argv[1:3] == ["clang", "-c"]
        assert logic_argv[1:3] == ["swiftc", "-c"]
        assert "-parse-as-library" in logic_argv
