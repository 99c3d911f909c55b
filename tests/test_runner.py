# Copyright (c) Syntropy Systems
"""Tests for running external tools."""

from __future__ import annotations

import stat
import sys
import time
from pathlib import Path

import pytest

from linkprobe.models.workload import ObjectUnit, UnitKind
from linkprobe.runner import ToolProcess, capture_output, run_tool
from linkprobe.toolchain import XcrunToolchain

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")

FAKE_XCRUN = """\
#!/bin/sh
# Writes whatever follows -o, like a compiler would
out=""
prev=""
for arg in "$@"; do
    if [ "$prev" = "-o" ]; then out="$arg"; fi
    prev="$arg"
done
echo "fake $1 $*"
if [ -n "$out" ] && [ -z "$SKIP_OUTPUT" ]; then printf 'obj' > "$out"; fi
exit 0
"""


def write_script(path: Path, text: str) -> Path:
    _ = path.write_text(text)
    path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


class TestRunTool:
    """Tests for run_tool and ToolProcess."""

    def test_captures_stdout(self, temp_dir: Path) -> None:
        """Test that stdout lands in the log file."""
        log_path = temp_dir / "logs" / "out.log"
        exit_code = run_tool([sys.executable, "-c", "print('hello from tool')"], log_path)

        assert exit_code == 0
        assert "hello from tool" in log_path.read_text()

    def test_captures_stderr(self, temp_dir: Path) -> None:
        """Test that stderr is merged into the same log."""
        log_path = temp_dir / "err.log"
        _ = run_tool(
            [sys.executable, "-c", "import sys; sys.stderr.write('error output\\n')"],
            log_path,
        )

        assert "error output" in log_path.read_text()

    def test_nonzero_exit_code(self, temp_dir: Path) -> None:
        """Test that non-zero exit codes are returned."""
        exit_code = run_tool([sys.executable, "-c", "import sys; sys.exit(42)"], temp_dir / "x.log")

        assert exit_code == 42

    def test_runs_in_workdir(self, temp_dir: Path) -> None:
        """Test that the command runs in the given directory."""
        workdir = temp_dir / "work"
        workdir.mkdir()
        log_path = temp_dir / "cwd.log"

        _ = run_tool([sys.executable, "-c", "import os; print(os.getcwd())"], log_path, workdir)

        assert Path(log_path.read_text().strip()).resolve() == workdir.resolve()

    def test_missing_tool(self, temp_dir: Path) -> None:
        """Test that a tool that cannot start reports 127 instead of raising."""
        log_path = temp_dir / "missing.log"
        exit_code = run_tool([str(temp_dir / "no-such-tool")], log_path)

        assert exit_code == 127
        assert "failed to start" in log_path.read_text()

    def test_kill_terminates(self, temp_dir: Path) -> None:
        """Test that kill stops a long-running tool."""
        process = ToolProcess(
            [sys.executable, "-c", "import time; time.sleep(60)"],
            temp_dir / "sleep.log",
        )
        process.start()
        time.sleep(0.3)

        exit_code = process.kill(grace_period=1.0)

        assert exit_code != 0
        assert process.exit_code == exit_code


class TestCaptureOutput:
    """Tests for short query commands."""

    def test_returns_stripped_stdout(self) -> None:
        """Test that stdout is returned without trailing newline."""
        assert capture_output([sys.executable, "-c", "print('  /sdk  ')"]) == "/sdk"

    def test_failure_returns_none(self) -> None:
        """Test that a failing command gives None."""
        assert capture_output([sys.executable, "-c", "import sys; sys.exit(1)"]) is None

    def test_missing_command_returns_none(self, temp_dir: Path) -> None:
        """Test that a missing command gives None."""
        assert capture_output([str(temp_dir / "nope")]) is None


class TestXcrunCompile:
    """Tests for XcrunToolchain.compile against a stand-in xcrun."""

    def test_compile_writes_object(self, temp_dir: Path) -> None:
        """Test a successful compile and its log."""
        xcrun = write_script(temp_dir / "xcrun", FAKE_XCRUN)
        toolchain = XcrunToolchain("arm64-apple-macos15.0", temp_dir, str(xcrun))
        source = temp_dir / "SwiftFile_00000.swift"
        _ = source.write_text("let x = 0\n")
        unit = ObjectUnit(id=0, kind=UnitKind.LOGIC, source_path=source)

        outcome = toolchain.compile(unit, temp_dir / "objects")

        assert outcome.ok
        assert outcome.unit.artifact_path == temp_dir / "objects" / "SwiftFile_00000.o"
        assert outcome.log_path is not None
        assert "fake swiftc" in outcome.log_path.read_text()

    def test_exit_zero_without_object(
        self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that a compiler that writes nothing has failed."""
        monkeypatch.setenv("SKIP_OUTPUT", "1")
        xcrun = write_script(temp_dir / "xcrun", FAKE_XCRUN)
        toolchain = XcrunToolchain("arm64-apple-macos15.0", temp_dir, str(xcrun))
        source = temp_dir / "Padding_00000.s"
        _ = source.write_text(".space 0x10\n")
        unit = ObjectUnit(id=0, kind=UnitKind.PADDING, source_path=source)

        outcome = toolchain.compile(unit, temp_dir / "objects")

        assert not outcome.ok
        assert outcome.exit_code == 1
        assert outcome.error is not None
        assert "did not write" in outcome.error
