# Copyright (c) Syntropy Systems
"""External tool runner with orphan prevention."""
from __future__ import annotations

import contextlib
import ctypes
import logging
import os
import shlex
import signal
import subprocess
import sys
import time
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def setup_pdeathsig() -> None:
    """Set PDEATHSIG so child dies when parent dies.

    This prevents orphan compilers and linkers when linkprobe is killed.
    Only works on Linux.
    """
    if sys.platform != "linux":
        return
    try:
        libc = ctypes.CDLL("libc.so.6", use_errno=True)
        pr_set_pdeathsig = 1
        libc.prctl(pr_set_pdeathsig, signal.SIGKILL)
    except (AttributeError, OSError):
        # Can't set PDEATHSIG, continue without it
        return


class ToolProcess:
    """Runs one toolchain command with its output captured to a log file.

    Features:
    - Uses start_new_session=True for reliable process group
    - Sets PDEATHSIG on Linux to prevent orphans
    - Captures stdout/stderr to a single log file
    - Kills the whole process group if interrupted while waiting
    """

    argv: list[str]
    log_path: Path
    workdir: Path | None
    env: dict[str, str]
    _process: subprocess.Popen[bytes] | None
    _exit_code: int | None
    _log_file: IO[str] | None

    def __init__(
        self,
        argv: list[str],
        log_path: Path,
        workdir: Path | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize a tool process.

        Args:
            argv: Command as list of argv tokens (no shell)
            log_path: File receiving combined stdout and stderr
            workdir: Working directory to run the command in
            env: Additional environment variables

        """
        self.argv = argv
        self.log_path = log_path
        self.workdir = workdir

        # Merge environment
        self.env = os.environ.copy()
        if env:
            self.env.update(env)

        self._process = None
        self._exit_code = None
        self._log_file = None

    def start(self) -> None:
        """Start the process."""
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        self._log_file = self.log_path.open("w")

        logger.debug("+ %s", shlex.join(self.argv))
        try:
            self._process = subprocess.Popen(  # noqa: S603
                self.argv,
                stdout=self._log_file,
                stderr=subprocess.STDOUT,
                env=self.env,
                cwd=str(self.workdir) if self.workdir else None,
                start_new_session=True,  # Creates new process group
                preexec_fn=setup_pdeathsig if sys.platform == "linux" else None,  # noqa: PLW1509
            )
        except OSError as e:
            # Tool missing or not executable: report like a failed run
            _ = self._log_file.write(f"failed to start {self.argv[0]}: {e}\n")
            self._exit_code = 127
            self._cleanup()

    def wait(self) -> int:
        """Wait for the process to finish and return exit code."""
        if self._process is None:
            return self._exit_code if self._exit_code is not None else 0

        try:
            code = self._process.wait()
        except KeyboardInterrupt:
            _ = self.kill()
            raise
        self._exit_code = code
        self._cleanup()
        return code

    def run(self) -> int:
        """Start the process and wait for it."""
        self.start()
        return self.wait()

    def kill(self, grace_period: float = 5.0) -> int:
        """Kill the process group.

        First sends SIGTERM, waits for grace_period, then sends SIGKILL if
        still alive.

        Args:
            grace_period: Seconds to wait after SIGTERM before SIGKILL

        Returns:
            Exit code (negative signal number if killed)

        """
        if self._process is None:
            return self._exit_code or 0

        if self._process.poll() is not None:
            exit_code = self._process.returncode or 0
            self._exit_code = exit_code
            self._cleanup()
            return exit_code

        try:
            pgid = os.getpgid(self._process.pid)
        except (OSError, ProcessLookupError):
            self._cleanup()
            return self._exit_code or -signal.SIGKILL

        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGTERM)

        deadline = time.time() + grace_period
        while time.time() < deadline:
            if self._process.poll() is not None:
                exit_code = self._process.returncode or 0
                self._exit_code = exit_code
                self._cleanup()
                return exit_code
            time.sleep(0.1)

        with contextlib.suppress(OSError, ProcessLookupError):
            os.killpg(pgid, signal.SIGKILL)

        with contextlib.suppress(subprocess.TimeoutExpired):
            _ = self._process.wait(timeout=5.0)

        exit_code = self._process.returncode or -signal.SIGKILL
        self._exit_code = exit_code
        self._cleanup()
        return exit_code

    def _cleanup(self) -> None:
        """Cleanup resources."""
        if self._log_file:
            with contextlib.suppress(OSError):
                self._log_file.close()
            self._log_file = None

    @property
    def exit_code(self) -> int | None:
        """Get the exit code if finished."""
        return self._exit_code


def run_tool(
    argv: list[str],
    log_path: Path,
    workdir: Path | None = None,
) -> int:
    """Run a command to completion, logging its output, and return the exit code."""
    return ToolProcess(argv, log_path, workdir=workdir).run()


def capture_output(argv: list[str], *, timeout: float = 10) -> str | None:
    """Run a short query command and return its stripped stdout.

    Returns None if the command cannot run or exits non-zero.
    """
    try:
        result = subprocess.run(  # noqa: S603
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip()
