# Copyright (c) Syntropy Systems
"""Compiler and linker capability, and its binding to the xcrun toolchain."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from linkprobe.errors import ToolchainError
from linkprobe.models.workload import UnitKind
from linkprobe.runner import capture_output, run_tool

if TYPE_CHECKING:
    from linkprobe.models.workload import LinkInputSet, ObjectUnit

logger = logging.getLogger(__name__)

DEFAULT_TARGET = "arm64-apple-macos15.0"

# Target OS -> (SDK name for xcrun, platform name for ld -platform_version)
_PLATFORMS = {
    "ios": ("iphoneos", "ios"),
    "macos": ("macosx", "macos"),
    "macosx": ("macosx", "macos"),
    "tvos": ("appletvos", "tvos"),
    "watchos": ("watchos", "watchos"),
    "xros": ("xros", "xros"),
}


class LinkStrategy(str, Enum):
    """Which toolchain layer runs the link (and inserts branch islands)."""

    DRIVER = "driver"  # clang invokes ld
    DIRECT = "direct"  # ld invoked directly


@dataclass(frozen=True)
class TargetTriple:
    """Parsed ``arch-vendor-osVERSION`` target triple."""

    arch: str
    vendor: str
    os: str
    version: str

    @classmethod
    def parse(cls, triple: str) -> TargetTriple:
        """Parse a triple such as ``arm64-apple-ios15.0``."""
        parts = triple.split("-")
        if len(parts) < 3:  # noqa: PLR2004
            msg = f"Target triple must look like arch-vendor-os: {triple!r}"
            raise ValueError(msg)
        arch, vendor, os_part = parts[0], parts[1], parts[2]
        os_name = os_part.rstrip("0123456789.")
        version = os_part[len(os_name):] or "0.0"
        if not os_name:
            msg = f"Target triple has no OS component: {triple!r}"
            raise ValueError(msg)
        return cls(arch=arch, vendor=vendor, os=os_name, version=version)

    @property
    def sdk_name(self) -> str:
        """SDK name understood by ``xcrun --sdk``."""
        return _PLATFORMS.get(self.os, (self.os, self.os))[0]

    @property
    def platform(self) -> str:
        """Platform name understood by ``ld -platform_version``."""
        return _PLATFORMS.get(self.os, (self.os, self.os))[1]


@dataclass(frozen=True)
class LinkOutputs:
    """Paths a single link writes: binary, link map and trace log."""

    binary: Path
    map: Path
    trace: Path

    @classmethod
    def in_dir(cls, output_dir: Path, name: str) -> LinkOutputs:
        """Standard layout: ``<name>``, ``<name>.map``, ``<name>.trace``."""
        return cls(
            binary=output_dir / name,
            map=output_dir / f"{name}.map",
            trace=output_dir / f"{name}.trace",
        )

    def produced(self) -> bool:
        """Return whether both the binary and the map exist."""
        return self.binary.is_file() and self.map.is_file()


@dataclass
class CompileOutcome:
    """Result of compiling one unit."""

    unit: ObjectUnit
    exit_code: int
    log_path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """Return whether the unit now has an object artifact."""
        return self.exit_code == 0 and self.unit.compiled


@dataclass
class LinkOutcome:
    """Result of one link invocation."""

    outputs: LinkOutputs
    exit_code: int
    command: list[str]
    duration_seconds: float = 0.0


class Toolchain(Protocol):
    """What the harness needs from a compiler and linker."""

    def compile(self, unit: ObjectUnit, objects_dir: Path) -> CompileOutcome:
        """Compile one unit into ``objects_dir``."""
        ...

    def link(
        self,
        input_set: LinkInputSet,
        outputs: LinkOutputs,
        strategy: LinkStrategy,
    ) -> LinkOutcome:
        """Link the ordered input set once, writing binary, map and trace."""
        ...


def default_sdk_path(target: str, xcrun: str = "xcrun") -> Path | None:
    """Ask xcrun for the SDK matching a target triple, or None."""
    try:
        sdk_name = TargetTriple.parse(target).sdk_name
    except ValueError:
        return None
    out = capture_output([xcrun, "--sdk", sdk_name, "--show-sdk-path"])
    return Path(out) if out else None


def object_path_for(unit: ObjectUnit, objects_dir: Path) -> Path:
    """Object file a unit compiles to."""
    return objects_dir / f"{unit.source_path.stem}.o"


class XcrunToolchain:
    """Toolchain binding that shells out through ``xcrun``.

    Logic and entry units are Swift sources compiled with ``swiftc``; padding
    units are assembly assembled with ``clang``. Links go through ``clang``
    (driver strategy) or straight to ``ld`` (direct strategy).
    """

    target: TargetTriple
    target_triple: str
    sdk_path: Path
    xcrun: str
    _swift_lib_path: Path | None

    def __init__(self, target_triple: str, sdk_path: Path, xcrun: str = "xcrun") -> None:
        self.target_triple = target_triple
        self.target = TargetTriple.parse(target_triple)
        self.sdk_path = sdk_path
        self.xcrun = xcrun
        self._swift_lib_path = None

    @property
    def swift_lib_path(self) -> Path:
        """Swift runtime library directory for the target platform."""
        if self._swift_lib_path is None:
            swift = capture_output([self.xcrun, "--find", "swift"])
            if not swift:
                msg = f"Cannot locate swift with {self.xcrun} --find swift"
                raise ToolchainError(msg)
            toolchain_root = Path(swift).parent.parent
            self._swift_lib_path = toolchain_root / "lib" / "swift" / self.target.sdk_name
        return self._swift_lib_path

    def preflight(self) -> None:
        """Fail early if the SDK or Swift runtime cannot be found."""
        if not self.sdk_path.is_dir():
            msg = f"SDK path does not exist: {self.sdk_path}"
            raise ToolchainError(msg)
        _ = self.swift_lib_path

    def compile_command(self, unit: ObjectUnit, object_path: Path) -> list[str]:
        """Build the compile argv for a unit."""
        if unit.kind is UnitKind.PADDING:
            return [
                self.xcrun, "clang", "-c",
                str(unit.source_path),
                "-o", str(object_path),
                "-arch", self.target.arch,
                "-isysroot", str(self.sdk_path),
                "-target", self.target_triple,
            ]
        return [
            self.xcrun, "swiftc", "-c",
            str(unit.source_path),
            "-o", str(object_path),
            "-sdk", str(self.sdk_path),
            "-target", self.target_triple,
            "-parse-as-library",
            "-whole-module-optimization",
        ]

    def compile(self, unit: ObjectUnit, objects_dir: Path) -> CompileOutcome:
        """Compile one unit; the log lands in ``objects_dir/logs``."""
        object_path = object_path_for(unit, objects_dir)
        log_path = objects_dir / "logs" / f"{unit.source_path.stem}.log"
        exit_code = run_tool(self.compile_command(unit, object_path), log_path)

        if exit_code == 0 and object_path.is_file():
            return CompileOutcome(
                unit=unit.with_artifact(object_path),
                exit_code=0,
                log_path=log_path,
            )
        if exit_code == 0:
            exit_code = 1
            error = f"compiler exited 0 but did not write {object_path}"
        else:
            error = f"compiler exited {exit_code}, see {log_path}"
        return CompileOutcome(unit=unit, exit_code=exit_code, log_path=log_path, error=error)

    def link_command(
        self,
        input_set: LinkInputSet,
        outputs: LinkOutputs,
        strategy: LinkStrategy,
    ) -> list[str]:
        """Build the link argv; inputs are passed in the input set's order."""
        objects = [str(p) for p in input_set.ordered()]
        lib = str(self.swift_lib_path)

        if strategy is LinkStrategy.DIRECT:
            return [
                self.xcrun, "ld",
                *objects,
                "-o", str(outputs.binary),
                "-arch", self.target.arch,
                "-syslibroot", str(self.sdk_path),
                "-platform_version", self.target.platform,
                self.target.version, self.target.version,
                f"-L{lib}",
                "-rpath", lib,
                "-map", str(outputs.map),
                "-t",
                "-no_uuid",
                "-no_adhoc_codesign",
                "-framework", "Foundation",
                "-lSystem",
            ]
        return [
            self.xcrun, "clang",
            *objects,
            "-o", str(outputs.binary),
            "-arch", self.target.arch,
            "-isysroot", str(self.sdk_path),
            "-target", self.target_triple,
            f"-L{lib}",
            f"-Wl,-rpath,{lib}",
            f"-Wl,-map,{outputs.map}",
            "-Wl,-t",
            "-Wl,-no_uuid",
            "-Wl,-no_adhoc_codesign",
            "-framework", "Foundation",
        ]

    def link(
        self,
        input_set: LinkInputSet,
        outputs: LinkOutputs,
        strategy: LinkStrategy,
    ) -> LinkOutcome:
        """Run one link; stdout and stderr go to the trace file."""
        argv = self.link_command(input_set, outputs, strategy)
        start = time.monotonic()
        exit_code = run_tool(argv, outputs.trace)
        duration = time.monotonic() - start
        logger.debug("Link exited %d after %.1fs", exit_code, duration)
        return LinkOutcome(
            outputs=outputs,
            exit_code=exit_code,
            command=argv,
            duration_seconds=duration,
        )

    def identity(self) -> dict[str, str]:
        """Versions of the tools in use, for the report."""
        ident: dict[str, str] = {"target": self.target_triple, "sdk": str(self.sdk_path)}
        for tool in ("clang", "swiftc"):
            out = capture_output([self.xcrun, tool, "--version"])
            ident[tool] = out.splitlines()[0] if out else "unknown"
        ld_path = capture_output([self.xcrun, "--find", "ld"])
        ident["ld"] = ld_path or "unknown"
        return ident
