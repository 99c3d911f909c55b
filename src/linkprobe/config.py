# Copyright (c) Syntropy Systems
"""Configuration management for linkprobe."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import cast

import yaml

from linkprobe.detector import DEFAULT_RULES, CanonicalRule
from linkprobe.toolchain import DEFAULT_TARGET

logger = logging.getLogger(__name__)

CONFIG_DIR_NAME = ".linkprobe"
CONFIG_FILE_NAME = "config.yaml"

# 64 MiB per padding unit; two of them push a binary past arm64's 128 MiB branch range
DEFAULT_PADDING_SIZE = 64 * 1024 * 1024


@dataclass
class ProbeConfig:
    """Configuration for linkprobe."""

    # Target triple passed to compiler and linker
    target: str = DEFAULT_TARGET

    # SDK root; None means ask xcrun
    sdk_path: Path | None = None

    # xcrun executable
    xcrun: str = "xcrun"

    # Link runs per experiment
    runs: int = 10

    # Parallel compile workers
    jobs: int = 1

    # Output binary name inside each run directory
    output_name: str = "test_binary"

    # Workload shape
    logic_units: int = 512
    padding_units: int = 2
    padding_size: int = DEFAULT_PADDING_SIZE

    # Canonicalization rules added to the built-in ones
    extra_rules: list[CanonicalRule] = field(default_factory=list)

    @property
    def rules(self) -> tuple[CanonicalRule, ...]:
        """Built-in canonicalization rules followed by configured ones."""
        return (*DEFAULT_RULES, *self.extra_rules)

    def to_dict(self) -> dict[str, object]:
        """Plain mapping suitable for writing back to YAML."""
        return {
            "target": self.target,
            "sdk_path": str(self.sdk_path) if self.sdk_path else None,
            "xcrun": self.xcrun,
            "runs": self.runs,
            "jobs": self.jobs,
            "output_name": self.output_name,
            "logic_units": self.logic_units,
            "padding_units": self.padding_units,
            "padding_size": self.padding_size,
            "extra_rules": [
                {"name": r.name, "pattern": r.pattern, "description": r.description}
                for r in self.extra_rules
            ],
        }


def find_config_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .linkprobe directory by walking up from start_path.

    Returns None if no .linkprobe directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        config_dir = current / CONFIG_DIR_NAME
        if config_dir.is_dir():
            return config_dir
        current = current.parent

    # Check root
    config_dir = current / CONFIG_DIR_NAME
    if config_dir.is_dir():
        return config_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global linkprobe config directory (~/.linkprobe)."""
    return Path.home() / CONFIG_DIR_NAME


def _parse_rules(raw: object) -> list[CanonicalRule]:
    """Parse ``extra_rules`` entries, skipping malformed ones."""
    rules: list[CanonicalRule] = []
    if not isinstance(raw, list):
        return rules
    for entry in cast("list[object]", raw):
        if not isinstance(entry, dict):
            logger.warning("Ignoring canonicalization rule that is not a mapping: %r", entry)
            continue
        item = cast("dict[str, object]", entry)
        name = item.get("name")
        pattern = item.get("pattern")
        if not isinstance(name, str) or not isinstance(pattern, str):
            logger.warning("Ignoring canonicalization rule without name and pattern: %r", item)
            continue
        description = item.get("description")
        try:
            rule = CanonicalRule(
                name=name,
                pattern=pattern,
                description=description if isinstance(description, str) else "",
            )
        except ValueError as e:
            logger.warning("Ignoring canonicalization rule: %s", e)
            continue
        rules.append(rule)
    return rules


def load_config(config_dir: Path | None = None) -> ProbeConfig:
    """Load configuration from .linkprobe/config.yaml or defaults.

    Looks for config in:
    1. Provided config_dir
    2. Nearest .linkprobe directory walking up
    3. ~/.linkprobe/config.yaml
    4. Defaults
    """
    config = ProbeConfig()

    config_path = None

    if config_dir is not None:
        config_path = config_dir / CONFIG_FILE_NAME
    else:
        found_dir = find_config_dir()
        if found_dir is not None:
            config_path = found_dir / CONFIG_FILE_NAME
        else:
            global_config = get_global_config_dir() / CONFIG_FILE_NAME
            if global_config.exists():
                config_path = global_config

    if config_path is None or not config_path.exists():
        return config

    with config_path.open() as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        logger.warning("Ignoring %s: top level is not a mapping", config_path)
        return config
    data = cast("dict[str, object]", raw)

    for key in ("target", "xcrun", "output_name"):
        value = data.get(key)
        if isinstance(value, str) and value:
            setattr(config, key, value)

    for key in ("runs", "jobs", "logic_units", "padding_units", "padding_size"):
        value = data.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            setattr(config, key, value)

    sdk_path = data.get("sdk_path")
    if isinstance(sdk_path, str) and sdk_path:
        config.sdk_path = Path(sdk_path).expanduser()

    config.extra_rules = _parse_rules(data.get("extra_rules"))

    return config
