# Copyright (c) Syntropy Systems
"""Canonicalize, hash and group link outputs to detect divergence."""
from __future__ import annotations

import re
import shlex
from dataclasses import dataclass
from functools import lru_cache
from typing import TYPE_CHECKING

from linkprobe.digest import hash_bytes, hash_file
from linkprobe.models.report import (
    MISSING,
    Artifact,
    DivergenceReport,
    ExperimentReport,
    HashGroup,
    StageResult,
    Verdict,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from linkprobe.models.run import LinkRun

# Maps can contain bytes outside UTF-8 (symbol names); round-trip them untouched.
_MAP_ENCODING = "utf-8"
_MAP_ERRORS = "surrogateescape"
_MAP_LINE_END = re.compile(r"(?<=\n)")


@dataclass(frozen=True)
class CanonicalRule:
    """One documented kind of volatile map line, removed before hashing."""

    name: str
    pattern: str
    description: str = ""

    def __post_init__(self) -> None:
        try:
            _ = _compile(self.pattern)
        except re.error as e:
            msg = f"Canonicalization rule {self.name!r} has an invalid pattern: {e}"
            raise ValueError(msg) from e

    def matches(self, line: str) -> bool:
        """Return whether ``line`` (without its newline) is volatile."""
        return _compile(self.pattern).search(line) is not None


@lru_cache(maxsize=64)
def _compile(pattern: str) -> re.Pattern[str]:
    return re.compile(pattern)


MAP_PATH_RULE = CanonicalRule(
    name="map-path",
    pattern=r"^# Path:",
    description=(
        "Header line restating the absolute output path; "
        "each run links into its own directory."
    ),
)

DEFAULT_RULES: tuple[CanonicalRule, ...] = (MAP_PATH_RULE,)


def canonicalize_map(text: str, rules: Iterable[CanonicalRule] = DEFAULT_RULES) -> str:
    """Drop whole lines matched by a rule and keep everything else verbatim.

    Only newline characters end a line. Ordering, addresses and sizes are
    never rewritten. Applying this twice gives the same text as applying it
    once.
    """
    active = tuple(rules)
    kept = [
        line
        for line in _MAP_LINE_END.split(text)
        if not any(rule.matches(line.rstrip("\r\n")) for rule in active)
    ]
    return "".join(kept)


def hash_map_text(text: str, rules: Iterable[CanonicalRule] = DEFAULT_RULES) -> str:
    """SHA-256 of a map after canonicalization."""
    canonical = canonicalize_map(text, rules)
    return hash_bytes(canonical.encode(_MAP_ENCODING, _MAP_ERRORS))


def hash_map_file(path: Path, rules: Iterable[CanonicalRule] = DEFAULT_RULES) -> str:
    """SHA-256 of a map file after canonicalization."""
    text = path.read_bytes().decode(_MAP_ENCODING, _MAP_ERRORS)
    return hash_map_text(text, rules)


def hash_binary_file(path: Path) -> str:
    """SHA-256 of a binary exactly as written."""
    return hash_file(path)


def group_by_hash(digests: Sequence[str]) -> list[HashGroup]:
    """Group run indices by digest.

    Groups are ordered by descending size, then by the first run index in
    each group, so the report is stable for a given collection.
    """
    members: dict[str, list[int]] = {}
    for index, digest in enumerate(digests):
        members.setdefault(digest, []).append(index)

    ordered = sorted(members.items(), key=lambda item: (-len(item[1]), item[1][0]))
    return [HashGroup(digest=digest, run_indices=indices) for digest, indices in ordered]


def analyze_digests(digests: Sequence[str], artifact: Artifact) -> DivergenceReport:
    """Build a DivergenceReport from per-run digests (MISSING for failures)."""
    groups = group_by_hash(digests)
    missing_count = sum(1 for d in digests if d == MISSING)
    single = len(groups) == 1
    return DivergenceReport(
        artifact=artifact,
        groups=groups,
        unique_count=len(groups),
        missing_count=missing_count,
        deterministic=single and not groups[0].missing,
        all_missing=single and groups[0].missing,
    )


def run_digest(run: LinkRun, artifact: Artifact) -> str:
    """Digest a run contributes for ``artifact``; failed runs give MISSING."""
    if not run.ok:
        return MISSING
    digest = run.binary_hash if artifact is Artifact.BINARY else run.map_hash
    return digest or MISSING


def analyze(runs: Sequence[LinkRun], artifact: Artifact) -> DivergenceReport:
    """Group a run collection by the digest of one artifact."""
    ordered = sorted(runs, key=lambda r: r.run_index)
    report = analyze_digests([run_digest(r, artifact) for r in ordered], artifact)
    # group_by_hash numbers positions; map them back to run indices
    position_to_index = [r.run_index for r in ordered]
    for group in report.groups:
        group.run_indices = [position_to_index[i] for i in group.run_indices]
    return report


def classify(
    binary: DivergenceReport,
    map_report: DivergenceReport,
    *,
    run_count: int,
    inputs_stable: bool = True,
) -> Verdict:
    """Overall verdict from the two groupings."""
    if run_count == 0 or not inputs_stable:
        return Verdict.SETUP_FAILED
    if binary.all_missing and map_report.all_missing:
        return Verdict.ALL_FAILED
    if binary.deterministic and map_report.deterministic:
        return Verdict.DETERMINISTIC
    return Verdict.DIVERGENT


def build_report(  # noqa: PLR0913
    runs: Sequence[LinkRun],
    *,
    stages: Sequence[StageResult] = (),
    input_count: int = 0,
    input_fingerprint: str | None = None,
    inputs_stable: bool = True,
) -> ExperimentReport:
    """Aggregate stage results and run groupings into one report."""
    ordered = sorted(runs, key=lambda r: r.run_index)
    binary = analyze(ordered, Artifact.BINARY)
    map_report = analyze(ordered, Artifact.MAP)
    return ExperimentReport(
        run_count=len(ordered),
        input_count=input_count,
        input_fingerprint=input_fingerprint,
        inputs_stable=inputs_stable,
        stages=list(stages),
        runs=list(ordered),
        binary=binary,
        map=map_report,
        verdict=classify(
            binary,
            map_report,
            run_count=len(ordered),
            inputs_stable=inputs_stable,
        ),
    )


def diff_hints(report: ExperimentReport) -> list[str]:
    """Shell commands comparing one run from each of the first two groups."""
    by_index = {run.run_index: run for run in report.runs}
    hints: list[str] = []

    map_groups = [g for g in report.map.groups if not g.missing]
    if len(map_groups) >= 2:  # noqa: PLR2004
        a = by_index[map_groups[0].run_indices[0]]
        b = by_index[map_groups[1].run_indices[0]]
        hints.append(f"diff {shlex.quote(str(a.map_path))} {shlex.quote(str(b.map_path))}")

    binary_groups = [g for g in report.binary.groups if not g.missing]
    if len(binary_groups) >= 2:  # noqa: PLR2004
        a = by_index[binary_groups[0].run_indices[0]]
        b = by_index[binary_groups[1].run_indices[0]]
        hints.extend([
            f"hexdump -C {shlex.quote(str(a.binary_path))} > /tmp/run{a.run_index}.hex",
            f"hexdump -C {shlex.quote(str(b.binary_path))} > /tmp/run{b.run_index}.hex",
            f"diff /tmp/run{a.run_index}.hex /tmp/run{b.run_index}.hex",
        ])
    return hints
