# Copyright (c) Syntropy Systems
"""Host load snapshots taken around link runs."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import cast

import psutil

from linkprobe.models.run import HostSnapshot


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_cpu_metrics() -> tuple[float | None, float | None, float | None]:
    """Get CPU and memory metrics.

    Returns (cpu_percent, memory_used_gb, memory_total_gb).
    """
    try:
        cpu_percent = psutil.cpu_percent(interval=0.1)
        mem = psutil.virtual_memory()
        used = cast("int", mem.used)
        total = cast("int", mem.total)
        memory_used_gb = used / (1024**3)
        memory_total_gb = total / (1024**3)
    except (AttributeError, OSError, ValueError):
        return None, None, None
    else:
        return cpu_percent, memory_used_gb, memory_total_gb


def get_load_average() -> float | None:
    """One-minute load average, if the platform reports one."""
    try:
        return psutil.getloadavg()[0]
    except (AttributeError, OSError):
        return None


def collect_snapshot() -> HostSnapshot:
    """Collect current host load."""
    cpu_percent, mem_used, mem_total = get_cpu_metrics()
    return HostSnapshot(
        timestamp=utcnow(),
        cpu_percent=cpu_percent,
        load_avg_1m=get_load_average(),
        memory_used_gb=round(mem_used, 2) if mem_used is not None else None,
        memory_total_gb=round(mem_total, 2) if mem_total is not None else None,
    )
