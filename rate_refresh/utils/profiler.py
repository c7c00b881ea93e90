"""
Lightweight timing utilities for refresh cycles.

Measures wall-clock time (perf_counter) plus a process CPU and RSS snapshot via
psutil, so every cycle summary log can report how long the fan-out took and
what it cost.

Usage:
    from rate_refresh.utils.profiler import profile_block

    with profile_block("refresh-cycle") as stats:
        dispatch()

    log.info("done", extra={"duration_seconds": stats.duration_seconds})
"""

from __future__ import annotations

import contextlib
import time
from dataclasses import dataclass, field
from typing import Generator, Optional

import psutil


@dataclass
class ProfileStats:
    """
    Container for profiling measurements.
    """

    label: str
    start_ts: float = field(default=0.0)
    end_ts: float = field(default=0.0)
    duration_seconds: float = field(default=0.0)
    rss_bytes: Optional[int] = field(default=None)
    cpu_percent: Optional[float] = field(default=None)


@contextlib.contextmanager
def profile_block(label: str) -> Generator[ProfileStats, None, None]:
    """
    Context manager measuring a block of code.

    CPU percent is the process-wide figure between entry and exit; with several
    worker threads it may exceed 100.
    """
    stats = ProfileStats(label=label)
    process = psutil.Process()
    # CPU percent needs a priming call
    process.cpu_percent(interval=None)

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        try:
            stats.cpu_percent = process.cpu_percent(interval=None)
            stats.rss_bytes = process.memory_info().rss
        except psutil.Error:
            # Sampling is best-effort; the timing above is what matters.
            pass


__all__ = ["ProfileStats", "profile_block"]
