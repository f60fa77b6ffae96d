"""
Profiling utilities for sqldojo.

Measures wall-clock time (perf_counter) for every query run and, on request,
peak RSS through a psutil sampling thread.

Usage:
    from sqldojo.utils.profiler import profile_block

    with profile_block("run-validated") as stats:
        await runner.run_validated(...)

    print(stats.duration_ms, stats.peak_rss_bytes)
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

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
    peak_rss_bytes: Optional[int] = field(default=None)
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> int:
        return int(round(self.duration_seconds * 1000))


@contextlib.contextmanager
def profile_block(
    label: str, track_memory: bool = False, sample_interval_ms: int = 50
) -> Generator[ProfileStats, None, None]:
    """
    Context manager to profile a block of code.

    Parameters
    ----------
    label : str
        Human-friendly label for the profiled block.
    track_memory : bool
        Whether to sample RSS in a background thread and record the peak.
    sample_interval_ms : int
        Interval in milliseconds between RSS samples.

    Notes
    -----
    The block is timed even when it raises; ``stats`` is complete once the
    ``with`` statement exits.
    """
    stats = ProfileStats(label=label)
    stop_sampling = threading.Event()
    sampler: Optional[threading.Thread] = None
    peak_rss = 0

    if track_memory:
        process = psutil.Process()
        peak_rss = process.memory_info().rss

        def _sample_memory() -> None:
            nonlocal peak_rss
            while not stop_sampling.is_set():
                try:
                    peak_rss = max(peak_rss, process.memory_info().rss)
                except psutil.Error:
                    return
                stop_sampling.wait(timeout=sample_interval_ms / 1000.0)

        sampler = threading.Thread(target=_sample_memory, daemon=True)
        sampler.start()

    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        if sampler is not None:
            stop_sampling.set()
            sampler.join(timeout=1.0)
            stats.peak_rss_bytes = peak_rss or None


__all__ = ["ProfileStats", "profile_block"]
