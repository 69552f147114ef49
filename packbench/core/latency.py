"""
Latency recorder.

Thread-safe millisecond histogram backed by HdrHistogram. Every stored value
is a positive integer number of milliseconds: sub-millisecond measurements are
rounded up to 1 so that fast operations are never recorded as 0.
"""

import math
import threading
import time
from typing import Optional

from hdrh.histogram import HdrHistogram

LOWEST_TRACKABLE_MS = 1
HIGHEST_TRACKABLE_MS = 24 * 60 * 60 * 1000
SIGNIFICANT_FIGURES = 3


def to_recorded_ms(value_ms: float) -> int:
    """
    Convert a measured duration to the integer value a recorder stores.

    Values below 1ms (including 0) become 1; everything else is rounded to the
    nearest millisecond and capped at HIGHEST_TRACKABLE_MS.
    """
    if value_ms < 0 or math.isnan(value_ms):
        raise ValueError(f"latency must be non-negative, got {value_ms!r}")
    if value_ms < 1.0:
        return LOWEST_TRACKABLE_MS
    return min(int(math.floor(value_ms + 0.5)), HIGHEST_TRACKABLE_MS)


def elapsed_ms(start_ns: int, end_ns: Optional[int] = None) -> float:
    """Milliseconds between two time.perf_counter_ns() readings."""
    if end_ns is None:
        end_ns = time.perf_counter_ns()
    return (end_ns - start_ns) / 1_000_000.0


class LatencyRecorder:
    """
    Mergeable, thread-safe latency histogram.

    Percentiles, mean, min and max are reported in milliseconds and are 0 for
    an empty recorder.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self._lock = threading.Lock()
        self._hist = HdrHistogram(
            LOWEST_TRACKABLE_MS, HIGHEST_TRACKABLE_MS, SIGNIFICANT_FIGURES
        )

    def record(self, value_ms: float) -> int:
        """Record one measurement; returns the stored integer value."""
        return self.record_many(value_ms, 1)

    def record_many(self, value_ms: float, count: int) -> int:
        """Record the same measurement `count` times."""
        stored = to_recorded_ms(value_ms)
        if count <= 0:
            return stored
        with self._lock:
            self._hist.record_value(stored, count)
        return stored

    def record_ns(self, elapsed_ns: int, count: int = 1) -> int:
        """Record a perf_counter_ns delta."""
        return self.record_many(elapsed_ns / 1_000_000.0, count)

    def count(self) -> int:
        with self._lock:
            return int(self._hist.get_total_count())

    def mean(self) -> float:
        with self._lock:
            if self._hist.get_total_count() == 0:
                return 0.0
            return float(self._hist.get_mean_value())

    def percentile(self, p: float) -> float:
        """Value at percentile `p` (0-100)."""
        p = min(max(float(p), 0.0), 100.0)
        with self._lock:
            if self._hist.get_total_count() == 0:
                return 0.0
            return float(self._hist.get_value_at_percentile(p))

    def max(self) -> float:
        with self._lock:
            if self._hist.get_total_count() == 0:
                return 0.0
            return float(self._hist.get_max_value())

    def min(self) -> float:
        with self._lock:
            if self._hist.get_total_count() == 0:
                return 0.0
            return float(self._hist.get_min_value())

    def merge(self, other: "LatencyRecorder") -> None:
        """Add every value recorded by `other` into this recorder."""
        if other is self:
            raise ValueError("cannot merge a recorder into itself")
        with other._lock:
            snapshot = HdrHistogram(
                LOWEST_TRACKABLE_MS, HIGHEST_TRACKABLE_MS, SIGNIFICANT_FIGURES
            )
            snapshot.add(other._hist)
        with self._lock:
            self._hist.add(snapshot)

    def reset(self) -> None:
        with self._lock:
            self._hist.reset()

    def __repr__(self) -> str:
        return f"LatencyRecorder(name={self.name!r}, count={self.count()})"
