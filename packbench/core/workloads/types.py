"""
Type definitions and dataclasses for workload runners.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from packbench.core.latency import LatencyRecorder


@dataclass
class WorkloadResult:
    """Aggregate for one workload/operation pair, owned by its runner."""

    workload: str
    operation: str = "all"
    throughput_applicable: bool = True
    total: LatencyRecorder = field(default_factory=lambda: LatencyRecorder("total"))
    db: LatencyRecorder = field(default_factory=lambda: LatencyRecorder("db"))
    processing: LatencyRecorder = field(
        default_factory=lambda: LatencyRecorder("processing")
    )
    operation_count: int = 0
    elapsed_seconds: float = 0.0
    skipped: int = 0
    failed_units: int = 0
    first_unit_start_ns: Optional[int] = None
    last_unit_end_ns: Optional[int] = None
    unit_values: int = 0
    unit_total_ns: int = 0
    unit_db_ns: int = 0
    unit_processing_ns: int = 0
    total_values: int = 0
    total_weighted_ns: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def add_operations(self, n: int) -> None:
        with self._lock:
            self.operation_count += int(n)

    def add_skipped(self, n: int = 1) -> None:
        with self._lock:
            self.skipped += int(n)

    def add_failed_unit(self) -> None:
        with self._lock:
            self.failed_units += 1

    def add_unit_timing(
        self,
        total_ns: int,
        db_ns: int,
        processing_ns: int,
        *,
        values: int = 1,
        total_values: int = 1,
    ) -> None:
        """
        Account the raw nanoseconds behind one unit's recorder entries.

        db and processing were recorded as `values` entries summing to db_ns
        and processing_ns; total was recorded as `total_values` entries of
        total_ns / values each.
        """
        with self._lock:
            self.unit_values += int(values)
            self.unit_total_ns += int(total_ns)
            self.unit_db_ns += int(db_ns)
            self.unit_processing_ns += int(processing_ns)
            self.total_values += int(total_values)
            self.total_weighted_ns += total_ns * total_values / values

    def note_unit_span(self, start_ns: int, end_ns: int) -> None:
        """Widen the workload window to cover one unit."""
        with self._lock:
            if self.first_unit_start_ns is None or start_ns < self.first_unit_start_ns:
                self.first_unit_start_ns = start_ns
            if self.last_unit_end_ns is None or end_ns > self.last_unit_end_ns:
                self.last_unit_end_ns = end_ns

    def finalize_elapsed(self) -> float:
        """Set elapsed_seconds from the first unit start to the last unit end."""
        with self._lock:
            if self.first_unit_start_ns is None or self.last_unit_end_ns is None:
                self.elapsed_seconds = 0.0
            else:
                self.elapsed_seconds = (
                    self.last_unit_end_ns - self.first_unit_start_ns
                ) / 1_000_000_000.0
            return self.elapsed_seconds


class SkipReason(str, Enum):
    """Why a fetched row was not converted."""

    NULL_VALUE = "null_value"
    CORRUPT_VALUE = "corrupt_value"
    OUT_OF_RANGE = "out_of_range"


@dataclass(frozen=True)
class RowOutcome:
    """Result of converting one fetched row: a datetime or a skip reason."""

    value: Optional[datetime] = None
    skip_reason: Optional[SkipReason] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.skip_reason is None

    @classmethod
    def converted(cls, value: datetime) -> "RowOutcome":
        return cls(value=value)

    @classmethod
    def skipped(cls, reason: SkipReason, detail: Optional[str] = None) -> "RowOutcome":
        return cls(skip_reason=reason, detail=detail)


@dataclass(frozen=True)
class KeyRange:
    """Contiguous slice of the tenant key space owned by one worker."""

    low: int
    high: int

    @property
    def span(self) -> int:
        return self.high - self.low + 1
