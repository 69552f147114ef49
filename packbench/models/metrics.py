"""
Metrics Models

Defines Pydantic models for per-workload summaries and the summary of a whole
benchmark run.
"""

from typing import Dict, List, Optional
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

CSV_COLUMNS: tuple[str, ...] = (
    "model",
    "workload",
    "operation",
    "p50",
    "p90",
    "p99",
    "throughput",
    "db_time",
    "processing_time",
    "total_time",
)


class ThroughputBasis(str, Enum):
    """Which formula produced WorkloadSummary.throughput."""

    DB_TIME = "db_time"
    ELAPSED = "elapsed"
    NOT_APPLICABLE = "not_applicable"
    NONE = "none"


class WorkloadSummary(BaseModel):
    """Summary of one workload/operation pair (durations in milliseconds)."""

    model: str = Field(..., description="Storage model")
    workload: str = Field(..., description="Workload name")
    operation: str = Field("all", description="Operation within the workload")

    p50: float = Field(0.0, description="50th percentile of total latency")
    p90: float = Field(0.0, description="90th percentile of total latency")
    p99: float = Field(0.0, description="99th percentile of total latency")

    throughput: float = Field(0.0, description="Operations per second (0 if not applicable)")
    db_time: float = Field(0.0, description="Mean database time")
    processing_time: float = Field(0.0, description="Mean client processing time")
    total_time: float = Field(0.0, description="db_time + processing_time")

    operation_count: int = Field(0, description="Operations completed")
    elapsed_seconds: float = Field(0.0, description="First unit start to last unit end")
    skipped: int = Field(0, description="Rows skipped during processing")
    failed_units: int = Field(0, description="Units abandoned after an error")
    throughput_basis: ThroughputBasis = Field(
        ThroughputBasis.NONE, description="Formula used for throughput"
    )

    @property
    def throughput_applicable(self) -> bool:
        return self.throughput_basis != ThroughputBasis.NOT_APPLICABLE

    def to_csv_row(self) -> List[str]:
        """Values in CSV_COLUMNS order, floats with two decimals."""
        row: List[str] = []
        for col in CSV_COLUMNS:
            value = getattr(self, col)
            if isinstance(value, float):
                row.append(f"{value:.2f}")
            else:
                row.append(str(value))
        return row


class RunSummary(BaseModel):
    """
    Result of one orchestrated run.

    `summaries` keeps execution order; `failures` maps a workload name to the
    error that aborted it.
    """

    model: str = Field(..., description="Storage model")
    started_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="Run start (UTC)"
    )
    finished_at: Optional[datetime] = Field(None, description="Run end (UTC)")
    summaries: List[WorkloadSummary] = Field(default_factory=list)
    failures: Dict[str, str] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return not self.failures

    def summaries_for(self, workload: str) -> List[WorkloadSummary]:
        return [s for s in self.summaries if s.workload == workload]
