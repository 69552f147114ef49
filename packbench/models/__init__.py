"""
Data models for packbench.

This package contains Pydantic models for:
- Benchmark scenarios (storage model, workloads, caps)
- Workload and run summaries
"""

from packbench.models.scenario import (
    StorageModel,
    WorkloadKind,
    WORKLOAD_SEQUENCE,
    BenchmarkScenario,
)

from packbench.models.metrics import (
    CSV_COLUMNS,
    ThroughputBasis,
    WorkloadSummary,
    RunSummary,
)

__all__ = [
    # scenario
    "StorageModel",
    "WorkloadKind",
    "WORKLOAD_SEQUENCE",
    "BenchmarkScenario",
    # metrics
    "CSV_COLUMNS",
    "ThroughputBasis",
    "WorkloadSummary",
    "RunSummary",
]
