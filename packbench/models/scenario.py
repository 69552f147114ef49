"""
Benchmark Scenario Models

Defines Pydantic models for a benchmark run configuration:
- Storage model (epoch vs bitpack datetime column)
- Workload kinds and their fixed execution order
- Concurrency, batch sizes and per-workload iteration caps
"""

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StorageModel(str, Enum):
    """How the datetime column is stored."""

    EPOCH = "epoch"
    BITPACK = "bitpack"


class WorkloadKind(str, Enum):
    """Workload types, declared in execution order."""

    INSERT = "insert"
    UPDATE = "update"
    SELECT = "select"
    EXTRACT = "extract"
    TXN_MIXED = "txn_mixed"
    DELETE = "delete"


# Later workloads depend on rows left by earlier ones.
WORKLOAD_SEQUENCE: tuple[WorkloadKind, ...] = tuple(WorkloadKind)


class BenchmarkScenario(BaseModel):
    """
    Configuration for one benchmark run against one storage model.
    """

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    model: StorageModel = Field(StorageModel.EPOCH, description="Storage model")
    threads: int = Field(8, ge=1, le=1000, description="Workers per workload")
    rows: int = Field(200_000, ge=1, description="Rows inserted by the insert workload")
    batch_size: int = Field(1_000, ge=1, description="Rows per batch / LIMIT")
    tenant: int = Field(42, ge=0, le=0xFFFF, description="Tenant tag")

    select_iterations: Optional[int] = Field(
        None, ge=1, description="Range queries (None = max(100, rows // batch_size))"
    )
    extract_iterations: int = Field(1, ge=1, description="GROUP BY executions")
    txn_iterations: int = Field(1_000, ge=1, description="Mixed transactions")
    txn_ops_per_txn: int = Field(200, ge=1, description="Inserts per mixed transaction")
    update_target_rows: int = Field(10_000, ge=1, description="Stop updating after this many rows")
    update_max_iterations: int = Field(1_000, ge=1, description="Update statement cap")
    delete_target_rows: int = Field(100_000, ge=1, description="Stop deleting after this many rows")
    delete_max_iterations: int = Field(10_000, ge=1, description="Delete statement cap")

    retry_max_attempts: int = Field(3, ge=1, description="Attempts per unit on conflict")
    retry_delay_ms: int = Field(50, ge=0, description="Backoff between attempts")

    workloads: List[WorkloadKind] = Field(
        default_factory=lambda: list(WORKLOAD_SEQUENCE),
        description="Enabled workloads (always run in the fixed sequence)",
    )
    seed: Optional[int] = Field(None, description="Random seed for data generation")

    @field_validator("workloads")
    @classmethod
    def validate_workloads(cls, v):
        """Reject empty selections; drop duplicates."""
        if not v:
            raise ValueError("at least one workload must be enabled")
        seen: list = []
        for kind in v:
            if kind not in seen:
                seen.append(kind)
        return seen

    @property
    def effective_select_iterations(self) -> int:
        if self.select_iterations is not None:
            return self.select_iterations
        return max(100, self.rows // self.batch_size)

    def is_enabled(self, kind: WorkloadKind) -> bool:
        return WorkloadKind(kind).value in {WorkloadKind(k).value for k in self.workloads}

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "BenchmarkScenario":
        """Build a scenario from Settings, applying non-None overrides."""
        values: dict[str, Any] = {
            "model": settings.BENCH_MODEL,
            "threads": settings.BENCH_THREADS,
            "rows": settings.BENCH_ROWS,
            "batch_size": settings.BENCH_BATCH,
            "tenant": settings.BENCH_TENANT,
            "retry_max_attempts": settings.RETRY_MAX_ATTEMPTS,
            "retry_delay_ms": settings.RETRY_DELAY_MS,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
