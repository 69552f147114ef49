"""
Workload runners.

Runners execute in the fixed order insert -> update -> select -> extract ->
txn_mixed -> delete; see packbench.core.orchestrator.
"""

from packbench.core.workloads.base import WorkloadRunner
from packbench.core.workloads.insert import InsertRunner
from packbench.core.workloads.update import UpdateRunner
from packbench.core.workloads.select import SelectRunner
from packbench.core.workloads.extract import ExtractRunner
from packbench.core.workloads.txn_mixed import TxnMixedRunner
from packbench.core.workloads.delete import DeleteRunner
from packbench.core.workloads.types import (
    KeyRange,
    RowOutcome,
    SkipReason,
    WorkloadResult,
)
from packbench.models.scenario import WorkloadKind

RUNNERS = {
    WorkloadKind.INSERT: InsertRunner,
    WorkloadKind.UPDATE: UpdateRunner,
    WorkloadKind.SELECT: SelectRunner,
    WorkloadKind.EXTRACT: ExtractRunner,
    WorkloadKind.TXN_MIXED: TxnMixedRunner,
    WorkloadKind.DELETE: DeleteRunner,
}

__all__ = [
    "WorkloadRunner",
    "InsertRunner",
    "UpdateRunner",
    "SelectRunner",
    "ExtractRunner",
    "TxnMixedRunner",
    "DeleteRunner",
    "KeyRange",
    "RowOutcome",
    "SkipReason",
    "WorkloadResult",
    "RUNNERS",
]
