"""
Metrics Aggregator

Turns the recorders of a finished workload into a WorkloadSummary:
percentiles of end-to-end latency, mean database and processing time, and
throughput.
"""

import logging
import math

from packbench.core.errors import MetricsInvariantError
from packbench.core.workloads.types import WorkloadResult
from packbench.models.metrics import ThroughputBasis, WorkloadSummary

logger = logging.getLogger(__name__)

# Each recorder stores whole milliseconds with sub-ms values raised to 1, so a
# recorder mean may sit up to 1ms away from the raw mean of what it recorded.
ROUNDING_SLACK_MS = 1.0
RELATIVE_SLACK = 0.01


class MetricsAggregator:
    """
    Summarizes WorkloadResults.

    Throughput prefers the database-time basis (operations per second of
    database time, summed over recorded operations) and falls back to
    operation_count / elapsed_seconds when no database time was recorded.
    """

    def summarize(self, result: WorkloadResult, model: str) -> WorkloadSummary:
        db_time = result.db.mean()
        processing_time = result.processing.mean()
        total_time = db_time + processing_time
        self._check_total(result, db_time, processing_time, total_time)

        throughput, basis = self.compute_throughput(result, db_time)

        summary = WorkloadSummary(
            model=str(model),
            workload=result.workload,
            operation=result.operation,
            p50=result.total.percentile(50),
            p90=result.total.percentile(90),
            p99=result.total.percentile(99),
            throughput=throughput,
            db_time=db_time,
            processing_time=processing_time,
            total_time=total_time,
            operation_count=result.operation_count,
            elapsed_seconds=result.elapsed_seconds,
            skipped=result.skipped,
            failed_units=result.failed_units,
            throughput_basis=basis,
        )
        logger.debug("Summarized %s/%s: %s", result.workload, result.operation, summary)
        return summary

    @staticmethod
    def compute_throughput(
        result: WorkloadResult, db_time: float
    ) -> tuple[float, ThroughputBasis]:
        if not result.throughput_applicable:
            return 0.0, ThroughputBasis.NOT_APPLICABLE

        n = result.total.count()
        if db_time > 0 and n > 0:
            # n ops over (db_time * n) ms of database time
            return n / (db_time * n / 1000.0), ThroughputBasis.DB_TIME

        if result.operation_count > 0 and result.elapsed_seconds > 0:
            return (
                result.operation_count / result.elapsed_seconds,
                ThroughputBasis.ELAPSED,
            )

        return 0.0, ThroughputBasis.NONE

    @staticmethod
    def _check_total(
        result: WorkloadResult,
        db_time: float,
        processing_time: float,
        total_time: float,
    ) -> None:
        """
        Verify that total time is made of db and processing time.

        Runners account the raw nanoseconds of every unit next to the recorder
        entries; those must add up exactly, and each recorder mean must agree
        with the raw mean it was fed. Results filled straight into the
        recorders are held to total.mean() == db_time + processing_time.
        """
        label = f"{result.workload}/{result.operation}"
        values = (db_time, processing_time, total_time)
        if not all(math.isfinite(v) and v >= 0 for v in values):
            raise MetricsInvariantError(
                f"{label}: non-finite or negative times "
                f"(db={db_time}, processing={processing_time}, total={total_time})"
            )

        if result.unit_values <= 0:
            if result.total.count() == 0:
                return
            _expect_close(label, "total recorder mean", result.total.mean(), total_time, 2)
            return

        if result.unit_total_ns != result.unit_db_ns + result.unit_processing_ns:
            raise MetricsInvariantError(
                f"{label}: unit total {result.unit_total_ns}ns != db "
                f"{result.unit_db_ns}ns + processing {result.unit_processing_ns}ns"
            )

        split_ms = (
            (result.unit_db_ns + result.unit_processing_ns)
            / result.unit_values
            / 1_000_000.0
        )
        _expect_close(label, "db_time + processing_time", total_time, split_ms, 2)

        if result.total_values > 0:
            raw_total_ms = result.total_weighted_ns / result.total_values / 1_000_000.0
            _expect_close(
                label, "total recorder mean", result.total.mean(), raw_total_ms, 1
            )


def _expect_close(
    label: str, what: str, observed: float, expected: float, recorders: int
) -> None:
    slack = recorders * ROUNDING_SLACK_MS + RELATIVE_SLACK * abs(expected)
    if abs(observed - expected) > slack:
        raise MetricsInvariantError(
            f"{label}: {what} {observed:.3f}ms drifted from {expected:.3f}ms "
            f"(allowed {slack:.3f}ms)"
        )
