"""
Select workload: range retrieval plus client-side conversion of the rows.

Two results are produced:
- retrieval: database fetch of one range query (throughput applicable)
- processing: decoding of the fetched rows (CPU only, throughput not applicable)
"""

import logging
import time
from typing import Any, List, Mapping

from packbench.core import bitpack
from packbench.core.errors import CodecCorruption
from packbench.core.workloads.base import WorkloadRunner
from packbench.core.workloads.helpers import split_evenly
from packbench.core.workloads.types import (
    KeyRange,
    RowOutcome,
    SkipReason,
    WorkloadResult,
)
from packbench.models.scenario import WorkloadKind

logger = logging.getLogger(__name__)

RETRIEVAL = "retrieval"
PROCESSING = "processing"


def convert_row(row: Mapping[str, Any], model: str) -> RowOutcome:
    """Decode cf3 of one fetched row and touch its payload column."""
    raw = row["cf3"]
    if raw is None:
        return RowOutcome.skipped(SkipReason.NULL_VALUE)

    # touch the text column so processing includes reading it
    _ = len(row["other_varchar"] or "")

    try:
        value = int(raw)
    except (TypeError, ValueError) as e:
        return RowOutcome.skipped(SkipReason.CORRUPT_VALUE, f"not an integer: {e}")

    if model == "bitpack":
        try:
            return RowOutcome.converted(bitpack.decode(value, strict=True))
        except CodecCorruption as e:
            return RowOutcome.skipped(SkipReason.CORRUPT_VALUE, e.reason)

    try:
        return RowOutcome.converted(bitpack.from_epoch_millis(value))
    except (OverflowError, ValueError, OSError) as e:
        return RowOutcome.skipped(SkipReason.OUT_OF_RANGE, str(e))


class SelectRunner(WorkloadRunner):
    """
    Runs `effective_select_iterations` range queries split across workers.

    Processing time is the average per-row conversion time of an iteration,
    recorded once per fetched row into the processing result's total and
    processing recorders.
    """

    kind = WorkloadKind.SELECT

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._retrieval_ns = 0

    def new_results(self) -> List[WorkloadResult]:
        self._retrieval_ns = 0
        return [
            WorkloadResult(workload=self.name, operation=RETRIEVAL),
            WorkloadResult(
                workload=self.name, operation=PROCESSING, throughput_applicable=False
            ),
        ]

    @property
    def retrieval(self) -> WorkloadResult:
        return self.results[0]

    @property
    def processing(self) -> WorkloadResult:
        return self.results[1]

    def finalize(self, results: List[WorkloadResult]) -> None:
        super().finalize(results)
        # Retrieval throughput is based on time spent retrieving, not wall clock.
        self.retrieval.elapsed_seconds = self._retrieval_ns / 1_000_000_000.0

    async def work(self, worker_id: int, handle: Any) -> None:
        iterations = split_evenly(
            self.scenario.effective_select_iterations, self.worker_count()
        )[worker_id]
        key_range = self.key_range(worker_id)
        rnd = self.rng(worker_id)
        sql = self.statements.range_select_sql

        for iteration in range(iterations):
            if self.should_stop():
                break
            key = (worker_id, iteration)

            async def unit(key: Any = key) -> int:
                return await self._select_once(handle, rnd, key_range, key)

            await self.run_unit(self.retrieval, worker_id, key, unit, sql=sql)

    async def _select_once(
        self, handle: Any, rnd: Any, key_range: KeyRange, key: Any
    ) -> int:
        sql = self.statements.range_select_sql

        proc_start = time.perf_counter_ns()
        low = key_range.low + rnd.randrange(key_range.span)
        args = (low, key_range.high, self.scenario.batch_size)
        db_start = time.perf_counter_ns()
        rows = await self.executor.run(handle, lambda h: h.fetch(sql, *args), key=key)
        db_end = time.perf_counter_ns()

        self.record_unit(self.retrieval, proc_start, db_start, db_end)
        self.retrieval.add_operations(1)
        self._retrieval_ns += db_end - proc_start

        self._process_rows(rows)
        return len(rows)

    def _process_rows(self, rows: List[Any]) -> None:
        result = self.processing
        model = self.model

        start_ns = time.perf_counter_ns()
        skipped = 0
        for row in rows:
            outcome = convert_row(row, model)
            if not outcome.ok:
                skipped += 1
                logger.debug("select: skipped row (%s): %s", outcome.skip_reason, outcome.detail)
        end_ns = time.perf_counter_ns()

        elapsed_ns = end_ns - start_ns
        if rows:
            per_row_ms = elapsed_ns / 1_000_000.0 / len(rows)
            result.total.record_many(per_row_ms, len(rows))
            result.processing.record_many(per_row_ms, len(rows))
            result.add_unit_timing(
                elapsed_ns, 0, elapsed_ns, values=len(rows), total_values=len(rows)
            )
        elif elapsed_ns > 0:
            result.total.record_ns(elapsed_ns)
            result.processing.record_ns(elapsed_ns)
            result.add_unit_timing(elapsed_ns, 0, elapsed_ns)

        result.add_operations(len(rows))
        if skipped:
            result.add_skipped(skipped)
        result.note_unit_span(start_ns, end_ns)
