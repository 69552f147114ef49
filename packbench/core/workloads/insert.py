"""
Insert workload: batched inserts of generated rows.
"""

import logging
import time
from typing import Any

from packbench.core.workloads.base import WorkloadRunner
from packbench.core.workloads.helpers import generate_row, split_evenly
from packbench.core.workloads.types import KeyRange, WorkloadResult
from packbench.models.scenario import WorkloadKind

logger = logging.getLogger(__name__)


class InsertRunner(WorkloadRunner):
    """
    Inserts `scenario.rows` rows in batches of `scenario.batch_size`.

    Total latency is recorded once per inserted row (with the batch latency);
    db and processing once per batch.
    """

    kind = WorkloadKind.INSERT

    async def work(self, worker_id: int, handle: Any) -> None:
        share = split_evenly(self.scenario.rows, self.worker_count())[worker_id]
        key_range = self.key_range(worker_id)
        rnd = self.rng(worker_id)
        batch_size = self.scenario.batch_size

        batch_no = 0
        remaining = share
        while remaining > 0 and not self.should_stop():
            n = min(batch_size, remaining)
            remaining -= n

            key = (worker_id, batch_no)

            async def unit(n: int = n, key: Any = key) -> int:
                return await self._insert_batch(handle, rnd, key_range, n, key)

            await self.run_unit(
                self.result, worker_id, key, unit, sql=self.statements.insert_sql
            )
            batch_no += 1

        logger.debug("insert worker %d: %d batches", worker_id, batch_no)

    async def _insert_batch(
        self, handle: Any, rnd: Any, key_range: KeyRange, n: int, key: Any
    ) -> int:
        result: WorkloadResult = self.result
        sql = self.statements.insert_sql

        proc_start = time.perf_counter_ns()
        rows = [
            generate_row(rnd, self.model, self.scenario.tenant, key_range)
            for _ in range(n)
        ]
        db_start = time.perf_counter_ns()
        inserted = await self.executor.run(
            handle, lambda h: h.execute_many(sql, rows), key=key
        )
        db_end = time.perf_counter_ns()

        self.record_unit(result, proc_start, db_start, db_end, total_count=inserted)
        result.add_operations(inserted)
        return inserted
