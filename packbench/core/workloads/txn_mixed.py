"""
Mixed transaction workload: inserts interleaved with point updates, committed
as one transaction.
"""

import logging
import time
from typing import Any, List, Tuple

from packbench.core.workloads.base import WorkloadRunner
from packbench.core.workloads.helpers import generate_row, split_evenly
from packbench.core.workloads.types import KeyRange
from packbench.models.scenario import WorkloadKind

logger = logging.getLogger(__name__)

UPDATE_ID_RANGE = (1, 1000)


class TxnMixedRunner(WorkloadRunner):
    """
    Each transaction inserts `txn_ops_per_txn` rows and, for every even index,
    updates a random row with id in 1..1000. Recorded once per transaction.
    """

    kind = WorkloadKind.TXN_MIXED

    async def work(self, worker_id: int, handle: Any) -> None:
        iterations = split_evenly(self.scenario.txn_iterations, self.worker_count())[worker_id]
        key_range = self.key_range(worker_id)
        rnd = self.rng(worker_id)

        for iteration in range(iterations):
            if self.should_stop():
                break
            key = (worker_id, iteration)

            async def unit(key: Any = key) -> int:
                return await self._run_txn(handle, rnd, key_range, key)

            await self.run_unit(
                self.result, worker_id, key, unit, sql=self.statements.insert_sql
            )

    def _build_txn(
        self, rnd: Any, key_range: KeyRange
    ) -> Tuple[List[tuple], List[Tuple[str, int]]]:
        ops = self.scenario.txn_ops_per_txn
        rows = [
            generate_row(rnd, self.model, self.scenario.tenant, key_range, label="txn")
            for _ in range(ops)
        ]
        updates = [
            (f"txn-upd-{rnd.randrange(1_000_000)}", rnd.randint(*UPDATE_ID_RANGE))
            for i in range(ops)
            if i % 2 == 0
        ]
        return rows, updates

    async def _run_txn(self, handle: Any, rnd: Any, key_range: KeyRange, key: Any) -> int:
        insert_sql = self.statements.insert_sql
        update_sql = self.statements.txn_update_sql

        proc_start = time.perf_counter_ns()
        rows, updates = self._build_txn(rnd, key_range)
        db_start = time.perf_counter_ns()

        async def op(h: Any) -> int:
            touched = 0
            for i, row in enumerate(rows):
                touched += await h.execute(insert_sql, *row)
                if i % 2 == 0:
                    touched += await h.execute(update_sql, *updates[i // 2])
            return touched

        touched = await self.executor.run(handle, op, key=key)
        db_end = time.perf_counter_ns()

        self.record_unit(self.result, proc_start, db_start, db_end)
        self.result.add_operations(1)
        return touched
