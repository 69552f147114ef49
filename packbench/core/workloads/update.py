"""
Update workload: bounded range updates over each worker's key slice.
"""

import logging
import time
from typing import Any

from packbench.core.workloads.base import WorkloadRunner
from packbench.core.workloads.helpers import split_evenly
from packbench.models.scenario import WorkloadKind

logger = logging.getLogger(__name__)


class UpdateRunner(WorkloadRunner):
    """
    Repeats `UPDATE ... LIMIT batch_size` on the worker's slice.

    The window's lower bound advances by span / update_max_iterations after
    every statement. A worker stops on a statement that affects no rows, on
    reaching its share of update_target_rows, or after update_max_iterations.
    """

    kind = WorkloadKind.UPDATE

    async def work(self, worker_id: int, handle: Any) -> None:
        scenario = self.scenario
        key_range = self.key_range(worker_id)
        share = split_evenly(scenario.update_target_rows, self.worker_count())[worker_id]
        step = max(1, key_range.span // scenario.update_max_iterations)
        sql = self.statements.range_update_sql

        low = key_range.low
        updated = 0
        for iteration in range(scenario.update_max_iterations):
            if self.should_stop() or updated >= share or low > key_range.high:
                break

            params = (low, key_range.high, min(scenario.batch_size, share - updated))
            key = (worker_id, iteration)
            low += step

            async def unit(params: tuple = params, key: Any = key) -> int:
                return await self._update_once(handle, params, key)

            affected = await self.run_unit(self.result, worker_id, key, unit, sql=sql)
            if affected is None:
                continue
            if affected == 0:
                break
            updated += affected

        logger.debug("update worker %d: %d rows updated", worker_id, updated)

    async def _update_once(self, handle: Any, params: tuple, key: Any) -> int:
        sql = self.statements.range_update_sql

        proc_start = time.perf_counter_ns()
        args = tuple(int(p) for p in params)
        db_start = time.perf_counter_ns()
        affected = await self.executor.run(handle, lambda h: h.execute(sql, *args), key=key)
        db_end = time.perf_counter_ns()

        self.record_unit(self.result, proc_start, db_start, db_end)
        self.result.add_operations(affected)
        return affected
