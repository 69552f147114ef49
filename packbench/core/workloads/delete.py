"""
Delete workload: bounded range deletes over each worker's key slice.
"""

import logging
import time
from typing import Any

from packbench.core.workloads.base import WorkloadRunner
from packbench.core.workloads.helpers import split_evenly
from packbench.models.scenario import WorkloadKind

logger = logging.getLogger(__name__)


class DeleteRunner(WorkloadRunner):
    """
    Repeats `DELETE ... LIMIT batch_size` on the worker's slice until nothing
    is left, the worker's share of delete_target_rows is reached, or
    delete_max_iterations statements have run.
    """

    kind = WorkloadKind.DELETE

    async def work(self, worker_id: int, handle: Any) -> None:
        scenario = self.scenario
        key_range = self.key_range(worker_id)
        share = split_evenly(scenario.delete_target_rows, self.worker_count())[worker_id]
        sql = self.statements.range_delete_sql

        deleted = 0
        for iteration in range(scenario.delete_max_iterations):
            if self.should_stop() or deleted >= share:
                break

            params = (key_range.low, key_range.high, min(scenario.batch_size, share - deleted))
            key = (worker_id, iteration)

            async def unit(params: tuple = params, key: Any = key) -> int:
                return await self._delete_once(handle, params, key)

            affected = await self.run_unit(self.result, worker_id, key, unit, sql=sql)
            if affected is None:
                continue
            if affected == 0:
                break
            deleted += affected

        logger.debug("delete worker %d: %d rows deleted", worker_id, deleted)

    async def _delete_once(self, handle: Any, params: tuple, key: Any) -> int:
        sql = self.statements.range_delete_sql

        proc_start = time.perf_counter_ns()
        args = tuple(int(p) for p in params)
        db_start = time.perf_counter_ns()
        affected = await self.executor.run(handle, lambda h: h.execute(sql, *args), key=key)
        db_end = time.perf_counter_ns()

        self.record_unit(self.result, proc_start, db_start, db_end)
        self.result.add_operations(affected)
        return affected
