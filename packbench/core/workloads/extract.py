"""
Extract workload: per-year row counts computed by the database.
"""

import logging
import time
from typing import Any, Dict

from packbench.core.workloads.base import WorkloadRunner
from packbench.models.scenario import WorkloadKind

logger = logging.getLogger(__name__)


class ExtractRunner(WorkloadRunner):
    """
    Runs the year GROUP BY `extract_iterations` times on a single worker.

    Processing covers statement preparation and full consumption of the
    result set.
    """

    kind = WorkloadKind.EXTRACT

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.year_counts: Dict[int, int] = {}

    def worker_count(self) -> int:
        return 1

    async def work(self, worker_id: int, handle: Any) -> None:
        for iteration in range(self.scenario.extract_iterations):
            if self.should_stop():
                break
            key = (worker_id, iteration)

            async def unit(key: Any = key) -> Dict[int, int]:
                return await self._extract_once(handle, key)

            counts = await self.run_unit(
                self.result, worker_id, key, unit, sql=self.statements.extract_sql
            )
            if counts is not None:
                self.year_counts = counts

        logger.debug("extract: year counts %s", self.year_counts)

    async def _extract_once(self, handle: Any, key: Any) -> Dict[int, int]:
        proc_start = time.perf_counter_ns()
        sql = self.statements.extract_sql
        db_start = time.perf_counter_ns()
        rows = await self.executor.run(handle, lambda h: h.fetch(sql), key=key)
        db_end = time.perf_counter_ns()
        counts = {int(row["yr"]): int(row["cnt"]) for row in rows}
        post_end = time.perf_counter_ns()

        self.record_unit(self.result, proc_start, db_start, db_end, post_end_ns=post_end)
        self.result.add_operations(1)
        return counts
