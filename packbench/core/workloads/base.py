"""
Shared machinery for workload runners.

A runner fans its work out to `scenario.threads` worker tasks. Each worker
holds one pooled connection for its whole lifetime and works on its own slice
of the tenant key space. Work is divided into units (one batch, one statement,
one transaction); a failing unit is logged and abandoned while the worker
moves on. Errors outside a unit (connection acquisition, bugs in the worker
loop) fail the workload once every worker has finished.
"""

import asyncio
import logging
import random
import time
from typing import Any, Awaitable, Callable, ClassVar, List, Optional, TypeVar

from packbench.core.errors import RetryCancelled
from packbench.core.retry import RetryingExecutor
from packbench.core.statements import BenchStatements
from packbench.core.workloads.helpers import (
    classify_sql_error,
    preview_query_for_log,
    sql_error_meta_for_log,
    worker_key_range,
)
from packbench.core.workloads.types import KeyRange, WorkloadResult
from packbench.models.scenario import BenchmarkScenario, WorkloadKind

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkloadRunner:
    """
    Base class for the six workload runners.

    Subclasses set `kind`, build their results in `new_results()` and
    implement `work(worker_id, handle)`.
    """

    kind: ClassVar[WorkloadKind]

    def __init__(
        self,
        scenario: BenchmarkScenario,
        pool: Any,
        statements: BenchStatements,
        executor: RetryingExecutor,
        *,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.scenario = scenario
        self.pool = pool
        self.statements = statements
        self.executor = executor
        self._stop_event = stop_event or asyncio.Event()
        self.results: List[WorkloadResult] = []

    @property
    def name(self) -> str:
        return WorkloadKind(self.kind).value

    @property
    def model(self) -> str:
        return str(self.statements.model)

    def new_results(self) -> List[WorkloadResult]:
        return [WorkloadResult(workload=self.name)]

    @property
    def result(self) -> WorkloadResult:
        return self.results[0]

    def worker_count(self) -> int:
        return self.scenario.threads

    def should_stop(self) -> bool:
        return self._stop_event.is_set()

    def key_range(self, worker_id: int) -> KeyRange:
        return worker_key_range(self.scenario.tenant, worker_id, self.scenario.threads)

    def rng(self, worker_id: int) -> random.Random:
        """Per-worker generator; deterministic when the scenario has a seed."""
        if self.scenario.seed is None:
            return random.Random()
        return random.Random(f"{self.scenario.seed}:{self.name}:{worker_id}")

    async def run(self) -> List[WorkloadResult]:
        """Run all workers to completion and return the finished results."""
        self.results = self.new_results()
        worker_count = self.worker_count()
        logger.info(
            "Starting %s workload (%s, workers=%d)", self.name, self.model, worker_count
        )

        tasks = [
            asyncio.create_task(self._run_worker(w), name=f"{self.name}-worker-{w}")
            for w in range(worker_count)
        ]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        self.finalize(self.results)

        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            for err in errors[1:]:
                logger.error("%s: additional worker failure: %r", self.name, err)
            raise errors[0]

        return self.results

    async def _run_worker(self, worker_id: int) -> None:
        logger.debug("%s worker %d started", self.name, worker_id)
        async with self.pool.acquire() as handle:
            await self.work(worker_id, handle)
        logger.debug("%s worker %d finished", self.name, worker_id)

    async def work(self, worker_id: int, handle: Any) -> None:
        raise NotImplementedError

    def finalize(self, results: List[WorkloadResult]) -> None:
        for result in results:
            result.finalize_elapsed()

    async def run_unit(
        self,
        result: WorkloadResult,
        worker_id: int,
        key: Any,
        unit: Callable[[], Awaitable[T]],
        *,
        sql: str = "",
    ) -> Optional[T]:
        """
        Run one unit of work; returns None if it was abandoned or cancelled.

        The unit's wall-clock span (success or failure) widens the result's
        elapsed window.
        """
        start_ns = time.perf_counter_ns()
        try:
            return await unit()
        except RetryCancelled:
            logger.debug("%s worker %d: unit %r cancelled", self.name, worker_id, key)
            return None
        except Exception as e:
            result.add_failed_unit()
            meta = sql_error_meta_for_log(e)
            logger.warning(
                "%s worker %d: unit %r abandoned [%s]: %s%s%s",
                self.name,
                worker_id,
                key,
                classify_sql_error(e),
                e,
                f" {meta}" if meta else "",
                f" | sql={preview_query_for_log(sql, max_chars=200)}" if sql else "",
            )
            return None
        finally:
            result.note_unit_span(start_ns, time.perf_counter_ns())

    @staticmethod
    def record_unit(
        result: WorkloadResult,
        proc_start_ns: int,
        db_start_ns: int,
        db_end_ns: int,
        *,
        post_end_ns: Optional[int] = None,
        total_count: int = 1,
    ) -> None:
        """
        Record one unit's timings.

        total = (post_end or db_end) - proc_start, db = db_end - db_start,
        processing = pre-DB interval plus the post-DB interval if any.
        """
        end_ns = db_end_ns if post_end_ns is None else post_end_ns
        processing_ns = db_start_ns - proc_start_ns
        if post_end_ns is not None:
            processing_ns += post_end_ns - db_end_ns

        total_ns = end_ns - proc_start_ns
        db_ns = db_end_ns - db_start_ns

        result.total.record_ns(total_ns, total_count)
        result.db.record_ns(db_ns)
        result.processing.record_ns(processing_ns)
        result.add_unit_timing(total_ns, db_ns, processing_ns, total_values=total_count)
