"""
Benchmark Orchestrator

Runs the enabled workloads for one storage model in the fixed sequence and
collects their summaries into a RunSummary. A workload that aborts is logged
and recorded in `RunSummary.failures`; the next workload still runs.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any, Callable, Mapping, Optional

from packbench.core.aggregator import MetricsAggregator
from packbench.core.report_writer import format_result_line
from packbench.core.retry import RetryingExecutor
from packbench.core.statements import BenchStatements
from packbench.core.workloads import RUNNERS, WorkloadRunner
from packbench.models.metrics import RunSummary
from packbench.models.scenario import WORKLOAD_SEQUENCE, BenchmarkScenario, WorkloadKind

logger = logging.getLogger(__name__)

RunnerFactory = Callable[..., WorkloadRunner]

STOPPED_MESSAGE = "not run: stop requested"


class BenchmarkOrchestrator:
    """
    Drives one benchmark run.

    Usage:
        orchestrator = BenchmarkOrchestrator(scenario, pool)
        run = await orchestrator.run()
    """

    def __init__(
        self,
        scenario: BenchmarkScenario,
        pool: Any,
        *,
        statements: Optional[BenchStatements] = None,
        runner_factories: Optional[Mapping[WorkloadKind, RunnerFactory]] = None,
        aggregator: Optional[MetricsAggregator] = None,
        stop_event: Optional[asyncio.Event] = None,
    ):
        self.scenario = scenario
        self.pool = pool
        self.statements = statements or BenchStatements(model=str(scenario.model))
        self.runner_factories: dict = dict(RUNNERS)
        if runner_factories:
            self.runner_factories.update(runner_factories)
        self.aggregator = aggregator or MetricsAggregator()
        self._stop_event = stop_event or asyncio.Event()

    def stop(self) -> None:
        """Ask running workers to stop after their current unit."""
        logger.info("Stop requested")
        self._stop_event.set()

    def build_executor(self) -> RetryingExecutor:
        return RetryingExecutor(
            max_attempts=self.scenario.retry_max_attempts,
            retry_delay_ms=self.scenario.retry_delay_ms,
            stop_event=self._stop_event,
        )

    async def run(self) -> RunSummary:
        scenario = self.scenario
        model = str(scenario.model)
        run = RunSummary(model=model)
        executor = self.build_executor()

        logger.info(
            "Benchmark run starting: model=%s threads=%d rows=%d batch=%d tenant=%d",
            model,
            scenario.threads,
            scenario.rows,
            scenario.batch_size,
            scenario.tenant,
        )

        for kind in WORKLOAD_SEQUENCE:
            if not scenario.is_enabled(kind):
                continue
            if self._stop_event.is_set():
                run.failures[kind.value] = STOPPED_MESSAGE
                continue

            runner = self.runner_factories[kind](
                scenario,
                self.pool,
                self.statements,
                executor,
                stop_event=self._stop_event,
            )
            try:
                results = await runner.run()
                summaries = [self.aggregator.summarize(r, model) for r in results]
            except Exception as e:
                logger.exception("Workload %s aborted: %s", kind.value, e)
                run.failures[kind.value] = f"{type(e).__name__}: {e}"
                continue

            for summary in summaries:
                run.summaries.append(summary)
                logger.info(format_result_line(summary))

        run.finished_at = datetime.now(UTC)
        logger.info(
            "Benchmark run finished: %d summaries, %d failed workloads",
            len(run.summaries),
            len(run.failures),
        )
        return run
