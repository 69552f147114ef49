#!/usr/bin/env python3
"""Run the benchmark workloads for one storage model and write CSV reports."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any, Optional

from pydantic import ValidationError

from packbench.config import settings
from packbench.connectors.postgres_pool import PostgresConnectionPool
from packbench.core.orchestrator import BenchmarkOrchestrator
from packbench.core.report_writer import write_run_summary
from packbench.core.statements import BenchStatements
from packbench.models.scenario import BenchmarkScenario, StorageModel, WorkloadKind
from packbench.setup_schema import setup_schema


def _parse_workloads(raw: Optional[str]) -> Optional[list[WorkloadKind]]:
    if not raw:
        return None
    kinds: list[WorkloadKind] = []
    for part in raw.split(","):
        name = part.strip().lower()
        if not name:
            continue
        try:
            kinds.append(WorkloadKind(name))
        except ValueError:
            valid = ", ".join(k.value for k in WorkloadKind)
            raise argparse.ArgumentTypeError(
                f"unknown workload {name!r} (expected one of: {valid})"
            ) from None
    return kinds


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Benchmark epoch vs bit-packed datetime storage on Postgres."
    )
    parser.add_argument(
        "--model",
        choices=[m.value for m in StorageModel],
        default=None,
        help="Storage model (default: BENCH_MODEL).",
    )
    parser.add_argument("--threads", type=int, default=None, help="Workers per workload.")
    parser.add_argument("--rows", type=int, default=None, help="Rows to insert.")
    parser.add_argument("--batch", type=int, default=None, help="Rows per batch / LIMIT.")
    parser.add_argument("--tenant", type=int, default=None, help="Tenant tag (0-65535).")
    parser.add_argument(
        "--workloads",
        type=_parse_workloads,
        default=None,
        help="Comma-separated workloads to run (default: all, in fixed order).",
    )
    parser.add_argument(
        "--results-dir",
        default=None,
        help="Directory for CSV reports (default: RESULTS_DIR).",
    )
    parser.add_argument(
        "--skip-setup",
        action="store_true",
        help="Do not create or clear the benchmark table.",
    )
    parser.add_argument(
        "--citus",
        action="store_true",
        default=None,
        help="Distribute the table with Citus (default: BENCH_CITUS).",
    )
    parser.add_argument(
        "--columnar",
        action="store_true",
        default=None,
        help="Use Citus columnar storage (default: BENCH_CITUS_COLUMNAR).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed.")
    return parser


def _configure_logging() -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        handlers.append(logging.FileHandler(settings.LOG_FILE))
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format=settings.LOG_FORMAT,
        handlers=handlers,
    )
    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def build_scenario(args: argparse.Namespace) -> BenchmarkScenario:
    overrides: dict[str, Any] = {
        "model": args.model,
        "threads": args.threads,
        "rows": args.rows,
        "batch_size": args.batch,
        "tenant": args.tenant,
        "workloads": args.workloads,
        "seed": args.seed,
    }
    return BenchmarkScenario.from_settings(settings, **overrides)


async def _run_benchmark(args: argparse.Namespace) -> int:
    scenario = build_scenario(args)
    citus = settings.BENCH_CITUS if args.citus is None else bool(args.citus)
    columnar = settings.BENCH_CITUS_COLUMNAR if args.columnar is None else bool(args.columnar)
    results_dir = args.results_dir or settings.RESULTS_DIR

    pool = PostgresConnectionPool.from_settings(settings, threads=scenario.threads)
    try:
        await pool.initialize()
        if args.skip_setup:
            statements = BenchStatements(model=str(scenario.model), citus=citus)
        else:
            statements = await setup_schema(
                pool, scenario.model, citus=citus, columnar=columnar
            )

        orchestrator = BenchmarkOrchestrator(scenario, pool, statements=statements)
        run = await orchestrator.run()
        path = write_run_summary(run, results_dir)
    finally:
        await pool.close()

    print(f"[benchmark] model={run.model} summaries={len(run.summaries)} report={path}")
    for workload, error in run.failures.items():
        print(f"[benchmark] {workload} FAILED: {error}", file=sys.stderr)
    return 0 if run.succeeded else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging()
    try:
        return asyncio.run(_run_benchmark(args))
    except ValidationError as e:
        print(f"[benchmark] invalid configuration: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("[benchmark] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
