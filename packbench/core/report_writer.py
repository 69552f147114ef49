"""
Report Writer

Console lines and CSV files for workload summaries.

Files written under the results directory:
- `<workload>-<model>-summary.csv`: rows of one workload (overwritten per run)
- `summary.csv`: every summary of every run (appended)
"""

import csv
import logging
from pathlib import Path
from typing import Iterable, Union

from packbench.models.metrics import CSV_COLUMNS, RunSummary, WorkloadSummary

logger = logging.getLogger(__name__)

RUN_SUMMARY_FILE = "summary.csv"


def format_result_line(summary: WorkloadSummary) -> str:
    """One-line, human readable summary."""
    if summary.throughput_applicable:
        throughput = f"throughput={summary.throughput:.2f} ops/s"
    else:
        throughput = "throughput=N/A (CPU-only)"
    line = (
        f"[{summary.model}] {summary.workload}/{summary.operation}: "
        f"p50={summary.p50:.2f}ms p90={summary.p90:.2f}ms p99={summary.p99:.2f}ms "
        f"{throughput} db={summary.db_time:.2f}ms "
        f"processing={summary.processing_time:.2f}ms total={summary.total_time:.2f}ms "
        f"ops={summary.operation_count}"
    )
    if summary.skipped:
        line += f" skipped={summary.skipped}"
    if summary.failed_units:
        line += f" failed_units={summary.failed_units}"
    return line


def workload_csv_path(results_dir: Union[str, Path], workload: str, model: str) -> Path:
    return Path(results_dir) / f"{workload}-{model}-summary.csv"


def _write_rows(path: Path, summaries: Iterable[WorkloadSummary], *, append: bool) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    write_header = not append or not path.exists() or path.stat().st_size == 0
    count = 0
    with open(path, "a" if append else "w", newline="") as f:
        writer = csv.writer(f)
        if write_header:
            writer.writerow(CSV_COLUMNS)
        for summary in summaries:
            writer.writerow(summary.to_csv_row())
            count += 1
    return count


def write_workload_csv(
    summaries: Union[WorkloadSummary, Iterable[WorkloadSummary]],
    results_dir: Union[str, Path],
) -> Path:
    """
    Write the summaries of one workload to `<workload>-<model>-summary.csv`.

    Select produces two summaries (retrieval and processing); both go to the
    same file.
    """
    if isinstance(summaries, WorkloadSummary):
        summaries = [summaries]
    summaries = list(summaries)
    if not summaries:
        raise ValueError("no summaries to write")

    first = summaries[0]
    path = workload_csv_path(results_dir, first.workload, first.model)
    _write_rows(path, summaries, append=False)
    logger.debug("Wrote %d rows to %s", len(summaries), path)
    return path


def write_run_summary(run: RunSummary, results_dir: Union[str, Path]) -> Path:
    """Append every summary of `run` to summary.csv, plus one file per workload."""
    results_dir = Path(results_dir)

    by_workload: dict[str, list[WorkloadSummary]] = {}
    for summary in run.summaries:
        by_workload.setdefault(summary.workload, []).append(summary)
    for summaries in by_workload.values():
        write_workload_csv(summaries, results_dir)

    path = results_dir / RUN_SUMMARY_FILE
    written = _write_rows(path, run.summaries, append=True)
    logger.info("Appended %d summaries to %s", written, path)
    return path
