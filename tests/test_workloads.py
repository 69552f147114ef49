"""
Tests for the workload runners, driven by fake pools and handles.
"""

import asyncio
import logging
from datetime import UTC, datetime

import pytest

from packbench.core import bitpack
from packbench.core.retry import RetryingExecutor
from packbench.core.statements import BenchStatements
from packbench.core.workloads import (
    DeleteRunner,
    ExtractRunner,
    InsertRunner,
    SelectRunner,
    SkipReason,
    TxnMixedRunner,
    UpdateRunner,
)
from packbench.core.workloads.helpers import (
    TENANT_KEY_STRIDE,
    classify_sql_error,
    split_evenly,
    worker_key_range,
)
from packbench.core.workloads.select import convert_row
from tests.fakes import BrokenPool, FakeHandle, FakePool, deadlock, unique_violation

pytestmark = pytest.mark.asyncio


def _executor(stop_event=None) -> RetryingExecutor:
    return RetryingExecutor(max_attempts=3, retry_delay_ms=0, stop_event=stop_event)


def _runner(cls, scenario, pool, model="bitpack", **kwargs):
    return cls(scenario, pool, BenchStatements(model=model), _executor(), **kwargs)


class TestKeySpace:
    """Tests for worker key slicing."""

    async def test_worker_slices_are_disjoint_and_contiguous(self) -> None:
        ranges = [worker_key_range(42, w, 4) for w in range(4)]

        assert ranges[0].low == 42 * TENANT_KEY_STRIDE
        for a, b in zip(ranges, ranges[1:]):
            assert b.low == a.high + 1
        assert all(r.span == 250_000 for r in ranges)

    async def test_split_evenly(self) -> None:
        assert split_evenly(10, 3) == [4, 3, 3]
        assert split_evenly(2, 4) == [1, 1, 0, 0]
        assert sum(split_evenly(1000, 7)) == 1000

    async def test_classify_sql_error(self) -> None:
        assert classify_sql_error(deadlock()) == "SQLSTATE_40P01"
        assert classify_sql_error(RuntimeError("x")) == "RuntimeError"


class TestInsertRunner:
    """Tests for InsertRunner."""

    async def test_inserts_all_rows_in_batches(self, small_scenario, fake_pool) -> None:
        runner = _runner(InsertRunner, small_scenario, fake_pool)

        [result] = await runner.run()

        assert result.workload == "insert"
        assert result.operation_count == 10
        assert result.total.count() == 10
        assert result.db.count() == 4
        assert result.processing.count() == 4
        assert result.total_values == 10
        assert result.unit_values == 4
        assert result.unit_total_ns == result.unit_db_ns + result.unit_processing_ns
        assert result.failed_units == 0
        assert result.elapsed_seconds >= 0
        assert fake_pool.acquired == fake_pool.released == 2

        batch_sizes = sorted(
            len(call[2][0]) for h in fake_pool.handles for call in h.calls_of("execute_many")
        )
        assert batch_sizes == [1, 1, 4, 4]
        for h in fake_pool.handles:
            assert h.commits == h.begins == 2

    async def test_generated_rows_carry_tenant_and_worker_keys(
        self, small_scenario, fake_pool
    ) -> None:
        await _runner(InsertRunner, small_scenario, fake_pool).run()

        for worker_id, handle in enumerate(fake_pool.handles):
            key_range = worker_key_range(42, worker_id, 2)
            for _, _, (rows,) in handle.calls_of("execute_many"):
                for row in rows:
                    assert len(row) == 9
                    assert bitpack.decode_tag(row[0]) == 42
                    assert 2015 <= bitpack.year_of(row[0]) <= 2025
                    assert key_range.low <= row[1] <= key_range.high

    async def test_epoch_rows_store_epoch_millis(self, small_scenario, fake_pool) -> None:
        await _runner(InsertRunner, small_scenario, fake_pool, model="epoch").run()

        low = bitpack.to_epoch_millis(datetime(2015, 1, 1, tzinfo=UTC))
        high = bitpack.to_epoch_millis(datetime(2026, 1, 1, tzinfo=UTC))
        rows = fake_pool.handles[0].calls_of("execute_many")[0][2][0]
        assert all(low <= row[0] < high for row in rows)
        assert "bench_common_epoch" in fake_pool.handles[0].calls[0][1]

    async def test_failed_batch_is_abandoned_and_worker_continues(
        self, small_scenario, caplog
    ) -> None:
        pool = FakePool(lambda: FakeHandle(failures=[unique_violation()]))
        runner = _runner(InsertRunner, small_scenario, pool)

        with caplog.at_level(logging.WARNING):
            [result] = await runner.run()

        assert result.failed_units == 2
        assert result.operation_count == 2
        assert "abandoned" in caplog.text
        assert "SQLSTATE_23505" in caplog.text

    async def test_conflicts_exhausting_retries_abandon_the_unit(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(failures=[deadlock(), deadlock(), deadlock()]))
        [result] = await _runner(InsertRunner, small_scenario, pool).run()

        assert result.failed_units == 2
        for h in pool.handles:
            assert h.rollbacks == 3
            assert h.commits == 1

    async def test_connection_failure_fails_the_workload(self, small_scenario) -> None:
        runner = _runner(InsertRunner, small_scenario, BrokenPool())

        with pytest.raises(ConnectionRefusedError):
            await runner.run()

    async def test_stop_event_prevents_new_units(self, small_scenario, fake_pool) -> None:
        stop = asyncio.Event()
        stop.set()
        runner = _runner(InsertRunner, small_scenario, fake_pool, stop_event=stop)

        [result] = await runner.run()

        assert result.operation_count == 0
        assert result.elapsed_seconds == 0


class TestUpdateRunner:
    """Tests for UpdateRunner."""

    async def test_stops_at_worker_share_of_target(self, small_scenario, fake_pool) -> None:
        [result] = await _runner(UpdateRunner, small_scenario, fake_pool).run()

        assert result.operation_count == 6
        assert result.db.count() == 6
        assert result.total.count() == 6

        calls = fake_pool.handles[0].calls_of("execute")
        assert len(calls) == 3
        key_range = worker_key_range(42, 0, 2)
        step = key_range.span // small_scenario.update_max_iterations
        assert calls[0][2] == (key_range.low, key_range.high, 3)
        assert calls[1][2] == (key_range.low + step, key_range.high, 2)
        assert "SET cf3 = cf3 + 1000" in calls[0][1]

    async def test_stops_when_nothing_is_updated(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(rowcounts=[2, 0]))
        [result] = await _runner(UpdateRunner, small_scenario, pool).run()

        assert result.operation_count == 4
        assert all(len(h.calls_of("execute")) == 2 for h in pool.handles)

    async def test_respects_max_iterations(self, small_scenario) -> None:
        scenario = small_scenario.model_copy(
            update={"update_target_rows": 10_000, "update_max_iterations": 3}
        )
        pool = FakePool(lambda: FakeHandle(default_rowcount=1))
        [result] = await _runner(UpdateRunner, scenario, pool).run()

        assert result.operation_count == 6
        assert all(len(h.calls_of("execute")) == 3 for h in pool.handles)


class TestDeleteRunner:
    """Tests for DeleteRunner."""

    async def test_deletes_until_share_reached(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(rowcounts=[2, 1]))
        [result] = await _runner(DeleteRunner, small_scenario, pool).run()

        assert result.workload == "delete"
        assert result.operation_count == 6
        calls = pool.handles[0].calls_of("execute")
        assert [c[2][2] for c in calls] == [3, 1]
        assert calls[0][1].startswith("DELETE FROM bench_common_bitpack")

    async def test_stops_when_table_slice_is_empty(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(rowcounts=[0]))
        [result] = await _runner(DeleteRunner, small_scenario, pool).run()

        assert result.operation_count == 0
        assert result.db.count() == 2

    async def test_failed_statement_does_not_end_worker(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(failures=[unique_violation()], rowcounts=[3]))
        [result] = await _runner(DeleteRunner, small_scenario, pool).run()

        assert result.failed_units == 2
        assert result.operation_count == 6


def _select_rows(sql, args):
    return [
        {"id": 1, "cf3": bitpack.encode(datetime(2021, 4, 5, tzinfo=UTC), 42), "other_varchar": "a"},
        {"id": 2, "cf3": bitpack.pack_fields(42, 2023, 2, 30), "other_varchar": "b"},
        {"id": 3, "cf3": None, "other_varchar": None},
    ]


class TestSelectRunner:
    """Tests for SelectRunner."""

    async def test_retrieval_and_processing_results(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(fetch_rows=_select_rows))
        retrieval, processing = await _runner(SelectRunner, small_scenario, pool).run()

        assert (retrieval.workload, retrieval.operation) == ("select", "retrieval")
        assert retrieval.throughput_applicable is True
        assert retrieval.operation_count == 4
        assert retrieval.db.count() == 4
        assert retrieval.total.count() == 4

        assert processing.operation == "processing"
        assert processing.throughput_applicable is False
        assert processing.operation_count == 12
        assert processing.skipped == 8
        assert processing.total.count() == 12
        assert processing.processing.count() == 12
        assert processing.db.count() == 0
        assert processing.unit_db_ns == 0
        assert processing.unit_total_ns == processing.unit_processing_ns

    async def test_query_targets_worker_slice(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(fetch_rows=[]))
        await _runner(SelectRunner, small_scenario, pool).run()

        key_range = worker_key_range(42, 1, 2)
        for _, sql, args in pool.handles[1].calls_of("fetch"):
            low, high, limit = args
            assert key_range.low <= low <= key_range.high
            assert high == key_range.high
            assert limit == small_scenario.batch_size
            assert "LIMIT $3" in sql

    async def test_default_iterations(self, small_scenario) -> None:
        scenario = small_scenario.model_copy(update={"select_iterations": None})
        assert scenario.effective_select_iterations == 100

    async def test_convert_row_outcomes(self) -> None:
        rows = _select_rows("", ())

        assert convert_row(rows[0], "bitpack").value == datetime(2021, 4, 5, tzinfo=UTC)
        assert convert_row(rows[1], "bitpack").skip_reason == SkipReason.CORRUPT_VALUE
        assert convert_row(rows[2], "bitpack").skip_reason == SkipReason.NULL_VALUE

        epoch_row = {"cf3": 1710498645123, "other_varchar": "x"}
        assert convert_row(epoch_row, "epoch").value == datetime(
            2024, 3, 15, 10, 30, 45, 123_000, tzinfo=UTC
        )
        huge = {"cf3": 10**18, "other_varchar": "x"}
        assert convert_row(huge, "epoch").skip_reason == SkipReason.OUT_OF_RANGE

    async def test_non_integer_cf3_is_skipped_as_corrupt(self) -> None:
        for model in ("bitpack", "epoch"):
            outcome = convert_row({"cf3": "2024-03-15", "other_varchar": "x"}, model)
            assert outcome.skip_reason == SkipReason.CORRUPT_VALUE
            assert "not an integer" in outcome.detail

        outcome = convert_row({"cf3": object(), "other_varchar": None}, "bitpack")
        assert outcome.skip_reason == SkipReason.CORRUPT_VALUE


class TestExtractRunner:
    """Tests for ExtractRunner."""

    async def test_runs_group_by_on_one_worker(self, small_scenario) -> None:
        rows = [{"yr": 2020, "cnt": 5}, {"yr": 2021, "cnt": 7}]
        pool = FakePool(lambda: FakeHandle(fetch_rows=rows))
        runner = _runner(ExtractRunner, small_scenario, pool)

        [result] = await runner.run()

        assert pool.acquired == 1
        assert runner.year_counts == {2020: 5, 2021: 7}
        assert result.operation_count == 1
        assert result.total.count() == result.db.count() == result.processing.count() == 1
        sql = pool.handles[0].calls_of("fetch")[0][1]
        assert "(cf3 >> 36) & 2047" in sql
        assert "GROUP BY" in sql

    async def test_epoch_year_expression(self) -> None:
        sql = BenchStatements(model="epoch").extract_sql
        assert "to_timestamp(cf3::numeric / 1000)" in sql

    async def test_iterations(self, small_scenario) -> None:
        scenario = small_scenario.model_copy(update={"extract_iterations": 3})
        pool = FakePool(lambda: FakeHandle(fetch_rows=[]))
        [result] = await _runner(ExtractRunner, scenario, pool).run()

        assert result.operation_count == 3


class TestTxnMixedRunner:
    """Tests for TxnMixedRunner."""

    async def test_inserts_and_updates_commit_together(self, small_scenario, fake_pool) -> None:
        [result] = await _runner(TxnMixedRunner, small_scenario, fake_pool).run()

        assert result.operation_count == 4
        assert result.total.count() == 4
        for h in fake_pool.handles:
            assert h.commits == 2
            calls = h.calls_of("execute")
            inserts = [c for c in calls if c[1].startswith("INSERT")]
            updates = [c for c in calls if c[1].startswith("UPDATE")]
            assert len(inserts) == 6
            assert len(updates) == 4
            assert all(1 <= c[2][1] <= 1000 for c in updates)

    async def test_conflict_retries_the_whole_transaction(self, small_scenario) -> None:
        pool = FakePool(lambda: FakeHandle(failures=[deadlock()]))
        [result] = await _runner(TxnMixedRunner, small_scenario, pool).run()

        assert result.failed_units == 0
        assert result.operation_count == 4
        for h in pool.handles:
            assert h.rollbacks == 1
            assert len(h.calls_of("execute")) == 11
