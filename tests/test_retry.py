"""
Tests for RetryingExecutor and conflict classification.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from packbench.core.errors import (
    ConflictExhausted,
    OperationFailed,
    RetryCancelled,
    TransientConflict,
)
from packbench.core.retry import RetryingExecutor, is_transient_conflict
from tests.fakes import FakeHandle, SqlStateError, deadlock, unique_violation

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    "sqlstate,expected",
    [
        ("40001", True),
        ("40P01", True),
        ("40000", True),
        ("55P03", True),
        ("23505", False),
        ("57014", False),
        ("", False),
    ],
)
async def test_is_transient_conflict(sqlstate: str, expected: bool) -> None:
    assert is_transient_conflict(SqlStateError(sqlstate)) is expected


async def test_plain_exceptions_are_not_conflicts() -> None:
    assert is_transient_conflict(RuntimeError("boom")) is False
    assert is_transient_conflict(TransientConflict("scripted")) is True


async def test_success_commits_once_and_returns_result() -> None:
    handle = FakeHandle(rowcounts=[5])
    executor = RetryingExecutor(retry_delay_ms=0)

    result = await executor.run(handle, lambda h: h.execute("UPDATE t"), key="k")

    assert result == 5
    assert (handle.begins, handle.commits, handle.rollbacks) == (1, 1, 0)


async def test_persistent_conflict_makes_exactly_three_attempts() -> None:
    handle = FakeHandle(failures=[deadlock() for _ in range(10)])
    executor = RetryingExecutor(max_attempts=3, retry_delay_ms=0)

    with pytest.raises(ConflictExhausted) as exc_info:
        await executor.run(handle, lambda h: h.execute("UPDATE t"), key=(0, 1))

    assert exc_info.value.attempts == 3
    assert exc_info.value.key == (0, 1)
    assert len(handle.calls_of("execute")) == 3
    assert handle.begins == 3
    assert handle.rollbacks == 3
    assert handle.commits == 0
    assert handle.in_transaction is False


async def test_conflict_then_success_is_retried() -> None:
    handle = FakeHandle(failures=[deadlock(), None], rowcounts=[7])
    executor = RetryingExecutor(max_attempts=3, retry_delay_ms=0)

    result = await executor.run(handle, lambda h: h.execute("UPDATE t"))

    assert result == 7
    assert handle.begins == 2
    assert handle.rollbacks == 1
    assert handle.commits == 1


async def test_non_transient_error_fails_after_one_attempt() -> None:
    handle = FakeHandle(failures=[unique_violation()])
    executor = RetryingExecutor(max_attempts=3, retry_delay_ms=0)

    with pytest.raises(OperationFailed) as exc_info:
        await executor.run(handle, lambda h: h.execute("INSERT"), key="row-1")

    assert exc_info.value.cause.sqlstate == "23505"
    assert handle.begins == 1
    assert handle.rollbacks == 1
    assert handle.commits == 0


async def test_failed_rollback_does_not_mask_cancellation(caplog) -> None:
    started = asyncio.Event()
    handle = FakeHandle()
    handle.rollback = AsyncMock(side_effect=RuntimeError("connection lost"))
    executor = RetryingExecutor(retry_delay_ms=0)

    async def slow(h):
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(executor.run(handle, slow, key=(0, 3)))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    handle.rollback.assert_awaited_once()
    assert "rollback after cancellation failed" in caplog.text


async def test_transient_conflict_is_retried() -> None:
    calls = []

    async def flaky(h):
        calls.append(1)
        if len(calls) == 1:
            raise TransientConflict("row version changed")
        return "ok"

    handle = FakeHandle()
    executor = RetryingExecutor(retry_delay_ms=0)

    assert await executor.run(handle, flaky) == "ok"
    assert handle.rollbacks == 1
    assert handle.commits == 1


async def test_backoff_sleeps_between_attempts(monkeypatch) -> None:
    sleep = AsyncMock()
    monkeypatch.setattr(asyncio, "sleep", sleep)
    handle = FakeHandle(failures=[deadlock(), deadlock(), deadlock()])
    executor = RetryingExecutor(max_attempts=3, retry_delay_ms=50)

    with pytest.raises(ConflictExhausted):
        await executor.run(handle, lambda h: h.execute("UPDATE t"))

    assert sleep.await_count == 2
    sleep.assert_awaited_with(0.05)


async def test_failed_rollback_surfaces_as_operation_failed() -> None:
    handle = FakeHandle(failures=[deadlock()])
    handle.rollback = AsyncMock(side_effect=RuntimeError("connection lost"))
    executor = RetryingExecutor(retry_delay_ms=0)

    with pytest.raises(OperationFailed) as exc_info:
        await executor.run(handle, lambda h: h.execute("UPDATE t"))

    assert exc_info.value.cause.sqlstate == "40P01"
    assert isinstance(exc_info.value.__cause__, RuntimeError)


async def test_commit_failure_is_rolled_back() -> None:
    handle = FakeHandle()
    handle.commit = AsyncMock(side_effect=SqlStateError("40001", "could not serialize"))
    executor = RetryingExecutor(max_attempts=2, retry_delay_ms=0)

    with pytest.raises(ConflictExhausted):
        await executor.run(handle, lambda h: h.execute("UPDATE t"))

    assert handle.begins == 2
    assert handle.rollbacks == 2


async def test_stop_event_cancels_before_attempt() -> None:
    stop = asyncio.Event()
    stop.set()
    handle = FakeHandle()
    executor = RetryingExecutor(retry_delay_ms=0, stop_event=stop)

    with pytest.raises(RetryCancelled):
        await executor.run(handle, lambda h: h.execute("UPDATE t"))

    assert handle.begins == 0


async def test_task_cancellation_rolls_back_and_propagates() -> None:
    started = asyncio.Event()
    handle = FakeHandle()
    executor = RetryingExecutor(retry_delay_ms=0)

    async def slow(h):
        started.set()
        await asyncio.sleep(10)

    task = asyncio.create_task(executor.run(handle, slow))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert handle.rollbacks == 1
    assert handle.commits == 0


async def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RetryingExecutor(max_attempts=0)
