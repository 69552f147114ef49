"""
Conflict retry around one transactional unit of work.

Every attempt runs inside an explicit transaction on the caller's handle:
begin, run the operation, commit. Any error rolls the attempt back. Transient
conflicts (deadlock, serialization failure, lock timeout) are retried after a
fixed backoff up to `max_attempts`; every other error fails immediately.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from packbench.core.errors import (
    ConflictExhausted,
    OperationFailed,
    RetryCancelled,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_MS = 50

# SQLSTATE class 40 = transaction rollback (40001 serialization, 40P01 deadlock).
_CONFLICT_SQLSTATE_CLASSES = ("40",)
# 55P03 = lock_not_available (lock_timeout / NOWAIT).
_CONFLICT_SQLSTATES = frozenset({"55P03"})


def is_transient_conflict(exc: BaseException) -> bool:
    """True when the backend reported a conflict that may succeed on retry."""
    sqlstate = getattr(exc, "sqlstate", None)
    if not sqlstate:
        return False
    sqlstate = str(sqlstate).upper()
    return sqlstate in _CONFLICT_SQLSTATES or sqlstate.startswith(
        _CONFLICT_SQLSTATE_CLASSES
    )


@dataclass
class RetryContext:
    """Per-call retry state; discarded when the call returns or raises."""

    handle: Any
    key: Any
    attempt: int = 0
    delay_s: float = 0.0


class RetryingExecutor:
    """
    Runs a unit of work with bounded retry on transient conflicts.

    Usage:
        executor = RetryingExecutor(max_attempts=3, retry_delay_ms=50)
        rows = await executor.run(handle, lambda h: h.execute(sql, *args), key=batch_no)
    """

    def __init__(
        self,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay_ms: float = DEFAULT_RETRY_DELAY_MS,
        *,
        is_conflict: Callable[[BaseException], bool] = is_transient_conflict,
        stop_event: Optional[asyncio.Event] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = int(max_attempts)
        self.retry_delay_ms = float(retry_delay_ms)
        self._is_conflict = is_conflict
        self._stop_event = stop_event

    async def run(
        self,
        handle: Any,
        operation: Callable[[Any], Awaitable[T]],
        *,
        key: Any = None,
    ) -> T:
        """
        Execute `operation(handle)` inside a transaction, retrying on conflict.

        Raises:
            ConflictExhausted: every attempt hit a transient conflict.
            OperationFailed: a non-conflict error (after a single attempt) or a
                failed rollback.
            RetryCancelled: the stop event was set before an attempt.
        """
        ctx = RetryContext(handle=handle, key=key, delay_s=self.retry_delay_ms / 1000.0)

        while True:
            if self._stop_event is not None and self._stop_event.is_set():
                raise RetryCancelled(f"stopped before attempt {ctx.attempt + 1} (key={key!r})")

            ctx.attempt += 1
            try:
                await handle.begin()
                result = await operation(handle)
                await handle.commit()
                if ctx.attempt > 1:
                    logger.debug("Unit %r succeeded on attempt %d", key, ctx.attempt)
                return result
            except asyncio.CancelledError:
                await self._rollback_after_cancel(ctx)
                raise
            except Exception as exc:
                await self._rollback(ctx, exc)

                if not self._is_conflict(exc):
                    raise OperationFailed(key=key, cause=exc) from exc

                if ctx.attempt >= self.max_attempts:
                    logger.warning(
                        "Unit %r: conflict persisted after %d attempts: %s",
                        key,
                        ctx.attempt,
                        exc,
                    )
                    raise ConflictExhausted(ctx.attempt, key=key, cause=exc) from exc

                logger.debug(
                    "Unit %r: transient conflict on attempt %d/%d (%s), retrying in %.0fms",
                    key,
                    ctx.attempt,
                    self.max_attempts,
                    getattr(exc, "sqlstate", type(exc).__name__),
                    ctx.delay_s * 1000.0,
                )
                if ctx.delay_s > 0:
                    await asyncio.sleep(ctx.delay_s)

    async def _rollback_after_cancel(self, ctx: RetryContext) -> None:
        try:
            await ctx.handle.rollback()
        except Exception as rollback_exc:
            logger.error(
                "Unit %r: rollback after cancellation failed: %s", ctx.key, rollback_exc
            )

    async def _rollback(self, ctx: RetryContext, cause: Optional[BaseException]) -> None:
        try:
            await ctx.handle.rollback()
        except Exception as rollback_exc:
            logger.error("Unit %r: rollback failed: %s", ctx.key, rollback_exc)
            raise OperationFailed(key=ctx.key, cause=cause or rollback_exc) from rollback_exc
