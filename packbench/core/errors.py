"""
Error taxonomy for the benchmark engine.

Unit-level errors (ConflictExhausted, OperationFailed) are caught by workload
runners, which abandon only the current unit. CodecCorruption is normally
resolved by the decode fallback and only raised in strict mode.
"""

from typing import Any, Optional


class BenchmarkError(Exception):
    """Base class for benchmark errors."""


class TransientConflict(BenchmarkError):
    """
    A retryable conflict (deadlock, serialization failure, lock timeout).

    Database errors are classified by their own sqlstate; this class is for
    operations and test doubles that need to signal a conflict without a
    backend error. It carries a class-40 sqlstate so is_transient_conflict
    treats it like a serialization failure.
    """

    sqlstate = "40001"


class ConflictExhausted(BenchmarkError):
    """A unit kept hitting transient conflicts until the attempt bound."""

    def __init__(self, attempts: int, key: Any = None, cause: Optional[BaseException] = None):
        self.attempts = attempts
        self.key = key
        self.cause = cause
        super().__init__(
            f"transient conflict persisted after {attempts} attempts (key={key!r}): {cause}"
        )


class OperationFailed(BenchmarkError):
    """A non-retryable database error; raised after exactly one attempt."""

    def __init__(self, key: Any = None, cause: Optional[BaseException] = None):
        self.key = key
        self.cause = cause
        super().__init__(f"operation failed (key={key!r}): {cause}")


class RetryCancelled(BenchmarkError):
    """The stop signal was set before an attempt could start."""


class CodecCorruption(BenchmarkError):
    """A packed value could not be reconstructed into a calendar datetime."""

    def __init__(self, value: int, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"packed value {value} cannot be decoded: {reason}")


class MetricsInvariantError(BenchmarkError):
    """A workload summary violated total_time == db_time + processing_time."""
