"""
Static helper functions for workload runners.
"""

import random
import re
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from packbench.core import bitpack
from packbench.core.workloads.types import KeyRange

_SQLSTATE_RE = re.compile(r"\(\s*(\d{5}|[0-9A-Z]{5})\s*\)")

# Key space reserved per tenant in tenant_module_range.
TENANT_KEY_STRIDE = 10**14
TENANT_KEY_SPAN = 10**6

# Generated datetimes are uniform over 2015-01-01 .. 2025-12-31T23:59:59.999Z.
_GEN_START_MS = bitpack.to_epoch_millis(datetime(2015, 1, 1, tzinfo=UTC))
_GEN_END_MS = bitpack.to_epoch_millis(datetime(2025, 12, 31, 23, 59, 59, 999_000, tzinfo=UTC))


def classify_sql_error(exc: BaseException) -> str:
    """
    Return a stable, low-cardinality category for an execution-time SQL error.
    """
    cause = getattr(exc, "cause", None) or exc
    sqlstate = getattr(cause, "sqlstate", None)
    if sqlstate:
        return f"SQLSTATE_{sqlstate}"

    m = _SQLSTATE_RE.search(str(cause or ""))
    if m:
        return f"SQLSTATE_{m.group(1)}"

    return type(cause).__name__


def tenant_key_base(tenant: int) -> int:
    """First tenant_module_range value of a tenant."""
    return int(tenant) * TENANT_KEY_STRIDE


def worker_key_range(tenant: int, worker_id: int, worker_count: int) -> KeyRange:
    """
    Slice of the tenant's key space owned by `worker_id`.

    Slices are contiguous and disjoint so concurrent workers touch disjoint rows.
    """
    worker_count = max(1, int(worker_count))
    span = max(1, TENANT_KEY_SPAN // worker_count)
    low = tenant_key_base(tenant) + worker_id * span
    return KeyRange(low=low, high=low + span - 1)


def split_evenly(total: int, parts: int) -> list[int]:
    """Split `total` into `parts` integers differing by at most one."""
    parts = max(1, int(parts))
    base, extra = divmod(max(0, int(total)), parts)
    return [base + (1 if i < extra else 0) for i in range(parts)]


def random_datetime(rnd: random.Random) -> datetime:
    """Uniform datetime between 2015 and 2025 (UTC, millisecond precision)."""
    return bitpack.from_epoch_millis(rnd.randint(_GEN_START_MS, _GEN_END_MS))


def generate_row(
    rnd: random.Random,
    model: str,
    tenant: int,
    key_range: KeyRange,
    *,
    label: str = "name",
) -> tuple[Any, ...]:
    """
    Build one bench_common row (without id) for the given storage model.

    Column order matches BenchStatements.insert_sql.
    """
    ts = random_datetime(rnd)
    if model == "bitpack":
        cf3 = bitpack.encode(ts, tenant)
    else:
        cf3 = bitpack.to_epoch_millis(ts)
    now_ms = bitpack.to_epoch_millis(datetime.now(UTC))
    return (
        cf3,
        key_range.low + rnd.randrange(key_range.span),
        rnd.getrandbits(62),
        Decimal(rnd.random() * 10000).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP),
        f"{label}-{rnd.randrange(1_000_000)}",
        f"blob-{rnd.randrange(1_000_000)}".encode(),
        now_ms,
        now_ms,
        rnd.randrange(2),
    )


def preview_query_for_log(query: str, *, max_chars: int = 2000) -> str:
    """Preview a query for logging, collapsing whitespace."""
    q = re.sub(r"\s+", " ", str(query or "")).strip()
    if len(q) > max_chars:
        return q[:max_chars] + "…[truncated]"
    return q


def sql_error_meta_for_log(exc: BaseException, *, max_chars: int = 500) -> dict[str, Any]:
    """
    Extract common asyncpg error fields for log context.
    """
    cause = getattr(exc, "cause", None) or exc
    out: dict[str, Any] = {}
    for key in ("sqlstate", "constraint_name", "table_name", "detail", "hint"):
        raw = getattr(cause, key, None)
        if raw is None:
            continue
        val = str(raw)
        if not val:
            continue
        if len(val) > max_chars:
            val = val[:max_chars] + "…[truncated]"
        out[key] = val
    return out
