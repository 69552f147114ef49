"""
Database Schema Setup

Creates the benchmark table for a storage model (rerunnable, idempotent) and
clears it before a run. On Citus the table is distributed by
tenant_module_range and can optionally be switched to columnar storage.

Usage:
    python -m packbench.setup_schema [epoch|bitpack]
"""

import asyncio
import logging
import sys
from typing import Any

import asyncpg

from packbench.config import settings
from packbench.connectors.postgres_pool import PostgresConnectionPool
from packbench.core.statements import BenchStatements

logger = logging.getLogger(__name__)


async def create_tables(
    pool: Any, statements: BenchStatements, *, columnar: bool = False
) -> None:
    """Create the table and its tenant_module_range index if missing."""
    async with pool.acquire() as handle:
        logger.info("Creating table %s (citus=%s)", statements.table, statements.citus)
        await handle.execute(statements.create_table_sql)
        await handle.execute(statements.create_index_sql)

        if not statements.citus:
            return

        try:
            await handle.fetch(statements.citus_distribute_sql)
            logger.info("Distributed %s by tenant_module_range", statements.table)
        except asyncpg.PostgresError as e:
            # Already distributed, or the extension is missing.
            logger.warning("Citus distribution of %s skipped: %s", statements.table, e)

        if columnar:
            try:
                await handle.fetch(statements.citus_columnar_sql)
                logger.info("Converted %s to columnar storage", statements.table)
            except asyncpg.PostgresError as e:
                logger.warning("Columnar conversion of %s skipped: %s", statements.table, e)


async def clear_tables(pool: Any, statements: BenchStatements) -> None:
    """Remove every row; falls back to DELETE when TRUNCATE is rejected on Citus."""
    async with pool.acquire() as handle:
        try:
            await handle.execute(statements.truncate_sql)
        except asyncpg.PostgresError as e:
            if not statements.citus:
                raise
            logger.warning(
                "TRUNCATE %s failed on Citus (%s), falling back to DELETE",
                statements.table,
                e,
            )
            deleted = await handle.execute(statements.delete_all_sql)
            logger.info("Deleted %d rows from %s", deleted, statements.table)
        else:
            logger.info("Truncated %s", statements.table)


async def setup_schema(
    pool: Any,
    model: str,
    *,
    citus: bool = False,
    columnar: bool = False,
) -> BenchStatements:
    """Create and clear the table for `model`; returns its statement catalog."""
    statements = BenchStatements(model=str(model), citus=citus)
    await create_tables(pool, statements, columnar=columnar)
    await clear_tables(pool, statements)
    return statements


async def _main(model: str) -> None:
    pool = PostgresConnectionPool.from_settings(settings, threads=1)
    try:
        await pool.initialize()
        await setup_schema(
            pool,
            model,
            citus=settings.BENCH_CITUS,
            columnar=settings.BENCH_CITUS_COLUMNAR,
        )
    finally:
        await pool.close()


def main() -> int:
    logging.basicConfig(level=settings.LOG_LEVEL, format=settings.LOG_FORMAT)
    model = sys.argv[1] if len(sys.argv) > 1 else settings.BENCH_MODEL
    if model not in ("epoch", "bitpack"):
        logger.error("Unknown storage model %r (expected epoch or bitpack)", model)
        return 2
    try:
        asyncio.run(_main(model))
    except Exception as e:
        logger.error("Schema setup failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
