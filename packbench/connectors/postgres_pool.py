"""
Postgres Connection Pool Manager

Manages async connection pooling for Postgres with retry logic, and wraps
pooled connections in an operation handle with explicit transaction control.
"""

import logging
from typing import Optional, Any, Dict, List, Sequence
from contextlib import asynccontextmanager
import asyncio

import asyncpg
from asyncpg import Pool
from asyncpg.exceptions import (
    TooManyConnectionsError,
    CannotConnectNowError,
)

logger = logging.getLogger(__name__)


def parse_rowcount(status: Optional[str]) -> int:
    """
    Parse the affected row count from an asyncpg status string.

    "INSERT 0 5" -> 5, "UPDATE 3" -> 3, "DELETE 0" -> 0. Statuses without a
    trailing count (e.g. "BEGIN") yield 0.
    """
    if not status:
        return 0
    parts = str(status).split()
    if len(parts) >= 2:
        try:
            # Last number is the row count
            return int(parts[-1])
        except ValueError:
            return 0
    return 0


class PostgresOperationHandle:
    """
    One pooled connection, used by exactly one worker at a time.

    Transactions are driven with plain BEGIN / COMMIT / ROLLBACK so that the
    caller (RetryingExecutor) owns the boundary.
    """

    def __init__(self, conn: asyncpg.Connection, *, timeout: Optional[float] = None):
        self._conn = conn
        self._timeout = timeout

    @property
    def connection(self) -> asyncpg.Connection:
        return self._conn

    async def begin(self) -> None:
        await self._conn.execute(
            "BEGIN ISOLATION LEVEL READ COMMITTED", timeout=self._timeout
        )

    async def commit(self) -> None:
        await self._conn.execute("COMMIT", timeout=self._timeout)

    async def rollback(self) -> None:
        # Safe to call when no transaction is open (e.g. BEGIN itself failed).
        if self._conn.is_in_transaction():
            await self._conn.execute("ROLLBACK", timeout=self._timeout)

    async def execute(self, sql: str, *args: Any) -> int:
        """Execute a DML statement; returns the affected row count."""
        status = await self._conn.execute(sql, *args, timeout=self._timeout)
        return parse_rowcount(status)

    async def execute_many(self, sql: str, rows: Sequence[Sequence[Any]]) -> int:
        """Execute `sql` once per parameter row; returns the number of rows sent."""
        if not rows:
            return 0
        await self._conn.executemany(sql, rows, timeout=self._timeout)
        return len(rows)

    async def fetch(self, sql: str, *args: Any) -> List[asyncpg.Record]:
        return await self._conn.fetch(sql, *args, timeout=self._timeout)


class PostgresConnectionPool:
    """
    Async connection pool for Postgres with retry logic on creation.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        min_size: int = 1,
        max_size: int = 12,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        command_timeout: float = 60.0,
        pool_name: str = "benchmark",
    ):
        """
        Initialize Postgres connection pool.

        Args:
            host: Database host
            port: Database port
            database: Database name
            user: Username
            password: Password
            min_size: Minimum pool size
            max_size: Maximum pool size (workers + headroom)
            max_retries: Max retry attempts for transient failures
            retry_delay: Delay between retries in seconds
            command_timeout: Command timeout in seconds
            pool_name: Descriptive name for logging
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.min_size = min(min_size, max_size)
        self.max_size = max_size
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.command_timeout = command_timeout
        self.pool_name = pool_name

        self._pool: Optional[Pool] = None
        self._initialized = False

        logger.info(
            f"[{pool_name}] Postgres pool configured: {user}@{host}:{port}/{database}, "
            f"size={self.min_size}-{max_size}"
        )

    @classmethod
    def from_settings(cls, settings: Any, threads: int) -> "PostgresConnectionPool":
        """Pool sized for `threads` workers plus the configured headroom."""
        return cls(
            host=settings.POSTGRES_HOST,
            port=settings.POSTGRES_PORT,
            database=settings.POSTGRES_DATABASE,
            user=settings.POSTGRES_USER,
            password=settings.POSTGRES_PASSWORD,
            max_size=int(threads) + int(settings.POOL_HEADROOM),
            command_timeout=settings.POSTGRES_COMMAND_TIMEOUT,
        )

    async def initialize(self):
        """Initialize the connection pool."""
        if self._initialized:
            return

        logger.info(f"[{self.pool_name}] Creating Postgres connection pool...")

        for attempt in range(self.max_retries):
            try:
                self._pool = await asyncpg.create_pool(
                    host=self.host,
                    port=self.port,
                    database=self.database,
                    user=self.user,
                    password=self.password,
                    min_size=self.min_size,
                    max_size=self.max_size,
                    command_timeout=self.command_timeout,
                )

                self._initialized = True
                logger.info(
                    f"[{self.pool_name}] Postgres pool ready "
                    f"(size: {self.min_size}-{self.max_size})"
                )
                return

            except (CannotConnectNowError, TooManyConnectionsError) as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"Pool creation attempt {attempt + 1} failed, retrying: {e}"
                    )
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
                else:
                    logger.error(
                        f"Failed to create pool after {self.max_retries} attempts"
                    )
                    raise
            except Exception as e:
                logger.error(f"Unexpected error creating pool: {e}")
                raise

    @asynccontextmanager
    async def acquire(self):
        """
        Borrow a connection wrapped in an operation handle.

        Usage:
            async with pool.acquire() as handle:
                rows = await handle.fetch("SELECT 1")

        Yields:
            PostgresOperationHandle
        """
        if not self._initialized:
            await self.initialize()

        if self._pool is None:
            raise RuntimeError("Pool not initialized")

        async with self._pool.acquire() as conn:
            yield PostgresOperationHandle(conn, timeout=self.command_timeout)

    async def get_pool_stats(self) -> Dict[str, Any]:
        """
        Get connection pool statistics.

        Returns:
            Dict with pool statistics
        """
        if not self._initialized or self._pool is None:
            return {
                "initialized": False,
                "size": 0,
                "free": 0,
            }

        return {
            "initialized": True,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "size": self._pool.get_size(),
            "free": self._pool.get_idle_size(),
            "in_use": self._pool.get_size() - self._pool.get_idle_size(),
        }

    async def close(self):
        """Close the connection pool."""
        if self._pool is not None:
            logger.info(f"[{self.pool_name}] Closing Postgres connection pool...")
            await self._pool.close()
            self._pool = None
            self._initialized = False
            logger.info(f"[{self.pool_name}] Postgres pool closed")
