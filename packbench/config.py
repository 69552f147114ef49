"""
Application settings.

Values are read from environment variables (or a local `.env` file) and
exposed through the module-level `settings` singleton.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Benchmark settings loaded from the environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Postgres connection
    POSTGRES_HOST: str = Field("127.0.0.1", description="Postgres host")
    POSTGRES_PORT: int = Field(5432, description="Postgres port")
    POSTGRES_DATABASE: str = Field("benchdb", description="Database name")
    POSTGRES_USER: str = Field("postgres", description="Username")
    POSTGRES_PASSWORD: str = Field("postgres", description="Password")
    POSTGRES_COMMAND_TIMEOUT: float = Field(
        60.0, gt=0, description="Statement timeout in seconds"
    )
    POOL_HEADROOM: int = Field(
        4, ge=0, description="Extra pool connections on top of the worker count"
    )

    # Benchmark defaults
    BENCH_MODEL: str = Field("epoch", description="Storage model: epoch or bitpack")
    BENCH_THREADS: int = Field(8, ge=1, description="Concurrent workers per workload")
    BENCH_ROWS: int = Field(200_000, ge=1, description="Rows inserted by the insert workload")
    BENCH_BATCH: int = Field(1_000, ge=1, description="Rows per batch / LIMIT")
    BENCH_TENANT: int = Field(42, ge=0, le=0xFFFF, description="Tenant tag")
    BENCH_CITUS: bool = Field(False, description="Distribute tables with Citus")
    BENCH_CITUS_COLUMNAR: bool = Field(
        False, description="Convert Citus tables to columnar storage"
    )

    # Conflict retry
    RETRY_MAX_ATTEMPTS: int = Field(3, ge=1, description="Attempts per unit on conflict")
    RETRY_DELAY_MS: int = Field(50, ge=0, description="Backoff between attempts")

    # Output
    RESULTS_DIR: str = Field("results", description="Directory for CSV reports")

    # Logging
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    LOG_FORMAT: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="logging format string",
    )
    LOG_FILE: Optional[str] = Field(None, description="Optional log file path")


settings = Settings()
