"""
Global pytest configuration and fixtures for packbench tests.

This module provides:
- A fake pool (see tests/fakes.py; no live database)
- A small benchmark scenario suitable for fast unit tests
"""

from __future__ import annotations

import pytest

from packbench.core.statements import BenchStatements
from packbench.models.scenario import BenchmarkScenario
from tests.fakes import FakePool


@pytest.fixture
def small_scenario() -> BenchmarkScenario:
    return BenchmarkScenario(
        model="bitpack",
        threads=2,
        rows=10,
        batch_size=4,
        tenant=42,
        select_iterations=4,
        txn_iterations=4,
        txn_ops_per_txn=3,
        update_target_rows=6,
        update_max_iterations=10,
        delete_target_rows=6,
        delete_max_iterations=10,
        retry_max_attempts=3,
        retry_delay_ms=0,
        seed=7,
    )


@pytest.fixture
def fake_pool() -> FakePool:
    return FakePool()


@pytest.fixture
def bitpack_statements() -> BenchStatements:
    return BenchStatements(model="bitpack")


@pytest.fixture
def epoch_statements() -> BenchStatements:
    return BenchStatements(model="epoch")
