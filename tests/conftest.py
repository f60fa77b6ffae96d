"""
Pytest configuration for sqldojo.

Provides fixtures for:
- Settings overrides for unit and integration tests
- A scriptable fake engine factory, so pool and runner tests need no database
- Real DuckDB-backed pools and runners for integration tests
"""

from __future__ import annotations

import asyncio
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio

from sqldojo.config import Settings, get_settings
from sqldojo.domain.models import SchemaId
from sqldojo.errors import ExecutionError
from sqldojo.infrastructure.engine import RawResult
from sqldojo.infrastructure.pool import InstancePool
from sqldojo.orchestrator import QueryRunner


class _FakeEngine:
    """In-process stand-in for a DuckDB instance, driven by its factory's settings."""

    def __init__(self, factory: "_FakeEngineFactory", number: int) -> None:
        self._factory = factory
        self.number = number
        self.schema_id: Optional[SchemaId] = None
        self.broken = False
        self.closed = False
        self.resets = 0
        self.seeds: List[SchemaId] = []
        self.executed: List[str] = []

    def __repr__(self) -> str:
        return f"_FakeEngine(#{self.number})"

    async def reset(self) -> None:
        await asyncio.sleep(0)
        if self._factory.fail_reset:
            raise ExecutionError("reset failed")
        self.resets += 1
        self.schema_id = None

    async def seed(self, schema_id: SchemaId, script: str) -> None:
        await asyncio.sleep(0)
        if self._factory.fail_seed:
            raise ExecutionError("seed failed")
        self.seeds.append(schema_id)
        self.schema_id = schema_id

    async def execute(self, sql: str) -> RawResult:
        self.executed.append(sql)
        self._factory.running += 1
        self._factory.max_running = max(self._factory.max_running, self._factory.running)
        try:
            await asyncio.sleep(self._factory.execute_delay)
            if sql in self._factory.errors:
                raise ExecutionError(self._factory.errors[sql])
            if sql in self._factory.broken_on:
                self.broken = True
                raise ExecutionError("Statement timed out after 5 ms")
            return self._factory.results.get(sql, RawResult())
        finally:
            self._factory.running -= 1

    async def close(self) -> None:
        if self._factory.fail_close:
            raise RuntimeError("close failed")
        self.closed = True


class _FakeEngineFactory:
    """Engine factory recording every instance it creates."""

    def __init__(self) -> None:
        self.created: List[_FakeEngine] = []
        self.results: Dict[str, RawResult] = {}
        self.errors: Dict[str, str] = {}
        self.broken_on: set = set()
        self.execute_delay = 0.0
        self.fail_create = False
        self.fail_seed = False
        self.fail_reset = False
        self.fail_close = False
        self.running = 0
        self.max_running = 0

    async def __call__(self) -> _FakeEngine:
        await asyncio.sleep(0)
        if self.fail_create:
            raise ExecutionError("Failed to start engine instance")
        engine = _FakeEngine(self, len(self.created) + 1)
        self.created.append(engine)
        return engine


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Keep environment overrides from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def engine_factory() -> _FakeEngineFactory:
    return _FakeEngineFactory()


@pytest.fixture
def fake_pool(engine_factory: _FakeEngineFactory) -> InstancePool:
    return InstancePool(engine_factory, max_pool_size=2, max_total_instances=4)


@pytest.fixture
def test_settings() -> Settings:
    """
    Settings with small limits so exhaustion and eviction are easy to reach.
    """
    return Settings(
        log_level="DEBUG",
        pool_max_per_schema=2,
        pool_max_total=4,
        statement_timeout_ms=5_000,
        engine_threads=1,
        engine_memory_limit="128MB",
    )


@pytest_asyncio.fixture
async def duckdb_runner(test_settings: Settings) -> AsyncGenerator[QueryRunner, None]:
    """
    Runner backed by real in-memory DuckDB instances; drained after the test.
    """
    runner = QueryRunner.from_settings(test_settings)
    try:
        yield runner
    finally:
        await runner.aclose()
