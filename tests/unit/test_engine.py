from __future__ import annotations

import asyncio
import threading
from typing import Any, List, Optional, Sequence, Tuple

import duckdb
import pytest

from sqldojo.errors import StatementTimeoutError
from sqldojo.infrastructure.engine import DuckDBEngine

WAIT_SECONDS = 5
SHORT_TIMEOUT_MS = 50


class _FakeCursor:
    def __init__(self, description: Optional[Sequence[Tuple]], rows: List[Tuple[Any, ...]]) -> None:
        self.description = description
        self._rows = rows

    def fetchall(self) -> List[Tuple[Any, ...]]:
        return list(self._rows)

    def fetchone(self) -> Optional[Tuple[Any, ...]]:
        return self._rows[0] if self._rows else None


class _BlockingConnection:
    """Blocks every statement until interrupted, like a runaway query."""

    def __init__(self) -> None:
        self.started = threading.Event()
        self.interrupted = threading.Event()
        self.finished = threading.Event()

    def execute(self, sql: str, parameters: Any = None) -> _FakeCursor:
        self.started.set()
        self.interrupted.wait(WAIT_SECONDS)
        self.finished.set()
        raise duckdb.Error("INTERRUPT Error: Interrupted!")

    def interrupt(self) -> None:
        self.interrupted.set()

    def close(self) -> None:
        pass


class _ScriptedConnection:
    def __init__(self, locked: bool = False) -> None:
        self.locked = locked
        self.executed: List[str] = []

    def execute(self, sql: str, parameters: Any = None) -> _FakeCursor:
        self.executed.append(sql)
        if sql.startswith("SELECT current_setting('lock_configuration')"):
            return _FakeCursor(None, [(self.locked,)])
        return _FakeCursor([("x", None, None, None, None, None, None)], [(1,)])

    def interrupt(self) -> None:
        pass

    def close(self) -> None:
        pass


@pytest.mark.asyncio
async def test_cancelled_execute_waits_for_worker_thread() -> None:
    conn = _BlockingConnection()
    engine = DuckDBEngine(conn, baseline_settings={})

    task = asyncio.create_task(engine.execute("SELECT 1"))
    assert await asyncio.to_thread(conn.started.wait, WAIT_SECONDS)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert engine.broken
    assert conn.interrupted.is_set()
    # The connection is idle again before the cancellation reaches the caller
    assert conn.finished.is_set()


@pytest.mark.asyncio
async def test_timeout_interrupts_and_marks_broken() -> None:
    conn = _BlockingConnection()
    engine = DuckDBEngine(conn, statement_timeout_ms=SHORT_TIMEOUT_MS, baseline_settings={})

    with pytest.raises(StatementTimeoutError, match=f"after {SHORT_TIMEOUT_MS} ms"):
        await engine.execute("SELECT 1")

    assert engine.broken
    assert conn.finished.is_set()


@pytest.mark.asyncio
async def test_locking_configuration_marks_instance_broken() -> None:
    engine = DuckDBEngine(_ScriptedConnection(locked=True), baseline_settings={})

    result = await engine.execute("SET lock_configuration = true; SELECT 1 AS x")

    assert result.rows == [(1,)]
    assert engine.broken


@pytest.mark.asyncio
async def test_unlocked_configuration_keeps_instance() -> None:
    engine = DuckDBEngine(_ScriptedConnection(locked=False), baseline_settings={})

    await engine.execute("SELECT 1 AS x")

    assert not engine.broken
