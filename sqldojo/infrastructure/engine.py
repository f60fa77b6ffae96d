"""
Embedded engine handles for sqldojo.

Each instance owns one in-memory DuckDB connection. User objects live in a
dedicated ``sandbox`` schema which is dropped and recreated on reset, because
DuckDB does not allow dropping its ``main`` schema.

All DuckDB calls block, so they run in a worker thread via ``asyncio.to_thread``.
A connection is only ever touched by the run that has the instance checked out.

Connection creation is retried for transient failures using tenacity.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import duckdb
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from sqldojo.config import Settings, get_settings
from sqldojo.domain.models import SchemaId
from sqldojo.errors import ExecutionError, StatementTimeoutError
from sqldojo.utils.logging import get_logger

log = get_logger(__name__)

SANDBOX_SCHEMA = "sandbox"
_CATALOG = "memory"


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _qualified(database: str, schema: str, name: str) -> str:
    return ".".join(_quote(part) for part in (database, schema, name))


def _literal(value: Any) -> str:
    return "'" + str(value).replace("'", "''") + "'"


def current_settings(connection: duckdb.DuckDBPyConnection) -> Dict[str, Any]:
    """Name to value of every DuckDB setting, as reported by ``duckdb_settings()``."""
    return dict(connection.execute("SELECT name, value FROM duckdb_settings()").fetchall())


@dataclass
class RawResult:
    """
    Materialized result of the last statement of a batch.

    ``description`` follows DB-API: a sequence of 7-tuples whose first item is
    the column label, or None when the statement produced no result set.
    """

    description: Optional[Sequence[Tuple[Any, ...]]] = None
    rows: List[Tuple[Any, ...]] = field(default_factory=list)


@runtime_checkable
class EngineInstance(Protocol):
    """
    Interface the pool and orchestrator rely on.

    Attributes
    ----------
    schema_id : SchemaId | None
        Schema the instance was last seeded for. May be stale between uses.
    broken : bool
        Set when the instance can no longer be trusted and must not be pooled.
    """

    schema_id: Optional[SchemaId]
    broken: bool

    async def reset(self) -> None:
        """Drop every user object so the next seed starts from a blank namespace."""
        ...

    async def seed(self, schema_id: SchemaId, script: str) -> None:
        """Run a seed script and remember which schema it populated."""
        ...

    async def execute(self, sql: str) -> RawResult:
        """Run a statement batch and return the last statement's result."""
        ...

    async def close(self) -> None:
        """Release the underlying engine resources."""
        ...


class DuckDBEngine:
    """
    One in-memory DuckDB database.

    Parameters
    ----------
    connection : duckdb.DuckDBPyConnection
        Open connection, already pointed at the sandbox schema.
    statement_timeout_ms : int
        Upper bound for a single ``execute`` call; 0 disables the limit.
    baseline_settings : dict | None
        Setting values to restore on reset. Defaults to the connection's
        current settings.
    """

    def __init__(
        self,
        connection: duckdb.DuckDBPyConnection,
        statement_timeout_ms: int = 0,
        baseline_settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._conn = connection
        self.statement_timeout_ms = statement_timeout_ms
        self._baseline = baseline_settings if baseline_settings is not None else current_settings(connection)
        self.schema_id: Optional[SchemaId] = None
        self.broken = False
        self.closed = False

    def __repr__(self) -> str:
        return f"DuckDBEngine(schema_id={self.schema_id!s}, broken={self.broken}, closed={self.closed})"

    # Blocking helpers, always called from a worker thread.

    def _reset_sync(self) -> None:
        conn = self._conn
        # Close any transaction the user left open
        with contextlib.suppress(duckdb.Error):
            conn.execute("ROLLBACK")
        conn.execute(f"USE {_CATALOG}.main")
        for (name,) in conn.execute(
            "SELECT database_name FROM duckdb_databases() "
            "WHERE NOT internal AND database_name <> ?",
            [_CATALOG],
        ).fetchall():
            conn.execute(f"DETACH {_quote(name)}")

        for database, schema, name in conn.execute(
            "SELECT database_name, schema_name, view_name FROM duckdb_views() "
            "WHERE NOT internal AND database_name IN (?, 'temp')",
            [_CATALOG],
        ).fetchall():
            conn.execute(f"DROP VIEW IF EXISTS {_qualified(database, schema, name)}")

        for database, schema, name, kind in conn.execute(
            "SELECT DISTINCT database_name, schema_name, function_name, function_type "
            "FROM duckdb_functions() WHERE NOT internal AND database_name IN (?, 'temp') "
            "AND function_type IN ('macro', 'table_macro')",
            [_CATALOG],
        ).fetchall():
            keyword = "MACRO TABLE" if kind == "table_macro" else "MACRO"
            conn.execute(f"DROP {keyword} IF EXISTS {_qualified(database, schema, name)}")

        # Foreign keys force children to go first; retry until nothing is left
        pending = [
            _qualified(database, schema, name)
            for database, schema, name in conn.execute(
                "SELECT database_name, schema_name, table_name FROM duckdb_tables() "
                "WHERE database_name IN (?, 'temp')",
                [_CATALOG],
            ).fetchall()
        ]
        while pending:
            failed = []
            for table in pending:
                try:
                    conn.execute(f"DROP TABLE IF EXISTS {table}")
                except duckdb.Error:
                    failed.append(table)
            if len(failed) == len(pending):
                # No progress; surface the engine's error
                conn.execute(f"DROP TABLE IF EXISTS {failed[0]}")
            pending = failed

        for database, schema, name in conn.execute(
            "SELECT DISTINCT database_name, schema_name, type_name FROM duckdb_types() "
            "WHERE NOT internal AND database_name IN (?, 'temp')",
            [_CATALOG],
        ).fetchall():
            conn.execute(f"DROP TYPE IF EXISTS {_qualified(database, schema, name)}")

        for (name,) in conn.execute(
            "SELECT schema_name FROM duckdb_schemas() "
            "WHERE database_name = ? AND NOT internal AND schema_name <> 'main'",
            [_CATALOG],
        ).fetchall():
            conn.execute(f"DROP SCHEMA IF EXISTS {_quote(name)} CASCADE")
        for database, name in conn.execute(
            "SELECT database_name, sequence_name FROM duckdb_sequences() "
            "WHERE database_name IN (?, 'temp') AND schema_name = 'main'",
            [_CATALOG],
        ).fetchall():
            conn.execute(f"DROP SEQUENCE IF EXISTS {_qualified(database, 'main', name)}")

        conn.execute(f"CREATE SCHEMA {SANDBOX_SCHEMA}")
        conn.execute(f"USE {_CATALOG}.{SANDBOX_SCHEMA}")
        self._restore_settings_sync()

    def _restore_settings_sync(self) -> None:
        """Undo every SET issued since the connection was opened."""
        conn = self._conn
        changed = [
            name
            for name, value in current_settings(conn).items()
            if name in self._baseline and self._baseline[name] != value
        ]
        if not changed:
            return
        for name in changed:
            conn.execute(f"RESET {name}")
        current = current_settings(conn)
        for name in changed:
            # RESET falls back to engine defaults, not to the connect-time config
            if current.get(name) != self._baseline[name]:
                conn.execute(f"SET {name} = {_literal(self._baseline[name])}")
        conn.execute(f"USE {_CATALOG}.{SANDBOX_SCHEMA}")
        log.debug("Restored engine settings", extra={"settings": changed})

    def _execute_sync(self, sql: str) -> RawResult:
        try:
            cursor = self._conn.execute(sql)
            description = cursor.description
            rows = cursor.fetchall() if description is not None else []
        except duckdb.Error as exc:
            raise ExecutionError(str(exc)) from exc
        if self._configuration_locked():
            # Settings can no longer be restored on reset
            self.broken = True
        return RawResult(description=description, rows=rows)

    def _configuration_locked(self) -> bool:
        try:
            row = self._conn.execute("SELECT current_setting('lock_configuration')").fetchone()
        except duckdb.Error:
            return True
        return bool(row and row[0])

    def _ensure_open(self) -> None:
        if self.closed:
            raise ExecutionError("Engine instance is closed")

    async def reset(self) -> None:
        self._ensure_open()
        try:
            await asyncio.to_thread(self._reset_sync)
        except duckdb.Error as exc:
            raise ExecutionError(f"Failed to reset engine instance: {exc}") from exc
        self.schema_id = None

    async def seed(self, schema_id: SchemaId, script: str) -> None:
        self._ensure_open()
        await asyncio.to_thread(self._execute_sync, script)
        self.schema_id = schema_id

    async def execute(self, sql: str) -> RawResult:
        """
        Run ``sql`` (possibly several ``;``-separated statements).

        Raises
        ------
        ExecutionError
            If DuckDB rejects or fails any statement of the batch.
        StatementTimeoutError
            If the batch outlives ``statement_timeout_ms``. The connection is
            interrupted and the instance is marked broken.
        """
        self._ensure_open()
        task = asyncio.ensure_future(asyncio.to_thread(self._execute_sync, sql))
        timeout = self.statement_timeout_ms / 1000 if self.statement_timeout_ms else None
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except asyncio.TimeoutError:
            self.broken = True
            self._conn.interrupt()
            # Wait for the worker thread so nobody else touches the connection meanwhile
            with contextlib.suppress(ExecutionError):
                await task
            log.warning(
                "Statement timed out; instance marked broken",
                extra={"schema_id": str(self.schema_id), "timeout_ms": self.statement_timeout_ms},
            )
            raise StatementTimeoutError(self.statement_timeout_ms) from None
        except asyncio.CancelledError:
            self.broken = True
            self._conn.interrupt()
            with contextlib.suppress(ExecutionError):
                await task
            raise

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        await asyncio.to_thread(self._conn.close)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    retry=retry_if_exception_type((duckdb.IOException, OSError)),
    reraise=True,
)
def open_connection(threads: int = 1, memory_limit: str = "256MB") -> duckdb.DuckDBPyConnection:
    """
    Open an in-memory DuckDB connection with automatic retry.

    External file and network access is disabled; the connection starts in a
    fresh sandbox schema.

    Parameters
    ----------
    threads : int
        Worker threads DuckDB may use for this database.
    memory_limit : str
        DuckDB memory limit expression, e.g. "256MB".

    Returns
    -------
    duckdb.DuckDBPyConnection
        Connection with ``sandbox`` as the default schema.
    """
    conn = duckdb.connect(
        ":memory:",
        config={
            "threads": threads,
            "memory_limit": memory_limit,
            "enable_external_access": False,
        },
    )
    try:
        conn.execute(f"CREATE SCHEMA {SANDBOX_SCHEMA}")
        conn.execute(f"USE {_CATALOG}.{SANDBOX_SCHEMA}")
    except BaseException:
        conn.close()
        raise
    return conn


async def create_engine(settings: Optional[Settings] = None) -> DuckDBEngine:
    """
    Engine factory used by the instance pool.

    Raises
    ------
    ExecutionError
        If the connection cannot be opened after all retry attempts.
    """
    settings = settings or get_settings()
    try:
        conn = await asyncio.to_thread(
            open_connection, settings.engine_threads, settings.engine_memory_limit
        )
    except (duckdb.Error, OSError) as exc:
        raise ExecutionError(f"Failed to start engine instance: {exc}") from exc
    try:
        baseline = await asyncio.to_thread(current_settings, conn)
    except duckdb.Error as exc:
        await asyncio.to_thread(conn.close)
        raise ExecutionError(f"Failed to start engine instance: {exc}") from exc
    return DuckDBEngine(
        conn, statement_timeout_ms=settings.statement_timeout_ms, baseline_settings=baseline
    )


__all__ = [
    "SANDBOX_SCHEMA",
    "RawResult",
    "EngineInstance",
    "DuckDBEngine",
    "open_connection",
    "current_settings",
    "create_engine",
]
