"""
Execution orchestrator: runs SQL on pooled engine instances and grades results.

Usage:
    from sqldojo.orchestrator import QueryRunner

    async with QueryRunner.from_settings() as runner:
        outcome = await runner.run_validated(
            "employees",
            solution_sql="SELECT name FROM departments",
            user_sql="SELECT name FROM departments ORDER BY name DESC",
        )
        print(outcome["ok"], outcome.get("matches"))

Every run is executed in its own task and awaited through ``asyncio.shield``;
a caller that stops waiting never interrupts the acquire, execute, release
sequence, so pooled instances are always returned.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine, Iterable, List, Optional, Sequence, Set, TypeVar, Union

from sqldojo.catalog.challenges import get_challenge
from sqldojo.catalog.seeds import resolve_schema
from sqldojo.config import Settings, get_settings
from sqldojo.domain.models import (
    Challenge,
    PlaygroundResult,
    PoolStats,
    RunFailure,
    RunOutcome,
    SchemaId,
    ValidatedSuccess,
)
from sqldojo.errors import SqlDojoError
from sqldojo.infrastructure.engine import EngineInstance
from sqldojo.infrastructure.pool import InstancePool
from sqldojo.normalizer import compare_results, to_table_result
from sqldojo.utils.logging import get_logger
from sqldojo.utils.profiler import profile_block

log = get_logger(__name__)

T = TypeVar("T")


def _first_error(results: Iterable[Any]) -> Optional[Exception]:
    """Return the first exception in gather results; re-raise non-Exception base errors."""
    for result in results:
        if isinstance(result, Exception):
            return result
        if isinstance(result, BaseException):
            raise result
    return None


def _describe(exc: Exception) -> str:
    if not isinstance(exc, SqlDojoError):
        log.error("Unexpected error during run", exc_info=exc)
    return str(exc) or exc.__class__.__name__


class QueryRunner:
    """
    Runs user SQL against reference SQL on isolated, freshly seeded instances.

    Parameters
    ----------
    pool : InstancePool
        Source of engine instances. The runner drains it on ``aclose``.
    settings : Settings | None
        Comparison options; defaults to ``get_settings()``.
    """

    def __init__(self, pool: InstancePool, settings: Optional[Settings] = None) -> None:
        self._pool = pool
        self._settings = settings or get_settings()
        self._inflight: Set["asyncio.Task[Any]"] = set()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "QueryRunner":
        settings = settings or get_settings()
        return cls(InstancePool.from_settings(settings), settings)

    @property
    def pool(self) -> InstancePool:
        return self._pool

    def stats(self) -> PoolStats:
        return self._pool.stats()

    async def __aenter__(self) -> "QueryRunner":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _shielded(self, coro: Coroutine[Any, Any, T]) -> T:
        if self._closed:
            coro.close()
            raise RuntimeError("QueryRunner is closed")
        task = asyncio.ensure_future(coro)
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return await asyncio.shield(task)

    async def _release_all(self, schema: SchemaId, instances: Sequence[EngineInstance]) -> None:
        for instance in instances:
            try:
                await self._pool.release(schema, instance)
            except Exception:  # noqa: BLE001 - release errors never override the outcome
                log.exception("Failed to release engine instance", extra={"schema_id": str(schema)})

    async def run_validated(
        self,
        schema_id: Union[SchemaId, str],
        solution_sql: str,
        user_sql: str,
    ) -> RunOutcome:
        """
        Run the user query and the reference solution concurrently and grade.

        Parameters
        ----------
        schema_id : SchemaId | str
            Sample schema both queries run against.
        solution_sql : str
            Reference batch; only its last statement's result is compared.
        user_sql : str
            Submitted batch; only its last statement's result is compared.

        Returns
        -------
        RunOutcome
            ``{ok: True, matches, actual, expected, duration_ms}`` when both
            batches ran, otherwise ``{ok: False, error}``.

        Raises
        ------
        UnknownSchemaError
            If ``schema_id`` is not a known schema.
        """
        schema = resolve_schema(schema_id)
        return await self._shielded(self._run_validated(schema, solution_sql, user_sql))

    async def _run_validated(self, schema: SchemaId, solution_sql: str, user_sql: str) -> RunOutcome:
        log.info("Validated run started", extra={"schema_id": str(schema)})
        with profile_block("run-validated") as stats:
            acquired = await asyncio.gather(
                self._pool.acquire(schema), self._pool.acquire(schema), return_exceptions=True
            )
            instances: List[EngineInstance] = [
                item for item in acquired if not isinstance(item, BaseException)
            ]
            try:
                error = _first_error(acquired)
                if error is not None:
                    failure = RunFailure(ok=False, error=_describe(error))
                else:
                    user_instance, solution_instance = instances
                    user_raw, solution_raw = await asyncio.gather(
                        user_instance.execute(user_sql),
                        solution_instance.execute(solution_sql),
                        return_exceptions=True,
                    )
                    # The user's error wins when both batches fail
                    error = _first_error((user_raw, solution_raw))
                    if error is not None:
                        failure = RunFailure(ok=False, error=_describe(error))
                    else:
                        failure = None
                        actual = to_table_result(user_raw)
                        expected = to_table_result(solution_raw)
                        matches = compare_results(
                            actual,
                            expected,
                            require_matching_fields=self._settings.require_matching_fields,
                            precision=self._settings.numeric_precision,
                        )
            finally:
                await self._release_all(schema, instances)

        if failure is not None:
            log.info(
                "Validated run failed",
                extra={"schema_id": str(schema), "error": failure["error"]},
            )
            return failure

        log.info(
            "Validated run finished",
            extra={
                "schema_id": str(schema),
                "matches": matches,
                "actual_rows": actual.row_count,
                "expected_rows": expected.row_count,
                "duration_ms": stats.duration_ms,
            },
        )
        return ValidatedSuccess(
            ok=True,
            matches=matches,
            actual=actual,
            expected=expected,
            duration_ms=stats.duration_ms,
        )

    async def run_freeform(self, schema_id: Union[SchemaId, str], sql: str) -> PlaygroundResult:
        """
        Run ``sql`` on one freshly seeded instance without grading.

        Raises
        ------
        UnknownSchemaError
            If ``schema_id`` is not a known schema.
        """
        schema = resolve_schema(schema_id)
        return await self._shielded(self._run_freeform(schema, sql))

    async def _run_freeform(self, schema: SchemaId, sql: str) -> PlaygroundResult:
        log.info("Freeform run started", extra={"schema_id": str(schema)})
        with profile_block("run-freeform") as stats:
            try:
                instance = await self._pool.acquire(schema)
            except Exception as exc:  # noqa: BLE001 - converted into a failure outcome
                return PlaygroundResult(sql=sql, result=None, error=_describe(exc))
            try:
                raw = await instance.execute(sql)
            except Exception as exc:  # noqa: BLE001 - converted into a failure outcome
                return PlaygroundResult(sql=sql, result=None, error=_describe(exc))
            finally:
                await self._release_all(schema, [instance])
        result = to_table_result(raw)
        log.info(
            "Freeform run finished",
            extra={
                "schema_id": str(schema),
                "rows": result.row_count,
                "duration_ms": stats.duration_ms,
            },
        )
        return PlaygroundResult(sql=sql, result=result, error=None, duration_ms=stats.duration_ms)

    async def run_challenge(self, challenge: Union[Challenge, str], user_sql: str) -> RunOutcome:
        """
        Grade ``user_sql`` against a catalogued challenge's reference solution.

        Raises
        ------
        UnknownChallengeError
            If ``challenge`` is an id missing from the catalog.
        """
        if isinstance(challenge, str):
            challenge = get_challenge(challenge)
        log.info("Challenge submitted", extra={"challenge_id": challenge.id})
        return await self.run_validated(challenge.database, challenge.solution_sql, user_sql)

    async def aclose(self) -> None:
        """Wait for in-flight runs, then close every pooled instance."""
        self._closed = True
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        await self._pool.drain_all()


async def run_validated(
    schema_id: Union[SchemaId, str],
    solution_sql: str,
    user_sql: str,
    settings: Optional[Settings] = None,
) -> RunOutcome:
    """One-off validated run on a private pool built from settings."""
    async with QueryRunner.from_settings(settings) as runner:
        return await runner.run_validated(schema_id, solution_sql, user_sql)


async def run_freeform(
    schema_id: Union[SchemaId, str],
    sql: str,
    settings: Optional[Settings] = None,
) -> PlaygroundResult:
    """One-off freeform run on a private pool built from settings."""
    async with QueryRunner.from_settings(settings) as runner:
        return await runner.run_freeform(schema_id, sql)


__all__ = [
    "QueryRunner",
    "run_validated",
    "run_freeform",
]
