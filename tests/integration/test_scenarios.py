"""
End-to-end scenarios against real in-memory DuckDB instances.

These tests exercise the full acquire, seed, execute, compare, release path:
1. Matching and mismatching queries are graded correctly
2. Failures (syntax errors, exhaustion, timeouts) become failure outcomes
3. Instances never leak objects between runs

Run only these with: pytest -m integration
"""

from __future__ import annotations

import asyncio

import pytest

from sqldojo.catalog import CHALLENGES
from sqldojo.config import Settings
from sqldojo.orchestrator import QueryRunner

pytestmark = [pytest.mark.integration, pytest.mark.asyncio]

EXPECTED_DEPARTMENTS = 5
EXPECTED_EMPLOYEES = 10
LIMITED_ROWS = 3
CONCURRENT_RUNS = 3
SHORT_TIMEOUT_MS = 200

# Non-equi cross join that DuckDB cannot finish within the short timeout
SLOW_SQL = (
    "SELECT count(*) FROM range(100000) a(x), range(100000) b(y) "
    "WHERE (a.x * 7 + b.y * 13) % 1000003 = 17"
)

SESSION_STATE_SQL = (
    "SELECT current_setting('memory_limit') AS memory_limit, "
    "current_setting('threads') AS threads, "
    "current_setting('default_order') AS default_order, "
    "(SELECT count(*) FROM duckdb_functions() "
    " WHERE function_name IN ('leak', 'temp_leak', 'leak_rows')) "
    "+ (SELECT count(*) FROM duckdb_types() WHERE type_name = 'mood') AS leftovers"
)


class TestValidatedRuns:
    async def test_identical_queries_match(self, duckdb_runner: QueryRunner) -> None:
        outcome = await duckdb_runner.run_validated(
            "employees",
            solution_sql="SELECT name FROM departments",
            user_sql="SELECT name FROM departments",
        )

        assert outcome["ok"] is True
        assert outcome["matches"] is True
        assert outcome["actual"].row_count == EXPECTED_DEPARTMENTS
        assert outcome["duration_ms"] >= 0

    async def test_row_order_does_not_matter(self, duckdb_runner: QueryRunner) -> None:
        outcome = await duckdb_runner.run_validated(
            "employees",
            solution_sql="SELECT name FROM departments ORDER BY name ASC",
            user_sql="SELECT name FROM departments ORDER BY name DESC",
        )

        assert outcome["ok"] is True
        assert outcome["matches"] is True

    async def test_missing_rows_mismatch(self, duckdb_runner: QueryRunner) -> None:
        outcome = await duckdb_runner.run_validated(
            "employees",
            solution_sql="SELECT name FROM departments",
            user_sql=f"SELECT name FROM departments ORDER BY name LIMIT {LIMITED_ROWS}",
        )

        assert outcome["ok"] is True
        assert outcome["matches"] is False
        assert outcome["actual"].row_count == LIMITED_ROWS
        assert outcome["expected"].row_count == EXPECTED_DEPARTMENTS

    async def test_column_labels_are_ignored(self, duckdb_runner: QueryRunner) -> None:
        outcome = await duckdb_runner.run_validated(
            "employees",
            solution_sql="SELECT count(*) AS total FROM employees",
            user_sql="SELECT count(*) AS n FROM employees",
        )

        assert outcome["ok"] is True
        assert outcome["matches"] is True

    async def test_malformed_sql_is_reported(self, duckdb_runner: QueryRunner) -> None:
        outcome = await duckdb_runner.run_validated(
            "employees",
            solution_sql="SELECT name FROM departments",
            user_sql="SELEC name FROM departments",
        )

        assert outcome["ok"] is False
        assert "syntax error" in outcome["error"].lower()
        assert duckdb_runner.stats()["checked_out"] == 0

    async def test_last_statement_result_is_compared(self, duckdb_runner: QueryRunner) -> None:
        outcome = await duckdb_runner.run_validated(
            "employees",
            solution_sql="SELECT 1 AS x",
            user_sql="CREATE TABLE t AS SELECT 1 AS x; SELECT x FROM t",
        )

        assert outcome["ok"] is True
        assert outcome["matches"] is True

    async def test_concurrent_runs_beyond_capacity(self, duckdb_runner: QueryRunner) -> None:
        # Each validated run needs two instances; the pool ceiling is four
        outcomes = await asyncio.gather(
            *(
                duckdb_runner.run_validated(
                    "employees",
                    solution_sql="SELECT name FROM departments",
                    user_sql="SELECT name FROM departments",
                )
                for _ in range(CONCURRENT_RUNS)
            )
        )

        failures = [o for o in outcomes if not o["ok"]]
        assert failures
        assert all("Database pool exhausted" in o["error"] for o in failures)
        stats = duckdb_runner.stats()
        assert stats["checked_out"] == 0
        assert stats["total_instances"] <= stats["max_total_instances"]

    @pytest.mark.parametrize("challenge", CHALLENGES, ids=lambda c: c.id)
    async def test_challenge_solution_matches_itself(self, duckdb_runner: QueryRunner, challenge) -> None:
        outcome = await duckdb_runner.run_challenge(challenge, challenge.solution_sql)

        assert outcome["ok"] is True, outcome.get("error")
        assert outcome["matches"] is True


class TestIsolation:
    async def test_seeded_row_counts(self, duckdb_runner: QueryRunner) -> None:
        result = await duckdb_runner.run_freeform("employees", "SELECT count(*) AS n FROM employees")

        assert result["error"] is None
        assert result["result"].rows == [{"n": EXPECTED_EMPLOYEES}]

    async def test_user_objects_do_not_survive_release(self, duckdb_runner: QueryRunner) -> None:
        first = await duckdb_runner.run_freeform(
            "employees",
            "CREATE TABLE leak AS SELECT 1 AS x; "
            "CREATE TABLE main.main_leak AS SELECT 1 AS x; "
            "CREATE TEMP TABLE temp_leak AS SELECT 1 AS x; "
            "CREATE VIEW leak_view AS SELECT * FROM leak; "
            "DROP TABLE salaries; "
            "DELETE FROM employees",
        )
        assert first["error"] is None

        second = await duckdb_runner.run_freeform(
            "employees",
            "SELECT count(*) AS n FROM duckdb_tables() "
            "WHERE table_name IN ('leak', 'main_leak', 'temp_leak')",
        )
        assert second["error"] is None
        assert second["result"].rows == [{"n": 0}]

        third = await duckdb_runner.run_freeform(
            "employees",
            "SELECT (SELECT count(*) FROM employees) AS employees, "
            "(SELECT count(*) FROM salaries) > 0 AS has_salaries",
        )
        assert third["error"] is None
        assert third["result"].rows == [{"employees": EXPECTED_EMPLOYEES, "has_salaries": True}]

    async def test_settings_and_macros_do_not_survive_release(
        self, duckdb_runner: QueryRunner
    ) -> None:
        before = await duckdb_runner.run_freeform("employees", SESSION_STATE_SQL)
        assert before["error"] is None
        assert before["result"].rows[0]["leftovers"] == 0

        leak = await duckdb_runner.run_freeform(
            "employees",
            "SET memory_limit = '3GB'; "
            "SET threads = 3; "
            "SET default_order = 'DESC'; "
            "CREATE MACRO main.leak(x) AS x * 2; "
            "CREATE TEMP MACRO temp_leak(x) AS x + 1; "
            "CREATE MACRO main.leak_rows() AS TABLE SELECT 1 AS x; "
            "CREATE TYPE main.mood AS ENUM ('ok', 'sad'); "
            "SELECT 1",
        )
        assert leak["error"] is None

        after = await duckdb_runner.run_freeform("employees", SESSION_STATE_SQL)
        assert after["error"] is None
        assert after["result"].rows == before["result"].rows
        assert duckdb_runner.stats()["total_instances"] == 1

    async def test_locked_configuration_evicts_instance(self, duckdb_runner: QueryRunner) -> None:
        locked = await duckdb_runner.run_freeform(
            "employees", "SET lock_configuration = true; SELECT 1 AS x"
        )
        assert locked["error"] is None
        assert duckdb_runner.stats()["total_instances"] == 0

        follow_up = await duckdb_runner.run_freeform(
            "employees", "SELECT current_setting('lock_configuration') AS locked"
        )
        assert follow_up["error"] is None
        assert follow_up["result"].rows == [{"locked": False}]

    async def test_schemas_do_not_share_tables(self, duckdb_runner: QueryRunner) -> None:
        await duckdb_runner.run_freeform("employees", "SELECT 1")
        result = await duckdb_runner.run_freeform(
            "movies", "SELECT count(*) AS n FROM duckdb_tables() WHERE table_name = 'employees'"
        )

        assert result["error"] is None
        assert result["result"].rows == [{"n": 0}]


async def test_statement_timeout_recycles_instance(test_settings: Settings) -> None:
    settings = test_settings.model_copy(update={"statement_timeout_ms": SHORT_TIMEOUT_MS})
    async with QueryRunner.from_settings(settings) as runner:
        result = await runner.run_freeform("employees", SLOW_SQL)

        assert result["result"] is None
        assert result["error"] == f"Statement timed out after {SHORT_TIMEOUT_MS} ms"
        stats = runner.stats()
        assert stats["checked_out"] == 0
        assert stats["total_instances"] == 0

        follow_up = await runner.run_freeform("employees", "SELECT count(*) AS n FROM departments")
        assert follow_up["error"] is None
        assert follow_up["result"].rows == [{"n": EXPECTED_DEPARTMENTS}]
