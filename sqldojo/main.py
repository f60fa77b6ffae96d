from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable, Coroutine, Dict, List, Optional, Tuple, TypeVar

import typer
from rich.console import Console
from rich.markup import escape

from sqldojo.catalog import (
    SEEDS,
    available_schemas,
    concept_counts,
    describe_schema,
    filter_challenges,
    get_challenge,
)
from sqldojo.config import Settings, get_settings
from sqldojo.domain.models import Difficulty, PoolStats, SchemaId, TableResult
from sqldojo.errors import SqlDojoError
from sqldojo.orchestrator import QueryRunner
from sqldojo.reporter import (
    export_csv,
    render_challenges,
    render_outcome,
    render_playground,
    render_schemas,
    render_stats,
)
from sqldojo.utils.logging import configure_logging

T = TypeVar("T")

EXIT_MISMATCH = 1
EXIT_FAILURE = 2

app = typer.Typer(help="sqldojo: practice SQL against sample databases and get graded.")


def _setup() -> Settings:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    return settings


def _read_sql(sql: str) -> str:
    """`-` reads the statement batch from stdin."""
    return sys.stdin.read() if sql == "-" else sql


def _jsonable(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.model_dump() if isinstance(value, TableResult) else value
        for key, value in payload.items()
    }


def _run_with_runner(
    settings: Settings, action: Callable[[QueryRunner], Coroutine[Any, Any, T]]
) -> Tuple[T, PoolStats]:
    async def _go() -> Tuple[T, PoolStats]:
        async with QueryRunner.from_settings(settings) as runner:
            result = await action(runner)
            return result, runner.stats()

    try:
        return asyncio.run(_go())
    except SqlDojoError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"env={settings.app_env} | pool per-schema={settings.pool_max_per_schema} "
        f"total={settings.pool_max_total} | timeout={settings.statement_timeout_ms}ms "
        f"threads={settings.engine_threads} memory={settings.engine_memory_limit} | "
        f"precision={settings.numeric_precision} "
        f"require_matching_fields={settings.require_matching_fields}"
    )
    typer.echo("Schemas: " + ", ".join(available_schemas()))


@app.command()
def schemas() -> None:
    """
    List the sample schemas and their tables.
    """
    render_schemas({schema: describe_schema(schema) for schema in SEEDS})


@app.command()
def challenges(
    difficulty: Optional[Difficulty] = typer.Option(
        None, "--difficulty", "-d", help="Only show challenges of this difficulty."
    ),
    concept: Optional[List[str]] = typer.Option(
        None,
        "--concept",
        "-c",
        help="Show challenges covering any of these concepts (repeatable, case-insensitive).",
    ),
    database: Optional[SchemaId] = typer.Option(
        None, "--database", "--schema", help="Only show challenges for this schema."
    ),
) -> None:
    """
    List catalogued challenges with optional filters.
    """
    matched = filter_challenges(difficulty=difficulty, concepts=concept, database=database)
    render_challenges(matched, concept_counts(matched))


@app.command()
def run(
    schema: str = typer.Argument(..., help="Schema to run against, e.g. employees."),
    sql: str = typer.Argument(..., help="SQL batch to execute, or '-' to read stdin."),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Also export the result as CSV."),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
    show_stats: bool = typer.Option(False, "--stats", help="Print instance pool statistics."),
) -> None:
    """
    Execute SQL on a freshly seeded database without grading.
    """
    settings = _setup()
    statement = _read_sql(sql)
    result, stats = _run_with_runner(
        settings, lambda runner: runner.run_freeform(schema, statement)
    )

    if as_json:
        typer.echo(json.dumps(_jsonable(dict(result)), indent=2, default=str))
    else:
        render_playground(result)
        if show_stats:
            render_stats(stats)

    if result.get("error"):
        raise typer.Exit(code=EXIT_FAILURE)
    if csv_path is not None:
        try:
            export_csv(result.get("result"), csv_path)
        except ValueError as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(code=EXIT_FAILURE) from exc
        typer.echo(f"Exported CSV to {csv_path}", err=True)


def _report_validated(
    outcome: Dict[str, Any],
    stats: PoolStats,
    as_json: bool,
    show_stats: bool,
    precision: int,
) -> None:
    if as_json:
        typer.echo(json.dumps(_jsonable(outcome), indent=2, default=str))
    else:
        render_outcome(outcome, precision=precision)  # type: ignore[arg-type]
        if show_stats:
            render_stats(stats)
    if not outcome["ok"]:
        raise typer.Exit(code=EXIT_FAILURE)
    if not outcome["matches"]:
        raise typer.Exit(code=EXIT_MISMATCH)


@app.command()
def check(
    schema: str = typer.Argument(..., help="Schema to run against, e.g. employees."),
    sql: str = typer.Argument(..., help="SQL batch to grade, or '-' to read stdin."),
    solution: str = typer.Option(..., "--solution", "-s", help="Reference SQL batch."),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
    show_stats: bool = typer.Option(False, "--stats", help="Print instance pool statistics."),
) -> None:
    """
    Grade SQL against a reference solution. Exit code 1 on mismatch, 2 on error.
    """
    settings = _setup()
    statement = _read_sql(sql)
    outcome, stats = _run_with_runner(
        settings, lambda runner: runner.run_validated(schema, solution, statement)
    )
    _report_validated(dict(outcome), stats, as_json, show_stats, settings.numeric_precision)


@app.command()
def challenge(
    challenge_id: str = typer.Argument(..., help="Challenge id, e.g. emp-basic-list."),
    sql: Optional[str] = typer.Argument(
        None, help="SQL batch to grade, or '-' to read stdin. Omit to show the prompt."
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the outcome as JSON."),
    show_stats: bool = typer.Option(False, "--stats", help="Print instance pool statistics."),
) -> None:
    """
    Show a challenge, or grade SQL against it.
    """
    settings = _setup()
    try:
        selected = get_challenge(challenge_id)
    except SqlDojoError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc

    if sql is None:
        console = Console()
        console.print(
            f"[bold]{escape(selected.title)}[/bold] "
            f"({selected.difficulty.value}, {selected.points} pts)"
        )
        console.print(selected.prompt)
        console.print(f"[dim]Database:[/dim] {selected.database.value}")
        console.print(f"[dim]Starter:[/dim] {escape(selected.starter_sql)}")
        return

    statement = _read_sql(sql)
    outcome, stats = _run_with_runner(
        settings, lambda runner: runner.run_challenge(selected, statement)
    )
    _report_validated(dict(outcome), stats, as_json, show_stats, settings.numeric_precision)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
