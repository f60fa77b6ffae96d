"""
Terminal rendering and CSV export for run outcomes.
"""

from __future__ import annotations

import csv
import io
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sqldojo.domain.models import (
    Challenge,
    PlaygroundResult,
    PoolStats,
    RunOutcome,
    TableInfo,
    TableResult,
)
from sqldojo.normalizer import DEFAULT_PRECISION, canonical_row, normalize_rows

MAX_DIFF_ROWS = 10


def _cell(value: Any) -> str:
    if value is None:
        return "[dim]NULL[/dim]"
    return escape(str(value))


def build_result_table(result: TableResult, title: Optional[str] = None) -> Table:
    """Build a rich table for a TableResult."""
    caption = f"{result.row_count} row{'s' if result.row_count != 1 else ''}"
    table = Table(title=title, box=box.ROUNDED, caption=caption)
    for name in result.fields:
        table.add_column(escape(name), overflow="fold")
    for values in result.values():
        table.add_row(*(_cell(value) for value in values))
    return table


def row_differences(
    actual: TableResult, expected: TableResult, precision: int = DEFAULT_PRECISION
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Rows present only in ``expected`` (missing) and only in ``actual`` (unexpected).

    Rows are compared in normalized form and as multisets, so a row expected
    twice but returned once is reported as missing once.
    """
    actual_rows = normalize_rows(actual.rows, actual.fields, precision)
    expected_rows = normalize_rows(expected.rows, expected.fields, precision)
    actual_counts = Counter(canonical_row(row) for row in actual_rows)
    expected_counts = Counter(canonical_row(row) for row in expected_rows)
    return (
        _take_surplus(expected_rows, expected_counts - actual_counts),
        _take_surplus(actual_rows, actual_counts - expected_counts),
    )


def _take_surplus(rows: Sequence[Dict[str, Any]], surplus: Counter) -> List[Dict[str, Any]]:
    picked: List[Dict[str, Any]] = []
    for row in rows:
        key = canonical_row(row)
        if surplus[key] > 0:
            surplus[key] -= 1
            picked.append(row)
    return picked


def _rows_table(rows: Sequence[Mapping[str, Any]]) -> Table:
    table = Table(box=box.SIMPLE)
    for name in rows[0] if rows else ():
        table.add_column(escape(name), overflow="fold")
    for row in rows[:MAX_DIFF_ROWS]:
        table.add_row(*(_cell(value) for value in row.values()))
    if len(rows) > MAX_DIFF_ROWS:
        table.caption = f"... and {len(rows) - MAX_DIFF_ROWS} more"
    return table


def render_outcome(
    outcome: RunOutcome, console: Optional[Console] = None, precision: int = DEFAULT_PRECISION
) -> None:
    """
    Render a validated run.

    A mismatch shows both result sets followed by the rows missing from, and
    the rows unexpected in, the user's result.
    """
    console = console or Console()
    if not outcome["ok"]:
        console.print(f"[bold red]Error:[/bold red] {escape(outcome['error'])}")
        return

    actual = outcome["actual"]
    expected = outcome["expected"]
    if outcome["matches"]:
        console.print("[bold]Your result[/bold]")
        console.print(build_result_table(actual))
        console.print(
            f"[bold green]Correct![/bold green] Results match ({outcome['duration_ms']} ms)."
        )
        return

    console.print("[bold]Your result[/bold]")
    console.print(build_result_table(actual))
    console.print("[bold]Expected result[/bold]")
    console.print(build_result_table(expected))
    if actual.row_count != expected.row_count:
        console.print(
            f"[yellow]Row count differs: got {actual.row_count}, "
            f"expected {expected.row_count}.[/yellow]"
        )
    missing, unexpected = row_differences(actual, expected, precision)
    if missing:
        console.print(f"[bold yellow]Missing rows ({len(missing)})[/bold yellow]")
        console.print(_rows_table(missing))
    if unexpected:
        console.print(f"[bold magenta]Unexpected rows ({len(unexpected)})[/bold magenta]")
        console.print(_rows_table(unexpected))
    console.print(f"[bold red]Not quite.[/bold red] Results differ ({outcome['duration_ms']} ms).")


def render_playground(result: PlaygroundResult, console: Optional[Console] = None) -> None:
    console = console or Console()
    if result.get("error"):
        console.print(f"[bold red]Error:[/bold red] {escape(result['error'])}")
        return
    table_result = result.get("result")
    if table_result is None or not table_result.fields:
        console.print(f"[green]Statement executed[/green] ({result.get('duration_ms')} ms).")
        return
    console.print(build_result_table(table_result, title="Result"))
    console.print(f"[dim]{result.get('duration_ms')} ms[/dim]")


def render_stats(stats: PoolStats, console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="Instance pool", box=box.ROUNDED)
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", justify="right", style="magenta")
    table.add_row("Live instances", f"{stats['total_instances']} / {stats['max_total_instances']}")
    table.add_row("Checked out", str(stats["checked_out"]))
    table.add_row("Idle per schema (max)", str(stats["max_pool_size"]))
    for schema, count in sorted(stats["idle"].items()):
        table.add_row(f"Idle: {schema}", str(count))
    console.print(table)


def render_schemas(catalog: Mapping[str, Sequence[TableInfo]], console: Optional[Console] = None) -> None:
    console = console or Console()
    for schema, tables in catalog.items():
        table = Table(title=f"Schema: {schema}", box=box.ROUNDED)
        table.add_column("Table", style="cyan", no_wrap=True)
        table.add_column("Columns", style="green")
        table.add_column("Description", style="dim")
        for info in tables:
            table.add_row(info.table, ", ".join(info.columns), info.description or "")
        console.print(table)


def render_challenges(
    challenges: Sequence[Challenge],
    concept_counts: Optional[Dict[str, int]] = None,
    console: Optional[Console] = None,
) -> None:
    console = console or Console()
    if not challenges:
        console.print("[yellow]No challenges match the selected filters.[/yellow]")
        return

    table = Table(title="Challenges", box=box.ROUNDED, caption=f"{len(challenges)} challenge(s)")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Database", style="blue")
    table.add_column("Difficulty", style="magenta")
    table.add_column("Points", justify="right", style="green")
    table.add_column("Concepts", style="dim")
    for challenge in challenges:
        table.add_row(
            challenge.id,
            challenge.title,
            challenge.database.value,
            challenge.difficulty.value,
            str(challenge.points),
            ", ".join(challenge.concepts),
        )
    console.print(table)

    if concept_counts:
        console.print(
            "[dim]Concepts:[/dim] "
            + ", ".join(f"{concept} ({count})" for concept, count in concept_counts.items())
        )


def export_csv(result: Optional[TableResult], path: Optional[Path | str] = None) -> str:
    """
    Serialize a TableResult as CSV.

    NULL becomes an empty cell; values holding commas, quotes or newlines are
    quoted with embedded quotes doubled. When ``path`` is given the CSV is also
    written there.

    Raises
    ------
    ValueError
        If there are no rows to export.
    """
    if result is None or not result.rows:
        raise ValueError("No data to export")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(result.fields)
    for values in result.values():
        writer.writerow(["" if value is None else value for value in values])
    content = buffer.getvalue()

    if path is not None:
        Path(path).write_text(content, encoding="utf-8")
    return content


__all__ = [
    "build_result_table",
    "row_differences",
    "render_outcome",
    "render_playground",
    "render_stats",
    "render_schemas",
    "render_challenges",
    "export_csv",
]
