"""
Result normalization and order-independent comparison.

Engine results are turned into TableResult objects, every value is mapped to a
canonical representation, and rows are compared as multisets of canonical JSON
arrays. Column labels are not part of a row's canonical form, so aliases never
affect the outcome, while column position does.
"""

from __future__ import annotations

import datetime as dt
import json
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from sqldojo.domain.models import TableResult
from sqldojo.infrastructure.engine import RawResult

DEFAULT_PRECISION = 4

Row = Union[Mapping[str, Any], Sequence[Any]]


def _unique_labels(labels: Iterable[str]) -> List[str]:
    """Suffix repeated column labels (id, id_2, ...) so row mappings keep every value."""
    seen: Dict[str, int] = {}
    taken = set()
    unique: List[str] = []
    for label in labels:
        candidate = label
        count = seen.get(label, 1)
        while candidate in taken:
            count += 1
            candidate = f"{label}_{count}"
        seen[label] = count
        taken.add(candidate)
        unique.append(candidate)
    return unique


def to_table_result(raw: Optional[RawResult]) -> TableResult:
    """
    Convert the last statement's result into a TableResult.

    Parameters
    ----------
    raw : RawResult | None
        Materialized result. None, or a result without a description (DDL),
        yields an empty TableResult.

    Returns
    -------
    TableResult
        Field labels in column order and one mapping per row.
    """
    if raw is None or not raw.description:
        return TableResult(fields=[], rows=[])
    fields = _unique_labels(str(column[0]) for column in raw.description)
    rows = [dict(zip(fields, row)) for row in raw.rows]
    return TableResult(fields=fields, rows=rows)


def _beyond_float(value: Union[int, Decimal]) -> bool:
    """True for integral values a double cannot represent exactly."""
    if isinstance(value, Decimal):
        if not value.is_finite() or value != value.to_integral_value():
            return False
    try:
        return float(value) != value
    except OverflowError:
        return True


def normalize_value(value: Any, precision: int = DEFAULT_PRECISION) -> Any:
    """
    Map a single value to its canonical form.

    None stays None, temporal values become ISO-8601 strings and booleans become
    "true"/"false". Numbers are rounded to ``precision`` decimals, except
    integers too large for a double, which are kept exact. Containers become
    sorted-key JSON and anything else is stringified.
    """
    if value is None:
        return None
    # datetime is a subclass of date
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    # bool is a subclass of int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, Decimal)) and _beyond_float(value):
        return int(value)
    if isinstance(value, (int, float, Decimal)):
        return round(float(value), precision)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def _row_items(row: Row, fields: Optional[Sequence[str]] = None) -> List[Tuple[str, Any]]:
    if isinstance(row, Mapping):
        keys = fields if fields is not None else list(row.keys())
        return [(key, row.get(key)) for key in keys]
    labels = fields if fields is not None else [f"#{index + 1}" for index in range(len(row))]
    return list(zip(labels, row))


def canonical_row(row: Row, fields: Optional[Sequence[str]] = None) -> str:
    """JSON array of a row's values in field order."""
    return json.dumps([value for _, value in _row_items(row, fields)], default=str)


def normalize_rows(
    rows: Iterable[Row],
    fields: Optional[Sequence[str]] = None,
    precision: int = DEFAULT_PRECISION,
) -> List[Dict[str, Any]]:
    """
    Normalize every value of every row and sort rows by their canonical form.

    Parameters
    ----------
    rows : iterable of mappings or sequences
        Rows as produced by :func:`to_table_result`, or positional tuples.
    fields : sequence of str, optional
        Column labels in order. Defaults to each mapping's own keys, or to
        ``#1``, ``#2``... for positional rows.

    Returns
    -------
    list of dict
        Normalized row mappings in field order. Applying this function to
        its own output returns the same output.
    """
    normalized = [
        {key: normalize_value(value, precision) for key, value in _row_items(row, fields)}
        for row in rows
    ]
    return sorted(normalized, key=canonical_row)


def compare_rows(
    actual: Sequence[Row],
    expected: Sequence[Row],
    actual_fields: Optional[Sequence[str]] = None,
    expected_fields: Optional[Sequence[str]] = None,
    precision: int = DEFAULT_PRECISION,
) -> bool:
    """
    Multiset equality of two row sequences after normalization.

    Row counts are checked first; duplicates are significant.
    """
    if len(actual) != len(expected):
        return False
    left = [canonical_row(row) for row in normalize_rows(actual, actual_fields, precision)]
    right = [canonical_row(row) for row in normalize_rows(expected, expected_fields, precision)]
    return left == right


def compare_results(
    actual: TableResult,
    expected: TableResult,
    require_matching_fields: bool = False,
    precision: int = DEFAULT_PRECISION,
) -> bool:
    """
    Grade ``actual`` against ``expected``.

    Rows are compared with :func:`compare_rows`. When ``require_matching_fields``
    is set, the case-insensitive sets of column labels must also be equal.
    """
    if require_matching_fields:
        if {f.lower() for f in actual.fields} != {f.lower() for f in expected.fields}:
            return False
    return compare_rows(
        actual.rows,
        expected.rows,
        actual_fields=actual.fields,
        expected_fields=expected.fields,
        precision=precision,
    )


__all__ = [
    "DEFAULT_PRECISION",
    "to_table_result",
    "normalize_value",
    "normalize_rows",
    "canonical_row",
    "compare_rows",
    "compare_results",
]
