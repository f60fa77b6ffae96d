from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqldojo.domain.models import TableResult
from sqldojo.infrastructure.engine import RawResult
from sqldojo.normalizer import (
    canonical_row,
    compare_results,
    compare_rows,
    normalize_rows,
    normalize_value,
    to_table_result,
)

EXPECTED_FIELDS = ["id", "name"]
BEYOND_DOUBLE = 2**53 + 1
HUGE_SUM = 10**20 + 7


def raw(columns, rows) -> RawResult:
    description = [(name, None, None, None, None, None, None) for name in columns]
    return RawResult(description=description, rows=list(rows))


def test_normalize_value_maps_each_kind() -> None:
    assert normalize_value(None) is None
    assert normalize_value(True) == "true"
    assert normalize_value(False) == "false"
    assert normalize_value(3) == 3.0
    assert normalize_value(Decimal("2.500049")) == 2.5
    assert normalize_value(1.23456789) == 1.2346
    assert normalize_value(dt.date(2024, 1, 2)) == "2024-01-02"
    assert normalize_value(dt.datetime(2024, 1, 2, 3, 4, 5)) == "2024-01-02T03:04:05"
    assert normalize_value(dt.time(12, 30)) == "12:30:00"
    assert normalize_value({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'
    assert normalize_value([1, "x"]) == '[1, "x"]'
    assert normalize_value("plain") == "plain"


def test_normalize_rows_is_idempotent() -> None:
    rows = [
        {"id": Decimal("2.00001"), "name": "b", "joined": dt.date(2020, 1, 1)},
        {"id": 1, "name": None, "joined": dt.date(2021, 5, 6)},
        {"id": 3, "name": True, "joined": None},
    ]
    once = normalize_rows(rows)
    twice = normalize_rows(once)
    assert once == twice


def test_normalize_rows_sorts_by_canonical_form() -> None:
    rows = [{"n": 2}, {"n": 10}, {"n": 1}]
    normalized = normalize_rows(rows)
    assert normalized == sorted(normalized, key=canonical_row)
    assert len(normalized) == 3


def test_normalize_rows_returns_mappings_in_field_order() -> None:
    rows = [{"name": "Ben", "id": 2}, {"name": "Ava", "id": 1}]
    normalized = normalize_rows(rows, fields=EXPECTED_FIELDS)
    assert normalized == [{"id": 1.0, "name": "Ava"}, {"id": 2.0, "name": "Ben"}]
    assert list(normalized[0]) == EXPECTED_FIELDS

    positional = normalize_rows([(2, "b"), (1, "a")])
    assert positional == [{"#1": 1.0, "#2": "a"}, {"#1": 2.0, "#2": "b"}]


def test_compare_rows_ignores_order() -> None:
    actual = [{"id": 1, "name": "a"}, {"id": 2, "name": "b"}, {"id": 3, "name": "c"}]
    expected = list(reversed(actual))
    assert compare_rows(actual, expected)


def test_compare_rows_length_mismatch_is_false() -> None:
    actual = [{"id": 1}, {"id": 1}]
    expected = [{"id": 1}]
    assert not compare_rows(actual, expected)


def test_compare_rows_duplicates_are_significant() -> None:
    actual = [{"id": 1}, {"id": 1}]
    expected = [{"id": 1}, {"id": 2}]
    assert not compare_rows(actual, expected)


def test_compare_rows_numeric_tolerance_at_four_decimals() -> None:
    assert compare_rows([{"x": 1.00001}], [{"x": 1.00004}])
    assert not compare_rows([{"x": 1.00001}], [{"x": 1.00006}])


def test_compare_rows_decimal_equals_float() -> None:
    assert compare_rows([{"total": Decimal("829.0")}], [{"total": 829}])


def test_large_integers_are_compared_exactly() -> None:
    assert normalize_value(BEYOND_DOUBLE) == BEYOND_DOUBLE
    assert isinstance(normalize_value(BEYOND_DOUBLE), int)
    assert not compare_rows([{"v": BEYOND_DOUBLE}], [{"v": BEYOND_DOUBLE - 1}])
    assert compare_rows([{"v": HUGE_SUM}], [{"v": Decimal(HUGE_SUM)}])
    # Exactly representable integers still match their float form
    assert compare_rows([{"v": BEYOND_DOUBLE - 1}], [{"v": float(BEYOND_DOUBLE - 1)}])
    assert normalize_value(normalize_value(HUGE_SUM)) == HUGE_SUM


def test_compare_rows_ignores_column_aliases_but_not_position() -> None:
    actual = TableResult(fields=["employee"], rows=[{"employee": "Ava"}])
    expected = TableResult(fields=["name"], rows=[{"name": "Ava"}])
    assert compare_results(actual, expected)

    swapped = TableResult(fields=["b", "a"], rows=[{"b": 2, "a": 1}])
    original = TableResult(fields=["a", "b"], rows=[{"a": 1, "b": 2}])
    assert not compare_results(swapped, original)


def test_compare_results_can_require_matching_fields() -> None:
    actual = TableResult(fields=["Name"], rows=[{"Name": "Ava"}])
    same_ci = TableResult(fields=["name"], rows=[{"name": "Ava"}])
    other = TableResult(fields=["employee"], rows=[{"employee": "Ava"}])
    assert compare_results(actual, same_ci, require_matching_fields=True)
    assert not compare_results(actual, other, require_matching_fields=True)


def test_empty_results_match() -> None:
    assert compare_results(TableResult(), TableResult())


def test_to_table_result_builds_rows_in_field_order() -> None:
    result = to_table_result(raw(EXPECTED_FIELDS, [(1, "Ava"), (2, "Ben")]))
    assert result.fields == EXPECTED_FIELDS
    assert result.rows == [{"id": 1, "name": "Ava"}, {"id": 2, "name": "Ben"}]
    assert result.values() == [[1, "Ava"], [2, "Ben"]]
    assert result.row_count == 2


def test_to_table_result_without_result_set_is_empty() -> None:
    assert to_table_result(None) == TableResult(fields=[], rows=[])
    assert to_table_result(RawResult(description=None)) == TableResult(fields=[], rows=[])


def test_to_table_result_suffixes_duplicate_labels() -> None:
    result = to_table_result(raw(["id", "id", "id"], [(1, 2, 3)]))
    assert result.fields == ["id", "id_2", "id_3"]
    assert result.values() == [[1, 2, 3]]
