from __future__ import annotations

import json
import logging
import sys

from sqldojo.utils.logging import ConsoleFormatter, JsonFormatter, _json_formatter, configure_logging

EXPECTED_TOTAL = 3
EXPECTED_TIMEOUT_MS = 250


def _record(msg: str = "hello") -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )


def test_json_formatter_promotes_standard_extra_fields() -> None:
    record = _record()
    record.total_instances = EXPECTED_TOTAL
    record.schema_id = "employees"

    payload = json.loads(_json_formatter(record))

    assert payload["level"] == "INFO"
    assert payload["logger"] == "test.logger"
    assert payload["message"] == "hello"
    assert payload["total_instances"] == EXPECTED_TOTAL
    assert payload["schema_id"] == "employees"
    assert "pathname" not in payload
    assert "lineno" not in payload


def test_json_formatter_supports_nested_extra_field() -> None:
    record = _record()
    record.extra = {"timeout_ms": EXPECTED_TIMEOUT_MS}

    payload = json.loads(_json_formatter(record))

    assert payload["timeout_ms"] == EXPECTED_TIMEOUT_MS
    assert "extra" not in payload


def test_json_formatter_includes_exception_text() -> None:
    try:
        raise ValueError("bad value")
    except ValueError:
        record = logging.LogRecord(
            name="test.logger",
            level=logging.ERROR,
            pathname=__file__,
            lineno=1,
            msg="failed",
            args=(),
            exc_info=sys.exc_info(),
        )

    payload = json.loads(JsonFormatter().format(record))

    assert "ValueError: bad value" in payload["exc_info"]


def test_configure_logging_installs_json_handler() -> None:
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level
    try:
        configure_logging(level="WARNING", json_logs=True)
        assert root.level == logging.WARNING
        assert any(isinstance(h.formatter, JsonFormatter) for h in root.handlers)
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)


def test_console_formatter_appends_context_fields() -> None:
    record = _record("Acquired instance")
    record.schema_id = "employees"
    record.total_instances = EXPECTED_TOTAL

    line = ConsoleFormatter("%(levelname)s %(message)s").format(record)

    assert line == f"INFO Acquired instance [schema_id=employees total_instances={EXPECTED_TOTAL}]"


def test_console_formatter_leaves_plain_records_alone() -> None:
    line = ConsoleFormatter("%(levelname)s %(message)s").format(_record())

    assert line == "INFO hello"
