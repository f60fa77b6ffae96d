"""
Exception hierarchy for sqldojo.

Configuration errors (unknown schema or challenge) are raised to the caller.
Pool exhaustion and execution errors are converted into failure outcomes at
the orchestrator boundary.
"""

from __future__ import annotations


class SqlDojoError(Exception):
    """Base class for all sqldojo errors."""


class UnknownSchemaError(SqlDojoError, KeyError):
    """Raised when a schema identifier is not present in the seed catalog."""

    def __init__(self, schema_id: object, available: list[str] | None = None) -> None:
        self.schema_id = schema_id
        self.available = available or []
        message = f"Unknown schema '{schema_id}'"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0])


class UnknownChallengeError(SqlDojoError, KeyError):
    """Raised when a challenge id is not present in the challenge catalog."""

    def __init__(self, challenge_id: str) -> None:
        self.challenge_id = challenge_id
        super().__init__(f"Unknown challenge '{challenge_id}'")

    def __str__(self) -> str:
        return str(self.args[0])


class PoolExhaustedError(SqlDojoError, RuntimeError):
    """All engine instance capacity is in use; the caller may retry later."""

    def __init__(self, total_instances: int, max_total_instances: int) -> None:
        self.total_instances = total_instances
        self.max_total_instances = max_total_instances
        super().__init__(
            "Database pool exhausted. Too many concurrent operations. "
            "Please wait and try again."
        )


class ExecutionError(SqlDojoError):
    """The embedded engine rejected or failed a statement batch."""


class StatementTimeoutError(ExecutionError):
    """A statement batch ran longer than the configured timeout."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Statement timed out after {timeout_ms} ms")


__all__ = [
    "SqlDojoError",
    "UnknownSchemaError",
    "UnknownChallengeError",
    "PoolExhaustedError",
    "ExecutionError",
    "StatementTimeoutError",
]
