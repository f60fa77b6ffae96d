"""
sqldojo - grade SQL practice queries against reference solutions.

Users submit SQL against small preloaded sample databases. The submission and
a reference solution run concurrently on pooled, freshly seeded in-memory
DuckDB instances, and their results are compared independently of row order.

The package covers:

- the sample schema seeds and the challenge catalog
- a bounded pool of embedded engine instances
- result normalization and order-independent comparison
- the query runner that ties them together, plus a typer CLI
"""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"

# Public API exports
from sqldojo.config import Settings, get_settings
from sqldojo.domain.models import PlaygroundResult, RunOutcome, SchemaId, TableResult
from sqldojo.errors import (
    ExecutionError,
    PoolExhaustedError,
    SqlDojoError,
    StatementTimeoutError,
    UnknownChallengeError,
    UnknownSchemaError,
)
from sqldojo.infrastructure.pool import InstancePool
from sqldojo.normalizer import compare_results, compare_rows, normalize_rows
from sqldojo.orchestrator import QueryRunner, run_freeform, run_validated
from sqldojo.utils.logging import configure_logging, get_logger

__all__ = [
    # Version info
    "__version__",
    "__license__",
    # Configuration
    "Settings",
    "get_settings",
    # Data
    "SchemaId",
    "TableResult",
    "RunOutcome",
    "PlaygroundResult",
    # Errors
    "SqlDojoError",
    "UnknownSchemaError",
    "UnknownChallengeError",
    "PoolExhaustedError",
    "ExecutionError",
    "StatementTimeoutError",
    # Execution
    "InstancePool",
    "QueryRunner",
    "run_validated",
    "run_freeform",
    # Comparison
    "compare_rows",
    "compare_results",
    "normalize_rows",
    # Logging
    "configure_logging",
    "get_logger",
]
