"""
Domain package for sqldojo.

Exports the core data definitions shared by the catalog, pool, normalizer and
orchestrator. Keep this package free of engine I/O.
"""

from sqldojo.domain.models import (
    Challenge,
    Difficulty,
    PlaygroundResult,
    PoolStats,
    RunFailure,
    RunOutcome,
    SchemaId,
    TableInfo,
    TableResult,
    ValidatedSuccess,
)

__all__ = [
    "Challenge",
    "Difficulty",
    "PlaygroundResult",
    "PoolStats",
    "RunFailure",
    "RunOutcome",
    "SchemaId",
    "TableInfo",
    "TableResult",
    "ValidatedSuccess",
]
