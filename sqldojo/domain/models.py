"""
Domain models for sqldojo.

Defines the tabular result shape produced by every execution, the run outcome
contracts returned by the orchestrator, pool statistics, and the challenge
catalog entries.
"""
from __future__ import annotations

import enum
from typing import Any, Dict, List, Literal, Optional, TypedDict, Union

from pydantic import BaseModel, Field


class SchemaId(str, enum.Enum):
    """Identifier of a sample database seeded into engine instances."""

    EMPLOYEES = "employees"
    ECOMMERCE = "ecommerce"
    MOVIES = "movies"

    def __str__(self) -> str:
        return self.value


class Difficulty(str, enum.Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class TableResult(BaseModel):
    """
    Result of the last statement of a batch: ordered field names and row mappings.
    """

    fields: List[str] = Field(default_factory=list, description="Column labels in order.")
    rows: List[Dict[str, Any]] = Field(
        default_factory=list, description="One mapping of field name to value per row."
    )

    model_config = {
        "frozen": True,
    }

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def values(self) -> List[List[Any]]:
        """Rows as value lists in field order."""
        return [[row.get(field) for field in self.fields] for row in self.rows]


class Challenge(BaseModel):
    """
    A practice exercise graded by comparing against a reference solution.
    """

    id: str = Field(..., description="Stable slug, e.g. 'emp-basic-list'.")
    title: str
    prompt: str
    difficulty: Difficulty
    points: int = Field(..., gt=0)
    database: SchemaId
    starter_sql: str
    solution_sql: str
    concepts: List[str] = Field(default_factory=list)

    model_config = {
        "frozen": True,
    }


class TableInfo(BaseModel):
    """Description of one table in a sample schema."""

    table: str
    columns: List[str]
    description: Optional[str] = None

    model_config = {
        "frozen": True,
    }


class ValidatedSuccess(TypedDict):
    ok: Literal[True]
    matches: bool
    actual: TableResult
    expected: TableResult
    duration_ms: int


class RunFailure(TypedDict):
    ok: Literal[False]
    error: str


RunOutcome = Union[ValidatedSuccess, RunFailure]


class PlaygroundResult(TypedDict, total=False):
    """
    Freeform run outcome. `result` is None exactly when `error` is set.
    """

    sql: str
    result: Optional[TableResult]
    error: Optional[str]
    duration_ms: Optional[int]


class PoolStats(TypedDict):
    total_instances: int
    max_total_instances: int
    max_pool_size: int
    checked_out: int
    idle: Dict[str, int]


__all__ = [
    "SchemaId",
    "Difficulty",
    "TableResult",
    "Challenge",
    "TableInfo",
    "ValidatedSuccess",
    "RunFailure",
    "RunOutcome",
    "PlaygroundResult",
    "PoolStats",
]
