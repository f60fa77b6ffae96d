"""
Catalog package for sqldojo.

Static content: seed scripts for each sample schema, the table descriptions
shown to users, and the challenge list. Pure data plus lookups; no engine I/O.
"""

from sqldojo.catalog.challenges import (
    CHALLENGES,
    concept_counts,
    filter_challenges,
    get_challenge,
)
from sqldojo.catalog.seeds import (
    SEEDS,
    available_schemas,
    describe_schema,
    get_seed,
    resolve_schema,
)

__all__ = [
    "CHALLENGES",
    "SEEDS",
    "available_schemas",
    "concept_counts",
    "describe_schema",
    "filter_challenges",
    "get_challenge",
    "get_seed",
    "resolve_schema",
]
