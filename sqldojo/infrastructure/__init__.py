"""
Infrastructure package for sqldojo.

Owns the embedded engine handles and the pool that hands them out. Keep this
layer focused on engine I/O and resource management, decoupled from grading.
"""

from sqldojo.infrastructure.engine import (
    DuckDBEngine,
    EngineInstance,
    RawResult,
    create_engine,
)
from sqldojo.infrastructure.pool import InstancePool

__all__ = [
    "DuckDBEngine",
    "EngineInstance",
    "InstancePool",
    "RawResult",
    "create_engine",
]
