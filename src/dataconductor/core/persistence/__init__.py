"""Execution record persistence.

Two stores implement the ExecutionStore protocol:
- InMemoryExecutionStore: process-local, used by tests and one-off CLI runs
- SQLExecutionStore: SQLAlchemy Core tables (SQLite, PostgreSQL)
"""

from dataconductor.core.persistence.memory import InMemoryExecutionStore
from dataconductor.core.persistence.protocol import ExecutionStore, purge_old_executions
from dataconductor.core.persistence.sql import SQLExecutionStore

__all__ = [
    "ExecutionStore",
    "InMemoryExecutionStore",
    "SQLExecutionStore",
    "purge_old_executions",
]
