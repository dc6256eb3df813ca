# src/dataconductor/core/persistence/schema.py
"""SQLAlchemy table definitions for execution records.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

executions_table = Table(
    "executions",
    metadata,
    Column("execution_id", String(64), primary_key=True),
    Column("pipeline_id", String(128), nullable=False),
    Column("status", String(16), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("completed_at", DateTime(timezone=True)),
    # node_id -> {"filePath": ...} or destination summary
    Column("outputs_json", Text, nullable=False, default="{}"),
    Column("purged", Boolean, nullable=False, default=False),
)

Index("ix_executions_pipeline_started", executions_table.c.pipeline_id, executions_table.c.started_at)

# Append-only; seq preserves insertion order within an execution
execution_logs_table = Table(
    "execution_logs",
    metadata,
    Column("log_id", Integer, primary_key=True, autoincrement=True),
    Column("execution_id", String(64), ForeignKey("executions.execution_id"), nullable=False),
    Column("seq", Integer, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    Column("level", String(16), nullable=False),
    Column("message", Text, nullable=False),
    Column("details_json", Text),
)

Index("ix_execution_logs_execution_seq", execution_logs_table.c.execution_id, execution_logs_table.c.seq, unique=True)
