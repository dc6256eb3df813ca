# src/dataconductor/core/persistence/sql.py
"""ExecutionStore on SQLAlchemy Core."""

from __future__ import annotations

import json
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from threading import Lock
from typing import Any, Self

from sqlalchemy import Connection, Engine, create_engine, event, func, select, update
from sqlalchemy.pool import StaticPool

from dataconductor.contracts import (
    ExecutionRecord,
    ExecutionStateError,
    ExecutionStatus,
    LogEntry,
    LogLevel,
    NotFoundError,
)
from dataconductor.core.persistence.schema import execution_logs_table, executions_table, metadata


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on round-trip; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class SQLExecutionStore:
    """Execution records in a relational database.

    Example:
        store = SQLExecutionStore.from_url("sqlite:///conductor.db")
        record = store.create("orders", datetime.now(UTC))
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        # Serializes seq allocation for log appends
        self._log_lock = Lock()

    @classmethod
    def from_url(cls, url: str, *, create_tables: bool = True) -> Self:
        """Create a store from a SQLAlchemy URL.

        Args:
            url: SQLAlchemy connection URL
            create_tables: Whether to create tables if they don't exist
        """
        engine = create_engine(url, echo=False)
        if url.startswith("sqlite"):
            cls._configure_sqlite(engine)
        if create_tables:
            metadata.create_all(engine)
        return cls(engine)

    @classmethod
    def in_memory(cls) -> Self:
        """In-memory SQLite store shared across threads, for testing."""
        engine = create_engine(
            "sqlite://",
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        metadata.create_all(engine)
        return cls(engine)

    @staticmethod
    def _configure_sqlite(engine: Engine) -> None:
        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_connection: object, connection_record: object) -> None:
            cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    @property
    def engine(self) -> Engine:
        return self._engine

    def close(self) -> None:
        self._engine.dispose()

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Connection inside a transaction; commits on success, rolls back on error."""
        with self._engine.begin() as conn:
            yield conn

    def _require_row(self, conn: Connection, execution_id: str) -> Any:
        row = conn.execute(select(executions_table).where(executions_table.c.execution_id == execution_id)).first()
        if row is None:
            raise NotFoundError(f"Execution not found: {execution_id}")
        return row

    def create(self, pipeline_id: str, started_at: datetime) -> ExecutionRecord:
        execution_id = str(uuid.uuid4())
        with self.connection() as conn:
            conn.execute(
                executions_table.insert().values(
                    execution_id=execution_id,
                    pipeline_id=pipeline_id,
                    status=ExecutionStatus.RUNNING.value,
                    started_at=started_at,
                    outputs_json="{}",
                    purged=False,
                )
            )
        return ExecutionRecord(id=execution_id, pipeline_id=pipeline_id, status=ExecutionStatus.RUNNING, started_at=started_at)

    def append_log(self, execution_id: str, entry: LogEntry) -> None:
        details = json.dumps(entry.details, default=str) if entry.details is not None else None
        with self._log_lock, self.connection() as conn:
            self._require_row(conn, execution_id)
            next_seq = conn.execute(
                select(func.coalesce(func.max(execution_logs_table.c.seq), -1) + 1).where(
                    execution_logs_table.c.execution_id == execution_id
                )
            ).scalar_one()
            conn.execute(
                execution_logs_table.insert().values(
                    execution_id=execution_id,
                    seq=next_seq,
                    timestamp=entry.timestamp,
                    level=entry.level.value,
                    message=entry.message,
                    details_json=details,
                )
            )

    def set_output(self, execution_id: str, node_id: str, ref: dict[str, Any]) -> None:
        with self.connection() as conn:
            row = self._require_row(conn, execution_id)
            outputs = json.loads(row.outputs_json)
            outputs[node_id] = ref
            conn.execute(
                update(executions_table)
                .where(executions_table.c.execution_id == execution_id)
                .values(outputs_json=json.dumps(outputs, default=str))
            )

    def finalize(self, execution_id: str, status: ExecutionStatus, completed_at: datetime) -> None:
        if not status.is_terminal:
            raise ExecutionStateError(f"Cannot finalize execution {execution_id} with non-terminal status {status}")
        with self.connection() as conn:
            # Conditional update makes the RUNNING -> terminal transition happen once
            result = conn.execute(
                update(executions_table)
                .where(
                    executions_table.c.execution_id == execution_id,
                    executions_table.c.status == ExecutionStatus.RUNNING.value,
                )
                .values(status=status.value, completed_at=completed_at)
            )
            if result.rowcount == 0:
                row = self._require_row(conn, execution_id)
                raise ExecutionStateError(f"Execution {execution_id} already finalized as {row.status}")

    def _to_record(self, conn: Connection, row: Any) -> ExecutionRecord:
        log_rows = conn.execute(
            select(execution_logs_table)
            .where(execution_logs_table.c.execution_id == row.execution_id)
            .order_by(execution_logs_table.c.seq)
        ).all()
        logs = [
            LogEntry(
                timestamp=_aware(log.timestamp),  # type: ignore[arg-type]
                message=log.message,
                level=LogLevel(log.level),
                details=json.loads(log.details_json) if log.details_json is not None else None,
            )
            for log in log_rows
        ]
        return ExecutionRecord(
            id=row.execution_id,
            pipeline_id=row.pipeline_id,
            status=ExecutionStatus(row.status),
            started_at=_aware(row.started_at),  # type: ignore[arg-type]
            completed_at=_aware(row.completed_at),
            logs=logs,
            outputs=json.loads(row.outputs_json),
            purged=bool(row.purged),
        )

    def get(self, execution_id: str) -> ExecutionRecord:
        with self.connection() as conn:
            return self._to_record(conn, self._require_row(conn, execution_id))

    def list_for_pipeline(self, pipeline_id: str) -> list[ExecutionRecord]:
        with self.connection() as conn:
            rows = conn.execute(
                select(executions_table)
                .where(executions_table.c.pipeline_id == pipeline_id)
                .order_by(executions_table.c.started_at.desc())
            ).all()
            return [self._to_record(conn, row) for row in rows]

    def last_started_at(self, pipeline_id: str) -> datetime | None:
        with self.connection() as conn:
            value = conn.execute(
                select(func.max(executions_table.c.started_at)).where(executions_table.c.pipeline_id == pipeline_id)
            ).scalar_one_or_none()
        return _aware(value)

    def mark_purged(self, execution_id: str) -> None:
        with self.connection() as conn:
            self._require_row(conn, execution_id)
            conn.execute(update(executions_table).where(executions_table.c.execution_id == execution_id).values(purged=True))
