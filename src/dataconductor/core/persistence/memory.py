"""Process-local ExecutionStore."""

from __future__ import annotations

import copy
import uuid
from datetime import datetime
from threading import Lock
from typing import Any

from dataconductor.contracts import (
    ExecutionRecord,
    ExecutionStateError,
    ExecutionStatus,
    LogEntry,
    NotFoundError,
)


class InMemoryExecutionStore:
    """ExecutionStore backed by a dict. Thread-safe; returns copies."""

    def __init__(self) -> None:
        self._records: dict[str, ExecutionRecord] = {}
        self._lock = Lock()

    def _require(self, execution_id: str) -> ExecutionRecord:
        try:
            return self._records[execution_id]
        except KeyError:
            raise NotFoundError(f"Execution not found: {execution_id}") from None

    def create(self, pipeline_id: str, started_at: datetime) -> ExecutionRecord:
        record = ExecutionRecord(
            id=str(uuid.uuid4()),
            pipeline_id=pipeline_id,
            status=ExecutionStatus.RUNNING,
            started_at=started_at,
        )
        with self._lock:
            self._records[record.id] = record
            return copy.deepcopy(record)

    def append_log(self, execution_id: str, entry: LogEntry) -> None:
        with self._lock:
            self._require(execution_id).logs.append(entry)

    def set_output(self, execution_id: str, node_id: str, ref: dict[str, Any]) -> None:
        with self._lock:
            self._require(execution_id).outputs[node_id] = dict(ref)

    def finalize(self, execution_id: str, status: ExecutionStatus, completed_at: datetime) -> None:
        if not status.is_terminal:
            raise ExecutionStateError(f"Cannot finalize execution {execution_id} with non-terminal status {status}")
        with self._lock:
            record = self._require(execution_id)
            if record.status.is_terminal:
                raise ExecutionStateError(f"Execution {execution_id} already finalized as {record.status}")
            record.status = status
            record.completed_at = completed_at

    def get(self, execution_id: str) -> ExecutionRecord:
        with self._lock:
            return copy.deepcopy(self._require(execution_id))

    def list_for_pipeline(self, pipeline_id: str) -> list[ExecutionRecord]:
        with self._lock:
            records = [copy.deepcopy(r) for r in self._records.values() if r.pipeline_id == pipeline_id]
        return sorted(records, key=lambda r: r.started_at, reverse=True)

    def last_started_at(self, pipeline_id: str) -> datetime | None:
        records = self.list_for_pipeline(pipeline_id)
        return records[0].started_at if records else None

    def mark_purged(self, execution_id: str) -> None:
        with self._lock:
            self._require(execution_id).purged = True
