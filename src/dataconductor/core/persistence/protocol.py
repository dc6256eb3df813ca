# src/dataconductor/core/persistence/protocol.py
"""ExecutionStore protocol and store-agnostic helpers."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

from dataconductor.contracts import ExecutionRecord, ExecutionStatus, LogEntry
from dataconductor.core.logging import get_logger

if TYPE_CHECKING:
    from dataconductor.core.storage import StorageBackend

logger = get_logger(__name__)


class ExecutionStore(Protocol):
    """Durable record of pipeline executions.

    Every mutation is persisted immediately so an observer sees progress
    while a run is still executing. A record has exactly one writer (the
    orchestrator running it).
    """

    def create(self, pipeline_id: str, started_at: datetime) -> ExecutionRecord:
        """Create a RUNNING record with an empty log."""
        ...

    def append_log(self, execution_id: str, entry: LogEntry) -> None:
        ...

    def set_output(self, execution_id: str, node_id: str, ref: dict[str, Any]) -> None:
        ...

    def finalize(self, execution_id: str, status: ExecutionStatus, completed_at: datetime) -> None:
        """Move a RUNNING record to a terminal status.

        Raises:
            ExecutionStateError: If the record is already terminal
            NotFoundError: If the record does not exist
        """
        ...

    def get(self, execution_id: str) -> ExecutionRecord:
        """Raises NotFoundError if the record does not exist."""
        ...

    def list_for_pipeline(self, pipeline_id: str) -> list[ExecutionRecord]:
        """All records for a pipeline, newest first."""
        ...

    def last_started_at(self, pipeline_id: str) -> datetime | None:
        ...

    def mark_purged(self, execution_id: str) -> None:
        ...


def purge_old_executions(store: ExecutionStore, storage: StorageBackend, pipeline_id: str, *, keep: int = 5) -> int:
    """Delete run directories of all but the newest `keep` executions.

    Records are kept (and flagged purged) so the log trail survives.
    Running executions are never purged.

    Returns:
        Number of executions purged
    """
    purged = 0
    for record in store.list_for_pipeline(pipeline_id)[keep:]:
        if record.purged or record.status is ExecutionStatus.RUNNING:
            continue
        storage.delete_directory(storage.run_directory(record.id))
        store.mark_purged(record.id)
        purged += 1
    logger.info("executions_purged", pipeline_id=pipeline_id, count=purged, kept=keep)
    return purged
