"""Execution record types.

An ExecutionRecord is the durable trail of one pipeline run: its status,
its ordered log, and the output reference of every node that completed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from dataconductor.contracts.enums import ExecutionStatus, LogLevel


@dataclass(frozen=True)
class LogEntry:
    """One entry in an execution log."""

    timestamp: datetime
    message: str
    level: LogLevel = LogLevel.INFO
    details: dict[str, Any] | None = None


@dataclass
class ExecutionRecord:
    """Status, log and outputs of a single run.

    Attributes:
        id: Execution identifier
        pipeline_id: Pipeline this run belongs to
        status: RUNNING until finalized exactly once
        started_at: When the record was created
        completed_at: Set when status becomes terminal
        logs: Ordered, append-only log entries
        outputs: node_id -> {"filePath": ...} or a destination summary
        purged: True once the run directory has been deleted
    """

    id: str
    pipeline_id: str
    status: ExecutionStatus
    started_at: datetime
    completed_at: datetime | None = None
    logs: list[LogEntry] = field(default_factory=list)
    outputs: dict[str, dict[str, Any]] = field(default_factory=dict)
    purged: bool = False

    def messages(self) -> list[str]:
        """Log messages in order, for quick inspection."""
        return [entry.message for entry in self.logs]
