"""Status codes and kinds shared across subsystem boundaries."""

from enum import StrEnum


class ExecutionStatus(StrEnum):
    """Status of a pipeline execution.

    Stored in the execution store (executions.status).
    """

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.RUNNING


class LogLevel(StrEnum):
    """Severity of an execution log entry.

    Stored in the execution store (execution_logs.level).
    """

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class SampleDirection(StrEnum):
    """Which side of a node a debug sample was taken from."""

    INPUT = "input"
    OUTPUT = "output"
