"""Exception hierarchy for pipeline execution.

Handlers raise these to signal the category of a failure; the orchestrator
records the message in the execution log and stops the run. Anything that
is not a ConductorError is treated the same way, but these carry enough
structure for callers (CLI, scheduler) to react without string matching.
"""

from __future__ import annotations


class ConductorError(Exception):
    """Base class for all DataConductor errors."""


class ConfigurationError(ConductorError):
    """Raised when a graph, handler config, or settings file is invalid."""


class NotFoundError(ConductorError):
    """Raised when a referenced file, node, or execution does not exist."""


class ParseError(ConductorError):
    """Raised when data or an expression cannot be parsed or evaluated."""


class ScheduleFormatError(ConductorError):
    """Raised when a schedule string is neither interval minutes nor cron."""


class ExternalCallError(ConductorError):
    """Raised when a call to an external system fails.

    Attributes:
        status_code: HTTP status code, if the failure was an HTTP response
        body: Response body (possibly truncated), if one was received
    """

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class PipelineRunError(ConductorError):
    """Raised by the orchestrator when a run ends in FAILED.

    The underlying handler error is chained via __cause__.

    Attributes:
        execution_id: Execution that failed
        node_id: Node that failed, or None if the graph itself was unusable
    """

    def __init__(self, message: str, *, execution_id: str, node_id: str | None = None) -> None:
        super().__init__(message)
        self.execution_id = execution_id
        self.node_id = node_id


class ExecutionStateError(ConductorError):
    """Raised on an illegal execution record transition (e.g. finalizing twice)."""


class NodeFailedError(ConductorError):
    """Raised when a handler returns an unsuccessful NodeResult."""
