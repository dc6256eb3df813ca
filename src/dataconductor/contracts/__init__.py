"""Shared contracts: enums, errors, results and execution records.

Leaf package. Nothing here imports from engine, plugins or core at runtime.
"""

from dataconductor.contracts.context import NodeExecutionContext
from dataconductor.contracts.enums import ExecutionStatus, LogLevel, SampleDirection
from dataconductor.contracts.errors import (
    ConductorError,
    ConfigurationError,
    ExecutionStateError,
    ExternalCallError,
    NodeFailedError,
    NotFoundError,
    ParseError,
    PipelineRunError,
    ScheduleFormatError,
)
from dataconductor.contracts.execution import ExecutionRecord, LogEntry
from dataconductor.contracts.results import (
    ByteStream,
    FileReference,
    InlineOutput,
    ItemStream,
    NodeOutput,
    NodeResult,
    Summary,
)

__all__ = [
    "ByteStream",
    "ConductorError",
    "ConfigurationError",
    "ExecutionRecord",
    "ExecutionStateError",
    "ExecutionStatus",
    "ExternalCallError",
    "FileReference",
    "InlineOutput",
    "ItemStream",
    "LogEntry",
    "LogLevel",
    "NodeExecutionContext",
    "NodeFailedError",
    "NodeOutput",
    "NodeResult",
    "NotFoundError",
    "ParseError",
    "PipelineRunError",
    "SampleDirection",
    "ScheduleFormatError",
    "Summary",
]
