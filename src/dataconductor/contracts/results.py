"""Node output references and handler results.

A handler returns a NodeResult whose output is one variant of NodeOutput.
The orchestrator dispatches on the variant to decide how the output is
persisted and how downstream nodes receive it:

- InlineOutput: a plain value, written to a JSON file
- ItemStream: lazy JSON items, written to a JSON array file
- ByteStream: lazy raw bytes, written verbatim
- FileReference: an already-persisted file, passed through
- Summary: metadata only (destinations), stored inline on the record
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class InlineOutput:
    """Small in-memory value."""

    value: Any


@dataclass(frozen=True)
class ItemStream:
    """Single-pass iterator of JSON-compatible items."""

    items: Iterator[Any] = field(repr=False)

    @classmethod
    def of(cls, items: Iterable[Any]) -> ItemStream:
        return cls(items=iter(items))


@dataclass(frozen=True)
class ByteStream:
    """Single-pass iterator of raw byte chunks.

    Attributes:
        chunks: The byte chunks, consumed once
        extension: File extension to use when persisting (no leading dot)
    """

    chunks: Iterator[bytes] = field(repr=False)
    extension: str = "bin"


@dataclass(frozen=True)
class FileReference:
    """Reference to a persisted file."""

    path: Path

    def as_ref(self) -> dict[str, str]:
        return {"filePath": str(self.path)}


@dataclass(frozen=True)
class Summary:
    """Metadata-only output, typically produced by destinations."""

    data: Mapping[str, Any]


NodeOutput = InlineOutput | ItemStream | ByteStream | FileReference | Summary


@dataclass(frozen=True)
class NodeResult:
    """Result of a node handler invocation.

    Use the factory methods to create instances.
    """

    success: bool
    output: NodeOutput | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.success and self.output is None:
            raise ValueError("NodeResult with success=True MUST carry an output. Use NodeResult.ok(output).")
        if not self.success and not self.error:
            raise ValueError("NodeResult with success=False MUST carry an error message. Use NodeResult.failure(message).")

    @classmethod
    def ok(cls, output: NodeOutput) -> NodeResult:
        """Create a successful result."""
        return cls(success=True, output=output)

    @classmethod
    def failure(cls, error: str) -> NodeResult:
        """Create a failed result carrying a human-readable message."""
        return cls(success=False, error=error)
