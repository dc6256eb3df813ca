"""Execution context handed to node handlers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dataconductor.contracts.results import NodeOutput

if TYPE_CHECKING:
    from dataconductor.core.storage import StorageBackend


@dataclass(frozen=True)
class NodeExecutionContext:
    """Everything a handler may see while executing one node.

    Attributes:
        node_id: Graph node identifier
        config: Opaque per-node configuration (handler validates it)
        inputs: Upstream outputs, in incoming-edge order
        execution_id: Run this node belongs to
        output_dir: Per-run directory for files the handler writes
        storage: Storage backend owning output_dir
        started_at: Run start time (used for filename tokens)
    """

    node_id: str
    config: Mapping[str, Any]
    inputs: tuple[NodeOutput, ...]
    execution_id: str
    output_dir: Path
    storage: StorageBackend | None = field(default=None, repr=False)
    started_at: datetime | None = None

    @property
    def primary_input(self) -> NodeOutput | None:
        """First upstream output, or None for a node with no inputs."""
        return self.inputs[0] if self.inputs else None
