# src/dataconductor/engine/sampling.py
"""Bounded debug samples of node inputs and outputs.

In debug mode the orchestrator records what flowed into and out of each
node. Samples are strictly bounded (item count and serialized length)
and only ever read from persisted files or inline values, so sampling
never consumes a lazy stream a downstream node still needs.

A sampling failure is logged and ignored; it never fails the run.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from itertools import islice
from typing import Any

from dataconductor.contracts import (
    ByteStream,
    FileReference,
    InlineOutput,
    ItemStream,
    NodeOutput,
    SampleDirection,
    Summary,
)
from dataconductor.core.logging import get_logger
from dataconductor.engine.streams import dumps_item, iter_json_items, peek_prefix

logger = get_logger(__name__)

DEFAULT_SAMPLE_ITEMS = 5
DEFAULT_SAMPLE_CHARS = 500
_ELLIPSIS = "..."


@dataclass
class DebugSamples:
    """Per-node samples keyed by direction.

    Serialized shape (stored in the final debug log entry):
        {"<node_id>": {"input": [...], "output": [...]}}
    """

    by_node: dict[str, dict[str, list[str]]] = field(default_factory=dict)

    def record(self, node_id: str, direction: SampleDirection, items: list[str]) -> None:
        self.by_node.setdefault(node_id, {})[direction.value] = items

    def get(self, node_id: str, direction: SampleDirection) -> list[str]:
        return self.by_node.get(node_id, {}).get(direction.value, [])

    def as_dict(self) -> dict[str, dict[str, list[str]]]:
        return {node_id: dict(directions) for node_id, directions in self.by_node.items()}

    def __bool__(self) -> bool:
        return bool(self.by_node)


class DebugSampler:
    """Captures at most `max_items` items, each at most `max_chars` long."""

    def __init__(self, *, max_items: int = DEFAULT_SAMPLE_ITEMS, max_chars: int = DEFAULT_SAMPLE_CHARS) -> None:
        if max_items < 1:
            raise ValueError(f"max_items must be >= 1, got {max_items}")
        if max_chars <= len(_ELLIPSIS):
            raise ValueError(f"max_chars must be > {len(_ELLIPSIS)}, got {max_chars}")
        self._max_items = max_items
        self._max_chars = max_chars

    @property
    def max_items(self) -> int:
        return self._max_items

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def truncate(self, text: str) -> str:
        if len(text) <= self._max_chars:
            return text
        return text[: self._max_chars - len(_ELLIPSIS)] + _ELLIPSIS

    def sample_items(self, items: Iterable[Any]) -> list[str]:
        """Serialize and truncate the first max_items items."""
        return [self.truncate(dumps_item(item)) for item in islice(items, self._max_items)]

    def _iter_reference(self, output: NodeOutput) -> Iterator[Any] | None:
        match output:
            case FileReference(path=path):
                if peek_prefix(path).startswith(("[", "{")):
                    return iter_json_items(path)
                # Non-JSON body (text/csv): sample the raw head instead
                with path.open("rb") as f:
                    head = f.read(self._max_chars + 1).decode("utf-8", errors="replace")
                return iter([head])
            case InlineOutput(value=value):
                return iter(value if isinstance(value, list) else [value])
            case Summary(data=data):
                return iter([dict(data)])
            case ItemStream() | ByteStream():
                # Single-pass; sampling would steal items from the consumer
                return None
        return None

    def sample(self, output: NodeOutput | None) -> list[str]:
        """Sample one node output reference. Never raises."""
        if output is None:
            return []
        try:
            items = self._iter_reference(output)
            if items is None:
                return []
            sampled = self.sample_items(items)
            close = getattr(items, "close", None)
            if close is not None:
                close()
            return sampled
        except Exception as e:
            logger.warning("debug_sample_failed", output_type=type(output).__name__, error=str(e))
            return []

    def sample_many(self, outputs: Iterable[NodeOutput]) -> list[str]:
        """Sample across several inputs, still bounded by max_items overall."""
        collected: list[str] = []
        for output in outputs:
            remaining = self._max_items - len(collected)
            if remaining <= 0:
                break
            collected.extend(self.sample(output)[:remaining])
        return collected
