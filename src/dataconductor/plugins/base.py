# src/dataconductor/plugins/base.py
"""Base class for node handlers.

Handlers are stateless between invocations: all per-node input arrives in
the NodeExecutionContext. One instance per type tag is shared by every
run, including runs executing concurrently on the job queue.

Failure contract:
- raise a ConductorError subclass (NotFoundError, ExternalCallError, ...)
  or return NodeResult.failure(message) to fail the node
- lazy outputs (ItemStream, ByteStream) may raise while being consumed;
  the orchestrator treats that as the node failing
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from dataconductor.contracts import (
    ByteStream,
    FileReference,
    InlineOutput,
    ItemStream,
    NodeExecutionContext,
    NodeOutput,
    NodeResult,
    Summary,
)
from dataconductor.contracts.errors import ParseError
from dataconductor.engine.streams import iter_json_items


class BaseNodeHandler(ABC):
    """Base class for all node handlers.

    Subclasses set `node_type` to the tag used in pipeline graphs and
    implement execute().

        class UppercaseHandler(BaseNodeHandler):
            node_type = "uppercase"

            def execute(self, ctx: NodeExecutionContext) -> NodeResult:
                items = (str(item).upper() for item in self.iter_input_items(ctx))
                return NodeResult.ok(ItemStream(items))
    """

    node_type: str
    description: str = ""

    @abstractmethod
    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        """Run the node against its context."""
        ...

    def iter_input_items(self, ctx: NodeExecutionContext) -> Iterator[Any]:
        """Lazily yield the items of every input, in input order."""
        for ref in ctx.inputs:
            yield from iter_output_items(ref)


def iter_output_items(ref: NodeOutput, *, items_key: str | None = None) -> Iterator[Any]:
    """Yield the JSON items behind any output reference.

    Raises:
        ParseError: For raw byte streams, which carry no item structure
    """
    match ref:
        case FileReference(path=path):
            yield from iter_json_items(path, items_key=items_key)
        case ItemStream(items=items):
            yield from items
        case InlineOutput(value=value):
            if isinstance(value, list):
                yield from value
            else:
                yield value
        case Summary(data=data):
            yield dict(data)
        case ByteStream():
            raise ParseError("Cannot read items from an unpersisted byte stream")
