# src/dataconductor/plugins/sources/file_source.py
"""Source node: streams the run's trigger file.

The orchestrator seeds the source with a FileReference to the file a
sync step produced. The handler classifies it by its first bytes:
a JSON array yields each element; a single object yields its `items`
array when it has one (feed payloads), otherwise the object itself.
"""

from dataconductor.contracts import FileReference, ItemStream, NodeExecutionContext, NodeResult
from dataconductor.contracts.errors import NotFoundError
from dataconductor.engine.streams import iter_json_items
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.config_base import HandlerConfig


class FileSourceConfig(HandlerConfig):
    """Configuration for the source node.

    items_key: name of the nested array to unwrap from a root object;
    null disables unwrapping.
    """

    items_key: str | None = "items"


class FileSourceHandler(BaseNodeHandler):
    """Yields the items of the seeded trigger file lazily."""

    node_type = "source"
    description = "Reads the pipeline's trigger file as a stream of JSON items"

    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        cfg = FileSourceConfig.from_dict(ctx.config)
        seed = ctx.primary_input
        if not isinstance(seed, FileReference):
            raise NotFoundError(f"Source node {ctx.node_id} has no trigger file")
        # Raises NotFoundError eagerly for a missing file
        items = iter_json_items(seed.path, items_key=cfg.items_key)
        return NodeResult.ok(ItemStream(items))
