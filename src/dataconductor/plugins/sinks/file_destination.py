# src/dataconductor/plugins/sinks/file_destination.py
"""File destination: writes the upstream data to a named file in the run directory.

Persisted inputs are copied chunk by chunk; lazy items are encoded as a
JSON array while they stream. The filename supports two tokens:

    {{timestamp}}  run start, ISO-8601 with ':' and '.' replaced by '-'
    {{date}}       run start date, YYYY-MM-DD
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

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
from dataconductor.contracts.errors import ConfigurationError
from dataconductor.core.storage import LocalStorage, file_timestamp
from dataconductor.engine.streams import encode_json_array, encode_json_value, iter_file_chunks
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.config_base import HandlerConfig

DEFAULT_FILENAME = "output-{{timestamp}}.json"


class FileDestinationConfig(HandlerConfig):
    filename: str | None = None


def render_filename(template: str | None, moment: datetime) -> str:
    """Substitute filename tokens. Directory components are dropped.

    Raises:
        ConfigurationError: If the result is empty
    """
    name = (template or "").strip() or DEFAULT_FILENAME
    name = name.replace("{{timestamp}}", file_timestamp(moment)).replace("{{date}}", moment.date().isoformat())
    name = Path(name).name
    if not name or name in (".", ".."):
        raise ConfigurationError(f"Invalid output filename: {template!r}")
    return name


def _chunks_for(ref: NodeOutput | None) -> Iterator[bytes]:
    match ref:
        case FileReference(path=path):
            return iter_file_chunks(path)
        case ItemStream(items=items):
            return encode_json_array(items)
        case ByteStream(chunks=chunks):
            return chunks
        case InlineOutput(value=str() as text):
            return iter([text.encode("utf-8")])
        case InlineOutput(value=value):
            return encode_json_value(value)
        case Summary(data=data):
            return encode_json_value(dict(data))
        case None:
            return encode_json_value({"error": "No input data received"})
    raise ConfigurationError(f"Unsupported input for file destination: {type(ref).__name__}")


class FileDestinationHandler(BaseNodeHandler):
    """Writes the first input to <run dir>/<filename>."""

    node_type = "file_destination"
    description = "Saves upstream data to a file in the run's output directory"

    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        cfg = FileDestinationConfig.from_dict(ctx.config)
        moment = ctx.started_at or datetime.now(UTC)
        filename = render_filename(cfg.filename, moment)
        storage = ctx.storage or LocalStorage(ctx.output_dir)
        path = storage.write(ctx.output_dir, filename, _chunks_for(ctx.primary_input))
        return NodeResult.ok(Summary({"saved": True, "destination": "file", "path": str(path)}))
