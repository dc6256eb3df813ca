# src/dataconductor/engine/streams.py
"""Streaming JSON input and output.

Intermediate files can be far larger than memory, so nodes never load
them whole. Readers yield one parsed item at a time (ijson); writers
encode one item at a time into byte chunks.

Input classification reads a small prefix past any leading whitespace:
- leading "[" : JSON array, each top-level element is one item
- otherwise   : a single root value, yielded as the sole item, unless
                the caller names an items key and the root object holds
                an array under it (feeds commonly wrap records this way)
"""

from __future__ import annotations

import codecs
import json
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import ijson

from dataconductor.contracts.errors import NotFoundError, ParseError

PEEK_BYTES = 100
CHUNK_SIZE = 64 * 1024
_WHITESPACE = b" \t\r\n"


def peek_prefix(path: Path, size: int = PEEK_BYTES) -> str:
    """Return `size` bytes from the first non-whitespace byte, decoded and stripped."""
    with path.open("rb") as f:
        head = f.read(size).removeprefix(codecs.BOM_UTF8).lstrip(_WHITESPACE)
        while not head:
            chunk = f.read(size)
            if not chunk:
                break
            head = chunk.lstrip(_WHITESPACE)
        head += f.read(size - len(head))
    return head.decode("utf-8", errors="ignore").strip()


def _has_top_level_array(path: Path, key: str) -> bool:
    """Scan parse events until the root object's `key` is seen as an array."""
    with path.open("rb") as f:
        for prefix, event, _ in ijson.parse(f):
            if prefix == key and event == "start_array":
                return True
            if prefix == "" and event == "end_map":
                return False
    return False


def _items(path: Path, ijson_prefix: str) -> Iterator[Any]:
    try:
        with path.open("rb") as f:
            yield from ijson.items(f, ijson_prefix, use_float=True)
    except ijson.JSONError as e:
        raise ParseError(f"Invalid JSON in {path}: {e}") from e
    except FileNotFoundError as e:
        raise NotFoundError(f"Input file not found: {path}") from e


def iter_json_items(path: Path | str, *, items_key: str | None = None) -> Iterator[Any]:
    """Lazily yield the JSON items of a file.

    Existence and classification are checked eagerly, so a missing file
    fails at the call. Parse errors surface while iterating.

    Args:
        path: File to read
        items_key: For a root object, yield the elements of this array
            field instead of the object itself (when present)

    Raises:
        NotFoundError: If the file does not exist
        ParseError: While iterating, if the content is not valid JSON
    """
    path = Path(path)
    if not path.is_file():
        raise NotFoundError(f"Input file not found: {path}")

    header = peek_prefix(path)
    if header.startswith("["):
        return _items(path, "item")
    if items_key is not None and header.startswith("{"):
        try:
            nested = _has_top_level_array(path, items_key)
        except ijson.JSONError as e:
            raise ParseError(f"Invalid JSON in {path}: {e}") from e
        if nested:
            return _items(path, f"{items_key}.item")
    return _items(path, "")


def iter_file_chunks(path: Path | str, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Lazily yield the raw bytes of a file.

    Raises:
        NotFoundError: If the file does not exist
    """
    path = Path(path)
    if not path.is_file():
        raise NotFoundError(f"Input file not found: {path}")

    def _chunks() -> Iterator[bytes]:
        with path.open("rb") as f:
            while chunk := f.read(chunk_size):
                yield chunk

    return _chunks()


def dumps_item(item: Any) -> str:
    """Compact JSON encoding used for persisted items and samples."""
    return json.dumps(item, ensure_ascii=False, separators=(",", ":"), default=str)


def encode_json_array(items: Iterable[Any]) -> Iterator[bytes]:
    """Encode items as a JSON array, one chunk per item.

    Memory use is bounded by the largest single item.
    """
    yield b"["
    first = True
    for item in items:
        if not first:
            yield b","
        yield dumps_item(item).encode("utf-8")
        first = False
    yield b"]"


def encode_json_value(value: Any) -> Iterator[bytes]:
    """Encode one value as a pretty-printed JSON document."""
    yield json.dumps(value, ensure_ascii=False, indent=2, default=str).encode("utf-8")
