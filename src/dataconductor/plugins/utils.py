"""Shared utilities for the plugin system."""

import re
from typing import Any

from dataconductor.plugins.sentinels import MISSING

# "items[0].id" -> "items.0.id"
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")


def split_path(path: str) -> list[str]:
    """Split a dot/bracket path into segments.

    >>> split_path("items[0].id")
    ['items', '0', 'id']
    """
    normalized = _INDEX_PATTERN.sub(r".\1", path.strip())
    return [part for part in normalized.split(".") if part != ""]


def get_path(data: Any, path: str, default: Any = MISSING) -> Any:
    """Resolve a dot/bracket path against nested dicts and lists.

    Numeric segments index into lists; on dicts they are looked up as
    string keys. Returns `default` (the MISSING sentinel unless given)
    when any segment does not resolve. Values are returned as found,
    without coercion.

    Args:
        data: Item to traverse
        path: Path such as "user.name", "items[0].id" or "items.0.id"
        default: Value to return if the path does not resolve

    Examples:
        >>> get_path({"a": {"b": 5}}, "a.b")
        5
        >>> get_path({"items": [{"id": 7}]}, "items[0].id")
        7
        >>> get_path({"a": 1}, "a.b", default=None) is None
        True
    """
    current: Any = data
    for part in split_path(path):
        if isinstance(current, dict):
            if part not in current:
                return default
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current
