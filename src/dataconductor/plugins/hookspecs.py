# src/dataconductor/plugins/hookspecs.py
"""pluggy hook specifications for node handler plugins.

Usage (implementing a plugin):
    from dataconductor.plugins.hookspecs import hookimpl

    class MyPlugin:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def conductor_get_node_handlers(self):
            return [MyHandler]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from dataconductor.plugins.base import BaseNodeHandler

PROJECT_NAME = "dataconductor"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class NodeHandlerSpec:
    """Hook specifications for node handler plugins."""

    @hookspec
    def conductor_get_node_handlers(self) -> list[type["BaseNodeHandler"]]:  # type: ignore[empty-body]
        """Return node handler classes (not instances).

        Each class declares its type tag in `node_type`.
        """
