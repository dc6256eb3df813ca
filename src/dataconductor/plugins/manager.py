# src/dataconductor/plugins/manager.py
"""Node handler registry.

Uses pluggy for hook-based registration. The registry is built once at
startup and injected into the orchestrator; nothing looks handlers up
through module globals.
"""

from typing import Any

import pluggy

from dataconductor.contracts.errors import ConfigurationError
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.hookspecs import PROJECT_NAME, NodeHandlerSpec, hookimpl


class _BuiltinHandlers:
    """Registers the handlers shipped with DataConductor."""

    @hookimpl
    def conductor_get_node_handlers(self) -> list[type[BaseNodeHandler]]:
        from dataconductor.plugins.processors.http_request import HttpRequestHandler
        from dataconductor.plugins.processors.openai import OpenAIHandler
        from dataconductor.plugins.processors.transform_json import TransformJsonHandler
        from dataconductor.plugins.sinks.database import MySQLDestinationHandler, PostgresDestinationHandler
        from dataconductor.plugins.sinks.file_destination import FileDestinationHandler
        from dataconductor.plugins.sources.file_source import FileSourceHandler

        return [
            FileSourceHandler,
            HttpRequestHandler,
            TransformJsonHandler,
            OpenAIHandler,
            FileDestinationHandler,
            PostgresDestinationHandler,
            MySQLDestinationHandler,
        ]


class NodeHandlerRegistry:
    """Maps node type tags to handler instances.

    Usage:
        registry = NodeHandlerRegistry()
        registry.register_builtin_handlers()
        registry.register(MyPlugin())

        handler = registry.get("transform_json")
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(NodeHandlerSpec)
        self._handlers: dict[str, BaseNodeHandler] = {}

    @classmethod
    def with_builtins(cls) -> "NodeHandlerRegistry":
        registry = cls()
        registry.register_builtin_handlers()
        return registry

    def register_builtin_handlers(self) -> None:
        """Register the built-in handlers. Call once at startup."""
        self.register(_BuiltinHandlers())

    def register(self, plugin: Any) -> None:
        """Register a plugin object implementing conductor_get_node_handlers.

        Raises:
            ConfigurationError: If two handlers claim the same type tag
        """
        self._pm.register(plugin)
        try:
            self._refresh_handlers()
        except ConfigurationError:
            self._pm.unregister(plugin)
            raise

    def _refresh_handlers(self) -> None:
        # Collect everything first so a duplicate leaves the cache untouched
        new_handlers: dict[str, BaseNodeHandler] = {}
        for handler_classes in self._pm.hook.conductor_get_node_handlers():
            for cls in handler_classes:
                tag = cls.node_type
                if tag in new_handlers:
                    existing = type(new_handlers[tag]).__name__
                    raise ConfigurationError(f"Duplicate node handler type: '{tag}'. Already registered by {existing}")
                # Keep existing instances so handler state survives re-registration
                current = self._handlers.get(tag)
                new_handlers[tag] = current if type(current) is cls else cls()
        self._handlers = new_handlers

    def get(self, node_type: str) -> BaseNodeHandler:
        """Get the handler for a type tag.

        Raises:
            ConfigurationError: If no handler is registered for the tag
        """
        try:
            return self._handlers[node_type]
        except KeyError:
            known = ", ".join(sorted(self._handlers)) or "none"
            raise ConfigurationError(f"No handler registered for node type '{node_type}' (known: {known})") from None

    def has(self, node_type: str) -> bool:
        return node_type in self._handlers

    def node_types(self) -> list[str]:
        return sorted(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)
