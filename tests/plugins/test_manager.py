# tests/plugins/test_manager.py
"""Tests for the node handler registry."""

import pytest

from dataconductor.contracts import ConfigurationError, InlineOutput, NodeExecutionContext, NodeResult
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.hookspecs import hookimpl
from dataconductor.plugins.manager import NodeHandlerRegistry


class EchoHandler(BaseNodeHandler):
    node_type = "echo"

    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        return NodeResult.ok(InlineOutput(dict(ctx.config)))


class EchoPlugin:
    @hookimpl
    def conductor_get_node_handlers(self) -> list[type[BaseNodeHandler]]:
        return [EchoHandler]


class TestNodeHandlerRegistry:
    """Registration and lookup."""

    def test_builtins_cover_every_node_type(self) -> None:
        registry = NodeHandlerRegistry.with_builtins()

        assert registry.node_types() == [
            "file_destination",
            "mysql_destination",
            "openai",
            "postgres_destination",
            "rest_api",
            "source",
            "transform_json",
        ]

    def test_register_plugin(self) -> None:
        registry = NodeHandlerRegistry()
        registry.register(EchoPlugin())

        assert registry.has("echo")
        assert isinstance(registry.get("echo"), EchoHandler)
        assert len(registry) == 1

    def test_handler_instance_is_reused(self) -> None:
        registry = NodeHandlerRegistry.with_builtins()
        handler = registry.get("source")

        registry.register(EchoPlugin())

        assert registry.get("source") is handler

    def test_unknown_type_lists_known(self) -> None:
        registry = NodeHandlerRegistry()
        registry.register(EchoPlugin())

        with pytest.raises(ConfigurationError, match=r"No handler registered for node type 'nope' \(known: echo\)"):
            registry.get("nope")

    def test_duplicate_type_is_rejected_and_rolled_back(self) -> None:
        class DuplicateSource(BaseNodeHandler):
            node_type = "source"

            def execute(self, ctx: NodeExecutionContext) -> NodeResult:
                return NodeResult.failure("never")

        class DuplicatePlugin:
            @hookimpl
            def conductor_get_node_handlers(self) -> list[type[BaseNodeHandler]]:
                return [DuplicateSource]

        registry = NodeHandlerRegistry.with_builtins()
        original = registry.get("source")

        with pytest.raises(ConfigurationError, match="Duplicate node handler type: 'source'"):
            registry.register(DuplicatePlugin())

        assert registry.get("source") is original
