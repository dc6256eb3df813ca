# src/dataconductor/plugins/processors/transform_json.py
"""Transform node: reshapes each item with an expression.

Two configuration styles:

    # simple mode: target <- source path rules
    mode: simple
    rules:
      - {target: customer_id, source: customer.id}
      - {target: first_sku, source: "lines[0].sku"}

    # expression mode
    expression: '{"id": row["id"], "total": row["price"] * row["qty"]}'

Rules compile to an expression building one object from row.path()
lookups, so unresolved paths become null. With neither rules nor an
expression the node passes its input through untouched.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

from pydantic import BaseModel, Field

from dataconductor.contracts import ItemStream, NodeExecutionContext, NodeResult
from dataconductor.contracts.errors import ConfigurationError
from dataconductor.engine.expression_parser import ExpressionEvaluationError, ExpressionParser
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.config_base import HandlerConfig


class TransformRule(BaseModel):
    model_config = {"extra": "ignore", "frozen": True}

    target: str = ""
    source: str = ""


class TransformJsonConfig(HandlerConfig):
    """Configuration for transform_json nodes."""

    mode: str = "advanced"
    rules: list[TransformRule] = Field(default_factory=list)
    expression: str | None = None

    def compiled_expression(self) -> str | None:
        """The expression this config evaluates, or None for passthrough."""
        if self.mode == "simple":
            return compile_rules(self.rules)
        if self.expression and self.expression.strip():
            return self.expression
        return None


def compile_rules(rules: list[TransformRule]) -> str | None:
    """Compile target/source rules into an object-building expression.

    Rules missing either side are skipped. Returns None if none remain.

    >>> compile_rules([TransformRule(target="x", source="a.b")])
    '{"x": row.path("a.b")}'
    """
    pairs = [f"{json.dumps(rule.target)}: row.path({json.dumps(rule.source)})" for rule in rules if rule.target and rule.source]
    if not pairs:
        return None
    return "{" + ", ".join(pairs) + "}"


class TransformJsonHandler(BaseNodeHandler):
    """Applies a compiled expression to each input item, lazily."""

    node_type = "transform_json"
    description = "Maps each item through rules or a restricted Python expression"

    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        cfg = TransformJsonConfig.from_dict(ctx.config)
        source = cfg.compiled_expression()
        if source is None:
            if ctx.primary_input is None:
                raise ConfigurationError(f"Transform node {ctx.node_id} has no input to pass through")
            return NodeResult.ok(ctx.primary_input)

        # Syntax and whitelist errors surface here, before any item is read
        parser = ExpressionParser(source)
        return NodeResult.ok(ItemStream(self._apply(parser, self.iter_input_items(ctx), ctx.node_id)))

    @staticmethod
    def _apply(parser: ExpressionParser, items: Iterator[Any], node_id: str) -> Iterator[Any]:
        for index, item in enumerate(items):
            try:
                yield parser.evaluate(item)
            except ExpressionEvaluationError as e:
                raise ExpressionEvaluationError(f"Transform {node_id} failed on item {index}: {e}") from e
