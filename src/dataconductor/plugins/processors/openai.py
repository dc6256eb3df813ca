# src/dataconductor/plugins/processors/openai.py
"""AI-processor node: enriches each item with a completion from an
OpenAI-compatible endpoint.

Per item the prompt template is rendered (Jinja2 sandbox; item fields are
top-level variables, `json` is the whole item serialized), sent to the
endpoint, and the answer is attached under `output_field`. All original
fields are kept.

Endpoints whose URL contains /chat/completions get a chat payload; any
other URL gets a legacy text-completion payload.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any

import httpx
import structlog
from jinja2 import StrictUndefined, TemplateSyntaxError, UndefinedError
from jinja2.exceptions import SecurityError
from jinja2.sandbox import SandboxedEnvironment
from pydantic import Field, field_validator

from dataconductor.contracts import ItemStream, NodeExecutionContext, NodeResult
from dataconductor.contracts.errors import ConfigurationError, ExternalCallError, ParseError
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.clients.http import DEFAULT_TIMEOUT_SECONDS, build_client, error_body
from dataconductor.plugins.config_base import HandlerConfig

logger = structlog.get_logger(__name__)

JSON_SYSTEM_PROMPT = (
    "You are a helpful assistant that outputs ONLY valid JSON. "
    "Do not include any markdown formatting (like ```json), preamble, or explanation."
)
JSON_COMPLETION_SUFFIX = "\n\nOutput ONLY valid JSON. Do not include markdown or explanations."

_CODE_FENCE = re.compile(r"```(?:json)?\s*\n?|\n?```")


class OpenAIConfig(HandlerConfig):
    """Configuration for openai nodes.

    Example YAML:
        type: openai
        config:
          endpoint: https://api.openai.com/v1/chat/completions
          apiKey: ${OPENAI_API_KEY}
          model: gpt-4o-mini
          prompt: "Classify the sentiment of: {{ text }}"
          parseJsonResponse: true
    """

    endpoint: str
    model: str
    prompt: str
    api_key: str | None = None
    temperature: float = 0.7
    max_tokens: int | None = None
    json_mode: bool = False
    parse_json_response: bool = False
    output_field: str = "_ai_response"
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    @field_validator("endpoint", "model", "prompt")
    @classmethod
    def _required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @property
    def is_chat(self) -> bool:
        return "/chat/completions" in self.endpoint

    @property
    def wants_json(self) -> bool:
        return self.json_mode or self.parse_json_response


class PromptRenderer:
    """Renders a prompt template against one item."""

    def __init__(self, template: str) -> None:
        self._env = SandboxedEnvironment(undefined=StrictUndefined, autoescape=False)
        try:
            self._template = self._env.from_string(template)
        except TemplateSyntaxError as e:
            raise ConfigurationError(f"Invalid prompt template: {e}") from e

    def render(self, item: Any) -> str:
        context: dict[str, Any] = dict(item) if isinstance(item, dict) else {"value": item}
        context["json"] = json.dumps(item, ensure_ascii=False, default=str)
        try:
            return self._template.render(**context)
        except UndefinedError as e:
            raise ParseError(f"Prompt references a missing field: {e}") from e
        except SecurityError as e:
            raise ParseError(f"Prompt template sandbox violation: {e}") from e


def build_payload(cfg: OpenAIConfig, prompt: str) -> dict[str, Any]:
    """Request body for a chat or text-completion endpoint."""
    payload: dict[str, Any] = {"model": cfg.model, "temperature": cfg.temperature}
    if cfg.max_tokens:
        payload["max_tokens"] = cfg.max_tokens
    if cfg.is_chat:
        messages = [{"role": "system", "content": JSON_SYSTEM_PROMPT}] if cfg.wants_json else []
        messages.append({"role": "user", "content": prompt})
        payload["messages"] = messages
        if cfg.json_mode:
            payload["response_format"] = {"type": "json_object"}
    else:
        payload["prompt"] = prompt + JSON_COMPLETION_SUFFIX if cfg.wants_json else prompt
    return payload


def extract_content(data: Any, *, chat: bool) -> str:
    """First choice's text; empty string when the response has none."""
    try:
        choice = data["choices"][0]
        content = choice["message"]["content"] if chat else choice["text"]
    except (KeyError, IndexError, TypeError):
        return ""
    return content if isinstance(content, str) else ""


def parse_json_content(content: str) -> Any:
    """Parse a JSON answer, tolerating ```json fences. Returns the string unchanged if unparseable."""
    try:
        return json.loads(_CODE_FENCE.sub("", content).strip())
    except json.JSONDecodeError:
        return content


class OpenAIHandler(BaseNodeHandler):
    """Calls the model once per input item."""

    node_type = "openai"
    description = "Enriches each item with an LLM completion"

    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        cfg = OpenAIConfig.from_dict(ctx.config)
        if ctx.primary_input is None:
            raise ConfigurationError(f"AI node {ctx.node_id} has no input")
        renderer = PromptRenderer(cfg.prompt)
        return NodeResult.ok(ItemStream(self._enrich(cfg, renderer, self.iter_input_items(ctx), ctx.node_id)))

    def _enrich(self, cfg: OpenAIConfig, renderer: PromptRenderer, items: Iterator[Any], node_id: str) -> Iterator[Any]:
        headers = {"content-type": "application/json"}
        if cfg.api_key:
            headers["authorization"] = f"Bearer {cfg.api_key}"
        with build_client(cfg.timeout_seconds) as client:
            for index, item in enumerate(items):
                content = self._complete(client, cfg, headers, renderer.render(item))
                answer: Any = parse_json_content(content) if cfg.parse_json_response else content
                enriched = dict(item) if isinstance(item, dict) else {"value": item}
                enriched[cfg.output_field] = answer
                logger.debug("ai_item_enriched", node_id=node_id, index=index, chars=len(content))
                yield enriched

    @staticmethod
    def _complete(client: httpx.Client, cfg: OpenAIConfig, headers: dict[str, str], prompt: str) -> str:
        try:
            response = client.post(cfg.endpoint, headers=headers, json=build_payload(cfg, prompt))
        except httpx.HTTPError as e:
            raise ExternalCallError(f"AI request to {cfg.endpoint} failed: {e}") from e
        if not response.is_success:
            body = error_body(response)
            raise ExternalCallError(
                f"AI request failed: HTTP {response.status_code} - {body}",
                status_code=response.status_code,
                body=body,
            )
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise ExternalCallError(f"AI endpoint returned a non-JSON response: {e}") from e
        return extract_content(data, chat=cfg.is_chat)
