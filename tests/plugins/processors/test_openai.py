# tests/plugins/processors/test_openai.py
"""Tests for the openai (AI processor) node."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest
import respx

from dataconductor.contracts import (
    ConfigurationError,
    ExternalCallError,
    InlineOutput,
    ItemStream,
    NodeExecutionContext,
    ParseError,
)
from dataconductor.plugins.processors.openai import (
    JSON_SYSTEM_PROMPT,
    OpenAIConfig,
    OpenAIHandler,
    PromptRenderer,
    build_payload,
    extract_content,
    parse_json_content,
)

MakeContext = Callable[..., NodeExecutionContext]

CHAT_URL = "https://llm.example.com/v1/chat/completions"
COMPLETIONS_URL = "https://llm.example.com/v1/completions"


def _chat_response(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": content}}]})


def _run(ctx: NodeExecutionContext) -> list[Any]:
    result = OpenAIHandler().execute(ctx)
    assert isinstance(result.output, ItemStream)
    return list(result.output.items)


class TestPromptRenderer:
    def test_item_fields_and_json(self) -> None:
        renderer = PromptRenderer("Classify {{ text }} / {{ json }}")

        assert renderer.render({"text": "great"}) == 'Classify great / {"text": "great"}'

    def test_scalar_item_is_value(self) -> None:
        assert PromptRenderer("n={{ value }}").render(3) == "n=3"

    def test_missing_field_is_parse_error(self) -> None:
        with pytest.raises(ParseError, match="missing field"):
            PromptRenderer("{{ nope }}").render({"text": "x"})

    def test_sandbox_blocks_attribute_escape(self) -> None:
        with pytest.raises(ParseError):
            PromptRenderer("{{ text.__class__.__mro__ }}").render({"text": "x"})

    def test_bad_template_is_config_error(self) -> None:
        with pytest.raises(ConfigurationError):
            PromptRenderer("{{ unclosed")


class TestPayload:
    def test_chat_json_mode(self) -> None:
        cfg = OpenAIConfig(endpoint=CHAT_URL, model="m", prompt="p", json_mode=True, max_tokens=50)

        payload = build_payload(cfg, "hello")

        assert payload["messages"] == [
            {"role": "system", "content": JSON_SYSTEM_PROMPT},
            {"role": "user", "content": "hello"},
        ]
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["max_tokens"] == 50

    def test_legacy_completion(self) -> None:
        cfg = OpenAIConfig(endpoint=COMPLETIONS_URL, model="m", prompt="p")

        payload = build_payload(cfg, "hello")

        assert payload == {"model": "m", "temperature": 0.7, "prompt": "hello"}

    def test_extract_content(self) -> None:
        assert extract_content({"choices": [{"text": "t"}]}, chat=False) == "t"
        assert extract_content({"choices": []}, chat=True) == ""
        assert extract_content(None, chat=True) == ""

    @pytest.mark.parametrize(
        ("content", "expected"),
        [
            ('{"a": 1}', {"a": 1}),
            ('```json\n{"a": 1}\n```', {"a": 1}),
            ("not json", "not json"),
        ],
    )
    def test_parse_json_content(self, content: str, expected: Any) -> None:
        assert parse_json_content(content) == expected


class TestOpenAIHandler:
    @respx.mock
    def test_enriches_each_item(self, make_context: MakeContext) -> None:
        route = respx.post(CHAT_URL).mock(side_effect=[_chat_response("positive"), _chat_response("negative")])
        config = {"endpoint": CHAT_URL, "model": "gpt-4o-mini", "prompt": "Sentiment of {{ text }}", "apiKey": "sk-test"}

        items = _run(make_context(config, (InlineOutput([{"text": "love it"}, {"text": "hate it"}]),)))

        assert items == [
            {"text": "love it", "_ai_response": "positive"},
            {"text": "hate it", "_ai_response": "negative"},
        ]
        first = route.calls[0].request
        assert first.headers["authorization"] == "Bearer sk-test"
        assert json.loads(first.content)["messages"] == [{"role": "user", "content": "Sentiment of love it"}]

    @respx.mock
    def test_parsed_json_into_custom_field(self, make_context: MakeContext) -> None:
        respx.post(CHAT_URL).mock(return_value=_chat_response('```json\n{"score": 0.9}\n```'))
        config = {
            "endpoint": CHAT_URL,
            "model": "m",
            "prompt": "{{ json }}",
            "parseJsonResponse": True,
            "outputField": "analysis",
        }

        (item,) = _run(make_context(config, (InlineOutput([{"id": 1}]),)))

        assert item == {"id": 1, "analysis": {"score": 0.9}}

    @respx.mock
    def test_http_error_fails_while_streaming(self, make_context: MakeContext) -> None:
        respx.post(CHAT_URL).mock(return_value=httpx.Response(429, text="rate limited"))
        config = {"endpoint": CHAT_URL, "model": "m", "prompt": "x"}

        with pytest.raises(ExternalCallError, match="HTTP 429 - rate limited"):
            _run(make_context(config, (InlineOutput([{"id": 1}]),)))

    def test_requires_input(self, make_context: MakeContext) -> None:
        with pytest.raises(ConfigurationError, match="has no input"):
            OpenAIHandler().execute(make_context({"endpoint": CHAT_URL, "model": "m", "prompt": "x"}))

    def test_requires_endpoint_model_prompt(self, make_context: MakeContext) -> None:
        with pytest.raises(ConfigurationError):
            OpenAIHandler().execute(make_context({"endpoint": CHAT_URL, "model": " ", "prompt": "x"}, (InlineOutput([1]),)))
