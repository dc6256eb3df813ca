# tests/plugins/processors/test_http_request.py
"""Tests for the rest_api node."""

import json
from collections.abc import Callable

import httpx
import pytest
import respx

from dataconductor.contracts import ByteStream, ConfigurationError, ExternalCallError, NodeExecutionContext
from dataconductor.plugins.clients.http import is_sensitive_header, redact_headers
from dataconductor.plugins.processors import http_request
from dataconductor.plugins.processors.http_request import HttpRequestHandler

MakeContext = Callable[..., NodeExecutionContext]
URL = "https://api.example.com/v1/orders"


def _body(result: object) -> tuple[bytes, str]:
    output = result.output  # type: ignore[attr-defined]
    assert isinstance(output, ByteStream)
    return b"".join(output.chunks), output.extension


class TestHttpRequestHandler:
    @respx.mock
    def test_get_streams_json_body(self, make_context: MakeContext) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200, json=[{"id": 1}]))

        body, extension = _body(HttpRequestHandler().execute(make_context({"url": URL})))

        assert route.called
        assert json.loads(body) == [{"id": 1}]
        assert extension == "json"

    @respx.mock
    def test_non_json_body_gets_txt_extension(self, make_context: MakeContext) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text="id,name\n1,a\n", headers={"content-type": "text/csv"}))

        body, extension = _body(HttpRequestHandler().execute(make_context({"url": URL})))

        assert body == b"id,name\n1,a\n"
        assert extension == "txt"

    @respx.mock
    def test_post_sends_json_body_and_headers(self, make_context: MakeContext) -> None:
        route = respx.post(URL).mock(return_value=httpx.Response(201, json={"ok": True}))
        config = {"url": URL, "method": "post", "headers": {"Authorization": "Bearer t"}, "body": {"since": "2024-01-01"}}

        _body(HttpRequestHandler().execute(make_context(config)))

        request = route.calls.last.request
        assert json.loads(request.content) == {"since": "2024-01-01"}
        assert request.headers["authorization"] == "Bearer t"
        assert request.headers["content-type"] == "application/json"

    @respx.mock
    def test_get_ignores_body(self, make_context: MakeContext) -> None:
        route = respx.get(URL).mock(return_value=httpx.Response(200, json={}))

        _body(HttpRequestHandler().execute(make_context({"url": URL, "body": "ignored"})))

        assert route.calls.last.request.content == b""

    @respx.mock
    def test_error_status_fails_with_body(self, make_context: MakeContext) -> None:
        respx.get(URL).mock(return_value=httpx.Response(503, text="maintenance"))

        with pytest.raises(ExternalCallError) as exc_info:
            HttpRequestHandler().execute(make_context({"url": URL}))

        assert exc_info.value.status_code == 503
        assert exc_info.value.body == "maintenance"
        assert "HTTP 503" in str(exc_info.value)

    @respx.mock
    def test_connection_error(self, make_context: MakeContext) -> None:
        respx.get(URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ExternalCallError, match="failed"):
            HttpRequestHandler().execute(make_context({"url": URL}))

    @respx.mock
    def test_timeout(self, make_context: MakeContext) -> None:
        respx.get(URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(ExternalCallError):
            HttpRequestHandler().execute(make_context({"url": URL, "timeoutSeconds": 0.5}))

    @pytest.mark.parametrize("config", [{}, {"url": "  "}, {"url": URL, "method": "TRACE"}, {"url": URL, "timeoutSeconds": 0}])
    def test_invalid_config(self, make_context: MakeContext, config: dict[str, object]) -> None:
        with pytest.raises(ConfigurationError):
            HttpRequestHandler().execute(make_context(config))


class TestResponseBody:
    @respx.mock
    def test_close_before_first_chunk_releases_client(self, make_context: MakeContext, monkeypatch: pytest.MonkeyPatch) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, json=[{"id": 1}]))
        client = httpx.Client()
        monkeypatch.setattr(http_request, "build_client", lambda timeout_seconds: client)

        output = HttpRequestHandler().execute(make_context({"url": URL})).output
        assert isinstance(output, ByteStream)
        assert not client.is_closed

        output.chunks.close()  # type: ignore[attr-defined]

        assert client.is_closed

    @respx.mock
    def test_draining_releases_client(self, make_context: MakeContext, monkeypatch: pytest.MonkeyPatch) -> None:
        respx.get(URL).mock(return_value=httpx.Response(200, text="ok"))
        client = httpx.Client()
        monkeypatch.setattr(http_request, "build_client", lambda timeout_seconds: client)

        body, _ = _body(HttpRequestHandler().execute(make_context({"url": URL})))

        assert body == b"ok"
        assert client.is_closed


class TestHeaderRedaction:
    @pytest.mark.parametrize("name", ["Authorization", "X-API-Key", "x-auth-token", "Client_Secret", "Cookie"])
    def test_sensitive(self, name: str) -> None:
        assert is_sensitive_header(name)

    @pytest.mark.parametrize("name", ["Accept", "X-Author", "Content-Type", "Monkey"])
    def test_not_sensitive(self, name: str) -> None:
        assert not is_sensitive_header(name)

    def test_redact(self) -> None:
        assert redact_headers({"Authorization": "Bearer x", "Accept": "json"}) == {"Authorization": "***", "Accept": "json"}
