# src/dataconductor/plugins/processors/http_request.py
"""External-call node: issues one HTTP request and streams the response body.

The body is never buffered whole; the handler returns a ByteStream that
the orchestrator writes straight to the run directory. The response and
client stay open until that stream is drained or closed.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import httpx
import structlog
from pydantic import Field, field_validator

from dataconductor.contracts import ByteStream, NodeExecutionContext, NodeResult
from dataconductor.contracts.errors import ExternalCallError
from dataconductor.plugins.base import BaseNodeHandler
from dataconductor.plugins.clients.http import DEFAULT_TIMEOUT_SECONDS, build_client, error_body, redact_headers
from dataconductor.plugins.config_base import HandlerConfig

logger = structlog.get_logger(__name__)

_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"})


class HttpRequestConfig(HandlerConfig):
    """Configuration for rest_api nodes.

    Example YAML:
        type: rest_api
        config:
          url: https://api.example.com/v1/orders
          method: POST
          headers: {Authorization: "Bearer ${ORDERS_TOKEN}"}
          body: {"since": "2024-01-01"}
    """

    url: str
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str | dict[str, Any] | list[Any] | None = None
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    @field_validator("url")
    @classmethod
    def _require_url(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("url must not be empty")
        return value.strip()

    @field_validator("method")
    @classmethod
    def _known_method(cls, value: str) -> str:
        method = value.upper()
        if method not in _METHODS:
            raise ValueError(f"Unsupported HTTP method {value!r}")
        return method


def _extension_for(content_type: str) -> str:
    return "json" if "json" in content_type.lower() else "txt"


class ResponseBody(Iterator[bytes]):
    """Byte chunks of a streamed response.

    Exhausting the chunks or calling close() releases the response and its
    client. close() also works before the first chunk is pulled.
    """

    def __init__(self, response: httpx.Response, client: httpx.Client, url: str) -> None:
        self._response = response
        self._client = client
        self._url = url
        self._chunks = response.iter_bytes()

    def __next__(self) -> bytes:
        try:
            return next(self._chunks)
        except StopIteration:
            self.close()
            raise
        except httpx.HTTPError as e:
            self.close()
            raise ExternalCallError(f"Reading response from {self._url} failed: {e}") from e
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        self._response.close()
        self._client.close()


class HttpRequestHandler(BaseNodeHandler):
    """Calls an HTTP endpoint; non-2xx responses fail the node."""

    node_type = "rest_api"
    description = "Calls an HTTP API and streams the response body"

    def execute(self, ctx: NodeExecutionContext) -> NodeResult:
        cfg = HttpRequestConfig.from_dict(ctx.config)
        client = build_client(cfg.timeout_seconds)
        try:
            request = client.build_request(cfg.method, cfg.url, **self._request_kwargs(cfg))
            logger.info(
                "http_request",
                node_id=ctx.node_id,
                method=cfg.method,
                url=cfg.url,
                headers=redact_headers(cfg.headers),
            )
            response = client.send(request, stream=True)
        except httpx.HTTPError as e:
            client.close()
            raise ExternalCallError(f"{cfg.method} {cfg.url} failed: {e}") from e
        except BaseException:
            client.close()
            raise

        if not response.is_success:
            body = error_body(response)
            response.close()
            client.close()
            raise ExternalCallError(
                f"{cfg.method} {cfg.url} returned HTTP {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        extension = _extension_for(response.headers.get("content-type", ""))
        return NodeResult.ok(ByteStream(ResponseBody(response, client, cfg.url), extension=extension))

    @staticmethod
    def _request_kwargs(cfg: HttpRequestConfig) -> dict[str, Any]:
        headers = dict(cfg.headers)
        if cfg.body is None or cfg.method in ("GET", "HEAD"):
            return {"headers": headers}
        if isinstance(cfg.body, str):
            return {"headers": headers, "content": cfg.body.encode("utf-8")}
        headers.setdefault("content-type", "application/json")
        return {"headers": headers, "content": json.dumps(cfg.body).encode("utf-8")}
