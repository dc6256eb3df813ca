# src/dataconductor/plugins/clients/http.py
"""httpx client construction and request logging helpers."""

from __future__ import annotations

import re

import httpx

DEFAULT_TIMEOUT_SECONDS = 60.0
MAX_ERROR_BODY_CHARS = 2000

# Well-known sensitive headers (exact match, case-insensitive)
_SENSITIVE_HEADERS_EXACT = frozenset(
    {
        "authorization",
        "proxy-authorization",
        "cookie",
        "x-api-key",
        "api-key",
        "x-auth-token",
        "x-access-token",
        "set-cookie",
    }
)

# Sensitive when they appear as whole delimiter-separated segments:
# "X-Auth-Token" -> {"x","auth","token"} matches, "X-Author" does not
_SENSITIVE_HEADER_WORDS = frozenset({"auth", "apikey", "key", "secret", "token", "password", "credential"})

_HEADER_DELIMITERS = re.compile(r"[-_.]")


def is_sensitive_header(name: str) -> bool:
    lowered = name.lower()
    if lowered in _SENSITIVE_HEADERS_EXACT:
        return True
    return bool(_SENSITIVE_HEADER_WORDS & set(_HEADER_DELIMITERS.split(lowered)))


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Copy of headers with credential values masked, for logging."""
    return {k: ("***" if is_sensitive_header(k) else v) for k, v in headers.items()}


def build_client(timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> httpx.Client:
    """Client for one node invocation.

    The timeout applies per phase (connect, read, write, pool), so a
    stalled server fails the node instead of hanging the run.
    """
    return httpx.Client(timeout=httpx.Timeout(timeout_seconds), follow_redirects=True)


def error_body(response: httpx.Response) -> str:
    """Response text for diagnostics, truncated. Reads a streamed body."""
    try:
        response.read()
        text = response.text
    except httpx.HTTPError as e:
        return f"<unreadable body: {e}>"
    if len(text) > MAX_ERROR_BODY_CHARS:
        return text[:MAX_ERROR_BODY_CHARS] + "..."
    return text
