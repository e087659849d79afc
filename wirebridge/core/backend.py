"""Upstream endpoint configuration and header utilities."""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from ..types.chat import DetectedProtocol

logger = logging.getLogger("wirebridge")

DEFAULT_TIMEOUT = 60

# Endpoint path per upstream protocol, relative to a base URL ending in /v1
UPSTREAM_PATHS = {
    DetectedProtocol.OPENAI: "/chat/completions",
    DetectedProtocol.CLAUDE: "/messages",
}


@dataclass
class Upstream:
    """The single upstream the gateway forwards to."""

    base_url: str
    protocol: DetectedProtocol = DetectedProtocol.OPENAI

    def build_url(self, base_url: Optional[str] = None) -> str:
        """Build the full endpoint URL, optionally against an overriding base URL."""
        base = (base_url or self.base_url).rstrip("/")
        path = UPSTREAM_PATHS[self.protocol]
        if base.endswith(path):
            return base
        return f"{base}{path}"


# Sensitive headers redacted from debug logs
_REDACTED_HEADERS = {"authorization", "x-api-key", "proxy-authorization", "cookie"}


def build_outbound_headers(auth_headers: Mapping[str, str], stream: bool) -> dict[str, str]:
    """Build headers for an upstream request from the auth provider's headers."""
    headers: dict[str, str] = {"Content-Type": "application/json"}
    headers.update(auth_headers)
    headers["Accept"] = "text/event-stream" if stream else "application/json"
    # Explicitly request uncompressed responses
    headers["Accept-Encoding"] = "identity"
    return headers


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        key: ("***" if key.lower() in _REDACTED_HEADERS else value)
        for key, value in headers.items()
    }


def format_httpx_error(exc: Any, url: Optional[str] = None, timeout: Optional[float] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    request = None
    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        # httpx raises RuntimeError when no request is attached
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={timeout or DEFAULT_TIMEOUT}s")

    return "; ".join(parts)
