"""httpx-based upstream transport.

``Transport.send`` returns the raw ``httpx.Response`` on success and raises a
typed ``UpstreamError`` otherwise, so the retry policy and the API layer only
ever see gateway exceptions.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

import httpx

from .backend import DEFAULT_TIMEOUT, format_httpx_error, safe_headers_for_log
from .exceptions import (
    CONNECTION_REFUSED,
    CONNECTION_RESET,
    TIMED_OUT,
    TRANSPORT_ERROR,
    UpstreamError,
    UpstreamFatalError,
    UpstreamTransientError,
)
from .retry import RETRYABLE_STATUSES

logger = logging.getLogger("wirebridge")


def extract_upstream_error(data: bytes) -> tuple[Optional[str], Optional[str]]:
    """Pull (message, type) out of an upstream error body in either protocol's shape."""
    if not data:
        return None, None
    try:
        payload = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError):
        text = data.decode("utf-8", errors="replace").strip()
        return (text[:500] or None), None
    if not isinstance(payload, dict):
        return None, None
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message"), error.get("type")
    if isinstance(error, str):
        return error, None
    message = payload.get("message") or payload.get("detail")
    return (str(message) if message else None), None


def error_for_status(status_code: int, data: bytes) -> UpstreamError:
    """Build the typed error for a non-2xx upstream response."""
    message, upstream_type = extract_upstream_error(data)
    message = message or f"Upstream returned status {status_code}"
    if status_code in RETRYABLE_STATUSES:
        return UpstreamTransientError(message, status_code=status_code)
    return UpstreamFatalError(
        message,
        status_code=status_code,
        upstream_type=upstream_type if status_code == 400 else None,
    )


class Transport:
    """Sends requests to the upstream over a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout or DEFAULT_TIMEOUT
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Any,
        streaming: bool = False,
    ) -> httpx.Response:
        """Send one request.

        Streaming responses are returned unread and must be closed by the caller.

        Raises:
            UpstreamTransientError: 429/502/503/504 or a connection-level failure.
            UpstreamFatalError: Any other non-2xx status or transport failure.
        """
        timeout: Any = self.timeout
        if streaming:
            # Stream reads may legitimately idle between tokens
            timeout = httpx.Timeout(
                connect=self.timeout, read=None, write=self.timeout, pool=self.timeout
            )
        request = self._client.build_request(
            method, url, headers=dict(headers), json=body, timeout=timeout
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Sending %s %s (stream=%s) headers=%s",
                method,
                url,
                streaming,
                safe_headers_for_log(request.headers),
            )

        try:
            response = await self._client.send(request, stream=streaming)
        except httpx.TimeoutException as exc:
            raise UpstreamTransientError(
                format_httpx_error(exc, url, self.timeout), status_code=504, error_kind=TIMED_OUT
            ) from exc
        except httpx.ConnectError as exc:
            raise UpstreamTransientError(
                format_httpx_error(exc, url), status_code=502, error_kind=CONNECTION_REFUSED
            ) from exc
        except (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError) as exc:
            raise UpstreamTransientError(
                format_httpx_error(exc, url), status_code=502, error_kind=CONNECTION_RESET
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamFatalError(
                format_httpx_error(exc, url), status_code=502, error_kind=TRANSPORT_ERROR
            ) from exc

        logger.debug("Received response from %s: status %s", url, response.status_code)

        if response.status_code >= 400:
            try:
                data = await response.aread()
            finally:
                await response.aclose()
            error = error_for_status(response.status_code, data)
            logger.warning(
                "Upstream %s returned status %s: %s", url, response.status_code, error.message
            )
            raise error

        return response
