"""Rendering gateway exceptions as protocol-shaped error responses."""

import logging
from typing import Any, Optional

from fastapi.responses import JSONResponse

from ..core.exceptions import ProxyError, UpstreamError
from ..types.chat import DetectedProtocol

logger = logging.getLogger("wirebridge")

_ENRICHMENT = {
    503: "Service unavailable: {msg}. The upstream service may be temporarily down or overloaded. Please try again later.",
    502: "Bad gateway: {msg}. The upstream service returned an invalid response.",
    504: "Gateway timeout: {msg}. The upstream service took too long to respond.",
    429: "Rate limit exceeded: {msg}. Please slow down your requests.",
    401: "Authentication failed: {msg}. Please check your API key.",
    403: "Access denied: {msg}. You may not have permission to access this resource.",
    404: "Resource not found: {msg}. The requested endpoint or model may not exist.",
}


def enrich_message(status_code: int, message: str) -> str:
    template = _ENRICHMENT.get(status_code)
    if template is None:
        return message
    return template.format(msg=message.rstrip("."))


def _anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    param: Optional[str] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"type": error_type, "message": message}
    if param:
        error["param"] = param
    payload = {"type": "error", "error": error}
    return JSONResponse(payload, status_code=status_code)


def _openai_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    param: Optional[str] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"message": message, "type": error_type, "code": status_code}
    if param:
        error["param"] = param
    return JSONResponse({"error": error}, status_code=status_code)


def error_response(
    protocol: DetectedProtocol,
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    param: Optional[str] = None,
) -> JSONResponse:
    if protocol is DetectedProtocol.CLAUDE:
        return _anthropic_error_response(
            message, error_type=error_type, status_code=status_code, param=param
        )
    return _openai_error_response(
        message, error_type=error_type, status_code=status_code, param=param
    )


def exception_response(
    exc: ProxyError,
    protocol: DetectedProtocol,
    req_id: Optional[str] = None,
) -> JSONResponse:
    """Convert a gateway exception into the caller's error shape, once."""
    message = exc.message
    if isinstance(exc, UpstreamError) or exc.status_code in (401, 403):
        message = enrich_message(exc.status_code, message)
    log = logger.warning if exc.status_code < 500 else logger.error
    log("[%s] %s (%s): %s", req_id or "-", exc.error_type, exc.status_code, exc.message)
    return error_response(
        protocol,
        message,
        error_type=exc.error_type,
        status_code=exc.status_code,
        param=getattr(exc, "param", None),
    )
