"""Core exceptions for the gateway.

Every error carries a stable ``error_type`` and a default ``status_code`` so the
API layer can render it in either protocol's error shape without guessing.
"""

from typing import Optional


class ProxyError(Exception):
    """Base exception for gateway errors."""

    status_code: int = 500
    error_type: str = "api_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""

    error_type = "configuration_error"


class AuthenticationError(ProxyError):
    """Raised when upstream credentials cannot be obtained."""

    status_code = 401
    error_type = "authentication_error"


class TranslationError(ProxyError):
    """Raised when an incoming request cannot be translated."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, param: Optional[str] = None) -> None:
        super().__init__(message)
        self.param = param


class UnsupportedContentError(TranslationError):
    """Raised for content block types the translator does not know."""

    def __init__(self, block_type: str) -> None:
        super().__init__(f"Unsupported content block type: {block_type!r}", param="content")
        self.block_type = block_type


class UpstreamError(ProxyError):
    """Base class for failures reported by (or while reaching) the upstream."""

    status_code = 502

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_kind: Optional[str] = None,
        upstream_type: Optional[str] = None,
        param: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        self.upstream_status = status_code
        self.error_kind = error_kind
        self.upstream_type = upstream_type
        self.param = param
        self.error_type = upstream_type or error_type_for_status(self.status_code)


class UpstreamTransientError(UpstreamError):
    """429/502/503/504 or a connection-level failure; eligible for retry."""


class UpstreamFatalError(UpstreamError):
    """Any other upstream failure; surfaced immediately."""


class StreamAbort(ProxyError):
    """A stream was cut short by the client or the upstream."""

    error_type = "stream_aborted"


_STATUS_TYPES = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "not_found",
    429: "rate_limit_error",
    502: "bad_gateway",
    503: "service_unavailable",
    504: "gateway_timeout",
}


def error_type_for_status(status_code: int) -> str:
    """Map an HTTP status to the stable error type reported to clients."""
    return _STATUS_TYPES.get(status_code, "api_error")


# Transport-level error kinds reported on UpstreamError.error_kind
CONNECTION_REFUSED = "connection_refused"
TIMED_OUT = "timed_out"
CONNECTION_RESET = "connection_reset"
TRANSPORT_ERROR = "transport_error"
