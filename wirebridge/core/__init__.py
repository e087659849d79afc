"""Core gateway components."""

from .backend import Upstream
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    ProxyError,
    StreamAbort,
    TranslationError,
    UnsupportedContentError,
    UpstreamError,
    UpstreamFatalError,
    UpstreamTransientError,
)
from .gateway import Gateway, StreamResult, detect_protocol
from .model_mapping import (
    ModelMappingRule,
    ModelMappingTable,
    ModelResolver,
    Resolution,
    ResolutionMode,
)
from .retry import RetryConfig, RetryPolicy
from .transport import Transport

__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "Gateway",
    "ModelMappingRule",
    "ModelMappingTable",
    "ModelResolver",
    "ProxyError",
    "Resolution",
    "ResolutionMode",
    "RetryConfig",
    "RetryPolicy",
    "StreamAbort",
    "StreamResult",
    "TranslationError",
    "Transport",
    "UnsupportedContentError",
    "Upstream",
    "UpstreamError",
    "UpstreamFatalError",
    "UpstreamTransientError",
    "detect_protocol",
]
