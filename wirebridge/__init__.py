"""wirebridge - a Claude-style <-> OpenAI-style chat API gateway.

Accepts requests in either protocol, rewrites the model name through a
pattern-based mapping table, forwards them to a single upstream speaking one
of the two protocols, and translates responses (including streams) back.

Example:
    >>> from wirebridge import Settings, create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(Settings()), host="127.0.0.1", port=8000)
"""

from .config_loader import load_config, load_mapping_table
from .core import (
    Gateway,
    ModelMappingRule,
    ModelMappingTable,
    ModelResolver,
    ProxyError,
    RetryConfig,
    RetryPolicy,
)
from .logging import setup_logging
from .main import create_app
from .messages import MessageTranslator, StreamTranslator
from .settings import Settings

__all__ = [
    "create_app",
    "Gateway",
    "load_config",
    "load_mapping_table",
    "MessageTranslator",
    "ModelMappingRule",
    "ModelMappingTable",
    "ModelResolver",
    "ProxyError",
    "RetryConfig",
    "RetryPolicy",
    "Settings",
    "setup_logging",
    "StreamTranslator",
]
