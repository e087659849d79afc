"""API routes for the gateway."""

from .admin import reload_mappings
from .chat import chat_completions, handle_gateway_request
from .health import health
from .messages import messages_endpoint
from .models import list_models
from .proxy import proxy_endpoint

__all__ = [
    "chat_completions",
    "handle_gateway_request",
    "health",
    "list_models",
    "messages_endpoint",
    "proxy_endpoint",
    "reload_mappings",
]
