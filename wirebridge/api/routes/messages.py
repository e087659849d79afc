"""Claude-compatible Messages API endpoint."""

from fastapi import Request, Response

from ...types.chat import DetectedProtocol
from .chat import handle_gateway_request


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Claude-style Messages API compatible endpoint."""
    return await handle_gateway_request(request, DetectedProtocol.CLAUDE)
