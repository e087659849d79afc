"""Protocol-agnostic endpoint; the protocol is inferred from the body shape."""

from fastapi import Request, Response

from .chat import handle_gateway_request


async def proxy_endpoint(request: Request) -> Response:
    """POST /v1/proxy - accepts either protocol."""
    return await handle_gateway_request(request)
