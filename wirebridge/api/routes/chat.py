"""OpenAI-compatible Chat Completions endpoint and the shared request handler."""

import json
import logging
import time
import uuid
from typing import Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...core.exceptions import ProxyError
from ...core.gateway import StreamResult, detect_protocol
from ...types.chat import DetectedProtocol
from ..errors import error_response, exception_response

logger = logging.getLogger("wirebridge")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


async def handle_gateway_request(
    request: Request,
    protocol: Optional[DetectedProtocol] = None,
) -> Response:
    """Run one request through the gateway.

    ``protocol`` is fixed by protocol-specific endpoints; when it is None the
    protocol is detected from the request body.
    """
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()
    client_host = request.client.host if request.client else "unknown"
    logger.info("[%s] %s %s from %s", req_id, request.method, request.url.path, client_host)

    # Errors before detection are reported in the endpoint's shape (OpenAI when ambiguous)
    error_protocol = protocol or DetectedProtocol.OPENAI
    try:
        body = await request.body()
    except ClientDisconnect:
        logger.info("[%s] Client disconnected before the body was read", req_id)
        return Response(status_code=499)

    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        return error_response(error_protocol, f"Invalid JSON body: {exc}", status_code=400)
    if not isinstance(payload, dict):
        return error_response(error_protocol, "Request body must be a JSON object", status_code=400)

    if protocol is None:
        protocol = detect_protocol(request.url.path, payload)
        logger.info("[%s] Detected %s protocol", req_id, protocol.value)

    gateway = request.app.state.gateway
    try:
        result = await gateway.handle(
            payload,
            protocol,
            request_id=req_id,
            disconnect_checker=request.is_disconnected,
        )
    except ProxyError as exc:
        return exception_response(exc, protocol, req_id)
    except Exception as exc:
        logger.exception("[%s] Unhandled error while handling request", req_id)
        return error_response(
            protocol, f"Internal gateway error: {exc}", error_type="api_error", status_code=500
        )

    if isinstance(result, StreamResult):
        logger.info(
            "[%s] Streaming response started after %.3fs",
            req_id,
            time.perf_counter() - start_time,
        )
        return StreamingResponse(
            result.body,
            media_type=result.media_type,
            headers=STREAM_HEADERS,
        )

    logger.info("[%s] Request completed in %.3fs", req_id, time.perf_counter() - start_time)
    return JSONResponse(result)


async def chat_completions(request: Request) -> Response:
    """POST /v1/chat/completions - OpenAI Chat Completions compatible endpoint."""
    return await handle_gateway_request(request, DetectedProtocol.OPENAI)
