"""Request lifecycle: detect, resolve, translate, dispatch, translate back."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

import httpx

from ..auth.base import AuthProvider
from ..messages.stream_adapter import ClaudeToChatStreamTranslator, StreamTranslator
from ..messages.translator import MessageTranslator, OutboundRequest
from ..types.chat import DetectedProtocol, Direction
from .backend import Upstream, build_outbound_headers
from .exceptions import StreamAbort, TranslationError, UpstreamFatalError
from .model_mapping import ResolutionMode
from .retry import RetryPolicy
from .transport import Transport

logger = logging.getLogger("wirebridge")

CLAUDE_PATHS = frozenset({"/v1/messages"})
OPENAI_PATHS = frozenset({"/v1/chat/completions"})

_CLAUDE_ONLY_KEYS = ("system", "stop_sequences", "top_k", "anthropic_version")
_OPENAI_ONLY_KEYS = (
    "n",
    "response_format",
    "frequency_penalty",
    "presence_penalty",
    "max_completion_tokens",
    "logit_bias",
)


def _claude_score(payload: Mapping[str, Any]) -> int:
    score = sum(1 for key in _CLAUDE_ONLY_KEYS if key in payload)
    for tool in payload.get("tools") or []:
        if isinstance(tool, Mapping) and "input_schema" in tool:
            score += 1
    for message in payload.get("messages") or []:
        content = message.get("content") if isinstance(message, Mapping) else None
        if isinstance(content, list):
            for block in content:
                if isinstance(block, Mapping) and block.get("type") in ("tool_use", "tool_result"):
                    score += 1
    return score


def _openai_score(payload: Mapping[str, Any]) -> int:
    score = sum(1 for key in _OPENAI_ONLY_KEYS if key in payload)
    for tool in payload.get("tools") or []:
        if isinstance(tool, Mapping) and tool.get("type") == "function":
            score += 1
    for message in payload.get("messages") or []:
        if not isinstance(message, Mapping):
            continue
        if message.get("role") in ("system", "tool", "developer"):
            score += 1
        if message.get("tool_calls"):
            score += 1
    return score


def detect_protocol(path: str, payload: Mapping[str, Any]) -> DetectedProtocol:
    """Decide the inbound protocol from the endpoint path, else from the body shape.

    Ties on the ambiguous endpoint go to the OpenAI-style protocol.
    """
    normalized = "/" + path.strip("/")
    if normalized in CLAUDE_PATHS:
        return DetectedProtocol.CLAUDE
    if normalized in OPENAI_PATHS:
        return DetectedProtocol.OPENAI
    if _claude_score(payload) > _openai_score(payload):
        return DetectedProtocol.CLAUDE
    return DetectedProtocol.OPENAI


@dataclass
class StreamResult:
    """A started upstream stream, re-framed for the caller."""

    body: AsyncIterator[bytes]
    model: str
    media_type: str = "text/event-stream"


class Gateway:
    """Binds translation, credentials, transport and retry into one request lifecycle."""

    def __init__(
        self,
        translator: MessageTranslator,
        transport: Transport,
        auth: AuthProvider,
        upstream: Upstream,
        retry_policy: Optional[RetryPolicy] = None,
        mode: ResolutionMode = ResolutionMode(),
        emit_message_delta: bool = True,
    ) -> None:
        self.translator = translator
        self.transport = transport
        self.auth = auth
        self.upstream = upstream
        self.retry_policy = retry_policy or RetryPolicy()
        self.mode = mode
        self.emit_message_delta = emit_message_delta

    @property
    def resolver(self):
        return self.translator.resolver

    def prepare(self, payload: Mapping[str, Any], inbound: DetectedProtocol) -> tuple[OutboundRequest, Optional[Direction]]:
        """Resolve the model and build the upstream body."""
        if not isinstance(payload, Mapping):
            raise TranslationError("Request body must be a JSON object")
        direction = Direction.between(inbound, self.upstream.protocol)
        if direction is None:
            return self.translator.passthrough(payload, self.mode), None
        return self.translator.to_outbound(payload, direction, self.mode), direction

    async def _send(self, body: dict[str, Any], streaming: bool) -> httpx.Response:
        # Credentials are fetched per attempt so a refreshed token is used on retry
        auth_headers = await self.auth.get_headers(self.upstream.protocol)
        url = self.upstream.build_url(await self.auth.get_base_url())
        headers = build_outbound_headers(auth_headers, streaming)
        return await self.transport.send("POST", url, headers, body, streaming=streaming)

    async def handle(
        self,
        payload: Mapping[str, Any],
        inbound: DetectedProtocol,
        request_id: Optional[str] = None,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> dict[str, Any] | StreamResult:
        """Serve one request.

        Returns the translated response body, or a ``StreamResult`` whose body
        must be iterated to completion (or closed) by the caller.
        """
        req_id = request_id or uuid.uuid4().hex[:8]
        outbound, direction = self.prepare(payload, inbound)
        resolution = outbound.resolution
        logger.info(
            "[%s] %s request for model %r -> %r (%s), stream=%s",
            req_id,
            inbound.value,
            payload.get("model"),
            resolution.model,
            resolution.label,
            outbound.stream,
        )

        if outbound.stream:
            # Streams are never retried
            response = await self._send(outbound.payload, streaming=True)
            body = self._stream_body(response, direction, outbound.model, req_id, disconnect_checker)
            return StreamResult(body=body, model=outbound.model)

        response = await self.retry_policy.execute_with_retry(
            lambda: self._send(outbound.payload, streaming=False),
            context=f"[{req_id}] upstream request",
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamFatalError("Upstream returned a non-JSON response", status_code=502) from exc
        if not isinstance(data, dict):
            raise UpstreamFatalError("Upstream returned an unexpected response body", status_code=502)

        if direction is not None:
            data = self.translator.to_inbound(data, direction)
        logger.info("[%s] Completed non-streaming request", req_id)
        return data

    def _stream_adapter(self, direction: Optional[Direction], model: str):
        if direction is Direction.CLAUDE_TO_OPENAI:
            return StreamTranslator(
                model,
                options=self.translator.options,
                emit_message_delta=self.emit_message_delta,
            )
        if direction is Direction.OPENAI_TO_CLAUDE:
            return ClaudeToChatStreamTranslator(model)
        return None

    async def _stream_body(
        self,
        response: httpx.Response,
        direction: Optional[Direction],
        model: str,
        req_id: str,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]],
    ) -> AsyncIterator[bytes]:
        client_gone = False

        async def upstream_chunks() -> AsyncIterator[bytes]:
            nonlocal client_gone
            async for chunk in response.aiter_bytes():
                if disconnect_checker is not None and await disconnect_checker():
                    client_gone = True
                    logger.info("[%s] Client disconnected; closing upstream stream", req_id)
                    raise StreamAbort("client disconnected")
                if chunk:
                    yield chunk

        adapter = self._stream_adapter(direction, model)
        source = upstream_chunks() if adapter is None else adapter.adapt_stream(upstream_chunks())
        try:
            async for chunk in source:
                yield chunk
            logger.info("[%s] Stream completed", req_id)
        except StreamAbort as exc:
            if client_gone:
                return
            logger.warning("[%s] Stream aborted: %s", req_id, exc.message)
            raise
        except httpx.HTTPError as exc:
            logger.warning("[%s] Upstream stream failed: %s", req_id, exc)
            raise StreamAbort(f"Upstream stream failed: {exc}") from exc
        finally:
            await response.aclose()
