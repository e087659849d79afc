"""Stream adapters between OpenAI-style and Claude-style SSE streams.

OpenAI Chat Completion Events:
    data: {"choices":[{"delta":{"role":"assistant"},"index":0}]}
    data: {"choices":[{"delta":{"content":"Hello"},"index":0}]}
    data: {"choices":[{"delta":{"tool_calls":[...]},"index":0}]}
    data: {"choices":[{"delta":{},"finish_reason":"stop","index":0}]}
    data: [DONE]

Claude-style Messages Events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn"},"usage":{"output_tokens":10}}

    event: message_stop
    data: {"type":"message_stop"}

``StreamTranslator`` is a reducer: ``start``/``feed``/``finish`` take parsed
upstream payloads and return the downstream events they produce, so the state
machine can be driven without a network stream. ``adapt_stream`` wraps it
around an async byte iterator.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Optional

from ..core.exceptions import StreamAbort
from ..core.sse import (
    SSEDecoder,
    SSEEvent,
    detect_sse_stream_error,
    format_sse_data,
    format_sse_done,
    format_sse_event,
)
from ..types.chat import STOP_END_TURN, STOP_TOOL_USE
from .translator import (
    DEFAULT_OPTIONS,
    TranslationOptions,
    apply_shell_tool_default,
    convert_finish_reason,
    convert_stop_reason,
    parse_tool_arguments,
)

logger = logging.getLogger("wirebridge")


class StreamState(str, Enum):
    STARTED = "started"
    EMITTING = "emitting"
    FINALIZING = "finalizing"
    CLOSED = "closed"


@dataclass
class StreamEvent:
    """One downstream Claude-style event."""

    type: str
    data: dict[str, Any]

    def encode(self) -> bytes:
        return format_sse_event(self.type, self.data)


@dataclass
class ToolCallSlot:
    """Accumulated fragments of one streamed tool call."""

    index: int
    id: str = ""
    name: str = ""
    arguments: str = ""


@dataclass
class _Usage:
    input_tokens: int = 0
    output_tokens: int = 0


class StreamTranslator:
    """Converts an OpenAI-style chat completion stream into Claude-style events.

    Text always lives in content block 0, which is opened at stream start.
    Tool calls are accumulated by their integer index and emitted as complete
    tool_use blocks once the upstream signals the end of the turn.
    """

    def __init__(
        self,
        model: str,
        message_id: Optional[str] = None,
        options: TranslationOptions = DEFAULT_OPTIONS,
        emit_message_delta: bool = True,
    ) -> None:
        """Initialize the stream translator.

        Args:
            model: Resolved model name echoed in message_start
            message_id: Message id to use; generated when omitted
            options: Translation options (shell tool defaulting)
            emit_message_delta: Whether to emit message_delta before message_stop
        """
        self.message_id = message_id or f"msg_{uuid.uuid4().hex[:24]}"
        self.model = model
        self.options = options
        self.emit_message_delta = emit_message_delta

        self.state: Optional[StreamState] = None
        self.slots: dict[int, ToolCallSlot] = {}
        self.finish_reason: Optional[str] = None
        self.usage = _Usage()
        self.abort_reason: Optional[str] = None

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    # ------------------------------------------------------------------
    # Reducer
    # ------------------------------------------------------------------

    def start(self) -> list[StreamEvent]:
        """Open the stream: message_start plus the index-0 text block."""
        if self.state is not None:
            return []
        self.state = StreamState.STARTED
        message = {
            "id": self.message_id,
            "type": "message",
            "role": "assistant",
            "content": [],
            "model": self.model,
            "stop_reason": None,
            "stop_sequence": None,
            "usage": {"input_tokens": 0, "output_tokens": 0},
        }
        return [
            StreamEvent("message_start", {"type": "message_start", "message": message}),
            StreamEvent(
                "content_block_start",
                {
                    "type": "content_block_start",
                    "index": 0,
                    "content_block": {"type": "text", "text": ""},
                },
            ),
        ]

    def feed(self, payload: dict[str, Any]) -> list[StreamEvent]:
        """Consume one parsed upstream chunk.

        Raises:
            StreamAbort: The chunk carries an in-band upstream error.
        """
        if self.closed:
            return []
        events = self.start()

        error = detect_sse_stream_error(payload)
        if error:
            self.abort(error)
            raise StreamAbort(error)

        usage = payload.get("usage")
        if isinstance(usage, dict):
            self.usage.input_tokens = usage.get("prompt_tokens") or self.usage.input_tokens
            self.usage.output_tokens = usage.get("completion_tokens") or self.usage.output_tokens

        choices = payload.get("choices") or []
        for choice in choices:
            if choice.get("index", 0) != 0:
                continue
            if self.state is StreamState.FINALIZING:
                # Only usage is expected after the finish signal.
                continue

            delta = choice.get("delta") or {}
            content = delta.get("content")
            if content:
                self.state = StreamState.EMITTING
                events.append(
                    StreamEvent(
                        "content_block_delta",
                        {
                            "type": "content_block_delta",
                            "index": 0,
                            "delta": {"type": "text_delta", "text": content},
                        },
                    )
                )

            for fragment in delta.get("tool_calls") or []:
                self.state = StreamState.EMITTING
                self._accumulate_tool_call(fragment)

            finish_reason = choice.get("finish_reason")
            if finish_reason:
                self.finish_reason = finish_reason
                self.state = StreamState.FINALIZING

        return events

    def finish(self) -> list[StreamEvent]:
        """Handle the end-of-stream sentinel and emit the closing events."""
        if self.closed:
            return []
        events = self.start()
        events.extend(self._finalize())
        return events

    def abort(self, reason: str = "stream aborted") -> None:
        """Close without emitting any finishing events."""
        if self.closed:
            return
        self.state = StreamState.CLOSED
        self.abort_reason = reason
        self.slots.clear()
        logger.warning("Stream %s aborted: %s", self.message_id, reason)

    def _accumulate_tool_call(self, fragment: dict[str, Any]) -> None:
        index = fragment.get("index", 0)
        slot = self.slots.get(index)
        if slot is None:
            slot = ToolCallSlot(index=index)
            self.slots[index] = slot

        if fragment.get("id"):
            slot.id = fragment["id"]
        function = fragment.get("function") or {}
        if function.get("name"):
            slot.name = function["name"]
        arguments = function.get("arguments")
        if arguments:
            slot.arguments += arguments

    def _finalize(self) -> list[StreamEvent]:
        events = [StreamEvent("content_block_stop", {"type": "content_block_stop", "index": 0})]

        block_index = 1
        for index in sorted(self.slots):
            slot = self.slots[index]
            if not slot.id or not slot.name:
                logger.debug(
                    "Dropping tool call at index %d without id or name (id=%r, name=%r)",
                    index,
                    slot.id,
                    slot.name,
                )
                continue

            tool_input = parse_tool_arguments(slot.arguments)
            tool_input = apply_shell_tool_default(slot.name, tool_input, self.options)
            events.extend(self._tool_use_events(block_index, slot, tool_input))
            block_index += 1

        if self.finish_reason:
            stop_reason = convert_finish_reason(self.finish_reason)
        else:
            stop_reason = STOP_TOOL_USE if block_index > 1 else STOP_END_TURN

        if self.emit_message_delta:
            events.append(
                StreamEvent(
                    "message_delta",
                    {
                        "type": "message_delta",
                        "delta": {"stop_reason": stop_reason, "stop_sequence": None},
                        "usage": {
                            "input_tokens": self.usage.input_tokens,
                            "output_tokens": self.usage.output_tokens,
                        },
                    },
                )
            )
        events.append(StreamEvent("message_stop", {"type": "message_stop"}))

        self.state = StreamState.CLOSED
        self.slots.clear()
        return events

    @staticmethod
    def _tool_use_events(
        block_index: int,
        slot: ToolCallSlot,
        tool_input: dict[str, Any],
    ) -> list[StreamEvent]:
        return [
            StreamEvent(
                "content_block_start",
                {
                    "type": "content_block_start",
                    "index": block_index,
                    "content_block": {
                        "type": "tool_use",
                        "id": slot.id,
                        "name": slot.name,
                        "input": tool_input,
                    },
                },
            ),
            StreamEvent(
                "content_block_delta",
                {
                    "type": "content_block_delta",
                    "index": block_index,
                    "delta": {
                        "type": "input_json_delta",
                        "partial_json": json.dumps(tool_input, ensure_ascii=False),
                    },
                },
            ),
            StreamEvent(
                "content_block_stop",
                {"type": "content_block_stop", "index": block_index},
            ),
        ]

    # ------------------------------------------------------------------
    # Async wrapper
    # ------------------------------------------------------------------

    def process_event(self, sse: SSEEvent) -> list[StreamEvent]:
        if sse.is_done:
            return self.finish()
        payload = sse.json()
        if payload is None:
            if sse.data:
                logger.debug("StreamTranslator: failed to parse %s", sse.data[:100])
            return []
        return self.feed(payload)

    async def adapt_stream(self, chat_stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Transform an OpenAI-style SSE byte stream into Claude-style SSE bytes.

        Raises:
            StreamAbort: The upstream failed or closed before a finish signal.
        """
        decoder = SSEDecoder()
        for event in self.start():
            yield event.encode()

        try:
            async for chunk in chat_stream:
                for sse in decoder.feed(chunk):
                    for event in self.process_event(sse):
                        yield event.encode()
                    if self.closed:
                        return
            for sse in decoder.flush():
                for event in self.process_event(sse):
                    yield event.encode()
        except (asyncio.CancelledError, StreamAbort):
            self.abort("cancelled" if self.abort_reason is None else self.abort_reason)
            raise
        except Exception as exc:
            self.abort(f"upstream stream failed: {exc}")
            raise StreamAbort(f"Upstream stream failed: {exc}") from exc

        if self.state is StreamState.FINALIZING:
            # Finish signal seen but no [DONE] sentinel.
            for event in self.finish():
                yield event.encode()
        elif not self.closed:
            self.abort("upstream closed before a finish signal")
            raise StreamAbort("Upstream stream closed before a finish signal")


class ClaudeToChatStreamTranslator:
    """Converts a Claude-style event stream into OpenAI-style chat completion chunks."""

    def __init__(self, model: str, completion_id: Optional[str] = None) -> None:
        self.completion_id = completion_id or f"chatcmpl-{uuid.uuid4().hex[:24]}"
        self.model = model
        self.created = int(time.time())

        self.state: Optional[StreamState] = None
        # Claude block index -> OpenAI tool_calls index
        self.tool_indices: dict[int, int] = {}
        self.stop_reason: Optional[str] = None
        self.input_tokens = 0
        self.output_tokens = 0

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED

    def _chunk(self, delta: dict[str, Any], finish_reason: Optional[str] = None) -> dict[str, Any]:
        return {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }

    def start(self) -> list[dict[str, Any]]:
        if self.state is not None:
            return []
        self.state = StreamState.STARTED
        return [self._chunk({"role": "assistant", "content": ""})]

    def feed(self, payload: dict[str, Any]) -> list[dict[str, Any]]:
        """Consume one parsed Claude-style event; returns chunk payloads."""
        if self.closed:
            return []
        chunks = self.start()

        error = detect_sse_stream_error(payload)
        if error:
            self.abort(error)
            raise StreamAbort(error)

        event_type = payload.get("type")
        if event_type == "message_start":
            usage = (payload.get("message") or {}).get("usage") or {}
            self.input_tokens = usage.get("input_tokens", 0) or 0
        elif event_type == "content_block_start":
            block = payload.get("content_block") or {}
            if block.get("type") == "tool_use":
                self.state = StreamState.EMITTING
                tool_index = len(self.tool_indices)
                self.tool_indices[payload.get("index", 0)] = tool_index
                chunks.append(self._chunk({
                    "tool_calls": [{
                        "index": tool_index,
                        "id": block.get("id", ""),
                        "type": "function",
                        "function": {"name": block.get("name", ""), "arguments": ""},
                    }]
                }))
            elif block.get("type") == "text" and block.get("text"):
                chunks.append(self._chunk({"content": block["text"]}))
        elif event_type == "content_block_delta":
            delta = payload.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                self.state = StreamState.EMITTING
                chunks.append(self._chunk({"content": delta["text"]}))
            elif delta.get("type") == "input_json_delta":
                tool_index = self.tool_indices.get(payload.get("index", 0))
                if tool_index is not None and delta.get("partial_json"):
                    chunks.append(self._chunk({
                        "tool_calls": [{
                            "index": tool_index,
                            "function": {"arguments": delta["partial_json"]},
                        }]
                    }))
        elif event_type == "message_delta":
            self.stop_reason = (payload.get("delta") or {}).get("stop_reason") or self.stop_reason
            usage = payload.get("usage") or {}
            self.output_tokens = usage.get("output_tokens", self.output_tokens) or 0
            self.state = StreamState.FINALIZING
        elif event_type == "message_stop":
            chunks.extend(self.finish())
        return chunks

    def finish(self) -> list[dict[str, Any]]:
        if self.closed:
            return []
        chunks = self.start()
        final = self._chunk({}, convert_stop_reason(self.stop_reason or STOP_END_TURN))
        final["usage"] = {
            "prompt_tokens": self.input_tokens,
            "completion_tokens": self.output_tokens,
            "total_tokens": self.input_tokens + self.output_tokens,
        }
        chunks.append(final)
        self.state = StreamState.CLOSED
        return chunks

    def abort(self, reason: str = "stream aborted") -> None:
        if self.closed:
            return
        self.state = StreamState.CLOSED
        logger.warning("Stream %s aborted: %s", self.completion_id, reason)

    async def adapt_stream(self, messages_stream: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Transform a Claude-style SSE byte stream into OpenAI-style SSE bytes."""
        decoder = SSEDecoder()
        for chunk in self.start():
            yield format_sse_data(chunk)

        try:
            async for raw in messages_stream:
                for sse in decoder.feed(raw):
                    payload = sse.json()
                    if payload is None:
                        continue
                    for chunk in self.feed(payload):
                        yield format_sse_data(chunk)
                    if self.closed:
                        yield format_sse_done()
                        return
            for sse in decoder.flush():
                payload = sse.json()
                if payload is not None:
                    for chunk in self.feed(payload):
                        yield format_sse_data(chunk)
            if self.closed:
                yield format_sse_done()
                return
        except (asyncio.CancelledError, StreamAbort):
            self.abort("cancelled")
            raise
        except Exception as exc:
            self.abort(f"upstream stream failed: {exc}")
            raise StreamAbort(f"Upstream stream failed: {exc}") from exc

        if self.state is StreamState.FINALIZING:
            for chunk in self.finish():
                yield format_sse_data(chunk)
            yield format_sse_done()
        elif not self.closed:
            self.abort("upstream closed before message_stop")
            raise StreamAbort("Upstream stream closed before message_stop")
