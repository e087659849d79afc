"""SSE (Server-Sent Events) framing utilities and error detection."""

import json
from dataclasses import dataclass
from typing import Any, Optional


DONE_SENTINEL = "[DONE]"


@dataclass
class SSEEvent:
    data: Optional[str] = None
    event: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.data is not None and self.data.strip() == DONE_SENTINEL

    def json(self) -> Optional[Any]:
        """Parse the data payload, returning None if it is absent or not JSON."""
        if self.data is None or self.is_done:
            return None
        try:
            return json.loads(self.data)
        except json.JSONDecodeError:
            return None


class SSEDecoder:
    """Incremental line-oriented SSE decoder.

    Every complete ``data:`` line is one event, so upstreams that separate
    deltas with a single newline are handled the same as blank-line framing.
    An ``event:`` line names the data lines that follow it until the next
    blank line. Only a trailing partial line (and an incomplete UTF-8
    sequence) is buffered between chunks.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._pending = b""
        self._event_name: Optional[str] = None

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        text = self._decode(chunk)
        self._buffer += text.replace("\r\n", "\n").replace("\r", "\n")

        *lines, self._buffer = self._buffer.split("\n")
        events: list[SSEEvent] = []
        for line in lines:
            event = self._parse_line(line)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[SSEEvent]:
        """Return an event held in an unterminated last line."""
        leftover = self._buffer
        if self._pending:
            leftover += self._pending.decode("utf-8", errors="replace")
        self._buffer = ""
        self._pending = b""
        event = self._parse_line(leftover)
        self._event_name = None
        return [event] if event is not None else []

    def _parse_line(self, line: str) -> Optional[SSEEvent]:
        if not line.strip():
            self._event_name = None
            return None
        if line.startswith("data:"):
            return SSEEvent(data=line[5:].lstrip(), event=self._event_name)
        if line.startswith("event:"):
            self._event_name = line[6:].strip()
        # comments (": keep-alive"), id: and retry: carry nothing we use
        return None

    def _decode(self, chunk: bytes) -> str:
        # Hold back an incomplete multi-byte UTF-8 sequence at the chunk edge.
        data = self._pending + chunk
        self._pending = b""
        for cut in range(1, 4):
            if len(data) < cut:
                break
            byte = data[-cut]
            if byte & 0xC0 == 0x80:
                continue
            if byte & 0x80:
                expected = 2 if byte & 0xE0 == 0xC0 else 3 if byte & 0xF0 == 0xE0 else 4
                if expected > cut:
                    self._pending = data[-cut:]
                    data = data[:-cut]
            break
        return data.decode("utf-8", errors="replace")


def format_sse_event(event_type: str, data: dict[str, Any]) -> bytes:
    """Format a named event (Claude-style framing)."""
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n".encode("utf-8")


def format_sse_data(data: dict[str, Any]) -> bytes:
    """Format an unnamed data-only event (OpenAI-style framing)."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n".encode("utf-8")


def format_sse_done() -> bytes:
    return f"data: {DONE_SENTINEL}\n\n".encode("utf-8")


def detect_sse_stream_error(payload: Any) -> Optional[str]:
    """Check a parsed SSE data payload for an in-band error event.

    Returns an error message if an error is detected, None otherwise.

    Detects patterns like:
    - Claude-style: data: {"type":"error","error":{...}}
    - Generic: data: {"error":{...}}
    """
    if not isinstance(payload, dict):
        return None

    if payload.get("type") == "error":
        error_obj = payload.get("error") or {}
        if isinstance(error_obj, dict):
            error_msg = error_obj.get("message") or str(error_obj)
            error_type = error_obj.get("type", "unknown")
        else:
            error_msg = str(error_obj) or "unknown error"
            error_type = "unknown"
        return f"SSE stream error: {error_msg} (type={error_type})"

    error_obj = payload.get("error")
    if isinstance(error_obj, dict):
        error_msg = error_obj.get("message") or str(error_obj)
        error_type = error_obj.get("type", "unknown")
        return f"SSE stream error: {error_msg} (type={error_type})"

    return None
