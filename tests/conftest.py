"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from wirebridge.auth import ApiKeyAuthProvider
from wirebridge.core.model_mapping import ModelMappingRule, ModelMappingTable
from wirebridge.core.retry import RetryConfig, RetryPolicy
from wirebridge.main import create_app
from wirebridge.settings import Settings, UpstreamSettings
from wirebridge.types.chat import DetectedProtocol


UPSTREAM_BASE_URL = "http://upstream.local/v1"


# =============================================================================
# Fake upstream
# =============================================================================


class FakeUpstream:
    """Scripted upstream served through ``httpx.MockTransport``.

    Responses are queued with the ``enqueue_*`` helpers and served in order;
    every received request is kept in ``requests`` for assertions.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._responses: list[httpx.Response] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(500, json={"error": {"message": "no scripted response"}})
        return self._responses.pop(0)

    @property
    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    def enqueue(self, response: httpx.Response) -> None:
        self._responses.append(response)

    def enqueue_json(self, payload: dict[str, Any], status_code: int = 200) -> None:
        self.enqueue(httpx.Response(status_code, json=payload))

    def enqueue_sse(self, lines: list[str]) -> None:
        body = "".join(f"data: {line}\n\n" for line in lines).encode("utf-8")
        self.enqueue(
            httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})
        )

    def enqueue_openai_chat_response(
        self,
        content: Optional[str] = "Hello!",
        tool_calls: Optional[list[dict[str, Any]]] = None,
        finish_reason: str = "stop",
        model: str = "gpt-4o",
    ) -> None:
        message: dict[str, Any] = {"role": "assistant", "content": content}
        if tool_calls:
            message["tool_calls"] = tool_calls
        self.enqueue_json({
            "id": "chatcmpl-abc123",
            "object": "chat.completion",
            "created": 1700000000,
            "model": model,
            "choices": [{"index": 0, "message": message, "finish_reason": finish_reason}],
            "usage": {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17},
        })


async def no_sleep(_seconds: float) -> None:
    return None


def build_settings(protocol: DetectedProtocol = DetectedProtocol.OPENAI, **overrides: Any) -> Settings:
    settings = Settings(
        upstream=UpstreamSettings(
            base_url=UPSTREAM_BASE_URL,
            protocol=protocol,
            api_key="test-key",
        ),
    )
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def sample_table() -> ModelMappingTable:
    return ModelMappingTable(
        rules=(
            ModelMappingRule("claude-3-5-sonnet", "gpt-4o", "exact"),
            ModelMappingRule("haiku", "gpt-4o-mini", "contains"),
        ),
        default_model=None,
    )


@pytest.fixture
def make_client(upstream: FakeUpstream) -> Callable[..., httpx.AsyncClient]:
    """Build an in-process client for a gateway wired to the fake upstream."""

    def _make(
        protocol: DetectedProtocol = DetectedProtocol.OPENAI,
        mapping_table: Optional[ModelMappingTable] = None,
        settings: Optional[Settings] = None,
        max_retries: int = 3,
    ) -> httpx.AsyncClient:
        settings = settings or build_settings(protocol)
        app = create_app(
            settings,
            upstream_transport=upstream.transport,
            auth_provider=ApiKeyAuthProvider("test-key"),
            mapping_table=mapping_table if mapping_table is not None else ModelMappingTable(),
            retry_policy=RetryPolicy(
                RetryConfig(max_retries=max_retries, jitter=False), sleep=no_sleep
            ),
        )
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://gateway.local"
        )

    return _make


async def aiter_bytes(chunks: list[bytes]):
    """Helper to create async iterator from list of bytes."""
    for chunk in chunks:
        yield chunk


def parse_sse_events(raw: bytes) -> list[dict[str, Any]]:
    """Parse Claude-style ``event:``/``data:`` frames from raw bytes."""
    events = []
    for frame in raw.decode("utf-8").split("\n\n"):
        lines = [line for line in frame.split("\n") if line]
        event_line = next((line for line in lines if line.startswith("event: ")), None)
        data_line = next((line for line in lines if line.startswith("data: ")), None)
        if event_line and data_line:
            events.append({
                "event": event_line[len("event: "):],
                "data": json.loads(data_line[len("data: "):]),
            })
    return events
