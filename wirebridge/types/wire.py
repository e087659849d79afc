"""JSON shapes exchanged with clients and upstreams.

Annotation only. Nothing here is checked at runtime.
"""

from typing import Any
from typing_extensions import TypedDict


# OpenAI-style chat completions


class FunctionCall(TypedDict, total=False):
    name: str | None
    # JSON text; arrives in fragments when streamed
    arguments: str | None


class ToolCall(TypedDict, total=False):
    """Entry of ``message.tool_calls``.

    ``id`` is what a later ``role: tool`` message points back to, and
    ``index`` is only present on streamed fragments.
    """
    id: str
    type: str
    function: FunctionCall
    index: int


class ChatMessage(TypedDict, total=False):
    role: str
    content: str | list[dict[str, Any]] | None
    name: str | None
    tool_calls: list[ToolCall] | None
    tool_call_id: str | None


# Claude-style messages


class AnthropicContentBlock(TypedDict, total=False):
    """One entry of a Claude-style ``content`` array.

    Which keys are set depends on ``type``: ``text`` carries ``text``,
    ``tool_use`` carries ``id``/``name``/``input``, ``tool_result`` carries
    ``tool_use_id``/``content``/``is_error``.
    """
    type: str
    text: str | None
    id: str | None
    name: str | None
    input: dict[str, Any] | None
    tool_use_id: str | None
    content: str | list[dict[str, Any]] | None
    is_error: bool | None
