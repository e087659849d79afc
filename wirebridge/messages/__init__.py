"""Claude-style Messages <-> OpenAI-style Chat Completions translation.

Provides request/response translation in both directions plus the streaming
adapters that re-frame server-sent events on the fly.
"""

from .translator import (
    MessageTranslator,
    OutboundRequest,
    TranslationOptions,
    chat_completion_to_messages,
    chat_completions_to_messages,
    message_to_chat_completion,
    messages_to_chat_completions,
    parse_tool_arguments,
)
from .stream_adapter import (
    ClaudeToChatStreamTranslator,
    StreamEvent,
    StreamState,
    StreamTranslator,
)

__all__ = [
    "MessageTranslator",
    "OutboundRequest",
    "TranslationOptions",
    "messages_to_chat_completions",
    "chat_completions_to_messages",
    "chat_completion_to_messages",
    "message_to_chat_completion",
    "parse_tool_arguments",
    "StreamTranslator",
    "ClaudeToChatStreamTranslator",
    "StreamEvent",
    "StreamState",
]
