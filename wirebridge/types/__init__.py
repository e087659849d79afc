"""Type definitions for the gateway."""

from .chat import (
    ChatRequest,
    ChatResponse,
    ContentBlock,
    DetectedProtocol,
    Direction,
    Message,
    Role,
    TextBlock,
    ToolChoice,
    ToolChoiceKind,
    ToolDefinition,
    ToolResultBlock,
    ToolUseBlock,
    Usage,
)
from .wire import AnthropicContentBlock, ChatMessage, FunctionCall, ToolCall

__all__ = [
    "AnthropicContentBlock",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ContentBlock",
    "DetectedProtocol",
    "Direction",
    "FunctionCall",
    "Message",
    "Role",
    "TextBlock",
    "ToolCall",
    "ToolChoice",
    "ToolChoiceKind",
    "ToolDefinition",
    "ToolResultBlock",
    "ToolUseBlock",
    "Usage",
]
