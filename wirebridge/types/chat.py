"""Protocol-neutral chat types.

Both wire protocols are parsed into these types and rendered back out of them,
so every translation goes through one closed set of content block variants:

- TextBlock: plain text
- ToolUseBlock: the assistant asking for a tool to be invoked
- ToolResultBlock: the caller's answer to an earlier tool use

Anything else found on the wire is either dropped explicitly (thinking blocks)
or rejected with UnsupportedContentError.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class DetectedProtocol(str, Enum):
    """Wire protocol of an inbound request, detected once per request."""

    CLAUDE = "claude"
    OPENAI = "openai"


class Direction(str, Enum):
    """Translation direction of a request (responses travel the other way)."""

    CLAUDE_TO_OPENAI = "claude_to_openai"
    OPENAI_TO_CLAUDE = "openai_to_claude"

    @property
    def source(self) -> DetectedProtocol:
        if self is Direction.CLAUDE_TO_OPENAI:
            return DetectedProtocol.CLAUDE
        return DetectedProtocol.OPENAI

    @property
    def target(self) -> DetectedProtocol:
        if self is Direction.CLAUDE_TO_OPENAI:
            return DetectedProtocol.OPENAI
        return DetectedProtocol.CLAUDE

    @classmethod
    def between(cls, source: DetectedProtocol, target: DetectedProtocol) -> Optional["Direction"]:
        """Return the direction for a protocol pair, or None when they match."""
        if source is target:
            return None
        if source is DetectedProtocol.CLAUDE:
            return cls.CLAUDE_TO_OPENAI
        return cls.OPENAI_TO_CLAUDE


@dataclass(frozen=True)
class TextBlock:
    text: str


@dataclass(frozen=True)
class ToolUseBlock:
    id: str
    name: str
    input: dict[str, Any]


@dataclass(frozen=True)
class ToolResultBlock:
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Union[TextBlock, ToolUseBlock, ToolResultBlock]


@dataclass
class Message:
    """One conversational turn.

    ``content`` is either plain text or an ordered list of content blocks.
    """

    role: Role
    content: Union[str, list[ContentBlock]]

    def blocks(self) -> list[ContentBlock]:
        if isinstance(self.content, str):
            return [TextBlock(self.content)] if self.content else []
        return list(self.content)


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    parameters: dict[str, Any]
    description: Optional[str] = None


class ToolChoiceKind(str, Enum):
    AUTO = "auto"
    NONE = "none"
    ANY = "any"
    SPECIFIC = "specific"


@dataclass(frozen=True)
class ToolChoice:
    kind: ToolChoiceKind
    name: Optional[str] = None

    @classmethod
    def auto(cls) -> "ToolChoice":
        return cls(ToolChoiceKind.AUTO)

    @classmethod
    def none(cls) -> "ToolChoice":
        return cls(ToolChoiceKind.NONE)

    @classmethod
    def any(cls) -> "ToolChoice":
        return cls(ToolChoiceKind.ANY)

    @classmethod
    def specific(cls, name: str) -> "ToolChoice":
        return cls(ToolChoiceKind.SPECIFIC, name)


@dataclass
class ChatRequest:
    model: str
    messages: list[Message]
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    stream: Optional[bool] = None
    tools: list[ToolDefinition] = field(default_factory=list)
    tool_choice: Optional[ToolChoice] = None
    top_p: Optional[float] = None
    stop: Optional[list[str]] = None
    user: Optional[str] = None


# Stop reasons use the Claude-style vocabulary internally; anything else is
# carried through as the raw upstream string.
STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"
STOP_MAX_TOKENS = "max_tokens"


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class ChatResponse:
    id: str
    model: str
    content: list[ContentBlock]
    stop_reason: str = STOP_END_TURN
    usage: Usage = field(default_factory=Usage)
