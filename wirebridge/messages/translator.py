"""Claude-style Messages <-> OpenAI-style Chat Completions translation.

Both protocols are parsed into the neutral types in ``wirebridge.types.chat``
and rendered back out, so each direction is a parse step plus a render step.

Key mappings:
- Claude top-level system -> OpenAI system message
- OpenAI system message -> Claude user message prefixed with "System: " (lossy)
- OpenAI tool message -> Claude user message with one tool_result block
- Claude tool_result blocks -> standalone OpenAI tool messages, in array order
- Claude tool_use blocks <-> OpenAI tool_calls (arguments JSON-encoded)
- Claude tool_choice "any" -> OpenAI "auto" (OpenAI "required" is not used)

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from ..core.exceptions import TranslationError, UnsupportedContentError
from ..core.model_mapping import ModelResolver, Resolution, ResolutionMode
from ..types.chat import (
    STOP_END_TURN,
    STOP_MAX_TOKENS,
    STOP_TOOL_USE,
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
from ..types.wire import AnthropicContentBlock, ChatMessage, ToolCall

logger = logging.getLogger("wirebridge")

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7
TRUNCATION_MARKER = "...[truncated]"

SHELL_TOOL_NAME = "Bash"
SHELL_TOOL_DEFAULT_INPUT = {"command": "pwd", "description": "Get current directory"}

_DROPPED_BLOCK_TYPES = {"thinking", "redacted_thinking"}

_FINISH_TO_STOP = {
    "stop": STOP_END_TURN,
    "length": STOP_MAX_TOKENS,
    "tool_calls": STOP_TOOL_USE,
    "function_call": STOP_TOOL_USE,
    "content_filter": "refusal",
}

_STOP_TO_FINISH = {
    STOP_END_TURN: "stop",
    "stop_sequence": "stop",
    STOP_MAX_TOKENS: "length",
    STOP_TOOL_USE: "tool_calls",
    "refusal": "content_filter",
}


@dataclass(frozen=True)
class TranslationOptions:
    """Knobs for lossy parts of the translation.

    Truncation is off unless a limit is configured.
    """

    system_prefix: str = "System: "
    max_text_chars: Optional[int] = None
    max_tool_result_chars: Optional[int] = None
    default_max_tokens: int = DEFAULT_MAX_TOKENS
    default_temperature: float = DEFAULT_TEMPERATURE
    shell_tool_name: Optional[str] = SHELL_TOOL_NAME
    shell_tool_default: Mapping[str, Any] = field(
        default_factory=lambda: dict(SHELL_TOOL_DEFAULT_INPUT)
    )


DEFAULT_OPTIONS = TranslationOptions()


@dataclass
class OutboundRequest:
    """A request body ready to send upstream, plus how its model was chosen."""

    payload: dict[str, Any]
    resolution: Resolution
    stream: bool

    @property
    def model(self) -> str:
        return self.resolution.model


# =============================================================================
# Shared helpers
# =============================================================================


def generate_tool_call_id(prefix: str = "call") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:24]}"


def _truncate(text: str, limit: Optional[int]) -> str:
    if limit is None or limit <= 0 or len(text) <= limit:
        return text
    return text[:limit] + TRUNCATION_MARKER


def parse_tool_arguments(arguments: Any) -> dict[str, Any]:
    """Parse a JSON argument string into an input object.

    A parse failure never raises: the raw string is kept next to an error
    marker so the caller can decide what to do with it.
    """
    if isinstance(arguments, Mapping):
        return dict(arguments)
    if arguments is None or arguments == "":
        return {}
    if not isinstance(arguments, str):
        return {"error": "Failed to parse arguments", "rawArguments": str(arguments)}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse tool arguments %r: %s", arguments[:200], exc)
        return {"error": "Failed to parse arguments", "rawArguments": arguments}
    if not isinstance(parsed, dict):
        return {"error": "Tool arguments are not a JSON object", "rawArguments": arguments}
    return parsed


def apply_shell_tool_default(
    name: str,
    tool_input: dict[str, Any],
    options: TranslationOptions = DEFAULT_OPTIONS,
) -> dict[str, Any]:
    """Replace an empty input for the shell tool with a safe default command."""
    if options.shell_tool_name and name == options.shell_tool_name and not tool_input:
        logger.warning(
            "%s tool call arrived with empty arguments; substituting default %s",
            name,
            dict(options.shell_tool_default),
        )
        return dict(options.shell_tool_default)
    return tool_input


def _serialize_tool_input(input_data: Any) -> str:
    """Serialize tool input to JSON string for OpenAI format."""
    if isinstance(input_data, str):
        return input_data
    return json.dumps(input_data if input_data is not None else {}, ensure_ascii=False)


def _text_from_parts(parts: Any, where: str) -> str:
    """Join the text of an OpenAI content-part array or a Claude text-block array."""
    if parts is None:
        return ""
    if isinstance(parts, str):
        return parts
    if not isinstance(parts, list):
        return str(parts)
    texts: list[str] = []
    for part in parts:
        if isinstance(part, str):
            texts.append(part)
            continue
        if not isinstance(part, Mapping):
            raise TranslationError(f"Invalid content part in {where}", param="messages")
        part_type = part.get("type", "text")
        if part_type == "text":
            texts.append(str(part.get("text") or ""))
        elif part_type in _DROPPED_BLOCK_TYPES:
            logger.debug("Dropping %s part in %s", part_type, where)
        else:
            raise UnsupportedContentError(str(part_type))
    return "\n".join(texts)


def _optional_number(payload: Mapping[str, Any], key: str) -> Optional[float]:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TranslationError(f"'{key}' must be a number", param=key)
    return value


def _optional_token_count(payload: Mapping[str, Any], key: str) -> Optional[int]:
    value = _optional_number(payload, key)
    if value is None:
        return None
    if isinstance(value, float):
        if not value.is_integer():
            raise TranslationError(f"'{key}' must be an integer", param=key)
        value = int(value)
    if value < 0:
        raise TranslationError(f"'{key}' must not be negative", param=key)
    return value


def _optional_bool(payload: Mapping[str, Any], key: str) -> Optional[bool]:
    value = payload.get(key)
    if value is None:
        return None
    return bool(value)


def _stop_list(value: Any) -> Optional[list[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(item) for item in value]
    raise TranslationError("stop sequences must be a string or a list", param="stop")


def convert_finish_reason(finish_reason: Optional[str]) -> str:
    """Convert OpenAI finish_reason to Claude stop_reason."""
    if finish_reason is None:
        return STOP_END_TURN
    return _FINISH_TO_STOP.get(finish_reason, finish_reason)


def convert_stop_reason(stop_reason: Optional[str]) -> str:
    """Convert Claude stop_reason to OpenAI finish_reason."""
    if stop_reason is None:
        return "stop"
    return _STOP_TO_FINISH.get(stop_reason, stop_reason)


# =============================================================================
# Claude-style parsing
# =============================================================================


def _parse_claude_block(block: Any) -> Optional[ContentBlock]:
    if not isinstance(block, Mapping):
        raise TranslationError("Content blocks must be objects", param="messages")
    block_type = block.get("type", "")

    if block_type == "text":
        return TextBlock(str(block.get("text") or ""))
    if block_type == "tool_use":
        tool_input = block.get("input")
        if tool_input is None:
            tool_input = {}
        if not isinstance(tool_input, Mapping):
            raise TranslationError("tool_use input must be an object", param="messages")
        return ToolUseBlock(
            id=block.get("id") or generate_tool_call_id("toolu"),
            name=str(block.get("name") or ""),
            input=dict(tool_input),
        )
    if block_type == "tool_result":
        return ToolResultBlock(
            tool_use_id=str(block.get("tool_use_id") or ""),
            content=_text_from_parts(block.get("content"), "tool_result"),
            is_error=bool(block.get("is_error", False)),
        )
    if block_type in _DROPPED_BLOCK_TYPES:
        logger.debug("Dropping %s block during translation", block_type)
        return None
    raise UnsupportedContentError(str(block_type))


def _parse_claude_tools(tools: Any) -> list[ToolDefinition]:
    if not tools:
        return []
    if not isinstance(tools, list):
        raise TranslationError("'tools' must be a list", param="tools")
    parsed: list[ToolDefinition] = []
    for index, tool in enumerate(tools):
        if not isinstance(tool, Mapping) or not tool.get("name"):
            raise TranslationError(f"Tool at index {index} is missing a name", param="tools")
        schema = tool.get("input_schema")
        if schema is None:
            schema = {}
        if not isinstance(schema, Mapping):
            raise TranslationError(
                f"Tool '{tool['name']}' has an invalid input_schema", param="tools"
            )
        parsed.append(
            ToolDefinition(
                name=str(tool["name"]),
                parameters=dict(schema),
                description=tool.get("description"),
            )
        )
    return parsed


def _parse_claude_tool_choice(tool_choice: Any) -> Optional[ToolChoice]:
    if tool_choice is None:
        return None
    if isinstance(tool_choice, str):
        choice_type = tool_choice
        name = None
    elif isinstance(tool_choice, Mapping):
        choice_type = tool_choice.get("type", "")
        name = tool_choice.get("name")
    else:
        raise TranslationError("Invalid tool_choice", param="tool_choice")

    if choice_type == "auto":
        return ToolChoice.auto()
    if choice_type == "any":
        return ToolChoice.any()
    if choice_type == "none":
        return ToolChoice.none()
    if choice_type == "tool":
        if not name:
            raise TranslationError("tool_choice of type 'tool' requires a name", param="tool_choice")
        return ToolChoice.specific(str(name))
    raise TranslationError(f"Unknown tool_choice type: {choice_type!r}", param="tool_choice")


def parse_claude_request(payload: Mapping[str, Any]) -> ChatRequest:
    """Parse a Claude-style Messages request body."""
    messages: list[Message] = []

    system = payload.get("system")
    if system:
        system_text = _text_from_parts(system, "system")
        if system_text:
            messages.append(Message(Role.SYSTEM, system_text))

    raw_messages = payload.get("messages")
    if not isinstance(raw_messages, list):
        raise TranslationError("'messages' must be a list", param="messages")

    for msg in raw_messages:
        if not isinstance(msg, Mapping):
            raise TranslationError("Each message must be an object", param="messages")
        try:
            role = Role(msg.get("role", "user"))
        except ValueError as exc:
            raise TranslationError(f"Unknown role: {msg.get('role')!r}", param="messages") from exc
        content = msg.get("content")

        if isinstance(content, list):
            blocks = [b for b in (_parse_claude_block(raw) for raw in content) if b is not None]
            messages.append(Message(role, blocks))
        else:
            messages.append(Message(role, "" if content is None else str(content)))

    metadata = payload.get("metadata")
    user = metadata.get("user_id") if isinstance(metadata, Mapping) else None

    return ChatRequest(
        model=str(payload.get("model") or ""),
        messages=messages,
        max_tokens=_optional_token_count(payload, "max_tokens"),
        temperature=_optional_number(payload, "temperature"),
        stream=_optional_bool(payload, "stream"),
        tools=_parse_claude_tools(payload.get("tools")),
        tool_choice=_parse_claude_tool_choice(payload.get("tool_choice")),
        top_p=_optional_number(payload, "top_p"),
        stop=_stop_list(payload.get("stop_sequences")),
        user=user,
    )


def parse_claude_response(
    payload: Mapping[str, Any],
    options: TranslationOptions = DEFAULT_OPTIONS,
) -> ChatResponse:
    """Parse a Claude-style Messages response body."""
    raw_content = payload.get("content")
    if not isinstance(raw_content, list):
        logger.warning("Claude response content is not a list: %r", type(raw_content).__name__)
        raw_content = []

    content: list[ContentBlock] = []
    for raw in raw_content:
        block = _parse_claude_block(raw)
        if block is not None:
            content.append(block)

    usage = payload.get("usage") or {}
    return ChatResponse(
        id=str(payload.get("id") or f"msg_{uuid.uuid4().hex[:24]}"),
        model=str(payload.get("model") or ""),
        content=content,
        stop_reason=payload.get("stop_reason") or STOP_END_TURN,
        usage=Usage(
            input_tokens=int(usage.get("input_tokens", 0) or 0),
            output_tokens=int(usage.get("output_tokens", 0) or 0),
        ),
    )


# =============================================================================
# OpenAI-style parsing
# =============================================================================


def _parse_openai_tool_calls(tool_calls: Any) -> list[ToolUseBlock]:
    if not tool_calls:
        return []
    if not isinstance(tool_calls, list):
        raise TranslationError("'tool_calls' must be a list", param="messages")
    blocks: list[ToolUseBlock] = []
    for call in tool_calls:
        if not isinstance(call, Mapping):
            raise TranslationError("Each tool call must be an object", param="messages")
        function = call.get("function") or {}
        if not isinstance(function, Mapping):
            raise TranslationError("Tool call 'function' must be an object", param="messages")
        blocks.append(
            ToolUseBlock(
                id=call.get("id") or generate_tool_call_id(),
                name=str(function.get("name") or ""),
                input=parse_tool_arguments(function.get("arguments")),
            )
        )
    return blocks


def _parse_openai_tools(tools: Any) -> list[ToolDefinition]:
    if not tools:
        return []
    if not isinstance(tools, list):
        raise TranslationError("'tools' must be a list", param="tools")
    parsed: list[ToolDefinition] = []
    for index, tool in enumerate(tools):
        function = tool.get("function") if isinstance(tool, Mapping) else None
        if not isinstance(function, Mapping):
            raise TranslationError(
                f"Tool at index {index} is missing its function definition", param="tools"
            )
        if not function.get("name"):
            raise TranslationError(f"Tool at index {index} is missing a name", param="tools")
        parameters = function.get("parameters")
        if parameters is None:
            parameters = {}
        if not isinstance(parameters, Mapping):
            raise TranslationError(
                f"Tool '{function['name']}' has invalid parameters", param="tools"
            )
        parsed.append(
            ToolDefinition(
                name=str(function["name"]),
                parameters=dict(parameters),
                description=function.get("description"),
            )
        )
    return parsed


def _parse_openai_tool_choice(tool_choice: Any) -> Optional[ToolChoice]:
    if tool_choice is None:
        return None
    if isinstance(tool_choice, str):
        if tool_choice == "auto":
            return ToolChoice.auto()
        if tool_choice == "none":
            return ToolChoice.none()
        if tool_choice == "required":
            return ToolChoice.any()
        raise TranslationError(f"Unknown tool_choice: {tool_choice!r}", param="tool_choice")
    if isinstance(tool_choice, Mapping) and tool_choice.get("type") == "function":
        function = tool_choice.get("function") or {}
        if not isinstance(function, Mapping):
            raise TranslationError("tool_choice 'function' must be an object", param="tool_choice")
        name = function.get("name")
        if not name:
            raise TranslationError("tool_choice function requires a name", param="tool_choice")
        return ToolChoice.specific(str(name))
    raise TranslationError("Invalid tool_choice", param="tool_choice")


def parse_openai_request(payload: Mapping[str, Any]) -> ChatRequest:
    """Parse an OpenAI-style Chat Completions request body."""
    raw_messages = payload.get("messages")
    if not isinstance(raw_messages, list):
        raise TranslationError("'messages' must be a list", param="messages")

    messages: list[Message] = []
    for msg in raw_messages:
        if not isinstance(msg, Mapping):
            raise TranslationError("Each message must be an object", param="messages")
        raw_role = msg.get("role", "user")
        if raw_role == "developer":
            raw_role = "system"
        try:
            role = Role(raw_role)
        except ValueError as exc:
            raise TranslationError(f"Unknown role: {raw_role!r}", param="messages") from exc

        text = _text_from_parts(msg.get("content"), f"{role.value} message")

        if role is Role.TOOL:
            result = ToolResultBlock(
                tool_use_id=str(msg.get("tool_call_id") or ""),
                content=text,
            )
            messages.append(Message(Role.TOOL, [result]))
            continue

        tool_uses = _parse_openai_tool_calls(msg.get("tool_calls"))
        if tool_uses:
            blocks: list[ContentBlock] = [TextBlock(text)] if text else []
            blocks.extend(tool_uses)
            messages.append(Message(role, blocks))
        else:
            messages.append(Message(role, text))

    max_tokens = _optional_token_count(payload, "max_tokens")
    if max_tokens is None:
        max_tokens = _optional_token_count(payload, "max_completion_tokens")

    return ChatRequest(
        model=str(payload.get("model") or ""),
        messages=messages,
        max_tokens=max_tokens,
        temperature=_optional_number(payload, "temperature"),
        stream=_optional_bool(payload, "stream"),
        tools=_parse_openai_tools(payload.get("tools")),
        tool_choice=_parse_openai_tool_choice(payload.get("tool_choice")),
        top_p=_optional_number(payload, "top_p"),
        stop=_stop_list(payload.get("stop")),
        user=payload.get("user"),
    )


def parse_openai_response(
    payload: Mapping[str, Any],
    options: TranslationOptions = DEFAULT_OPTIONS,
) -> ChatResponse:
    """Parse an OpenAI-style Chat Completions response body."""
    choices = payload.get("choices") or []
    # Only the first choice is translated; Claude has no n>1 concept.
    choice = choices[0] if choices else {}
    message = choice.get("message") or {}

    content: list[ContentBlock] = []
    text = _text_from_parts(message.get("content"), "response")
    if text:
        content.append(TextBlock(text))
    for block in _parse_openai_tool_calls(message.get("tool_calls")):
        tool_input = apply_shell_tool_default(block.name, block.input, options)
        content.append(replace(block, input=tool_input))

    usage = payload.get("usage") or {}
    return ChatResponse(
        id=str(payload.get("id") or f"chatcmpl-{uuid.uuid4().hex[:12]}"),
        model=str(payload.get("model") or ""),
        content=content,
        stop_reason=convert_finish_reason(choice.get("finish_reason")),
        usage=Usage(
            input_tokens=int(usage.get("prompt_tokens", 0) or 0),
            output_tokens=int(usage.get("completion_tokens", 0) or 0),
        ),
    )


# =============================================================================
# OpenAI-style rendering
# =============================================================================


def _render_openai_tool_call(block: ToolUseBlock) -> ToolCall:
    return {
        "id": block.id,
        "type": "function",
        "function": {
            "name": block.name,
            "arguments": _serialize_tool_input(block.input),
        },
    }


def _render_openai_group(
    role: Role,
    blocks: list[ContentBlock],
    options: TranslationOptions,
) -> Optional[ChatMessage]:
    texts = [b.text for b in blocks if isinstance(b, TextBlock) and b.text]
    tool_calls = [_render_openai_tool_call(b) for b in blocks if isinstance(b, ToolUseBlock)]
    if not texts and not tool_calls:
        return None
    msg: ChatMessage = {"role": role.value}
    if texts:
        msg["content"] = _truncate("\n".join(texts), options.max_text_chars)
    elif role is Role.ASSISTANT:
        msg["content"] = None
    if tool_calls:
        msg["tool_calls"] = tool_calls
    return msg


def _render_openai_tool_result(block: ToolResultBlock, options: TranslationOptions) -> ChatMessage:
    content = _truncate(block.content, options.max_tool_result_chars)
    if block.is_error:
        content = f"[Error] {content}"
    return {"role": "tool", "tool_call_id": block.tool_use_id, "content": content}


def _render_openai_messages(
    messages: list[Message],
    options: TranslationOptions,
) -> list[ChatMessage]:
    rendered: list[ChatMessage] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            rendered.append({"role": "system", "content": _text_of(message)})
            continue

        if isinstance(message.content, str):
            if message.role is Role.TOOL:
                raise TranslationError("Tool messages must carry a tool result", param="messages")
            if not message.content:
                logger.debug("Dropping empty %s message during translation", message.role.value)
                continue
            rendered.append({
                "role": message.role.value,
                "content": _truncate(message.content, options.max_text_chars),
            })
            continue

        # Tool results break the block array into separate messages; the
        # surrounding groups keep their original relative order.
        group: list[ContentBlock] = []
        for block in message.content:
            if isinstance(block, ToolResultBlock):
                if group:
                    grouped = _render_openai_group(message.role, group, options)
                    if grouped is not None:
                        rendered.append(grouped)
                    group = []
                rendered.append(_render_openai_tool_result(block, options))
            else:
                group.append(block)
        if group:
            grouped = _render_openai_group(message.role, group, options)
            if grouped is not None:
                rendered.append(grouped)
    return rendered


def _render_openai_tool_choice(choice: Optional[ToolChoice]) -> Any:
    if choice is None:
        return None
    if choice.kind is ToolChoiceKind.SPECIFIC:
        return {"type": "function", "function": {"name": choice.name}}
    if choice.kind is ToolChoiceKind.NONE:
        return "none"
    if choice.kind is ToolChoiceKind.ANY:
        logger.debug("tool_choice 'any' has no OpenAI-style equivalent; using 'auto'")
    return "auto"


def _apply_defaults(request: ChatRequest, result: dict[str, Any], options: TranslationOptions) -> None:
    result["max_tokens"] = (
        request.max_tokens if request.max_tokens is not None else options.default_max_tokens
    )
    result["temperature"] = (
        request.temperature if request.temperature is not None else options.default_temperature
    )
    result["stream"] = request.stream if request.stream is not None else False


def render_openai_request(
    request: ChatRequest,
    options: TranslationOptions = DEFAULT_OPTIONS,
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "model": request.model,
        "messages": _render_openai_messages(request.messages, options),
    }
    _apply_defaults(request, result, options)

    if request.tools:
        result["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description or "",
                    "parameters": tool.parameters,
                },
            }
            for tool in request.tools
        ]

    tool_choice = _render_openai_tool_choice(request.tool_choice)
    if tool_choice is not None:
        result["tool_choice"] = tool_choice

    if request.top_p is not None:
        result["top_p"] = request.top_p
    if request.stop:
        result["stop"] = request.stop
    if request.user:
        result["user"] = request.user
    return result


def render_openai_response(response: ChatResponse) -> dict[str, Any]:
    texts = [b.text for b in response.content if isinstance(b, TextBlock) and b.text]
    tool_calls = [
        _render_openai_tool_call(b) for b in response.content if isinstance(b, ToolUseBlock)
    ]
    message: ChatMessage = {"role": "assistant"}
    if texts:
        message["content"] = "\n".join(texts)
    else:
        message["content"] = None if tool_calls else ""
    if tool_calls:
        message["tool_calls"] = tool_calls

    return {
        "id": response.id,
        "object": "chat.completion",
        "created": int(time.time()),
        "model": response.model,
        "choices": [
            {
                "index": 0,
                "message": message,
                "finish_reason": convert_stop_reason(response.stop_reason),
            }
        ],
        "usage": {
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
        },
    }


# =============================================================================
# Claude-style rendering
# =============================================================================


def _text_of(message: Message) -> str:
    return "\n".join(b.text for b in message.blocks() if isinstance(b, TextBlock))


def _render_claude_block(block: ContentBlock, options: TranslationOptions) -> AnthropicContentBlock:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": _truncate(block.text, options.max_text_chars)}
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if isinstance(block, ToolResultBlock):
        rendered: AnthropicContentBlock = {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": _truncate(block.content, options.max_tool_result_chars),
        }
        if block.is_error:
            rendered["is_error"] = True
        return rendered
    raise UnsupportedContentError(type(block).__name__)


def _render_claude_content(
    blocks: list[ContentBlock],
    options: TranslationOptions,
) -> str | list[AnthropicContentBlock] | None:
    """Merge text blocks into one, followed by tool blocks in their original order."""
    texts = [b.text for b in blocks if isinstance(b, TextBlock) and b.text]
    others = [b for b in blocks if not isinstance(b, TextBlock)]
    if not texts and not others:
        return None
    if texts and not others:
        return _truncate("\n".join(texts), options.max_text_chars)
    rendered: list[AnthropicContentBlock] = []
    if texts:
        rendered.append(_render_claude_block(TextBlock("\n".join(texts)), options))
    rendered.extend(_render_claude_block(b, options) for b in others)
    return rendered


def _render_claude_messages(
    messages: list[Message],
    options: TranslationOptions,
) -> list[dict[str, Any]]:
    rendered: list[dict[str, Any]] = []
    for message in messages:
        if message.role is Role.SYSTEM:
            text = _truncate(_text_of(message), options.max_text_chars)
            rendered.append({"role": "user", "content": f"{options.system_prefix}{text}"})
            continue

        if message.role is Role.TOOL:
            results = [b for b in message.blocks() if isinstance(b, ToolResultBlock)]
            if len(results) != 1:
                raise TranslationError(
                    "Tool messages must carry exactly one tool result", param="messages"
                )
            rendered.append({
                "role": "user",
                "content": [_render_claude_block(results[0], options)],
            })
            continue

        content = _render_claude_content(message.blocks(), options)
        if content is None:
            logger.debug("Dropping empty %s message during translation", message.role.value)
            continue
        rendered.append({"role": message.role.value, "content": content})
    return rendered


def render_claude_request(
    request: ChatRequest,
    options: TranslationOptions = DEFAULT_OPTIONS,
) -> dict[str, Any]:
    result: dict[str, Any] = {
        "model": request.model,
        "messages": _render_claude_messages(request.messages, options),
    }
    _apply_defaults(request, result, options)

    if request.tools:
        result["tools"] = [
            {
                "name": tool.name,
                "description": tool.description or "",
                "input_schema": tool.parameters,
            }
            for tool in request.tools
        ]

    choice = request.tool_choice
    if choice is not None:
        # Claude-style requests have no explicit "none"; omitting the field
        # is the closest equivalent.
        if choice.kind is ToolChoiceKind.AUTO:
            result["tool_choice"] = {"type": "auto"}
        elif choice.kind is ToolChoiceKind.ANY:
            result["tool_choice"] = {"type": "any"}
        elif choice.kind is ToolChoiceKind.SPECIFIC:
            result["tool_choice"] = {"type": "tool", "name": choice.name}

    if request.top_p is not None:
        result["top_p"] = request.top_p
    if request.stop:
        result["stop_sequences"] = request.stop
    if request.user:
        result["metadata"] = {"user_id": request.user}
    return result


def render_claude_response(response: ChatResponse) -> dict[str, Any]:
    content = [_render_claude_block(b, DEFAULT_OPTIONS) for b in response.content]
    if not content:
        content = [{"type": "text", "text": ""}]
    message_id = response.id
    if not message_id.startswith("msg_"):
        message_id = f"msg_{message_id.replace('chatcmpl-', '')}"
    return {
        "id": message_id,
        "type": "message",
        "role": "assistant",
        "content": content,
        "model": response.model,
        "stop_reason": response.stop_reason,
        "stop_sequence": None,
        "usage": {
            "input_tokens": response.usage.input_tokens,
            "output_tokens": response.usage.output_tokens,
        },
    }


# =============================================================================
# Translator
# =============================================================================


class MessageTranslator:
    """Translates full request and response bodies between the two protocols."""

    def __init__(
        self,
        resolver: Optional[ModelResolver] = None,
        options: Optional[TranslationOptions] = None,
    ) -> None:
        self.resolver = resolver or ModelResolver()
        self.options = options or DEFAULT_OPTIONS

    def parse_request(self, payload: Mapping[str, Any], protocol: DetectedProtocol) -> ChatRequest:
        if protocol is DetectedProtocol.CLAUDE:
            return parse_claude_request(payload)
        return parse_openai_request(payload)

    def render_request(self, request: ChatRequest, protocol: DetectedProtocol) -> dict[str, Any]:
        if protocol is DetectedProtocol.CLAUDE:
            return render_claude_request(request, self.options)
        return render_openai_request(request, self.options)

    def to_outbound(
        self,
        payload: Mapping[str, Any],
        direction: Direction,
        mode: ResolutionMode = ResolutionMode(),
    ) -> OutboundRequest:
        """Translate an inbound request body into the upstream protocol."""
        request = self.parse_request(payload, direction.source)
        resolution = self.resolver.resolve_with_mode(request.model, mode)
        request.model = resolution.model
        body = self.render_request(request, direction.target)
        return OutboundRequest(payload=body, resolution=resolution, stream=bool(body["stream"]))

    def passthrough(
        self,
        payload: Mapping[str, Any],
        mode: ResolutionMode = ResolutionMode(),
    ) -> OutboundRequest:
        """Same protocol on both sides: only the model name is rewritten."""
        requested = payload.get("model")
        if not isinstance(requested, str):
            raise TranslationError("You must provide a model parameter", param="model")
        resolution = self.resolver.resolve_with_mode(requested, mode)
        body = dict(payload)
        body["model"] = resolution.model
        return OutboundRequest(payload=body, resolution=resolution, stream=bool(body.get("stream")))

    def to_inbound(self, payload: Mapping[str, Any], direction: Direction) -> dict[str, Any]:
        """Translate an upstream response body back into the caller's protocol.

        ``direction`` is the direction the request travelled.
        """
        if direction is Direction.CLAUDE_TO_OPENAI:
            return render_claude_response(parse_openai_response(payload, self.options))
        return render_openai_response(parse_claude_response(payload, self.options))


def messages_to_chat_completions(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a Claude-style request to OpenAI-style without model mapping."""
    return render_openai_request(parse_claude_request(payload))


def chat_completions_to_messages(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Translate an OpenAI-style request to Claude-style without model mapping."""
    return render_claude_request(parse_openai_request(payload))


def chat_completion_to_messages(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Translate an OpenAI-style response to a Claude-style response."""
    return render_claude_response(parse_openai_response(payload))


def message_to_chat_completion(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a Claude-style response to an OpenAI-style response."""
    return render_openai_response(parse_claude_response(payload))
