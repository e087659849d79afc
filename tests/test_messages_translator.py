"""Tests for Claude-style <-> OpenAI-style request and response translation."""

import json

import pytest

from wirebridge.core.exceptions import TranslationError, UnsupportedContentError
from wirebridge.core.model_mapping import (
    ModelMappingRule,
    ModelMappingTable,
    ModelResolver,
    ResolutionMode,
)
from wirebridge.messages.translator import (
    MessageTranslator,
    TranslationOptions,
    chat_completion_to_messages,
    chat_completions_to_messages,
    message_to_chat_completion,
    messages_to_chat_completions,
    parse_tool_arguments,
)
from wirebridge.types.chat import Direction


def _claude_tool_request() -> dict:
    return {
        "model": "claude-3-5-sonnet",
        "max_tokens": 100,
        "messages": [
            {"role": "user", "content": "What is 15+27?"},
            {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "Let me calculate."},
                    {"type": "tool_use", "id": "toolu_1", "name": "add", "input": {"a": 15, "b": 27}},
                ],
            },
        ],
        "tools": [
            {
                "name": "add",
                "description": "Add two numbers",
                "input_schema": {"type": "object", "properties": {"a": {"type": "number"}}},
            }
        ],
    }


class TestClaudeToOpenAIRequest:
    def test_system_becomes_first_message(self):
        result = messages_to_chat_completions({
            "model": "m",
            "system": "You are helpful.",
            "messages": [{"role": "user", "content": "Hi"}],
        })
        assert result["messages"][0] == {"role": "system", "content": "You are helpful."}
        assert result["messages"][1] == {"role": "user", "content": "Hi"}

    def test_system_block_list_is_joined(self):
        result = messages_to_chat_completions({
            "model": "m",
            "system": [{"type": "text", "text": "One"}, {"type": "text", "text": "Two"}],
            "messages": [{"role": "user", "content": "Hi"}],
        })
        assert result["messages"][0]["content"] == "One\nTwo"

    def test_tool_use_becomes_tool_calls(self):
        result = messages_to_chat_completions(_claude_tool_request())
        assistant = result["messages"][1]

        assert assistant["role"] == "assistant"
        assert assistant["content"] == "Let me calculate."
        assert len(assistant["tool_calls"]) == 1
        call = assistant["tool_calls"][0]
        assert call["id"] == "toolu_1"
        assert call["type"] == "function"
        assert call["function"]["name"] == "add"
        assert json.loads(call["function"]["arguments"]) == {"a": 15, "b": 27}

    def test_tools_are_wrapped_as_functions(self):
        result = messages_to_chat_completions(_claude_tool_request())
        assert result["tools"] == [
            {
                "type": "function",
                "function": {
                    "name": "add",
                    "description": "Add two numbers",
                    "parameters": {"type": "object", "properties": {"a": {"type": "number"}}},
                },
            }
        ]

    def test_tool_results_expand_in_original_order(self):
        result = messages_to_chat_completions({
            "model": "m",
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "before"},
                        {"type": "tool_result", "tool_use_id": "t1", "content": "r1"},
                        {"type": "text", "text": "after"},
                        {"type": "tool_result", "tool_use_id": "t2", "content": [{"type": "text", "text": "r2"}]},
                    ],
                }
            ],
        })
        assert result["messages"] == [
            {"role": "user", "content": "before"},
            {"role": "tool", "tool_call_id": "t1", "content": "r1"},
            {"role": "user", "content": "after"},
            {"role": "tool", "tool_call_id": "t2", "content": "r2"},
        ]

    def test_tool_result_error_is_prefixed(self):
        result = messages_to_chat_completions({
            "model": "m",
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "tool_result", "tool_use_id": "t1", "content": "boom", "is_error": True}
                    ],
                }
            ],
        })
        assert result["messages"] == [{"role": "tool", "tool_call_id": "t1", "content": "[Error] boom"}]

    def test_text_blocks_are_newline_joined(self):
        result = messages_to_chat_completions({
            "model": "m",
            "messages": [
                {"role": "user", "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}
            ],
        })
        assert result["messages"] == [{"role": "user", "content": "a\nb"}]

    def test_empty_message_is_dropped(self):
        result = messages_to_chat_completions({
            "model": "m",
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": []},
            ],
        })
        assert result["messages"] == [{"role": "user", "content": "Hi"}]

    def test_thinking_blocks_are_dropped(self):
        result = messages_to_chat_completions({
            "model": "m",
            "messages": [
                {
                    "role": "assistant",
                    "content": [
                        {"type": "thinking", "thinking": "hmm"},
                        {"type": "text", "text": "Answer"},
                    ],
                }
            ],
        })
        assert result["messages"] == [{"role": "assistant", "content": "Answer"}]

    def test_image_block_is_rejected(self):
        with pytest.raises(UnsupportedContentError):
            messages_to_chat_completions({
                "model": "m",
                "messages": [
                    {"role": "user", "content": [{"type": "image", "source": {"type": "base64"}}]}
                ],
            })

    def test_missing_tool_use_id_is_generated(self):
        result = messages_to_chat_completions({
            "model": "m",
            "messages": [
                {"role": "assistant", "content": [{"type": "tool_use", "name": "ls", "input": {}}]},
            ],
        })
        assert result["messages"][0]["tool_calls"][0]["id"]

    def test_defaults_applied_only_when_absent(self):
        result = messages_to_chat_completions({
            "model": "m",
            "messages": [{"role": "user", "content": "Hi"}],
        })
        assert result["max_tokens"] == 4096
        assert result["temperature"] == 0.7
        assert result["stream"] is False

    def test_explicit_zero_and_false_are_kept(self):
        result = messages_to_chat_completions({
            "model": "m",
            "max_tokens": 10,
            "temperature": 0,
            "stream": False,
            "messages": [{"role": "user", "content": "Hi"}],
        })
        assert result["temperature"] == 0
        assert result["stream"] is False
        assert result["max_tokens"] == 10

    def test_integral_float_max_tokens_becomes_int(self):
        result = messages_to_chat_completions({
            "model": "m",
            "max_tokens": 256.0,
            "messages": [{"role": "user", "content": "Hi"}],
        })
        assert result["max_tokens"] == 256
        assert isinstance(result["max_tokens"], int)

    @pytest.mark.parametrize("value", [12.5, -1, "100"])
    def test_invalid_max_tokens_rejected(self, value):
        with pytest.raises(TranslationError) as exc_info:
            messages_to_chat_completions({
                "model": "m",
                "max_tokens": value,
                "messages": [{"role": "user", "content": "Hi"}],
            })
        assert exc_info.value.param == "max_tokens"

    def test_stop_sequences_and_metadata(self):
        result = messages_to_chat_completions({
            "model": "m",
            "stop_sequences": ["END"],
            "metadata": {"user_id": "u-1"},
            "messages": [{"role": "user", "content": "Hi"}],
        })
        assert result["stop"] == ["END"]
        assert result["user"] == "u-1"


class TestToolChoice:
    def _with_choice(self, choice):
        request = _claude_tool_request()
        request["tool_choice"] = choice
        return messages_to_chat_completions(request)

    def test_auto(self):
        assert self._with_choice({"type": "auto"})["tool_choice"] == "auto"

    def test_any_degrades_to_auto(self):
        assert self._with_choice({"type": "any"})["tool_choice"] == "auto"

    def test_specific_tool(self):
        assert self._with_choice({"type": "tool", "name": "add"})["tool_choice"] == {
            "type": "function",
            "function": {"name": "add"},
        }

    def test_openai_none_is_omitted_for_claude(self):
        result = chat_completions_to_messages({
            "model": "m",
            "messages": [{"role": "user", "content": "Hi"}],
            "tool_choice": "none",
        })
        assert "tool_choice" not in result

    def test_openai_required_maps_to_any(self):
        result = chat_completions_to_messages({
            "model": "m",
            "messages": [{"role": "user", "content": "Hi"}],
            "tool_choice": "required",
        })
        assert result["tool_choice"] == {"type": "any"}

    def test_openai_function_choice_maps_to_tool(self):
        result = chat_completions_to_messages({
            "model": "m",
            "messages": [{"role": "user", "content": "Hi"}],
            "tool_choice": {"type": "function", "function": {"name": "add"}},
        })
        assert result["tool_choice"] == {"type": "tool", "name": "add"}


class TestMalformedTools:
    def test_claude_tool_without_name(self):
        request = _claude_tool_request()
        request["tools"] = [{"description": "nameless", "input_schema": {}}]
        with pytest.raises(TranslationError) as exc_info:
            messages_to_chat_completions(request)
        assert exc_info.value.param == "tools"

    def test_claude_tool_with_bad_schema(self):
        request = _claude_tool_request()
        request["tools"] = [{"name": "add", "input_schema": "not-an-object"}]
        with pytest.raises(TranslationError):
            messages_to_chat_completions(request)

    def test_openai_tool_without_function(self):
        with pytest.raises(TranslationError):
            chat_completions_to_messages({
                "model": "m",
                "messages": [{"role": "user", "content": "Hi"}],
                "tools": [{"type": "function"}],
            })

    def test_messages_must_be_a_list(self):
        with pytest.raises(TranslationError):
            messages_to_chat_completions({"model": "m", "messages": "Hi"})


class TestOpenAIToClaudeRequest:
    def test_system_message_becomes_prefixed_user_message(self):
        result = chat_completions_to_messages({
            "model": "m",
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hi"},
            ],
        })
        assert result["messages"][0] == {"role": "user", "content": "System: Be brief."}
        assert result["messages"][1] == {"role": "user", "content": "Hi"}
        assert "system" not in result

    def test_tool_message_becomes_tool_result(self):
        result = chat_completions_to_messages({
            "model": "m",
            "messages": [{"role": "tool", "tool_call_id": "call_1", "content": "42"}],
        })
        assert result["messages"] == [
            {
                "role": "user",
                "content": [{"type": "tool_result", "tool_use_id": "call_1", "content": "42"}],
            }
        ]

    def test_tools_become_input_schema(self):
        result = chat_completions_to_messages({
            "model": "m",
            "messages": [{"role": "user", "content": "Hi"}],
            "tools": [
                {
                    "type": "function",
                    "function": {"name": "add", "description": "Add", "parameters": {"type": "object"}},
                }
            ],
        })
        assert result["tools"] == [
            {"name": "add", "description": "Add", "input_schema": {"type": "object"}}
        ]

    def test_unparseable_arguments_keep_raw_string(self):
        result = chat_completions_to_messages({
            "model": "m",
            "messages": [
                {
                    "role": "assistant",
                    "content": None,
                    "tool_calls": [
                        {"id": "call_1", "type": "function", "function": {"name": "add", "arguments": "{bad"}}
                    ],
                }
            ],
        })
        block = result["messages"][0]["content"][0]
        assert block["type"] == "tool_use"
        assert block["input"] == {"error": "Failed to parse arguments", "rawArguments": "{bad"}


class TestRoundTrip:
    def test_tool_name_and_input_survive(self):
        original = _claude_tool_request()
        back = chat_completions_to_messages(messages_to_chat_completions(original))

        assistant = back["messages"][1]
        assert assistant["content"][0] == {"type": "text", "text": "Let me calculate."}
        tool_use = assistant["content"][1]
        assert tool_use["name"] == "add"
        assert tool_use["input"] == {"a": 15, "b": 27}
        assert back["messages"][0] == {"role": "user", "content": "What is 15+27?"}


class TestResponses:
    def test_openai_response_to_claude(self):
        result = chat_completion_to_messages({
            "id": "chatcmpl-abc",
            "model": "gpt-4o",
            "choices": [
                {
                    "index": 0,
                    "message": {
                        "role": "assistant",
                        "content": "Calling tool",
                        "tool_calls": [
                            {"id": "call_1", "type": "function", "function": {"name": "add", "arguments": '{"a":1}'}}
                        ],
                    },
                    "finish_reason": "tool_calls",
                }
            ],
            "usage": {"prompt_tokens": 10, "completion_tokens": 4},
        })
        assert result["type"] == "message"
        assert result["role"] == "assistant"
        assert result["id"] == "msg_abc"
        assert result["stop_reason"] == "tool_use"
        assert result["content"] == [
            {"type": "text", "text": "Calling tool"},
            {"type": "tool_use", "id": "call_1", "name": "add", "input": {"a": 1}},
        ]
        assert result["usage"] == {"input_tokens": 10, "output_tokens": 4}

    @pytest.mark.parametrize(
        "finish_reason,stop_reason",
        [("stop", "end_turn"), ("length", "max_tokens"), ("content_filter", "refusal")],
    )
    def test_finish_reason_mapping(self, finish_reason, stop_reason):
        result = chat_completion_to_messages({
            "choices": [{"message": {"content": "x"}, "finish_reason": finish_reason}],
        })
        assert result["stop_reason"] == stop_reason

    def test_empty_bash_arguments_get_default_command(self):
        result = chat_completion_to_messages({
            "choices": [
                {
                    "message": {
                        "content": None,
                        "tool_calls": [
                            {"id": "call_1", "type": "function", "function": {"name": "Bash", "arguments": ""}}
                        ],
                    },
                    "finish_reason": "tool_calls",
                }
            ],
        })
        assert result["content"][0]["input"] == {
            "command": "pwd",
            "description": "Get current directory",
        }

    def test_claude_response_to_openai(self):
        result = message_to_chat_completion({
            "id": "msg_1",
            "type": "message",
            "role": "assistant",
            "model": "claude-3-5-sonnet",
            "content": [
                {"type": "text", "text": "Sure"},
                {"type": "tool_use", "id": "toolu_1", "name": "add", "input": {"a": 1}},
            ],
            "stop_reason": "tool_use",
            "usage": {"input_tokens": 3, "output_tokens": 2},
        })
        assert result["object"] == "chat.completion"
        choice = result["choices"][0]
        assert choice["finish_reason"] == "tool_calls"
        assert choice["message"]["content"] == "Sure"
        assert choice["message"]["tool_calls"][0]["function"] == {
            "name": "add",
            "arguments": '{"a": 1}',
        }
        assert result["usage"] == {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}


class TestMessageTranslator:
    def test_to_outbound_resolves_model(self):
        resolver = ModelResolver(
            ModelMappingTable(rules=(ModelMappingRule("sonnet", "gpt-4o"),))
        )
        translator = MessageTranslator(resolver)

        outbound = translator.to_outbound(_claude_tool_request(), Direction.CLAUDE_TO_OPENAI)

        assert outbound.payload["model"] == "gpt-4o"
        assert outbound.model == "gpt-4o"
        assert outbound.resolution.source == "rule"
        assert outbound.stream is False

    def test_fixed_mode_overrides_mapping(self):
        resolver = ModelResolver(
            ModelMappingTable(rules=(ModelMappingRule("sonnet", "gpt-4o"),))
        )
        translator = MessageTranslator(resolver)

        outbound = translator.to_outbound(
            _claude_tool_request(),
            Direction.CLAUDE_TO_OPENAI,
            ResolutionMode(fixed_model="qwen3-coder-plus"),
        )
        assert outbound.payload["model"] == "qwen3-coder-plus"

    def test_passthrough_only_rewrites_model(self):
        translator = MessageTranslator(
            ModelResolver(ModelMappingTable(default_model="gpt-4o-mini"))
        )
        payload = {"model": "anything", "messages": [{"role": "user", "content": "Hi"}], "n": 2}

        outbound = translator.passthrough(payload)

        assert outbound.payload == {**payload, "model": "gpt-4o-mini"}
        assert payload["model"] == "anything"

    def test_truncation_is_opt_in(self):
        translator = MessageTranslator(options=TranslationOptions(max_text_chars=5))
        outbound = translator.to_outbound(
            {"model": "m", "messages": [{"role": "user", "content": "abcdefgh"}]},
            Direction.CLAUDE_TO_OPENAI,
        )
        assert outbound.payload["messages"][0]["content"] == "abcde...[truncated]"

    def test_custom_system_prefix(self):
        translator = MessageTranslator(options=TranslationOptions(system_prefix="[sys] "))
        outbound = translator.to_outbound(
            {"model": "m", "messages": [{"role": "system", "content": "rules"}]},
            Direction.OPENAI_TO_CLAUDE,
        )
        assert outbound.payload["messages"][0]["content"] == "[sys] rules"

    def test_to_inbound_follows_request_direction(self):
        translator = MessageTranslator()
        claude = translator.to_inbound(
            {"choices": [{"message": {"content": "hi"}, "finish_reason": "stop"}]},
            Direction.CLAUDE_TO_OPENAI,
        )
        assert claude["content"] == [{"type": "text", "text": "hi"}]

        openai = translator.to_inbound(
            {"content": [{"type": "text", "text": "hi"}], "stop_reason": "end_turn"},
            Direction.OPENAI_TO_CLAUDE,
        )
        assert openai["choices"][0]["message"]["content"] == "hi"
        assert openai["choices"][0]["finish_reason"] == "stop"


class TestParseToolArguments:
    def test_valid_json(self):
        assert parse_tool_arguments('{"a": 1}') == {"a": 1}

    def test_empty_is_empty_object(self):
        assert parse_tool_arguments("") == {}
        assert parse_tool_arguments(None) == {}

    def test_non_object_json_is_marked(self):
        result = parse_tool_arguments("[1, 2]")
        assert result["rawArguments"] == "[1, 2]"
        assert "error" in result
