"""Tests for conversation history preparation.

Tests message cleaning, image detection and context-window pruning.
"""

from __future__ import annotations

import copy

from typing import Any

from groq_desktop.core.message_utils import (
    clean_messages,
    content_to_text,
    has_image_content,
    prune_message_history,
)


def count_by_messages(messages: list[dict[str, Any]]) -> int:
    """Fake token counter: 1000 tokens per message."""
    return 1000 * len(messages)


class TestCleanMessages:
    """Tests for clean_messages function."""

    def test_strips_ui_fields(self) -> None:
        messages = [
            {
                "role": "assistant",
                "content": "Hi",
                "reasoning": "thinking...",
                "isStreaming": False,
                "reasoningDuration": 3,
                "liveReasoning": "x",
                "liveExecutedTools": [],
                "executed_tools": [{"index": 0}],
                "reasoningSummaries": ["Planning"],
                "reasoningStartTime": 1,
                "usage": {"total_tokens": 5},
            }
        ]

        assert clean_messages(messages) == [{"role": "assistant", "content": "Hi"}]

    def test_user_string_becomes_text_part(self) -> None:
        result = clean_messages([{"role": "user", "content": "hello"}])
        assert result[0]["content"] == [{"type": "text", "text": "hello"}]

    def test_user_parts_keep_order_and_default_type(self) -> None:
        content = [
            {"type": "text", "text": "look"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAA"}},
            {"text": "untyped"},
        ]

        result = clean_messages([{"role": "user", "content": content}])

        assert [part["type"] for part in result[0]["content"]] == ["text", "image_url", "text"]
        assert result[0]["content"][2]["text"] == "untyped"

    def test_assistant_list_content_is_joined(self) -> None:
        content = [{"type": "text", "text": "a"}, {"type": "image_url"}, {"type": "text", "text": "b"}]
        result = clean_messages([{"role": "assistant", "content": content}])
        assert result[0]["content"] == "ab"

    def test_assistant_none_content_is_empty_string(self) -> None:
        message = {"role": "assistant", "content": None, "tool_calls": [{"id": "c1"}]}
        result = clean_messages([message])
        assert result[0]["content"] == ""
        assert result[0]["tool_calls"] == [{"id": "c1"}]

    def test_assistant_object_content_is_json(self) -> None:
        result = clean_messages([{"role": "assistant", "content": {"answer": 42}}])
        assert result[0]["content"] == '{"answer": 42}'

    def test_tool_content_is_json_encoded(self) -> None:
        result = clean_messages([{"role": "tool", "tool_call_id": "c1", "content": {"rows": [1, 2]}}])
        assert result[0]["content"] == '{"rows": [1, 2]}'

    def test_unserializable_tool_content_uses_fallback(self) -> None:
        circular: dict[str, Any] = {}
        circular["self"] = circular

        result = clean_messages([{"role": "tool", "tool_call_id": "c1", "content": circular}])

        assert result[0]["content"] == "[Error stringifying tool content]"

    def test_input_is_not_mutated(self) -> None:
        messages = [{"role": "user", "content": "hello", "isStreaming": True}]
        original = copy.deepcopy(messages)

        clean_messages(messages)

        assert messages == original

    def test_malformed_message_is_skipped(self) -> None:
        result = clean_messages(["oops", {"role": "user", "content": "ok"}])
        assert len(result) == 1


class TestContentHelpers:
    """Tests for content_to_text and has_image_content."""

    def test_content_to_text(self) -> None:
        assert content_to_text("plain") == "plain"
        assert content_to_text([{"type": "text", "text": "a"}, {"type": "image_url"}]) == "a"
        assert content_to_text(None) == ""

    def test_has_image_content(self) -> None:
        with_image = [{"role": "user", "content": [{"type": "image_url", "image_url": {"url": "x"}}]}]
        without = [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]

        assert has_image_content(with_image)
        assert not has_image_content(without)

    def test_assistant_images_do_not_count(self) -> None:
        messages = [{"role": "assistant", "content": [{"type": "image_url"}]}]
        assert not has_image_content(messages)


class TestPruneMessageHistory:
    """Tests for prune_message_history function."""

    def test_fits_unchanged(self) -> None:
        messages = [{"role": "user", "content": "hi"}]
        assert prune_message_history(messages, 8192, count_by_messages) == messages

    def test_drops_oldest_and_keeps_system(self) -> None:
        # budget = int(8192 * 0.9) - 1024 = 6348 -> six messages of 1000
        messages = [{"role": "system", "content": "sys"}] + [
            {"role": "user" if i % 2 == 0 else "assistant", "content": str(i)} for i in range(10)
        ]

        result = prune_message_history(messages, 8192, count_by_messages)

        assert result[0]["role"] == "system"
        assert len(result) == 6
        assert result[-1]["content"] == "9"
        assert [m["content"] for m in result[1:]] == ["5", "6", "7", "8", "9"]

    def test_latest_message_always_kept(self) -> None:
        messages = [{"role": "user", "content": "a"}, {"role": "user", "content": "b"}]

        result = prune_message_history(messages, 100, count_by_messages)

        assert result == [{"role": "user", "content": "b"}]

    def test_leading_orphan_tool_messages_dropped(self) -> None:
        messages = [
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": "", "tool_calls": [{"id": "c1"}]},
            {"role": "tool", "tool_call_id": "c1", "content": "r1"},
            {"role": "tool", "tool_call_id": "c1", "content": "r2"},
            {"role": "assistant", "content": "done"},
            {"role": "user", "content": "next"},
        ]

        # budget 2680 -> two messages of 1000
        result = prune_message_history(messages, 4120, count_by_messages)

        assert result[0]["role"] != "tool"
        assert result[-1]["content"] == "next"

    def test_latest_tool_result_keeps_its_assistant_turn(self) -> None:
        messages = [
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": "", "tool_calls": [{"id": "c1"}]},
            {"role": "tool", "tool_call_id": "c1", "content": "r1"},
        ]

        result = prune_message_history(messages, 100, count_by_messages)

        assert [m["role"] for m in result] == ["assistant", "tool"]

    def test_null_text_part_does_not_raise(self, mock_tiktoken: Any) -> None:
        messages = clean_messages([{"role": "user", "content": [{"type": "text", "text": None}]}])

        assert prune_message_history(messages, 8192) == messages

    def test_default_counter_uses_tiktoken(self, mock_tiktoken: Any) -> None:
        messages = [{"role": "user", "content": "hello"}]
        assert prune_message_history(messages, 8192) == messages
