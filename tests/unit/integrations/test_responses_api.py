"""Tests for the Responses API adapter.

Tests SSE line framing, event decoding, shadow-call suppression and the
adapter's HTTP handling against an httpx mock transport.
"""

from __future__ import annotations

import json

from typing import Any
from unittest.mock import patch

import httpx
import pytest

from groq_desktop.core.accumulator import ChunkAccumulator
from groq_desktop.integrations.responses_api import (
    ResponsesAdapter,
    ResponsesEventDecoder,
    SSELineDecoder,
    is_shadow_call,
    parse_sse_line,
)
from groq_desktop.models.error_models import ProviderHTTPError, ResponseFailedError, TransientDecodeError
from groq_desktop.models.stream_models import (
    ApprovalRequested,
    ContentDelta,
    ReasoningDelta,
    StreamDone,
    StreamEvent,
    StreamStarted,
    ToolCallDelta,
    ToolExecution,
    ToolExecutionPhase,
    UsageReported,
)


def sse(*events: dict[str, Any]) -> bytes:
    body = "".join(f"event: {e.get('type', '')}\ndata: {json.dumps(e)}\n\n" for e in events)
    return (body + "data: [DONE]\n\n").encode("utf-8")


def decode_all(body: bytes, chunk_size: int, remote_labels: frozenset[str] = frozenset()) -> list[StreamEvent]:
    lines = SSELineDecoder()
    decoder = ResponsesEventDecoder("stream_1", remote_labels)
    events = decoder.start()
    for offset in range(0, len(body), chunk_size):
        for line in lines.feed(body[offset : offset + chunk_size]):
            events += decoder.decode_line(line)
    for line in lines.flush():
        events += decoder.decode_line(line)
    return events + decoder.finish()


TEXT_STREAM = sse(
    {"type": "response.created", "response": {"id": "resp_1"}},
    {"type": "response.reasoning_text.delta", "delta": "Thinking "},
    {"type": "response.output_text.delta", "delta": "Grüße "},
    {"type": "response.output_text.delta", "delta": "🌍"},
    {"type": "response.completed", "response": {"status": "completed", "usage": {"total_tokens": 9}}},
)


class TestSSEFraming:
    """Tests for SSELineDecoder and parse_sse_line."""

    def test_lines_split_across_chunks(self) -> None:
        decoder = SSELineDecoder()
        assert decoder.feed(b"data: {\"a\"") == []
        assert decoder.feed(b": 1}\r\ndata: x") == ['data: {"a": 1}']
        assert decoder.flush() == ["data: x"]

    def test_multibyte_split_is_buffered(self) -> None:
        decoder = SSELineDecoder()
        encoded = "data: é\n".encode("utf-8")
        assert decoder.feed(encoded[:7]) == []
        assert decoder.feed(encoded[7:]) == ["data: é"]

    @pytest.mark.parametrize("chunk_size", [1, 3, 17, 4096])
    def test_events_independent_of_chunking(self, chunk_size: int) -> None:
        assert decode_all(TEXT_STREAM, chunk_size) == decode_all(TEXT_STREAM, len(TEXT_STREAM))

    def test_parse_sse_line(self) -> None:
        assert parse_sse_line('data: {"type": "x"}') == {"type": "x"}
        assert parse_sse_line("data: [DONE]") is None
        assert parse_sse_line("event: response.created") is None
        assert parse_sse_line("") is None

    def test_parse_sse_line_malformed(self) -> None:
        with pytest.raises(TransientDecodeError):
            parse_sse_line("data: {not json")


class TestResponsesEventDecoder:
    """Tests for ResponsesEventDecoder."""

    def test_text_stream(self) -> None:
        events = decode_all(TEXT_STREAM, 4096)

        assert events == [
            StreamStarted(id="stream_1", role="assistant"),
            ReasoningDelta(text="Thinking "),
            ContentDelta(text="Grüße "),
            ContentDelta(text="🌍"),
            UsageReported(usage={"total_tokens": 9}),
            StreamDone(status="completed"),
        ]

    def test_malformed_line_is_skipped(self) -> None:
        body = b"data: {broken\n\n" + TEXT_STREAM
        events = decode_all(body, 4096)
        assert ContentDelta(text="🌍") in events
        assert isinstance(events[-1], StreamDone)

    def test_function_call_arguments(self) -> None:
        decoder = ResponsesEventDecoder("s")
        item = {"type": "function_call", "id": "fc_1", "call_id": "call_1", "name": "read_file", "arguments": ""}

        added = decoder.decode_event({"type": "response.output_item.added", "output_index": 1, "item": item})
        delta = decoder.decode_event(
            {"type": "response.function_call_arguments.delta", "item_id": "fc_1", "delta": '{"path"'}
        )
        done = decoder.decode_event(
            {
                "type": "response.output_item.done",
                "output_index": 1,
                "item": {**item, "arguments": '{"path": "a"}'},
            }
        )

        assert added == [ToolCallDelta(index=1, id="call_1", name="read_file", arguments="", type="function")]
        assert delta == [ToolCallDelta(index=1, arguments='{"path"')]
        assert done == [ToolCallDelta(index=1, final_arguments='{"path": "a"}')]

    def test_mcp_call_start_and_complete(self) -> None:
        decoder = ResponsesEventDecoder("s", frozenset({"gmail"}))
        item = {"type": "mcp_call", "id": "mcp_1", "name": "search", "server_label": "gmail", "arguments": ""}

        added = decoder.decode_event({"type": "response.output_item.added", "output_index": 0, "item": item})
        done = decoder.decode_event(
            {
                "type": "response.output_item.done",
                "output_index": 0,
                "item": {**item, "arguments": '{"q":"x"}', "output": "2 emails"},
            }
        )

        assert isinstance(added[0], ToolCallDelta)
        assert added[0].server_label == "gmail"
        assert isinstance(added[1], ToolExecution)
        assert added[1].phase is ToolExecutionPhase.START
        complete = [e for e in done if isinstance(e, ToolExecution)]
        assert len(complete) == 1
        assert complete[0].phase is ToolExecutionPhase.COMPLETE
        assert complete[0].output == "2 emails"
        assert complete[0].call_id == "mcp_1"

    def test_mcp_call_arguments_reach_executed_tool(self) -> None:
        decoder = ResponsesEventDecoder("s", frozenset({"gmail"}))
        acc = ChunkAccumulator("s")
        item = {"type": "mcp_call", "id": "mcp_1", "name": "search", "server_label": "gmail", "arguments": ""}
        stream = [
            {"type": "response.output_item.added", "output_index": 0, "item": item},
            {"type": "response.mcp_call_arguments.delta", "item_id": "mcp_1", "delta": '{"q":"x"}'},
            {
                "type": "response.output_item.done",
                "output_index": 0,
                "item": {**item, "arguments": '{"q":"x"}', "output": "2 emails"},
            },
        ]

        with patch("groq_desktop.core.accumulator.logger") as mock_logger:
            for data in stream:
                for event in decoder.decode_event(data):
                    acc.apply(event)

        mock_logger.warning.assert_not_called()
        assert acc.tool_call_list()[0].function.arguments == '{"q":"x"}'
        tool = acc.executed_tool_list()[0]
        assert (tool.arguments, tool.output) == ('{"q":"x"}', "2 emails")

    def test_shadow_function_call_suppressed(self) -> None:
        decoder = ResponsesEventDecoder("s", frozenset({"gmail"}))
        shadow = {"type": "function_call", "id": "fc_9", "call_id": "call_9", "name": "gmail__search"}

        events = decoder.decode_event({"type": "response.output_item.added", "output_index": 2, "item": shadow})
        events += decoder.decode_event(
            {"type": "response.function_call_arguments.delta", "item_id": "fc_9", "delta": "{}"}
        )
        events += decoder.decode_event(
            {"type": "response.output_item.done", "output_index": 2, "item": {**shadow, "arguments": "{}"}}
        )

        assert events == []

    def test_unknown_prefix_is_not_shadow(self) -> None:
        assert is_shadow_call("gmail__search", frozenset({"gmail"}))
        assert not is_shadow_call("slack__post", frozenset({"gmail"}))
        assert not is_shadow_call("search", frozenset({"gmail"}))
        assert not is_shadow_call(None, frozenset({"gmail"}))

    def test_approval_request_once_per_id(self) -> None:
        decoder = ResponsesEventDecoder("s")
        item = {
            "type": "mcp_approval_request",
            "id": "apr_1",
            "name": "send_email",
            "server_label": "gmail",
            "arguments": "{}",
        }

        first = decoder.decode_event({"type": "response.output_item.added", "output_index": 0, "item": item})
        second = decoder.decode_event({"type": "response.output_item.done", "output_index": 0, "item": item})

        assert first == [ApprovalRequested(id="apr_1", name="send_email", server_label="gmail", arguments="{}")]
        assert second == []

    def test_failure_raised_at_finish(self) -> None:
        decoder = ResponsesEventDecoder("s")
        decoder.decode_event({"type": "response.output_text.delta", "delta": "partial"})
        decoder.decode_event(
            {"type": "response.failed", "response": {"error": {"message": "model overloaded", "code": "overloaded"}}}
        )

        with pytest.raises(ResponseFailedError, match="model overloaded") as exc_info:
            decoder.finish()
        assert exc_info.value.error_code == "overloaded"

    def test_error_event(self) -> None:
        decoder = ResponsesEventDecoder("s")
        decoder.decode_event(
            {"type": "error", "error": {"message": "Tool call validation failed", "code": "tool_use_failed"}}
        )
        with pytest.raises(ResponseFailedError) as exc_info:
            decoder.finish()
        assert exc_info.value.error_code == "tool_use_failed"


class TestResponsesAdapter:
    """Tests for ResponsesAdapter.stream over httpx.MockTransport."""

    @pytest.mark.asyncio
    async def test_posts_and_decodes(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=TEXT_STREAM, headers={"content-type": "text/event-stream"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            adapter = ResponsesAdapter(client, "https://api.groq.com/openai/v1/", "gsk_test")
            attached: list[Any] = []
            events = [e async for e in adapter.stream({"model": "m"}, "stream_1", attach_transport=attached.append)]

        assert str(requests[0].url) == "https://api.groq.com/openai/v1/responses"
        assert requests[0].headers["authorization"] == "Bearer gsk_test"
        assert json.loads(requests[0].content) == {"model": "m"}
        assert len(attached) == 1
        assert events[0] == StreamStarted(id="stream_1", role="assistant")
        assert events[-1] == StreamDone(status="completed")

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, text='{"error": "invalid key"}')

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            adapter = ResponsesAdapter(client, "https://api.groq.com/openai/v1", "bad")
            with pytest.raises(ProviderHTTPError) as exc_info:
                async for _ in adapter.stream({}, "s"):
                    pass

        assert exc_info.value.status_code == 401
        assert str(exc_info.value) == 'API Error 401: {"error": "invalid key"}'
