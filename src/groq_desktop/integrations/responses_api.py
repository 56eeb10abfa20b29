"""
Responses API protocol adapter (server-sent events).

The request is POSTed with httpx and the SSE body is decoded incrementally:
bytes -> complete lines -> ``data: <json>`` payloads -> internal stream events.
A provider failure (``error`` / ``response.failed``) is remembered and only
raised once the stream ends, so content already emitted stays visible.
"""

from __future__ import annotations

import codecs
import json

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx

from groq_desktop.core.constants import (
    ERROR_RESPONSE_FAILED,
    RESPONSES_API_PATH,
    RESPONSES_BETA_HEADER,
    SHADOW_TOOL_SEPARATOR,
)
from groq_desktop.models.error_models import (
    ProviderHTTPError,
    ResponseFailedError,
    ToolSchemaWarning,
    TransientDecodeError,
)
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
from groq_desktop.utils.logger import logger

TransportCallback = Callable[[Any], None]

SSE_DATA_PREFIX = "data: "
SSE_DONE_MARKER = "[DONE]"

ITEM_MCP_CALL = "mcp_call"
ITEM_FUNCTION_CALL = "function_call"
ITEM_MCP_APPROVAL_REQUEST = "mcp_approval_request"


class SSELineDecoder:
    """Incremental bytes -> lines decoder.

    Multi-byte UTF-8 sequences and lines split across reads are buffered until
    complete, so the produced lines do not depend on network chunking.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> list[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer.rstrip("\r"), ""
        return [rest] if rest else []


def parse_sse_line(line: str) -> dict[str, Any] | None:
    """JSON payload of a ``data:`` line; None for other lines and ``[DONE]``.

    Raises:
        TransientDecodeError: The payload is not a JSON object
    """
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX) :]
    if payload.strip() == SSE_DONE_MARKER:
        return None
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise TransientDecodeError(f"Malformed SSE JSON: {e}", line=line) from e
    if not isinstance(data, dict):
        raise TransientDecodeError("SSE payload is not an object", line=line)
    return data


def is_shadow_call(name: str | None, remote_labels: frozenset[str]) -> bool:
    """Whether a function call name looks like ``<remote label>__<tool>``.

    This is a naming convention of the provider, not a protocol guarantee.
    """
    if not name or SHADOW_TOOL_SEPARATOR not in name:
        return False
    prefix = name.split(SHADOW_TOOL_SEPARATOR, 1)[0]
    return prefix in remote_labels


def _error_message(error: Any) -> tuple[str, str | None]:
    if isinstance(error, dict):
        return str(error.get("message") or ERROR_RESPONSE_FAILED), error.get("code")
    if error:
        return str(error), None
    return ERROR_RESPONSE_FAILED, None


class ResponsesEventDecoder:
    """Per-attempt decoder for Responses SSE events."""

    def __init__(self, stream_id: str, remote_labels: frozenset[str] = frozenset()) -> None:
        self.stream_id = stream_id
        self.remote_labels = remote_labels
        self.status: str | None = None
        self.failure: ResponseFailedError | None = None
        self._item_index: dict[str, int] = {}
        self._shadow_ids: set[str] = set()
        self._approvals_seen: set[str] = set()
        self._started = False

    def start(self) -> list[StreamEvent]:
        if self._started:
            return []
        self._started = True
        return [StreamStarted(id=self.stream_id, role="assistant")]

    def decode_line(self, line: str) -> list[StreamEvent]:
        """Decode one SSE line; malformed payloads are logged and dropped."""
        try:
            data = parse_sse_line(line)
        except TransientDecodeError as e:
            logger.warning(e.message, error_code=e.code.value, line=e.line[:200])
            return []
        if data is None:
            return []
        return self.decode_event(data)

    def decode_event(self, data: dict[str, Any]) -> list[StreamEvent]:
        event_type = data.get("type") or ""

        if event_type == "error":
            message, code = _error_message(data.get("error") or data.get("message"))
            self._fail(message, code)
            return []

        if event_type == "response.failed":
            response = data.get("response") or {}
            message, code = _error_message(response.get("error"))
            self._fail(message, code)
            return []

        if event_type == "response.output_text.delta":
            return [ContentDelta(text=data.get("delta") or "")] if data.get("delta") else []

        if event_type == "response.reasoning_text.delta":
            return [ReasoningDelta(text=data.get("delta") or "")] if data.get("delta") else []

        if event_type == "response.output_item.added":
            return self._item_added(data.get("item") or {}, int(data.get("output_index") or 0))

        if event_type == "response.output_item.done":
            return self._item_done(data.get("item") or {}, int(data.get("output_index") or 0))

        if event_type.endswith("_arguments.delta"):
            return self._arguments_delta(str(data.get("item_id") or ""), data.get("delta") or "")

        if event_type in ("response.completed", "response.done"):
            response = data.get("response") or {}
            self.status = response.get("status")
            usage = response.get("usage")
            return [UsageReported(usage=dict(usage))] if usage else []

        logger.throttled_debug(event_type or "unknown", f"Ignoring Responses event {event_type}")
        return []

    def finish(self) -> list[StreamEvent]:
        """Events at stream end.

        Raises:
            ResponseFailedError: The provider reported a failure during the stream
        """
        if self.failure is not None:
            raise self.failure
        return [StreamDone(status=self.status)]

    def _fail(self, message: str, code: str | None) -> None:
        logger.error(f"Responses stream reported failure: {message}", provider_code=code)
        if self.failure is None:
            self.failure = ResponseFailedError(message, error_code=code)

    def _approval(self, item: dict[str, Any]) -> list[StreamEvent]:
        approval_id = str(item.get("id") or "")
        if not approval_id or approval_id in self._approvals_seen:
            return []
        self._approvals_seen.add(approval_id)
        return [
            ApprovalRequested(
                id=approval_id,
                name=item.get("name") or "",
                server_label=item.get("server_label"),
                arguments=item.get("arguments") or "",
            )
        ]

    def _register_call(self, item: dict[str, Any], index: int) -> list[StreamEvent] | None:
        """Track a tool call item; None when it is a suppressed shadow call."""
        item_id = str(item.get("id") or "")
        item_type = item.get("type")

        if item_id in self._shadow_ids:
            return None
        if item_type == ITEM_FUNCTION_CALL and is_shadow_call(item.get("name"), self.remote_labels):
            self._shadow_ids.add(item_id)
            logger.debug(f"Suppressing shadow function call {item.get('name')}", item_id=item_id)
            return None
        if item_id in self._item_index:
            return []

        self._item_index[item_id] = index
        call_id = item.get("call_id") if item_type == ITEM_FUNCTION_CALL else None
        server_label = item.get("server_label") if item_type == ITEM_MCP_CALL else None
        events: list[StreamEvent] = [
            ToolCallDelta(
                index=index,
                id=call_id or item_id or None,
                name=item.get("name"),
                arguments=item.get("arguments") or "",
                type="function",
                server_label=server_label,
            )
        ]
        if item_type == ITEM_MCP_CALL:
            events.append(
                ToolExecution(
                    phase=ToolExecutionPhase.START,
                    index=index,
                    type="mcp",
                    name=item.get("name"),
                    arguments=item.get("arguments") or "",
                    server_label=server_label,
                )
            )
        return events

    def _item_added(self, item: dict[str, Any], index: int) -> list[StreamEvent]:
        item_type = item.get("type")
        if item_type == ITEM_MCP_APPROVAL_REQUEST:
            return self._approval(item)
        if item_type in (ITEM_MCP_CALL, ITEM_FUNCTION_CALL):
            return self._register_call(item, index) or []
        return []

    def _item_done(self, item: dict[str, Any], index: int) -> list[StreamEvent]:
        item_type = item.get("type")
        if item_type == ITEM_MCP_APPROVAL_REQUEST:
            return self._approval(item)
        if item_type not in (ITEM_MCP_CALL, ITEM_FUNCTION_CALL):
            return []

        registered = self._register_call(item, index)
        if registered is None:
            return []

        item_id = str(item.get("id") or "")
        tool_index = self._item_index[item_id]
        events = list(registered)
        if item.get("arguments"):
            events.append(ToolCallDelta(index=tool_index, final_arguments=item["arguments"]))

        output = item.get("output")
        if item_type == ITEM_MCP_CALL and output:
            events.append(
                ToolExecution(
                    phase=ToolExecutionPhase.COMPLETE,
                    index=tool_index,
                    type="mcp",
                    name=item.get("name"),
                    arguments=item.get("arguments"),
                    output=output,
                    server_label=item.get("server_label"),
                    call_id=item_id,
                )
            )
        return events

    def _arguments_delta(self, item_id: str, delta: str) -> list[StreamEvent]:
        if item_id in self._shadow_ids:
            return []
        index = self._item_index.get(item_id)
        if index is None:
            logger.warning(
                f"Argument delta for unknown tool call {item_id}",
                warning_category=ToolSchemaWarning.__name__,
            )
            return []
        return [ToolCallDelta(index=index, arguments=delta)] if delta else []


class ResponsesAdapter:
    """POSTs to ``{base_url}/responses`` and yields decoded stream events."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_key: str,
        remote_labels: frozenset[str] = frozenset(),
    ) -> None:
        self.http_client = http_client
        self.url = f"{base_url.rstrip('/')}/{RESPONSES_API_PATH}"
        self.api_key = api_key
        self.remote_labels = remote_labels

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
            **RESPONSES_BETA_HEADER,
        }

    async def stream(
        self,
        params: dict[str, Any],
        stream_id: str,
        attach_transport: TransportCallback | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield events for one Responses request.

        Raises:
            ProviderHTTPError: Non-2xx answer
            ResponseFailedError: The stream reported ``error`` / ``response.failed``
        """
        async with self.http_client.stream("POST", self.url, json=params, headers=self._headers()) as response:
            if attach_transport is not None:
                attach_transport(response)

            if not response.is_success:
                body = (await response.aread()).decode("utf-8", errors="replace")
                raise ProviderHTTPError(response.status_code, body)

            decoder = ResponsesEventDecoder(stream_id, self.remote_labels)
            lines = SSELineDecoder()

            for event in decoder.start():
                yield event

            async for chunk in response.aiter_bytes():
                for line in lines.feed(chunk):
                    for event in decoder.decode_line(line):
                        yield event

            for line in lines.flush():
                for event in decoder.decode_line(line):
                    yield event

            for event in decoder.finish():
                yield event
