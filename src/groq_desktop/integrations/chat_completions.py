"""
Chat Completions protocol adapter.

Decodes the chunked delta stream (``chat.completions.create(stream=True)``)
into the internal stream event vocabulary. Chunks may be SDK objects or plain
mappings; Groq-specific fields (``reasoning``, ``executed_tools``,
``x_groq.usage``) are read from the dumped mapping.
"""

from __future__ import annotations

import asyncio
import inspect

from collections.abc import AsyncIterator, Callable
from enum import Enum
from typing import Any

from openai import AsyncOpenAI

from groq_desktop.core.constants import ERROR_STREAM_ENDED
from groq_desktop.models.error_models import StreamEndedUnexpectedly
from groq_desktop.models.stream_models import (
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


class AdapterState(str, Enum):
    AWAITING_FIRST = "awaiting_first"
    STREAMING = "streaming"
    DONE = "done"
    ERRORED = "errored"
    CANCELLED = "cancelled"


def chunk_to_dict(chunk: Any) -> dict[str, Any]:
    """Plain mapping view of a chunk (SDK models keep unknown provider fields)."""
    if isinstance(chunk, dict):
        return chunk
    if hasattr(chunk, "model_dump"):
        dumped: dict[str, Any] = chunk.model_dump()
        return dumped
    return dict(vars(chunk))


class ChatCompletionsDecoder:
    """Per-attempt chunk decoder.

    Executed tools use a two-phase protocol keyed by index: the first sighting
    of an index is the start phase, any later sighting is the complete phase.
    """

    def __init__(self) -> None:
        self.state = AdapterState.AWAITING_FIRST
        self._executed_indices: set[int] = set()

    def decode(self, chunk: Any) -> list[StreamEvent]:
        data = chunk_to_dict(chunk)
        events: list[StreamEvent] = []

        x_groq = data.get("x_groq") or {}
        usage = x_groq.get("usage") or data.get("usage")

        choices = data.get("choices") or []
        if not choices:
            # Usage-only trailer chunk
            if usage:
                events.append(UsageReported(usage=dict(usage)))
            return events

        choice = choices[0]
        delta = choice.get("delta") or {}

        if self.state is AdapterState.AWAITING_FIRST:
            events.append(StreamStarted(id=str(data.get("id") or ""), role=delta.get("role") or "assistant"))
            self.state = AdapterState.STREAMING

        if usage:
            events.append(UsageReported(usage=dict(usage)))

        content = delta.get("content")
        if content:
            events.append(ContentDelta(text=content))

        reasoning = delta.get("reasoning") or delta.get("reasoning_content")
        if reasoning:
            events.append(ReasoningDelta(text=reasoning))

        for executed in delta.get("executed_tools") or []:
            events.append(self._decode_executed_tool(executed))

        for tool_call in delta.get("tool_calls") or []:
            function = tool_call.get("function") or {}
            events.append(
                ToolCallDelta(
                    index=int(tool_call.get("index") or 0),
                    id=tool_call.get("id"),
                    name=function.get("name"),
                    arguments=function.get("arguments") or "",
                    type=tool_call.get("type"),
                )
            )

        finish_reason = choice.get("finish_reason")
        if finish_reason:
            events.append(StreamDone(finish_reason=finish_reason))
            self.state = AdapterState.DONE

        return events

    def _decode_executed_tool(self, executed: dict[str, Any]) -> ToolExecution:
        index = int(executed.get("index") or 0)
        phase = ToolExecutionPhase.COMPLETE if index in self._executed_indices else ToolExecutionPhase.START
        self._executed_indices.add(index)
        return ToolExecution(
            phase=phase,
            index=index,
            type=executed.get("type"),
            name=executed.get("name"),
            arguments=executed.get("arguments"),
            output=executed.get("output"),
            search_results=executed.get("search_results"),
        )


async def _close_stream(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if close is None:
        return
    result = close()
    if inspect.isawaitable(result):
        await result


class ChatCompletionsAdapter:
    """Opens a streaming chat completion and yields decoded stream events."""

    def __init__(self, client: AsyncOpenAI) -> None:
        self.client = client
        self.decoder: ChatCompletionsDecoder | None = None

    async def stream(
        self,
        params: dict[str, Any],
        stream_id: str,
        attach_transport: TransportCallback | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield events until a chunk carries ``finish_reason``.

        Raises:
            StreamEndedUnexpectedly: The stream was exhausted without a finish reason
        """
        stream = await self.client.chat.completions.create(**params)
        if attach_transport is not None:
            attach_transport(stream)

        decoder = self.decoder = ChatCompletionsDecoder()
        chunks = 0
        try:
            async for chunk in stream:
                chunks += 1
                logger.throttled_debug("chat_chunk", f"Chat chunk #{chunks}", stream_id=stream_id)
                for event in decoder.decode(chunk):
                    yield event
                if decoder.state is AdapterState.DONE:
                    return
        except (asyncio.CancelledError, GeneratorExit):
            # Consumer stopped iterating; after the finish chunk that is a normal close
            if decoder.state is not AdapterState.DONE:
                decoder.state = AdapterState.CANCELLED
            raise
        except Exception:
            decoder.state = AdapterState.ERRORED
            raise
        finally:
            await _close_stream(stream)

        decoder.state = AdapterState.ERRORED
        raise StreamEndedUnexpectedly(ERROR_STREAM_ENDED)
