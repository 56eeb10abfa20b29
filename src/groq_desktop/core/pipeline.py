"""
Stream pipeline - adapter events -> accumulator -> session.

One pipeline serves one session. Each attempt opens the protocol adapter,
feeds every decoded event through a fresh ChunkAccumulator and forwards the
resulting outbound events to the session. The RetryController wraps attempts;
whatever happens, the session receives exactly one terminal event.
"""

from __future__ import annotations

import asyncio
import contextlib
import time

from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

import httpx
import openai

from groq_desktop.core.accumulator import ChunkAccumulator
from groq_desktop.core.completion import build_completion_record
from groq_desktop.core.constants import ERROR_COMPLETION_FAILED, Settings
from groq_desktop.core.message_utils import content_to_text
from groq_desktop.core.retry import RetryController, error_message
from groq_desktop.core.stream_registry import StreamSession
from groq_desktop.core.summarizer import ReasoningSummarizer, SummarizeFn
from groq_desktop.models.error_models import (
    CapabilityError,
    ConfigError,
    ErrorCode,
    RetriesExhaustedError,
    StreamCancelled,
    StreamEndedUnexpectedly,
    StreamError,
)
from groq_desktop.models.event_models import CancelledEvent, CompleteEvent, ErrorEvent
from groq_desktop.models.stream_models import CompletionRecord, ContentDelta, ReasoningDelta, StreamEvent
from groq_desktop.utils.logger import logger


class ProtocolAdapter(Protocol):
    """Chat Completions or Responses adapter."""

    def stream(
        self,
        params: dict[str, Any],
        stream_id: str,
        attach_transport: Callable[[Any], None] | None = None,
    ) -> AsyncIterator[StreamEvent]: ...


#: Errors whose own message is shown to the user verbatim.
VERBATIM_ERRORS = (ConfigError, CapabilityError, StreamEndedUnexpectedly, RetriesExhaustedError)


def error_event_for(exc: BaseException) -> ErrorEvent:
    """Terminal ``error`` event for a failure."""
    if isinstance(exc, VERBATIM_ERRORS):
        return ErrorEvent(message=exc.message, code=exc.code.value)
    if isinstance(exc, StreamError):
        code = exc.code
    elif isinstance(exc, (openai.APIError, httpx.HTTPError)):
        code = ErrorCode.PROVIDER_ERROR
    else:
        code = ErrorCode.INTERNAL_UNEXPECTED
    return ErrorEvent(message=ERROR_COMPLETION_FAILED.format(error=error_message(exc)), code=code.value)


def last_user_text(messages: list[dict[str, Any]]) -> str:
    for message in reversed(messages):
        if isinstance(message, dict) and message.get("role") == "user":
            return content_to_text(message.get("content"))
    return ""


class StreamPipeline:
    """Runs a request for one session until its terminal event.

    Args:
        session: Owning session
        adapter: Protocol adapter chosen for this request
        settings: Effective settings of the request
        summarize: Auxiliary-model summary call; None disables summaries
        user_input: Last user message text, for the completion log line
    """

    def __init__(
        self,
        session: StreamSession,
        adapter: ProtocolAdapter,
        settings: Settings,
        summarize: SummarizeFn | None = None,
        user_input: str = "",
    ) -> None:
        self.session = session
        self.adapter = adapter
        self.settings = settings
        self.summarize = summarize
        self.user_input = user_input
        self.retry = RetryController(session, enabled=settings.retry_tool_failures)

    @property
    def summaries_enabled(self) -> bool:
        return self.summarize is not None and not self.settings.disable_thinking_summaries

    async def run(self, params: dict[str, Any]) -> CompletionRecord | None:
        """Drive the request to completion, failure or cancellation.

        Returns the completion record on success, None otherwise. Task
        cancellation is re-raised after the ``cancelled`` event is sent.
        """
        started_at = time.monotonic()
        try:
            record = await self.retry.run(self._attempt, params)
        except StreamCancelled:
            self.session.finish(CancelledEvent(stream_id=self.session.id))
            return None
        except asyncio.CancelledError:
            self.session.finish(CancelledEvent(stream_id=self.session.id))
            raise
        except Exception as e:
            event = error_event_for(e)
            logger.error(
                f"Stream failed: {event.message}",
                exc_info=not isinstance(e, StreamError),
                stream_id=self.session.id,
                error_code=event.code,
            )
            self.session.finish(event)
            return None

        if self.session.finish(CompleteEvent.from_record(record)):
            usage = record.usage or {}
            logger.log_stream_completion(
                user_input=self.user_input,
                response=record.content,
                finish_reason=record.finish_reason,
                tool_calls=[call.function.name for call in record.tool_calls or []],
                duration_ms=(time.monotonic() - started_at) * 1000,
                tokens_used=usage.get("total_tokens"),
                executed_tools=len(record.executed_tools or []),
            )
        return record

    async def _attempt(self, params: dict[str, Any]) -> CompletionRecord:
        """One provider invocation.

        Raises:
            StreamCancelled: The session was cancelled mid-stream
        """
        session = self.session
        accumulator = ChunkAccumulator(session.id)
        summarizer: ReasoningSummarizer | None = None

        try:
            async with contextlib.aclosing(
                self.adapter.stream(params, session.id, attach_transport=session.attach_transport)
            ) as events:
                async for event in events:
                    session.raise_if_cancelled()

                    # Summaries only cover reasoning that precedes the answer
                    if (
                        isinstance(event, ReasoningDelta)
                        and summarizer is None
                        and self.summaries_enabled
                        and not accumulator.content
                    ):
                        summarizer = self._arm_summarizer(accumulator)
                    elif isinstance(event, ContentDelta) and summarizer is not None and event.text:
                        summarizer.stop()

                    for outbound in accumulator.apply(event):
                        session.emit(outbound)

                    if accumulator.done:
                        break
        finally:
            if summarizer is not None:
                summarizer.stop()
            session.release_transport()

        session.raise_if_cancelled()
        return build_completion_record(accumulator)

    def _arm_summarizer(self, accumulator: ChunkAccumulator) -> ReasoningSummarizer:
        assert self.summarize is not None
        summarizer = ReasoningSummarizer(
            stream_id=self.session.id,
            reasoning_source=lambda: accumulator.reasoning,
            emit=self.session.emit,
            summarize=self.summarize,
            counter=self.session.summary_counter,
        )
        self.session.attach_summarizer(summarizer)
        summarizer.start()
        return summarizer
