"""Tests for stream sessions and the session registry."""

from __future__ import annotations

import asyncio
import re

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from groq_desktop.core.stream_registry import StreamRegistry, StreamSession, generate_stream_id
from groq_desktop.models.error_models import StreamCancelled
from groq_desktop.models.event_models import CompleteEvent, ContentDeltaEvent, ErrorEvent

SentEvents = Callable[[], list[tuple[str, dict[str, Any]]]]


def test_generate_stream_id_format() -> None:
    stream_id = generate_stream_id()
    assert re.fullmatch(r"stream_\d{13,}_[0-9a-f]{9}", stream_id)
    assert generate_stream_id() != stream_id


class TestStreamSession:
    """Tests for terminal-event and cancellation rules."""

    def test_emit_while_active(self, session: StreamSession, sent_events: SentEvents) -> None:
        session.emit(ContentDeltaEvent(text="hi"))
        assert sent_events() == [("content-delta", {"text": "hi"})]

    def test_single_terminal_event(self, session: StreamSession, sent_events: SentEvents) -> None:
        assert session.finish(CompleteEvent(content="done", finish_reason="stop"))
        assert not session.finish(ErrorEvent(message="late"))

        channels = [channel for channel, _ in sent_events()]
        assert channels == ["complete"]

    def test_emit_dropped_after_finish(self, session: StreamSession, sent_events: SentEvents) -> None:
        session.finish(CompleteEvent(content="", finish_reason="stop"))
        session.emit(ContentDeltaEvent(text="late"))
        assert [channel for channel, _ in sent_events()] == ["complete"]

    def test_cancel_sends_cancelled_once(self, session: StreamSession, sent_events: SentEvents) -> None:
        assert session.cancel()
        assert not session.cancel()

        assert sent_events() == [("cancelled", {"streamId": session.id})]
        assert session.cancelled and session.closed

    def test_no_events_after_cancel(self, session: StreamSession, sent_events: SentEvents) -> None:
        session.cancel()
        session.emit(ContentDeltaEvent(text="late"))
        assert not session.finish(CompleteEvent(content="late", finish_reason="stop"))
        assert len(sent_events()) == 1

    def test_raise_if_cancelled(self, session: StreamSession) -> None:
        session.raise_if_cancelled()
        session.cancel()
        with pytest.raises(StreamCancelled):
            session.raise_if_cancelled()

    def test_cancel_releases_sync_transport(self, session: StreamSession) -> None:
        handle = Mock(spec=["close"])
        session.attach_transport(handle)

        session.cancel()

        handle.close.assert_called_once()
        assert session.transport_handle is None

    @pytest.mark.asyncio
    async def test_cancel_releases_async_transport(self, session: StreamSession) -> None:
        handle = Mock(spec=["aclose"])
        handle.aclose = AsyncMock()
        session.attach_transport(handle)

        session.cancel()
        await asyncio.sleep(0)

        handle.aclose.assert_awaited_once()

    def test_attach_after_cancel_releases_immediately(self, session: StreamSession) -> None:
        session.cancel()
        handle = Mock(spec=["close"])

        session.attach_transport(handle)

        handle.close.assert_called_once()

    def test_finish_stops_summarizer(self, session: StreamSession) -> None:
        summarizer = Mock()
        session.attach_summarizer(summarizer)

        session.finish(CompleteEvent(content="", finish_reason="stop"))

        summarizer.stop.assert_called()

    @pytest.mark.asyncio
    async def test_cancel_cancels_task(self, session: StreamSession) -> None:
        session.task = asyncio.get_running_loop().create_task(asyncio.sleep(10))

        session.cancel()

        with pytest.raises(asyncio.CancelledError):
            await session.task


class TestStreamRegistry:
    def test_open_and_lookup(self, event_sink: Mock) -> None:
        registry = StreamRegistry()
        session = registry.open("main", event_sink)

        assert registry.get(session.id) is session
        assert registry.active_count() == 1

    def test_new_stream_supersedes_sender(self, event_sink: Mock, sent_events: SentEvents) -> None:
        registry = StreamRegistry()
        first = registry.open("main", event_sink)
        second = registry.open("main", event_sink)

        assert first.cancelled
        assert not second.cancelled
        assert registry.get(first.id) is None
        assert registry.get(second.id) is second
        assert sent_events() == [("cancelled", {"streamId": first.id})]

    def test_senders_are_independent(self, event_sink: Mock) -> None:
        registry = StreamRegistry()
        main = registry.open("main", event_sink)
        popup = registry.open("popup", event_sink)

        assert not main.cancelled
        assert registry.active_count() == 2
        assert registry.get(popup.id) is popup

    def test_cancel_by_id(self, event_sink: Mock) -> None:
        registry = StreamRegistry()
        session = registry.open("main", event_sink)

        assert registry.cancel(session.id)
        assert not registry.cancel(session.id)
        assert registry.active_count() == 0

    def test_cancel_unknown(self) -> None:
        assert not StreamRegistry().cancel("stream_0_deadbeef0")

    def test_cancel_all_for_sender(self, event_sink: Mock) -> None:
        registry = StreamRegistry()
        main = registry.open("main", event_sink)
        popup = registry.open("popup", event_sink)

        assert registry.cancel_all("main") == 1
        assert main.cancelled
        assert not popup.cancelled

        assert registry.cancel_all() == 1
        assert registry.active_count() == 0

    def test_close_keeps_newer_sender_session(self, event_sink: Mock) -> None:
        registry = StreamRegistry()
        first = registry.open("main", event_sink)
        second = registry.open("main", event_sink)

        registry.close(first)
        third = registry.open("main", event_sink)

        assert second.cancelled
        assert not third.cancelled
