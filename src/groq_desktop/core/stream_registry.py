"""Stream session registry.

Every ``chat_stream`` request opens a StreamSession. The registry maps stream
ids and sender keys to sessions so a ``stop_stream`` request can reach the
right one, and so a new stream from the same sender supersedes the old one.

A session delivers exactly one terminal event (``complete``, ``error`` or
``cancelled``); after that, and after cancellation, every emit is dropped.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import secrets
import time

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

from groq_desktop.core.summarizer import ReasoningSummarizer
from groq_desktop.models.error_models import StreamCancelled
from groq_desktop.models.event_models import CancelledEvent, OutboundEvent
from groq_desktop.utils.ipc import EventSink
from groq_desktop.utils.logger import logger


def generate_stream_id() -> str:
    """``stream_<epoch ms>_<9 hex chars>``."""
    return f"stream_{int(time.time() * 1000)}_{secrets.token_hex(5)[:9]}"


def _release(handle: Any) -> None:
    """Close a provider transport handle (sync or async ``close``/``aclose``)."""
    closer = getattr(handle, "aclose", None) or getattr(handle, "close", None)
    if closer is None:
        return
    try:
        result = closer()
    except Exception as e:
        logger.debug(f"Transport close failed: {e}")
        return
    if inspect.isawaitable(result):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop to close transport on")
            return
        task = loop.create_task(_await_close(result))
        _closing_tasks.add(task)
        task.add_done_callback(_closing_tasks.discard)


_closing_tasks: set[asyncio.Task[None]] = set()


async def _await_close(result: Any) -> None:
    try:
        await result
    except Exception as e:
        logger.debug(f"Transport close failed: {e}")


@dataclass
class StreamSession:
    """State for one in-flight stream.

    Attributes:
        id: Stream id, echoed in ``cancelled`` and summary events
        sender_key: UI surface that owns the stream
        sink: Where outbound events go
        cancelled: Set once by ``cancel()``
        closed: Set once the terminal event is delivered
        transport_handle: Live provider transport for the current attempt
        summarizer: Reasoning summarizer of the current attempt
        task: Task running the stream pipeline
        summary_counter: Summary index source, monotonic across attempts
    """

    sender_key: str
    sink: EventSink
    id: str = field(default_factory=generate_stream_id)
    cancelled: bool = False
    closed: bool = False
    transport_handle: Any = None
    summarizer: ReasoningSummarizer | None = None
    task: asyncio.Task[Any] | None = None
    summary_counter: Iterator[int] = field(default_factory=lambda: itertools.count(1))

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.closed)

    def emit(self, event: OutboundEvent) -> None:
        """Deliver a non-terminal event; dropped once cancelled or closed."""
        if not self.active:
            return
        self.sink.send(event.type, event.to_payload())

    def finish(self, event: OutboundEvent) -> bool:
        """Deliver the terminal event. Returns False when one was already sent.

        A cancelled session always terminates with ``cancelled``.
        """
        if self.closed:
            return False
        self.closed = True
        self.stop_summarizer()
        self.release_transport()
        if self.cancelled and not isinstance(event, CancelledEvent):
            logger.debug(f"Replacing terminal {event.type} with cancelled", stream_id=self.id)
            event = CancelledEvent(stream_id=self.id)
        self.sink.send(event.type, event.to_payload())
        return True

    def cancel(self) -> bool:
        """Cancel the stream. Idempotent; returns True on the first call.

        The ``cancelled`` event is delivered immediately, then the transport is
        released and the pipeline task is cancelled.
        """
        if self.cancelled:
            return False
        self.cancelled = True
        logger.info("Stream cancelled", stream_id=self.id, sender=self.sender_key)
        self.stop_summarizer()
        self.finish(CancelledEvent(stream_id=self.id))
        self.release_transport()
        if self.task is not None and not self.task.done():
            self.task.cancel()
        return True

    def attach_transport(self, handle: Any) -> None:
        """Register the current attempt's transport; closed at once if already cancelled."""
        self.transport_handle = handle
        if self.cancelled:
            self.release_transport()

    def release_transport(self) -> None:
        handle, self.transport_handle = self.transport_handle, None
        if handle is not None:
            _release(handle)

    def attach_summarizer(self, summarizer: ReasoningSummarizer) -> None:
        self.stop_summarizer()
        self.summarizer = summarizer
        if self.cancelled:
            summarizer.stop()

    def stop_summarizer(self) -> None:
        if self.summarizer is not None:
            self.summarizer.stop()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise StreamCancelled(self.id)


class StreamRegistry:
    """Active sessions by stream id and by sender key."""

    def __init__(self) -> None:
        self._by_id: dict[str, StreamSession] = {}
        self._by_sender: dict[str, StreamSession] = {}

    def open(self, sender_key: str, sink: EventSink) -> StreamSession:
        """Open a session; any stream already running for the sender is cancelled."""
        previous = self._by_sender.get(sender_key)
        if previous is not None:
            logger.info("Superseding active stream", stream_id=previous.id, sender=sender_key)
            previous.cancel()
            self.close(previous)

        session = StreamSession(sender_key=sender_key, sink=sink)
        self._by_id[session.id] = session
        self._by_sender[sender_key] = session
        logger.debug("Stream session opened", stream_id=session.id, sender=sender_key)
        return session

    def get(self, stream_id: str) -> StreamSession | None:
        return self._by_id.get(stream_id)

    def cancel(self, stream_id: str) -> bool:
        """Cancel one stream by id; False when unknown or already cancelled."""
        session = self._by_id.get(stream_id)
        if session is None:
            logger.debug("Cancel requested for unknown stream", stream_id=stream_id)
            return False
        cancelled = session.cancel()
        self.close(session)
        return cancelled

    def cancel_all(self, sender_key: str | None = None) -> int:
        """Cancel every stream, or every stream of one sender. Returns the count."""
        sessions = [s for s in self._by_id.values() if sender_key is None or s.sender_key == sender_key]
        cancelled = 0
        for session in sessions:
            cancelled += session.cancel()
            self.close(session)
        return cancelled

    def close(self, session: StreamSession) -> None:
        """Forget a finished session."""
        self._by_id.pop(session.id, None)
        if self._by_sender.get(session.sender_key) is session:
            del self._by_sender[session.sender_key]

    def active_count(self) -> int:
        return len(self._by_id)
