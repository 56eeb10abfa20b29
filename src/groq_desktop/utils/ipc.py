"""
IPC (Inter-Process Communication) utilities for Groq Desktop.
Manages communication between Electron frontend and Python backend.

Protocol V2: Uses binary MessagePack encoding with length-prefixed framing.
All output goes through binary_io.write_message() for consistency.

Every outbound message carries its channel in ``type`` and the owning UI
surface in ``sender`` so the main process can route it to the right window.
"""

from __future__ import annotations

from typing import Any, BinaryIO, Protocol

from groq_desktop.models.error_models import ErrorCode
from groq_desktop.models.event_models import ErrorEvent, OutboundEvent
from groq_desktop.utils.binary_io import PROTOCOL_VERSION, write_message
from groq_desktop.utils.logger import logger


class EventSink(Protocol):
    """Opaque "emit event to client" transport."""

    def send(self, channel: str, payload: dict[str, Any]) -> None: ...


class IPCManager:
    """Manages IPC communication with clean abstraction.

    Protocol V2:
        - All messages use binary MessagePack encoding
        - 7-byte header: version(2) + flags(1) + length(4)
        - Automatic compression for messages >1KB
    """

    stream: BinaryIO | None = None  # None means process stdout

    @staticmethod
    def send(message: dict[str, Any], sender: str | None = None) -> None:
        """Send a message to the Electron frontend via binary V2 IPC.

        Args:
            message: Message dictionary to send
            sender: Optional sender key for routing
        """
        payload = message.copy()
        if sender:
            payload["sender"] = sender
        write_message(payload, IPCManager.stream)

    @staticmethod
    def send_event(event: OutboundEvent, sender: str | None = None) -> None:
        """Send a validated outbound event."""
        IPCManager.send({"type": event.type, **event.to_payload()}, sender=sender)

    @staticmethod
    def send_error(message: str, code: ErrorCode | str | None = None, sender: str | None = None) -> None:
        """Send an error message to the frontend with validation.

        Args:
            message: Error message text
            code: Optional error code
            sender: Optional sender key for routing
        """
        error_code = code.value if isinstance(code, ErrorCode) else code
        IPCManager.send_event(ErrorEvent(message=message, code=error_code), sender=sender)

    @staticmethod
    def send_protocol_negotiation(supported: bool = True) -> None:
        """Answer the frontend's protocol negotiation request."""
        IPCManager.send({"type": "protocol_negotiation_response", "version": PROTOCOL_VERSION, "supported": supported})


class IPCEventSink:
    """EventSink writing framed messages for one sender.

    Write failures are logged rather than raised: a renderer that went away
    must not take the stream pipeline down with it.
    """

    def __init__(self, sender: str) -> None:
        self.sender = sender

    def send(self, channel: str, payload: dict[str, Any]) -> None:
        try:
            IPCManager.send({"type": channel, **payload}, sender=self.sender)
        except Exception as e:
            logger.error(f"Failed to deliver {channel} event: {e}", sender=self.sender)


__all__ = ["EventSink", "IPCEventSink", "IPCManager"]
