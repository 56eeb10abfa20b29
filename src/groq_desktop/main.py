"""
Groq Desktop - streaming chat orchestrator process.

Main entry point: reads length-prefixed MessagePack requests from stdin and
writes stream events to stdout. Streams run as tasks, so a ``stop_stream``
request is handled while the stream it targets is still running.
"""

from __future__ import annotations

import asyncio

from typing import Any

from groq_desktop.app.bootstrap import initialize_application
from groq_desktop.app.runtime import settings_for_request, start_stream, stop_stream
from groq_desktop.app.state import AppState
from groq_desktop.models.error_models import StreamError
from groq_desktop.utils.binary_io import PROTOCOL_VERSION, BinaryIOError, read_message
from groq_desktop.utils.ipc import IPCEventSink, IPCManager
from groq_desktop.utils.logger import logger

#: Sender key used when a request does not name its UI surface.
DEFAULT_SENDER = "main"


async def handle_protocol_negotiation(message: dict[str, Any]) -> None:
    """Answer the frontend's protocol version negotiation."""
    supported_versions = message.get("supported_versions", [])
    client_version = message.get("client_version", "unknown")
    logger.info(f"Protocol negotiation: client={client_version}, supported_versions={supported_versions}")

    supported = PROTOCOL_VERSION in supported_versions
    IPCManager.send_protocol_negotiation(supported=supported)
    if supported:
        logger.info("Protocol negotiation successful: V2 selected")
    else:
        logger.error(f"Protocol negotiation failed: incompatible versions {supported_versions}")


def handle_chat_stream(app_state: AppState, message: dict[str, Any]) -> None:
    """Start a stream for a ``chat_stream`` request."""
    sender = str(message.get("sender") or DEFAULT_SENDER)
    messages = message.get("messages") or []
    if not isinstance(messages, list) or not messages:
        logger.warning("chat_stream request without messages", sender=sender)
        IPCManager.send_error("No messages to send", sender=sender)
        return

    try:
        settings = settings_for_request(app_state.settings, message.get("settings"))
    except StreamError as e:
        IPCManager.send_error(e.message, code=e.code, sender=sender)
        return

    session = start_stream(
        app_state,
        sender_key=sender,
        messages=messages,
        model=message.get("model"),
        sink=IPCEventSink(sender),
        tools=message.get("tools") or [],
        settings=settings,
    )
    logger.info(f"Stream {session.id} started", sender=sender, messages=len(messages))


def handle_stop_stream(app_state: AppState, message: dict[str, Any]) -> None:
    sender = str(message.get("sender") or DEFAULT_SENDER)
    if not stop_stream(app_state, sender, message.get("stream_id") or message.get("streamId")):
        logger.debug("stop_stream: nothing to cancel", sender=sender)


async def main() -> None:
    """Bootstrap, then dispatch requests until stdin closes."""
    app_state = initialize_application()
    loop = asyncio.get_running_loop()

    try:
        while True:
            try:
                app_state.pending_read_task = loop.run_in_executor(None, read_message)
                message = await app_state.pending_read_task
                app_state.pending_read_task = None
            except EOFError:
                logger.info("Input closed, shutting down")
                break
            except BinaryIOError as e:
                logger.error(f"Dropping unreadable frame: {e}")
                continue

            message_type = message.get("type")
            logger.debug(f"Received message type: {message_type}")

            if message_type == "protocol_negotiation":
                await handle_protocol_negotiation(message)
            elif message_type == "chat_stream":
                handle_chat_stream(app_state, message)
            elif message_type == "stop_stream":
                handle_stop_stream(app_state, message)
            else:
                logger.warning(f"Unknown message type: {message_type}")
    finally:
        await app_state.aclose()


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")


if __name__ == "__main__":
    run()
