"""
Structured logging for the orchestrator.

stdout is reserved for IPC frames, so nothing here ever writes to it:

- stderr: colored one-line records for whoever launched the process
- logs/conversations.jsonl: INFO and above as JSON, one line per record
- logs/errors.jsonl: ERROR and above as JSON

Fields bound with ``stream_log_context`` are merged into every record emitted
inside the block, including records from tasks spawned there.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import sys
import time
import uuid

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pythonjsonlogger import json as jsonlogger

from groq_desktop.core.constants import (
    LOG_BACKUP_COUNT_CONVERSATIONS,
    LOG_BACKUP_COUNT_ERRORS,
    LOG_DIR,
    LOG_EVERY_N_EVENTS,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
    SESSION_ID_LENGTH,
    get_settings,
)

# Applied in order to any user or model text that reaches a log line
_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b[\w.%+-]+@[\w.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    (re.compile(r"\b(?:\d{4}[- ]?){3}\d{4}\b"), "[CARD]"),
    (re.compile(r"\b(?:sk-|pk-|gsk_|api[-_]?key[-_]?)[A-Za-z0-9]{20,}\b"), "[API_KEY]"),
    (re.compile(r"\b(?:password|secret|token)\s*[:=]\s*\S+", re.IGNORECASE), "[REDACTED]"),
]

_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[38;20m",
    logging.INFO: "\x1b[32;20m",
    logging.WARNING: "\x1b[33;20m",
    logging.ERROR: "\x1b[31;20m",
    logging.CRITICAL: "\x1b[31;1m",
}
_RESET = "\x1b[0m"

_CONVERSATION_FIELDS = "%(timestamp)s %(levelname)s %(message)s %(stream_id)s %(sender)s %(tokens)s %(finish_reason)s"
_ERROR_FIELDS = "%(timestamp)s %(levelname)s %(name)s %(message)s %(stream_id)s %(error_code)s"


@dataclass
class StreamLogContext:
    """Per-stream fields merged into log records."""

    stream_id: str
    sender: str
    model: str | None = None
    start_time: float = field(default_factory=time.monotonic)

    def to_log_context(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "stream_id": self.stream_id,
            "sender": self.sender,
            "elapsed_ms": round((time.monotonic() - self.start_time) * 1000, 2),
        }
        if self.model:
            fields["model"] = self.model
        return fields


_current_stream: ContextVar[StreamLogContext | None] = ContextVar("stream_log_context", default=None)


def get_stream_context() -> StreamLogContext | None:
    return _current_stream.get()


@contextmanager
def stream_log_context(stream_id: str, sender: str, model: str | None = None) -> Iterator[StreamLogContext]:
    """Bind stream fields to all log calls made inside the block."""
    ctx = StreamLogContext(stream_id=stream_id, sender=sender, model=model)
    token = _current_stream.set(ctx)
    try:
        yield ctx
    finally:
        _current_stream.reset(token)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS [LEVEL] name - message [stream_id]`` with the level colored."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno, "")
        level = f"{color}[{record.levelname}]{_RESET if color else ''}"
        line = f"{self.formatTime(record, '%H:%M:%S')} {level} {record.name} - {record.getMessage()}"
        if stream_id := getattr(record, "stream_id", None):
            line += f" [{stream_id}]"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _jsonl_handler(filename: str, level: int, fields: str, backups: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        LOG_DIR / filename, maxBytes=LOG_MAX_SIZE, backupCount=backups, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(jsonlogger.JsonFormatter(fields, timestamp=True))
    return handler


def _debug_from_env() -> bool:
    return os.getenv("DEBUG", "false").lower() in ("true", "1", "yes")


def setup_logging(name: str = "groq-desktop", debug: bool | None = None) -> logging.Logger:
    """
    Configure ``name`` with the stderr and JSONL handlers, replacing any existing ones.

    Args:
        name: Logger name
        debug: Console at DEBUG instead of INFO; defaults to the DEBUG env var

    Returns:
        The configured logger
    """
    log = logging.getLogger(name)
    log.setLevel(logging.DEBUG)
    log.propagate = False
    log.handlers = []

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(logging.DEBUG if (_debug_from_env() if debug is None else debug) else logging.INFO)
    console.setFormatter(ConsoleFormatter())
    log.addHandler(console)

    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log.addHandler(
        _jsonl_handler("conversations.jsonl", logging.INFO, _CONVERSATION_FIELDS, LOG_BACKUP_COUNT_CONVERSATIONS)
    )
    log.addHandler(_jsonl_handler("errors.jsonl", logging.ERROR, _ERROR_FIELDS, LOG_BACKUP_COUNT_ERRORS))
    return log


class ChatLogger:
    """Keyword arguments on every call become structured fields on the record."""

    def __init__(self, name: str = "groq-desktop"):
        self.logger = setup_logging(name)
        self.session_id = uuid.uuid4().hex[:SESSION_ID_LENGTH]
        self._event_counts: dict[str, int] = {}

    def _enrich_context(self, fields: dict[str, Any]) -> dict[str, Any]:
        """Add session and stream fields; explicit fields take precedence."""
        fields.setdefault("session_id", self.session_id)
        if ctx := get_stream_context():
            for key, value in ctx.to_log_context().items():
                fields.setdefault(key, value)
        return fields

    def debug(self, message: str, **fields: Any) -> None:
        self.logger.debug(message, extra=self._enrich_context(fields))

    def info(self, message: str, **fields: Any) -> None:
        self.logger.info(message, extra=self._enrich_context(fields))

    def warning(self, message: str, **fields: Any) -> None:
        self.logger.warning(message, extra=self._enrich_context(fields))

    def error(self, message: str, exc_info: bool = False, **fields: Any) -> None:
        self.logger.error(message, extra=self._enrich_context(fields), exc_info=exc_info)

    def throttled_debug(self, event_type: str, message: str, **fields: Any) -> None:
        """Debug-log the first occurrence of ``event_type`` and every LOG_EVERY_N_EVENTS after."""
        count = self._event_counts[event_type] = self._event_counts.get(event_type, 0) + 1
        if count == 1 or count % LOG_EVERY_N_EVENTS == 0:
            self.debug(message, event_type=event_type, occurrences=count, **fields)

    @staticmethod
    def _redact_content(text: str) -> str:
        for pattern, replacement in _REDACTIONS:
            text = pattern.sub(replacement, text)
        return text

    def _content_preview(self, text: str) -> str:
        preview = self._redact_content(text[:LOG_PREVIEW_LENGTH].replace("\n", " "))
        return preview + "..." if len(text) > LOG_PREVIEW_LENGTH else preview

    def log_stream_completion(
        self,
        user_input: str,
        response: str,
        finish_reason: str,
        tool_calls: list[str] | None = None,
        duration_ms: float | None = None,
        tokens_used: int | None = None,
        executed_tools: int = 0,
    ) -> None:
        """One INFO record per completed stream.

        Message text appears only when ``ENABLE_CONTENT_LOGGING`` is on, and
        then as a short redacted preview.
        """
        try:
            show_content = bool(get_settings().enable_content_logging)
        except Exception:
            # Invalid settings: keep content out of the logs
            show_content = False

        if show_content:
            summary = f"User: {self._content_preview(user_input)} → AI: {self._content_preview(response)}"
        else:
            summary = "User: [HIDDEN] → AI: [HIDDEN]"

        tags = [finish_reason]
        fields: dict[str, Any] = {
            "stream_turn": True,
            "timestamp": datetime.now(UTC).isoformat(),
            "finish_reason": finish_reason,
            "chars_input": len(user_input),
            "chars_response": len(response),
            "content_logging": show_content,
        }
        if tool_calls:
            tags.append(f"{len(tool_calls)} tool calls")
            fields["tool_names"] = tool_calls
        if executed_tools:
            fields["executed_tools"] = executed_tools
        if duration_ms is not None:
            tags.append(f"{duration_ms:.0f}ms")
            fields["ms"] = int(duration_ms)
        if tokens_used is not None:
            tags.append(f"{tokens_used} tokens")
            fields["tokens"] = tokens_used

        self.logger.info(" ".join([summary, *(f"[{tag}]" for tag in tags)]), extra=self._enrich_context(fields))


logger = ChatLogger()
