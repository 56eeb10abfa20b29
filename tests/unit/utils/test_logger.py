"""Tests for the structured logger."""

from __future__ import annotations

import logging

import pytest

from groq_desktop.utils.logger import ChatLogger, get_stream_context, stream_log_context


@pytest.fixture
def chat_logger(caplog: pytest.LogCaptureFixture) -> ChatLogger:
    chat_logger = ChatLogger("groq-desktop-test")
    # The logger does not propagate, so hand caplog its handler directly
    chat_logger.logger.addHandler(caplog.handler)
    return chat_logger


def test_stream_context_scoped() -> None:
    assert get_stream_context() is None

    with stream_log_context("stream_1", "main", "llama-3.3-70b-versatile") as ctx:
        assert get_stream_context() is ctx
        fields = ctx.to_log_context()
        assert fields["stream_id"] == "stream_1"
        assert fields["model"] == "llama-3.3-70b-versatile"

    assert get_stream_context() is None


def test_enrich_context_adds_stream_fields(chat_logger: ChatLogger) -> None:
    with stream_log_context("stream_1", "popup"):
        extra = chat_logger._enrich_context({"attempt": 2})

    assert extra["attempt"] == 2
    assert extra["stream_id"] == "stream_1"
    assert extra["sender"] == "popup"
    assert extra["session_id"] == chat_logger.session_id


def test_explicit_fields_win(chat_logger: ChatLogger) -> None:
    with stream_log_context("stream_1", "main"):
        extra = chat_logger._enrich_context({"stream_id": "other"})
    assert extra["stream_id"] == "other"


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("mail me at jane.doe@example.com", "mail me at [EMAIL]"),
        ("key gsk_abcdefghijklmnopqrstuvwxyz", "key [API_KEY]"),
        ("password: hunter2", "[REDACTED]"),
    ],
)
def test_redact_content(chat_logger: ChatLogger, text: str, expected: str) -> None:
    assert chat_logger._redact_content(text) == expected


def test_stream_completion_hides_content(chat_logger: ChatLogger, caplog: pytest.LogCaptureFixture) -> None:
    chat_logger.log_stream_completion(user_input="secret question", response="secret answer", finish_reason="stop")

    assert "secret" not in caplog.text
    assert "[HIDDEN]" in caplog.text


def test_throttled_debug(chat_logger: ChatLogger, caplog: pytest.LogCaptureFixture) -> None:
    caplog.handler.setLevel(logging.DEBUG)
    for _ in range(3):
        chat_logger.throttled_debug("ipc_write", "wrote frame")

    assert caplog.text.count("wrote frame") == 1
