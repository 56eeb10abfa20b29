"""Shared test fixtures for the Groq Desktop test suite.

This module provides common fixtures used across all test modules,
including mocks for external dependencies.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import AsyncMock, Mock

import pytest

from groq_desktop.core.constants import Settings
from groq_desktop.core.stream_registry import StreamSession

SentEvents = Callable[[], list[tuple[str, dict[str, Any]]]]

# ============================================================================
# Test Isolation: Cache Management
# ============================================================================


@pytest.fixture(autouse=True)
def clear_token_cache() -> Generator[None, None, None]:
    """Clear token count caches between tests to ensure isolation."""
    from groq_desktop.utils import token_utils

    token_utils._cached_count.cache_clear()
    token_utils.encoder_for.cache_clear()
    yield
    token_utils._cached_count.cache_clear()
    token_utils.encoder_for.cache_clear()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    from groq_desktop.core.constants import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


# ============================================================================
# Mock External Dependencies
# ============================================================================


@pytest.fixture
def mock_openai_client() -> Generator[Mock, None, None]:
    """Mock AsyncOpenAI client for testing."""
    client = Mock()
    client.chat.completions.create = AsyncMock()
    client.models.list = AsyncMock()
    yield client


@pytest.fixture
def mock_tiktoken(monkeypatch: pytest.MonkeyPatch) -> Generator[Mock, None, None]:
    """Mock tiktoken for token counting tests."""
    mock_encoding = Mock()
    mock_encoding.encode.return_value = [1, 2, 3, 4, 5]  # 5 tokens

    mock_tiktoken_module = Mock()
    mock_tiktoken_module.encoding_for_model.return_value = mock_encoding
    mock_tiktoken_module.get_encoding.return_value = mock_encoding

    monkeypatch.setattr("tiktoken.encoding_for_model", mock_tiktoken_module.encoding_for_model)
    monkeypatch.setattr("tiktoken.get_encoding", mock_tiktoken_module.get_encoding)

    yield mock_tiktoken_module


# ============================================================================
# Settings and Sessions
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings with a usable key, isolated from any local .env file."""
    return Settings(_env_file=None, groq_api_key="gsk_test_key_123")  # type: ignore[call-arg]


@pytest.fixture
def event_sink() -> Mock:
    """EventSink double recording every ``send(channel, payload)``."""
    sink = Mock()
    sink.send = Mock()
    return sink


@pytest.fixture
def sent_events(event_sink: Mock) -> SentEvents:
    """Events delivered to ``event_sink`` so far, as (channel, payload) pairs."""

    def collect() -> list[tuple[str, dict[str, Any]]]:
        return [(call.args[0], call.args[1]) for call in event_sink.send.call_args_list]

    return collect


@pytest.fixture
def session(event_sink: Mock) -> StreamSession:
    return StreamSession(sender_key="main", sink=event_sink)
