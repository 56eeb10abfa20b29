"""
Provider client construction.

One httpx client per settings snapshot carries the timeouts (and optional
request logging) for both the OpenAI SDK client and the raw Responses SSE
calls. The base URL is passed at construction: a custom endpoint replaces the
Groq default exactly as configured.
"""

from __future__ import annotations

from typing import Any

import httpx

from openai import AsyncOpenAI

from groq_desktop.core.constants import Settings
from groq_desktop.utils.http_logger import create_logging_client

# Reasoning models can go quiet for minutes while thinking, so reads get a long timeout
CONNECT_TIMEOUT = 30.0
READ_TIMEOUT = 600.0
WRITE_TIMEOUT = 30.0
POOL_TIMEOUT = 30.0


def streaming_timeout(read_timeout: float | None = None) -> httpx.Timeout:
    return httpx.Timeout(
        connect=CONNECT_TIMEOUT,
        read=READ_TIMEOUT if read_timeout is None else read_timeout,
        write=WRITE_TIMEOUT,
        pool=POOL_TIMEOUT,
    )


def create_http_client(
    enable_logging: bool = False,
    read_timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """httpx client for streaming calls.

    Args:
        enable_logging: Attach request/response logging hooks
        read_timeout: Overrides the 600 s read timeout
        transport: Replacement transport (``httpx.MockTransport`` in tests)
    """
    timeout = streaming_timeout(read_timeout)
    if enable_logging:
        return create_logging_client(enabled=True, timeout=timeout, transport=transport)
    return httpx.AsyncClient(timeout=timeout, transport=transport)


def create_openai_client(
    api_key: str,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncOpenAI:
    """AsyncOpenAI client pointed at Groq's OpenAI-compatible API (or ``base_url``)."""
    kwargs: dict[str, Any] = {"api_key": api_key, "http_client": http_client}
    if base_url:
        kwargs["base_url"] = base_url
    return AsyncOpenAI(**kwargs)


def create_clients_for_settings(settings: Settings) -> tuple[AsyncOpenAI, httpx.AsyncClient]:
    """SDK client and raw SSE client for one settings snapshot, sharing one connection pool."""
    http_client = create_http_client(enable_logging=settings.http_request_logging)
    openai_client = create_openai_client(
        api_key=settings.groq_api_key or "",
        base_url=settings.api_base_url,
        http_client=http_client,
    )
    return openai_client, http_client
