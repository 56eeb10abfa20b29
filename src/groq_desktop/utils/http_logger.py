"""
HTTP request/response logging for debugging provider API issues.

Installed as httpx event hooks when ``HTTP_REQUEST_LOGGING`` is on. Response
bodies are never read: the Responses endpoint streams SSE, and reading here
would consume the stream before the adapter sees it.
"""

from __future__ import annotations

import json
import time

from typing import Any

import httpx

from groq_desktop.utils.logger import logger

#: Header names whose values are masked in logs.
SENSITIVE_HEADERS = frozenset({"authorization", "api-key", "x-api-key"})


def mask_headers(headers: httpx.Headers | dict[str, str]) -> dict[str, str]:
    """Header dict with credentials reduced to their last 4 characters."""
    masked: dict[str, str] = {}
    for key, value in dict(headers).items():
        if key.lower() in SENSITIVE_HEADERS:
            value = f"***{value[-4:]}" if len(value) > 4 else "***"
        masked[key] = value
    return masked


def request_payload(request: httpx.Request) -> Any:
    """JSON body of a request; {} for empty or streamed bodies, raw text if not JSON."""
    try:
        body = request.content
    except httpx.RequestNotRead:
        return {}
    if not body:
        return {}
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


class HTTPLogger:
    """Correlates each response with its request and logs both."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._in_flight: dict[int, tuple[str, str, float]] = {}

    async def log_request(self, request: httpx.Request) -> None:
        if not self.enabled:
            return
        try:
            payload = request_payload(request)
            self._in_flight[id(request)] = (request.method, str(request.url), time.monotonic())
            logger.info(
                f"HTTP Request: {request.method} {request.url}",
                http_request=True,
                method=request.method,
                url=str(request.url),
                headers=mask_headers(request.headers),
                payload=payload,
            )
            if payload:
                logger.debug(f"Request Payload:\n{json.dumps(payload, indent=2, default=str)}")
        except Exception as e:
            logger.error(f"Error logging HTTP request: {e}", exc_info=True)

    async def log_response(self, response: httpx.Response) -> None:
        """Status and latency to first byte; SSE bodies are left untouched."""
        if not self.enabled:
            return
        try:
            method, url, started = self._in_flight.pop(id(response.request), ("UNKNOWN", "UNKNOWN", None))
            latency_ms = round((time.monotonic() - started) * 1000, 1) if started is not None else None
            logger.info(
                f"HTTP Response: {response.status_code} {method} {url}",
                http_response=True,
                status_code=response.status_code,
                streaming="text/event-stream" in response.headers.get("content-type", ""),
                latency_ms=latency_ms,
            )
        except Exception as e:
            logger.error(f"Error logging HTTP response: {e}", exc_info=True)


def create_logging_client(
    enabled: bool = True,
    timeout: httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """httpx client with the HTTPLogger hooks installed."""
    http_logger = HTTPLogger(enabled=enabled)
    return httpx.AsyncClient(
        event_hooks={"request": [http_logger.log_request], "response": [http_logger.log_response]},
        timeout=timeout,
        transport=transport,
    )
