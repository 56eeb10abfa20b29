"""
Error taxonomy for the streaming chat orchestrator.

Every failure the orchestrator can observe maps to one of these classes. The
propagation policy is encoded in the class, not at the call site:

- ConfigError / CapabilityError: fatal, reported before any provider call
- RetryableProviderError: bounded retry by the RetryController
- TransientDecodeError: logged and skipped, the stream continues
- TerminalProviderError (and subclasses): fatal, reported as one ``error`` event
- ToolSchemaWarning: logged anomaly, never aborts
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    """Application-specific error codes sent with ``error`` events."""

    # Configuration errors (1xxx)
    CONFIG_MISSING_API_KEY = "CFG_1001"
    CONFIG_INVALID = "CFG_1002"

    # Capability errors (2xxx)
    CAPABILITY_VISION_UNSUPPORTED = "CAP_2001"

    # Provider errors (3xxx)
    PROVIDER_TOOL_USE_FAILED = "PRV_3001"
    PROVIDER_RETRIES_EXHAUSTED = "PRV_3002"
    PROVIDER_HTTP_ERROR = "PRV_3003"
    PROVIDER_RESPONSE_FAILED = "PRV_3004"
    PROVIDER_STREAM_ENDED = "PRV_3005"
    PROVIDER_ERROR = "PRV_3010"

    # Decode errors (4xxx)
    DECODE_MALFORMED_LINE = "DEC_4001"

    # Internal errors (9xxx)
    INTERNAL_UNEXPECTED = "INT_9999"


class StreamError(Exception):
    """Base class for orchestrator failures."""

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED

    def __init__(self, message: str, code: ErrorCode | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ConfigError(StreamError):
    """Missing or placeholder API key, invalid settings."""

    code = ErrorCode.CONFIG_MISSING_API_KEY


class CapabilityError(StreamError):
    """Request uses a capability the selected model lacks (e.g. vision)."""

    code = ErrorCode.CAPABILITY_VISION_UNSUPPORTED


class RetryableProviderError(StreamError):
    """Tool-use or tool-validation failure reported by the provider."""

    code = ErrorCode.PROVIDER_TOOL_USE_FAILED


class RetriesExhaustedError(RetryableProviderError):
    """Tool-use failures persisted through every retry attempt."""

    code = ErrorCode.PROVIDER_RETRIES_EXHAUSTED

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class TransientDecodeError(StreamError):
    """A single SSE line could not be decoded."""

    code = ErrorCode.DECODE_MALFORMED_LINE

    def __init__(self, message: str, line: str = "") -> None:
        super().__init__(message)
        self.line = line


class TerminalProviderError(StreamError):
    """Network, HTTP or protocol failure that ends the request."""

    code = ErrorCode.PROVIDER_ERROR


class ProviderHTTPError(TerminalProviderError):
    """Non-2xx answer from the provider."""

    code = ErrorCode.PROVIDER_HTTP_ERROR

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"API Error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class ResponseFailedError(TerminalProviderError):
    """The Responses stream reported ``error`` or ``response.failed``."""

    code = ErrorCode.PROVIDER_RESPONSE_FAILED

    def __init__(self, message: str, error_code: str | None = None) -> None:
        super().__init__(message)
        self.error_code = error_code


class StreamEndedUnexpectedly(TerminalProviderError):
    """The provider stream was exhausted without a finish reason."""

    code = ErrorCode.PROVIDER_STREAM_ENDED


class StreamCancelled(Exception):
    """Raised inside a stream attempt once its session has been cancelled."""

    def __init__(self, stream_id: str) -> None:
        super().__init__(f"Stream {stream_id} cancelled")
        self.stream_id = stream_id


class ToolSchemaWarning(UserWarning):
    """Tool descriptor or executed-tool event that contradicts expectations."""


__all__ = [
    "CapabilityError",
    "ConfigError",
    "ErrorCode",
    "ProviderHTTPError",
    "ResponseFailedError",
    "RetriesExhaustedError",
    "RetryableProviderError",
    "StreamCancelled",
    "StreamEndedUnexpectedly",
    "StreamError",
    "TerminalProviderError",
    "ToolSchemaWarning",
    "TransientDecodeError",
]
