"""
Bounded retry of provider tool-use failures.

Groq rejects a generation when the model emits a malformed or unknown tool
call (``tool_use_failed``). Such failures are retried with a slightly higher
temperature and a note on the last user message describing the failure. All
other errors propagate unchanged.
"""

from __future__ import annotations

import asyncio
import copy

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from groq_desktop.core.constants import (
    DEFAULT_TEMPERATURE,
    ERROR_RETRIES_EXHAUSTED,
    MAX_TOOL_USE_RETRIES,
    RETRY_BACKOFF_SECONDS,
    RETRY_NOTE_TEMPLATE,
    RETRY_TEMPERATURE_STEP,
    RETRYABLE_ERROR_CODES,
    RETRYABLE_ERROR_PATTERNS,
)
from groq_desktop.core.stream_registry import StreamSession
from groq_desktop.models.error_models import (
    ResponseFailedError,
    RetriesExhaustedError,
    RetryableProviderError,
    StreamError,
)
from groq_desktop.models.event_models import RetryEvent
from groq_desktop.utils.logger import logger

T = TypeVar("T")


@dataclass
class RetryState:
    """Retry bookkeeping for one top-level request."""

    base_temperature: float = DEFAULT_TEMPERATURE
    attempt: int = 0
    max_retries: int = MAX_TOOL_USE_RETRIES

    @property
    def current_temperature(self) -> float:
        return round(self.base_temperature + self.attempt * RETRY_TEMPERATURE_STEP, 4)

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_retries


def error_message(exc: BaseException) -> str:
    """Human-readable message of a provider failure."""
    if isinstance(exc, StreamError):
        return exc.message
    message = getattr(exc, "message", None)
    return str(message) if message else str(exc)


def _error_code(exc: BaseException) -> str | None:
    if isinstance(exc, ResponseFailedError) and exc.error_code:
        return exc.error_code
    code = getattr(exc, "code", None)
    if isinstance(code, str):
        return code
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("code"), str):
            return str(error["code"])
        if isinstance(body.get("code"), str):
            return str(body["code"])
    return None


def is_retryable_error(exc: BaseException) -> bool:
    """Whether a failure is a provider tool-use failure worth retrying."""
    if isinstance(exc, RetriesExhaustedError):
        return False
    if isinstance(exc, RetryableProviderError):
        return True
    if _error_code(exc) in RETRYABLE_ERROR_CODES:
        return True
    message = f"{error_message(exc)} {getattr(exc, 'body', '') or ''}"
    return any(pattern in message for pattern in RETRYABLE_ERROR_PATTERNS)


def annotate_last_user_message(params: dict[str, Any], note: str) -> None:
    """Append ``note`` to the last user message of ``params`` in place.

    Works on chat ``messages`` and Responses ``input`` alike: string content
    gets the note appended, list content gets it on its last text part, or as
    a new text part when there is none.
    """
    items = params.get("messages")
    if items is None:
        items = params.get("input")
    if not isinstance(items, list):
        return

    for message in reversed(items):
        if not isinstance(message, dict) or message.get("role") != "user":
            continue
        content = message.get("content")
        if isinstance(content, str):
            message["content"] = f"{content}\n\n{note}"
        elif isinstance(content, list):
            text_parts = [p for p in content if isinstance(p, dict) and p.get("type") in ("text", "input_text")]
            if text_parts:
                text_parts[-1]["text"] = f"{text_parts[-1].get('text', '')}\n\n{note}"
            else:
                part_type = "input_text" if "input" in params else "text"
                content.append({"type": part_type, "text": note})
        else:
            message["content"] = note
        return


class RetryController:
    """Runs one provider invocation, retrying tool-use failures.

    Args:
        session: Session receiving ``retry`` events; cancellation stops retrying
        enabled: ``settings.retry_tool_failures``
        max_retries: Upper bound on retries after the first invocation
        backoff: Pause before each re-invocation (seconds)
        sleep: Awaitable sleep, replaceable in tests
    """

    def __init__(
        self,
        session: StreamSession,
        enabled: bool = True,
        max_retries: int = MAX_TOOL_USE_RETRIES,
        backoff: float = RETRY_BACKOFF_SECONDS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.session = session
        self.enabled = enabled
        self.max_retries = max_retries
        self.backoff = backoff
        self._sleep = sleep

    async def run(self, invoke: Callable[[dict[str, Any]], Awaitable[T]], params: dict[str, Any]) -> T:
        """Invoke until success, a non-retryable failure, or exhaustion.

        Each retry works on a fresh deep copy of ``params`` carrying the new
        temperature and a note describing the latest failure only.

        Raises:
            RetriesExhaustedError: Every retry failed with a retryable error
            StreamCancelled: The session was cancelled between attempts
        """
        state = RetryState(
            base_temperature=float(params.get("temperature", DEFAULT_TEMPERATURE)),
            max_retries=self.max_retries,
        )
        attempt_params = copy.deepcopy(params)

        while True:
            self.session.raise_if_cancelled()
            try:
                return await invoke(attempt_params)
            except Exception as e:
                if not self.enabled or not is_retryable_error(e):
                    raise
                if state.exhausted:
                    logger.error(
                        f"Tool-use retries exhausted after {state.attempt + 1} attempts",
                        stream_id=self.session.id,
                        attempt=state.attempt,
                    )
                    raise RetriesExhaustedError(
                        ERROR_RETRIES_EXHAUSTED.format(attempts=state.attempt + 1),
                        attempts=state.attempt + 1,
                    ) from e

                message = error_message(e)
                state.attempt += 1
                attempt_params = copy.deepcopy(params)
                attempt_params["temperature"] = state.current_temperature
                annotate_last_user_message(attempt_params, RETRY_NOTE_TEMPLATE.format(error=message))

                logger.warning(
                    f"Retryable tool-use failure, retrying ({state.attempt}/{state.max_retries}): {message}",
                    stream_id=self.session.id,
                    attempt=state.attempt,
                    temperature=state.current_temperature,
                )
                self.session.emit(
                    RetryEvent(
                        attempt=state.attempt,
                        max_attempts=state.max_retries,
                        error=message,
                        new_temperature=state.current_temperature,
                    )
                )
                await self._sleep(self.backoff)
