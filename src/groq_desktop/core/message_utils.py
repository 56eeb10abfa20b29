"""Conversation history preparation.

Pure transforms from the renderer's message list to provider-ready messages.
None of these functions raise on malformed content: bad values degrade to a
fallback string instead of aborting the request.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from groq_desktop.core.constants import (
    ASSISTANT_CONTENT_FALLBACK,
    CONTEXT_BUDGET_RATIO,
    RESPONSE_TOKEN_RESERVE,
    TOOL_CONTENT_FALLBACK,
    TRANSIENT_MESSAGE_FIELDS,
)
from groq_desktop.utils.json_utils import safe_json_dumps
from groq_desktop.utils.logger import logger
from groq_desktop.utils.token_utils import count_message_tokens

TokenCounter = Callable[[list[dict[str, Any]]], int]


def _normalize_user_content(content: Any) -> list[dict[str, Any]]:
    """User content as an ordered list of typed parts (text / image_url)."""
    if isinstance(content, str):
        return [{"type": "text", "text": content}]
    if not isinstance(content, list):
        return [{"type": "text", "text": ""}]

    parts: list[dict[str, Any]] = []
    for part in content:
        if isinstance(part, dict):
            parts.append({**part, "type": part.get("type") or "text"})
        else:
            parts.append({"type": "text", "text": str(part)})
    return parts


def content_to_text(content: Any) -> str:
    """Flatten message content to plain text (text parts only for lists)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            str(part.get("text") or "") for part in content if isinstance(part, dict) and part.get("type") == "text"
        )
    return ""


def _normalize_assistant_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if content is None:
        return ""
    if isinstance(content, list):
        return content_to_text(content)
    return safe_json_dumps(content, fallback=ASSISTANT_CONTENT_FALLBACK, separators=(", ", ": "))


def _normalize_tool_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    return safe_json_dumps(content, fallback=TOOL_CONTENT_FALLBACK, separators=(", ", ": "))


def clean_messages(messages: list[Any]) -> list[dict[str, Any]]:
    """Strip UI-only fields and coerce content into the shape each role expects.

    - user: list of typed parts (a bare string becomes one text part)
    - assistant: single string (text parts concatenated, other values JSON-encoded)
    - tool: string (JSON-encoded when not already a string)

    The input list and its messages are never mutated.
    """
    cleaned: list[dict[str, Any]] = []
    for index, message in enumerate(messages or []):
        if not isinstance(message, dict):
            logger.warning(f"Dropping malformed message at index {index}", message_type=type(message).__name__)
            continue

        clean = {key: value for key, value in message.items() if key not in TRANSIENT_MESSAGE_FIELDS}
        role = clean.get("role")

        if role == "user":
            clean["content"] = _normalize_user_content(clean.get("content"))
        elif role == "assistant":
            clean["content"] = _normalize_assistant_content(clean.get("content"))
        elif role == "tool":
            clean["content"] = _normalize_tool_content(clean.get("content"))

        cleaned.append(clean)
    return cleaned


def has_image_content(messages: list[dict[str, Any]]) -> bool:
    """Whether any user message carries an ``image_url`` part."""
    return any(
        message.get("role") == "user"
        and isinstance(message.get("content"), list)
        and any(isinstance(part, dict) and part.get("type") == "image_url" for part in message["content"])
        for message in messages
    )


def prune_message_history(
    messages: list[dict[str, Any]],
    context_window: int,
    token_counter: TokenCounter | None = None,
) -> list[dict[str, Any]]:
    """Drop the oldest history until the prompt fits the model's context budget.

    System messages are always kept, as is the latest message. A ``tool``
    message left at the head of the history (its assistant turn was dropped)
    is dropped as well, unless it is the latest message: then the turns back
    to its assistant message are restored even past the budget.

    Args:
        messages: Cleaned conversation history
        context_window: Model context window in tokens
        token_counter: Estimate for a message list (defaults to tiktoken counting)

    Returns:
        New list; the input is not modified
    """
    count = token_counter or count_message_tokens
    budget = max(int(context_window * CONTEXT_BUDGET_RATIO) - RESPONSE_TOKEN_RESERVE, 0)

    system = [m for m in messages if m.get("role") == "system"]
    history = [m for m in messages if m.get("role") != "system"]

    if count(system + history) <= budget:
        return system + history

    removed: list[dict[str, Any]] = []
    while len(history) > 1 and count(system + history) > budget:
        removed.append(history.pop(0))
        while len(history) > 1 and history[0].get("role") == "tool":
            removed.append(history.pop(0))

    # A tool result as the only message left needs its assistant turn back, over budget or not
    while removed and history[0].get("role") == "tool":
        history.insert(0, removed.pop())
    dropped = len(removed)

    logger.info(
        f"Pruned {dropped} messages to fit context window",
        dropped=dropped,
        kept=len(history),
        context_window=context_window,
    )
    return system + history
