"""
Token estimates for context-window pruning.

Counts are estimates: Groq hosts open-weight models tiktoken has never heard
of, so those share the ``cl100k_base`` encoding.
"""

from __future__ import annotations

from collections.abc import Iterable
from functools import cache, lru_cache
from typing import Any

import tiktoken

from groq_desktop.core.constants import MESSAGE_STRUCTURE_TOKEN_OVERHEAD, TOKEN_CACHE_SIZE, TOKEN_ESTIMATE_MODEL
from groq_desktop.utils.json_utils import json_compact

FALLBACK_ENCODING = "cl100k_base"


@cache
def encoder_for(model: str) -> Any:
    try:
        return tiktoken.encoding_for_model(model)
    except KeyError:
        return tiktoken.get_encoding(FALLBACK_ENCODING)


@lru_cache(maxsize=TOKEN_CACHE_SIZE * 2)
def _cached_count(model: str, text: str) -> int:
    return len(encoder_for(model).encode(text))


def count_tokens(text: str, model: str = TOKEN_ESTIMATE_MODEL) -> int:
    """Token count of ``text``; repeated texts hit an LRU cache."""
    return _cached_count(model, text) if text else 0


def message_text(message: dict[str, Any]) -> str:
    """The countable text of a chat message: content parts plus serialized tool calls."""
    content = message.get("content")
    if isinstance(content, str):
        text = content
    elif isinstance(content, list):
        text = "".join(str(p.get("text") or "") for p in content if isinstance(p, dict))
    else:
        text = "" if content is None else json_compact(content)

    if tool_calls := message.get("tool_calls"):
        text += json_compact(tool_calls)
    return text


def count_message_tokens(messages: Iterable[dict[str, Any]], model: str = TOKEN_ESTIMATE_MODEL) -> int:
    """Estimate prompt tokens for a message list (text plus per-message overhead)."""
    return sum(count_tokens(message_text(m), model) + MESSAGE_STRUCTURE_TOKEN_OVERHEAD for m in messages)
