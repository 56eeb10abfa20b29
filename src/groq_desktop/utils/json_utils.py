"""JSON helpers shared by the request builder, completion assembly and token counting.

Everything here falls back to ``str()`` for values JSON cannot represent
(datetimes, SDK objects), so serializing provider data never raises TypeError.
"""

from __future__ import annotations

import json

from collections.abc import Callable
from functools import partial
from typing import Any

#: No whitespace; used where output is hashed or counted, not read.
json_compact: Callable[..., str] = partial(json.dumps, separators=(",", ":"), default=str)

#: Default separators; used for content the model reads back (tool outputs).
json_safe: Callable[..., str] = partial(json.dumps, default=str)


def safe_json_dumps(obj: Any, fallback: str | None = None, **kwargs: Any) -> str:
    """Serialize ``obj`` without ever raising.

    Compact separators unless overridden. On failure (circular references,
    NaN with ``allow_nan=False``) returns ``fallback`` when given, otherwise an
    ``{"error": ...}`` JSON object.

        >>> safe_json_dumps({"a": 1})
        '{"a":1}'
        >>> loop = []; loop.append(loop)
        >>> safe_json_dumps(loop, fallback="[unserializable]")
        '[unserializable]'
    """
    kwargs.setdefault("separators", (",", ":"))
    kwargs.setdefault("default", str)
    try:
        return json.dumps(obj, **kwargs)
    except (TypeError, ValueError, RecursionError) as e:
        if fallback is not None:
            return fallback
        return json.dumps({"error": f"Serialization failed: {e}"})
