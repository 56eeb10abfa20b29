"""
Model catalog - provider model list with capability heuristics.

The provider's ``/models`` endpoint reports context windows but not
capabilities, so vision and built-in tool support are inferred from model ids.
"""

from __future__ import annotations

import time

from collections.abc import Callable, Iterable
from typing import Any

from openai import AsyncOpenAI

from groq_desktop.core.constants import DEFAULT_MODEL_INFO, MODEL_CACHE_TTL_SECONDS, NON_CHAT_MODEL_MARKERS, ModelInfo
from groq_desktop.utils.logger import logger

#: Model id fragments implying capabilities.
VISION_MODEL_MARKER = "llama-4"
BUILTIN_TOOLS_MODEL_MARKER = "gpt-oss"


def apply_model_heuristics(model_id: str, context_window: int | None = None) -> ModelInfo:
    """Capabilities for one model id."""
    name = model_id.lower()
    return ModelInfo(
        context=context_window or DEFAULT_MODEL_INFO.context,
        vision_supported=VISION_MODEL_MARKER in name,
        builtin_tools_supported=BUILTIN_TOOLS_MODEL_MARKER in name,
    )


def _as_dict(model: Any) -> dict[str, Any]:
    if isinstance(model, dict):
        return model
    if hasattr(model, "model_dump"):
        dumped: dict[str, Any] = model.model_dump()
        return dumped
    return dict(vars(model))


def convert_models(models: Iterable[Any]) -> dict[str, ModelInfo]:
    """Keep active chat models (no whisper/guard) and derive their capabilities."""
    catalog: dict[str, ModelInfo] = {}
    for raw in models:
        data = _as_dict(raw)
        model_id = str(data.get("id") or "")
        if not model_id:
            continue
        lowered = model_id.lower()
        if any(marker in lowered for marker in NON_CHAT_MODEL_MARKERS):
            continue
        if data.get("active") is False:
            continue
        catalog[model_id] = apply_model_heuristics(model_id, data.get("context_window"))
    return catalog


class ModelCatalog:
    """Cached model capabilities (5 minute TTL, stale cache on fetch failure)."""

    def __init__(
        self,
        client: AsyncOpenAI | None,
        ttl_seconds: float = MODEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._models: dict[str, ModelInfo] | None = None
        self._fetched_at: float | None = None

    def _is_fresh(self) -> bool:
        return (
            self._models is not None
            and self._fetched_at is not None
            and self._clock() - self._fetched_at < self.ttl_seconds
        )

    async def get_models(self, force_refresh: bool = False) -> dict[str, ModelInfo]:
        """All known chat models; empty when nothing could ever be fetched."""
        if not force_refresh and self._is_fresh():
            return self._models or {}

        if self.client is None:
            return self._models or {}

        try:
            page = await self.client.models.list()
            models = convert_models(getattr(page, "data", page))
        except Exception as e:
            if self._models is not None:
                logger.warning(f"Model list fetch failed, using stale cache: {e}")
                return self._models
            logger.warning(f"Model list fetch failed, using default capabilities: {e}")
            return {}

        self._models = models
        self._fetched_at = self._clock()
        logger.info(f"Loaded {len(models)} chat models from API")
        return models

    async def get_model_info(self, model: str) -> ModelInfo:
        """Capabilities of ``model``; the default record for unknown models."""
        models = await self.get_models()
        info = models.get(model)
        if info is not None:
            return info
        # Not listed (custom endpoint or fetch failure): infer from the id alone
        return apply_model_heuristics(model)
