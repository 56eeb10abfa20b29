"""
Reasoning summarizer - short activity labels for in-flight reasoning.

Best-effort side channel: a background task ticks every few seconds and, when
the reasoning text has grown, asks a fast auxiliary model for a 3-5 word label.
Each summary call runs as its own task so a slow call never delays the next
tick. After ``stop()`` nothing is emitted.
"""

from __future__ import annotations

import asyncio
import itertools

from collections.abc import Awaitable, Callable, Iterator
from typing import Any

from openai import AsyncOpenAI

from groq_desktop.core.constants import (
    SUMMARY_EMPTY_FALLBACK,
    SUMMARY_ERROR_FALLBACK,
    SUMMARY_INTERVAL_SECONDS,
    SUMMARY_MAX_TOKENS,
    SUMMARY_MODEL,
    SUMMARY_TEMPERATURE,
    SUMMARY_WORD_WINDOW,
)
from groq_desktop.core.prompts import REASONING_SUMMARY_SYSTEM_PROMPT, REASONING_SUMMARY_USER_TEMPLATE
from groq_desktop.models.event_models import OutboundEvent, ReasoningSummaryEvent
from groq_desktop.utils.logger import logger

SummarizeFn = Callable[[str], Awaitable[str]]
EmitFn = Callable[[OutboundEvent], Any]


def last_n_words(text: str, n: int) -> str:
    """The trailing ``n`` whitespace-separated words of ``text``."""
    return " ".join(text.split()[-n:])


def make_model_summarizer(client: AsyncOpenAI, model: str = SUMMARY_MODEL) -> SummarizeFn:
    """Summarize function backed by a chat completion on the auxiliary model."""

    async def summarize(reasoning: str) -> str:
        response = await client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": REASONING_SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": REASONING_SUMMARY_USER_TEMPLATE.format(reasoning=reasoning)},
            ],
            temperature=SUMMARY_TEMPERATURE,
            max_tokens=SUMMARY_MAX_TOKENS,
            stream=False,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    return summarize


class ReasoningSummarizer:
    """Periodic reasoning summaries for one stream.

    Args:
        stream_id: Stream the summaries belong to
        reasoning_source: Returns the reasoning accumulated so far
        emit: Delivers a summary event to the session
        summarize: Auxiliary model call
        counter: Index source shared across attempts of one stream
        interval: Tick interval in seconds
        word_window: Trailing words sent to the auxiliary model
    """

    def __init__(
        self,
        stream_id: str,
        reasoning_source: Callable[[], str],
        emit: EmitFn,
        summarize: SummarizeFn,
        counter: Iterator[int] | None = None,
        interval: float = SUMMARY_INTERVAL_SECONDS,
        word_window: int = SUMMARY_WORD_WINDOW,
    ) -> None:
        self.stream_id = stream_id
        self.interval = interval
        self.word_window = word_window
        self._reasoning_source = reasoning_source
        self._emit = emit
        self._summarize = summarize
        self._counter = counter if counter is not None else itertools.count(1)
        self._last_length = 0
        self._last_emitted_index = 0
        self._ticker: asyncio.Task[None] | None = None
        self._pending: set[asyncio.Task[None]] = set()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def running(self) -> bool:
        return self._ticker is not None and not self._stopped

    def start(self) -> None:
        """Start ticking; must be called from a running event loop."""
        if self._stopped or self._ticker is not None:
            return
        self._ticker = asyncio.get_running_loop().create_task(self._tick_loop())
        logger.debug("Reasoning summarizer armed", stream_id=self.stream_id)

    def stop(self) -> None:
        """Stop ticking and drop in-flight summaries. Safe to call repeatedly."""
        if self._stopped:
            return
        self._stopped = True
        if self._ticker is not None:
            self._ticker.cancel()
        for task in list(self._pending):
            task.cancel()
        self._pending.clear()
        logger.debug("Reasoning summarizer stopped", stream_id=self.stream_id)

    async def _tick_loop(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.interval)
            if self._stopped:
                return
            self.tick()

    def tick(self) -> None:
        """Spawn one summary call if reasoning grew since the previous tick."""
        reasoning = self._reasoning_source()
        if self._stopped or len(reasoning) <= self._last_length:
            return
        self._last_length = len(reasoning)
        index = next(self._counter)
        task = asyncio.get_running_loop().create_task(
            self._summarize_window(index, last_n_words(reasoning, self.word_window))
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _summarize_window(self, index: int, text: str) -> None:
        try:
            summary = (await self._summarize(text)).strip() or SUMMARY_EMPTY_FALLBACK
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Reasoning summary {index} failed: {e}", stream_id=self.stream_id)
            summary = SUMMARY_ERROR_FALLBACK

        # Stopped, or a newer summary already went out
        if self._stopped or index <= self._last_emitted_index:
            return
        self._last_emitted_index = index
        self._emit(ReasoningSummaryEvent(stream_id=self.stream_id, index=index, summary=summary))
