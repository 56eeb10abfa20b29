"""Tests for reasoning summaries."""

from __future__ import annotations

import asyncio
import itertools

from unittest.mock import AsyncMock, Mock

import pytest

from groq_desktop.core.summarizer import ReasoningSummarizer, last_n_words, make_model_summarizer
from groq_desktop.models.event_models import ReasoningSummaryEvent


async def settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class Reasoning:
    """Mutable reasoning buffer standing in for the accumulator."""

    def __init__(self, text: str = "") -> None:
        self.text = text

    def __call__(self) -> str:
        return self.text


def make_summarizer(reasoning: Reasoning, summarize: AsyncMock, emit: Mock, **kwargs: object) -> ReasoningSummarizer:
    return ReasoningSummarizer("stream_1", reasoning, emit, summarize, **kwargs)  # type: ignore[arg-type]


def test_last_n_words() -> None:
    assert last_n_words("a b  c\nd", 2) == "c d"
    assert last_n_words("one two", 10) == "one two"
    assert last_n_words("", 3) == ""


class TestReasoningSummarizer:
    @pytest.mark.asyncio
    async def test_tick_emits_summary(self) -> None:
        emit = Mock()
        summarize = AsyncMock(return_value="  Checking the math  ")
        summarizer = make_summarizer(Reasoning("Let me check the arithmetic"), summarize, emit)

        summarizer.tick()
        await settle()

        summarize.assert_awaited_once_with("Let me check the arithmetic")
        emit.assert_called_once_with(ReasoningSummaryEvent(stream_id="stream_1", index=1, summary="Checking the math"))

    @pytest.mark.asyncio
    async def test_no_call_without_growth(self) -> None:
        emit = Mock()
        summarize = AsyncMock(return_value="Thinking")
        reasoning = Reasoning("abc")
        summarizer = make_summarizer(reasoning, summarize, emit)

        summarizer.tick()
        await settle()
        summarizer.tick()
        await settle()

        assert summarize.await_count == 1

        reasoning.text += " more"
        summarizer.tick()
        await settle()
        assert summarize.await_count == 2
        assert [c.args[0].index for c in emit.call_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_empty_reasoning_skipped(self) -> None:
        summarize = AsyncMock(return_value="x")
        summarizer = make_summarizer(Reasoning(""), summarize, Mock())

        summarizer.tick()
        await settle()

        summarize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_word_window(self) -> None:
        summarize = AsyncMock(return_value="x")
        words = " ".join(f"w{i}" for i in range(400))
        summarizer = make_summarizer(Reasoning(words), summarize, Mock())

        summarizer.tick()
        await settle()

        sent = summarize.await_args.args[0].split()
        assert len(sent) == 300
        assert sent[0] == "w100"

    @pytest.mark.asyncio
    async def test_empty_answer_fallback(self) -> None:
        emit = Mock()
        summarizer = make_summarizer(Reasoning("thinking"), AsyncMock(return_value="   "), emit)

        summarizer.tick()
        await settle()

        assert emit.call_args.args[0].summary == "Processing thoughts"

    @pytest.mark.asyncio
    async def test_error_fallback(self) -> None:
        emit = Mock()
        summarizer = make_summarizer(Reasoning("thinking"), AsyncMock(side_effect=RuntimeError("503")), emit)

        summarizer.tick()
        await settle()

        assert emit.call_args.args[0].summary == "Analyzing reasoning"

    @pytest.mark.asyncio
    async def test_nothing_emitted_after_stop(self) -> None:
        emit = Mock()
        gate = asyncio.Event()

        async def slow_summary(text: str) -> str:
            await gate.wait()
            return "Late label"

        summarizer = make_summarizer(Reasoning("thinking"), AsyncMock(side_effect=slow_summary), emit)

        summarizer.tick()
        await settle()
        summarizer.stop()
        gate.set()
        await settle()

        emit.assert_not_called()
        assert summarizer.stopped

    @pytest.mark.asyncio
    async def test_stale_summary_dropped(self) -> None:
        emit = Mock()
        first_gate = asyncio.Event()
        reasoning = Reasoning("first")

        async def summarize(text: str) -> str:
            if text == "first":
                await first_gate.wait()
                return "Old label"
            return "New label"

        summarizer = make_summarizer(reasoning, AsyncMock(side_effect=summarize), emit)

        summarizer.tick()
        await settle()
        reasoning.text = "first second"
        summarizer.tick()
        await settle()
        first_gate.set()
        await settle()

        assert [c.args[0].summary for c in emit.call_args_list] == ["New label"]
        assert [c.args[0].index for c in emit.call_args_list] == [2]

    @pytest.mark.asyncio
    async def test_shared_counter_continues(self) -> None:
        emit = Mock()
        counter = itertools.count(1)
        first = make_summarizer(Reasoning("a"), AsyncMock(return_value="x"), emit, counter=counter)
        first.tick()
        await settle()
        first.stop()

        second = make_summarizer(Reasoning("b"), AsyncMock(return_value="y"), emit, counter=counter)
        second.tick()
        await settle()

        assert [c.args[0].index for c in emit.call_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        summarizer = make_summarizer(Reasoning("a"), AsyncMock(return_value="x"), Mock(), interval=60)

        summarizer.start()
        assert summarizer.running

        summarizer.stop()
        summarizer.stop()
        assert not summarizer.running

    @pytest.mark.asyncio
    async def test_ticker_runs_on_interval(self) -> None:
        emit = Mock()
        summarizer = make_summarizer(Reasoning("thinking"), AsyncMock(return_value="Label"), emit, interval=0.01)

        summarizer.start()
        await asyncio.sleep(0.05)
        summarizer.stop()

        assert emit.call_count == 1


class TestModelSummarizer:
    @pytest.mark.asyncio
    async def test_calls_auxiliary_model(self, mock_openai_client: Mock) -> None:
        message = Mock(content="Comparing options")
        mock_openai_client.chat.completions.create.return_value = Mock(choices=[Mock(message=message)])

        summarize = make_model_summarizer(mock_openai_client, model="llama-3.1-8b-instant")

        assert await summarize("some reasoning") == "Comparing options"
        kwargs = mock_openai_client.chat.completions.create.await_args.kwargs
        assert kwargs["model"] == "llama-3.1-8b-instant"
        assert kwargs["max_tokens"] == 10
        assert kwargs["temperature"] == 0.3
        assert kwargs["stream"] is False
        assert "some reasoning" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_no_choices(self, mock_openai_client: Mock) -> None:
        mock_openai_client.chat.completions.create.return_value = Mock(choices=[])
        summarize = make_model_summarizer(mock_openai_client)
        assert await summarize("x") == ""
