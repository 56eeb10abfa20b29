"""
System prompts for Groq Desktop.
Centralizes all prompt text sent to the models.
"""

from __future__ import annotations

from datetime import datetime

# Chat system prompt preamble
SYSTEM_PREAMBLE = (
    "You are a helpful assistant capable of using tools. "
    "Use tools only when necessary and relevant to the user's request. "
    "Format responses using Markdown."
)

# Reasoning summary prompts (auxiliary model)
REASONING_SUMMARY_SYSTEM_PROMPT = (
    "You must respond with ONLY 3-5 plain words. No markdown, no formatting, no punctuation, "
    "no explanations. Just 3-5 words describing the activity."
)

REASONING_SUMMARY_USER_TEMPLATE = (
    "What activity is happening here in 3-5 words:\n\n{reasoning}\n\nRespond with ONLY 3-5 plain words:"
)


def format_local_datetime(now: datetime | None = None) -> str:
    """Long-form local date and time with time zone name.

    Example: ``Monday, October 19, 2026 at 14:03:05 CEST``
    """
    local = (now or datetime.now()).astimezone()
    tz_name = local.tzname() or "UTC"
    return f"{local:%A}, {local:%B} {local.day}, {local.year} at {local:%H:%M:%S} {tz_name}"


def build_system_prompt(custom_prompt: str | None = None, now: datetime | None = None) -> str:
    """Build the chat system prompt.

    Args:
        custom_prompt: User instructions, appended verbatim (stripped) when non-blank
        now: Clock override for tests

    Returns:
        Preamble, current local date/time, then custom instructions
    """
    prompt = f"{SYSTEM_PREAMBLE}\n\nCurrent date and time: {format_local_datetime(now)}"
    if custom_prompt and custom_prompt.strip():
        prompt += f"\n\n{custom_prompt.strip()}"
    return prompt
