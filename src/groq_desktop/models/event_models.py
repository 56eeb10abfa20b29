"""
Outbound IPC event models for Groq Desktop.
Every event the orchestrator sends to the renderer is one of these models.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from groq_desktop.core.constants import (
    EVENT_APPROVAL_REQUEST,
    EVENT_CANCELLED,
    EVENT_COMPLETE,
    EVENT_CONTENT_DELTA,
    EVENT_ERROR,
    EVENT_REASONING_DELTA,
    EVENT_REASONING_SUMMARY,
    EVENT_RETRY,
    EVENT_START,
    EVENT_TOOL_CALLS_UPDATE,
    EVENT_TOOL_EXECUTION,
)
from groq_desktop.models.stream_models import (
    ApprovalRequest,
    CompletionRecord,
    ExecutedTool,
    ToolCall,
    ToolResponse,
)


class OutboundEvent(BaseModel):
    """Base for renderer events: camelCase on the wire, ``None`` fields omitted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str

    def to_payload(self) -> dict[str, Any]:
        """Payload without the channel name."""
        payload: dict[str, Any] = self.model_dump(by_alias=True, exclude_none=True, exclude={"type"})
        return payload


class StartEvent(OutboundEvent):
    type: Literal["start"] = EVENT_START
    id: str
    role: str = "assistant"


class ContentDeltaEvent(OutboundEvent):
    type: Literal["content-delta"] = EVENT_CONTENT_DELTA
    text: str


class ReasoningDeltaEvent(OutboundEvent):
    """Reasoning fragment plus the full reasoning text so far."""

    type: Literal["reasoning-delta"] = EVENT_REASONING_DELTA
    text: str
    accumulated: str


class ReasoningSummaryEvent(OutboundEvent):
    type: Literal["reasoning-summary"] = EVENT_REASONING_SUMMARY
    stream_id: str
    index: int
    summary: str


class ToolCallsUpdateEvent(OutboundEvent):
    """Full current tool-call list (not a diff)."""

    type: Literal["tool-calls-update"] = EVENT_TOOL_CALLS_UPDATE
    tool_calls: list[ToolCall]


class ToolExecutionEvent(OutboundEvent):
    type: Literal["tool-execution"] = EVENT_TOOL_EXECUTION
    phase: Literal["start", "complete"]
    tool: ExecutedTool


class ApprovalRequestEvent(OutboundEvent):
    type: Literal["approval-request"] = EVENT_APPROVAL_REQUEST
    id: str
    name: str
    server_label: str | None = None
    arguments: str = ""


class RetryEvent(OutboundEvent):
    type: Literal["retry"] = EVENT_RETRY
    attempt: int
    max_attempts: int
    error: str
    new_temperature: float


class CompleteEvent(OutboundEvent):
    """Terminal success event carrying the completion record."""

    type: Literal["complete"] = EVENT_COMPLETE
    content: str
    role: str = "assistant"
    tool_calls: list[ToolCall] | None = None
    reasoning: str | None = None
    executed_tools: list[ExecutedTool] | None = None
    pre_calculated_tool_responses: list[ToolResponse] | None = None
    pending_approvals: list[ApprovalRequest] | None = None
    finish_reason: str
    usage: dict[str, Any] | None = None

    @classmethod
    def from_record(cls, record: CompletionRecord) -> CompleteEvent:
        return cls(**record.model_dump(exclude_none=True))


class ErrorEvent(OutboundEvent):
    """Terminal failure event."""

    type: Literal["error"] = EVENT_ERROR
    message: str
    code: str | None = None  # ErrorCode value


class CancelledEvent(OutboundEvent):
    type: Literal["cancelled"] = EVENT_CANCELLED
    stream_id: str


__all__ = [
    "ApprovalRequestEvent",
    "CancelledEvent",
    "CompleteEvent",
    "ContentDeltaEvent",
    "ErrorEvent",
    "OutboundEvent",
    "ReasoningDeltaEvent",
    "ReasoningSummaryEvent",
    "RetryEvent",
    "StartEvent",
    "ToolCallsUpdateEvent",
    "ToolExecutionEvent",
]
