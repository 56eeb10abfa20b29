"""
Stream state and internal event vocabulary.

Protocol adapters decode provider wire events into the tagged dataclasses
below; the ChunkAccumulator consumes them. Records that leave the process
(tool calls, executed tools, completion) are Pydantic models so they
serialize the same way as every other IPC payload.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

# -----------------------------------------------------------------------------
# Records
# -----------------------------------------------------------------------------


class ToolCallFunction(BaseModel):
    """Function part of a tool call (OpenAI wire shape)."""

    name: str = ""
    arguments: str = ""


class ToolCall(BaseModel):
    """A tool call requested by the model, merged across deltas."""

    index: int
    id: str
    type: str = "function"
    function: ToolCallFunction = Field(default_factory=ToolCallFunction)
    server_label: str | None = None  # Set for remote MCP calls (Responses API)


class ExecutedTool(BaseModel):
    """A tool run by the provider itself (compound models, remote MCP)."""

    index: int
    type: str | None = None
    name: str = ""
    arguments: str = ""
    output: Any = None
    search_results: Any = None
    server_label: str | None = None


class ApprovalRequest(BaseModel):
    """Remote MCP call waiting for user approval."""

    id: str
    name: str
    server_label: str | None = None
    arguments: str = ""


class ToolResponse(BaseModel):
    """Provider-computed tool result paired as a synthetic tool message."""

    role: Literal["tool"] = "tool"
    tool_call_id: str
    content: str


class CompletionRecord(BaseModel):
    """Final state of a successful stream."""

    content: str = ""
    role: str = "assistant"
    reasoning: str | None = None
    tool_calls: list[ToolCall] | None = None
    executed_tools: list[ExecutedTool] | None = None
    pre_calculated_tool_responses: list[ToolResponse] | None = None
    pending_approvals: list[ApprovalRequest] | None = None
    finish_reason: str
    usage: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# Internal events (adapter -> accumulator)
# -----------------------------------------------------------------------------


class ToolExecutionPhase(str, Enum):
    """Phase discriminant of the two-phase executed-tool protocol."""

    START = "start"
    COMPLETE = "complete"


@dataclass(slots=True)
class StreamStarted:
    kind: Literal["start"] = field(default="start", init=False)
    id: str = ""
    role: str = "assistant"


@dataclass(slots=True)
class ContentDelta:
    kind: Literal["content-delta"] = field(default="content-delta", init=False)
    text: str = ""


@dataclass(slots=True)
class ReasoningDelta:
    kind: Literal["reasoning-delta"] = field(default="reasoning-delta", init=False)
    text: str = ""


@dataclass(slots=True)
class ToolCallDelta:
    """Incremental tool call data for one provider index.

    ``arguments`` is appended to what has been seen for the index;
    ``final_arguments`` is the provider's complete argument string (Responses
    ``output_item.done``) and only fills arguments that never streamed.
    """

    kind: Literal["tool-call-delta"] = field(default="tool-call-delta", init=False)
    index: int = 0
    id: str | None = None
    name: str | None = None
    arguments: str = ""
    type: str | None = None
    server_label: str | None = None
    final_arguments: str | None = None


@dataclass(slots=True)
class ToolExecution:
    """One phase of a provider-executed tool."""

    phase: ToolExecutionPhase
    index: int
    kind: Literal["tool-execution"] = field(default="tool-execution", init=False)
    type: str | None = None
    name: str | None = None
    arguments: str | None = None
    output: Any = None
    search_results: Any = None
    server_label: str | None = None
    call_id: str | None = None  # Tool call this output answers (remote MCP)


@dataclass(slots=True)
class ApprovalRequested:
    kind: Literal["approval-request"] = field(default="approval-request", init=False)
    id: str = ""
    name: str = ""
    server_label: str | None = None
    arguments: str = ""


@dataclass(slots=True)
class UsageReported:
    kind: Literal["usage"] = field(default="usage", init=False)
    usage: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class StreamDone:
    """Provider signalled the end of generation.

    ``finish_reason`` comes from Chat Completions chunks, ``status`` from the
    Responses ``response.completed`` event.
    """

    kind: Literal["done"] = field(default="done", init=False)
    finish_reason: str | None = None
    status: str | None = None


StreamEvent = (
    StreamStarted
    | ContentDelta
    | ReasoningDelta
    | ToolCallDelta
    | ToolExecution
    | ApprovalRequested
    | UsageReported
    | StreamDone
)


__all__ = [
    "ApprovalRequest",
    "ApprovalRequested",
    "CompletionRecord",
    "ContentDelta",
    "ExecutedTool",
    "ReasoningDelta",
    "StreamDone",
    "StreamEvent",
    "StreamStarted",
    "ToolCall",
    "ToolCallDelta",
    "ToolCallFunction",
    "ToolExecution",
    "ToolExecutionPhase",
    "ToolResponse",
    "UsageReported",
]
