"""
Per-attempt stream state.

The ChunkAccumulator merges internal stream events into coherent records and
maps each one to the outbound events the renderer sees. It is owned by a
single pipeline attempt and never shared.

Merge rules:
- content / reasoning: append-only
- tool calls: keyed by provider index; arguments append-only, id and name
  last-write-wins for non-empty values only
- executed tools: created once per index; completion adds output and
  search results, never overwrites arguments or name
- usage: set at most once
"""

from __future__ import annotations

import time

from typing import Any

from groq_desktop.models.error_models import ToolSchemaWarning
from groq_desktop.models.event_models import (
    ApprovalRequestEvent,
    ContentDeltaEvent,
    OutboundEvent,
    ReasoningDeltaEvent,
    StartEvent,
    ToolCallsUpdateEvent,
    ToolExecutionEvent,
)
from groq_desktop.models.stream_models import (
    ApprovalRequest,
    ApprovalRequested,
    ContentDelta,
    ExecutedTool,
    ReasoningDelta,
    StreamDone,
    StreamEvent,
    StreamStarted,
    ToolCall,
    ToolCallDelta,
    ToolCallFunction,
    ToolExecution,
    ToolExecutionPhase,
    UsageReported,
)
from groq_desktop.utils.logger import logger


def synthesize_tool_call_id(index: int) -> str:
    """Id for a tool call first seen without one."""
    return f"tool_{int(time.time() * 1000)}_{index}"


class ChunkAccumulator:
    """Accumulated state of one stream attempt."""

    def __init__(self, stream_id: str) -> None:
        self.stream_id = stream_id
        self.started = False
        self.content = ""
        self.reasoning = ""
        self.tool_calls: dict[int, ToolCall] = {}
        self.executed_tools: dict[int, ExecutedTool] = {}
        self.tool_outputs: dict[str, Any] = {}
        self.pending_approvals: list[ApprovalRequest] = []
        self.usage: dict[str, Any] | None = None
        self.provider_finish_reason: str | None = None
        self.api_status: str | None = None
        self.done = False

    # ------------------------------------------------------------------
    # Event application
    # ------------------------------------------------------------------

    def apply(self, event: StreamEvent) -> list[OutboundEvent]:
        """Merge one internal event; returns the outbound events it produces."""
        if isinstance(event, StreamStarted):
            return self._on_start(event)
        if isinstance(event, ContentDelta):
            return self._on_content(event)
        if isinstance(event, ReasoningDelta):
            return self._on_reasoning(event)
        if isinstance(event, ToolCallDelta):
            return self._on_tool_call(event)
        if isinstance(event, ToolExecution):
            return self._on_tool_execution(event)
        if isinstance(event, ApprovalRequested):
            return self._on_approval(event)
        if isinstance(event, UsageReported):
            return self._on_usage(event)
        if isinstance(event, StreamDone):
            return self._on_done(event)
        logger.warning(f"Unhandled stream event {type(event).__name__}")
        return []

    def _on_start(self, event: StreamStarted) -> list[OutboundEvent]:
        if self.started:
            return []
        self.started = True
        return [StartEvent(id=event.id or self.stream_id, role=event.role)]

    def _on_content(self, event: ContentDelta) -> list[OutboundEvent]:
        if not event.text:
            return []
        self.content += event.text
        return [ContentDeltaEvent(text=event.text)]

    def _on_reasoning(self, event: ReasoningDelta) -> list[OutboundEvent]:
        if not event.text:
            return []
        self.reasoning += event.text
        return [ReasoningDeltaEvent(text=event.text, accumulated=self.reasoning)]

    def _on_tool_call(self, event: ToolCallDelta) -> list[OutboundEvent]:
        call = self.tool_calls.get(event.index)
        if call is None:
            call = ToolCall(
                index=event.index,
                id=event.id or synthesize_tool_call_id(event.index),
                type=event.type or "function",
                function=ToolCallFunction(name=event.name or "", arguments=event.arguments or ""),
                server_label=event.server_label,
            )
            self.tool_calls[event.index] = call
        else:
            if event.arguments:
                call.function.arguments += event.arguments
            if event.name:
                call.function.name = event.name
            if event.id:
                call.id = event.id
            if event.server_label:
                call.server_label = event.server_label

        if event.final_arguments is not None:
            if not call.function.arguments:
                call.function.arguments = event.final_arguments
            elif call.function.arguments != event.final_arguments:
                logger.warning(
                    f"Final arguments differ from streamed arguments for tool call {call.id}, keeping streamed",
                    warning_category=ToolSchemaWarning.__name__,
                    tool_index=event.index,
                )

        return [ToolCallsUpdateEvent(tool_calls=self.tool_call_list())]

    def _on_tool_execution(self, event: ToolExecution) -> list[OutboundEvent]:
        record = self.executed_tools.get(event.index)

        if event.phase is ToolExecutionPhase.START:
            if record is not None:
                logger.warning(
                    f"Duplicate start for executed tool {event.index}, ignoring",
                    warning_category=ToolSchemaWarning.__name__,
                )
                return []
            record = ExecutedTool(
                index=event.index,
                type=event.type,
                name=event.name or "",
                arguments=event.arguments or "",
                output=event.output,
                search_results=event.search_results,
                server_label=event.server_label,
            )
            self.executed_tools[event.index] = record
            return [ToolExecutionEvent(phase="start", tool=record.model_copy(deep=True))]

        events: list[OutboundEvent] = []
        if record is None:
            logger.warning(
                f"Completion for executed tool {event.index} without start",
                warning_category=ToolSchemaWarning.__name__,
            )
            record = ExecutedTool(
                index=event.index,
                type=event.type,
                name=event.name or "",
                arguments=event.arguments or "",
                server_label=event.server_label,
            )
            self.executed_tools[event.index] = record
            events.append(ToolExecutionEvent(phase="start", tool=record.model_copy(deep=True)))
        else:
            self._merge_completion(record, event)

        if event.search_results:
            record.search_results = event.search_results
        if event.output is not None:
            record.output = event.output
            if event.call_id:
                self.tool_outputs[event.call_id] = event.output
            events.append(ToolExecutionEvent(phase="complete", tool=record.model_copy(deep=True)))
        return events

    def _merge_completion(self, record: ExecutedTool, event: ToolExecution) -> None:
        """Fill fields the start left empty; fields the start did carry stay frozen."""
        if event.arguments and not record.arguments:
            # Remote MCP calls start before their arguments stream
            record.arguments = event.arguments
        elif event.arguments and event.arguments != record.arguments:
            logger.warning(
                f"Executed tool {event.index} completion carries different arguments, keeping original",
                warning_category=ToolSchemaWarning.__name__,
            )
        if event.name and not record.name:
            record.name = event.name
        elif event.name and event.name != record.name:
            logger.warning(
                f"Executed tool {event.index} completion carries different name, keeping original",
                warning_category=ToolSchemaWarning.__name__,
                original_name=record.name,
                delta_name=event.name,
            )

    def _on_approval(self, event: ApprovalRequested) -> list[OutboundEvent]:
        if any(approval.id == event.id for approval in self.pending_approvals):
            return []
        self.pending_approvals.append(
            ApprovalRequest(id=event.id, name=event.name, server_label=event.server_label, arguments=event.arguments)
        )
        return [
            ApprovalRequestEvent(
                id=event.id, name=event.name, server_label=event.server_label, arguments=event.arguments
            )
        ]

    def _on_usage(self, event: UsageReported) -> list[OutboundEvent]:
        if self.usage is None:
            self.usage = dict(event.usage)
        else:
            logger.debug("Ignoring repeated usage report")
        return []

    def _on_done(self, event: StreamDone) -> list[OutboundEvent]:
        self.done = True
        self.provider_finish_reason = event.finish_reason
        self.api_status = event.status
        return []

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def tool_call_list(self) -> list[ToolCall]:
        """Snapshot of the tool calls in first-seen order."""
        return [call.model_copy(deep=True) for call in self.tool_calls.values()]

    def executed_tool_list(self) -> list[ExecutedTool]:
        return [tool.model_copy(deep=True) for tool in self.executed_tools.values()]

    def tool_calls_with_output(self) -> int:
        return sum(1 for call in self.tool_calls.values() if call.id in self.tool_outputs)
