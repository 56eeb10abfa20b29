"""
Completion assembly shared by both protocol variants.
"""

from __future__ import annotations

from groq_desktop.core.accumulator import ChunkAccumulator
from groq_desktop.core.constants import (
    FINISH_REASON_MCP_APPROVAL,
    FINISH_REASON_STOP,
    FINISH_REASON_TOOL_CALLS,
    TOOL_PENDING_STATUSES,
)
from groq_desktop.models.stream_models import CompletionRecord, ToolResponse
from groq_desktop.utils.json_utils import json_safe


def derive_finish_reason(
    api_status: str | None,
    pending_approvals: int,
    tool_calls: int,
    tool_calls_with_output: int,
    provider_finish_reason: str | None = None,
) -> str:
    """Terminal classification of a finished stream.

    Priority order:
        1. provider status ``requires_action`` / ``incomplete`` -> ``tool_calls``
        2. pending MCP approvals -> ``mcp_approval_required``
        3. tool calls without outputs (all or some) -> ``tool_calls``
        4. the provider's chat finish reason, unless it is ``tool_calls``; else ``stop``
    """
    if api_status in TOOL_PENDING_STATUSES:
        return FINISH_REASON_TOOL_CALLS
    if pending_approvals:
        return FINISH_REASON_MCP_APPROVAL
    if tool_calls and tool_calls_with_output < tool_calls:
        return FINISH_REASON_TOOL_CALLS
    if provider_finish_reason and provider_finish_reason != FINISH_REASON_TOOL_CALLS:
        return provider_finish_reason
    return FINISH_REASON_STOP


def build_completion_record(accumulator: ChunkAccumulator) -> CompletionRecord:
    """Final record: text, tool calls, provider-computed tool results, usage."""
    tool_calls = accumulator.tool_call_list()
    executed_tools = accumulator.executed_tool_list()
    tool_responses = [
        ToolResponse(tool_call_id=call_id, content=output if isinstance(output, str) else json_safe(output))
        for call_id, output in accumulator.tool_outputs.items()
    ]

    finish_reason = derive_finish_reason(
        api_status=accumulator.api_status,
        pending_approvals=len(accumulator.pending_approvals),
        tool_calls=len(tool_calls),
        tool_calls_with_output=accumulator.tool_calls_with_output(),
        provider_finish_reason=accumulator.provider_finish_reason,
    )

    return CompletionRecord(
        content=accumulator.content,
        role="assistant",
        reasoning=accumulator.reasoning or None,
        tool_calls=tool_calls or None,
        executed_tools=executed_tools or None,
        pre_calculated_tool_responses=tool_responses or None,
        pending_approvals=list(accumulator.pending_approvals) or None,
        finish_reason=finish_reason,
        usage=accumulator.usage,
    )
