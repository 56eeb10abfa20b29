"""
Provider request parameters for both protocol variants.

Chat Completions takes the message list as-is (system prompt prepended);
the Responses API takes ``instructions`` plus a flat ``input`` item list in
which tool calls and their results are separate items.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from groq_desktop.core.constants import ModelInfo, Settings
from groq_desktop.core.message_utils import content_to_text
from groq_desktop.core.prompts import build_system_prompt
from groq_desktop.utils.json_utils import safe_json_dumps

#: Model id fragments with special request handling.
COMPOUND_MODEL_MARKER = "compound"
REASONING_EFFORT_MODEL_MARKER = "gpt-oss"


def is_compound_model(model: str) -> bool:
    """Compound models run their own tools and reject client tool lists."""
    return COMPOUND_MODEL_MARKER in model.lower()


def build_builtin_tools(model_info: ModelInfo, settings: Settings) -> list[dict[str, Any]]:
    """Provider built-in tools enabled in settings and supported by the model."""
    if not model_info.builtin_tools_supported:
        return []
    tools: list[dict[str, Any]] = []
    if settings.built_in_tools.code_interpreter:
        tools.append({"type": "code_interpreter"})
    if settings.built_in_tools.browser_search:
        tools.append({"type": "browser_search"})
    return tools


def build_chat_completion_params(
    messages: list[dict[str, Any]],
    model: str,
    settings: Settings,
    tools: list[dict[str, Any]],
    model_info: ModelInfo,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Streaming Chat Completions request.

    Args:
        messages: Cleaned and pruned history (no system prompt)
        model: Resolved model id
        settings: Settings snapshot for this request
        tools: Discovered tools in the nested Chat Completions shape
        model_info: Capabilities of ``model``
        now: Clock override for the system prompt
    """
    system_prompt = build_system_prompt(settings.custom_system_prompt, now)
    all_tools = [*tools, *build_builtin_tools(model_info, settings)]

    params: dict[str, Any] = {
        "messages": [{"role": "system", "content": system_prompt}, *messages],
        "model": model,
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "stream": True,
    }

    if all_tools and not is_compound_model(model):
        params["tools"] = all_tools
        params["tool_choice"] = "auto"

    if REASONING_EFFORT_MODEL_MARKER in model and settings.reasoning_effort:
        params["reasoning_effort"] = settings.reasoning_effort

    return params


def _stringify(content: Any) -> str:
    return content if isinstance(content, str) else safe_json_dumps(content, separators=(", ", ": "))


def _tool_outputs(messages: list[dict[str, Any]]) -> dict[str, str]:
    """tool_call_id -> output text of every tool message (first wins)."""
    outputs: dict[str, str] = {}
    for message in messages:
        call_id = message.get("tool_call_id")
        if message.get("role") == "tool" and call_id and call_id not in outputs:
            outputs[call_id] = _stringify(message.get("content"))
    return outputs


def _tool_call_items(tool_call: dict[str, Any], output: str | None) -> list[dict[str, Any]]:
    function = tool_call.get("function") or {}
    call_id = tool_call.get("id")
    name = function.get("name", "")
    arguments = function.get("arguments", "")

    if tool_call.get("server_label"):
        mcp_item: dict[str, Any] = {
            "type": "mcp_call",
            "id": call_id,
            "name": name,
            "arguments": arguments,
            "server_label": tool_call["server_label"],
        }
        if output:
            mcp_item["status"] = "completed"
            mcp_item["output"] = output
        return [mcp_item]

    items: list[dict[str, Any]] = [
        {"type": "function_call", "id": call_id, "call_id": call_id, "name": name, "arguments": arguments}
    ]
    if output:
        items.append({"type": "function_call_output", "call_id": call_id, "output": output})
    return items


def convert_messages_to_input(messages: list[dict[str, Any]]) -> tuple[str | None, list[dict[str, Any]]]:
    """Split history into Responses ``instructions`` and ``input`` items.

    Tool messages are consumed through the assistant message that issued the
    call, so a tool result always follows its call in the input.
    """
    instructions: str | None = None
    items: list[dict[str, Any]] = []
    outputs = _tool_outputs(messages)

    for message in messages:
        role = message.get("role")

        if role == "system":
            instructions = _stringify(message.get("content"))
            continue

        if role == "tool":
            continue

        tool_calls = message.get("tool_calls")
        if role == "assistant" and tool_calls:
            text = content_to_text(message.get("content"))
            if text:
                items.append({"role": "assistant", "content": text})
            for tool_call in tool_calls:
                if isinstance(tool_call, dict):
                    items.extend(_tool_call_items(tool_call, outputs.get(tool_call.get("id") or "")))
            continue

        items.append({"role": role, "content": content_to_text(message.get("content"))})

    return instructions, items


def build_responses_params(
    messages: list[dict[str, Any]],
    model: str,
    settings: Settings,
    tools: list[dict[str, Any]],
    mcp_tools: list[dict[str, Any]],
    now: datetime | None = None,
) -> dict[str, Any]:
    """Streaming Responses API request.

    Args:
        messages: Cleaned and pruned history
        model: Resolved model id
        settings: Settings snapshot for this request
        tools: Discovered tools in the flat Responses shape
        mcp_tools: Provider-side MCP tool entries (connectors, remote servers)
        now: Clock override for the synthesized system prompt
    """
    instructions, items = convert_messages_to_input(messages)

    params: dict[str, Any] = {
        "model": model,
        "stream": True,
        "input": items,
        "instructions": instructions or build_system_prompt(settings.custom_system_prompt, now),
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "store": False,  # Stateless: the full history is sent every turn
    }

    all_tools = [*mcp_tools, *tools]
    if all_tools:
        params["tools"] = all_tools

    if REASONING_EFFORT_MODEL_MARKER in model and settings.reasoning_effort:
        params["reasoning"] = {"effort": settings.reasoning_effort}

    return params
