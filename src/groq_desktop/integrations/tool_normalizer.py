"""
Tool descriptor normalization.

Discovered MCP tools arrive with arbitrary JSON Schemas; providers reject many
schema keywords. The parameter schema is therefore rebuilt from scratch with a
small set of known-safe keywords rather than filtered from a copy.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, TypedDict

from groq_desktop.core.constants import ALLOWED_SCHEMA_KEYWORDS, UNKNOWN_TOOL_NAME
from groq_desktop.models.error_models import ToolSchemaWarning
from groq_desktop.utils.logger import logger


class ApiVariant(str, Enum):
    """Provider protocol a tool list is shaped for."""

    CHAT_COMPLETIONS = "chat_completions"
    RESPONSES = "responses"


class ToolDescriptor(TypedDict, total=False):
    """Tool as discovered from an MCP server."""

    name: str
    description: str
    input_schema: dict[str, Any]
    server_label: str
    server_id: str


def empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}}


def sanitize_schema(input_schema: Any) -> dict[str, Any]:
    """Rebuild an object schema keeping only safe per-property keywords.

    Only ``type``, ``description``, ``enum``, ``minimum`` and ``maximum`` survive
    per property; ``required`` is kept only when it is a non-empty list.
    """
    schema = empty_schema()
    if not isinstance(input_schema, Mapping):
        return schema

    properties = input_schema.get("properties")
    if isinstance(properties, Mapping):
        for key, value in properties.items():
            if not isinstance(value, Mapping):
                continue
            prop: dict[str, Any] = {}
            for keyword in ALLOWED_SCHEMA_KEYWORDS:
                item = value.get(keyword)
                if keyword in ("minimum", "maximum"):
                    if item is not None:
                        prop[keyword] = item
                elif item:
                    prop[keyword] = item
            schema["properties"][str(key)] = prop

    required = input_schema.get("required")
    if isinstance(required, list) and required:
        schema["required"] = list(required)

    return schema


def _tool_name(tool: Mapping[str, Any]) -> str:
    name = tool.get("name")
    if name:
        return str(name)
    logger.warning(
        "Tool missing name, using placeholder",
        warning_category=ToolSchemaWarning.__name__,
        server_label=tool.get("server_label") or tool.get("server_id"),
    )
    return UNKNOWN_TOOL_NAME


def normalize_tool(tool: Mapping[str, Any], api_variant: ApiVariant) -> dict[str, Any]:
    """Shape one discovered tool for the given protocol variant."""
    name = _tool_name(tool)
    description = tool.get("description") or ""
    try:
        parameters = sanitize_schema(tool.get("input_schema"))
    except Exception as e:
        logger.warning(
            f"Failed to sanitize schema for tool {name}: {e}",
            warning_category=ToolSchemaWarning.__name__,
        )
        parameters = empty_schema()

    if api_variant is ApiVariant.RESPONSES:
        return {"type": "function", "name": name, "description": description, "parameters": parameters}

    return {
        "type": "function",
        "function": {"name": name, "description": description, "parameters": parameters},
    }


def normalize_tools(tools: Iterable[Mapping[str, Any]] | None, api_variant: ApiVariant) -> list[dict[str, Any]]:
    """Convert discovered tools into provider tool entries.

    Chat Completions uses the nested ``{"type", "function": {...}}`` shape, the
    Responses API the flat ``{"type", "name", "description", "parameters"}`` shape.
    Tools are never dropped; a nameless tool is emitted as ``unknown_tool``.
    """
    return [normalize_tool(tool, api_variant) for tool in tools or [] if isinstance(tool, Mapping)]
