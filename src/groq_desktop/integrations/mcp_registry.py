"""
Remote MCP registry - provider-side MCP tools and their server labels.

Remote MCP servers are reached by the provider on the client's behalf (Responses
API ``mcp`` tools): the Google connectors served by Groq, and user-configured
remote servers. Their labels also identify shadow ``function_call`` items.
"""

from __future__ import annotations

from typing import Any, TypedDict

from groq_desktop.core.constants import GOOGLE_CONNECTORS, Settings
from groq_desktop.utils.logger import logger


class MCPToolEntry(TypedDict, total=False):
    """Responses API ``mcp`` tool entry."""

    type: str
    server_label: str
    connector_id: str
    server_url: str
    authorization: str
    headers: dict[str, str]
    require_approval: str


def enabled_connectors(settings: Settings) -> list[str]:
    """Settings keys of the Google connectors that are switched on."""
    toggles = settings.google_connectors
    return [key for key in GOOGLE_CONNECTORS if getattr(toggles, key, False)]


def build_connector_tools(settings: Settings) -> list[MCPToolEntry]:
    """Google connector tools; requires an OAuth token."""
    keys = enabled_connectors(settings)
    if not keys:
        return []
    if not settings.google_oauth_token:
        logger.warning("Google connectors enabled without an OAuth token, skipping", connectors=keys)
        return []

    tools: list[MCPToolEntry] = []
    for key in keys:
        server_label, connector_id = GOOGLE_CONNECTORS[key]
        tools.append(
            {
                "type": "mcp",
                "server_label": server_label,
                "connector_id": connector_id,
                "authorization": settings.google_oauth_token,
                "require_approval": "never",
            }
        )
    return tools


def build_remote_server_tools(settings: Settings) -> list[MCPToolEntry]:
    """User-configured remote MCP servers."""
    tools: list[MCPToolEntry] = []
    for server in settings.remote_mcp_servers:
        entry: MCPToolEntry = {
            "type": "mcp",
            "server_label": server.server_label,
            "server_url": server.server_url,
            "require_approval": server.require_approval,
        }
        if server.headers:
            entry["headers"] = dict(server.headers)
        tools.append(entry)
    return tools


def build_mcp_tools(settings: Settings) -> list[dict[str, Any]]:
    """All provider-side MCP tool entries for a Responses request."""
    tools = [*build_connector_tools(settings), *build_remote_server_tools(settings)]
    if tools:
        logger.debug(f"Attached {len(tools)} remote MCP tools", labels=[t["server_label"] for t in tools])
    return [dict(tool) for tool in tools]


def remote_server_labels(settings: Settings) -> frozenset[str]:
    """Labels of every remote MCP server the provider may call for this request."""
    return frozenset(str(tool["server_label"]) for tool in build_mcp_tools(settings))
