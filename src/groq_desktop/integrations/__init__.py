"""
Integrations Module - Groq Provider Protocols and Tools
=======================================================

Modules:
    chat_completions: Streaming Chat Completions adapter (openai SDK)
    responses_api: Streaming Responses API adapter (SSE over httpx)
    tool_normalizer: Tool descriptor sanitization for both variants
    mcp_registry: Provider-side MCP tools (Google connectors, remote servers)
    model_catalog: Cached model capabilities from the models endpoint

Both adapters expose ``stream(params, stream_id, attach_transport)`` and yield
the internal events defined in :mod:`groq_desktop.models.stream_models`.
"""
