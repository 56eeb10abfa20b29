"""
Groq Desktop - Streaming chat orchestrator
==========================================

Python backend of the Groq desktop chat client. Accepts a conversation plus
settings and discovered tools, streams the model's answer from Groq, and
emits a uniform event stream to the Electron renderer.

Key Features:
    - **Two protocol variants**: Chat Completions (openai SDK) and the Responses
      API (raw SSE over httpx), decoded into one internal event vocabulary
    - **Tool calls**: local MCP tools, provider-executed tools and remote MCP
      servers, with shadow-call suppression and approval requests
    - **Retry**: bounded retry of provider tool-use failures
    - **Reasoning summaries**: short labels for in-flight reasoning
    - **Cancellation**: one terminal event per stream, always

Modules:
    app: Bootstrap, application state and the start/stop stream entry points
    core: Accumulator, pipeline, retry, summarizer, registry, configuration
    integrations: Protocol adapters, tool normalization, model catalog, remote MCP
    models: Internal stream events, outbound events, error taxonomy
    utils: Logging, binary IPC framing, HTTP clients, token counting

Architecture:
    The backend runs as a subprocess of the Electron main process and speaks
    length-prefixed MessagePack frames over stdin/stdout (protocol V2).
"""
