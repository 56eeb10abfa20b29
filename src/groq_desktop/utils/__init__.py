"""
Utilities Module - Logging, IPC and Client Helpers
==================================================

Modules:
    logger: Structured JSON logging with stream correlation
    binary_io: Length-prefixed MessagePack framing (protocol V2)
    ipc: Event sinks writing framed messages
    http_logger: Optional httpx request/response logging
    client_factory: AsyncOpenAI and httpx client construction
    json_utils: Safe JSON serialization helpers
    token_utils: tiktoken-based token estimates
"""
