"""Runtime entry points for Groq Desktop streams.

``start_stream`` accepts a request, opens a session and schedules the pipeline
as its own task so ``stop_stream`` can reach it while it runs. Everything that
can fail before the first provider call (API key, vision capability) is
reported through the same session, so every request ends with exactly one
terminal event.
"""

from __future__ import annotations

import asyncio

from typing import Any

from pydantic.alias_generators import to_snake

from groq_desktop.app.state import AppState
from groq_desktop.core.constants import (
    DEFAULT_MODEL,
    ERROR_API_KEY_MISSING,
    ERROR_VISION_UNSUPPORTED,
    Settings,
)
from groq_desktop.core.message_utils import clean_messages, has_image_content, prune_message_history
from groq_desktop.core.pipeline import ProtocolAdapter, StreamPipeline, error_event_for, last_user_text
from groq_desktop.core.request_builder import build_chat_completion_params, build_responses_params
from groq_desktop.core.stream_registry import StreamSession
from groq_desktop.core.summarizer import make_model_summarizer
from groq_desktop.integrations.chat_completions import ChatCompletionsAdapter
from groq_desktop.integrations.mcp_registry import build_mcp_tools, remote_server_labels
from groq_desktop.integrations.responses_api import ResponsesAdapter
from groq_desktop.integrations.tool_normalizer import ApiVariant, normalize_tools
from groq_desktop.models.error_models import CapabilityError, ConfigError, ErrorCode
from groq_desktop.utils.ipc import EventSink
from groq_desktop.utils.logger import logger, stream_log_context


def settings_for_request(base: Settings, overrides: dict[str, Any] | None) -> Settings:
    """Startup settings with the renderer's per-request values applied.

    Keys may be camelCase or snake_case; unknown keys are ignored.

    Raises:
        ConfigError: An override does not validate
    """
    if not overrides:
        return base
    known = {to_snake(key): value for key, value in overrides.items() if to_snake(key) in Settings.model_fields}
    if not known:
        return base
    try:
        return Settings.model_validate({**base.model_dump(), **known})
    except ValueError as e:
        raise ConfigError(f"Invalid settings: {e}", code=ErrorCode.CONFIG_INVALID) from e


def start_stream(
    app_state: AppState,
    sender_key: str,
    messages: list[Any],
    model: str | None,
    sink: EventSink,
    tools: list[dict[str, Any]] | None = None,
    settings: Settings | None = None,
) -> StreamSession:
    """Accept a chat request and start streaming it.

    Any stream already running for ``sender_key`` is cancelled first.

    Args:
        app_state: Application state
        sender_key: UI surface that owns the stream
        messages: Conversation history as sent by the renderer
        model: Requested model id (None for the configured default)
        sink: Receives every outbound event of the stream
        tools: Tools discovered from local MCP servers
        settings: Per-request settings (defaults to the startup settings)

    Returns:
        The new session; its ``task`` runs the pipeline
    """
    session = app_state.registry.open(sender_key, sink)
    session.task = asyncio.get_running_loop().create_task(
        run_stream(app_state, session, messages, model, tools or [], settings or app_state.settings)
    )
    return session


def stop_stream(app_state: AppState, sender_key: str, stream_id: str | None = None) -> bool:
    """Cancel one stream by id, or every stream of the sender."""
    if stream_id:
        session = app_state.registry.get(stream_id)
        if session is None or session.sender_key != sender_key:
            logger.debug("Stop requested for unknown stream", stream_id=stream_id, sender=sender_key)
            return False
        return app_state.registry.cancel(stream_id)
    return app_state.registry.cancel_all(sender_key) > 0


async def run_stream(
    app_state: AppState,
    session: StreamSession,
    messages: list[Any],
    model: str | None,
    tools: list[dict[str, Any]],
    settings: Settings,
) -> None:
    """Prepare the request and drive the pipeline for ``session``."""
    resolved_model = model or settings.model or DEFAULT_MODEL

    with stream_log_context(session.id, session.sender_key, resolved_model):
        try:
            pipeline, params = await prepare_stream(app_state, session, messages, resolved_model, tools, settings)
        except asyncio.CancelledError:
            session.cancel()
            app_state.registry.close(session)
            raise
        except Exception as e:
            event = error_event_for(e)
            logger.error(f"Stream rejected: {event.message}", stream_id=session.id, error_code=event.code)
            session.finish(event)
            app_state.registry.close(session)
            return

        try:
            await pipeline.run(params)
        finally:
            app_state.registry.close(session)


async def prepare_stream(
    app_state: AppState,
    session: StreamSession,
    messages: list[Any],
    model: str,
    tools: list[dict[str, Any]],
    settings: Settings,
) -> tuple[StreamPipeline, dict[str, Any]]:
    """Validate the request and build the pipeline and provider parameters.

    Raises:
        ConfigError: No usable API key
        CapabilityError: Images sent to a model without vision support
    """
    if not settings.has_api_key:
        raise ConfigError(ERROR_API_KEY_MISSING)

    clients = app_state.clients_for(settings)
    model_info = await clients.catalog.get_model_info(model)

    cleaned = clean_messages(messages)
    if has_image_content(cleaned) and not model_info.vision_supported:
        raise CapabilityError(ERROR_VISION_UNSUPPORTED.format(model=model))
    pruned = prune_message_history(cleaned, model_info.context)

    adapter: ProtocolAdapter
    if settings.use_responses_api:
        params = build_responses_params(
            pruned,
            model,
            settings,
            normalize_tools(tools, ApiVariant.RESPONSES),
            build_mcp_tools(settings),
        )
        adapter = ResponsesAdapter(
            clients.http,
            settings.api_base_url,
            settings.groq_api_key or "",
            remote_labels=remote_server_labels(settings),
        )
    else:
        params = build_chat_completion_params(
            pruned,
            model,
            settings,
            normalize_tools(tools, ApiVariant.CHAT_COMPLETIONS),
            model_info,
        )
        adapter = ChatCompletionsAdapter(clients.openai)

    logger.info(
        f"Starting stream with {model} ({'responses' if settings.use_responses_api else 'chat completions'})",
        stream_id=session.id,
        messages=len(pruned),
        tools=len(params.get("tools", [])),
    )

    pipeline = StreamPipeline(
        session,
        adapter,
        settings,
        summarize=make_model_summarizer(clients.openai, settings.summary_model),
        user_input=last_user_text(pruned),
    )
    return pipeline, params
