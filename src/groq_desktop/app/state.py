"""Application state management for Groq Desktop.

This module provides the central AppState container that serves as the single
source of truth for application-wide state. State is passed explicitly to
functions rather than using module-level globals.
"""

from __future__ import annotations

import asyncio

from dataclasses import dataclass, field
from typing import Any

import httpx

from openai import AsyncOpenAI

from groq_desktop.core.constants import Settings
from groq_desktop.core.stream_registry import StreamRegistry
from groq_desktop.integrations.model_catalog import ModelCatalog
from groq_desktop.utils.client_factory import create_clients_for_settings
from groq_desktop.utils.logger import logger

#: Cache key for provider clients: (api key, base url, http logging)
ClientKey = tuple[str, str, bool]


@dataclass
class ProviderClients:
    """Clients bound to one API key and base URL.

    Attributes:
        openai: SDK client for chat completions, model listing and summaries
        http: Raw httpx client for the Responses SSE endpoint
        catalog: Model capability cache for this endpoint
    """

    openai: AsyncOpenAI
    http: httpx.AsyncClient
    catalog: ModelCatalog


@dataclass
class AppState:
    """Application state container.

    Attributes:
        settings: Settings loaded at startup; requests may override per call
        registry: Active stream sessions
        clients: Provider clients keyed by credentials and endpoint
        pending_read_task: Pending stdin read task to prevent orphaned readers
    """

    settings: Settings
    registry: StreamRegistry = field(default_factory=StreamRegistry)
    clients: dict[ClientKey, ProviderClients] = field(default_factory=dict)
    pending_read_task: asyncio.Future[Any] | None = None

    def clients_for(self, settings: Settings) -> ProviderClients:
        """Provider clients for a settings snapshot, created on first use."""
        key: ClientKey = (settings.groq_api_key or "", settings.api_base_url, settings.http_request_logging)
        clients = self.clients.get(key)
        if clients is None:
            openai_client, http_client = create_clients_for_settings(settings)
            clients = ProviderClients(openai=openai_client, http=http_client, catalog=ModelCatalog(openai_client))
            self.clients[key] = clients
            logger.info(f"Created provider clients for {settings.api_base_url}")
        return clients

    async def aclose(self) -> None:
        """Cancel every stream and close the provider clients."""
        if active := self.registry.active_count():
            logger.info(f"Shutting down with {active} active streams")
        self.registry.cancel_all()
        for clients in self.clients.values():
            await clients.openai.close()
            await clients.http.aclose()
        self.clients.clear()
