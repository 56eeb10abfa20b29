"""Application initialization for Groq Desktop.

Loads the environment, validates settings and builds the AppState used by the
main loop. Provider clients are created lazily per API key and endpoint, so a
missing key is reported per request rather than at startup.
"""

from __future__ import annotations

import sys

from dotenv import load_dotenv

from groq_desktop.app.state import AppState
from groq_desktop.core.constants import PROJECT_ROOT, get_settings
from groq_desktop.utils.logger import logger


def initialize_application() -> AppState:
    """Load configuration and return the application state.

    Raises:
        SystemExit: If the settings cannot be validated
    """
    load_dotenv(PROJECT_ROOT / ".env")

    try:
        settings = get_settings()
    except Exception as e:
        # stdout is reserved for the binary protocol
        sys.stderr.write(f"Error: Configuration validation failed: {e}\n")
        sys.stderr.write("Please check your .env file (GROQ_API_KEY, MODEL, ...)\n")
        sys.exit(1)

    if not settings.has_api_key:
        logger.warning("No Groq API key configured; chat requests will fail until one is set")

    logger.info(
        f"Settings loaded (model: {settings.model}, endpoint: {settings.api_base_url})",
        use_responses_api=settings.use_responses_api,
    )
    return AppState(settings=settings)
