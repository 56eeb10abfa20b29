"""
Constants and configuration for Groq Desktop.
Centralizes all magic numbers and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

#: Directory for rotating JSON log files (overridable for packaged builds)
LOG_DIR = Path(os.getenv("GROQ_DESKTOP_LOG_DIR", str(PROJECT_ROOT / "logs")))

# ============================================================================
# Provider Configuration
# ============================================================================

#: Default OpenAI-compatible base URL of the Groq inference API.
DEFAULT_API_BASE_URL = "https://api.groq.com/openai/v1/"

#: Path of the Responses endpoint, relative to the base URL.
RESPONSES_API_PATH = "responses"

#: Placeholder written into fresh settings files; treated as "no key".
API_KEY_PLACEHOLDER = "<replace me>"

#: Model used when neither the request nor the settings name one.
DEFAULT_MODEL = "llama-3.3-70b-versatile"

#: Fast auxiliary model used for reasoning summaries.
SUMMARY_MODEL = "llama-3.1-8b-instant"

#: Default sampling parameters when settings leave them unset.
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.95

#: Extra header enabling inference metrics on the Responses endpoint.
RESPONSES_BETA_HEADER = {"Groq-Beta": "inference-metrics"}


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """Capabilities of a model as needed by the orchestrator.

    Attributes:
        context: Context window size in tokens
        vision_supported: Whether image parts may be sent to the model
        builtin_tools_supported: Whether provider built-in tools (code interpreter,
            browser search) may be attached to requests
    """

    context: int = 8192
    vision_supported: bool = False
    builtin_tools_supported: bool = False


#: Capability record used for unknown models.
DEFAULT_MODEL_INFO = ModelInfo()

#: Model ids containing these fragments are not chat models.
NON_CHAT_MODEL_MARKERS = ("whisper", "guard")

#: Models are re-fetched from the provider after this many seconds.
MODEL_CACHE_TTL_SECONDS = 5 * 60

# ============================================================================
# Streaming and Retry Configuration
# ============================================================================

#: Maximum retries for tool_use_failed / tool validation failures.
#: The first invocation is not a retry, so up to MAX_TOOL_USE_RETRIES + 1 calls are made.
MAX_TOOL_USE_RETRIES = 25

#: Temperature added per retry attempt.
RETRY_TEMPERATURE_STEP = 0.05

#: Pause before re-invoking the provider after a retryable failure (seconds).
RETRY_BACKOFF_SECONDS = 0.5

#: Error codes and message fragments that mark a failure as retryable.
RETRYABLE_ERROR_CODES = frozenset({"tool_use_failed"})
RETRYABLE_ERROR_PATTERNS = (
    "tool_use_failed",
    "Tool call validation failed",
    "was not in request.tools",
)

#: Diagnostic note appended to the last user message on retry.
RETRY_NOTE_TEMPLATE = "[Note: Previous attempt failed with error: {error}]"

#: Placeholder name for tools discovered without a name.
UNKNOWN_TOOL_NAME = "unknown_tool"

#: Separator between a remote server label and the tool name in shadow function calls.
SHADOW_TOOL_SEPARATOR = "__"

#: Per-property JSON Schema keywords kept by the tool schema sanitizer.
ALLOWED_SCHEMA_KEYWORDS = ("type", "description", "enum", "minimum", "maximum")

# ============================================================================
# Reasoning Summaries
# ============================================================================

#: Summarizer tick interval (seconds).
SUMMARY_INTERVAL_SECONDS = 2.0

#: Trailing words of reasoning sent to the summary model.
SUMMARY_WORD_WINDOW = 300

SUMMARY_TEMPERATURE = 0.3
SUMMARY_MAX_TOKENS = 10

#: Label used when the summary model returns nothing.
SUMMARY_EMPTY_FALLBACK = "Processing thoughts"

#: Label used when the summary call fails.
SUMMARY_ERROR_FALLBACK = "Analyzing reasoning"

# ============================================================================
# History Pruning
# ============================================================================

#: Fraction of the context window available to the prompt.
CONTEXT_BUDGET_RATIO = 0.9

#: Tokens reserved for the model's answer when pruning history.
RESPONSE_TOKEN_RESERVE = 1024

#: Per-message overhead added to token estimates.
MESSAGE_STRUCTURE_TOKEN_OVERHEAD = 10

#: Encoding model used for token estimates of non-OpenAI models.
TOKEN_ESTIMATE_MODEL = "gpt-4o"

#: Size of the LRU token-count cache.
TOKEN_CACHE_SIZE = 128

# ============================================================================
# Logging Configuration
# ============================================================================

#: Maximum size in bytes for log files before rotation (10MB).
LOG_MAX_SIZE = 10 * 1024 * 1024

#: Number of conversation log backups to retain during rotation.
LOG_BACKUP_COUNT_CONVERSATIONS = 5

#: Number of error log backups to retain during rotation.
LOG_BACKUP_COUNT_ERRORS = 3

#: Maximum characters to show in log previews for user input/response.
LOG_PREVIEW_LENGTH = 50

#: High-frequency delta events are logged once every N occurrences.
LOG_EVERY_N_EVENTS = 100

#: Length of the logger's component id.
SESSION_ID_LENGTH = 8

# ============================================================================
# Outbound Event Channels
# ============================================================================

EVENT_START = "start"
EVENT_CONTENT_DELTA = "content-delta"
EVENT_REASONING_DELTA = "reasoning-delta"
EVENT_REASONING_SUMMARY = "reasoning-summary"
EVENT_TOOL_CALLS_UPDATE = "tool-calls-update"
EVENT_TOOL_EXECUTION = "tool-execution"
EVENT_APPROVAL_REQUEST = "approval-request"
EVENT_RETRY = "retry"
EVENT_COMPLETE = "complete"
EVENT_ERROR = "error"
EVENT_CANCELLED = "cancelled"

#: Events after which a session accepts no further output.
TERMINAL_EVENTS = frozenset({EVENT_COMPLETE, EVENT_ERROR, EVENT_CANCELLED})

# ============================================================================
# Finish Reasons
# ============================================================================

FINISH_REASON_STOP = "stop"
FINISH_REASON_TOOL_CALLS = "tool_calls"
FINISH_REASON_MCP_APPROVAL = "mcp_approval_required"

#: Responses API statuses that mean the client still has tool work to do.
TOOL_PENDING_STATUSES = frozenset({"requires_action", "incomplete"})

# ============================================================================
# Conversation Cleaning
# ============================================================================

#: UI-only message fields stripped before sending history to the provider.
TRANSIENT_MESSAGE_FIELDS = (
    "reasoning",
    "isStreaming",
    "reasoningDuration",
    "reasoningSummaries",
    "liveReasoning",
    "liveExecutedTools",
    "executed_tools",
    "reasoningStartTime",
    "usage",
)

ASSISTANT_CONTENT_FALLBACK = "[Non-string content]"
TOOL_CONTENT_FALLBACK = "[Error stringifying tool content]"

# ============================================================================
# Error Messages
# ============================================================================

ERROR_API_KEY_MISSING = "API key not configured. Please add your GROQ API key in settings."
ERROR_VISION_UNSUPPORTED = (
    "The selected model ({model}) does not support image inputs. Please select a vision-capable model."
)
ERROR_STREAM_ENDED = "Stream ended unexpectedly."
ERROR_COMPLETION_FAILED = "Failed to get chat completion: {error}"
ERROR_RETRIES_EXHAUSTED = (
    "The model repeatedly failed to use tools correctly after {attempts} attempts. "
    "Please try rephrasing your request."
)
ERROR_RESPONSE_FAILED = "Response generation failed"

# ============================================================================
# Google Connectors (remote MCP on the provider side)
# ============================================================================

#: settings key -> (server_label, connector_id)
GOOGLE_CONNECTORS: dict[str, tuple[str, str]] = {
    "gmail": ("gmail", "connector_gmail"),
    "calendar": ("google_calendar", "connector_googlecalendar"),
    "drive": ("google_drive", "connector_googledrive"),
}

# ============================================================================
# Environment Configuration with Pydantic Validation
# ============================================================================


class BuiltInToolsConfig(BaseModel):
    """Provider built-in tools toggles."""

    code_interpreter: bool = False
    browser_search: bool = False


class GoogleConnectorsConfig(BaseModel):
    """Google connector toggles (remote MCP served by the provider)."""

    gmail: bool = False
    calendar: bool = False
    drive: bool = False


class RemoteMCPServerConfig(BaseModel):
    """A remote MCP server reached by the provider on the client's behalf."""

    server_label: str
    server_url: str
    require_approval: str = "never"
    headers: dict[str, str] | None = None


class Settings(BaseSettings):
    """Environment settings with validation.

    Loads from environment variables and .env file. A missing API key is not a
    validation error here: it is reported per request so the UI can prompt for it.
    """

    groq_api_key: str | None = Field(default=None, description="Groq API key")
    model: str = Field(default=DEFAULT_MODEL, description="Default chat model")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    top_p: float = Field(default=DEFAULT_TOP_P, ge=0.0, le=1.0)
    custom_system_prompt: str | None = Field(default=None, description="User instructions appended to system prompt")
    reasoning_effort: str | None = Field(default=None, description="Reasoning effort for gpt-oss models")

    # Protocol selection and toggles
    use_responses_api: bool = Field(default=False, description="Stream through the Responses API (SSE)")
    disable_thinking_summaries: bool = Field(default=False, description="Disable reasoning summary labels")
    retry_tool_failures: bool = Field(default=True, description="Retry tool_use_failed errors with backoff")
    summary_model: str = Field(default=SUMMARY_MODEL, description="Auxiliary model for reasoning summaries")

    # Custom endpoint (replaces the default base URL exactly as given)
    custom_api_base_url_enabled: bool = Field(default=False)
    custom_api_base_url: str | None = Field(default=None)

    # Tools
    built_in_tools: BuiltInToolsConfig = Field(default_factory=BuiltInToolsConfig)
    google_connectors: GoogleConnectorsConfig = Field(default_factory=GoogleConnectorsConfig)
    google_oauth_token: str | None = Field(default=None, description="OAuth token for Google connectors")
    remote_mcp_servers: list[RemoteMCPServerConfig] = Field(default_factory=list)

    # Diagnostics
    debug: bool = Field(default=False, description="Enable debug logging")
    http_request_logging: bool = Field(default=False, description="Enable HTTP request/response logging")
    enable_content_logging: bool = Field(default=False, description="Include redacted content previews in logs")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("custom_system_prompt", "custom_api_base_url")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat whitespace-only strings as unset."""
        if v is None or not v.strip():
            return None
        return v

    @property
    def api_base_url(self) -> str:
        """Base URL used for every provider request."""
        if self.custom_api_base_url_enabled and self.custom_api_base_url:
            return self.custom_api_base_url.strip()
        return DEFAULT_API_BASE_URL

    @property
    def has_api_key(self) -> bool:
        """Whether a usable (non-placeholder) API key is configured."""
        return bool(self.groq_api_key) and self.groq_api_key != API_KEY_PLACEHOLDER


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses LRU cache to ensure we only load and validate settings once.
    """
    return Settings()
