"""
System Constants and Enumerations

This module defines system-wide constants and enumerations used across
the generation backend.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for magic numbers (flat fees, thresholds)
- Type-safe enums for state management
- Easy to update and track changes
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for execution tracking and logging)
# ============================================================================


class Stage(str, Enum):
    """
    Orchestration stages for execution tracking.

    Format: {SEQUENCE}_{DESCRIPTIVE_NAME}
    - SEQUENCE: Numeric order (0.0, 1.0, 2.0) or alphabetic prefix (E, M)
    - DESCRIPTIVE_NAME: Clear, uppercase description with underscores

    Examples:
        log_stage(logger, Stage.WEB_SEARCH, "Web search completed", cost=0.006)
    """

    # Synchronous request handling (before the response is sent)
    REQUEST_VALIDATION = "1.0_REQUEST_VALIDATION"
    MODEL_RESOLUTION = "1.1_MODEL_RESOLUTION"
    CREDENTIAL_RESOLUTION = "1.2_CREDENTIAL_RESOLUTION"
    CONVERSATION_SETUP = "1.3_CONVERSATION_SETUP"
    MODE_DISPATCH = "1.4_MODE_DISPATCH"

    # Background text generation
    HISTORY_LOAD = "2.0_HISTORY_LOAD"
    WEB_SEARCH = "2.1_WEB_SEARCH"
    URL_SCRAPE = "2.2_URL_SCRAPE"
    MEMORY_FETCH = "2.3_MEMORY_FETCH"
    RULES = "2.4_RULES"
    PROMPT_ASSEMBLY = "2.5_PROMPT_ASSEMBLY"
    CONTEXT_COMPRESSION = "2.6_CONTEXT_COMPRESSION"
    STREAMING = "3.0_STREAMING"
    FINALIZE = "4.0_FINALIZE"
    MEMORY_UPDATE = "4.1_MEMORY_UPDATE"
    CLEANUP = "5.0_CLEANUP"

    # Media generation
    MEDIA_SUBMIT = "M.1_MEDIA_SUBMIT"
    MEDIA_POLL = "M.2_MEDIA_POLL"

    # Cross-cutting concerns
    CANCELLATION = "C_CANCELLATION"
    TITLE = "T_TITLE_GENERATION"
    FOLLOW_UP = "F_FOLLOW_UP"
    CATALOG = "K_MODEL_CATALOG"


# ============================================================================
# Generation State Machine
# ============================================================================


class GenerationState(str, Enum):
    """
    States of one orchestration run.

    Idle → AwaitingModel → ModeDispatch → {Text|Image|Video}Generating
    → Finalizing → {Completed | Failed | Cancelled}
    """

    IDLE = "idle"
    AWAITING_MODEL = "awaiting_model"
    MODE_DISPATCH = "mode_dispatch"
    TEXT_GENERATING = "text_generating"
    IMAGE_GENERATING = "image_generating"
    VIDEO_GENERATING = "video_generating"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (GenerationState.COMPLETED, GenerationState.FAILED, GenerationState.CANCELLED)


class ModelMode(str, Enum):
    """Output modality of a model; decided once per request."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"


# ============================================================================
# Message / Request Enums
# ============================================================================


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Provider(str, Enum):
    """Credential providers a user can store keys for."""

    NANOGPT = "nanogpt"
    HUGGINGFACE = "huggingface"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class WebSearchMode(str, Enum):
    OFF = "off"
    STANDARD = "standard"
    DEEP = "deep"


class ReasoningEffort(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RuleAttach(str, Enum):
    ALWAYS = "always"
    MANUAL = "manual"


# ============================================================================
# Conversation Defaults
# ============================================================================

DEFAULT_CONVERSATION_TITLE = "New Chat"
CANCELLED_ERROR_TEXT = "Cancelled by user"

# ============================================================================
# Flat Fees (USD)
# ============================================================================

WEB_SEARCH_COST_STANDARD = 0.006
WEB_SEARCH_COST_DEEP = 0.06
URL_SCRAPE_COST_PER_URL = 0.001

# ============================================================================
# Generation Thresholds
# ============================================================================

# Context compression only kicks in above this many history messages
CONTEXT_COMPRESSION_MIN_MESSAGES = 4
MEMORY_EXPIRATION_DAYS = 30
COMPLETION_TEMPERATURE = 0.7
TITLE_MAX_TOKENS = 20
TITLE_TEMPERATURE = 0.5
FOLLOW_UP_MIN_CONTENT_LENGTH = 100
FOLLOW_UP_MAX_SUGGESTIONS = 3
MAX_URLS_PER_MESSAGE = 5
GENERATION_STATE_HISTORY_LIMIT = 1000

# Retry settings (catalog fetches only; completions are never retried)
MAX_RETRIES = 3
RETRY_BASE_DELAY = 0.5
RETRY_MAX_DELAY = 5.0

# ============================================================================
# HTTP Headers
# ============================================================================

HEADER_REQUEST_ID = "X-Request-ID"
HEADER_USER_ID = "X-User-ID"
