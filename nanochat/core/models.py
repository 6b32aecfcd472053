"""
Domain Records

Plain dataclasses for the rows the orchestrator reads and writes. The store
implementation decides how they are persisted; the orchestrator only ever
works with these types.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from nanochat.core.config.constants import (
    DEFAULT_CONVERSATION_TITLE,
    GenerationState,
    MessageRole,
    ModelMode,
    Provider,
    ReasoningEffort,
    RuleAttach,
    WebSearchMode,
)


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Conversation:
    user_id: str
    id: str = field(default_factory=new_id)
    title: str = DEFAULT_CONVERSATION_TITLE
    generating: bool = False
    cost_usd: float | None = None
    pinned: bool = False
    public: bool = False
    branched_from: str | None = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class ImageAttachment:
    """An image attached to a user message; `storage_id` points at a StoredFile."""

    url: str
    storage_id: str | None = None
    file_name: str | None = None


@dataclass
class Message:
    conversation_id: str
    role: MessageRole
    content: str = ""
    id: str = field(default_factory=new_id)
    content_html: str | None = None
    reasoning: str | None = None
    error: str | None = None
    model_id: str | None = None
    provider: str | None = None
    token_count: int | None = None
    cost_usd: float | None = None
    generation_id: str | None = None
    web_search_enabled: bool = False
    reasoning_effort: ReasoningEffort | None = None
    images: list[ImageAttachment] = field(default_factory=list)
    annotations: list[dict[str, Any]] | None = None
    follow_up_suggestions: list[str] | None = None
    finalized: bool = False
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class EnabledModel:
    user_id: str
    model_id: str
    provider: Provider = Provider.NANOGPT
    pinned: bool = False
    id: str = field(default_factory=new_id)


@dataclass
class UserKey:
    user_id: str
    provider: Provider
    key: str
    encrypted: bool = False


@dataclass
class UserRule:
    user_id: str
    name: str
    rule: str
    attach: RuleAttach = RuleAttach.MANUAL
    id: str = field(default_factory=new_id)


@dataclass
class UserSettings:
    user_id: str
    persistent_memory_enabled: bool = False
    context_memory_enabled: bool = False
    follow_up_model_id: str | None = None


@dataclass
class UserMemory:
    user_id: str
    content: str
    token_count: int | None = None
    expires_at: datetime | None = None
    updated_at: datetime = field(default_factory=utc_now)


@dataclass
class StoredFile:
    user_id: str
    filename: str
    mime_type: str
    size: int
    path: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class ModelPricing:
    """USD per one million tokens."""

    prompt: float | None = None
    completion: float | None = None


@dataclass
class ModelDescriptor:
    """A model as advertised by the gateway catalog."""

    id: str
    name: str | None = None
    input_modalities: list[str] = field(default_factory=lambda: ["text"])
    output_modalities: list[str] = field(default_factory=lambda: ["text"])
    pricing: ModelPricing | None = None
    description: str | None = None

    @property
    def mode(self) -> ModelMode:
        if "image" in self.output_modalities:
            return ModelMode.IMAGE
        if "video" in self.output_modalities:
            return ModelMode.VIDEO
        return ModelMode.TEXT

    @property
    def supports_images(self) -> bool:
        return "image" in self.input_modalities


@dataclass
class GenerationContext:
    """
    Everything one background run needs, resolved synchronously before the
    HTTP response is sent. Owned by exactly one run.
    """

    user_id: str
    conversation_id: str
    api_key: str
    model_id: str
    model: ModelDescriptor | None
    rules: list[UserRule]
    user_settings: UserSettings
    user_message: Message | None
    is_new_conversation: bool = False
    reasoning_effort: ReasoningEffort | None = None
    web_search_mode: WebSearchMode = WebSearchMode.OFF
    handle: Any = None
    state: GenerationState = GenerationState.IDLE

    @property
    def mode(self) -> ModelMode:
        return self.model.mode if self.model else ModelMode.TEXT
