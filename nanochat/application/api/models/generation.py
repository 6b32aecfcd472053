"""
Generation API Models
=====================

Pydantic models for the generation endpoints and the polling surface.

The request body of `POST /generate-message` is the orchestrator's own
`GenerationRequest`, so validation (for example "a new conversation needs a
message") happens once, before anything is persisted. Response models are
plain views of the stored records.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from nanochat.core.config.constants import MessageRole, ReasoningEffort
from nanochat.core.models import Conversation, Message
from nanochat.llm_stream.models import GenerationRequest


class GenerateMessageRequest(GenerationRequest):
    """Body of `POST /generate-message`."""

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "message": "Summarize https://example.com/article",
                    "model_id": "zai-org/GLM-4.5-Air",
                    "web_search_mode": "standard",
                    "reasoning_effort": "low",
                }
            ]
        },
    }


class GenerateMessageResponse(BaseModel):
    ok: bool = True
    conversation_id: str


class CancelGenerationRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    session_token: str | None = Field(default=None, description="Accepted for client compatibility")


class CancelGenerationResponse(BaseModel):
    ok: bool = True
    cancelled: bool


class FollowUpRequest(BaseModel):
    conversation_id: str = Field(..., min_length=1)
    message_id: str = Field(..., min_length=1)


class FollowUpResponse(BaseModel):
    ok: bool = True
    suggestions: list[str] = Field(default_factory=list)


class ConversationView(BaseModel):
    id: str
    title: str
    generating: bool
    cost_usd: float | None = None
    pinned: bool = False
    public: bool = False
    branched_from: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, conversation: Conversation) -> "ConversationView":
        return cls(
            id=conversation.id,
            title=conversation.title,
            generating=conversation.generating,
            cost_usd=conversation.cost_usd,
            pinned=conversation.pinned,
            public=conversation.public,
            branched_from=conversation.branched_from,
            created_at=conversation.created_at,
            updated_at=conversation.updated_at,
        )


class MessageView(BaseModel):
    id: str
    conversation_id: str
    role: MessageRole
    content: str
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
    images: list[dict[str, Any]] = Field(default_factory=list)
    annotations: list[dict[str, Any]] | None = None
    follow_up_suggestions: list[str] | None = None
    created_at: datetime

    @classmethod
    def from_record(cls, message: Message) -> "MessageView":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            role=message.role,
            content=message.content,
            content_html=message.content_html,
            reasoning=message.reasoning,
            error=message.error,
            model_id=message.model_id,
            provider=message.provider,
            token_count=message.token_count,
            cost_usd=message.cost_usd,
            generation_id=message.generation_id,
            web_search_enabled=message.web_search_enabled,
            reasoning_effort=message.reasoning_effort,
            images=[
                {"url": image.url, "storage_id": image.storage_id, "file_name": image.file_name}
                for image in message.images
            ],
            annotations=message.annotations,
            follow_up_suggestions=message.follow_up_suggestions,
            created_at=message.created_at,
        )


class HealthResponse(BaseModel):
    status: str
    version: str
    environment: str
    active_generations: int
