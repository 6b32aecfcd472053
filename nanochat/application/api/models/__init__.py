"""
API Models Package
==================

Pydantic models for API request/response validation.
"""

from nanochat.application.api.models.generation import (
    CancelGenerationRequest,
    CancelGenerationResponse,
    ConversationView,
    FollowUpRequest,
    FollowUpResponse,
    GenerateMessageRequest,
    GenerateMessageResponse,
    HealthResponse,
    MessageView,
)

__all__ = [
    "CancelGenerationRequest",
    "CancelGenerationResponse",
    "ConversationView",
    "FollowUpRequest",
    "FollowUpResponse",
    "GenerateMessageRequest",
    "GenerateMessageResponse",
    "HealthResponse",
    "MessageView",
]
