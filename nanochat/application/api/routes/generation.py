"""
Generation Routes
=================

    POST /generate-message               start (or continue) a generation
    POST /cancel-generation              signal the active run of a conversation
    POST /generate-follow-up-questions   suggest follow-up questions for a reply

`/generate-message` answers as soon as the conversation and the user message
are persisted; the reply is produced by a background run and observed through
the conversation polling endpoints. Errors raised before that point
(validation, model, credential, ownership, double submission) are mapped to
JSON by the exception handlers.
"""

from fastapi import APIRouter, status

from nanochat.application.api.dependencies import FollowUpDep, OrchestratorDep, UserIdDep
from nanochat.application.api.models import (
    CancelGenerationRequest,
    CancelGenerationResponse,
    FollowUpRequest,
    FollowUpResponse,
    GenerateMessageRequest,
    GenerateMessageResponse,
)
from nanochat.core.logging import get_logger, set_conversation_id

router = APIRouter(tags=["Generation"])
logger = get_logger(__name__)


@router.post(
    "/generate-message",
    response_model=GenerateMessageResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"description": "Invalid request or model not enabled"},
        401: {"description": "Missing user identity"},
        403: {"description": "No API key configured, or conversation not owned by the caller"},
        409: {"description": "A generation is already running for the conversation"},
    },
)
async def generate_message(
    body: GenerateMessageRequest, orchestrator: OrchestratorDep, user_id: UserIdDep
) -> GenerateMessageResponse:
    logger.info(
        "Generation requested",
        model_id=body.model_id,
        conversation_id=body.conversation_id,
        has_message=body.message is not None,
        image_count=len(body.images or []),
    )
    conversation_id = await orchestrator.start_generation(user_id, body)
    return GenerateMessageResponse(ok=True, conversation_id=conversation_id)


@router.post("/cancel-generation", response_model=CancelGenerationResponse)
async def cancel_generation(
    body: CancelGenerationRequest, orchestrator: OrchestratorDep, user_id: UserIdDep
) -> CancelGenerationResponse:
    set_conversation_id(body.conversation_id)
    cancelled = await orchestrator.cancel_generation(user_id, body.conversation_id)
    return CancelGenerationResponse(ok=True, cancelled=cancelled)


@router.post("/generate-follow-up-questions", response_model=FollowUpResponse)
async def generate_follow_up_questions(
    body: FollowUpRequest, follow_up: FollowUpDep, user_id: UserIdDep
) -> FollowUpResponse:
    set_conversation_id(body.conversation_id)
    suggestions = await follow_up.generate(user_id, body.conversation_id, body.message_id)
    return FollowUpResponse(ok=True, suggestions=suggestions)
