"""
Conversation Routes
===================

Polling surface for the state a background run persists: clients read the
conversation (`generating`, `title`, `cost_usd`) and its messages until
`generating` flips back to false.
"""

from fastapi import APIRouter

from nanochat.application.api.dependencies import StoreDep, UserIdDep
from nanochat.application.api.models import ConversationView, MessageView
from nanochat.core.exceptions import ConversationNotFoundError
from nanochat.core.interfaces import ChatStore
from nanochat.core.models import Conversation

router = APIRouter(prefix="/conversations", tags=["Conversations"])


async def _owned_conversation(store: ChatStore, user_id: str, conversation_id: str) -> Conversation:
    conversation = await store.get_conversation(conversation_id)
    if conversation is None or conversation.user_id != user_id:
        raise ConversationNotFoundError(
            "Conversation not found or unauthorized", conversation_id=conversation_id
        )
    return conversation


@router.get("/{conversation_id}", response_model=ConversationView)
async def get_conversation(conversation_id: str, store: StoreDep, user_id: UserIdDep) -> ConversationView:
    conversation = await _owned_conversation(store, user_id, conversation_id)
    return ConversationView.from_record(conversation)


@router.get("/{conversation_id}/messages", response_model=list[MessageView])
async def list_messages(conversation_id: str, store: StoreDep, user_id: UserIdDep) -> list[MessageView]:
    await _owned_conversation(store, user_id, conversation_id)
    messages = await store.list_messages(conversation_id)
    return [MessageView.from_record(message) for message in messages]
