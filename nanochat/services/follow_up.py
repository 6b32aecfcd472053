"""
Follow-up Question Suggestions

Suggests up to three follow-up questions for a finished assistant reply.
Any model or parsing failure yields an empty list.
"""

import json

from nanochat.core.config.constants import (
    COMPLETION_TEMPERATURE,
    FOLLOW_UP_MAX_SUGGESTIONS,
    FOLLOW_UP_MIN_CONTENT_LENGTH,
    MessageRole,
    Stage,
)
from nanochat.core.exceptions import ConversationNotFoundError, MessageNotFoundError, ProviderError
from nanochat.core.interfaces import ChatStore
from nanochat.core.logging import get_logger, log_stage
from nanochat.core.models import Message
from nanochat.llm_stream.providers import BaseProvider
from nanochat.services.credential_resolver import CredentialResolver

logger = get_logger(__name__)

FOLLOW_UP_PROMPT = """Here is a question from a user and the answer they received.

Question:
\"\"\"{question}\"\"\"

Answer:
\"\"\"{answer}\"\"\"

Suggest exactly 3 short follow-up questions the user might ask next. Write them from the user's point of view.
Respond with a JSON array of strings and nothing else, for example: ["First question?", "Second question?", "Third question?"]
"""


def parse_suggestions(raw: str | None) -> list[str]:
    """Parse a JSON array of strings; anything else yields []."""
    if not raw:
        return []
    text = raw.strip()
    if text.startswith("```"):
        text = text.strip("`")
        text = text[text.find("["):] if "[" in text else text
    try:
        suggestions = json.loads(text)
    except ValueError:
        return []
    if not isinstance(suggestions, list) or not all(isinstance(s, str) for s in suggestions):
        return []
    return suggestions[:FOLLOW_UP_MAX_SUGGESTIONS]


def should_suggest(message: Message) -> bool:
    return message.role == MessageRole.ASSISTANT and len(message.content) > FOLLOW_UP_MIN_CONTENT_LENGTH


class FollowUpService:
    def __init__(
        self,
        provider: BaseProvider,
        store: ChatStore,
        credentials: CredentialResolver,
        default_model_id: str,
    ):
        self._provider = provider
        self._store = store
        self._credentials = credentials
        self._default_model_id = default_model_id

    async def generate(self, user_id: str, conversation_id: str, message_id: str) -> list[str]:
        """
        Generate and store follow-up suggestions for an assistant message.

        Raises:
            ConversationNotFoundError: Conversation missing or owned by someone else
            MessageNotFoundError: Message missing or not in the conversation
            CredentialNotConfiguredError: No API key for the user
        """
        conversation = await self._store.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise ConversationNotFoundError(
                "Conversation not found or unauthorized", conversation_id=conversation_id
            )

        message = await self._store.get_message(message_id)
        if message is None or message.conversation_id != conversation_id:
            raise MessageNotFoundError("Message not found", conversation_id=conversation_id)

        if not should_suggest(message):
            log_stage(logger, Stage.FOLLOW_UP, "Skipped: not an assistant message or too short", level="debug")
            return []

        api_key = await self._credentials.resolve(user_id)
        settings = await self._store.get_user_settings(user_id)
        model_id = settings.follow_up_model_id or self._default_model_id

        history = await self._store.list_messages(conversation_id)
        position = next((i for i, m in enumerate(history) if m.id == message_id), len(history))
        question = next(
            (m.content for m in reversed(history[:position]) if m.role == MessageRole.USER), ""
        )

        try:
            raw = await self._provider.complete(
                [{"role": "user", "content": FOLLOW_UP_PROMPT.format(question=question, answer=message.content)}],
                model_id,
                api_key,
                temperature=COMPLETION_TEMPERATURE,
            )
        except ProviderError as e:
            log_stage(logger, Stage.FOLLOW_UP, "Failed to generate suggestions", level="warning", error=str(e))
            return []

        suggestions = parse_suggestions(raw)
        if not suggestions:
            log_stage(logger, Stage.FOLLOW_UP, "No usable suggestions generated", level="debug")
            return []

        await self._store.update_message(message_id, follow_up_suggestions=suggestions)
        log_stage(logger, Stage.FOLLOW_UP, "Generated follow-up suggestions", count=len(suggestions))
        return suggestions
