"""
In-Memory Chat Store

Implements the ChatStore protocol with plain dicts. Used for development,
the fake-LLM mode and every test in the suite.

Records are copied on the way in and on the way out, so callers never hold
a live reference to stored state (mirrors what a database round-trip does).

Note: single-process only. Mutations happen without awaits in between, so
each method is atomic with respect to other coroutines on the event loop.
"""

import copy
from dataclasses import replace
from datetime import datetime
from typing import Any

from nanochat.core.config.constants import DEFAULT_CONVERSATION_TITLE, Provider
from nanochat.core.models import (
    Conversation,
    EnabledModel,
    Message,
    UserKey,
    UserMemory,
    UserRule,
    UserSettings,
    utc_now,
)


class InMemoryChatStore:
    """Dict-backed ChatStore."""

    def __init__(self):
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, Message] = {}
        self._message_order: dict[str, list[str]] = {}
        self._enabled_models: dict[tuple[str, str], EnabledModel] = {}
        self._user_keys: dict[tuple[str, str], UserKey] = {}
        self._rules: dict[str, list[UserRule]] = {}
        self._settings: dict[str, UserSettings] = {}
        self._memories: dict[str, UserMemory] = {}

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        self._conversations[conversation.id] = copy.deepcopy(conversation)
        self._message_order.setdefault(conversation.id, [])
        return copy.deepcopy(conversation)

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        conversation = self._conversations.get(conversation_id)
        return copy.deepcopy(conversation) if conversation else None

    async def try_start_generation(self, conversation_id: str) -> bool:
        conversation = self._conversations.get(conversation_id)
        if conversation is None or conversation.generating:
            return False
        conversation.generating = True
        conversation.updated_at = utc_now()
        return True

    async def set_generating(self, conversation_id: str, generating: bool) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is not None:
            conversation.generating = generating
            conversation.updated_at = utc_now()

    async def add_conversation_cost(self, conversation_id: str, delta: float) -> None:
        conversation = self._conversations.get(conversation_id)
        if conversation is not None:
            conversation.cost_usd = (conversation.cost_usd or 0.0) + delta
            conversation.updated_at = utc_now()

    async def update_title_if_default(self, conversation_id: str, title: str) -> bool:
        conversation = self._conversations.get(conversation_id)
        if conversation is None or conversation.title != DEFAULT_CONVERSATION_TITLE:
            return False
        conversation.title = title
        conversation.updated_at = utc_now()
        return True

    async def list_generating_conversations(self) -> list[Conversation]:
        return [copy.deepcopy(c) for c in self._conversations.values() if c.generating]

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create_message(self, message: Message) -> Message:
        self._messages[message.id] = copy.deepcopy(message)
        self._message_order.setdefault(message.conversation_id, []).append(message.id)
        return copy.deepcopy(message)

    async def get_message(self, message_id: str) -> Message | None:
        message = self._messages.get(message_id)
        return copy.deepcopy(message) if message else None

    async def list_messages(self, conversation_id: str) -> list[Message]:
        return [
            copy.deepcopy(self._messages[message_id])
            for message_id in self._message_order.get(conversation_id, [])
        ]

    async def update_message(self, message_id: str, **fields: Any) -> Message:
        current = self._messages.get(message_id)
        if current is None:
            raise KeyError(f"Message {message_id} not found")
        updated = replace(current, **copy.deepcopy(fields))
        self._messages[message_id] = updated
        return copy.deepcopy(updated)

    async def finalize_message(self, message_id: str, **fields: Any) -> bool:
        current = self._messages.get(message_id)
        if current is None:
            raise KeyError(f"Message {message_id} not found")
        if current.finalized:
            return False
        self._messages[message_id] = replace(current, finalized=True, **copy.deepcopy(fields))
        return True

    # ------------------------------------------------------------------
    # Per-user configuration
    # ------------------------------------------------------------------

    async def get_enabled_model(self, user_id: str, model_id: str) -> EnabledModel | None:
        return self._enabled_models.get((user_id, model_id))

    async def add_enabled_model(self, enabled_model: EnabledModel) -> EnabledModel:
        self._enabled_models[(enabled_model.user_id, enabled_model.model_id)] = enabled_model
        return enabled_model

    async def get_user_key(self, user_id: str, provider: Provider) -> UserKey | None:
        return self._user_keys.get((user_id, Provider(provider).value))

    async def set_user_key(self, user_key: UserKey) -> None:
        self._user_keys[(user_key.user_id, Provider(user_key.provider).value)] = user_key

    async def list_user_rules(self, user_id: str) -> list[UserRule]:
        return list(self._rules.get(user_id, []))

    async def add_user_rule(self, rule: UserRule) -> UserRule:
        self._rules.setdefault(rule.user_id, []).append(rule)
        return rule

    async def get_user_settings(self, user_id: str) -> UserSettings:
        return copy.deepcopy(self._settings.get(user_id) or UserSettings(user_id=user_id))

    async def set_user_settings(self, settings: UserSettings) -> None:
        self._settings[settings.user_id] = copy.deepcopy(settings)

    async def get_user_memory(self, user_id: str) -> UserMemory | None:
        memory = self._memories.get(user_id)
        if memory and memory.expires_at and memory.expires_at <= utc_now():
            return None
        return copy.deepcopy(memory) if memory else None

    async def upsert_user_memory(
        self,
        user_id: str,
        content: str,
        token_count: int | None = None,
        expires_at: datetime | None = None,
    ) -> UserMemory:
        memory = UserMemory(
            user_id=user_id, content=content, token_count=token_count, expires_at=expires_at
        )
        self._memories[user_id] = memory
        return copy.deepcopy(memory)
