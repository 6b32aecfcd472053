"""
Store Protocols

Abstract contracts for the persistence layer the orchestrator depends on.
The database schema is owned elsewhere; any backend that satisfies these
protocols can be injected.

Architectural Decision: Protocol-based abstraction
- The orchestrator never imports a concrete store
- Facilitates testing with the in-memory implementation
- Every mutation is a single-row update, so a SQL backend can implement
  each method as one statement
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from nanochat.core.config.constants import Provider
from nanochat.core.models import (
    Conversation,
    EnabledModel,
    Message,
    StoredFile,
    UserKey,
    UserMemory,
    UserRule,
    UserSettings,
)


@runtime_checkable
class ChatStore(Protocol):
    """
    Conversations, messages and per-user configuration.

    Implementations:
    - InMemoryChatStore: development and tests
    """

    # Conversations
    async def create_conversation(self, conversation: Conversation) -> Conversation:
        ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        ...

    async def try_start_generation(self, conversation_id: str) -> bool:
        """
        Set `generating=True` only if it is currently False.

        Returns:
            True if this caller flipped the flag, False if a run was already active
        """
        ...

    async def set_generating(self, conversation_id: str, generating: bool) -> None:
        ...

    async def add_conversation_cost(self, conversation_id: str, delta: float) -> None:
        """Add `delta` to the conversation total (a null total counts as 0)."""
        ...

    async def update_title_if_default(self, conversation_id: str, title: str) -> bool:
        """Write `title` only while the conversation still has the default title."""
        ...

    async def list_generating_conversations(self) -> list[Conversation]:
        ...

    # Messages
    async def create_message(self, message: Message) -> Message:
        ...

    async def get_message(self, message_id: str) -> Message | None:
        ...

    async def list_messages(self, conversation_id: str) -> list[Message]:
        """Messages of a conversation ordered by creation time."""
        ...

    async def update_message(self, message_id: str, **fields: Any) -> Message:
        ...

    async def finalize_message(self, message_id: str, **fields: Any) -> bool:
        """
        Apply the terminal update and set `finalized=True`.

        Returns:
            False (and writes nothing) if the message was already finalized
        """
        ...

    # Per-user configuration
    async def get_enabled_model(self, user_id: str, model_id: str) -> EnabledModel | None:
        ...

    async def add_enabled_model(self, enabled_model: EnabledModel) -> EnabledModel:
        ...

    async def get_user_key(self, user_id: str, provider: Provider) -> UserKey | None:
        ...

    async def list_user_rules(self, user_id: str) -> list[UserRule]:
        ...

    async def get_user_settings(self, user_id: str) -> UserSettings:
        """Stored settings, or defaults when the user has none."""
        ...

    async def get_user_memory(self, user_id: str) -> UserMemory | None:
        ...

    async def upsert_user_memory(
        self,
        user_id: str,
        content: str,
        token_count: int | None = None,
        expires_at: datetime | None = None,
    ) -> UserMemory:
        ...


@runtime_checkable
class FileStorage(Protocol):
    """Binary storage for uploaded and generated media."""

    async def save(self, user_id: str, data: bytes, mime_type: str, filename: str) -> StoredFile:
        ...

    async def get(self, file_id: str) -> StoredFile | None:
        ...

    async def read_bytes(self, file_id: str) -> bytes:
        ...
