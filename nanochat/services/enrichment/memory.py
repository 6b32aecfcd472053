"""
Memory Service

Two features share the gateway memory endpoint:

- **Context compression**: long histories (more than 4 messages) are sent to
  the endpoint and replaced by the compressed message list it returns.
- **Persistent memory**: a per-user summary carried across conversations.
  It is read from the store before a generation and re-compressed (prior
  memory + history + reply) after a successful one.

    POST /api/v1/memory {"messages": [...], "expiration_days": 30}
    → {"messages": [{"role", "content"}], "usage": {"total_tokens"}}
"""

import json
from datetime import timedelta
from typing import Any

import httpx

from nanochat.core.config.constants import (
    CONTEXT_COMPRESSION_MIN_MESSAGES,
    MEMORY_EXPIRATION_DAYS,
    Stage,
)
from nanochat.core.exceptions import MemoryServiceError
from nanochat.core.interfaces import ChatStore
from nanochat.core.logging import get_logger, log_stage
from nanochat.core.models import UserMemory, utc_now
from nanochat.services.enrichment.base import EnrichmentResult, post_json

logger = get_logger(__name__)

MEMORY_PATH = "/api/v1/memory"


def flatten_content(message: dict[str, Any]) -> dict[str, str]:
    """Multimodal content lists are sent to the memory endpoint as JSON text."""
    content = message.get("content")
    if not isinstance(content, str):
        content = json.dumps(content)
    return {"role": message.get("role", "user"), "content": content}


def memory_context_block(memory: str) -> str:
    return f"[MEMORY FROM PREVIOUS CONVERSATIONS]\n{memory}\n\n[CURRENT CONVERSATION]\n"


class MemoryService:
    def __init__(
        self,
        client: httpx.AsyncClient,
        store: ChatStore,
        expiration_days: int = MEMORY_EXPIRATION_DAYS,
    ):
        self._client = client
        self._store = store
        self._expiration_days = expiration_days

    async def fetch(self, user_id: str) -> EnrichmentResult[str | None]:
        """Stored persistent memory text for a user (None when there is none)."""
        try:
            memory = await self._store.get_user_memory(user_id)
        except Exception as e:
            log_stage(logger, Stage.MEMORY_FETCH, "Failed to fetch memory", level="warning", error=str(e))
            return EnrichmentResult.failure(MemoryServiceError.from_exception(e))
        return EnrichmentResult.success(memory.content if memory and memory.content else None)

    async def compress(
        self, messages: list[dict[str, Any]], api_key: str
    ) -> EnrichmentResult[list[dict[str, Any]]]:
        """
        Compress a history through the gateway.

        Histories at or below the threshold are returned unchanged. Any
        failure yields a failed result; callers fall back to the original.
        """
        if len(messages) <= CONTEXT_COMPRESSION_MIN_MESSAGES:
            return EnrichmentResult.success(messages)

        try:
            payload = await self._post_memory([flatten_content(m) for m in messages], api_key)
        except (httpx.HTTPError, ValueError) as e:
            log_stage(
                logger, Stage.CONTEXT_COMPRESSION, "Context compression failed", level="warning", error=str(e)
            )
            return EnrichmentResult.failure(MemoryServiceError.from_exception(e))

        compressed = payload.get("messages") if isinstance(payload, dict) else None
        if not isinstance(compressed, list) or not compressed:
            return EnrichmentResult.failure(
                MemoryServiceError("Memory endpoint returned no messages")
            )

        log_stage(
            logger,
            Stage.CONTEXT_COMPRESSION,
            "Context compression applied",
            original=len(messages),
            compressed=len(compressed),
        )
        return EnrichmentResult.success(compressed)

    async def update(
        self,
        user_id: str,
        prior_memory: str | None,
        history: list[dict[str, Any]],
        reply: str,
        api_key: str,
    ) -> EnrichmentResult[UserMemory]:
        """Re-compress prior memory + history + reply into the user's stored memory."""
        messages = []
        if prior_memory:
            messages.append({"role": "system", "content": prior_memory})
        messages.extend(flatten_content(m) for m in history)
        messages.append({"role": "assistant", "content": reply})

        try:
            payload = await self._post_memory(messages, api_key)
            compressed = payload["messages"][0]["content"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            log_stage(logger, Stage.MEMORY_UPDATE, "Memory update failed", level="warning", error=str(e))
            return EnrichmentResult.failure(MemoryServiceError.from_exception(e))

        if not compressed:
            return EnrichmentResult.failure(MemoryServiceError("Memory endpoint returned empty content"))

        token_count = (payload.get("usage") or {}).get("total_tokens")
        memory = await self._store.upsert_user_memory(
            user_id,
            compressed,
            token_count=token_count,
            expires_at=utc_now() + timedelta(days=self._expiration_days),
        )
        log_stage(logger, Stage.MEMORY_UPDATE, "Persistent memory updated", chars=len(compressed))
        return EnrichmentResult.success(memory)

    async def _post_memory(self, messages: list[dict[str, Any]], api_key: str) -> dict[str, Any]:
        return await post_json(
            self._client,
            MEMORY_PATH,
            api_key,
            {"messages": messages, "expiration_days": self._expiration_days},
        )
