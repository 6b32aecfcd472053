"""
Base Provider Abstract Class

This module defines the abstract base class for completion providers.
Concrete implementations (the OpenAI-compatible gateway, the fake provider)
inherit from this class.

Architectural Decision: Abstract base class for consistent patterns
- Common interface for streamed and one-shot completions
- The API key is passed per call: every run uses the key resolved for its user
- Streams are never retried; a failure mid-stream is terminal for the run
- Structured error handling (provider SDK errors map to ProviderError subclasses)
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from nanochat.core.config.constants import Stage
from nanochat.core.logging import get_logger, log_stage
from nanochat.services.cost import TokenUsage

logger = get_logger(__name__)


@dataclass
class StreamChunk:
    """
    One streamed delta from the provider.

    Attributes:
        content: Text delta (may be empty)
        reasoning: Reasoning delta (may be empty)
        annotations: Citation/annotation objects carried on this delta
        generation_id: Provider id of the completion
        finish_reason: Why streaming ended (if applicable)
        usage: Token usage (only on the final chunk when usage is requested)
    """

    content: str = ""
    reasoning: str = ""
    annotations: list[dict[str, Any]] = field(default_factory=list)
    generation_id: str | None = None
    finish_reason: str | None = None
    usage: TokenUsage | None = None
    model: str | None = None


@dataclass
class ProviderConfig:
    """
    Configuration for a completion provider.

    Attributes:
        name: Provider name
        base_url: Base URL of the OpenAI-compatible API
        timeout: Request timeout in seconds
    """

    name: str
    base_url: str
    timeout: float = 60.0


class BaseProvider(ABC):
    """
    Abstract base class for completion providers.

    Subclasses must implement:
    - _stream_internal(): Streamed chat completion
    - _complete_internal(): One-shot chat completion (titles, follow-ups)

    Usage:
        async with aclosing(provider.stream(messages, model, api_key)) as chunks:
            async for chunk in chunks:
                ...
    """

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.name = config.name

    async def stream(
        self,
        messages: list[dict[str, Any]],
        model: str,
        api_key: str,
        conversation_id: str | None = None,
        **kwargs,
    ) -> AsyncGenerator[StreamChunk, None]:
        """
        Stream a chat completion.

        Args:
            messages: OpenAI-format chat messages
            model: Model identifier
            api_key: Key resolved for the requesting user
            conversation_id: Conversation ID for log correlation
            **kwargs: Extra completion parameters (temperature, reasoning_effort)

        Yields:
            StreamChunk: Individual response deltas

        Raises:
            ProviderError: On provider errors
        """
        log_stage(
            logger,
            Stage.STREAMING,
            "Opening completion stream",
            provider=self.name,
            model=model,
            message_count=len(messages),
        )

        chunk_count = 0
        try:
            async with aclosing(self._stream_internal(messages, model, api_key, **kwargs)) as chunks:
                async for chunk in chunks:
                    chunk_count += 1
                    yield chunk
        except Exception as e:
            log_stage(
                logger,
                Stage.STREAMING,
                "Stream failed",
                level="error",
                provider=self.name,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        log_stage(logger, Stage.STREAMING, "Stream completed", provider=self.name, chunk_count=chunk_count)

    async def complete(
        self, messages: list[dict[str, Any]], model: str, api_key: str, **kwargs
    ) -> str:
        """
        Run a non-streamed completion and return the message text.

        Raises:
            ProviderError: On provider errors
        """
        return await self._complete_internal(messages, model, api_key, **kwargs)

    @abstractmethod
    def _stream_internal(
        self, messages: list[dict[str, Any]], model: str, api_key: str, **kwargs
    ) -> AsyncGenerator[StreamChunk, None]:
        pass

    @abstractmethod
    async def _complete_internal(
        self, messages: list[dict[str, Any]], model: str, api_key: str, **kwargs
    ) -> str:
        pass
