import asyncio
import random
import uuid
from collections.abc import AsyncGenerator
from typing import Any

from nanochat.core.logging import get_logger
from nanochat.llm_stream.providers.base_provider import BaseProvider, ProviderConfig, StreamChunk
from nanochat.services.cost import TokenUsage

logger = get_logger(__name__)

LOREM_IPSUM = (
    "Lorem ipsum dolor sit amet, consectetur adipiscing elit. "
    "Sed do eiusmod tempor incididunt ut labore et dolore magna aliqua. "
    "Ut enim ad minim veniam, quis nostrud exercitation ullamco laboris "
    "nisi ut aliquip ex ea commodo consequat."
)


class FakeProvider(BaseProvider):
    """
    A fake completion provider for local development and tests.

    Streams a scripted response (or lorem ipsum) with optional latency,
    optional reasoning deltas and a final usage chunk, and can be told to
    fail after a number of chunks.
    """

    def __init__(
        self,
        config: ProviderConfig | None = None,
        chunks: list[str] | None = None,
        reasoning_chunks: list[str] | None = None,
        usage: TokenUsage | None = None,
        emit_usage: bool = True,
        completion_text: str = "Friendly Greeting Chat",
        min_latency: float = 0.0,
        max_latency: float = 0.0,
        fail_after: int | None = None,
    ):
        super().__init__(config or ProviderConfig(name="fake", base_url="http://fake.local"))
        self.chunks = chunks
        self.reasoning_chunks = reasoning_chunks or []
        self.usage = usage
        self.emit_usage = emit_usage
        self.completion_text = completion_text
        self.min_latency = min_latency
        self.max_latency = max_latency
        self.fail_after = fail_after
        self.calls: list[dict[str, Any]] = []

    async def _stream_internal(
        self, messages: list[dict[str, Any]], model: str, api_key: str, **kwargs
    ) -> AsyncGenerator[StreamChunk, None]:
        self.calls.append({"messages": messages, "model": model, "api_key": api_key, **kwargs})
        generation_id = f"gen-{uuid.uuid4().hex[:12]}"

        for reasoning in self.reasoning_chunks:
            await self._sleep()
            yield StreamChunk(reasoning=reasoning, generation_id=generation_id, model=model)

        chunks = self.chunks if self.chunks is not None else self._chunk_text(LOREM_IPSUM)
        for index, text in enumerate(chunks):
            if self.fail_after is not None and index >= self.fail_after:
                raise RuntimeError("Simulated provider failure")
            await self._sleep()
            yield StreamChunk(content=text, generation_id=generation_id, model=model)

        yield StreamChunk(finish_reason="stop", generation_id=generation_id, model=model)

        if self.emit_usage:
            completion_tokens = sum(len(c.split()) for c in chunks) or 1
            yield StreamChunk(
                generation_id=generation_id,
                model=model,
                usage=self.usage or TokenUsage(prompt_tokens=10, completion_tokens=completion_tokens),
            )

    async def _complete_internal(
        self, messages: list[dict[str, Any]], model: str, api_key: str, **kwargs
    ) -> str:
        self.calls.append({"messages": messages, "model": model, "api_key": api_key, **kwargs})
        await self._sleep()
        return self.completion_text

    async def _sleep(self) -> None:
        if self.max_latency > 0:
            await asyncio.sleep(random.uniform(self.min_latency, self.max_latency))
        else:
            await asyncio.sleep(0)

    def _chunk_text(self, text: str) -> list[str]:
        """Splits text into small chunks to simulate tokens."""
        chunks = []
        i = 0
        while i < len(text):
            chunk_size = random.randint(2, 6)
            chunks.append(text[i : i + chunk_size])
            i += chunk_size
        return chunks
