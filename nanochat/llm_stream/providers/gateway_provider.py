"""
Gateway Provider (OpenAI-compatible)

Streams chat completions from the NanoGPT gateway using the official
AsyncOpenAI client and translates SDK exceptions into the internal
exception hierarchy.

Architectural Decision: Use official SDK
- The gateway speaks the OpenAI chat completions protocol
- Gateway-specific delta fields (`reasoning`, `annotations`) are read from
  the SDK's extra fields
- SDK retries are disabled: completions are never retried
"""

from collections.abc import AsyncGenerator
from typing import Any

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    RateLimitError,
)

from nanochat.core.exceptions import (
    ProviderAPIError,
    ProviderAuthenticationError,
    ProviderNotAvailableError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from nanochat.core.logging import get_logger
from nanochat.llm_stream.providers.base_provider import BaseProvider, ProviderConfig, StreamChunk
from nanochat.services.cost import TokenUsage

logger = get_logger(__name__)


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return {"value": value}


def _parse_chunk(chunk: Any) -> StreamChunk:
    parsed = StreamChunk(generation_id=getattr(chunk, "id", None), model=getattr(chunk, "model", None))

    if chunk.choices:
        choice = chunk.choices[0]
        delta = choice.delta
        if delta is not None:
            parsed.content = delta.content or ""
            parsed.reasoning = getattr(delta, "reasoning", None) or ""
            parsed.annotations = [_as_dict(a) for a in (getattr(delta, "annotations", None) or [])]
        parsed.finish_reason = choice.finish_reason

    usage = getattr(chunk, "usage", None)
    if usage is not None:
        parsed.usage = TokenUsage(
            prompt_tokens=usage.prompt_tokens or 0,
            completion_tokens=usage.completion_tokens or 0,
        )
    return parsed


class GatewayProvider(BaseProvider):
    """
    Completion provider for the OpenAI-compatible inference gateway.

    One AsyncOpenAI client is built per call because the API key differs per
    user; the underlying httpx connection pool is shared.
    """

    def __init__(self, config: ProviderConfig, http_client: httpx.AsyncClient | None = None):
        super().__init__(config)
        self._http_client = http_client

    def _client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            max_retries=0,
            http_client=self._http_client,
        )

    async def _stream_internal(
        self, messages: list[dict[str, Any]], model: str, api_key: str, **kwargs
    ) -> AsyncGenerator[StreamChunk, None]:
        params = {k: v for k, v in kwargs.items() if v is not None}
        try:
            stream_response = await self._client(api_key).chat.completions.create(
                model=model,
                messages=messages,
                stream=True,
                stream_options={"include_usage": True},
                **params,
            )
            try:
                async for chunk in stream_response:
                    yield _parse_chunk(chunk)
            finally:
                await stream_response.close()
        except APIError as e:
            raise self._map_error(e) from e

    async def _complete_internal(
        self, messages: list[dict[str, Any]], model: str, api_key: str, **kwargs
    ) -> str:
        params = {k: v for k, v in kwargs.items() if v is not None}
        try:
            response = await self._client(api_key).chat.completions.create(
                model=model, messages=messages, **params
            )
        except APIError as e:
            raise self._map_error(e) from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    def _map_error(self, error: APIError) -> Exception:
        details = {"provider": self.name}

        if isinstance(error, AuthenticationError):
            logger.error("Gateway authentication failed", error=str(error))
            return ProviderAuthenticationError("Invalid API key for the inference gateway", details=details)

        if isinstance(error, RateLimitError):
            logger.warning("Gateway rate limit exceeded", error=str(error))
            return ProviderRateLimitError("Inference gateway rate limit exceeded", details=details)

        if isinstance(error, APITimeoutError):
            logger.error("Gateway request timed out", error=str(error))
            return ProviderTimeoutError("Inference gateway request timed out", details=details)

        if isinstance(error, APIConnectionError):
            logger.error("Gateway connection failed", error=str(error))
            return ProviderNotAvailableError("Could not connect to the inference gateway", details=details)

        logger.error("Gateway API error", error=str(error))
        return ProviderAPIError(
            f"Inference gateway returned an error: {error.message}",
            details={**details, "code": error.code},
        )
