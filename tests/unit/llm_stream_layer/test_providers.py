"""
Unit Tests for Completion Providers

Tests the fake provider, chunk parsing and the OpenAI-compatible gateway
provider against a mocked HTTP transport serving server-sent events.
"""

import json
from contextlib import aclosing
from types import SimpleNamespace

import httpx
import pytest

from nanochat.core.exceptions import (
    ProviderAPIError,
    ProviderAuthenticationError,
    ProviderRateLimitError,
)
from nanochat.llm_stream.providers import FakeProvider, GatewayProvider, ProviderConfig, StreamChunk
from nanochat.llm_stream.providers.gateway_provider import _parse_chunk
from nanochat.services.cost import TokenUsage


async def collect(provider, **kwargs) -> list[StreamChunk]:
    async with aclosing(provider.stream([{"role": "user", "content": "Hi"}], "test/model", "sk-key", **kwargs)) as s:
        return [chunk async for chunk in s]


def sse(*events: dict) -> bytes:
    body = "".join(f"data: {json.dumps(event)}\n\n" for event in events)
    return (body + "data: [DONE]\n\n").encode()


def chunk_event(content=None, reasoning=None, finish_reason=None) -> dict:
    delta = {}
    if content is not None:
        delta["content"] = content
    if reasoning is not None:
        delta["reasoning"] = reasoning
    return {
        "id": "gen-abc",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "test/model",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }


def usage_event(prompt_tokens: int, completion_tokens: int) -> dict:
    return {
        "id": "gen-abc",
        "object": "chat.completion.chunk",
        "created": 1700000000,
        "model": "test/model",
        "choices": [],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


def gateway_provider(handler) -> GatewayProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GatewayProvider(ProviderConfig(name="nanogpt", base_url="https://nano-gpt.com/api/v1"), client)


@pytest.mark.unit
class TestFakeProvider:
    @pytest.mark.asyncio
    async def test_streams_scripted_chunks(self, fake_provider, sample_usage):
        chunks = await collect(fake_provider)

        assert "".join(c.content for c in chunks) == "Hello there, friend!"
        assert chunks[-1].usage == sample_usage
        assert any(c.finish_reason == "stop" for c in chunks)

    @pytest.mark.asyncio
    async def test_reasoning_precedes_content(self):
        provider = FakeProvider(chunks=["A"], reasoning_chunks=["think"])

        chunks = await collect(provider)

        assert chunks[0].reasoning == "think"
        assert chunks[1].content == "A"

    @pytest.mark.asyncio
    async def test_records_kwargs(self, fake_provider):
        await collect(fake_provider, temperature=0.7)

        assert fake_provider.calls[0]["temperature"] == 0.7
        assert fake_provider.calls[0]["api_key"] == "sk-key"

    @pytest.mark.asyncio
    async def test_fail_after(self):
        provider = FakeProvider(chunks=["a", "b", "c"], fail_after=1)

        with pytest.raises(RuntimeError, match="Simulated provider failure"):
            await collect(provider)

    @pytest.mark.asyncio
    async def test_computed_usage(self):
        chunks = await collect(FakeProvider(chunks=["one two", " three"]))

        assert chunks[-1].usage == TokenUsage(prompt_tokens=10, completion_tokens=3)

    @pytest.mark.asyncio
    async def test_complete(self):
        assert await FakeProvider(completion_text="Title").complete([], "m", "k") == "Title"


@pytest.mark.unit
class TestParseChunk:
    def test_content_delta(self):
        raw = SimpleNamespace(
            id="gen-1",
            model="m",
            usage=None,
            choices=[
                SimpleNamespace(
                    delta=SimpleNamespace(content="Hi", reasoning=None, annotations=[{"type": "url"}]),
                    finish_reason=None,
                )
            ],
        )

        parsed = _parse_chunk(raw)

        assert parsed.content == "Hi"
        assert parsed.reasoning == ""
        assert parsed.annotations == [{"type": "url"}]
        assert parsed.generation_id == "gen-1"

    def test_usage_only(self):
        raw = SimpleNamespace(
            id="gen-1",
            model="m",
            choices=[],
            usage=SimpleNamespace(prompt_tokens=5, completion_tokens=None),
        )

        parsed = _parse_chunk(raw)

        assert parsed.content == ""
        assert parsed.usage == TokenUsage(prompt_tokens=5, completion_tokens=0)


@pytest.mark.unit
class TestGatewayProvider:
    @pytest.mark.asyncio
    async def test_streams_sse_response(self):
        # Arrange
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=sse(
                    chunk_event(reasoning="Let me think"),
                    chunk_event(content="Hello"),
                    chunk_event(content=" world", finish_reason="stop"),
                    usage_event(12, 2),
                ),
            )

        provider = gateway_provider(handler)

        # Act
        chunks = await collect(provider, temperature=0.7, reasoning_effort=None)

        # Assert - parsed deltas
        assert "".join(c.content for c in chunks) == "Hello world"
        assert chunks[0].reasoning == "Let me think"
        assert chunks[-1].usage == TokenUsage(prompt_tokens=12, completion_tokens=2)
        assert {c.generation_id for c in chunks} == {"gen-abc"}

        # Assert - request
        [request] = requests
        body = json.loads(request.content)
        assert request.url.path == "/api/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-key"
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}
        assert body["temperature"] == 0.7
        assert "reasoning_effort" not in body

    @pytest.mark.asyncio
    async def test_authentication_error(self):
        provider = gateway_provider(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))

        with pytest.raises(ProviderAuthenticationError):
            await collect(provider)

    @pytest.mark.asyncio
    async def test_rate_limit_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, json={"error": {"message": "slow down"}})

        with pytest.raises(ProviderRateLimitError):
            await collect(gateway_provider(handler))

        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_other_api_errors(self):
        provider = gateway_provider(
            lambda request: httpx.Response(400, json={"error": {"message": "unknown model", "code": "bad_model"}})
        )

        with pytest.raises(ProviderAPIError, match="unknown model") as exc_info:
            await collect(provider)

        assert exc_info.value.details["code"] == "bad_model"

    @pytest.mark.asyncio
    async def test_complete(self):
        def handler(request):
            return httpx.Response(
                200,
                json={
                    "id": "gen-1",
                    "object": "chat.completion",
                    "created": 1700000000,
                    "model": "test/model",
                    "choices": [
                        {
                            "index": 0,
                            "message": {"role": "assistant", "content": "  A Title  "},
                            "finish_reason": "stop",
                        }
                    ],
                },
            )

        text = await gateway_provider(handler).complete([{"role": "user", "content": "Hi"}], "test/model", "sk-key")

        assert text == "A Title"
