"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import pytest
import pytest_asyncio

from nanochat.core.config.constants import GENERATION_STATE_HISTORY_LIMIT, Provider, ReasoningEffort
from nanochat.core.models import UserKey
from nanochat.core.observability import ExecutionTracker
from nanochat.infrastructure.storage import LocalFileStorage
from nanochat.infrastructure.store import InMemoryChatStore
from nanochat.llm_stream.models import GenerationRequest
from nanochat.llm_stream.providers import FakeProvider
from nanochat.llm_stream.services import GenerationOrchestrator
from nanochat.services.cancellation import InMemoryCancellationRegistry
from nanochat.services.cost import TokenUsage
from nanochat.services.credential_resolver import CredentialResolver
from nanochat.services.enrichment import MemoryService, UrlScraper, WebSearchProvider
from nanochat.services.media import MediaGenerator
from nanochat.services.model_catalog import ModelCatalog
from nanochat.services.title_generator import TitleGenerator
from test_fixtures import USER_API_KEY, USER_ID, FakeGateway
from test_fixtures.gateway_factory import GATEWAY_ORIGIN, TEXT_MODEL_ID


# ============================================================================
# Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def store():
    return InMemoryChatStore()


@pytest_asyncio.fixture
async def seeded_store(store):
    """Store with a NanoGPT key for USER_ID."""
    await store.set_user_key(UserKey(user_id=USER_ID, provider=Provider.NANOGPT, key=USER_API_KEY))
    return store


@pytest.fixture
def file_storage(tmp_path):
    return LocalFileStorage(tmp_path / "uploads")


@pytest.fixture
def registry():
    return InMemoryCancellationRegistry()


@pytest.fixture
def tracker():
    return ExecutionTracker(enabled=True)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def http_client(gateway):
    async with gateway.client() as client:
        yield client


class RecordingSleep:
    """Replaces asyncio.sleep for media polling; optionally runs a hook per call."""

    def __init__(self, hook=None):
        self.calls: list[float] = []
        self.hook = hook

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)
        if self.hook is not None:
            self.hook(len(self.calls))


@pytest.fixture
def fake_sleep():
    return RecordingSleep()


# ============================================================================
# Provider Fixtures
# ============================================================================


@pytest.fixture
def sample_usage():
    return TokenUsage(prompt_tokens=1000, completion_tokens=2000)


@pytest.fixture
def fake_provider(sample_usage):
    """Fake provider streaming a short scripted reply with usage."""
    return FakeProvider(chunks=["Hello", " there", ", friend!"], usage=sample_usage)


# ============================================================================
# Orchestrator Fixtures
# ============================================================================


@pytest.fixture
def build_orchestrator(store, registry, file_storage, tracker, http_client, fake_sleep):
    """
    Factory for a fully wired orchestrator against the fake gateway.

    Usage:
        orchestrator = build_orchestrator(provider=FakeProvider(...))
    """

    def _build(
        provider=None,
        global_api_key=None,
        max_poll_attempts=5,
        titles=True,
        state_history_limit=GENERATION_STATE_HISTORY_LIMIT,
    ):
        provider = provider or FakeProvider(chunks=["Hello", " there"])
        media = MediaGenerator(
            http_client,
            file_storage,
            gateway_origin=GATEWAY_ORIGIN,
            poll_interval=5.0,
            max_attempts=max_poll_attempts,
            sleep=fake_sleep,
        )
        return GenerationOrchestrator(
            store=store,
            registry=registry,
            credentials=CredentialResolver(store, global_api_key=global_api_key),
            catalog=ModelCatalog(http_client, max_retries=1),
            provider=provider,
            media=media,
            web_search=WebSearchProvider(http_client),
            scraper=UrlScraper(http_client),
            memory=MemoryService(http_client, store),
            titles=TitleGenerator(provider, store, "test/title-model") if titles else None,
            file_storage=file_storage,
            tracker=tracker,
            state_history_limit=state_history_limit,
        )

    return _build


@pytest.fixture
def text_request():
    """Request for a new conversation with the priced text model."""
    return GenerationRequest(
        message="What is the capital of France?",
        model_id=TEXT_MODEL_ID,
        reasoning_effort=ReasoningEffort.LOW,
    )
