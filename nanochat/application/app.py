"""
FastAPI Application Entry Point

Configures the FastAPI application: lifespan wiring of every component
(store, registry, gateway clients, enrichment services, orchestrator),
middleware, exception handlers and routes.

Run locally:
    uvicorn nanochat.application.app:app --reload
"""

import uuid
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from nanochat.application.api.middleware import ErrorHandlingMiddleware, register_exception_handlers
from nanochat.application.api.routes.conversations import router as conversations_router
from nanochat.application.api.routes.generation import router as generation_router
from nanochat.application.api.routes.health import router as health_router
from nanochat.application.api.routes.storage import router as storage_router
from nanochat.core.config.constants import HEADER_REQUEST_ID
from nanochat.core.config.settings import Settings, get_settings
from nanochat.core.logging import clear_conversation_id, get_logger, setup_logging
from nanochat.core.observability import ExecutionTracker
from nanochat.infrastructure.storage import LocalFileStorage
from nanochat.infrastructure.store import InMemoryChatStore
from nanochat.llm_stream.providers import BaseProvider, FakeProvider, GatewayProvider, ProviderConfig
from nanochat.llm_stream.services import GenerationOrchestrator
from nanochat.services.cancellation import InMemoryCancellationRegistry
from nanochat.services.credential_resolver import CredentialResolver
from nanochat.services.enrichment import MemoryService, UrlScraper, WebSearchProvider
from nanochat.services.follow_up import FollowUpService
from nanochat.services.media import MediaGenerator
from nanochat.services.model_catalog import ModelCatalog
from nanochat.services.title_generator import TitleGenerator

logger = get_logger(__name__)

SHUTDOWN_GRACE_SECONDS = 10.0


def build_provider(settings: Settings, http_client: httpx.AsyncClient) -> BaseProvider:
    config = ProviderConfig(
        name="nanogpt",
        base_url=settings.gateway.completions_base_url,
        timeout=settings.GATEWAY_TIMEOUT,
    )
    if settings.USE_FAKE_LLM:
        logger.warning("Using fake completion provider")
        return FakeProvider(config)
    return GatewayProvider(config, http_client=http_client)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build every component once, store it on `app.state`, and tear it down on
    shutdown (active runs are cancelled and given time to finalize).
    """
    settings: Settings = app.state.settings

    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)
    logger.info(
        "Starting generation backend",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    http_client = httpx.AsyncClient(
        base_url=settings.NANOGPT_BASE_URL,
        timeout=settings.GATEWAY_TIMEOUT,
        transport=app.state.transport,
    )

    try:
        store = InMemoryChatStore()
        file_storage = LocalFileStorage(settings.generation.UPLOAD_DIR)
        registry = InMemoryCancellationRegistry()
        credentials = CredentialResolver(store, global_api_key=settings.NANOGPT_API_KEY)
        catalog = ModelCatalog(http_client, cache_ttl=settings.CATALOG_CACHE_TTL)
        provider = build_provider(settings, http_client)

        media = MediaGenerator(
            http_client,
            file_storage,
            gateway_origin=settings.NANOGPT_BASE_URL,
            poll_interval=settings.generation.MEDIA_POLL_INTERVAL_SECONDS,
            max_attempts=settings.generation.MEDIA_POLL_MAX_ATTEMPTS,
            image_size=settings.generation.IMAGE_SIZE,
        )

        orchestrator = GenerationOrchestrator(
            store=store,
            registry=registry,
            credentials=credentials,
            catalog=catalog,
            provider=provider,
            media=media,
            web_search=WebSearchProvider(http_client),
            scraper=UrlScraper(http_client),
            memory=MemoryService(http_client, store),
            titles=TitleGenerator(provider, store, settings.generation.TITLE_MODEL_ID),
            file_storage=file_storage,
            tracker=ExecutionTracker(enabled=settings.EXECUTION_TRACKING_ENABLED),
        )

        app.state.store = store
        app.state.file_storage = file_storage
        app.state.catalog = catalog
        app.state.orchestrator = orchestrator
        app.state.follow_up = FollowUpService(
            provider, store, credentials, settings.generation.FOLLOW_UP_MODEL_ID
        )
        logger.info("Generation orchestrator ready", fake_llm=settings.USE_FAKE_LLM)

        if settings.generation.RECONCILE_ORPHANED_GENERATIONS:
            await orchestrator.reconcile_orphaned_generations()

        logger.info("Application startup complete")

        yield

        logger.info("Shutting down application", active_generations=orchestrator.active_generations)
        await orchestrator.shutdown(timeout=SHUTDOWN_GRACE_SECONDS)

    finally:
        await http_client.aclose()
        logger.info("Application shutdown complete")


# ============================================================================
# Application Factory
# ============================================================================


def create_app(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to build the app with (defaults to the global settings)
        transport: Optional httpx transport for all gateway calls (tests)

    Returns:
        FastAPI: Configured application instance
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Generation orchestration backend for a self-hosted AI chat application",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.transport = transport

    # Middleware runs in reverse order of registration; the request id
    # middleware below is the outermost layer, so error responses carry it too.
    app.add_middleware(
        ErrorHandlingMiddleware,
        include_traceback=(settings.app.ENVIRONMENT == "development"),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.app.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[HEADER_REQUEST_ID],
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """Correlate every log line of a request with its request id."""
        request_id = request.headers.get(HEADER_REQUEST_ID) or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
            response.headers[HEADER_REQUEST_ID] = request_id
            return response
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
            clear_conversation_id()

    register_exception_handlers(app)

    base_path = settings.app.API_BASE_PATH
    app.include_router(health_router, prefix=base_path)
    app.include_router(generation_router, prefix=base_path)
    app.include_router(conversations_router, prefix=base_path)
    app.include_router(storage_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "health": f"{base_path}/health",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "nanochat.application.app:app",
        host=settings.app.API_HOST,
        port=settings.app.API_PORT,
        reload=settings.app.ENVIRONMENT == "development",
        log_level=settings.logging.LOG_LEVEL.lower(),
    )
