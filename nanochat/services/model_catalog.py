"""
Gateway Model Catalog

Fetches the model list advertised by the gateway and maps it onto
`ModelDescriptor`. Text, image and video models come from three endpoints
that are fetched concurrently:

- GET /api/v1/models?detailed=true   → {"data": [...]} (pricing per 1M tokens)
- GET /api/models/image              → {"models": {"image": {id: {...}}}}
- GET /api/models/video              → {"models": {"video": {id: {...}}}}

The text list is mandatory; image and video lists are best-effort.

Architectural Decision: tenacity retry + TTL cache
- Catalog fetches are idempotent GETs, so transient failures are retried
  with exponential backoff and jitter
- The catalog is consulted on every request for model resolution and
  pricing, so results are cached for CATALOG_CACHE_TTL seconds
"""

import asyncio
import time
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from nanochat.core.config.constants import MAX_RETRIES, RETRY_BASE_DELAY, RETRY_MAX_DELAY, Stage
from nanochat.core.exceptions import CatalogUnavailableError
from nanochat.core.logging import get_logger, log_stage
from nanochat.core.models import ModelDescriptor, ModelPricing

logger = get_logger(__name__)

TEXT_MODELS_PATH = "/api/v1/models"
IMAGE_MODELS_PATH = "/api/models/image"
VIDEO_MODELS_PATH = "/api/models/video"

_RETRYABLE = (httpx.TransportError, httpx.HTTPStatusError)


def _to_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_text_models(payload: dict[str, Any]) -> list[ModelDescriptor]:
    models = []
    for raw in payload.get("data") or []:
        if not isinstance(raw, dict) or not raw.get("id"):
            continue
        capabilities = raw.get("capabilities") or {}
        pricing = raw.get("pricing")
        models.append(
            ModelDescriptor(
                id=raw["id"],
                name=raw.get("name") or raw["id"],
                description=raw.get("description"),
                input_modalities=["text", "image"] if capabilities.get("vision") else ["text"],
                output_modalities=["text"],
                pricing=(
                    ModelPricing(
                        prompt=_to_float(pricing.get("prompt")),
                        completion=_to_float(pricing.get("completion")),
                    )
                    if isinstance(pricing, dict)
                    else None
                ),
            )
        )
    return models


def parse_media_models(payload: dict[str, Any], kind: str) -> list[ModelDescriptor]:
    """Parse the image/video catalog shape: {"models": {kind: {model_id: {...}}}}."""
    entries = (payload.get("models") or {}).get(kind) or {}
    input_modalities = ["text", "image"] if kind == "video" else ["text"]
    return [
        ModelDescriptor(
            id=model_id,
            name=(raw or {}).get("name") or model_id,
            description=(raw or {}).get("description"),
            input_modalities=input_modalities,
            output_modalities=[kind],
            pricing=ModelPricing(prompt=0.0, completion=0.0),
        )
        for model_id, raw in entries.items()
    ]


class ModelCatalog:
    """
    Cached view of the gateway catalog.

    Usage:
        catalog = ModelCatalog(http_client)
        model = await catalog.get_model("openai/gpt-4o")
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache_ttl: float = 300.0,
        max_retries: int = MAX_RETRIES,
    ):
        self._client = client
        self._cache_ttl = cache_ttl
        self._max_retries = max_retries
        self._models: dict[str, ModelDescriptor] | None = None
        self._fetched_at = 0.0
        self._lock = asyncio.Lock()

    def invalidate(self) -> None:
        self._models = None

    async def list_models(self) -> list[ModelDescriptor]:
        """
        Return the full catalog.

        Raises:
            CatalogUnavailableError: If the text model list cannot be fetched
        """
        return list((await self._load()).values())

    async def get_model(self, model_id: str) -> ModelDescriptor | None:
        """
        Look up one model.

        Raises:
            CatalogUnavailableError: If the catalog cannot be fetched
        """
        return (await self._load()).get(model_id)

    async def _load(self) -> dict[str, ModelDescriptor]:
        async with self._lock:
            if self._models is not None and time.monotonic() - self._fetched_at < self._cache_ttl:
                return self._models

            text_result, image_result, video_result = await asyncio.gather(
                self._fetch(TEXT_MODELS_PATH, params={"detailed": "true"}),
                self._fetch(IMAGE_MODELS_PATH),
                self._fetch(VIDEO_MODELS_PATH),
                return_exceptions=True,
            )

            if isinstance(text_result, BaseException):
                log_stage(
                    logger,
                    Stage.CATALOG,
                    "Failed to fetch text model catalog",
                    level="error",
                    error=str(text_result),
                )
                raise CatalogUnavailableError.from_exception(
                    text_result, message="Failed to fetch models from gateway"
                )

            models = parse_text_models(text_result)
            for kind, result in (("image", image_result), ("video", video_result)):
                if isinstance(result, BaseException):
                    log_stage(
                        logger,
                        Stage.CATALOG,
                        f"Failed to fetch {kind} model catalog",
                        level="warning",
                        error=str(result),
                    )
                    continue
                models.extend(parse_media_models(result, kind))

            self._models = {model.id: model for model in models}
            self._fetched_at = time.monotonic()
            log_stage(logger, Stage.CATALOG, "Model catalog refreshed", model_count=len(self._models))
            return self._models

    async def _fetch(self, path: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential_jitter(initial=RETRY_BASE_DELAY, max=RETRY_MAX_DELAY),
            retry=retry_if_exception_type(_RETRYABLE),
            before_sleep=lambda retry_state: logger.info(
                "Catalog fetch retry",
                stage=Stage.CATALOG.value,
                path=path,
                attempt=retry_state.attempt_number,
            ),
            reraise=True,
        ):
            with attempt:
                response = await self._client.get(path, params=params)
                response.raise_for_status()
                return response.json()
        raise CatalogUnavailableError(f"Catalog fetch failed: {path}")
