"""
Unit Tests for ModelCatalog

Parsing of the three gateway catalogs, caching and failure handling.
"""

import httpx
import pytest

from nanochat.core.config.constants import ModelMode
from nanochat.core.exceptions import CatalogUnavailableError
from nanochat.services.model_catalog import ModelCatalog, parse_media_models, parse_text_models
from test_fixtures.gateway_factory import (
    IMAGE_MODEL_ID,
    TEXT_MODEL_ID,
    UNPRICED_MODEL_ID,
    VIDEO_MODEL_ID,
    VISION_MODEL_ID,
    default_text_catalog,
)


@pytest.mark.unit
class TestParsing:
    def test_text_models(self):
        models = {m.id: m for m in parse_text_models(default_text_catalog())}

        assert models[TEXT_MODEL_ID].pricing.prompt == 1.0
        assert models[VISION_MODEL_ID].pricing.completion == 1.5
        assert models[VISION_MODEL_ID].supports_images is True
        assert models[UNPRICED_MODEL_ID].pricing is None
        assert all(m.mode == ModelMode.TEXT for m in models.values())

    def test_malformed_entries_are_skipped(self):
        payload = {"data": [{"name": "no id"}, "junk", {"id": "ok/model", "pricing": {"prompt": "abc"}}]}

        models = parse_text_models(payload)

        assert [m.id for m in models] == ["ok/model"]
        assert models[0].pricing.prompt is None

    def test_media_models(self):
        payload = {"models": {"video": {VIDEO_MODEL_ID: {"name": "Video"}}}}

        [model] = parse_media_models(payload, "video")

        assert model.mode == ModelMode.VIDEO
        assert model.supports_images is True

    def test_media_models_missing_kind(self):
        assert parse_media_models({"models": {}}, "image") == []


@pytest.mark.unit
class TestModelCatalog:
    @pytest.mark.asyncio
    async def test_merges_all_catalogs(self, http_client):
        catalog = ModelCatalog(http_client, max_retries=1)

        models = {m.id: m for m in await catalog.list_models()}

        assert models[IMAGE_MODEL_ID].mode == ModelMode.IMAGE
        assert models[VIDEO_MODEL_ID].mode == ModelMode.VIDEO
        assert TEXT_MODEL_ID in models

    @pytest.mark.asyncio
    async def test_detailed_flag_is_sent(self, http_client, gateway):
        await ModelCatalog(http_client, max_retries=1).get_model(TEXT_MODEL_ID)

        assert gateway.requests_to("/api/v1/models")[0].url.params["detailed"] == "true"

    @pytest.mark.asyncio
    async def test_results_are_cached(self, http_client, gateway):
        catalog = ModelCatalog(http_client, max_retries=1)

        await catalog.get_model(TEXT_MODEL_ID)
        await catalog.get_model(VISION_MODEL_ID)

        assert len(gateway.requests_to("/api/v1/models")) == 1

    @pytest.mark.asyncio
    async def test_invalidate_refetches(self, http_client, gateway):
        catalog = ModelCatalog(http_client, max_retries=1)
        await catalog.get_model(TEXT_MODEL_ID)

        catalog.invalidate()
        await catalog.get_model(TEXT_MODEL_ID)

        assert len(gateway.requests_to("/api/v1/models")) == 2

    @pytest.mark.asyncio
    async def test_unknown_model(self, http_client):
        assert await ModelCatalog(http_client, max_retries=1).get_model("nope/model") is None

    @pytest.mark.asyncio
    async def test_text_catalog_failure(self, http_client, gateway):
        gateway.fail("/api/v1/models")
        catalog = ModelCatalog(http_client, max_retries=1)

        with pytest.raises(CatalogUnavailableError):
            await catalog.get_model(TEXT_MODEL_ID)

    @pytest.mark.asyncio
    async def test_media_catalog_failure_is_tolerated(self, http_client, gateway):
        gateway.fail("/api/models/video")
        catalog = ModelCatalog(http_client, max_retries=1)

        assert await catalog.get_model(VIDEO_MODEL_ID) is None
        assert await catalog.get_model(IMAGE_MODEL_ID) is not None

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, http_client, gateway):
        # Arrange - first call fails, second succeeds
        calls = []

        def flaky(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(502)
            return httpx.Response(200, json=default_text_catalog())

        gateway.respond("/api/v1/models", flaky)
        catalog = ModelCatalog(http_client, max_retries=2)

        # Act
        model = await catalog.get_model(TEXT_MODEL_ID)

        # Assert
        assert model is not None
        assert len(calls) == 2
