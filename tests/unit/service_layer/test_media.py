"""
Unit Tests for MediaGenerator

Image submission and video polling against the fake gateway; sleeping is
replaced by a recorder so polling runs instantly.
"""

import httpx
import pytest

from nanochat.core.exceptions import GenerationCancelledError, MediaGenerationError
from nanochat.core.models import ImageAttachment
from nanochat.services.media import MediaGenerator
from test_fixtures import USER_ID
from test_fixtures.gateway_factory import GATEWAY_ORIGIN, IMAGE_MODEL_ID, PNG_BYTES, VIDEO_MODEL_ID


@pytest.fixture
def media(http_client, file_storage, fake_sleep):
    return MediaGenerator(
        http_client,
        file_storage,
        gateway_origin=GATEWAY_ORIGIN,
        poll_interval=2.0,
        max_attempts=4,
        sleep=fake_sleep,
    )


@pytest.mark.unit
class TestImageGeneration:
    @pytest.mark.asyncio
    async def test_stores_image(self, media, file_storage, gateway):
        result = await media.generate_image(USER_ID, IMAGE_MODEL_ID, "A lighthouse", "sk-key")

        file_id = result.content.removeprefix("![Generated Image](/api/storage/").rstrip(")")
        stored = await file_storage.get(file_id)
        assert stored.user_id == USER_ID
        assert stored.mime_type == "image/png"
        assert await file_storage.read_bytes(file_id) == PNG_BYTES
        assert result.cost_usd == 0.04
        assert result.token_count == 0

        body = gateway.json_body("/v1/images/generations")
        assert body["model"] == IMAGE_MODEL_ID
        assert body["response_format"] == "b64_json"
        assert body["size"] == "1024x1024"

    @pytest.mark.asyncio
    async def test_missing_prompt_uses_default(self, media, gateway):
        await media.generate_image(USER_ID, IMAGE_MODEL_ID, None, "sk-key")

        assert gateway.json_body("/v1/images/generations")["prompt"] == "Image"

    @pytest.mark.asyncio
    async def test_downloads_url_responses(self, media, file_storage, gateway):
        gateway.respond(
            "/v1/images/generations",
            httpx.Response(200, json={"data": [{"url": f"{GATEWAY_ORIGIN}/files/out.jpg"}]}),
        )
        gateway.respond(
            "/files/out.jpg",
            httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg"}),
        )

        result = await media.generate_image(USER_ID, IMAGE_MODEL_ID, "A lighthouse", "sk-key")

        file_id = result.content.removeprefix("![Generated Image](/api/storage/").rstrip(")")
        assert (await file_storage.get(file_id)).mime_type == "image/jpeg"
        assert result.cost_usd == 0.0

    @pytest.mark.asyncio
    async def test_no_image_data(self, media, gateway):
        gateway.respond("/v1/images/generations", httpx.Response(200, json={"data": []}))

        with pytest.raises(MediaGenerationError, match="No image data returned"):
            await media.generate_image(USER_ID, IMAGE_MODEL_ID, "A lighthouse", "sk-key")

    @pytest.mark.asyncio
    async def test_inline_source_image_is_forwarded(self, media, gateway):
        image = ImageAttachment(url="data:image/png;base64,AAAA")

        await media.generate_image(USER_ID, IMAGE_MODEL_ID, "Edit", "sk-key", images=[image])

        assert gateway.json_body("/v1/images/generations")["imageDataUrl"] == "data:image/png;base64,AAAA"

    @pytest.mark.asyncio
    async def test_cancelled_before_submit(self, media, registry, gateway):
        handle = registry.register("conv-1")
        registry.cancel("conv-1")

        with pytest.raises(GenerationCancelledError):
            await media.generate_image(USER_ID, IMAGE_MODEL_ID, "A lighthouse", "sk-key", handle=handle)

        assert gateway.requests_to("/v1/images/generations") == []


@pytest.mark.unit
class TestVideoGeneration:
    @pytest.mark.asyncio
    async def test_polls_until_complete(self, media, fake_sleep, gateway):
        result = await media.generate_video(VIDEO_MODEL_ID, "Waves", "sk-key")

        assert result.generation_id == "run-123"
        assert result.content == f"Here is your video:\n\n{GATEWAY_ORIGIN}/files/video.mp4"
        assert 'src="https://nano-gpt.com/files/video.mp4"' in result.content_html
        assert result.cost_usd == 0.25
        assert fake_sleep.calls == [2.0, 2.0]

    @pytest.mark.asyncio
    async def test_remote_source_image_is_forwarded(self, media, gateway):
        image = ImageAttachment(url="https://img.example.com/start.png")

        await media.generate_video(VIDEO_MODEL_ID, "Animate", "sk-key", images=[image])

        assert gateway.json_body("/api/generate-video")["imageUrl"] == "https://img.example.com/start.png"

    @pytest.mark.asyncio
    async def test_failed_status(self, media, gateway):
        gateway.video_statuses = [{"data": {"status": "FAILED", "error": "content policy"}}]

        with pytest.raises(MediaGenerationError, match="content policy"):
            await media.generate_video(VIDEO_MODEL_ID, "Waves", "sk-key")

    @pytest.mark.asyncio
    async def test_poll_errors_are_retried(self, media, gateway, fake_sleep):
        responses = [httpx.Response(500), httpx.Response(200, json={"status": "succeeded", "url": "https://cdn.example.com/v.mp4"})]
        gateway.respond("/api/generate-video/status", lambda request: responses.pop(0))

        result = await media.generate_video(VIDEO_MODEL_ID, "Waves", "sk-key")

        assert result.content.endswith("https://cdn.example.com/v.mp4")
        assert len(fake_sleep.calls) == 2

    @pytest.mark.asyncio
    async def test_budget_exhausted(self, media, gateway, fake_sleep):
        gateway.video_statuses = [{"data": {"status": "IN_PROGRESS"}}]

        with pytest.raises(MediaGenerationError, match="timed out"):
            await media.generate_video(VIDEO_MODEL_ID, "Waves", "sk-key")

        assert len(fake_sleep.calls) == 4

    @pytest.mark.asyncio
    async def test_submit_error_message(self, media, gateway):
        gateway.respond("/api/generate-video", httpx.Response(402, json={"message": "Insufficient balance"}))

        with pytest.raises(MediaGenerationError, match="Video generation failed: Insufficient balance"):
            await media.generate_video(VIDEO_MODEL_ID, "Waves", "sk-key")

    @pytest.mark.asyncio
    async def test_missing_run_id(self, media, gateway):
        gateway.respond("/api/generate-video", httpx.Response(200, json={}))

        with pytest.raises(MediaGenerationError, match="no run id"):
            await media.generate_video(VIDEO_MODEL_ID, "Waves", "sk-key")

    @pytest.mark.asyncio
    async def test_cancel_between_polls(self, media, registry, gateway, fake_sleep):
        gateway.video_statuses = [{"data": {"status": "IN_PROGRESS"}}]
        handle = registry.register("conv-1")
        fake_sleep.hook = lambda count: registry.cancel("conv-1") if count == 2 else None

        with pytest.raises(GenerationCancelledError):
            await media.generate_video(VIDEO_MODEL_ID, "Waves", "sk-key", handle=handle)

        assert len(gateway.requests_to("/api/generate-video/status")) == 1
