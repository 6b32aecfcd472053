"""
Media Generation (image and video)

Media models never stream. Image generation is a single synchronous call;
video generation submits a job and polls its status at a fixed interval for
a bounded number of attempts.

    POST /v1/images/generations            (Bearer key) → {"data": [{"b64_json"|"url"}], "cost"}
    POST /api/generate-video               (x-api-key)  → {"runId"}
    GET  /api/generate-video/status?runId=&modelSlug=    → {"data": {"status", "output", "cost"}}

Polling stops early on success, on an explicit FAILED status, or when the
run's cancellation handle fires.
"""

import asyncio
import base64
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from html import escape
from typing import Any

import httpx

from nanochat.core.config.constants import Stage
from nanochat.core.exceptions import GenerationCancelledError, MediaGenerationError
from nanochat.core.interfaces import FileStorage
from nanochat.core.logging import get_logger, log_stage
from nanochat.core.models import ImageAttachment
from nanochat.services.attachments import resolve_image_url
from nanochat.services.cancellation import CancellationHandle

logger = get_logger(__name__)

IMAGE_GENERATION_PATH = "/v1/images/generations"
VIDEO_GENERATION_PATH = "/api/generate-video"
VIDEO_STATUS_PATH = "/api/generate-video/status"

IMAGE_PLACEHOLDER = "Generating image..."
VIDEO_PLACEHOLDER = "Generating video... (this may take a few minutes)"

_SUCCESS_STATUSES = {"COMPLETED", "succeeded"}
_FAILED_STATUSES = {"FAILED", "failed"}


@dataclass
class MediaResult:
    content: str
    content_html: str | None
    cost_usd: float
    generation_id: str | None = None
    token_count: int | None = None


def _cost(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"{default}: {response.status_code} {response.text}"
    if isinstance(body, dict):
        return body.get("message") or body.get("error") or default
    return default


class MediaGenerator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        storage: FileStorage,
        gateway_origin: str = "https://nano-gpt.com",
        poll_interval: float = 5.0,
        max_attempts: int = 120,
        image_size: str = "1024x1024",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._storage = storage
        self._gateway_origin = gateway_origin.rstrip("/")
        self._poll_interval = poll_interval
        self._max_attempts = max_attempts
        self._image_size = image_size
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Image
    # ------------------------------------------------------------------

    async def generate_image(
        self,
        user_id: str,
        model_id: str,
        prompt: str | None,
        api_key: str,
        images: list[ImageAttachment] | None = None,
        handle: CancellationHandle | None = None,
    ) -> MediaResult:
        """
        Generate one image, store it and return a Markdown reference to it.

        Raises:
            MediaGenerationError: Gateway error or no image data in the response
            GenerationCancelledError: Cancelled before the job was submitted
        """
        payload: dict[str, Any] = {
            "model": model_id,
            "prompt": prompt or "Image",
            "response_format": "b64_json",
            "n": 1,
            "size": self._image_size,
        }
        if images:
            source = await resolve_image_url(images[0], self._storage)
            if source.startswith("data:"):
                payload["imageDataUrl"] = source

        self._check_cancelled(handle)
        log_stage(logger, Stage.MEDIA_SUBMIT, "Submitting image generation", model=model_id)

        try:
            response = await self._client.post(
                IMAGE_GENERATION_PATH,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}"},
            )
        except httpx.HTTPError as e:
            raise MediaGenerationError.from_exception(e, message=f"Image generation failed: {e}")
        if response.is_error:
            raise MediaGenerationError(
                f"Image generation failed: {response.status_code} {response.text}",
                details={"model": model_id},
            )

        body = response.json()
        cost = _cost(body.get("cost"))
        image = (body.get("data") or [None])[0] or {}

        mime_type = "image/png"
        if image.get("b64_json"):
            data = base64.b64decode(image["b64_json"])
        elif image.get("url"):
            download = await self._client.get(image["url"])
            download.raise_for_status()
            data = download.content
            mime_type = download.headers.get("content-type", mime_type)
        else:
            raise MediaGenerationError("No image data returned", details={"model": model_id})

        extension = mime_type.split("/")[-1] or "png"
        stored = await self._storage.save(user_id, data, mime_type, f"generated.{extension}")
        url = f"/api/storage/{stored.id}"

        log_stage(logger, Stage.MEDIA_SUBMIT, "Image generation completed", cost=cost, storage_id=stored.id)
        return MediaResult(
            content=f"![Generated Image]({url})",
            content_html=None,
            cost_usd=cost,
            token_count=0,
        )

    # ------------------------------------------------------------------
    # Video
    # ------------------------------------------------------------------

    async def generate_video(
        self,
        model_id: str,
        prompt: str,
        api_key: str,
        images: list[ImageAttachment] | None = None,
        handle: CancellationHandle | None = None,
    ) -> MediaResult:
        """
        Submit a video job and poll until it completes.

        Raises:
            MediaGenerationError: Submission failed, job FAILED, or polling exhausted
            GenerationCancelledError: The run was cancelled while polling
        """
        payload: dict[str, Any] = {"model": model_id, "prompt": prompt}
        if images:
            source = await resolve_image_url(images[0], self._storage)
            if source.startswith("data:"):
                payload["imageDataUrl"] = source
            elif source.startswith("http"):
                payload["imageUrl"] = source

        self._check_cancelled(handle)
        headers = {"x-api-key": api_key}
        log_stage(logger, Stage.MEDIA_SUBMIT, "Submitting video generation", model=model_id)

        try:
            response = await self._client.post(VIDEO_GENERATION_PATH, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise MediaGenerationError.from_exception(e, message=f"Video generation failed: {e}")
        if response.is_error:
            raise MediaGenerationError(
                f"Video generation failed: {_error_message(response, 'Failed to submit video generation request')}",
                details={"model": model_id},
            )

        run_id = response.json().get("runId")
        if not run_id:
            raise MediaGenerationError("Video generation failed: no run id returned")
        log_stage(logger, Stage.MEDIA_SUBMIT, "Video generation started", run_id=run_id)

        for attempt in range(1, self._max_attempts + 1):
            self._check_cancelled(handle)
            await self._sleep(self._poll_interval)
            self._check_cancelled(handle)

            try:
                status_response = await self._client.get(
                    VIDEO_STATUS_PATH,
                    params={"runId": run_id, "modelSlug": model_id},
                    headers=headers,
                )
            except httpx.HTTPError as e:
                log_stage(logger, Stage.MEDIA_POLL, "Status poll failed", level="debug", error=str(e))
                continue
            if status_response.is_error:
                continue

            status_body = status_response.json()
            data = status_body.get("data") or {}
            status = data.get("status") or status_body.get("status")

            if status in _SUCCESS_STATUSES:
                return self._video_result(run_id, status_body)
            if status in _FAILED_STATUSES:
                raise MediaGenerationError(
                    f"Video generation failed: {data.get('error') or 'Video generation failed'}",
                    details={"run_id": run_id},
                )
            log_stage(logger, Stage.MEDIA_POLL, "Video still generating", level="debug", attempt=attempt, status=status)

        raise MediaGenerationError(
            "Video generation failed: timed out waiting for the video",
            details={"run_id": run_id, "attempts": self._max_attempts},
        )

    def _video_result(self, run_id: str, status_body: dict[str, Any]) -> MediaResult:
        data = status_body.get("data") or {}
        video_url = (
            ((data.get("output") or {}).get("video") or {}).get("url")
            or ((status_body.get("output") or {}).get("video") or {}).get("url")
            or status_body.get("url")
        )
        if not video_url:
            raise MediaGenerationError("Video generation completed without a video URL", details={"run_id": run_id})
        if video_url.startswith("/"):
            video_url = f"{self._gateway_origin}{video_url}"

        cost = _cost(data.get("cost") or status_body.get("cost"))
        log_stage(logger, Stage.MEDIA_POLL, "Video generation completed", run_id=run_id, cost=cost)
        return MediaResult(
            content=f"Here is your video:\n\n{video_url}",
            content_html=f'<video src="{escape(video_url, quote=True)}" controls class="max-w-full rounded-lg"></video>',
            cost_usd=cost,
            generation_id=run_id,
        )

    @staticmethod
    def _check_cancelled(handle: CancellationHandle | None) -> None:
        if handle is not None and handle.cancelled:
            raise GenerationCancelledError("Cancelled by user", conversation_id=handle.conversation_id)
