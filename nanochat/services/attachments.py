"""
Image Attachment Resolution

User images reach the gateway as URLs. `data:` and `http(s)` URLs are sent
as-is; images stored locally are read and inlined as base64 data URLs,
falling back to the original URL when the file cannot be read.
"""

import base64

from nanochat.core.interfaces import FileStorage
from nanochat.core.logging import get_logger
from nanochat.core.models import ImageAttachment

logger = get_logger(__name__)


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def is_remote_or_inline(url: str) -> bool:
    return url.startswith("data:") or url.startswith("http")


async def resolve_image_url(image: ImageAttachment, storage: FileStorage | None) -> str:
    if is_remote_or_inline(image.url) or not image.storage_id or storage is None:
        return image.url

    stored = await storage.get(image.storage_id)
    if stored is None:
        logger.warning("Storage record not found for image", storage_id=image.storage_id)
        return image.url

    try:
        data = await storage.read_bytes(image.storage_id)
    except OSError as e:
        logger.warning("Failed to read stored image", storage_id=image.storage_id, error=str(e))
        return image.url

    return to_data_url(data, stored.mime_type)
