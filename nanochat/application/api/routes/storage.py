"""Serves generated media saved by the image pipeline (`/api/storage/{id}`)."""

from fastapi import APIRouter, Response

from nanochat.application.api.dependencies import FileStorageDep
from nanochat.core.exceptions import StoredFileNotFoundError

router = APIRouter(prefix="/storage", tags=["Storage"])


@router.get("/{file_id}")
async def get_file(file_id: str, storage: FileStorageDep) -> Response:
    stored = await storage.get(file_id)
    if stored is None:
        raise StoredFileNotFoundError("File not found", details={"file_id": file_id})
    try:
        data = await storage.read_bytes(file_id)
    except FileNotFoundError as e:
        raise StoredFileNotFoundError("File not found", details={"file_id": file_id}) from e
    return Response(
        content=data,
        media_type=stored.mime_type,
        headers={"Cache-Control": "private, max-age=31536000, immutable"},
    )
