"""
Local File Storage

Stores generated media (and uploaded images) on the local filesystem under
`UPLOAD_DIR`. File metadata is kept in memory alongside the bytes on disk;
generated images are served back through `GET /api/storage/{id}`.
"""

import asyncio
import mimetypes
from pathlib import Path

from nanochat.core.logging import get_logger
from nanochat.core.models import StoredFile, new_id

logger = get_logger(__name__)


class LocalFileStorage:
    """FileStorage implementation backed by a directory."""

    def __init__(self, root: str | Path):
        self._root = Path(root)
        self._files: dict[str, StoredFile] = {}

    @property
    def root(self) -> Path:
        return self._root

    async def save(self, user_id: str, data: bytes, mime_type: str, filename: str) -> StoredFile:
        file_id = new_id()
        extension = Path(filename).suffix or mimetypes.guess_extension(mime_type) or ""
        path = self._root / f"{file_id}{extension}"

        await asyncio.to_thread(self._write, path, data)

        stored = StoredFile(
            id=file_id,
            user_id=user_id,
            filename=filename,
            mime_type=mime_type,
            size=len(data),
            path=str(path),
        )
        self._files[file_id] = stored
        logger.debug("Stored file", file_id=file_id, size=len(data), mime_type=mime_type)
        return stored

    async def get(self, file_id: str) -> StoredFile | None:
        return self._files.get(file_id)

    async def read_bytes(self, file_id: str) -> bytes:
        stored = self._files.get(file_id)
        if stored is None:
            raise FileNotFoundError(file_id)
        return await asyncio.to_thread(Path(stored.path).read_bytes)

    def _write(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
