"""Blob storage: ``store(bytes, mime, folder) -> url`` and ``delete(url)``.

Services only see the ``BlobStore`` protocol. ``LocalBlobStore`` writes to
the media directory the API serves under ``/media``; an S3-style backend only
has to implement the same two coroutines.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from newsdesk.errors import ValidationFailed

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/avif": ".avif",
}

MAX_IMAGE_BYTES = 5 * 1024 * 1024


@dataclass(frozen=True)
class Upload:
    """An uploaded file, already read into memory."""

    data: bytes
    mime_type: str
    filename: str | None = None


def validate_image(upload: Upload) -> None:
    if upload.mime_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationFailed("Only image files are allowed (JPEG, PNG, WEBP, AVIF)")
    if len(upload.data) > MAX_IMAGE_BYTES:
        raise ValidationFailed("Image exceeds the 5 MB limit")


class BlobStore(Protocol):
    async def store(self, data: bytes, mime_type: str, folder: str) -> str: ...

    async def delete(self, url: str) -> None: ...


class LocalBlobStore:
    """Filesystem-backed blob store."""

    def __init__(self, base_path: str, public_url: str) -> None:
        self._base = Path(base_path)
        self._public_url = public_url.rstrip("/")

    async def store(self, data: bytes, mime_type: str, folder: str) -> str:
        suffix = ALLOWED_IMAGE_TYPES.get(mime_type, "")
        name = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}{suffix}"
        dest = self._base / folder / name
        await asyncio.to_thread(self._write, dest, data)
        logger.info("Stored blob %s/%s (%d bytes)", folder, name, len(data))
        return f"{self._public_url}/{folder}/{name}"

    async def delete(self, url: str) -> None:
        prefix = f"{self._public_url}/"
        if not url.startswith(prefix):
            logger.warning("Not deleting foreign blob url %s", url)
            return
        path = (self._base / url.removeprefix(prefix)).resolve()
        if not path.is_relative_to(self._base.resolve()):
            logger.warning("Refusing to delete blob outside media root: %s", url)
            return
        await asyncio.to_thread(path.unlink, missing_ok=True)
        logger.info("Deleted blob %s", url)

    @staticmethod
    def _write(dest: Path, data: bytes) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        with open(dest, "wb") as f:
            f.write(data)
