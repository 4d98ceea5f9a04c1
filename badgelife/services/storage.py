"""Temporary public hosting for images submitted to the reverse image search."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

from supabase import Client

from badgelife.config import Settings
from badgelife.services.catalog import create_supabase_client
from badgelife.services.images import ImagePayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredImage:
    path: str
    public_url: str


class TempImageStorage:
    def __init__(self, client: Client, bucket: str) -> None:
        self._client = client
        self.bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "TempImageStorage":
        return cls(create_supabase_client(settings), settings.temp_bucket)

    async def upload(self, image: ImagePayload) -> StoredImage:
        path = f"search/{uuid.uuid4().hex}.{image.extension}"

        def _upload() -> str:
            bucket = self._client.storage.from_(self.bucket)
            bucket.upload(path, image.data, {"content-type": image.mime_type})
            return bucket.get_public_url(path)

        public_url = await asyncio.to_thread(_upload)
        return StoredImage(path=path, public_url=public_url)

    async def remove(self, path: str) -> None:
        def _remove() -> None:
            self._client.storage.from_(self.bucket).remove([path])

        await asyncio.to_thread(_remove)
        logger.info("Removed temporary search image %s", path)


__all__ = ["StoredImage", "TempImageStorage"]
