"""
Thin wrapper around qdrant-client holding one embedding point per catalog badge.
The badge record is stored as the point payload so matches need no extra lookup.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Set

from pydantic import ValidationError
from qdrant_client import QdrantClient
from qdrant_client.http import models as rest

from badgelife.config import Settings
from badgelife.models import BadgeEmbedding, BadgeRecord

logger = logging.getLogger(__name__)

_SCROLL_PAGE = 256


def point_id_for(badge_id: str) -> str:
    """Stable point id so regenerating an embedding overwrites the previous one."""

    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"badgelife:badge:{badge_id}"))


@dataclass
class QdrantBadgeStore:
    url: str
    api_key: Optional[str]
    collection: str
    client: Any = None

    def __post_init__(self) -> None:
        if self.client is None:
            kwargs: dict[str, Any] = {"url": self.url}
            if self.api_key:
                kwargs["api_key"] = self.api_key
            self.client = QdrantClient(**kwargs)

    @classmethod
    def from_settings(cls, settings: Settings) -> "QdrantBadgeStore":
        return cls(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            collection=settings.qdrant_collection,
        )

    async def ensure_collection(self, vector_size: int) -> None:
        def _ensure() -> None:
            if self.client.collection_exists(self.collection):
                return
            logger.info("Creating collection %s (dim=%d)", self.collection, vector_size)
            self.client.create_collection(
                collection_name=self.collection,
                vectors_config=rest.VectorParams(size=vector_size, distance=rest.Distance.COSINE),
            )

        await asyncio.to_thread(_ensure)

    async def upsert_embedding(self, badge: BadgeRecord, vector: List[float]) -> str:
        await self.ensure_collection(len(vector))
        point_id = point_id_for(badge.id)
        payload = {"badge_id": badge.id, "badge": badge.model_dump(mode="json")}

        def _upsert() -> None:
            point = rest.PointStruct(id=point_id, vector=vector, payload=payload)
            self.client.upsert(collection_name=self.collection, points=[point])

        await asyncio.to_thread(_upsert)
        return point_id

    def _scroll(self, *, with_vectors: bool) -> List[Any]:
        if not self.client.collection_exists(self.collection):
            return []
        points: List[Any] = []
        offset = None
        while True:
            page, offset = self.client.scroll(
                collection_name=self.collection,
                limit=_SCROLL_PAGE,
                offset=offset,
                with_payload=True,
                with_vectors=with_vectors,
            )
            points.extend(page)
            if offset is None:
                break
        return points

    async def fetch_embeddings(self) -> List[BadgeEmbedding]:
        points = await asyncio.to_thread(self._scroll, with_vectors=True)
        embeddings: List[BadgeEmbedding] = []
        for point in points:
            payload = point.payload or {}
            vector = point.vector
            if not isinstance(vector, list):
                # named vectors are not part of this collection's layout
                continue
            try:
                badge = BadgeRecord.model_validate(payload.get("badge") or {})
                embeddings.append(
                    BadgeEmbedding(badge_id=str(payload.get("badge_id") or badge.id), vector=vector, badge=badge)
                )
            except ValidationError:
                logger.warning("Skipping malformed embedding point %s", point.id)
        return embeddings

    async def embedded_badge_ids(self) -> Set[str]:
        points = await asyncio.to_thread(self._scroll, with_vectors=False)
        return {str((point.payload or {}).get("badge_id")) for point in points if (point.payload or {}).get("badge_id")}

    async def delete_embeddings(self, badge_ids: Iterable[str]) -> int:
        ids = [point_id_for(badge_id) for badge_id in badge_ids]
        if not ids:
            return 0

        def _delete() -> None:
            self.client.delete(
                collection_name=self.collection,
                points_selector=rest.PointIdsList(points=ids),
            )

        await asyncio.to_thread(_delete)
        return len(ids)

    async def health(self) -> bool:
        try:
            await asyncio.to_thread(self.client.get_collections)
        except Exception:
            return False
        return True

    def close(self) -> None:
        self.client.close()


__all__ = ["QdrantBadgeStore", "point_id_for"]
