"""Keeps the badge embedding collection in step with the catalog."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from badgelife.models import BadgeRecord

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 3


class BadgeNotFoundError(LookupError):
    """Raised when a reindex targets a badge the catalog does not know."""


class IndexResult(BaseModel):
    badge_id: str
    success: bool
    error: str | None = None


class ProcessReport(BaseModel):
    processed: int = 0
    total: int = 0
    results: List[IndexResult] = Field(default_factory=list)
    message: str = ""


class EmbeddingIndexer:
    def __init__(self, *, catalog: Any, store: Any, embedder: Any) -> None:
        self.catalog = catalog
        self.store = store
        self.embedder = embedder

    async def _index(self, badge: BadgeRecord) -> IndexResult:
        try:
            vector = await self.embedder.embed_text(badge.embedding_text())
            await self.store.upsert_embedding(badge, vector)
        except Exception as exc:
            logger.exception("Failed to index badge %s", badge.id)
            return IndexResult(badge_id=badge.id, success=False, error=str(exc) or exc.__class__.__name__)
        logger.info("Indexed badge %s (%r, dim=%d)", badge.id, badge.name, len(vector))
        return IndexResult(badge_id=badge.id, success=True)

    async def process_pending(self, batch_size: int = DEFAULT_BATCH_SIZE) -> ProcessReport:
        """Embed up to ``batch_size`` catalog badges that have an image but no embedding yet."""

        badges = await self.catalog.list_badges(with_images=True)
        existing = await self.store.embedded_badge_ids()
        pending = [badge for badge in badges if badge.id not in existing]
        logger.info(
            "Embedding backlog: %d of %d badges (%d already embedded)",
            len(pending),
            len(badges),
            len(existing),
        )
        if not pending:
            return ProcessReport(total=len(badges), message="All badges already have embeddings")

        results = [await self._index(badge) for badge in pending[: max(batch_size, 0)]]
        processed = sum(1 for result in results if result.success)
        return ProcessReport(
            processed=processed,
            total=len(pending),
            results=results,
            message=f"Processed {processed} badges successfully",
        )

    async def reindex_badge(self, badge_id: str) -> IndexResult:
        badge = await self.catalog.get_badge(badge_id)
        if badge is None:
            raise BadgeNotFoundError(badge_id)
        return await self._index(badge)

    async def cleanup_orphans(self) -> Dict[str, Any]:
        """Drop embeddings whose badge has been removed from the catalog."""

        catalog_ids = {badge.id for badge in await self.catalog.list_badges()}
        embedded = await self.store.embedded_badge_ids()
        if not catalog_ids and embedded:
            logger.warning(
                "Catalog returned no badges but %d embeddings exist; skipping orphan cleanup",
                len(embedded),
            )
            return {"removed": 0, "badge_ids": []}
        orphans = sorted(embedded - catalog_ids)
        removed = await self.store.delete_embeddings(orphans) if orphans else 0
        if orphans:
            logger.info("Removed %d orphaned embeddings: %s", removed, ", ".join(orphans))
        return {"removed": removed, "badge_ids": orphans}


__all__ = [
    "BadgeNotFoundError",
    "DEFAULT_BATCH_SIZE",
    "EmbeddingIndexer",
    "IndexResult",
    "ProcessReport",
]
