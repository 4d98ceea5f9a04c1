from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from badgelife.services.embedding_indexer import (
    DEFAULT_BATCH_SIZE,
    BadgeNotFoundError,
    EmbeddingIndexer,
    IndexResult,
    ProcessReport,
)

router = APIRouter()


def get_indexer(request: Request) -> EmbeddingIndexer:
    indexer: EmbeddingIndexer | None = getattr(request.app.state, "indexer", None)
    if indexer is None:
        raise HTTPException(status_code=500, detail="Embedding indexer unavailable (catalog not configured)")
    return indexer


class CleanupResponse(BaseModel):
    removed: int
    badge_ids: List[str]


@router.post("/process", response_model=ProcessReport)
async def process_pending_embeddings(
    batch_size: int = Query(DEFAULT_BATCH_SIZE, ge=1, le=50),
    indexer: EmbeddingIndexer = Depends(get_indexer),
) -> ProcessReport:
    return await indexer.process_pending(batch_size)


@router.post("/{badge_id}/reindex", response_model=IndexResult)
async def reindex_badge(
    badge_id: str,
    indexer: EmbeddingIndexer = Depends(get_indexer),
) -> IndexResult:
    try:
        return await indexer.reindex_badge(badge_id)
    except BadgeNotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"Badge {badge_id} not found") from exc


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_orphaned_embeddings(
    indexer: EmbeddingIndexer = Depends(get_indexer),
) -> CleanupResponse:
    return CleanupResponse(**await indexer.cleanup_orphans())
