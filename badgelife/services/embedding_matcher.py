"""First cascade stage: nearest catalog badges by embedding similarity."""

from __future__ import annotations

import logging
from typing import Any, List, Optional

from badgelife.config import Settings
from badgelife.models import DatabaseMatch, StageStatus
from badgelife.services.similarity import filter_badges_by_text, rank_matches
from badgelife.services.stage_context import IdentificationContext

logger = logging.getLogger(__name__)

STAGE = "database_search"

DESCRIBE_PROMPT = (
    "Describe this electronic badge in one or two sentences for a catalog search: "
    "badge or event name, year, maker and the most distinctive visual features. "
    "Plain text only."
)


def build_query_text(caption: Optional[str], user_text: Optional[str]) -> str:
    """Shape the query like stored badge descriptors so both live in one vector space."""

    caption = (caption or "").strip()
    user_text = (user_text or "").strip()
    name = user_text or caption
    description = caption or user_text
    return f"Badge: {name}. Description: {description}."


class EmbeddingMatcher:
    def __init__(
        self,
        *,
        embedder: Any,
        vlm: Any,
        store: Any,
        settings: Settings,
        catalog: Any = None,
    ) -> None:
        self.embedder = embedder
        self.vlm = vlm
        self.store = store
        self.catalog = catalog
        self.settings = settings

    async def describe(self, ctx: IdentificationContext) -> str:
        result = await self.vlm.generate(
            ctx.image.as_data_url(),
            DESCRIBE_PROMPT,
            max_tokens=80,
            temperature=0.1,
        )
        return str(result.get("output") or "").strip()

    async def _embedding_matches(self, ctx: IdentificationContext) -> List[DatabaseMatch]:
        caption = await self.describe(ctx)
        if not caption and not ctx.user_text:
            logger.warning("Vision model returned an empty caption for task %s", ctx.task_id)
            return []
        vector = await self.embedder.embed_text(build_query_text(caption, ctx.user_text))
        embeddings = await self.store.fetch_embeddings()
        logger.info("Comparing query vector (dim=%d) against %d stored embeddings", len(vector), len(embeddings))
        return rank_matches(
            vector,
            embeddings,
            floor=self.settings.similarity_floor,
            top_k=self.settings.match_top_k,
            boost_threshold=self.settings.boost_threshold,
            boost=self.settings.boost_amount,
        )

    async def _text_matches(self, ctx: IdentificationContext) -> List[DatabaseMatch]:
        if not ctx.user_text or self.catalog is None:
            return []
        try:
            badges = await self.catalog.list_badges()
        except Exception:
            logger.exception("Catalog lookup failed during keyword fallback")
            return []
        matches = filter_badges_by_text(
            ctx.user_text,
            badges,
            threshold=self.settings.text_match_threshold,
            top_k=self.settings.match_top_k,
        )
        logger.info("Keyword fallback matched %d of %d badges for %r", len(matches), len(badges), ctx.user_text)
        return matches

    async def match(self, ctx: IdentificationContext) -> List[DatabaseMatch]:
        """Return ranked matches; every failure degrades to an empty list."""

        await ctx.report(STAGE, StageStatus.SEARCHING, "Searching local badge database...")
        matches: List[DatabaseMatch] = []
        if not self.embedder.configured or not self.vlm.configured:
            logger.warning("Embedding search skipped: OPENAI_API_KEY not configured")
            await ctx.report(STAGE, StageStatus.SKIPPED, "Embedding search unavailable - OPENAI_API_KEY not configured")
        else:
            try:
                matches = await self._embedding_matches(ctx)
            except Exception as exc:
                logger.exception("Embedding search failed for task %s", ctx.task_id)
                await ctx.report(STAGE, StageStatus.FAILED, f"Embedding search error: {exc}")

        if not matches:
            matches = await self._text_matches(ctx)

        if matches:
            top = matches[0]
            await ctx.report(
                STAGE,
                StageStatus.SUCCESS,
                f"Found {len(matches)} candidate(s); best: {top.badge.name} ({top.confidence}%)",
            )
        else:
            await ctx.report(STAGE, StageStatus.NO_MATCH, "No similar badges found in the local database")
        return matches


__all__ = ["DESCRIBE_PROMPT", "EmbeddingMatcher", "STAGE", "build_query_text"]
