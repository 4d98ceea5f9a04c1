"""
Coordinator for the identification cascade.

Stages run strictly in order (database -> web search -> AI analysis); each is
an independent failure domain that already converts its own errors into an
empty or placeholder result, so the coordinator only decides when to stop.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from badgelife.config import Settings
from badgelife.events.tracker import FINAL_STAGE
from badgelife.models import AnalysisResult, AnalysisSource, DatabaseMatch, IdentificationResponse, StageStatus
from badgelife.services.combiner import combine_results
from badgelife.services.embedding_matcher import EmbeddingMatcher
from badgelife.services.embedding_matcher import STAGE as DATABASE_STAGE
from badgelife.services.images import decode_image_payload
from badgelife.services.stage_context import IdentificationContext
from badgelife.services.vision_analyzer import STAGE as AI_STAGE
from badgelife.services.vision_analyzer import VisionAnalyzer
from badgelife.services.web_search import STAGE as WEB_STAGE
from badgelife.services.web_search import ReverseImageSearch

logger = logging.getLogger(__name__)


@dataclass
class CascadeState:
    matches: List[DatabaseMatch] = field(default_factory=list)
    web: Optional[AnalysisResult] = None
    ai: Optional[AnalysisResult] = None


# A stage fills in its slot of the state and returns True when the cascade can stop.
Stage = Callable[[IdentificationContext, CascadeState], Awaitable[bool]]


class IdentificationCascade:
    def __init__(
        self,
        *,
        settings: Settings,
        matcher: EmbeddingMatcher,
        web_search: ReverseImageSearch,
        vision: VisionAnalyzer,
        tracker: Any = None,
        api_logger: Any = None,
    ) -> None:
        self.settings = settings
        self.matcher = matcher
        self.web_search = web_search
        self.vision = vision
        self.tracker = tracker
        self.api_logger = api_logger

    async def _database_stage(self, ctx: IdentificationContext, state: CascadeState) -> bool:
        with ctx.timed(DATABASE_STAGE):
            state.matches = await self.matcher.match(ctx)
        return bool(state.matches)

    async def _web_stage(self, ctx: IdentificationContext, state: CascadeState) -> bool:
        with ctx.timed(WEB_STAGE):
            outcome = await self.web_search.search(ctx)
        state.web = outcome.analysis
        return not outcome.should_continue_to_ai

    async def _vision_stage(self, ctx: IdentificationContext, state: CascadeState) -> bool:
        with ctx.timed(AI_STAGE):
            state.ai = await self.vision.analyze(ctx)
        return True

    def stages(self, *, force_web_search: bool) -> List[Stage]:
        chain: List[Stage] = [self._web_stage, self._vision_stage]
        if not force_web_search:
            chain.insert(0, self._database_stage)
        return chain

    async def run(
        self,
        image_b64: str,
        *,
        force_web_search: bool = False,
        user_text: Optional[str] = None,
        task_id: Optional[str] = None,
    ) -> IdentificationResponse:
        """
        Identify one submitted image.

        Raises ``ConfigurationError`` when no provider key is configured and
        ``ImagePayloadError`` for undecodable input; every other failure is
        absorbed by the stages and surfaces only as a lower confidence.
        """

        self.settings.require_any_provider()
        image = decode_image_payload(image_b64)
        ctx = IdentificationContext(
            task_id=task_id or str(uuid.uuid4()),
            image=image,
            user_text=user_text,
            force_web_search=force_web_search,
            tracker=self.tracker,
        )
        logger.info(
            "Identification %s started (force_web_search=%s, bytes=%d)",
            ctx.task_id,
            force_web_search,
            len(image.data),
        )

        start = time.perf_counter()
        state = CascadeState()
        for stage in self.stages(force_web_search=force_web_search):
            if await stage(ctx, state):
                break

        response = combine_results(matches=state.matches, web=state.web, ai=state.ai)
        analysis = response.analysis
        await ctx.report(
            FINAL_STAGE,
            StageStatus.SUCCESS,
            f"{analysis.name} via {analysis.search_source} ({analysis.confidence}% confidence)",
        )
        total_ms = int((time.perf_counter() - start) * 1000)
        await self._track(ctx, state, analysis, total_ms)
        logger.info(
            "Identification %s finished: source=%s confidence=%d in %dms",
            ctx.task_id,
            analysis.source.value,
            analysis.confidence,
            total_ms,
        )
        return response.model_copy(update={"status_updates": list(ctx.reports), "task_id": ctx.task_id})

    async def _track(
        self,
        ctx: IdentificationContext,
        state: CascadeState,
        analysis: AnalysisResult,
        total_ms: int,
    ) -> None:
        if self.api_logger is None:
            return
        found_in_database = analysis.source is AnalysisSource.DATABASE and analysis.confidence >= 50
        await self.api_logger.track_search(
            {
                "search_type": "web_search_forced" if ctx.force_web_search else "image_analysis",
                "image_matching_duration_ms": ctx.timings_ms.get(DATABASE_STAGE),
                "web_search_duration_ms": ctx.timings_ms.get(WEB_STAGE),
                "ai_analysis_duration_ms": ctx.timings_ms.get(AI_STAGE),
                "total_duration_ms": total_ms,
                "results_found": len(state.matches) + int(state.web is not None) + int(state.ai is not None),
                "best_confidence_score": analysis.confidence,
                "found_in_database": found_in_database,
                "found_via_web_search": analysis.source is AnalysisSource.WEB_SEARCH,
                "found_via_image_matching": found_in_database,
                "search_source_used": analysis.search_source,
            }
        )


__all__ = ["CascadeState", "IdentificationCascade"]
