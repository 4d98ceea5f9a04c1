"""
Second cascade stage: Google reverse image search through SerpAPI.

The provider only accepts a URL, so the image is parked in temporary public
storage for the duration of the call and removed afterwards.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from badgelife.config import Settings
from badgelife.models import SEARCH_SOURCE_LABELS, AnalysisResult, AnalysisSource, StageStatus
from badgelife.services.api_logger import ApiCallLogger, estimate_api_cost
from badgelife.services.search_filters import FilterVerdict, SearchFilterTerms
from badgelife.services.stage_context import IdentificationContext

logger = logging.getLogger(__name__)

STAGE = "google_search"


@dataclass(frozen=True)
class WebSearchOutcome:
    analysis: Optional[AnalysisResult]
    status: StageStatus

    @property
    def should_continue_to_ai(self) -> bool:
        return self.analysis is None


class ReverseImageSearch:
    def __init__(
        self,
        *,
        api_key: Optional[str],
        url: str,
        filters: SearchFilterTerms,
        storage: Any = None,
        confidence: int = 65,
        timeout: float = 30.0,
        api_logger: Optional[ApiCallLogger] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.filters = filters
        self.storage = storage
        self.confidence = confidence
        self.api_logger = api_logger
        self.client = client if client is not None else httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        storage: Any = None,
        api_logger: Optional[ApiCallLogger] = None,
    ) -> "ReverseImageSearch":
        return cls(
            api_key=settings.serpapi_key,
            url=settings.serpapi_url,
            filters=SearchFilterTerms.from_file(settings.search_filters_path),
            storage=storage,
            confidence=settings.web_search_confidence,
            timeout=settings.serpapi_timeout,
            api_logger=api_logger,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def _query_provider(self, image_url: str) -> Dict[str, Any]:
        params = {"engine": "google_reverse_image", "image_url": image_url, "api_key": self.api_key}
        start = time.perf_counter()
        status: Optional[int] = None
        error: Optional[str] = None
        try:
            response = await self.client.get(self.url, params=params)
            status = response.status_code
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError("search response is not a JSON object")
            return data
        except (httpx.HTTPError, ValueError) as exc:
            error = str(exc) or exc.__class__.__name__
            raise
        finally:
            if self.api_logger is not None:
                await self.api_logger.log(
                    provider="serpapi",
                    endpoint="/search",
                    method="GET",
                    success=error is None,
                    request_data=params,
                    response_status=status,
                    response_time_ms=int((time.perf_counter() - start) * 1000),
                    estimated_cost_usd=estimate_api_cost("serpapi"),
                    error_message=error,
                )

    async def _search_hosted(self, ctx: IdentificationContext) -> Dict[str, Any]:
        stored = await self.storage.upload(ctx.image)
        try:
            await ctx.report(STAGE, StageStatus.PROCESSING, "Submitting image to Google...")
            return await self._query_provider(stored.public_url)
        finally:
            try:
                await self.storage.remove(stored.path)
            except Exception:
                logger.exception("Failed to remove temporary search image %s", stored.path)

    def _to_analysis(self, result: Dict[str, Any]) -> AnalysisResult:
        return AnalysisResult(
            name=str(result.get("title") or "Unknown Badge"),
            description=str(result.get("snippet") or "Found via Google reverse image search"),
            external_link=result.get("link"),
            thumbnail=result.get("thumbnail"),
            confidence=self.confidence,
            source=AnalysisSource.WEB_SEARCH,
            search_source=SEARCH_SOURCE_LABELS[AnalysisSource.WEB_SEARCH],
        )

    async def _finish(
        self,
        ctx: IdentificationContext,
        status: StageStatus,
        message: str,
        analysis: Optional[AnalysisResult] = None,
    ) -> WebSearchOutcome:
        await ctx.report(STAGE, status, message)
        return WebSearchOutcome(analysis=analysis, status=status)

    async def search(self, ctx: IdentificationContext) -> WebSearchOutcome:
        """Run the search; only an accepted top result stops the cascade."""

        await ctx.report(STAGE, StageStatus.SEARCHING, "Trying Google reverse image search...")
        if not self.configured:
            logger.warning("Reverse image search skipped: SERPAPI_KEY not configured")
            return await self._finish(
                ctx, StageStatus.SKIPPED, "Google search unavailable - SERPAPI_KEY not configured"
            )
        if self.storage is None:
            logger.warning("Reverse image search skipped: temporary image storage not configured")
            return await self._finish(
                ctx, StageStatus.SKIPPED, "Google search unavailable - image storage not configured"
            )

        try:
            data = await self._search_hosted(ctx)
        except Exception as exc:
            logger.exception("Reverse image search failed for task %s", ctx.task_id)
            return await self._finish(ctx, StageStatus.FAILED, f"Google search error: {exc}")

        if data.get("error"):
            logger.warning("SerpAPI returned error: %s", data["error"])
            return await self._finish(ctx, StageStatus.FAILED, f"Google API error: {data['error']}")

        results = [item for item in data.get("image_results") or [] if isinstance(item, dict)]
        if not results:
            return await self._finish(ctx, StageStatus.NO_MATCH, "No results found in Google search")

        top = results[0]
        verdict, term = self.filters.classify(top)
        if verdict is FilterVerdict.BLOCKED:
            logger.info("Rejected %d search results; top result matched blocked term %r", len(results), term)
            return await self._finish(
                ctx,
                StageStatus.REJECTED,
                f"Rejected {len(results)} result(s): top result looks like entertainment content ({term})",
            )
        if verdict is FilterVerdict.OFF_TOPIC:
            logger.info("Rejected search results; top result %r has no badge terms", top.get("title"))
            return await self._finish(
                ctx, StageStatus.REJECTED, "Rejected search results: no badge-related terms in top result"
            )

        analysis = self._to_analysis(top)
        logger.info("Google match accepted: %r (matched %r)", analysis.name, term)
        return await self._finish(ctx, StageStatus.SUCCESS, f"Found: {analysis.name}", analysis)

    async def health(self) -> bool:
        if not self.configured:
            return False
        try:
            response = await self.client.get(
                self.url.replace("/search.json", "/account.json"),
                params={"api_key": self.api_key},
            )
            response.raise_for_status()
        except httpx.HTTPError:
            return False
        return True

    async def close(self) -> None:
        await self.client.aclose()


__all__ = ["ReverseImageSearch", "STAGE", "WebSearchOutcome"]
