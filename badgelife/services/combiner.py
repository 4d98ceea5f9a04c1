"""Merge whichever cascade stages ran into the single response the app consumes."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from badgelife.models import (
    SEARCH_SOURCE_LABELS,
    AnalysisResult,
    AnalysisSource,
    DatabaseMatch,
    IdentificationResponse,
)

# fields a web hit may contribute on top of the base analysis
_WEB_OVERLAY_FIELDS = ("name", "description", "external_link", "thumbnail", "source", "search_source")


def analysis_from_match(match: DatabaseMatch) -> AnalysisResult:
    badge = match.badge
    return AnalysisResult(
        name=badge.name,
        description=badge.description,
        year=badge.year,
        maker=badge.maker,
        category=badge.category,
        external_link=badge.external_link,
        thumbnail=badge.image_url,
        confidence=match.confidence,
        source=AnalysisSource.DATABASE,
        search_source=SEARCH_SOURCE_LABELS[AnalysisSource.DATABASE],
    )


def combine_results(
    *,
    matches: Optional[Iterable[DatabaseMatch]] = None,
    web: Optional[AnalysisResult] = None,
    ai: Optional[AnalysisResult] = None,
) -> IdentificationResponse:
    """
    Spread the AI (or database-derived) analysis first, overlay web search
    fields, and keep the best confidence seen across all present results.

    The overlay replaces ``source`` as a whole, so exactly one primary source
    is ever reported.
    """

    ranked: List[DatabaseMatch] = sorted(matches or [], key=lambda m: m.similarity, reverse=True)

    if ai is not None:
        base: Optional[AnalysisResult] = ai
    elif ranked:
        base = analysis_from_match(ranked[0])
    else:
        base = None

    data: Dict[str, Any] = base.model_dump() if base is not None else {}
    if web is not None:
        web_data = web.model_dump()
        for key in _WEB_OVERLAY_FIELDS:
            if web_data.get(key) is not None:
                data[key] = web_data[key]
        for key in ("year", "maker", "category"):
            if data.get(key) is None and web_data.get(key) is not None:
                data[key] = web_data[key]

    if not data:
        data = AnalysisResult.unknown().model_dump()

    confidences = [result.confidence for result in (ai, web) if result is not None]
    if ranked:
        confidences.append(ranked[0].confidence)
    data["confidence"] = max(confidences) if confidences else 0
    data["database_matches"] = [match.badge for match in ranked]

    return IdentificationResponse(analysis=AnalysisResult(**data), matches=ranked)


__all__ = ["analysis_from_match", "combine_results"]
