"""Terminal cascade stage: ask a vision model what the badge is."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from badgelife.models import SEARCH_SOURCE_LABELS, AnalysisResult, AnalysisSource, StageStatus
from badgelife.services.stage_context import IdentificationContext

logger = logging.getLogger(__name__)

STAGE = "ai_analysis"

SYSTEM_PROMPT = (
    "You are an expert in electronic conference badges, SAO badges, and hacker badges. "
    "Analyze this image and provide detailed information.\n\n"
    "Return JSON: {\n"
    '  "name": "specific badge name",\n'
    '  "description": "detailed description",\n'
    '  "maker": "maker name if visible",\n'
    '  "category": "badge category",\n'
    '  "confidence": 70\n'
    "}"
)
USER_PROMPT = "Analyze this electronic badge image in detail. What specific badge is this?"

PLACEHOLDER_NAME = "Unknown Electronic Badge"
PLACEHOLDER_DESCRIPTION = "Electronic conference or hacker badge"
PLACEHOLDER_CONFIDENCE = 20

_FIELDS = ("name", "description", "maker", "category", "year", "confidence")


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse the first balanced ``{...}`` block in free text.

    Braces inside JSON strings are ignored while balancing. Returns None when
    there is no block or the first block is not a valid JSON object.
    """

    if not text:
        return None
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(text[start:index + 1])
                except ValueError:
                    return None
                return parsed if isinstance(parsed, dict) else None
    return None


def _ai_result(**fields: Any) -> AnalysisResult:
    return AnalysisResult(
        source=AnalysisSource.AI_ANALYSIS,
        search_source=SEARCH_SOURCE_LABELS[AnalysisSource.AI_ANALYSIS],
        **fields,
    )


def placeholder_result() -> AnalysisResult:
    return _ai_result(
        name=PLACEHOLDER_NAME,
        description=PLACEHOLDER_DESCRIPTION,
        confidence=PLACEHOLDER_CONFIDENCE,
    )


def failed_result() -> AnalysisResult:
    return _ai_result(name="Unknown Badge", description="Could not identify this badge", confidence=0)


def parse_analysis(output: str) -> Optional[AnalysisResult]:
    parsed = extract_json_object(output)
    if parsed is None:
        return None
    fields: Dict[str, Any] = {
        "name": PLACEHOLDER_NAME,
        "description": PLACEHOLDER_DESCRIPTION,
        "confidence": PLACEHOLDER_CONFIDENCE,
    }
    for key in _FIELDS:
        value = parsed.get(key)
        if value in (None, ""):
            continue
        fields[key] = value if key in ("confidence", "year") else str(value).strip()
    return _ai_result(**fields)


class VisionAnalyzer:
    def __init__(self, vlm: Any) -> None:
        self.vlm = vlm

    async def analyze(self, ctx: IdentificationContext) -> AnalysisResult:
        """Always returns an analysis; failures become low-confidence placeholders."""

        await ctx.report(STAGE, StageStatus.SEARCHING, "Running AI analysis as fallback...")
        if not self.vlm.configured:
            logger.warning("AI analysis skipped: OPENAI_API_KEY not configured")
            await ctx.report(STAGE, StageStatus.SKIPPED, "AI analysis unavailable - OPENAI_API_KEY not configured")
            return failed_result()

        await ctx.report(STAGE, StageStatus.PROCESSING, "Analyzing badge features with AI...")
        try:
            raw = await self.vlm.generate(
                ctx.image.as_data_url(),
                USER_PROMPT,
                system_prompt=SYSTEM_PROMPT,
                max_tokens=300,
                temperature=0.3,
            )
        except Exception as exc:
            logger.exception("AI analysis failed for task %s", ctx.task_id)
            await ctx.report(STAGE, StageStatus.FAILED, f"AI analysis failed: {exc}")
            return failed_result()

        result = parse_analysis(str(raw.get("output") or ""))
        if result is None:
            logger.info("Could not parse AI analysis, using placeholder")
            result = placeholder_result()
        await ctx.report(
            STAGE,
            StageStatus.SUCCESS,
            f"AI identified: {result.name} ({result.confidence}% confidence)",
        )
        return result


__all__ = [
    "PLACEHOLDER_CONFIDENCE",
    "PLACEHOLDER_NAME",
    "STAGE",
    "SYSTEM_PROMPT",
    "VisionAnalyzer",
    "extract_json_object",
    "failed_result",
    "parse_analysis",
    "placeholder_result",
]
