"""Typed payloads shared by the cascade stages and the HTTP layer."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AnalysisSource(str, Enum):
    DATABASE = "database"
    WEB_SEARCH = "web_search"
    AI_ANALYSIS = "ai_analysis"
    NONE = "none"


SEARCH_SOURCE_LABELS = {
    AnalysisSource.DATABASE: "Local Database",
    AnalysisSource.WEB_SEARCH: "Google Image Search",
    AnalysisSource.AI_ANALYSIS: "AI Analysis",
    AnalysisSource.NONE: "None",
}


def clamp_confidence(value: object) -> int:
    """Coerce arbitrary model/provider output into an integer in [0, 100]."""

    if isinstance(value, bool) or value is None:
        return 0
    try:
        number = float(str(value).strip().rstrip("%"))
    except (TypeError, ValueError):
        return 0
    if number != number:  # NaN
        return 0
    return max(0, min(100, int(round(number))))


class BadgeRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    year: Optional[int] = None
    maker: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    external_link: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> str:
        return str(value)

    def embedding_text(self) -> str:
        description = self.description or "Electronic conference badge"
        return f"Badge: {self.name}. Description: {description}."

    def search_text(self) -> str:
        return " ".join(part for part in (self.name, self.description, self.maker) if part)


class BadgeEmbedding(BaseModel):
    badge_id: str
    vector: List[float]
    badge: BadgeRecord


class DatabaseMatch(BaseModel):
    badge: BadgeRecord
    similarity: float
    confidence: int = Field(..., ge=0, le=100)


class AnalysisResult(BaseModel):
    name: str
    description: Optional[str] = None
    year: Optional[int] = None
    maker: Optional[str] = None
    category: Optional[str] = None
    external_link: Optional[str] = None
    thumbnail: Optional[str] = None
    confidence: int = Field(default=0, ge=0, le=100)
    source: AnalysisSource = AnalysisSource.NONE
    search_source: str = SEARCH_SOURCE_LABELS[AnalysisSource.NONE]
    database_matches: List[BadgeRecord] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: object) -> int:
        return clamp_confidence(value)

    @field_validator("year", mode="before")
    @classmethod
    def _coerce_year(cls, value: object) -> Optional[int]:
        if value in (None, ""):
            return None
        try:
            return int(str(value).strip())
        except (TypeError, ValueError):
            return None

    @classmethod
    def unknown(cls, *, source: AnalysisSource = AnalysisSource.NONE) -> "AnalysisResult":
        return cls(
            name="Unknown Badge",
            description="Could not identify this badge",
            confidence=0,
            source=source,
            search_source=SEARCH_SOURCE_LABELS[source],
        )


class StageStatus(str, Enum):
    SEARCHING = "searching"
    PROCESSING = "processing"
    SUCCESS = "success"
    SKIPPED = "skipped"
    FAILED = "failed"
    REJECTED = "rejected"
    NO_MATCH = "no_match"


class StageReport(BaseModel):
    stage: str
    status: StageStatus
    message: str


class IdentifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_base64: str = Field(..., alias="imageBase64", min_length=1)
    force_web_search: bool = Field(default=False, alias="forceWebSearch")
    user_text: Optional[str] = Field(default=None, alias="userText")
    task_id: Optional[str] = Field(default=None, alias="taskId", max_length=128)

    @field_validator("user_text")
    @classmethod
    def _strip_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = " ".join(value.split())
        return cleaned or None


class IdentificationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    analysis: AnalysisResult
    matches: List[DatabaseMatch] = Field(default_factory=list)
    status_updates: List[StageReport] = Field(default_factory=list, alias="statusUpdates")
    task_id: Optional[str] = Field(default=None, alias="taskId")


__all__ = [
    "AnalysisResult",
    "AnalysisSource",
    "BadgeEmbedding",
    "BadgeRecord",
    "DatabaseMatch",
    "IdentificationResponse",
    "IdentifyRequest",
    "SEARCH_SOURCE_LABELS",
    "StageReport",
    "StageStatus",
    "clamp_confidence",
]
