"""
Process-wide configuration for the identification service.
Built once at startup from the environment and handed to each service.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DEFAULT_FILTERS_PATH = Path(__file__).resolve().parent / "data" / "search_filters.json"


class ConfigurationError(RuntimeError):
    """Raised when the service cannot run with the configured credentials."""


def _optional(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com/v1"
    embedding_model: str = "text-embedding-3-small"
    vision_model: str = "gpt-4o"
    openai_timeout: float = 60.0

    serpapi_key: Optional[str] = None
    serpapi_url: str = "https://serpapi.com/search.json"
    serpapi_timeout: float = 30.0

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    temp_bucket: str = "badge-search-temp"

    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: Optional[str] = None
    qdrant_collection: str = "badge_embeddings"

    redis_url: str = "redis://localhost:6379/0"

    search_filters_path: Path = DEFAULT_FILTERS_PATH

    similarity_floor: float = 0.3
    match_top_k: int = 5
    boost_threshold: float = 0.95
    boost_amount: int = 5
    web_search_confidence: int = 65
    text_match_threshold: float = 0.1

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=_optional("OPENAI_API_KEY"),
            openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1").rstrip("/"),
            embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            vision_model=os.getenv("OPENAI_VISION_MODEL", "gpt-4o"),
            openai_timeout=float(os.getenv("OPENAI_TIMEOUT", "60")),
            serpapi_key=_optional("SERPAPI_KEY"),
            serpapi_url=os.getenv("SERPAPI_URL", "https://serpapi.com/search.json"),
            serpapi_timeout=float(os.getenv("SERPAPI_TIMEOUT", "30")),
            supabase_url=_optional("SUPABASE_URL"),
            supabase_key=_optional("SUPABASE_SERVICE_ROLE_KEY"),
            temp_bucket=os.getenv("SUPABASE_TEMP_BUCKET", "badge-search-temp"),
            qdrant_url=os.getenv("QDRANT_URL", "http://localhost:6333"),
            qdrant_api_key=_optional("QDRANT_API_KEY"),
            qdrant_collection=os.getenv("QDRANT_COLLECTION", "badge_embeddings"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            search_filters_path=Path(os.getenv("SEARCH_FILTERS_PATH", str(DEFAULT_FILTERS_PATH))),
            similarity_floor=float(os.getenv("MATCH_SIMILARITY_FLOOR", "0.3")),
            match_top_k=int(os.getenv("MATCH_TOP_K", "5")),
            boost_threshold=float(os.getenv("MATCH_BOOST_THRESHOLD", "0.95")),
            boost_amount=int(os.getenv("MATCH_BOOST_AMOUNT", "5")),
            web_search_confidence=int(os.getenv("WEB_SEARCH_CONFIDENCE", "65")),
            text_match_threshold=float(os.getenv("TEXT_MATCH_THRESHOLD", "0.1")),
        )

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_serpapi(self) -> bool:
        return bool(self.serpapi_key)

    def require_any_provider(self) -> None:
        """Fail hard only when no identification provider is usable at all."""

        if not self.has_openai and not self.has_serpapi:
            raise ConfigurationError("neither OPENAI_API_KEY nor SERPAPI_KEY is configured")


__all__ = ["ConfigurationError", "DEFAULT_FILTERS_PATH", "Settings"]
