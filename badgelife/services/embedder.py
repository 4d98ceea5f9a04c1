"""
Wrapper around the OpenAI embeddings endpoint.
Badge descriptors and query captions are embedded with the same model so their
vectors share a dimensionality.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, List, Optional

import httpx

from badgelife.config import ConfigurationError, Settings
from badgelife.services.api_logger import ApiCallLogger, count_tokens_approx, estimate_openai_cost


class EmbeddingError(RuntimeError):
    """Raised when the embeddings API returns something that is not a usable vector."""


def _validate_vector(raw: Any) -> List[float]:
    if not isinstance(raw, list) or not raw:
        raise EmbeddingError("embedding payload is empty or not a list")
    vector: List[float] = []
    for value in raw:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmbeddingError("embedding contains non-numeric values")
        number = float(value)
        if not math.isfinite(number):
            raise EmbeddingError("embedding contains non-finite values")
        vector.append(number)
    return vector


@dataclass
class OpenAIEmbedder:
    api_key: Optional[str]
    base_url: str
    model: str
    timeout: float
    api_logger: Optional[ApiCallLogger] = None
    client: Optional[httpx.AsyncClient] = None

    def __post_init__(self) -> None:
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout)

    @classmethod
    def from_settings(cls, settings: Settings, api_logger: Optional[ApiCallLogger] = None) -> "OpenAIEmbedder":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.embedding_model,
            timeout=settings.openai_timeout,
            api_logger=api_logger,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def embed_text(self, text: str) -> List[float]:
        if not self.configured:
            raise ConfigurationError("OPENAI_API_KEY not configured")

        start = time.perf_counter()
        status: Optional[int] = None
        error: Optional[str] = None
        try:
            response = await self.client.post(
                f"{self.base_url}/embeddings",
                json={"input": text, "model": self.model},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            status = response.status_code
            response.raise_for_status()
            data = response.json()
            try:
                raw = data["data"][0]["embedding"]
            except (KeyError, IndexError, TypeError) as exc:
                raise EmbeddingError("embeddings response missing data[0].embedding") from exc
            return _validate_vector(raw)
        except (httpx.HTTPError, ValueError, EmbeddingError) as exc:
            error = str(exc) or exc.__class__.__name__
            raise
        finally:
            if self.api_logger is not None:
                tokens = count_tokens_approx(text)
                await self.api_logger.log(
                    provider="openai",
                    endpoint="/v1/embeddings",
                    success=error is None,
                    request_data={"model": self.model},
                    response_status=status,
                    response_time_ms=int((time.perf_counter() - start) * 1000),
                    tokens_used=tokens,
                    estimated_cost_usd=estimate_openai_cost(self.model, tokens),
                    error_message=error,
                )

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()


__all__ = ["EmbeddingError", "OpenAIEmbedder"]
