"""Usage accounting for third-party API calls made by the cascade."""

from __future__ import annotations

import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from badgelife.events.constants import API_CALLS_STREAM, SEARCH_ANALYTICS_STREAM

logger = logging.getLogger(__name__)

# USD per token for chat/embedding models, per call for the rest
OPENAI_COSTS: Dict[str, Any] = {
    "gpt-4o-mini": {"input": 0.00015 / 1000, "output": 0.0006 / 1000},
    "gpt-4o": {"input": 0.0025 / 1000, "output": 0.01 / 1000},
    "text-embedding-3-small": 0.00002 / 1000,
    "text-embedding-ada-002": 0.0001 / 1000,
}
PROVIDER_COSTS: Dict[str, float] = {
    "serpapi": 0.001,
    "replicate": 0.01,
    "perplexity": 0.0005,
}

_KEY_PATTERN = re.compile(r'"[^"]*api[_-]?key[^"]*":\s*"[^"]*"', re.IGNORECASE)


def count_tokens_approx(text: Optional[str]) -> int:
    return math.ceil(len(text or "") / 4)


def estimate_openai_cost(model: str, input_tokens: int, output_tokens: int = 0) -> float:
    costs = OPENAI_COSTS.get(model)
    if costs is None:
        return 0.0
    if isinstance(costs, float):
        return costs * (input_tokens + output_tokens)
    return costs["input"] * input_tokens + costs["output"] * output_tokens


def estimate_api_cost(provider: str) -> float:
    return PROVIDER_COSTS.get(provider, 0.0)


def sanitize_request_data(data: Any) -> Any:
    """Strip anything that looks like an API key before the payload leaves the process."""

    if data is None:
        return None
    encoded = json.dumps(data, default=str)
    return json.loads(_KEY_PATTERN.sub('"api_key":"[REDACTED]"', encoded))


class ApiCallLogger:
    """Publishes one record per external call; never lets logging break a request."""

    def __init__(self, bus: Any) -> None:
        self._bus = bus

    async def log(
        self,
        *,
        provider: str,
        endpoint: str,
        method: str = "POST",
        success: bool,
        request_data: Any = None,
        response_status: Optional[int] = None,
        response_time_ms: Optional[int] = None,
        tokens_used: Optional[int] = None,
        estimated_cost_usd: Optional[float] = None,
        error_message: Optional[str] = None,
    ) -> None:
        record = {
            "api_provider": provider,
            "endpoint": endpoint,
            "method": method,
            "request_data": sanitize_request_data(request_data),
            "response_status": response_status,
            "response_time_ms": response_time_ms,
            "tokens_used": tokens_used,
            "estimated_cost_usd": estimated_cost_usd,
            "success": success,
            "error_message": error_message,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        if self._bus is None:
            return
        try:
            await self._bus.publish(API_CALLS_STREAM, record)
        except Exception:
            logger.exception("Failed to publish API call log for %s %s", provider, endpoint)

    async def track_search(self, analytics: Dict[str, Any]) -> None:
        if self._bus is None:
            return
        try:
            await self._bus.publish(SEARCH_ANALYTICS_STREAM, analytics)
        except Exception:
            logger.exception("Failed to publish search analytics")


__all__ = [
    "ApiCallLogger",
    "count_tokens_approx",
    "estimate_api_cost",
    "estimate_openai_cost",
    "sanitize_request_data",
]
