"""
Client for an OpenAI-compatible chat completions endpoint with image input.
Used both for the terminal vision analysis and for short image captions.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from badgelife.config import ConfigurationError, Settings
from badgelife.services.api_logger import ApiCallLogger, count_tokens_approx, estimate_openai_cost


@dataclass
class VLMRunner:
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
    def from_settings(cls, settings: Settings, api_logger: Optional[ApiCallLogger] = None) -> "VLMRunner":
        return cls(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            model=settings.vision_model,
            timeout=settings.openai_timeout,
            api_logger=api_logger,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def generate(
        self,
        image_url: str,
        prompt: str,
        *,
        system_prompt: Optional[str] = None,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ) -> Dict[str, Any]:
        """Send one image + prompt; raise on transport or HTTP failure."""

        if not self.configured:
            raise ConfigurationError("OPENAI_API_KEY not configured")

        messages: list[Dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append(
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image_url}},
                ],
            }
        )
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }

        start = time.perf_counter()
        status: Optional[int] = None
        error: Optional[str] = None
        data: Dict[str, Any] = {}
        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=self._headers(),
            )
            status = response.status_code
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError("chat completion response is not a JSON object")
        except (httpx.HTTPError, ValueError) as exc:
            error = str(exc) or exc.__class__.__name__
            raise
        finally:
            latency_ms = int((time.perf_counter() - start) * 1000)
            await self._log_call(
                prompt=(system_prompt or "") + prompt,
                max_tokens=max_tokens,
                status=status,
                latency_ms=latency_ms,
                usage=data.get("usage") if isinstance(data, dict) else None,
                error=error,
            )

        choices = data.get("choices") or []
        message = choices[0].get("message") if choices and isinstance(choices[0], dict) else None
        output = message.get("content") if isinstance(message, dict) else None
        return {
            "output": output if isinstance(output, str) else "",
            "model": data.get("model", self.model),
            "latency_ms": latency_ms,
        }

    async def _log_call(
        self,
        *,
        prompt: str,
        max_tokens: int,
        status: Optional[int],
        latency_ms: int,
        usage: Optional[Dict[str, Any]],
        error: Optional[str],
    ) -> None:
        if self.api_logger is None:
            return
        if isinstance(usage, dict):
            input_tokens = int(usage.get("prompt_tokens") or 0)
            output_tokens = int(usage.get("completion_tokens") or 0)
        else:
            input_tokens = count_tokens_approx(prompt)
            output_tokens = int(max_tokens * 0.7)
        await self.api_logger.log(
            provider="openai",
            endpoint="/v1/chat/completions",
            success=error is None,
            request_data={"model": self.model, "max_tokens": max_tokens, "messages": "badge_image_analysis"},
            response_status=status,
            response_time_ms=latency_ms,
            tokens_used=input_tokens + output_tokens,
            estimated_cost_usd=estimate_openai_cost(self.model, input_tokens, output_tokens),
            error_message=error,
        )

    async def health(self) -> bool:
        """True when the endpoint accepts our credentials."""

        if not self.configured or self.client is None:
            return False
        try:
            response = await self.client.get(f"{self.base_url}/models", headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError:
            return False
        return True

    async def close(self) -> None:
        if self.client is not None:
            await self.client.aclose()
