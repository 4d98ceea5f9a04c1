from __future__ import annotations

import json
from typing import List

import httpx
import pytest

from badgelife.config import ConfigurationError
from badgelife.events.constants import API_CALLS_STREAM
from badgelife.services.api_logger import ApiCallLogger
from badgelife.services.embedder import EmbeddingError, OpenAIEmbedder
from badgelife.services.vlm_runner import VLMRunner
from conftest import RecordingBus


def _client(body, *, status: int = 200, seen: List[httpx.Request] | None = None) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _embedder(body, *, status: int = 200, bus: RecordingBus | None = None, **kwargs) -> OpenAIEmbedder:
    return OpenAIEmbedder(
        api_key="sk-test",
        base_url="https://openai.test/v1",
        model="text-embedding-3-small",
        timeout=5.0,
        api_logger=ApiCallLogger(bus) if bus is not None else None,
        client=_client(body, status=status, **kwargs),
    )


def _runner(body, *, status: int = 200, bus: RecordingBus | None = None, **kwargs) -> VLMRunner:
    return VLMRunner(
        api_key="sk-test",
        base_url="https://openai.test/v1",
        model="gpt-4o-mini",
        timeout=5.0,
        api_logger=ApiCallLogger(bus) if bus is not None else None,
        client=_client(body, status=status, **kwargs),
    )


def test_runners_build_their_own_client_when_none_given() -> None:
    embedder = OpenAIEmbedder(api_key="sk-test", base_url="https://openai.test/v1", model="m", timeout=5.0)
    runner = VLMRunner(api_key="sk-test", base_url="https://openai.test/v1", model="m", timeout=5.0)
    assert isinstance(embedder.client, httpx.AsyncClient)
    assert isinstance(runner.client, httpx.AsyncClient)


@pytest.mark.asyncio
async def test_embed_text_returns_vector_and_logs_call() -> None:
    bus = RecordingBus()
    seen: List[httpx.Request] = []
    embedder = _embedder({"data": [{"embedding": [0.1, 2, -0.5]}]}, bus=bus, seen=seen)

    vector = await embedder.embed_text("Badge: DEF CON 27.")

    assert vector == [0.1, 2.0, -0.5]
    assert json.loads(seen[0].content) == {"input": "Badge: DEF CON 27.", "model": "text-embedding-3-small"}
    logged = bus.published[API_CALLS_STREAM][0]
    assert logged["endpoint"] == "/v1/embeddings"
    assert logged["success"] is True
    assert logged["response_status"] == 200


@pytest.mark.asyncio
async def test_embed_text_rejects_missing_vector_and_logs_failure() -> None:
    bus = RecordingBus()
    embedder = _embedder({"data": []}, bus=bus)

    with pytest.raises(EmbeddingError):
        await embedder.embed_text("anything")

    logged = bus.published[API_CALLS_STREAM][0]
    assert logged["success"] is False
    assert "data[0].embedding" in logged["error_message"]


@pytest.mark.asyncio
async def test_embed_text_requires_api_key() -> None:
    embedder = _embedder({})
    embedder.api_key = None
    with pytest.raises(ConfigurationError):
        await embedder.embed_text("anything")


@pytest.mark.asyncio
async def test_generate_extracts_message_content_and_uses_reported_usage() -> None:
    bus = RecordingBus()
    seen: List[httpx.Request] = []
    body = {
        "model": "gpt-4o-mini",
        "choices": [{"message": {"content": "A DEF CON badge"}}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 30},
    }
    runner = _runner(body, bus=bus, seen=seen)

    result = await runner.generate("data:image/png;base64,AAAA", "Describe", system_prompt="Be brief", max_tokens=80)

    assert result["output"] == "A DEF CON badge"
    assert result["model"] == "gpt-4o-mini"
    sent = json.loads(seen[0].content)
    assert [message["role"] for message in sent["messages"]] == ["system", "user"]
    assert sent["max_tokens"] == 80
    assert seen[0].headers["Authorization"] == "Bearer sk-test"
    assert bus.published[API_CALLS_STREAM][0]["tokens_used"] == 150


@pytest.mark.asyncio
async def test_generate_raises_on_http_error_after_logging() -> None:
    bus = RecordingBus()
    runner = _runner({"error": "rate limited"}, status=429, bus=bus)

    with pytest.raises(httpx.HTTPStatusError):
        await runner.generate("https://img.test/a.png", "Describe")

    logged = bus.published[API_CALLS_STREAM][0]
    assert logged["success"] is False
    assert logged["response_status"] == 429


@pytest.mark.asyncio
async def test_health_reflects_models_endpoint() -> None:
    assert await _runner({"data": []}).health() is True
    assert await _runner({}, status=401).health() is False
