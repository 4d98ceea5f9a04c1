from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set

import pytest

from badgelife.config import Settings
from badgelife.models import BadgeEmbedding, BadgeRecord, StageStatus
from badgelife.services.images import ImagePayload, decode_image_payload
from badgelife.services.search_filters import SearchFilterTerms
from badgelife.services.stage_context import IdentificationContext
from badgelife.services.storage import StoredImage

SAMPLE_IMAGE_B64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR4nGMAAQAABQABDQottAAAAABJRU5ErkJggg=="
)


class FakeVLM:
    def __init__(self, outputs: Optional[List[Any]] = None, *, configured: bool = True) -> None:
        self.outputs = list(outputs or [])
        self.configured = configured
        self.calls: List[Dict[str, Any]] = []

    async def generate(self, image_url: str, prompt: str, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append({"image_url": image_url, "prompt": prompt, **kwargs})
        output = self.outputs.pop(0) if self.outputs else ""
        if isinstance(output, Exception):
            raise output
        return {"output": output, "model": "fake-vlm", "latency_ms": 1}

    async def health(self) -> bool:
        return self.configured


class FakeEmbedder:
    def __init__(self, vector: Optional[List[float]] = None, *, configured: bool = True, error: Exception | None = None):
        self.vector = vector or [1.0, 0.0, 0.0]
        self.configured = configured
        self.error = error
        self.texts: List[str] = []

    async def embed_text(self, text: str) -> List[float]:
        self.texts.append(text)
        if self.error is not None:
            raise self.error
        return list(self.vector)


class FakeStore:
    def __init__(self, embeddings: Optional[List[BadgeEmbedding]] = None) -> None:
        self.embeddings: Dict[str, BadgeEmbedding] = {e.badge_id: e for e in embeddings or []}
        self.deleted: List[str] = []

    async def fetch_embeddings(self) -> List[BadgeEmbedding]:
        return list(self.embeddings.values())

    async def embedded_badge_ids(self) -> Set[str]:
        return set(self.embeddings)

    async def upsert_embedding(self, badge: BadgeRecord, vector: List[float]) -> str:
        self.embeddings[badge.id] = BadgeEmbedding(badge_id=badge.id, vector=vector, badge=badge)
        return f"point-{badge.id}"

    async def delete_embeddings(self, badge_ids: Iterable[str]) -> int:
        ids = list(badge_ids)
        for badge_id in ids:
            self.embeddings.pop(badge_id, None)
        self.deleted.extend(ids)
        return len(ids)

    async def health(self) -> bool:
        return True


class FakeCatalog:
    def __init__(self, badges: Optional[List[BadgeRecord]] = None, *, healthy: bool = True) -> None:
        self.badges = list(badges or [])
        self.healthy = healthy
        self.inserted: Dict[str, List[Dict[str, Any]]] = {}

    async def list_badges(self, *, with_images: bool = False) -> List[BadgeRecord]:
        if with_images:
            return [badge for badge in self.badges if badge.image_url]
        return list(self.badges)

    async def get_badge(self, badge_id: str) -> Optional[BadgeRecord]:
        return next((badge for badge in self.badges if badge.id == str(badge_id)), None)

    async def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> None:
        self.inserted.setdefault(table, []).extend(rows)

    async def health(self) -> bool:
        return self.healthy


class FakeStorage:
    def __init__(self, *, fail_upload: bool = False) -> None:
        self.fail_upload = fail_upload
        self.uploaded: List[str] = []
        self.removed: List[str] = []

    async def upload(self, image: ImagePayload) -> StoredImage:
        if self.fail_upload:
            raise RuntimeError("bucket unavailable")
        path = f"search/test-{len(self.uploaded)}.{image.extension}"
        self.uploaded.append(path)
        return StoredImage(path=path, public_url=f"https://storage.test/{path}")

    async def remove(self, path: str) -> None:
        self.removed.append(path)


class RecordingBus:
    """Stands in for EventBus; keeps published payloads per stream."""

    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.published: Dict[str, List[Dict[str, Any]]] = {}

    async def publish(self, stream: str, payload: Dict[str, Any], *, metadata: Optional[Dict[str, Any]] = None) -> str:
        if self.fail:
            raise ConnectionError("redis down")
        self.published.setdefault(stream, []).append(payload)
        return f"{len(self.published[stream])}-0"

    async def health(self) -> bool:
        return not self.fail


def make_badge(badge_id: str, name: str, **fields: Any) -> BadgeRecord:
    return BadgeRecord(id=badge_id, name=name, **fields)


def make_embedding(badge: BadgeRecord, vector: List[float]) -> BadgeEmbedding:
    return BadgeEmbedding(badge_id=badge.id, vector=vector, badge=badge)


def last_stage_status(context: IdentificationContext, stage: str) -> Optional[StageStatus]:
    statuses = [report.status for report in context.reports if report.stage == stage]
    return statuses[-1] if statuses else None


@pytest.fixture
def settings() -> Settings:
    return Settings(openai_api_key="sk-test", serpapi_key="serp-test")


@pytest.fixture
def filters() -> SearchFilterTerms:
    return SearchFilterTerms.from_mapping(
        {
            "blocklist": ["fandom.com", "star wars", "movie"],
            "allowlist": ["conference badge", "defcon", "badge pcb"],
        }
    )


@pytest.fixture
def context() -> IdentificationContext:
    return IdentificationContext(task_id="task-1", image=decode_image_payload(SAMPLE_IMAGE_B64))
