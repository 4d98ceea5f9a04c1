from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict

import redis.asyncio as redis

from badgelife.models import StageReport

# status streams are per identification; keep them from piling up
STATUS_STREAM_TTL_SECONDS = 3600

# the coordinator's closing report; followers stop once they see it
FINAL_STAGE = "cascade"


class TaskStatusTracker:
    """Records cascade stage reports per identification and replays them as SSE events."""

    def __init__(self, url: str, *, prefix: str = "badgelife", client: Any = None) -> None:
        self._prefix = prefix.rstrip(":")
        self._client = client if client is not None else redis.from_url(url, decode_responses=True)

    @classmethod
    def from_settings(cls, settings) -> "TaskStatusTracker":
        return cls(settings.redis_url)

    def stream_name(self, task_id: str) -> str:
        return f"{self._prefix}:status:{task_id}"

    async def append(self, task_id: str, report: StageReport) -> str:
        stream = self.stream_name(task_id)
        data: Dict[str, Any] = {
            "stage": report.stage,
            "status": report.status.value,
            "message": report.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        message_id = await self._client.xadd(stream, data)
        await self._client.expire(stream, STATUS_STREAM_TTL_SECONDS)
        return message_id

    async def stream(self, task_id: str, last_id: str = "0-0") -> AsyncIterator[Dict[str, str]]:
        stream_name = self.stream_name(task_id)
        while True:
            entries = await self._client.xread({stream_name: last_id}, block=5000, count=10)
            if not entries:
                yield {"event": "ping", "data": "{}"}
                continue
            _, messages = entries[0]
            for message_id, fields in messages:
                last_id = message_id
                data = {
                    "id": message_id,
                    "stage": fields.get("stage"),
                    "status": fields.get("status"),
                    "message": fields.get("message"),
                    "timestamp": fields.get("timestamp"),
                }
                yield {"event": "status", "data": json.dumps(data)}
                if fields.get("stage") == FINAL_STAGE:
                    return

    async def close(self) -> None:
        await self._client.aclose()
