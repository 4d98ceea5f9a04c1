from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

import redis.asyncio as redis

logger = logging.getLogger(__name__)

# analytics streams are drained by a worker; cap them in case it is offline
DEFAULT_STREAM_MAXLEN = 10_000

Envelope = Dict[str, Any]


def _decode_fields(message_id: str, fields: Dict[str, str]) -> Envelope:
    try:
        return {
            "payload": json.loads(fields.get("payload") or "{}"),
            "metadata": json.loads(fields.get("metadata") or "{}"),
        }
    except ValueError:
        logger.warning("Dropping malformed message %s", message_id)
        return {"payload": {}, "metadata": {}}


class EventBus:
    """Publishes analytics records to Redis Streams and reads them back for workers."""

    def __init__(
        self,
        url: str,
        *,
        prefix: str = "badgelife",
        maxlen: Optional[int] = DEFAULT_STREAM_MAXLEN,
        client: Any = None,
    ) -> None:
        self._prefix = prefix.rstrip(":")
        self._maxlen = maxlen
        self._client = client if client is not None else redis.from_url(url, decode_responses=True)

    @classmethod
    def from_settings(cls, settings) -> "EventBus":
        return cls(settings.redis_url)

    def stream_name(self, name: str) -> str:
        return f"{self._prefix}:{name}"

    async def publish(
        self,
        stream: str,
        payload: Dict[str, Any],
        *,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        fields = {"payload": json.dumps(payload, default=str)}
        if metadata:
            fields["metadata"] = json.dumps(metadata, default=str)
        return await self._client.xadd(
            self.stream_name(stream),
            fields,
            maxlen=self._maxlen,
            approximate=True,
        )

    async def ensure_consumer_group(self, stream: str, group: str) -> None:
        try:
            await self._client.xgroup_create(self.stream_name(stream), group, id="0-0", mkstream=True)
        except redis.ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    async def consume(
        self,
        stream: str,
        group: str,
        consumer: str,
        *,
        count: int = 10,
        block_ms: int = 1000,
    ) -> List[Tuple[str, Envelope]]:
        """Read new messages for ``consumer``; undecodable ones come back with empty payloads."""

        entries = await self._client.xreadgroup(
            group,
            consumer,
            streams={self.stream_name(stream): ">"},
            count=count,
            block=block_ms,
        )
        return [
            (message_id, _decode_fields(message_id, fields))
            for _, messages in entries or []
            for message_id, fields in messages
        ]

    async def acknowledge(self, stream: str, group: str, message_ids: Iterable[str]) -> None:
        ids = list(message_ids)
        if ids:
            await self._client.xack(self.stream_name(stream), group, *ids)

    async def health(self) -> bool:
        try:
            return bool(await self._client.ping())
        except redis.RedisError:
            return False

    async def close(self) -> None:
        await self._client.aclose()
