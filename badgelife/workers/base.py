from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List

import redis.asyncio as redis

from badgelife.events.bus import EventBus

logger = logging.getLogger(__name__)

MAX_BACKOFF_SECONDS = 30.0


class StreamWorker:
    """Consumer-group loop over one Redis stream; subclasses implement ``handle``."""

    def __init__(
        self,
        *,
        bus: EventBus,
        stream: str,
        group: str,
        consumer_name: str,
        poll_interval: float = 1.0,
        batch_size: int = 10,
    ) -> None:
        self.bus = bus
        self.stream = stream
        self.group = group
        self.consumer_name = consumer_name
        self.poll_interval = poll_interval
        self.batch_size = batch_size
        self._running = False

    async def process_once(self) -> int:
        """Handle one batch and acknowledge what succeeded; returns the ack count."""

        batch = await self.bus.consume(
            self.stream,
            self.group,
            self.consumer_name,
            count=self.batch_size,
            block_ms=int(self.poll_interval * 1000),
        )
        handled: List[str] = []
        for message_id, envelope in batch:
            try:
                await self.handle(envelope["payload"], envelope["metadata"])
            except Exception:
                # left pending so a restart redelivers it
                logger.exception("Worker %s failed on %s message %s", self.consumer_name, self.stream, message_id)
                continue
            handled.append(message_id)
        await self.bus.acknowledge(self.stream, self.group, handled)
        return len(handled)

    async def start(self) -> None:
        await self.bus.ensure_consumer_group(self.stream, self.group)
        self._running = True
        logger.info("Worker %s consuming stream=%s group=%s", self.consumer_name, self.stream, self.group)
        backoff = self.poll_interval
        while self._running:
            try:
                await self.process_once()
            except redis.ConnectionError:
                logger.warning("Worker %s lost Redis; retrying in %.1fs", self.consumer_name, backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
                continue
            backoff = self.poll_interval

    async def handle(self, payload: Dict[str, Any], metadata: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def stop(self) -> None:
        self._running = False
