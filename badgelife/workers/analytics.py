"""
Persists API usage and search analytics published by the cascade into the
catalog database. Run with ``badgelife-analytics`` next to the API process.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import socket
import sys
from typing import Any, Dict, List

from badgelife.config import Settings
from badgelife.events.bus import EventBus
from badgelife.events.constants import ANALYTICS_GROUP, API_CALLS_STREAM, SEARCH_ANALYTICS_STREAM
from badgelife.services.catalog import BadgeCatalog
from badgelife.workers.base import StreamWorker

logger = logging.getLogger(__name__)

API_CALL_LOGS_TABLE = "api_call_logs"
ANALYTICS_SEARCHES_TABLE = "analytics_searches"

# stream -> table the worker writes rows into
STREAM_TABLES = {
    API_CALLS_STREAM: API_CALL_LOGS_TABLE,
    SEARCH_ANALYTICS_STREAM: ANALYTICS_SEARCHES_TABLE,
}


class AnalyticsWorker(StreamWorker):
    def __init__(self, *, bus: EventBus, catalog: Any, stream: str, consumer_name: str, **kwargs: Any) -> None:
        super().__init__(bus=bus, stream=stream, group=ANALYTICS_GROUP, consumer_name=consumer_name, **kwargs)
        self.catalog = catalog
        self.table = STREAM_TABLES[stream]

    async def handle(self, payload: Dict[str, Any], metadata: Dict[str, Any]) -> None:
        if not payload:
            logger.warning("Skipping empty %s event", self.stream)
            return
        await self.catalog.insert_rows(self.table, [payload])


def build_workers(bus: EventBus, catalog: Any, *, consumer_prefix: str) -> List[AnalyticsWorker]:
    return [
        AnalyticsWorker(bus=bus, catalog=catalog, stream=stream, consumer_name=f"{consumer_prefix}-{stream}")
        for stream in STREAM_TABLES
    ]


async def run(settings: Settings, *, consumer_prefix: str) -> None:
    bus = EventBus.from_settings(settings)
    catalog = BadgeCatalog.from_settings(settings)
    workers = build_workers(bus, catalog, consumer_prefix=consumer_prefix)
    try:
        await asyncio.gather(*(worker.start() for worker in workers))
    finally:
        for worker in workers:
            await worker.stop()
        await bus.close()


def parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Persist badge identification analytics")
    parser.add_argument("--consumer", default=socket.gethostname(), help="Consumer name prefix inside the group")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")
    return parser.parse_args(argv)


def main(argv: List[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        asyncio.run(run(Settings.from_env(), consumer_prefix=args.consumer))
    except KeyboardInterrupt:
        logger.info("Analytics worker interrupted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
