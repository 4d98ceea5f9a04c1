"""Per-request state threaded through the cascade stages."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from badgelife.models import StageReport, StageStatus
from badgelife.services.images import ImagePayload

logger = logging.getLogger(__name__)


@dataclass
class IdentificationContext:
    task_id: str
    image: ImagePayload
    user_text: Optional[str] = None
    force_web_search: bool = False
    tracker: Any = None
    reports: List[StageReport] = field(default_factory=list)
    timings_ms: Dict[str, int] = field(default_factory=dict)

    async def report(self, stage: str, status: StageStatus, message: str) -> StageReport:
        entry = StageReport(stage=stage, status=status, message=message)
        self.reports.append(entry)
        if self.tracker is not None:
            try:
                await self.tracker.append(self.task_id, entry)
            except Exception:
                logger.exception("Failed to record status for task %s stage=%s", self.task_id, stage)
        return entry

    @contextmanager
    def timed(self, stage: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings_ms[stage] = int((time.perf_counter() - start) * 1000)


__all__ = ["IdentificationContext"]
