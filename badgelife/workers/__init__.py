"""Background consumers for the Redis event streams."""

from .analytics import AnalyticsWorker
from .base import StreamWorker

__all__ = ["AnalyticsWorker", "StreamWorker"]
