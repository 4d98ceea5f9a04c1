"""Redis stream plumbing for analytics and identification status events."""

from .bus import EventBus  # noqa: F401
from .tracker import TaskStatusTracker  # noqa: F401

__all__ = ["EventBus", "TaskStatusTracker"]
