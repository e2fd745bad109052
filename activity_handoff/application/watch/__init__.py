"""Watch use cases."""

from activity_handoff.application.watch.activity_watcher import (
    ActivityWatcher,
    ActivityWatcherRegistry,
    CallbackHandle,
)
from activity_handoff.application.watch.watch_adapter import ActivityStream, WatchAdapter

__all__ = [
    "ActivityStream",
    "ActivityWatcher",
    "ActivityWatcherRegistry",
    "CallbackHandle",
    "WatchAdapter",
]
