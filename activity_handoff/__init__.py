"""
Activity handoff.

Lets a signed-in user broadcast the activity they are working on in
one application so their other clients can discover and resume it.

Structure:
- domain/: Activity record, path scheme, errors and ports
- application/: Broadcast coordinator and watch consumers
- infrastructure/: Document store and identity adapters
"""

from activity_handoff.application.broadcast.coordinator import (
    BroadcastActivityCommand,
    BroadcastCoordinator,
)
from activity_handoff.application.watch.activity_watcher import (
    ActivityWatcher,
    ActivityWatcherRegistry,
)
from activity_handoff.application.watch.watch_adapter import ActivityStream, WatchAdapter
from activity_handoff.domain.activity.models import ActivityRecord, BroadcastPhase
from activity_handoff.domain.shared.errors import (
    BroadcastError,
    InvalidInputError,
    NotAuthenticatedError,
    StoreError,
)

__version__ = "1.0.0"

__all__ = [
    "ActivityRecord",
    "ActivityStream",
    "ActivityWatcher",
    "ActivityWatcherRegistry",
    "BroadcastActivityCommand",
    "BroadcastCoordinator",
    "BroadcastError",
    "BroadcastPhase",
    "InvalidInputError",
    "NotAuthenticatedError",
    "StoreError",
    "WatchAdapter",
]
