"""
Freshness rule for watched activities.

A consumer only offers to resume an activity broadcast recently.
Age is measured against the estimated server time (local clock plus
the known offset to the store's clock) because added_at comes from
the store, not from the broadcasting client.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from activity_handoff.domain.activity.models import ActivityRecord

Clock = Callable[[], datetime]

DEFAULT_FRESHNESS_WINDOW = timedelta(minutes=5)


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(timezone.utc)


class FreshnessPolicy:
    """Decides whether an activity is still worth resuming."""

    def __init__(
        self,
        window: timedelta = DEFAULT_FRESHNESS_WINDOW,
        server_time_offset: timedelta = timedelta(0),
        clock: Clock = utc_now,
    ) -> None:
        """
        Args:
            window: Maximum age of a fresh activity
            server_time_offset: Store clock minus local clock
            clock: Local clock
        """
        if window <= timedelta(0):
            raise ValueError("Freshness window must be positive")
        self.window = window
        self.server_time_offset = server_time_offset
        self._clock = clock

    def estimated_server_time(self) -> datetime:
        return self._clock() + self.server_time_offset

    def is_stale(self, record: Optional[ActivityRecord]) -> bool:
        """
        True when record is older than the window.

        Absence is never stale.
        """
        if record is None:
            return False
        return record.added_at < self.estimated_server_time() - self.window

    def filter(self, record: Optional[ActivityRecord]) -> Optional[ActivityRecord]:
        """Return record if fresh, None otherwise."""
        return None if self.is_stale(record) else record
