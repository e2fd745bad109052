"""Broadcast use case."""

from activity_handoff.application.broadcast.coordinator import (
    BroadcastActivityCommand,
    BroadcastCoordinator,
)

__all__ = ["BroadcastActivityCommand", "BroadcastCoordinator"]
