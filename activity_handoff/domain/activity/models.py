"""
Domain models for activity handoff.

An ActivityRecord is the single "most recent activity" a user has
broadcast for one application. Records are immutable: a newer
broadcast deletes the old record and writes a fresh one.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActivityRecord(BaseModel):
    """
    Most recent activity broadcast by a user for an application.

    Attributes:
        url: Opaque, non-empty activity URL supplied by the broadcaster
        added_at: Timestamp assigned by the document store at write time

    Example:
        >>> record = ActivityRecord(
        ...     url="https://notes.example.com/n/42",
        ...     added_at=datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
        ... )
        >>> record.url
        'https://notes.example.com/n/42'
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1, description="Activity URL")
    added_at: datetime = Field(..., description="Server-assigned write time")

    @field_validator("url")
    @classmethod
    def url_not_blank(cls, v: str) -> str:
        """Reject whitespace-only URLs."""
        if not v.strip():
            raise ValueError("Activity url cannot be empty or whitespace")
        return v

    @field_validator("added_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


class BroadcastPhase(str, Enum):
    """
    Stages of a single broadcast.

    A broadcast moves AWAITING_DELETE -> AWAITING_SET -> SUCCEEDED,
    or ends in FAILED from either awaiting stage.
    """

    AWAITING_DELETE = "AWAITING_DELETE"
    AWAITING_SET = "AWAITING_SET"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
