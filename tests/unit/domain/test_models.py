"""
Unit tests for ActivityRecord and BroadcastPhase.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from activity_handoff.domain.activity.models import ActivityRecord, BroadcastPhase

NOON = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestActivityRecord:
    """Test ActivityRecord model."""

    def test_create_valid(self) -> None:
        """Should keep url and timestamp."""
        record = ActivityRecord(url="https://x/1", added_at=NOON)
        assert record.url == "https://x/1"
        assert record.added_at == NOON

    def test_reject_empty_url(self) -> None:
        with pytest.raises(ValidationError):
            ActivityRecord(url="", added_at=NOON)

    def test_reject_whitespace_url(self) -> None:
        with pytest.raises(ValidationError):
            ActivityRecord(url="  ", added_at=NOON)

    def test_naive_timestamp_is_utc(self) -> None:
        """Should treat naive timestamps as UTC."""
        record = ActivityRecord(url="https://x/1", added_at=datetime(2025, 1, 15, 12, 0))
        assert record.added_at == NOON
        assert record.added_at.tzinfo == timezone.utc

    def test_offset_timestamp_normalized(self) -> None:
        """Should convert other offsets to UTC."""
        cet = timezone(timedelta(hours=1))
        record = ActivityRecord(
            url="https://x/1", added_at=datetime(2025, 1, 15, 13, 0, tzinfo=cet)
        )
        assert record.added_at == NOON
        assert record.added_at.utcoffset() == timedelta(0)

    def test_equality_by_value(self) -> None:
        assert ActivityRecord(url="https://x/1", added_at=NOON) == ActivityRecord(
            url="https://x/1", added_at=NOON
        )
        assert ActivityRecord(url="https://x/1", added_at=NOON) != ActivityRecord(
            url="https://x/1", added_at=NOON + timedelta(seconds=1)
        )

    def test_immutable(self) -> None:
        """Should be immutable."""
        record = ActivityRecord(url="https://x/1", added_at=NOON)
        with pytest.raises(ValidationError):
            record.url = "https://x/2"  # noqa: SLF001


class TestBroadcastPhase:
    """Test BroadcastPhase enum."""

    def test_values(self) -> None:
        assert [p.value for p in BroadcastPhase] == [
            "AWAITING_DELETE",
            "AWAITING_SET",
            "SUCCEEDED",
            "FAILED",
        ]

    def test_is_str(self) -> None:
        assert BroadcastPhase.AWAITING_SET == "AWAITING_SET"
