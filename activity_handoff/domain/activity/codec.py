"""
Activity record codec.

Maps ActivityRecord to and from the store document:

    {
        "url": "<non-empty string>",
        "metadata": {"addedAt": <server timestamp>}
    }

addedAt is read either as epoch milliseconds or as a datetime,
depending on what the store's server clock produces.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError

from activity_handoff.domain.activity.models import ActivityRecord
from activity_handoff.domain.ports.document_store import SERVER_TIMESTAMP, Document
from activity_handoff.domain.shared.errors import ActivityDecodeError
from activity_handoff.domain.shared.value_objects import DEFAULT_NAMESPACE, ActivityPath

URL_FIELD = "url"
METADATA_FIELD = "metadata"
ADDED_AT_FIELD = "addedAt"


def activity_path(
    application_name: str,
    user_id: str,
    namespace: str = DEFAULT_NAMESPACE,
) -> ActivityPath:
    """
    Build the store path for an (application_name, user_id) pair.

    Example:
        >>> str(activity_path("notes", "u1"))
        'continue/notes/u1'
    """
    return ActivityPath(
        application_name=application_name,
        user_id=user_id,
        namespace=namespace,
    )


def encode_activity(url: str) -> Document:
    """
    Build the document written by a broadcast.

    The timestamp is left for the store to fill in.
    """
    return {
        URL_FIELD: url,
        METADATA_FIELD: {ADDED_AT_FIELD: SERVER_TIMESTAMP},
    }


def decode_activity(document: Mapping[str, Any]) -> ActivityRecord:
    """
    Convert a stored document to an ActivityRecord.

    Args:
        document: Document read from the store

    Returns:
        ActivityRecord

    Raises:
        ActivityDecodeError: If url or metadata.addedAt is missing or invalid
    """
    url = document.get(URL_FIELD)
    if not isinstance(url, str) or not url.strip():
        raise ActivityDecodeError("missing url")

    metadata = document.get(METADATA_FIELD)
    if not isinstance(metadata, Mapping) or metadata.get(ADDED_AT_FIELD) is None:
        raise ActivityDecodeError("missing metadata.addedAt")

    added_at = _timestamp_to_datetime(metadata[ADDED_AT_FIELD])

    try:
        return ActivityRecord(url=url, added_at=added_at)
    except ValidationError as e:
        raise ActivityDecodeError(str(e)) from e


def _timestamp_to_datetime(value: Any) -> datetime:
    """Epoch milliseconds or datetime -> timezone-aware UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    # bool is an int subclass but never a timestamp
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    raise ActivityDecodeError(f"addedAt is not a timestamp: {value!r}")
