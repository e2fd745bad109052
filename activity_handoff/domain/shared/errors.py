"""
Domain exceptions.

Typed exceptions for the broadcast and watch flows.
Broadcast failures share the BroadcastError base so callers can
catch them with a single except clause and still tell them apart.
"""

from __future__ import annotations

from typing import Optional

from activity_handoff.domain.activity.models import BroadcastPhase


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class HandoffError(Exception):
    """
    Base exception for all activity handoff errors.
    """

    pass


# ═══════════════════════════════════════════════════════════
# BROADCAST EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class BroadcastError(HandoffError):
    """Base exception for broadcast failures."""

    pass


class InvalidInputError(BroadcastError):
    """
    Broadcast input rejected before any store access.

    Raised when:
    - Activity URL is empty or whitespace
    - Application name is empty or whitespace

    Example:
        >>> raise InvalidInputError("activity_url", "   ")
    """

    def __init__(self, field: str, value: Optional[str] = None):
        """
        Initialize with the offending field.

        Args:
            field: Name of the invalid argument
            value: Value that was rejected
        """
        self.field = field
        self.value = value
        super().__init__(f"{field} is invalid: {value!r}")


class NotAuthenticatedError(BroadcastError):
    """
    No authenticated identity for the broadcast.

    Raised when:
    - Identity provider reports no signed-in user
    - Caller passes a user id that is not the signed-in user

    Example:
        >>> raise NotAuthenticatedError()
    """

    def __init__(self, user_id: Optional[str] = None):
        """
        Initialize with the user id the caller asked for, if any.

        Args:
            user_id: User id passed by the caller
        """
        self.user_id = user_id
        if user_id is None:
            message = "The current user must be signed in"
        else:
            message = f"User {user_id} is not the signed-in user"
        super().__init__(message)


class StoreError(BroadcastError):
    """
    Document store failed during a broadcast.

    Tagged with the phase that failed:
    - AWAITING_DELETE: previous record still intact
    - AWAITING_SET: path left empty

    Example:
        >>> raise StoreError(BroadcastPhase.AWAITING_SET, ConnectionError("lost"))
    """

    def __init__(self, phase: BroadcastPhase, cause: BaseException):
        """
        Initialize with phase and underlying failure.

        Args:
            phase: Broadcast phase during which the store failed
            cause: Exception raised by the store
        """
        self.phase = phase
        self.cause = cause
        super().__init__(f"Store failed during {phase.value}: {cause}")


# ═══════════════════════════════════════════════════════════
# CODEC EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ActivityDecodeError(HandoffError):
    """
    Stored document is not a valid activity record.

    Raised when:
    - Document has no url (or a blank one)
    - Document has no metadata.addedAt
    - addedAt is not a timestamp
    """

    def __init__(self, reason: str):
        """
        Initialize with failure reason.

        Args:
            reason: Human-readable reason
        """
        self.reason = reason
        super().__init__(f"Invalid activity document: {reason}")


# ═══════════════════════════════════════════════════════════
# INFRASTRUCTURE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class DocumentStoreError(HandoffError):
    """
    Document store operation failed.

    Raised by store adapters when:
    - Connection lost
    - Write rejected
    - Watch could not be opened

    Example:
        >>> raise DocumentStoreError("set", "continue/notes/u1", "timeout")
    """

    def __init__(self, operation: str, path: str, reason: str):
        """
        Initialize with operation details.

        Args:
            operation: Store operation that failed (delete, set, get, watch)
            path: Store path involved
            reason: Human-readable reason
        """
        self.operation = operation
        self.path = path
        self.reason = reason
        super().__init__(f"Store {operation} failed at {path}: {reason}")
