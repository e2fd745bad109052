"""
Broadcast coordinator.

Publishes a user's most recent activity for an application so other
clients of the same user can resume it.

A broadcast is a two-phase replace against the document store:
delete whatever record is at the path, then set the new one. A record
is never overwritten in place, so watchers see the old value go away
before the new one appears, and a failed set leaves the path empty
rather than holding a stale record.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import ValidationError

from activity_handoff.domain.activity.codec import activity_path, encode_activity
from activity_handoff.domain.activity.models import BroadcastPhase
from activity_handoff.domain.ports.document_store import IDocumentStore
from activity_handoff.domain.ports.identity_provider import IIdentityProvider
from activity_handoff.domain.shared.errors import (
    InvalidInputError,
    NotAuthenticatedError,
    StoreError,
)
from activity_handoff.domain.shared.value_objects import DEFAULT_NAMESPACE, ActivityPath

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BroadcastActivityCommand:
    """
    Command: broadcast an activity.

    Attributes:
        application_name: Application the activity belongs to
        activity_url: URL other clients open to resume the activity
        user_id: Expected signed-in user (None = whoever is signed in)
    """

    application_name: str
    activity_url: str
    user_id: Optional[str] = None


class BroadcastCoordinator:
    """
    Coordinates the delete-then-set replacement of an activity record.

    The coordinator holds no locks and never retries. The store is the
    serialization point for concurrent broadcasts to the same path;
    whichever write lands last wins, and every write is a full replace.

    Example:
        >>> coordinator = BroadcastCoordinator(store, identity)
        >>> await coordinator.broadcast_activity("notes", "https://x/1")
    """

    def __init__(
        self,
        store: IDocumentStore,
        identity_provider: IIdentityProvider,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        """
        Initialize coordinator.

        Args:
            store: Document store port
            identity_provider: Identity provider port, queried on every call
            namespace: Root segment of activity paths
        """
        self._store = store
        self._identity_provider = identity_provider
        self._namespace = namespace

    async def handle(self, command: BroadcastActivityCommand) -> None:
        """Execute a BroadcastActivityCommand."""
        await self.broadcast_activity(
            command.application_name,
            command.activity_url,
            user_id=command.user_id,
        )

    async def broadcast_activity(
        self,
        application_name: str,
        activity_url: str,
        user_id: Optional[str] = None,
    ) -> None:
        """
        Replace the user's most recent activity for application_name.

        Flow:
        1. Validate input and identity (no store access on failure)
        2. Delete the existing record at the path (no-op when empty)
        3. Set {url, metadata.addedAt=<server time>} at the same path

        Args:
            application_name: Non-blank application name
            activity_url: Non-blank activity URL
            user_id: Optional expected user; must match the signed-in user

        Raises:
            InvalidInputError: Blank URL or application name
            NotAuthenticatedError: No signed-in user, or user_id mismatch
            StoreError: Delete or set failed (phase tells which)
        """
        path = self._resolve_path(application_name, activity_url, user_id)

        log = logger.bind(path=path.value)
        log.info("Broadcasting activity")

        phase = BroadcastPhase.AWAITING_DELETE
        try:
            await self._store.delete(path.value)
            phase = BroadcastPhase.AWAITING_SET
            await self._store.set(path.value, encode_activity(activity_url))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(
                "Activity broadcast failed",
                phase=phase.value,
                error=str(e),
                path_left_empty=phase is BroadcastPhase.AWAITING_SET,
            )
            raise StoreError(phase, e) from e

        log.info("Activity broadcast", phase=BroadcastPhase.SUCCEEDED.value)

    def broadcast_activity_nowait(
        self,
        application_name: str,
        activity_url: str,
        user_id: Optional[str] = None,
    ) -> "asyncio.Task[None]":
        """
        Start a broadcast without awaiting it.

        Input and identity are still checked before the task is
        created, so InvalidInputError and NotAuthenticatedError raise
        here. Store failures surface when the task is awaited.

        Returns:
            Task resolving to None, or failing with StoreError
        """
        self._resolve_path(application_name, activity_url, user_id)
        return asyncio.create_task(
            self.broadcast_activity(application_name, activity_url, user_id=user_id)
        )

    def _resolve_path(
        self,
        application_name: str,
        activity_url: str,
        user_id: Optional[str],
    ) -> ActivityPath:
        """Validate arguments and identity, then build the target path."""
        if activity_url is None or not activity_url.strip():
            raise InvalidInputError("activity_url", activity_url)
        if application_name is None or not application_name.strip():
            raise InvalidInputError("application_name", application_name)

        current_user_id = self._identity_provider.current_user_id()
        if current_user_id is None:
            logger.info("Broadcast rejected: no signed-in user")
            raise NotAuthenticatedError(user_id)
        if user_id is not None and user_id != current_user_id:
            logger.warning("Broadcast rejected: user mismatch", user_id=user_id)
            raise NotAuthenticatedError(user_id)

        segments = {
            "application_name": application_name.strip(),
            "user_id": current_user_id,
            "namespace": self._namespace,
        }
        try:
            return activity_path(**segments)
        except ValidationError as e:
            errors = e.errors()
            field = str(errors[0]["loc"][0]) if errors and errors[0]["loc"] else "application_name"
            raise InvalidInputError(field, segments.get(field, application_name)) from e
