"""
Watch adapter.

Consumer side of the handoff: follows the most recent activity at a
user's path. Every emission replaces whatever the consumer held
before; None means there is currently no activity.
"""

from __future__ import annotations

import asyncio
from types import TracebackType
from typing import Any, AsyncIterator, Optional, Type

import structlog

from activity_handoff.domain.activity.codec import activity_path, decode_activity
from activity_handoff.domain.activity.models import ActivityRecord
from activity_handoff.domain.ports.document_store import Document, IDocumentStore
from activity_handoff.domain.shared.errors import ActivityDecodeError, InvalidInputError
from activity_handoff.domain.shared.value_objects import DEFAULT_NAMESPACE, ActivityPath

logger = structlog.get_logger(__name__)

_END = object()


def to_activity(path: ActivityPath, document: Optional[Document]) -> Optional[ActivityRecord]:
    """Decode a watched document; malformed documents read as absent."""
    if document is None:
        return None
    try:
        return decode_activity(document)
    except ActivityDecodeError as e:
        logger.warning("Ignoring malformed activity", path=path.value, reason=e.reason)
        return None


class ActivityStream:
    """
    Lazy, non-restartable stream of Optional[ActivityRecord].

    Starts with the value present when iteration begins, then yields
    on every change. Close it with aclose() or by leaving an
    ``async with`` block; the store listener is released and nothing
    more is yielded. aclose() may be called from another task while a
    consumer is waiting for the next value: the consumer's loop then
    ends. Cancelling the task that iterates also closes the stream.

    Example:
        >>> async with adapter.watch_most_recent_activity("u1", "notes") as stream:
        ...     async for record in stream:
        ...         show(record)
    """

    def __init__(self, path: ActivityPath, documents: AsyncIterator[Optional[Document]]) -> None:
        self.path = path
        self._documents = documents
        self._closed = False
        self._close_requested: Optional["asyncio.Future[None]"] = None
        self._pending: Optional["asyncio.Task[Any]"] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "ActivityStream":
        return self

    async def __anext__(self) -> Optional[ActivityRecord]:
        if self._closed:
            raise StopAsyncIteration
        if self._close_requested is None:
            self._close_requested = asyncio.get_running_loop().create_future()

        pending = asyncio.create_task(self._next_document())
        self._pending = pending
        try:
            await asyncio.wait(
                {pending, self._close_requested}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            await self.aclose()
            raise

        if self._closed:
            raise StopAsyncIteration
        self._pending = None

        document = pending.result()
        if document is _END:
            self._closed = True
            raise StopAsyncIteration
        return to_activity(self.path, document)

    async def aclose(self) -> None:
        """Stop the stream and release the store listener. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._close_requested is not None and not self._close_requested.done():
            self._close_requested.set_result(None)

        # A value still being fetched runs inside the store's watch;
        # it must finish before the watch can be closed.
        pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()
            await asyncio.wait({pending})
            if not pending.cancelled():
                pending.exception()

        aclose = getattr(self._documents, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.debug("Activity stream closed", path=self.path.value)

    async def __aenter__(self) -> "ActivityStream":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()

    async def _next_document(self) -> Any:
        try:
            return await self._documents.__anext__()
        except StopAsyncIteration:
            return _END


class WatchAdapter:
    """Reads and watches the most recent activity of a user."""

    def __init__(self, store: IDocumentStore, namespace: str = DEFAULT_NAMESPACE) -> None:
        """
        Args:
            store: Document store port
            namespace: Root segment of activity paths
        """
        self._store = store
        self._namespace = namespace

    def watch_most_recent_activity(self, user_id: str, application_name: str) -> ActivityStream:
        """
        Subscribe to the user's most recent activity for application_name.

        Raises:
            InvalidInputError: Blank user id or application name
        """
        path = self._path(user_id, application_name)
        logger.debug("Watching most recent activity", path=path.value)
        return ActivityStream(path, self._store.watch_value(path.value))

    async def get_most_recent_activity(
        self, user_id: str, application_name: str
    ) -> Optional[ActivityRecord]:
        """Single-value variant: the current activity, or None."""
        path = self._path(user_id, application_name)
        return to_activity(path, await self._store.get_value(path.value))

    def _path(self, user_id: str, application_name: str) -> ActivityPath:
        try:
            return activity_path(application_name.strip(), user_id, self._namespace)
        except (ValueError, AttributeError) as e:
            raise InvalidInputError("application_name/user_id", f"{application_name}/{user_id}") from e
