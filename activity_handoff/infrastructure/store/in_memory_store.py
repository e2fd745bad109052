"""In-memory document store.

Provides an in-memory implementation of the IDocumentStore port for
testing and single-process use. Mimics a realtime document database:
server-assigned timestamps, atomic single-path writes and live watches.
"""

import asyncio
import copy
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog

from activity_handoff.domain.activity.freshness import Clock, utc_now
from activity_handoff.domain.ports.document_store import Document, ServerTimestamp
from activity_handoff.domain.shared.errors import DocumentStoreError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StoreOperation:
    """One entry of the operation log."""

    name: str  # delete | set
    stage: str  # start | done | failed
    path: str


class InMemoryDocumentStore:
    """
    In-memory implementation of IDocumentStore.

    Thread safety: NOT thread-safe; meant for a single event loop
    Persistence: Documents lost on process restart
    Timestamps: SERVER_TIMESTAMP becomes epoch milliseconds from the
    injected clock

    Each write yields to the event loop once before taking the per-path
    lock, so concurrent callers interleave the way network round-trips do.
    A path's lock is dropped once the path holds no document and has no
    watchers.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.set("continue/notes/u1", {"url": "https://x/1"})
        >>> async for value in store.watch_value("continue/notes/u1"):
        ...     print(value)
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        """Initialize empty store.

        Args:
            clock: Server clock used for SERVER_TIMESTAMP fields
        """
        self._clock = clock
        self._documents: Dict[str, Document] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._watchers: Dict[str, List["asyncio.Queue[Optional[Document]]"]] = defaultdict(list)
        self._pending_failures: Dict[str, List[BaseException]] = defaultdict(list)
        self.operations: List[StoreOperation] = []

    # ============================================================
    # IDocumentStore
    # ============================================================

    async def delete(self, path: str) -> None:
        """Delete document at path; succeeds on an empty path."""
        self.operations.append(StoreOperation("delete", "start", path))
        await asyncio.sleep(0)
        try:
            async with self._locks[path]:
                self._raise_injected_failure("delete", path)
                existed = self._documents.pop(path, None) is not None
                self.operations.append(StoreOperation("delete", "done", path))
                if existed:
                    self._notify(path, None)
        finally:
            self._discard_idle_lock(path)
        logger.debug("Document deleted", path=path, existed=existed)

    async def set(self, path: str, document: Document) -> None:
        """Replace document at path, resolving SERVER_TIMESTAMP fields."""
        self.operations.append(StoreOperation("set", "start", path))
        await asyncio.sleep(0)
        async with self._locks[path]:
            self._raise_injected_failure("set", path)
            stored = self._resolve(document, self._server_time_ms())
            self._documents[path] = stored
            self.operations.append(StoreOperation("set", "done", path))
            self._notify(path, stored)
        logger.debug("Document set", path=path)

    async def get_value(self, path: str) -> Optional[Document]:
        """Return a copy of the document at path, or None."""
        try:
            async with self._locks[path]:
                return self._copy(self._documents.get(path))
        finally:
            self._discard_idle_lock(path)

    async def watch_value(self, path: str) -> AsyncIterator[Optional[Document]]:
        """Yield the current value, then every change, until closed."""
        queue: "asyncio.Queue[Optional[Document]]" = asyncio.Queue()
        async with self._locks[path]:
            self._watchers[path].append(queue)
            initial = self._copy(self._documents.get(path))
        logger.debug("Watch opened", path=path)
        try:
            yield initial
            while True:
                yield await queue.get()
        finally:
            self._watchers[path].remove(queue)
            if not self._watchers[path]:
                del self._watchers[path]
            self._discard_idle_lock(path)
            logger.debug("Watch released", path=path)

    # ============================================================
    # Test utilities
    # ============================================================

    def fail_next_delete(self, error: Optional[BaseException] = None) -> None:
        """Make the next delete fail with error."""
        self._pending_failures["delete"].append(
            error or DocumentStoreError("delete", "*", "injected failure")
        )

    def fail_next_set(self, error: Optional[BaseException] = None) -> None:
        """Make the next set fail with error."""
        self._pending_failures["set"].append(
            error or DocumentStoreError("set", "*", "injected failure")
        )

    def listener_count(self, path: str) -> int:
        """Number of open watches on path."""
        return len(self._watchers.get(path, []))

    def lock_count(self) -> int:
        """Number of paths currently holding a lock."""
        return len(self._locks)

    def snapshot(self) -> Dict[str, Document]:
        """Copy of every stored document keyed by path."""
        return copy.deepcopy(self._documents)

    def clear(self) -> None:
        """Remove all documents (watchers stay open and see None)."""
        for path in list(self._documents):
            del self._documents[path]
            self._notify(path, None)
            self._discard_idle_lock(path)

    # ============================================================
    # Internals
    # ============================================================

    def _raise_injected_failure(self, operation: str, path: str) -> None:
        pending = self._pending_failures[operation]
        if pending:
            error = pending.pop(0)
            self.operations.append(StoreOperation(operation, "failed", path))
            raise error

    def _discard_idle_lock(self, path: str) -> None:
        """Forget the lock of a path with no document and no watchers."""
        lock = self._locks.get(path)
        if lock is None or lock.locked():
            return
        if path not in self._documents and not self._watchers.get(path):
            del self._locks[path]

    def _notify(self, path: str, document: Optional[Document]) -> None:
        for queue in self._watchers.get(path, []):
            queue.put_nowait(self._copy(document))

    def _server_time_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    @classmethod
    def _resolve(cls, value: Any, now_ms: int) -> Any:
        if isinstance(value, ServerTimestamp):
            return now_ms
        if isinstance(value, dict):
            return {k: cls._resolve(v, now_ms) for k, v in value.items()}
        if isinstance(value, list):
            return [cls._resolve(v, now_ms) for v in value]
        return value

    @staticmethod
    def _copy(document: Optional[Document]) -> Optional[Document]:
        return copy.deepcopy(document)
