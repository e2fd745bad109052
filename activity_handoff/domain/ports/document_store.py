"""
Document store port (interface).

Defines the contract the broadcast coordinator and watch adapter need
from a networked keyed-document store. Infrastructure provides the
implementations (in-memory, MongoDB).
"""

from typing import Any, AsyncIterator, Dict, Optional, Protocol, runtime_checkable

Document = Dict[str, Any]


class ServerTimestamp:
    """
    Placeholder replaced by the store's own clock at write time.

    Clients put SERVER_TIMESTAMP into a document instead of a local
    time so they cannot forge ordering.
    """

    _instance: Optional["ServerTimestamp"] = None

    def __new__(cls) -> "ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = ServerTimestamp()


@runtime_checkable
class IDocumentStore(Protocol):
    """
    Interface for a keyed document store with watch support.

    Implementations must provide:
    - Atomic single-path writes (set is a full replace)
    - Idempotent delete
    - Server-assigned timestamps for SERVER_TIMESTAMP fields
    - Watches that release their listener when closed

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.set("continue/notes/u1", {"url": "https://x/1"})
        >>> await store.get_value("continue/notes/u1")
        {'url': 'https://x/1'}
    """

    async def delete(self, path: str) -> None:
        """
        Delete the document at path.

        Succeeds when the path is already empty.

        Raises:
            DocumentStoreError: On storage failure
        """
        ...

    async def set(self, path: str, document: Document) -> None:
        """
        Replace the document at path.

        Any SERVER_TIMESTAMP value (at any depth) is replaced by the
        store's clock.

        Raises:
            DocumentStoreError: On storage failure
        """
        ...

    async def get_value(self, path: str) -> Optional[Document]:
        """
        Read the current document at path.

        Returns:
            Document, or None when the path is empty
        """
        ...

    def watch_value(self, path: str) -> AsyncIterator[Optional[Document]]:
        """
        Watch path for changes.

        Yields the current document (or None) first, then one value per
        change, None after a delete. Closing the iterator (aclose) must
        release the underlying listener.
        """
        ...
