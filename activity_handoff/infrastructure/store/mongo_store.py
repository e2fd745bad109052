"""
MongoDB implementation of the document store.

One collection holds every activity document, keyed by path:

    {"_id": "continue/notes/u1", "url": "...", "metadata": {"addedAt": ISODate}}

Writes are single-document operations, which MongoDB applies
atomically. SERVER_TIMESTAMP fields become $$NOW, evaluated by the
server. Watches use change streams and therefore need a replica set
(or Atlas).
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from activity_handoff.domain.ports.document_store import Document, ServerTimestamp
from activity_handoff.domain.shared.errors import DocumentStoreError

logger = structlog.get_logger(__name__)


class MongoDocumentStore:
    """
    MongoDB implementation of IDocumentStore.

    Storage design:
    - Collection: activities (configurable)
    - _id is the store path, so one document per path
    - set is an upserting pipeline update with $replaceWith (full replace)

    Example:
        >>> from motor.motor_asyncio import AsyncIOMotorClient
        >>> client = AsyncIOMotorClient("mongodb://localhost:27017/?replicaSet=rs0")
        >>> store = MongoDocumentStore(client.activity_handoff)
        >>> await store.delete("continue/notes/u1")
    """

    COLLECTION_NAME = "activities"

    def __init__(
        self,
        db: AsyncIOMotorDatabase[Any],
        collection_name: Optional[str] = None,
    ):
        """
        Initialize store with MongoDB database.

        Args:
            db: Motor AsyncIOMotorDatabase instance
            collection_name: Override for the collection name
        """
        self.db = db
        self.collection_name = collection_name or self.COLLECTION_NAME
        self.collection: AsyncIOMotorCollection[Any] = db[self.collection_name]

    async def delete(self, path: str) -> None:
        """Delete document at path (deleted_count 0 is success)."""
        try:
            result = await self.collection.delete_one({"_id": path})
        except PyMongoError as e:
            logger.error("Error in delete_one", collection=self.collection_name, path=path, error=str(e))
            raise DocumentStoreError("delete", path, str(e)) from e
        logger.debug("Document deleted", path=path, deleted=result.deleted_count)

    async def set(self, path: str, document: Document) -> None:
        """Replace document at path with server-side timestamps."""
        pipeline = [{"$replaceWith": self._to_expression(path, document)}]
        try:
            await self.collection.update_one({"_id": path}, pipeline, upsert=True)
        except PyMongoError as e:
            logger.error("Error in update_one", collection=self.collection_name, path=path, error=str(e))
            raise DocumentStoreError("set", path, str(e)) from e
        logger.debug("Document set", path=path)

    async def get_value(self, path: str) -> Optional[Document]:
        """Read document at path."""
        try:
            doc = await self.collection.find_one({"_id": path})
        except PyMongoError as e:
            logger.error("Error in find_one", collection=self.collection_name, path=path, error=str(e))
            raise DocumentStoreError("get", path, str(e)) from e
        return self._from_document(doc)

    async def watch_value(self, path: str) -> AsyncIterator[Optional[Document]]:
        """
        Yield the current document, then one value per change.

        The change stream is opened before the initial read so no
        change between the two is missed. Closing the generator closes
        the change stream.
        """
        pipeline = [{"$match": {"documentKey._id": path}}]
        try:
            async with self.collection.watch(pipeline, full_document="updateLookup") as stream:
                logger.debug("Watch opened", path=path)
                yield await self.get_value(path)
                async for change in stream:
                    if change["operationType"] == "delete":
                        yield None
                    elif change["operationType"] in ("insert", "replace", "update"):
                        yield self._from_document(change.get("fullDocument"))
        except PyMongoError as e:
            logger.error("Error in watch", collection=self.collection_name, path=path, error=str(e))
            raise DocumentStoreError("watch", path, str(e)) from e
        finally:
            logger.debug("Watch released", path=path)

    # ============================================================
    # Document mapping
    # ============================================================

    @classmethod
    def _to_expression(cls, path: str, document: Document) -> Dict[str, Any]:
        """
        Convert a document to a $replaceWith expression.

        Plain values are wrapped in $literal so strings starting with
        '$' are not read as field paths.
        """
        expression: Dict[str, Any] = {"_id": {"$literal": path}}
        for key, value in document.items():
            expression[key] = cls._to_value_expression(value)
        return expression

    @classmethod
    def _to_value_expression(cls, value: Any) -> Any:
        if isinstance(value, ServerTimestamp):
            return "$$NOW"
        if isinstance(value, dict):
            return {k: cls._to_value_expression(v) for k, v in value.items()}
        return {"$literal": value}

    @staticmethod
    def _from_document(doc: Optional[Dict[str, Any]]) -> Optional[Document]:
        """Strip _id from a stored document."""
        if doc is None:
            return None
        return {k: v for k, v in doc.items() if k != "_id"}
