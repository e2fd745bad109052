"""Document store factory for environment-based selection.

This factory creates the appropriate store implementation based on
the ACTIVITY_STORE setting:
- "inmemory": InMemoryDocumentStore (for testing, single process)
- "mongodb": MongoDocumentStore (for production)

Default: inmemory
"""

from typing import Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient

from activity_handoff.config import HandoffSettings, load_settings
from activity_handoff.domain.ports.document_store import IDocumentStore
from activity_handoff.infrastructure.store.in_memory_store import InMemoryDocumentStore
from activity_handoff.infrastructure.store.mongo_store import MongoDocumentStore

logger = structlog.get_logger(__name__)


def create_document_store(settings: Optional[HandoffSettings] = None) -> IDocumentStore:
    """Create document store based on configuration.

    Args:
        settings: Resolved settings (loaded from the environment if None)

    Returns:
        IDocumentStore: The configured store implementation

    Raises:
        ValueError: If mongodb is selected without MONGODB_URI
    """
    settings = settings or load_settings()

    if settings.store_backend == "mongodb":
        if not settings.mongodb_uri:
            raise ValueError(
                "MONGODB_URI environment variable is required when ACTIVITY_STORE=mongodb"
            )
        client: AsyncIOMotorClient = AsyncIOMotorClient(settings.mongodb_uri)  # type: ignore
        logger.info(
            "Using MongoDB document store",
            database=settings.mongodb_database,
            collection=settings.activity_collection,
        )
        return MongoDocumentStore(
            client[settings.mongodb_database],
            collection_name=settings.activity_collection,
        )

    logger.info("Using in-memory document store")
    return InMemoryDocumentStore()


# Singleton instance
_document_store: Optional[IDocumentStore] = None


def get_document_store() -> IDocumentStore:
    """Get singleton document store instance."""
    global _document_store

    if _document_store is None:
        _document_store = create_document_store()

    return _document_store


def reset_document_store() -> None:
    """Reset the singleton (for testing purposes)."""
    global _document_store
    _document_store = None
