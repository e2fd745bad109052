"""Document store adapters."""

from activity_handoff.infrastructure.store.in_memory_store import InMemoryDocumentStore
from activity_handoff.infrastructure.store.mongo_store import MongoDocumentStore

__all__ = ["InMemoryDocumentStore", "MongoDocumentStore"]
