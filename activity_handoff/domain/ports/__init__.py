"""Domain ports (interfaces for infrastructure adapters)."""

from activity_handoff.domain.ports.document_store import (
    SERVER_TIMESTAMP,
    Document,
    IDocumentStore,
    ServerTimestamp,
)
from activity_handoff.domain.ports.identity_provider import (
    AuthStateCallback,
    AuthSubscription,
    IIdentityProvider,
)

__all__ = [
    "SERVER_TIMESTAMP",
    "Document",
    "IDocumentStore",
    "ServerTimestamp",
    "AuthStateCallback",
    "AuthSubscription",
    "IIdentityProvider",
]
