"""Identity provider adapters."""

from activity_handoff.infrastructure.identity.in_memory_identity_provider import (
    InMemoryIdentityProvider,
)

__all__ = ["InMemoryIdentityProvider"]
