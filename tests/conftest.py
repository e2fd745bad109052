"""
Shared fixtures for activity handoff tests.

Everything runs against the in-memory store and identity provider;
MongoDB tests mock motor.
"""

from datetime import datetime, timedelta, timezone

import pytest

from activity_handoff.application.broadcast.coordinator import BroadcastCoordinator
from activity_handoff.application.watch.watch_adapter import WatchAdapter
from activity_handoff.infrastructure.identity.in_memory_identity_provider import (
    InMemoryIdentityProvider,
)
from activity_handoff.infrastructure.store.in_memory_store import InMemoryDocumentStore


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


# ═══════════════════════════════════════════════════════════
# CLOCK / ADAPTER FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at 2025-01-15 12:00 UTC."""
    return FakeClock(datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FakeClock) -> InMemoryDocumentStore:
    """Empty in-memory store using the fake clock as server time."""
    return InMemoryDocumentStore(clock=clock)


@pytest.fixture
def identity() -> InMemoryIdentityProvider:
    """Identity provider with u1 signed in."""
    return InMemoryIdentityProvider(user_id="u1")


@pytest.fixture
def signed_out_identity() -> InMemoryIdentityProvider:
    """Identity provider with nobody signed in."""
    return InMemoryIdentityProvider()


# ═══════════════════════════════════════════════════════════
# SERVICE FIXTURES
# ═══════════════════════════════════════════════════════════


@pytest.fixture
def coordinator(
    store: InMemoryDocumentStore,
    identity: InMemoryIdentityProvider,
) -> BroadcastCoordinator:
    """Coordinator wired to the in-memory adapters."""
    return BroadcastCoordinator(store=store, identity_provider=identity)


@pytest.fixture
def watch_adapter(store: InMemoryDocumentStore) -> WatchAdapter:
    """Watch adapter over the in-memory store."""
    return WatchAdapter(store)


@pytest.fixture(params=["", "   ", "\t\n"])
def blank_value(request: pytest.FixtureRequest) -> str:
    """Parametrized blank strings."""
    return str(request.param)
