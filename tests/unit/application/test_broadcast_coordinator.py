"""Unit tests for BroadcastCoordinator.

Tests focus on:
- Input validation before any store access
- Identity gate
- Delete-before-set ordering
- Idempotent delete on an empty path
- At most one record per path, equal to the last successful broadcast
- Partial failure leaves the path empty
"""

import asyncio
from typing import Any, List
from unittest.mock import AsyncMock, MagicMock

import pytest

from activity_handoff.application.broadcast.coordinator import (
    BroadcastActivityCommand,
    BroadcastCoordinator,
)
from activity_handoff.domain.activity.codec import decode_activity
from activity_handoff.domain.activity.models import BroadcastPhase
from activity_handoff.domain.ports.document_store import SERVER_TIMESTAMP
from activity_handoff.domain.shared.errors import (
    BroadcastError,
    DocumentStoreError,
    InvalidInputError,
    NotAuthenticatedError,
    StoreError,
)
from activity_handoff.infrastructure.identity.in_memory_identity_provider import (
    InMemoryIdentityProvider,
)
from activity_handoff.infrastructure.store.in_memory_store import (
    InMemoryDocumentStore,
    StoreOperation,
)

PATH = "continue/notes/u1"


@pytest.fixture
def mock_store() -> AsyncMock:
    """Mock document store."""
    return AsyncMock()


@pytest.fixture
def mock_identity() -> MagicMock:
    """Mock identity provider with u1 signed in."""
    identity = MagicMock()
    identity.current_user_id.return_value = "u1"
    return identity


class TestBroadcastActivityCommand:
    """Test BroadcastActivityCommand dataclass."""

    def test_command_defaults_user_to_none(self) -> None:
        command = BroadcastActivityCommand(application_name="notes", activity_url="https://x/1")

        assert command.user_id is None

    def test_command_is_frozen(self) -> None:
        command = BroadcastActivityCommand(application_name="notes", activity_url="https://x/1")

        with pytest.raises(AttributeError):
            command.activity_url = "https://x/2"  # type: ignore[misc]


class TestValidation:
    """Invalid input never reaches the store."""

    @pytest.mark.asyncio
    async def test_blank_url_rejected(
        self, mock_store: AsyncMock, mock_identity: MagicMock, blank_value: str
    ) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(InvalidInputError) as exc_info:
            await coordinator.broadcast_activity("notes", blank_value)

        assert exc_info.value.field == "activity_url"
        mock_store.delete.assert_not_called()
        mock_store.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_blank_application_name_rejected(
        self, mock_store: AsyncMock, mock_identity: MagicMock, blank_value: str
    ) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(InvalidInputError) as exc_info:
            await coordinator.broadcast_activity(blank_value, "https://x/1")

        assert exc_info.value.field == "application_name"
        mock_store.delete.assert_not_called()
        mock_store.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_none_url_rejected(self, mock_store: AsyncMock, mock_identity: MagicMock) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(InvalidInputError):
            await coordinator.broadcast_activity("notes", None)  # type: ignore[arg-type]

        mock_store.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_url_checked_before_identity(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        mock_identity.current_user_id.return_value = None
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(InvalidInputError):
            await coordinator.broadcast_activity("notes", "")

    @pytest.mark.asyncio
    async def test_application_name_with_separator_rejected(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(InvalidInputError):
            await coordinator.broadcast_activity("notes/evil", "https://x/1")

        mock_store.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_user_id_with_separator_reported_as_user_id(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        mock_identity.current_user_id.return_value = "team/u1"
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(InvalidInputError) as exc_info:
            await coordinator.broadcast_activity("notes", "https://x/1")

        assert exc_info.value.field == "user_id"
        assert exc_info.value.value == "team/u1"
        mock_store.delete.assert_not_called()
        mock_store.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_input_is_broadcast_error(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(BroadcastError):
            await coordinator.broadcast_activity("notes", " ")


class TestAuthentication:
    """Identity is read from the provider at call time."""

    @pytest.mark.asyncio
    async def test_signed_out_rejected(
        self, store: InMemoryDocumentStore, signed_out_identity: InMemoryIdentityProvider
    ) -> None:
        coordinator = BroadcastCoordinator(store, signed_out_identity)

        with pytest.raises(NotAuthenticatedError):
            await coordinator.broadcast_activity("notes", "https://x/1")

        assert store.operations == []
        assert store.snapshot() == {}

    @pytest.mark.asyncio
    async def test_user_mismatch_rejected(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(NotAuthenticatedError) as exc_info:
            await coordinator.broadcast_activity("notes", "https://x/1", user_id="u2")

        assert exc_info.value.user_id == "u2"
        mock_store.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_matching_user_accepted(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        await coordinator.broadcast_activity("notes", "https://x/1", user_id="u1")

        mock_store.delete.assert_awaited_once_with(PATH)

    @pytest.mark.asyncio
    async def test_identity_queried_per_call(
        self, store: InMemoryDocumentStore, identity: InMemoryIdentityProvider
    ) -> None:
        coordinator = BroadcastCoordinator(store, identity)
        await coordinator.broadcast_activity("notes", "https://x/1")

        identity.sign_out()

        with pytest.raises(NotAuthenticatedError):
            await coordinator.broadcast_activity("notes", "https://x/2")

        identity.sign_in("u2")
        await coordinator.broadcast_activity("notes", "https://x/3")

        snapshot = store.snapshot()
        assert snapshot[PATH]["url"] == "https://x/1"
        assert snapshot["continue/notes/u2"]["url"] == "https://x/3"


class TestTwoPhaseReplace:
    """Delete then set."""

    @pytest.mark.asyncio
    async def test_writes_expected_document(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        await coordinator.broadcast_activity("notes", "https://x/1")

        mock_store.set.assert_awaited_once_with(
            PATH,
            {"url": "https://x/1", "metadata": {"addedAt": SERVER_TIMESTAMP}},
        )

    @pytest.mark.asyncio
    async def test_delete_completes_before_set_starts(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.broadcast_activity("notes", "https://x/1")

        assert store.operations == [
            StoreOperation("delete", "start", PATH),
            StoreOperation("delete", "done", PATH),
            StoreOperation("set", "start", PATH),
            StoreOperation("set", "done", PATH),
        ]

    @pytest.mark.asyncio
    async def test_call_order_with_mock(self, mock_identity: MagicMock) -> None:
        calls: List[str] = []
        store = MagicMock()

        async def delete(path: str) -> None:
            calls.append("delete")

        async def set_(path: str, document: Any) -> None:
            calls.append("set")

        store.delete = delete
        store.set = set_

        await BroadcastCoordinator(store, mock_identity).broadcast_activity("notes", "https://x/1")

        assert calls == ["delete", "set"]

    @pytest.mark.asyncio
    async def test_empty_path_succeeds(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore, clock: Any
    ) -> None:
        """Scenario A: broadcast on an empty path."""
        await coordinator.broadcast_activity("notes", "https://x/1")

        document = store.snapshot()[PATH]
        assert document == {
            "url": "https://x/1",
            "metadata": {"addedAt": int(clock().timestamp() * 1000)},
        }
        assert decode_activity(document).added_at == clock()

    @pytest.mark.asyncio
    async def test_application_name_is_trimmed(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.broadcast_activity("  notes ", "https://x/1")

        assert list(store.snapshot()) == [PATH]

    @pytest.mark.asyncio
    async def test_url_stored_verbatim(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.broadcast_activity("notes", " not really a url ")

        assert store.snapshot()[PATH]["url"] == " not really a url "

    @pytest.mark.asyncio
    async def test_custom_namespace(
        self, store: InMemoryDocumentStore, identity: InMemoryIdentityProvider
    ) -> None:
        coordinator = BroadcastCoordinator(store, identity, namespace="firebaseContinue")

        await coordinator.broadcast_activity("notes", "https://x/1")

        assert list(store.snapshot()) == ["firebaseContinue/notes/u1"]

    @pytest.mark.asyncio
    async def test_handle_command(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.handle(
            BroadcastActivityCommand(application_name="notes", activity_url="https://x/1")
        )

        assert store.snapshot()[PATH]["url"] == "https://x/1"


class TestReplacement:
    """At most one record per (application, user)."""

    @pytest.mark.asyncio
    async def test_second_broadcast_replaces_first(
        self,
        coordinator: BroadcastCoordinator,
        store: InMemoryDocumentStore,
        clock: Any,
    ) -> None:
        """Scenario B: replace goes through absence, never a merge."""
        await coordinator.broadcast_activity("notes", "https://x/1")
        clock.advance(seconds=5)

        observed: List[Any] = []
        watch = store.watch_value(PATH)
        observed.append(await watch.__anext__())

        await coordinator.broadcast_activity("notes", "https://x/2")
        observed.append(await watch.__anext__())
        observed.append(await watch.__anext__())
        await watch.aclose()

        assert observed[0]["url"] == "https://x/1"
        assert observed[1] is None
        assert observed[2] == {
            "url": "https://x/2",
            "metadata": {"addedAt": int(clock().timestamp() * 1000)},
        }
        assert list(store.snapshot()) == [PATH]

    @pytest.mark.asyncio
    async def test_last_successful_call_wins(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        for i in range(5):
            await coordinator.broadcast_activity("notes", f"https://x/{i}")

        snapshot = store.snapshot()
        assert list(snapshot) == [PATH]
        assert snapshot[PATH]["url"] == "https://x/4"

    @pytest.mark.asyncio
    async def test_failed_call_does_not_count(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.broadcast_activity("notes", "https://x/1")
        store.fail_next_delete()

        with pytest.raises(StoreError):
            await coordinator.broadcast_activity("notes", "https://x/2")

        assert store.snapshot()[PATH]["url"] == "https://x/1"

    @pytest.mark.asyncio
    async def test_applications_are_independent(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.broadcast_activity("notes", "https://x/1")
        await coordinator.broadcast_activity("mail", "https://m/1")

        assert set(store.snapshot()) == {PATH, "continue/mail/u1"}

    @pytest.mark.asyncio
    async def test_concurrent_broadcasts_leave_single_whole_record(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        urls = [f"https://x/{i}" for i in range(10)]

        await asyncio.gather(*(coordinator.broadcast_activity("notes", url) for url in urls))

        snapshot = store.snapshot()
        assert list(snapshot) == [PATH]
        assert snapshot[PATH]["url"] in urls
        assert set(snapshot[PATH]) == {"url", "metadata"}


class TestStoreFailures:
    """Store errors are wrapped with the failing phase."""

    @pytest.mark.asyncio
    async def test_delete_failure_skips_set(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.broadcast_activity("notes", "https://x/1")
        cause = DocumentStoreError("delete", PATH, "timeout")
        store.fail_next_delete(cause)
        store.operations.clear()

        with pytest.raises(StoreError) as exc_info:
            await coordinator.broadcast_activity("notes", "https://x/2")

        assert exc_info.value.phase is BroadcastPhase.AWAITING_DELETE
        assert exc_info.value.cause is cause
        assert exc_info.value.__cause__ is cause
        assert [op.name for op in store.operations] == ["delete", "delete"]
        assert store.snapshot()[PATH]["url"] == "https://x/1"

    @pytest.mark.asyncio
    async def test_set_failure_leaves_path_empty(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        await coordinator.broadcast_activity("notes", "https://x/1")
        store.fail_next_set()

        with pytest.raises(StoreError) as exc_info:
            await coordinator.broadcast_activity("notes", "https://x/2")

        assert exc_info.value.phase is BroadcastPhase.AWAITING_SET
        assert PATH not in store.snapshot()

    @pytest.mark.asyncio
    async def test_any_store_exception_is_wrapped(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        mock_store.set.side_effect = ConnectionError("reset by peer")
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(StoreError) as exc_info:
            await coordinator.broadcast_activity("notes", "https://x/1")

        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_no_retry(self, mock_store: AsyncMock, mock_identity: MagicMock) -> None:
        mock_store.delete.side_effect = ConnectionError("down")
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(StoreError):
            await coordinator.broadcast_activity("notes", "https://x/1")

        assert mock_store.delete.await_count == 1
        mock_store.set.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancellation_not_wrapped(
        self, mock_store: AsyncMock, mock_identity: MagicMock
    ) -> None:
        mock_store.delete.side_effect = asyncio.CancelledError()
        coordinator = BroadcastCoordinator(mock_store, mock_identity)

        with pytest.raises(asyncio.CancelledError):
            await coordinator.broadcast_activity("notes", "https://x/1")


class TestNowait:
    """Fire-and-forget variant."""

    @pytest.mark.asyncio
    async def test_returns_task(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        task = coordinator.broadcast_activity_nowait("notes", "https://x/1")

        assert isinstance(task, asyncio.Task)
        await task
        assert store.snapshot()[PATH]["url"] == "https://x/1"

    @pytest.mark.asyncio
    async def test_validation_raises_immediately(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        with pytest.raises(InvalidInputError):
            coordinator.broadcast_activity_nowait("notes", "")

        assert store.operations == []

    @pytest.mark.asyncio
    async def test_store_failure_surfaces_on_await(
        self, coordinator: BroadcastCoordinator, store: InMemoryDocumentStore
    ) -> None:
        store.fail_next_set()

        task = coordinator.broadcast_activity_nowait("notes", "https://x/1")

        with pytest.raises(StoreError):
            await task
