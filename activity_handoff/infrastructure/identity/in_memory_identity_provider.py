"""In-memory identity provider for testing and embedding."""

from typing import List, Optional

import structlog

from activity_handoff.domain.ports.identity_provider import AuthStateCallback

logger = structlog.get_logger(__name__)


class _CallbackSubscription:
    """Removes one callback from the provider's list."""

    def __init__(self, provider: "InMemoryIdentityProvider", callback: AuthStateCallback) -> None:
        self._provider = provider
        self._callback: Optional[AuthStateCallback] = callback

    def remove(self) -> None:
        if self._callback is None:
            return
        self._provider._remove_callback(self._callback)
        self._callback = None


class InMemoryIdentityProvider:
    """In-memory implementation of IIdentityProvider.

    The host application calls sign_in/sign_out after its own
    authentication flow; subscribers are notified synchronously, in
    subscription order. A failing subscriber is logged and does not
    stop the others.

    Examples:
        >>> provider = InMemoryIdentityProvider()
        >>> sub = provider.on_auth_state_changed(print)
        >>> provider.sign_in("u1")
        u1
        >>> sub.remove()
    """

    def __init__(self, user_id: Optional[str] = None) -> None:
        """Initialize provider.

        Args:
            user_id: Initially signed-in user, if any
        """
        self._user_id = user_id
        self._callbacks: List[AuthStateCallback] = []

    def current_user_id(self) -> Optional[str]:
        """Return signed-in user id or None."""
        return self._user_id

    def on_auth_state_changed(self, callback: AuthStateCallback) -> _CallbackSubscription:
        """Subscribe to sign-in/sign-out notifications."""
        self._callbacks.append(callback)
        return _CallbackSubscription(self, callback)

    def sign_in(self, user_id: str) -> None:
        """Mark user_id as signed in and notify subscribers.

        Raises:
            ValueError: If user_id is blank
        """
        if not user_id or not user_id.strip():
            raise ValueError("user_id cannot be empty or whitespace")
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.info("User signed in", user_id=user_id)
        self._notify()

    def sign_out(self) -> None:
        """Clear the signed-in user and notify subscribers."""
        if self._user_id is None:
            return
        logger.info("User signed out", user_id=self._user_id)
        self._user_id = None
        self._notify()

    def subscriber_count(self) -> int:
        """Number of active subscriptions."""
        return len(self._callbacks)

    def _remove_callback(self, callback: AuthStateCallback) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass

    def _notify(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self._user_id)
            except Exception as e:
                logger.error(
                    "Auth state callback failed",
                    callback=getattr(callback, "__name__", repr(callback)),
                    error=str(e),
                    exc_info=True,
                )
