"""Identity provider port (interface)."""

from typing import Callable, Optional, Protocol, runtime_checkable

AuthStateCallback = Callable[[Optional[str]], None]


@runtime_checkable
class AuthSubscription(Protocol):
    """Handle returned by on_auth_state_changed."""

    def remove(self) -> None:
        """Stop receiving auth state changes. Safe to call twice."""
        ...


@runtime_checkable
class IIdentityProvider(Protocol):
    """Identity provider interface.

    Abstracts whatever signs users in. The handoff core only needs
    the current stable user id and a notification on sign-in/sign-out.

    Examples:
        >>> provider = InMemoryIdentityProvider()
        >>> provider.current_user_id() is None
        True
        >>> provider.sign_in("u1")
        >>> provider.current_user_id()
        'u1'
    """

    def current_user_id(self) -> Optional[str]:
        """Return the signed-in user id, or None when signed out."""
        ...

    def on_auth_state_changed(self, callback: AuthStateCallback) -> AuthSubscription:
        """Subscribe to sign-in/sign-out.

        Args:
            callback: Invoked with the new user id, or None on sign-out

        Returns:
            Subscription whose remove() ends the notifications
        """
        ...
