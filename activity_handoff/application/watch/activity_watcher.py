"""
Activity watcher.

Long-lived consumer for one application. It follows the signed-in
user, keeps the latest fresh activity cached and tells registered
callbacks whenever that cached activity changes.

Flow:
- sign-in: open a watch on the user's path
- each emission: drop it if stale, update the cache, notify on change
- while an activity is cached: re-check staleness periodically
- sign-out: release the watch, clear the cache, notify
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Callable, Dict, List, Optional

import structlog

from activity_handoff.application.watch.watch_adapter import WatchAdapter
from activity_handoff.domain.activity.freshness import FreshnessPolicy
from activity_handoff.domain.activity.models import ActivityRecord
from activity_handoff.domain.ports.identity_provider import AuthSubscription, IIdentityProvider
from activity_handoff.domain.shared.errors import HandoffError, InvalidInputError

logger = structlog.get_logger(__name__)

ActivityCallback = Callable[[Optional[str], Optional[ActivityRecord]], None]

DEFAULT_STALENESS_CHECK_INTERVAL = timedelta(minutes=1)


class CallbackHandle:
    """Returned by on_activity_changed; remove() unregisters the callback."""

    def __init__(self, callbacks: List[ActivityCallback], callback: ActivityCallback) -> None:
        self._callbacks = callbacks
        self._callback = callback

    def remove(self) -> None:
        if self._callback in self._callbacks:
            self._callbacks.remove(self._callback)


class ActivityWatcher:
    """
    Auth-following, freshness-filtered view of one application's
    most recent activity.

    Stale records are hidden from callbacks but left in the store.

    Example:
        >>> watcher = ActivityWatcher("notes", identity, WatchAdapter(store))
        >>> await watcher.start()
        >>> handle = watcher.on_activity_changed(lambda user, record: print(record))
        >>> ...
        >>> await watcher.aclose()
    """

    def __init__(
        self,
        application_name: str,
        identity_provider: IIdentityProvider,
        watch_adapter: WatchAdapter,
        freshness: Optional[FreshnessPolicy] = None,
        staleness_check_interval: timedelta = DEFAULT_STALENESS_CHECK_INTERVAL,
    ) -> None:
        """
        Args:
            application_name: Application whose activity is followed
            identity_provider: Source of sign-in/sign-out
            watch_adapter: Reads the user's activity path
            freshness: Staleness rule (5 minute window by default)
            staleness_check_interval: Period of the cached-activity recheck

        Raises:
            InvalidInputError: Blank application name
        """
        if not application_name or not application_name.strip():
            raise InvalidInputError("application_name", application_name)
        self.application_name = application_name.strip()
        self._identity_provider = identity_provider
        self._watch_adapter = watch_adapter
        self._freshness = freshness or FreshnessPolicy()
        self._check_interval = staleness_check_interval

        self._callbacks: List[ActivityCallback] = []
        self._current_user_id: Optional[str] = None
        self._latest: Optional[ActivityRecord] = None
        self._auth_subscription: Optional[AuthSubscription] = None
        self._watch_task: Optional["asyncio.Task[None]"] = None
        self._staleness_task: Optional["asyncio.Task[None]"] = None
        self._log = logger.bind(application_name=self.application_name)

    @property
    def latest_activity(self) -> Optional[ActivityRecord]:
        """Latest fresh activity, or None."""
        return self._latest

    @property
    def current_user_id(self) -> Optional[str]:
        return self._current_user_id

    async def start(self) -> None:
        """Subscribe to auth state and follow the current user, if any."""
        if self._auth_subscription is not None:
            return
        self._auth_subscription = self._identity_provider.on_auth_state_changed(
            self._handle_auth_state_changed
        )
        self._handle_auth_state_changed(self._identity_provider.current_user_id())

    async def aclose(self) -> None:
        """Release the auth subscription, the store watch and the recheck."""
        if self._auth_subscription is not None:
            self._auth_subscription.remove()
            self._auth_subscription = None
        await _cancel(self._watch_task)
        await _cancel(self._staleness_task)
        self._watch_task = None
        self._staleness_task = None
        self._log.debug("Activity watcher closed")

    def on_activity_changed(self, callback: ActivityCallback) -> Optional[CallbackHandle]:
        """
        Register callback(user_id, activity).

        The callback runs immediately with the current state, then on
        every change of the cached activity or signed-in user.

        Returns:
            Handle to unregister, or None if callback is already registered
        """
        if callback in self._callbacks:
            return None
        self._callbacks.append(callback)
        self._invoke(callback)
        return CallbackHandle(self._callbacks, callback)

    # ============================================================
    # Auth and watch handling
    # ============================================================

    def _handle_auth_state_changed(self, user_id: Optional[str]) -> None:
        following = self._watch_task is not None and not self._watch_task.done()
        if user_id == self._current_user_id and (user_id is None or following):
            return

        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None

        self._current_user_id = user_id
        if user_id is None:
            self._log.info("Stopped following activity: signed out")
            self._update_latest(None, force_notify=True)
            return

        self._log.info("Following activity", user_id=user_id)
        self._update_latest(None, force_notify=True)
        self._watch_task = asyncio.get_running_loop().create_task(self._follow(user_id))

    async def _follow(self, user_id: str) -> None:
        try:
            async with self._watch_adapter.watch_most_recent_activity(
                user_id, self.application_name
            ) as stream:
                async for record in stream:
                    self._handle_activity(record)
        except HandoffError as e:
            self._log.error("Activity watch failed", user_id=user_id, error=str(e), exc_info=True)
            self._update_latest(None)

    def _handle_activity(self, record: Optional[ActivityRecord]) -> None:
        if self._freshness.is_stale(record):
            self._log.info("Ignoring stale activity", url=record.url if record else None)
            record = None
        self._update_latest(record)

    def _update_latest(self, record: Optional[ActivityRecord], force_notify: bool = False) -> None:
        changed = record != self._latest
        self._latest = record

        if record is not None and self._staleness_task is None:
            self._staleness_task = asyncio.get_running_loop().create_task(
                self._check_staleness_periodically()
            )
        elif record is None and self._staleness_task is not None:
            self._staleness_task.cancel()
            self._staleness_task = None

        if changed or force_notify:
            self._invoke_all()

    async def _check_staleness_periodically(self) -> None:
        interval = self._check_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            if self._freshness.is_stale(self._latest):
                self._log.info("Cached activity went stale")
                # Clearing cancels this task; detach first so the
                # update does not cancel the running coroutine mid-call.
                self._staleness_task = None
                self._update_latest(None)
                return

    # ============================================================
    # Callbacks
    # ============================================================

    def _invoke(self, callback: ActivityCallback) -> None:
        try:
            callback(self._current_user_id, self._latest)
        except Exception as e:
            self._log.error(
                "Activity callback failed",
                callback=getattr(callback, "__name__", repr(callback)),
                error=str(e),
                exc_info=True,
            )

    def _invoke_all(self) -> None:
        for callback in list(self._callbacks):
            self._invoke(callback)


class ActivityWatcherRegistry:
    """
    One shared ActivityWatcher per application name.

    Example:
        >>> registry = ActivityWatcherRegistry(identity, WatchAdapter(store))
        >>> watcher = await registry.get_instance_for("notes")
        >>> assert watcher is await registry.get_instance_for("notes")
    """

    def __init__(
        self,
        identity_provider: IIdentityProvider,
        watch_adapter: WatchAdapter,
        freshness: Optional[FreshnessPolicy] = None,
        staleness_check_interval: timedelta = DEFAULT_STALENESS_CHECK_INTERVAL,
    ) -> None:
        self._identity_provider = identity_provider
        self._watch_adapter = watch_adapter
        self._freshness = freshness
        self._check_interval = staleness_check_interval
        self._instances: Dict[str, ActivityWatcher] = {}

    async def get_instance_for(self, application_name: str) -> ActivityWatcher:
        """
        Return the started watcher for application_name.

        Raises:
            InvalidInputError: Blank application name
        """
        if not application_name or not application_name.strip():
            raise InvalidInputError("application_name", application_name)
        key = application_name.strip()

        existing = self._instances.get(key)
        if existing is not None:
            return existing

        watcher = ActivityWatcher(
            key,
            self._identity_provider,
            self._watch_adapter,
            freshness=self._freshness,
            staleness_check_interval=self._check_interval,
        )
        self._instances[key] = watcher
        await watcher.start()
        return watcher

    async def aclose(self) -> None:
        """Close every watcher."""
        for watcher in list(self._instances.values()):
            await watcher.aclose()
        self._instances.clear()


async def _cancel(task: Optional["asyncio.Task[None]"]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
