"""
Change Notification Channel

The store publishes one ChangeEvent per committed change. Consumers either
subscribe with a callback or poll `version` and recompute when it moves.

Subscriptions must be released when their consumer goes away; a
Subscription is a context manager so `with notifier.subscribe(cb): ...`
handles that.
"""

import threading
from typing import Callable, Optional

import structlog

from money_conversations.models.events import ChangeEvent

logger = structlog.get_logger(__name__)

ChangeCallback = Callable[[ChangeEvent], None]


class Subscription:
    """Handle returned by ChangeNotifier.subscribe."""

    def __init__(self, notifier: "ChangeNotifier", callback: ChangeCallback):
        self._notifier = notifier
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._notifier._remove(self)
            self._active = False

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class ChangeNotifier:
    """
    Publish/subscribe channel for store changes.

    The version counter increases by one for every published event that
    committed something; failure events leave it unchanged.
    """

    def __init__(self):
        self._subscriptions: list[Subscription] = []
        self._lock = threading.Lock()
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: ChangeCallback) -> Subscription:
        subscription = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def next_version(self) -> int:
        """Version the next committed event will carry."""
        return self._version + 1

    def publish(self, event: ChangeEvent) -> None:
        """
        Deliver `event` to every subscriber.

        A failing subscriber is logged and skipped: the change it reports
        is already committed and the other subscribers still need it.
        """
        with self._lock:
            if not event.is_failure:
                self._version += 1
            subscribers = list(self._subscriptions)

        for subscription in subscribers:
            try:
                subscription._callback(event)
            except Exception:
                logger.exception(
                    "change_subscriber_failed",
                    event_type=event.event_type.value,
                    event_id=str(event.event_id),
                )

    def clear(self, owner: Optional[list[Subscription]] = None) -> None:
        """Drop the given subscriptions, or all of them."""
        targets = owner if owner is not None else list(self._subscriptions)
        for subscription in targets:
            subscription.unsubscribe()
