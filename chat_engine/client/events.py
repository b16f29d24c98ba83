"""
Event Bus

In-process publish/subscribe channel that backends push generation events
onto ("stream-delta", "stream-complete").

Delivery is synchronous and in subscription order: ``emit`` returns only after
every handler ran, so a delta is fully reconciled before the next event is
looked at. Ordering across events is whatever order the backend emits them in.

Usage:
    bus = EventBus()
    sub = bus.listen("stream-delta", lambda payload: print(payload["delta"]))
    bus.emit("stream-delta", {"delta": "hi"})
    sub.release()  # safe to call more than once
"""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[dict[str, Any]], None]


class Subscription:
    """Handle returned by ``EventBus.listen``. Releasing twice is a no-op."""

    def __init__(self, bus: "EventBus", event: str, handler: EventHandler):
        self._bus = bus
        self.event = event
        self.handler = handler
        self._released = False

    @property
    def active(self) -> bool:
        return not self._released

    def release(self) -> bool:
        """
        Stop receiving events.

        Returns:
            True if this call released the subscription, False if it already was
        """
        if self._released:
            return False
        self._released = True
        self._bus._remove(self)
        return True

    def __repr__(self) -> str:
        state = "active" if self.active else "released"
        return f"Subscription({self.event!r}, {state})"


class SubscriptionPair:
    """The delta and completion subscriptions of one generation session.

    Acquired together right before the start request and released together
    exactly once.
    """

    def __init__(self, delta: Subscription, complete: Subscription):
        self.delta = delta
        self.complete = complete
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        if self._released:
            return False
        self._released = True
        safe_release(self.delta)
        safe_release(self.complete)
        return True


def safe_release(subscription: Subscription | None) -> None:
    """Release a subscription, ignoring None and release errors."""
    if subscription is None:
        return
    try:
        subscription.release()
    except Exception as e:
        logger.debug(f"Release of {subscription!r} failed: {e}")


class EventBus:
    """Named-event dispatcher shared by a backend and its listeners."""

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}

    def listen(self, event: str, handler: EventHandler) -> Subscription:
        subscription = Subscription(self, event, handler)
        self._subscriptions.setdefault(event, []).append(subscription)
        logger.debug(f"[LISTEN] {event} ({self.listener_count(event)} listeners)")
        return subscription

    def emit(self, event: str, payload: dict[str, Any] | None = None) -> int:
        """
        Deliver payload to every active listener of event.

        Handler exceptions are logged and do not stop delivery to the others.

        Returns:
            Number of handlers that were called
        """
        delivered = 0
        for subscription in list(self._subscriptions.get(event, ())):
            # A handler earlier in this loop may have released it
            if not subscription.active:
                continue
            try:
                subscription.handler(payload if payload is not None else {})
            except Exception:
                logger.exception(f"Handler for {event!r} failed")
            delivered += 1
        return delivered

    def listener_count(self, event: str | None = None) -> int:
        if event is not None:
            return len(self._subscriptions.get(event, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.event)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            del self._subscriptions[subscription.event]
