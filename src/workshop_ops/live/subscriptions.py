"""Push subscriptions over the record store.

A subscription pairs a collection name with a query callable. The current
result set is delivered as soon as the subscription is created; after that
the hub re-runs the query whenever a committed write touches the collection
and delivers the new snapshot only when it differs from the last one.

In-memory only and thread-safe. Callbacks run on the publishing thread.
"""

import itertools
import logging
from threading import Lock
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned by ``SubscriptionHub.subscribe``."""

    def __init__(self, hub: "SubscriptionHub", sub_id: int, collection: str,
                 query: Callable, callback: Callable,
                 on_error: Optional[Callable] = None):
        self._hub = hub
        self.id = sub_id
        self.collection = collection
        self.query = query
        self.callback = callback
        self.on_error = on_error
        self.active = True
        self._last_snapshot = None
        self._delivered = False
        self._lock = Lock()

    def cancel(self):
        """Stop delivery. Safe to call more than once."""
        if not self.active:
            return
        self.active = False
        self._hub._remove(self)

    def refresh(self):
        """Re-run the query and deliver if the result changed.

        The callback runs after the lock is released, so a callback may
        write to the collection it watches.
        """
        with self._lock:
            if not self.active:
                return
            try:
                snapshot = self.query()
            except Exception as e:
                error = e
            else:
                error = None
                if self._delivered and snapshot == self._last_snapshot:
                    return
                self._last_snapshot = snapshot
                self._delivered = True
        if error is not None:
            self._fail(error)
            return
        try:
            self.callback(snapshot)
        except Exception as e:
            self._fail(e)

    def _fail(self, error: Exception):
        if self.on_error is not None:
            self.on_error(error)
        else:
            logger.error(
                f"Subscription {self.id} on {self.collection} failed: {error}"
            )

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.cancel()
        return False


class SubscriptionHub:
    """In-memory registry of live query subscriptions."""

    def __init__(self):
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._ids = itertools.count(1)
        self._lock = Lock()

    def subscribe(self, collection: str, query: Callable, callback: Callable,
                  on_error: Optional[Callable] = None) -> Subscription:
        """Register a live query and deliver its initial snapshot.

        Args:
            collection: Name of the collection whose writes trigger a refresh.
            query:      Zero-argument callable returning the result set.
            callback:   Called with each new snapshot.
            on_error:   Called with the exception when the query or the
                        callback fails; failures are logged otherwise.
        """
        if not callable(query) or not callable(callback):
            raise TypeError("query and callback must be callable")

        subscription = Subscription(
            self, next(self._ids), collection, query, callback, on_error,
        )
        with self._lock:
            self._subscriptions.setdefault(collection, []).append(subscription)

        logger.debug(f"Subscription {subscription.id} registered on {collection}")
        subscription.refresh()
        return subscription

    def publish(self, collection: str):
        """Refresh every subscription on a collection after a committed write."""
        with self._lock:
            targets = list(self._subscriptions.get(collection, []))
        for subscription in targets:
            subscription.refresh()

    def subscriber_count(self, collection: Optional[str] = None) -> int:
        with self._lock:
            if collection is not None:
                return len(self._subscriptions.get(collection, []))
            return sum(len(subs) for subs in self._subscriptions.values())

    def cancel_all(self):
        with self._lock:
            subscriptions = [
                s for subs in self._subscriptions.values() for s in subs
            ]
        for subscription in subscriptions:
            subscription.cancel()

    def _remove(self, subscription: Subscription):
        with self._lock:
            subs = self._subscriptions.get(subscription.collection, [])
            if subscription in subs:
                subs.remove(subscription)
            if not subs:
                self._subscriptions.pop(subscription.collection, None)
        logger.debug(f"Subscription {subscription.id} cancelled")
